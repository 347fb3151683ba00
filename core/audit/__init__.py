"""Core audit module - submission audit records and persistence."""

from core.audit.store import (
    AuditRecord,
    AuditStore,
    InMemoryAuditStore,
    JSONFileAuditStore,
    STATUS_FAILED,
    STATUS_SUCCESS,
)

__all__ = [
    "AuditRecord",
    "AuditStore",
    "InMemoryAuditStore",
    "JSONFileAuditStore",
    "STATUS_FAILED",
    "STATUS_SUCCESS",
]
