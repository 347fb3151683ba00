"""Submission audit records and persistence.

One AuditRecord summarizes one submission attempt for an order. The store
is keyed by order id with last-write-wins semantics: upsert supersedes the
latest record of an order, while append (used by manual retries) keeps the
previous record and adds a fresh one for traceability.
"""

import json
import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

STATUS_FAILED = 0
STATUS_SUCCESS = 1


class AuditRecord(BaseModel):
    """Outcome of one submission attempt for an order."""
    record_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique record identifier")
    order_id: str = Field(..., description="Order document code")
    status: int = Field(default=STATUS_FAILED, description="0 = failed, 1 = success")
    message: str = Field(default="", description="Aggregated step messages")
    correlation_id: Optional[str] = Field(None, description="Gateway guid of the first successful invoice")
    raw_response: Any = Field(None, description="Raw gateway responses, per step")
    retry_count: int = Field(default=0, description="Number of earlier attempts for this order")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Record timestamp")

    # Detail
    category: Optional[str] = Field(None, description="Order category")
    final_state: Optional[str] = Field(None, description="Last state reached")
    duplicate: bool = Field(default=False, description="A step was accepted as an existing document")
    manual_retry: bool = Field(default=False, description="Written by a manual retry")
    errors: List[str] = Field(default_factory=list, description="Step error messages")
    steps: Dict[str, Any] = Field(default_factory=dict, description="Per-step results")

    @property
    def is_success(self) -> bool:
        return self.status == STATUS_SUCCESS

    def step_succeeded(self, step: str) -> bool:
        """True if a step result was recorded as SUCCESS or DUPLICATE."""
        result = self.steps.get(step) or {}
        return result.get("status") in ("SUCCESS", "DUPLICATE")


class AuditStore(ABC):
    """Abstract base class for audit persistence backends."""

    @abstractmethod
    def upsert(self, order_id: str, record: AuditRecord) -> None:
        """Replace the latest record of an order (or create the first one)."""
        pass

    @abstractmethod
    def append(self, order_id: str, record: AuditRecord) -> None:
        """Add a record without superseding earlier ones."""
        pass

    @abstractmethod
    def history(self, order_id: str) -> List[AuditRecord]:
        """All records of an order, oldest first."""
        pass

    def find_latest(self, order_id: str) -> Optional[AuditRecord]:
        """Latest record of an order, if any."""
        records = self.history(order_id)
        return records[-1] if records else None


class InMemoryAuditStore(AuditStore):
    """In-memory audit store for testing."""

    def __init__(self):
        self._records: Dict[str, List[AuditRecord]] = {}

    def upsert(self, order_id: str, record: AuditRecord) -> None:
        records = self._records.setdefault(order_id, [])
        if records:
            records[-1] = record
        else:
            records.append(record)

    def append(self, order_id: str, record: AuditRecord) -> None:
        self._records.setdefault(order_id, []).append(record)

    def history(self, order_id: str) -> List[AuditRecord]:
        return list(self._records.get(order_id, []))

    def clear(self) -> None:
        """Clear all records (for testing)."""
        self._records.clear()


class JSONFileAuditStore(AuditStore):
    """Audit store that keeps every order's records in one JSON file.

    File layout: {"<order_id>": [record, ...], ...}
    """

    def __init__(self, path: Path):
        """Initialize with the JSON file path."""
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    def _load(self) -> Dict[str, List[Dict[str, Any]]]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
        # Write to a temp file then replace, so readers never see a partial file
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def upsert(self, order_id: str, record: AuditRecord) -> None:
        with self._lock:
            data = self._load()
            records = data.setdefault(order_id, [])
            dumped = record.model_dump(mode="json")
            if records:
                records[-1] = dumped
            else:
                records.append(dumped)
            self._save(data)

    def append(self, order_id: str, record: AuditRecord) -> None:
        with self._lock:
            data = self._load()
            data.setdefault(order_id, []).append(record.model_dump(mode="json"))
            self._save(data)

    def history(self, order_id: str) -> List[AuditRecord]:
        with self._lock:
            data = self._load()
        return [AuditRecord.model_validate(r) for r in data.get(order_id, [])]
