"""Abstract Collaborator Interfaces.

This module defines the interfaces the submission orchestrator consumes.
It is intentionally gateway-agnostic - no Fast accounting or loyalty API
specifics here.

Connectors implement these interfaces to:
1. Look up product catalog and department reference data
2. Submit accounting documents and report the gateway's verdict
3. Provide recorded payment methods for an order

Key Design Principles:
- Lookups return canonical models or raise ReferenceNotFoundError
- Gateways return a normalized GatewayResponse for every parsed response
- Transport failures surface as ExternalServiceError
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from core.models.canonical import CatalogItem, Department, PaymentRecord


# =============================================================================
# Enums
# =============================================================================

class DocumentType(str, Enum):
    """Documents that can be submitted to the accounting gateway."""
    CUSTOMER = "CUSTOMER"
    SALES_ORDER = "SALES_ORDER"
    SALES_INVOICE = "SALES_INVOICE"
    SALES_RETURN = "SALES_RETURN"
    GXT_TRANSFER = "GXT_TRANSFER"
    CASH_RECEIPT = "CASH_RECEIPT"
    CREDIT_ADVICE = "CREDIT_ADVICE"


# =============================================================================
# Errors
# =============================================================================

class ExternalServiceError(Exception):
    """Non-success response or transport failure from an external system."""
    def __init__(
        self,
        message: str,
        status_code: int = 0,
        document_type: Optional[DocumentType] = None,
        raw: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.document_type = document_type
        self.raw = raw


class AuthorizationExpiredError(ExternalServiceError):
    """Authorization failed (401/403) even after one re-authentication."""
    pass


class DuplicateSubmissionError(ExternalServiceError):
    """The gateway already holds this document."""
    pass


class ReferenceNotFoundError(LookupError):
    """A catalog or department lookup found nothing."""
    def __init__(self, kind: str, code: str):
        super().__init__(f"{kind} not found: {code}")
        self.kind = kind
        self.code = code


# =============================================================================
# Gateway Response
# =============================================================================

# Lowercased message fragments meaning "document already exists"
DUPLICATE_SIGNATURES = ("đã tồn tại", "pk_d81", "duplicate")


def is_duplicate_message(message: Optional[str]) -> bool:
    """Match the gateway's duplicate-constraint message signatures."""
    text = (message or "").lower()
    return any(sig in text for sig in DUPLICATE_SIGNATURES)


@dataclass
class GatewayResponse:
    """
    Normalized gateway verdict.

    status == 1 is the only success signal; anything else, including a
    missing status, is a failure.
    """
    status: int
    message: str = ""
    correlation_id: Optional[str] = None
    raw: Any = None

    @property
    def is_success(self) -> bool:
        return self.status == 1

    @property
    def is_duplicate(self) -> bool:
        return not self.is_success and is_duplicate_message(self.message)

    @classmethod
    def from_raw(cls, raw: Any) -> "GatewayResponse":
        """
        Parse a gateway body: [{status, message, guid}] or {status, message, guid}.
        """
        item = raw[0] if isinstance(raw, list) and raw else raw
        if not isinstance(item, dict):
            return cls(status=0, message=str(raw) if raw is not None else "", raw=raw)

        try:
            status = int(item.get("status"))
        except (TypeError, ValueError):
            status = 0

        return cls(
            status=status,
            message=str(item.get("message") or ""),
            correlation_id=item.get("guid"),
            raw=raw,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "correlation_id": self.correlation_id,
            "raw": self.raw,
        }


# =============================================================================
# Collaborator Interfaces
# =============================================================================

class CatalogLookup(ABC):
    """Product catalog by item code."""

    @abstractmethod
    async def by_item_code(self, code: str) -> CatalogItem:
        """
        Look up a catalog item.

        Raises:
            ReferenceNotFoundError: If the item is unknown
        """
        pass


class DepartmentLookup(ABC):
    """Branch to company/department mapping."""

    @abstractmethod
    async def by_branch_code(self, code: str) -> Department:
        """
        Look up a department.

        Raises:
            ReferenceNotFoundError: If the branch is unknown
        """
        pass


class ExternalGateway(ABC):
    """The authoritative accounting system."""

    @abstractmethod
    async def submit(self, document_type: DocumentType, payload: Dict[str, Any]) -> GatewayResponse:
        """
        Submit a document.

        Returns:
            GatewayResponse for any parsed response (including failures)

        Raises:
            ExternalServiceError: Transport failure or non-2xx status
            AuthorizationExpiredError: Authorization failed after one refresh
        """
        pass


class PaymentRecordSource(ABC):
    """Recorded cash/voucher payment methods."""

    @abstractmethod
    async def by_order_id(self, order_id: str) -> List[PaymentRecord]:
        pass


@dataclass
class SubmittedDocument:
    """One gateway call as recorded by in-memory gateways."""
    document_type: DocumentType
    payload: Dict[str, Any] = field(default_factory=dict)
