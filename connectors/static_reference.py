"""In-memory collaborators.

Dict-backed reference lookups, payment source and a recording gateway.
Used for offline runs (dry-run submissions) and tests.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from core.models.canonical import CatalogItem, Department, PaymentRecord

from connectors.base import (
    CatalogLookup,
    DepartmentLookup,
    DocumentType,
    ExternalGateway,
    GatewayResponse,
    PaymentRecordSource,
    ReferenceNotFoundError,
    SubmittedDocument,
)

logger = logging.getLogger(__name__)


class StaticCatalogLookup(CatalogLookup):
    """Catalog backed by a dict of item code -> CatalogItem."""

    def __init__(self, items: Optional[Iterable[CatalogItem]] = None):
        self._items: Dict[str, CatalogItem] = {i.item_code: i for i in (items or [])}
        self.calls: List[str] = []

    async def by_item_code(self, code: str) -> CatalogItem:
        self.calls.append(code)
        item = self._items.get(code)
        if item is None:
            raise ReferenceNotFoundError("catalog item", code)
        return item


class StaticDepartmentLookup(DepartmentLookup):
    """Departments backed by a dict of branch code -> Department."""

    def __init__(self, departments: Optional[Iterable[Department]] = None):
        self._departments: Dict[str, Department] = {d.branch_code: d for d in (departments or [])}

    async def by_branch_code(self, code: str) -> Department:
        dept = self._departments.get(code)
        if dept is None:
            raise ReferenceNotFoundError("department", code)
        return dept


class StaticPaymentRecordSource(PaymentRecordSource):
    """Payment records grouped by order id."""

    def __init__(self, records: Optional[Iterable[PaymentRecord]] = None):
        self._records: Dict[str, List[PaymentRecord]] = {}
        for record in records or []:
            self._records.setdefault(record.doc_code, []).append(record)

    async def by_order_id(self, order_id: str) -> List[PaymentRecord]:
        return list(self._records.get(order_id, []))


class RecordingGateway(ExternalGateway):
    """
    Gateway that records every submission and answers from a script.

    Responses are queued per document type; when a queue is empty the
    default response (success) is returned.

    Usage:
        gateway = RecordingGateway()
        gateway.queue(DocumentType.SALES_INVOICE, {"status": 0, "message": "boom"})
    """

    def __init__(self, default: Optional[Dict[str, Any]] = None):
        self.default = default or {"status": 1, "message": "OK", "guid": None}
        self.submitted: List[SubmittedDocument] = []
        self._queues: Dict[DocumentType, List[Any]] = {}

    def queue(self, document_type: DocumentType, *responses: Any) -> None:
        """Queue raw responses (or exceptions to raise) for a document type."""
        self._queues.setdefault(document_type, []).extend(responses)

    def calls_for(self, document_type: DocumentType) -> List[SubmittedDocument]:
        return [s for s in self.submitted if s.document_type == document_type]

    async def submit(self, document_type: DocumentType, payload: Dict[str, Any]) -> GatewayResponse:
        self.submitted.append(SubmittedDocument(document_type, payload))
        queue = self._queues.get(document_type)
        raw = queue.pop(0) if queue else dict(self.default)
        if isinstance(raw, Exception):
            raise raw
        logger.debug("Recorded %s submission", document_type.value)
        return GatewayResponse.from_raw(raw)
