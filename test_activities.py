"""
Submission Activity Tests

Runs the activities in temporalio's ActivityEnvironment with in-memory
collaborators in place of the process-wide resources.
"""

import asyncio
from unittest.mock import patch

import pytest
from temporalio.testing import ActivityEnvironment

from activities.submit import (
    RetryOrderInput,
    SubmissionResources,
    SubmitOrderInput,
    retry_order_activity,
    submit_order_activity,
)
from connectors.base import DocumentType
from connectors.static_reference import (
    RecordingGateway,
    StaticCatalogLookup,
    StaticDepartmentLookup,
    StaticPaymentRecordSource,
)
from core.audit.store import InMemoryAuditStore
from core.config import Settings
from core.models.canonical import CatalogItem, PaymentRecord
from workflows.submission_orchestrator import SubmissionOrchestrator

ORDER = {
    "doc_code": "SO001",
    "doc_date": "2025-03-15T10:00:00",
    "customer": {"code": "KH001"},
    "lines": [{
        "item_code": "SP01", "order_type_label": "01. Thường",
        "qty": 1, "price": 100000, "revenue": 100000, "product_type": "I",
    }],
}


class InMemoryResources:
    """Stands in for SubmissionResources."""

    def __init__(self):
        self.gateway = RecordingGateway()
        self.audit_store = InMemoryAuditStore()

    def orchestrator(self, payments):
        return SubmissionOrchestrator(
            gateway=self.gateway,
            catalog=StaticCatalogLookup([CatalogItem(item_code="SP01", unit="Hop")]),
            departments=StaticDepartmentLookup(),
            payments=StaticPaymentRecordSource(PaymentRecord.model_validate(p) for p in payments),
            audit_store=self.audit_store,
        )


@pytest.fixture
def resources():
    fake = InMemoryResources()
    with patch.object(SubmissionResources, "get", return_value=fake):
        yield fake


class TestSubmitOrderActivity:
    """submit_order_activity"""

    def test_submits_order_with_payments(self, resources):
        payments = [{"doc_code": "SO001", "method_code": "CASH", "amount": 100000}]

        output = asyncio.run(ActivityEnvironment().run(
            submit_order_activity, SubmitOrderInput(order=ORDER, payments=payments),
        ))

        assert output.success
        assert output.order_id == "SO001"
        assert output.state == "DONE"
        assert len(resources.gateway.calls_for(DocumentType.CASH_RECEIPT)) == 1
        assert resources.audit_store.find_latest("SO001").is_success

    def test_step_failure_returned_not_raised(self, resources):
        resources.gateway.queue(DocumentType.SALES_INVOICE, {"status": 0, "message": "boom"})

        output = asyncio.run(ActivityEnvironment().run(
            submit_order_activity, SubmitOrderInput(order=ORDER),
        ))

        assert not output.success
        assert output.state == "FAILED"
        assert "boom" in output.message


class TestRetryOrderActivity:
    """retry_order_activity"""

    def test_retry_short_circuits_then_forces(self, resources):
        env = ActivityEnvironment()
        asyncio.run(env.run(submit_order_activity, SubmitOrderInput(order=ORDER)))
        sent = len(resources.gateway.submitted)

        skipped = asyncio.run(env.run(retry_order_activity, RetryOrderInput(order=ORDER)))
        assert skipped["success"]
        assert len(resources.gateway.submitted) == sent

        forced = asyncio.run(env.run(retry_order_activity, RetryOrderInput(order=ORDER, force_retry=True)))
        assert forced["success"]
        assert len(resources.gateway.submitted) == 2 * sent
        assert len(resources.audit_store.history("SO001")) == 2


class TestSubmissionResources:
    """Resource construction."""

    def test_requires_loyalty_url(self):
        with pytest.raises(ValueError):
            SubmissionResources(Settings(
                fast_base_url="http://fast.local", fast_username="u", fast_password="p",
            ))

    def test_builds_collaborators(self, tmp_path):
        resources = SubmissionResources(Settings(
            fast_base_url="http://fast.local",
            fast_username="u",
            fast_password="p",
            loyalty_base_url="http://loyalty.local/api",
            audit_store_path=str(tmp_path / "audit.json"),
        ))
        orchestrator = resources.orchestrator([])
        assert orchestrator.gateway is resources.gateway
        assert orchestrator.catalog is resources.loyalty
