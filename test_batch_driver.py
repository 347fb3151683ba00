"""
Batch Driver Tests

Bounded concurrency and per-order failure isolation.
"""

import asyncio
from types import SimpleNamespace

import pytest

from core.models.canonical import Order
from workers.batch_driver import process_batch


def make_orders(count):
    return [
        Order.model_validate({"doc_code": f"SO{i:03d}", "doc_date": "2025-03-15"})
        for i in range(count)
    ]


class FakeOrchestrator:
    """Tracks how many submissions run at once."""

    def __init__(self, failing=(), raising=()):
        self.failing = set(failing)
        self.raising = set(raising)
        self.active = 0
        self.peak = 0
        self.calls = []

    async def submit_order(self, order, force_retry=False, manual=False):
        self.calls.append((order.doc_code, force_retry))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.01)
            if order.doc_code in self.raising:
                raise RuntimeError("gateway exploded")
            success = order.doc_code not in self.failing
            return SimpleNamespace(success=success, message="Submitted" if success else "SALES_INVOICE: boom")
        finally:
            self.active -= 1


class TestProcessBatch:
    """process_batch summary and concurrency."""

    def test_concurrency_bound(self):
        orchestrator = FakeOrchestrator()

        summary = asyncio.run(process_batch(orchestrator, make_orders(12), concurrency=3))

        assert summary["total"] == 12
        assert summary["succeeded"] == 12
        assert orchestrator.peak <= 3

    def test_failures_do_not_stop_batch(self):
        orchestrator = FakeOrchestrator(failing={"SO001"}, raising={"SO003"})

        summary = asyncio.run(process_batch(orchestrator, make_orders(5), concurrency=2))

        assert summary["succeeded"] == 3
        assert summary["failed"] == 2
        assert {e["order_id"] for e in summary["errors"]} == {"SO001", "SO003"}
        assert len(orchestrator.calls) == 5

    def test_force_retry_passed_through(self):
        orchestrator = FakeOrchestrator()
        asyncio.run(process_batch(orchestrator, make_orders(2), force_retry=True))
        assert all(force for _, force in orchestrator.calls)

    def test_empty_batch(self):
        summary = asyncio.run(process_batch(FakeOrchestrator(), [], concurrency=1))
        assert summary == {"total": 0, "succeeded": 0, "failed": 0, "errors": []}

    @pytest.mark.parametrize("concurrency", [0, -1])
    def test_invalid_concurrency(self, concurrency):
        with pytest.raises(ValueError):
            asyncio.run(process_batch(FakeOrchestrator(), make_orders(1), concurrency=concurrency))
