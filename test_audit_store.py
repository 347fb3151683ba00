"""
Audit Store Tests

Upsert/append semantics for the in-memory and JSON file stores.
"""

import json

import pytest

from core.audit.store import (
    STATUS_FAILED,
    STATUS_SUCCESS,
    AuditRecord,
    InMemoryAuditStore,
    JSONFileAuditStore,
)


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryAuditStore()
    return JSONFileAuditStore(tmp_path / "audit" / "records.json")


class TestAuditStore:
    """Behaviour shared by every backend."""

    def test_find_latest_missing(self, store):
        assert store.find_latest("SO404") is None
        assert store.history("SO404") == []

    def test_upsert_replaces_latest(self, store):
        store.upsert("SO001", AuditRecord(order_id="SO001", status=STATUS_FAILED, message="first"))
        store.upsert("SO001", AuditRecord(order_id="SO001", status=STATUS_SUCCESS, message="second"))

        history = store.history("SO001")
        assert len(history) == 1
        assert history[0].message == "second"
        assert store.find_latest("SO001").is_success

    def test_append_keeps_history(self, store):
        store.upsert("SO001", AuditRecord(order_id="SO001", message="auto"))
        store.append("SO001", AuditRecord(order_id="SO001", message="manual", manual_retry=True))

        history = store.history("SO001")
        assert [r.message for r in history] == ["auto", "manual"]
        assert store.find_latest("SO001").manual_retry

    def test_orders_isolated(self, store):
        store.upsert("SO001", AuditRecord(order_id="SO001"))
        store.upsert("SO002", AuditRecord(order_id="SO002"))
        assert len(store.history("SO001")) == 1
        assert store.find_latest("SO002").order_id == "SO002"


class TestAuditRecord:
    """Record helpers."""

    def test_step_succeeded(self):
        record = AuditRecord(order_id="SO001", steps={
            "CREATING_SALES_ORDER": {"status": "SUCCESS"},
            "CREATING_SALES_INVOICE:20250315": {"status": "DUPLICATE"},
            "CREATING_CUSTOMER": {"status": "FAILED"},
        })
        assert record.step_succeeded("CREATING_SALES_ORDER")
        assert record.step_succeeded("CREATING_SALES_INVOICE:20250315")
        assert not record.step_succeeded("CREATING_CUSTOMER")
        assert not record.step_succeeded("PROCESSING_PAYMENT:1:CASH")

    def test_default_status_is_failed(self):
        assert not AuditRecord(order_id="SO001").is_success


class TestJSONFileAuditStore:
    """File persistence."""

    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "records.json"
        JSONFileAuditStore(path).upsert("SO001", AuditRecord(
            order_id="SO001",
            status=STATUS_SUCCESS,
            correlation_id="G-1",
            raw_response={"CREATING_SALES_INVOICE:20250315": [{"status": 1, "guid": "G-1"}]},
        ))

        record = JSONFileAuditStore(path).find_latest("SO001")

        assert record.correlation_id == "G-1"
        assert record.is_success

    def test_file_layout(self, tmp_path):
        path = tmp_path / "records.json"
        JSONFileAuditStore(path).append("SO001", AuditRecord(order_id="SO001", message="Chứng từ đã tồn tại"))

        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        assert list(data) == ["SO001"]
        assert data["SO001"][0]["message"] == "Chứng từ đã tồn tại"
