"""Submit POS orders from a JSON file.

Input file layout:
    {
        "orders": [<Order>, ...],
        "payments": [<PaymentRecord>, ...],
        "catalog": [<CatalogItem>, ...],        # --dry-run only
        "departments": [<Department>, ...]      # --dry-run only
    }

Modes:
- default: run the batch driver against the Fast and loyalty APIs
- --dry-run: record documents instead of sending them, print the payloads
- --temporal: start an OrderBatchWorkflow and wait for its summary
- --retry DOC_CODE: manual retrigger of one order (with --force to bypass
  the already-submitted check)
"""

import argparse
import asyncio
import json
import uuid
from pathlib import Path
from typing import Any, Dict, List

from connectors.fast_accounting import FastGateway
from connectors.loyalty import LoyaltyApiConfig, LoyaltyClient
from connectors.static_reference import (
    RecordingGateway,
    StaticCatalogLookup,
    StaticDepartmentLookup,
    StaticPaymentRecordSource,
)
from core.audit.store import InMemoryAuditStore, JSONFileAuditStore
from core.config import Settings, load_settings
from core.models.canonical import CatalogItem, Department, Order, PaymentRecord
from core.observability.logging import configure_logging, get_logger
from workers.batch_driver import process_batch
from workflows.submission_orchestrator import SubmissionOrchestrator

logger = get_logger(__name__)


def load_input(path: Path) -> Dict[str, Any]:
    """Read the input file; a bare list is treated as the orders list."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, list):
        data = {"orders": data}
    return data


async def run_dry(data: Dict[str, Any], concurrency: int) -> Dict[str, Any]:
    """Run every order against a recording gateway and static reference data."""
    gateway = RecordingGateway()
    orchestrator = SubmissionOrchestrator(
        gateway=gateway,
        catalog=StaticCatalogLookup(CatalogItem.model_validate(c) for c in data.get("catalog", [])),
        departments=StaticDepartmentLookup(Department.model_validate(d) for d in data.get("departments", [])),
        payments=StaticPaymentRecordSource(PaymentRecord.model_validate(p) for p in data.get("payments", [])),
        audit_store=InMemoryAuditStore(),
    )
    orders = [Order.model_validate(o) for o in data.get("orders", [])]
    summary = await process_batch(orchestrator, orders, concurrency=concurrency)
    summary["documents"] = [
        {"document_type": doc.document_type.value, "payload": doc.payload}
        for doc in gateway.submitted
    ]
    return summary


async def run_live(
    data: Dict[str, Any],
    settings: Settings,
    retry_doc: str = None,
    force: bool = False,
) -> Dict[str, Any]:
    """Run orders against the Fast and loyalty APIs."""
    if not settings.loyalty_base_url:
        raise ValueError("LOYALTY_API_BASE_URL environment variable not set")

    orders = [Order.model_validate(o) for o in data.get("orders", [])]
    payments = StaticPaymentRecordSource(PaymentRecord.model_validate(p) for p in data.get("payments", []))
    loyalty = LoyaltyClient(LoyaltyApiConfig(settings.loyalty_base_url, settings.http_timeout_seconds))

    async with FastGateway.from_settings(settings) as gateway, loyalty:
        orchestrator = SubmissionOrchestrator(
            gateway=gateway,
            catalog=loyalty,
            departments=loyalty,
            payments=payments,
            audit_store=JSONFileAuditStore(settings.audit_path),
        )

        if retry_doc:
            matches = [o for o in orders if o.doc_code == retry_doc]
            if not matches:
                raise ValueError(f"Order {retry_doc} not found in input file")
            return await orchestrator.retry_order(matches[0], force_retry=force)

        return await process_batch(
            orchestrator, orders, concurrency=settings.batch_concurrency, force_retry=force,
        )


async def run_temporal(data: Dict[str, Any], settings: Settings, force: bool = False) -> Dict[str, Any]:
    """Start an OrderBatchWorkflow and wait for its summary."""
    from dataclasses import asdict

    from activities.submit import SubmitOrderInput
    from temporal_client import get_temporal_client
    from workflows.order_workflow import OrderBatchInput, OrderBatchWorkflow

    payments: Dict[str, List[Dict[str, Any]]] = {}
    for p in data.get("payments", []):
        payments.setdefault(p.get("doc_code"), []).append(p)

    batch = OrderBatchInput(
        orders=[
            SubmitOrderInput(order=o, payments=payments.get(o.get("doc_code"), []), force_retry=force)
            for o in data.get("orders", [])
        ],
        concurrency=settings.batch_concurrency,
    )

    client = await get_temporal_client(settings)
    workflow_id = f"order-batch-{uuid.uuid4().hex[:8]}"
    logger.info(f"Starting OrderBatchWorkflow {workflow_id} on '{settings.temporal_task_queue}'")
    result = await client.execute_workflow(
        OrderBatchWorkflow.run,
        batch,
        id=workflow_id,
        task_queue=settings.temporal_task_queue,
    )
    return asdict(result)


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Submit POS orders to the accounting gateway")
    parser.add_argument("input", type=Path, help="JSON file with orders and payments")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Record documents instead of sending them")
    mode.add_argument("--temporal", action="store_true", help="Run as an OrderBatchWorkflow")
    parser.add_argument("--retry", metavar="DOC_CODE", default=None, help="Manually retrigger one order")
    parser.add_argument("--force", action="store_true", help="Bypass the already-submitted check")
    parser.add_argument("--concurrency", type=int, default=None, help="Orders in flight (default: BATCH_CONCURRENCY)")
    args = parser.parse_args()

    settings = load_settings()
    if args.concurrency is not None:
        if args.concurrency < 1:
            parser.error("--concurrency must be at least 1")
        settings.batch_concurrency = args.concurrency
    configure_logging(level=settings.log_level_value, json_format=settings.log_json)

    data = load_input(args.input)
    if args.dry_run:
        result = asyncio.run(run_dry(data, settings.batch_concurrency))
    elif args.temporal:
        result = asyncio.run(run_temporal(data, settings, force=args.force))
    else:
        result = asyncio.run(run_live(data, settings, retry_doc=args.retry, force=args.force))

    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))


if __name__ == "__main__":
    main()
