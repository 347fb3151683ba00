"""Bounded-concurrency batch driver.

Runs the SubmissionOrchestrator over many orders without Temporal, at most
`concurrency` orders at a time. A failing order never stops the batch.
"""

import asyncio
from typing import Any, Dict, Iterable

from core.models.canonical import Order
from core.observability.logging import get_logger
from workflows.submission_orchestrator import SubmissionOrchestrator

logger = get_logger(__name__)

DEFAULT_CONCURRENCY = 5


async def process_batch(
    orchestrator: SubmissionOrchestrator,
    orders: Iterable[Order],
    concurrency: int = DEFAULT_CONCURRENCY,
    force_retry: bool = False,
) -> Dict[str, Any]:
    """
    Submit orders with a bounded worker pool.

    Args:
        orchestrator: Orchestrator shared by every order
        orders: Orders to submit
        concurrency: Maximum orders in flight
        force_retry: Passed through to every submission

    Returns:
        {"total", "succeeded", "failed", "errors": [{"order_id", "error"}]}

    Raises:
        ValueError: If concurrency < 1
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    orders = list(orders)
    semaphore = asyncio.Semaphore(concurrency)

    async def run_one(order: Order):
        async with semaphore:
            try:
                return await orchestrator.submit_order(order, force_retry=force_retry)
            except Exception as e:
                # The orchestrator converts step failures itself; this is a last guard
                logger.exception(f"Order {order.doc_code} raised: {e}")
                return e

    outcomes = await asyncio.gather(*[run_one(order) for order in orders])

    summary: Dict[str, Any] = {"total": len(orders), "succeeded": 0, "failed": 0, "errors": []}
    for order, outcome in zip(orders, outcomes):
        if isinstance(outcome, Exception):
            summary["failed"] += 1
            summary["errors"].append({"order_id": order.doc_code, "error": str(outcome)})
        elif outcome.success:
            summary["succeeded"] += 1
        else:
            summary["failed"] += 1
            summary["errors"].append({"order_id": order.doc_code, "error": outcome.message})

    logger.info(
        f"Batch finished: {summary['succeeded']}/{summary['total']} succeeded",
        extra_fields={"failed": summary["failed"]},
    )
    return summary
