"""
Order Submission Workflows

- OrderSubmissionWorkflow: submits one order through submit_order_activity
- OrderBatchWorkflow: submits many orders, at most `concurrency` at a time

The activity records every step failure in the audit store itself, so it
runs with a single attempt; Temporal retries would only repeat gateway calls.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError

# Import activities
with workflow.unsafe.imports_passed_through():
    from activities.submit import (
        submit_order_activity,
        retry_order_activity,
        SubmitOrderInput,
        SubmitOrderOutput,
        RetryOrderInput,
    )


SUBMIT_TIMEOUT = timedelta(minutes=10)
SINGLE_ATTEMPT = RetryPolicy(maximum_attempts=1)


# =============================================================================
# Workflow Input/Output
# =============================================================================

@dataclass
class OrderBatchInput:
    """Input for the batch workflow"""
    orders: List[SubmitOrderInput]
    concurrency: int = 5


@dataclass
class OrderBatchOutput:
    """Batch summary; one error entry per failed order"""
    total: int
    succeeded: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


# =============================================================================
# Single Order Workflow
# =============================================================================

@workflow.defn
class OrderSubmissionWorkflow:
    """Submit one order."""

    @workflow.run
    async def run(self, input: SubmitOrderInput) -> SubmitOrderOutput:
        doc_code = input.order.get("doc_code")
        workflow.logger.info(f"Starting order submission for {doc_code}")

        output = await workflow.execute_activity(
            submit_order_activity,
            input,
            start_to_close_timeout=SUBMIT_TIMEOUT,
            retry_policy=SINGLE_ATTEMPT,
        )

        workflow.logger.info(f"Order {doc_code} finished: {output.state}")
        return output


@workflow.defn
class OrderRetryWorkflow:
    """Manual retrigger of one order."""

    @workflow.run
    async def run(self, input: RetryOrderInput) -> Dict[str, Any]:
        return await workflow.execute_activity(
            retry_order_activity,
            input,
            start_to_close_timeout=SUBMIT_TIMEOUT,
            retry_policy=SINGLE_ATTEMPT,
        )


# =============================================================================
# Batch Workflow
# =============================================================================

@workflow.defn
class OrderBatchWorkflow:
    """
    Submit a batch of orders in chunks of `concurrency`.

    A failed order never stops the batch; the summary lists every failure.
    """

    @workflow.run
    async def run(self, input: OrderBatchInput) -> OrderBatchOutput:
        concurrency = max(1, input.concurrency)
        summary = OrderBatchOutput(total=len(input.orders))
        workflow.logger.info(f"Starting batch of {summary.total} orders (concurrency={concurrency})")

        for start in range(0, len(input.orders), concurrency):
            chunk = input.orders[start:start + concurrency]
            outcomes = await asyncio.gather(
                *[
                    workflow.execute_activity(
                        submit_order_activity,
                        order_input,
                        start_to_close_timeout=SUBMIT_TIMEOUT,
                        retry_policy=SINGLE_ATTEMPT,
                    )
                    for order_input in chunk
                ],
                return_exceptions=True,
            )

            for order_input, outcome in zip(chunk, outcomes):
                doc_code = order_input.order.get("doc_code")
                if isinstance(outcome, ActivityError):
                    summary.failed += 1
                    cause = outcome.cause or outcome
                    summary.errors.append({"order_id": doc_code, "error": str(cause)})
                elif isinstance(outcome, BaseException):
                    raise outcome
                elif outcome.success:
                    summary.succeeded += 1
                else:
                    summary.failed += 1
                    summary.errors.append({"order_id": doc_code, "error": outcome.message})

        workflow.logger.info(
            f"Batch finished: {summary.succeeded} succeeded, {summary.failed} failed"
        )
        return summary
