"""Worker for order submission.

Listens on the order submission task queue and executes the submission
workflows and activities.

Run with --queue <name> to override TEMPORAL_TASK_QUEUE.
"""

import argparse
import asyncio

from temporalio.worker import Worker

from activities.submit import SubmissionResources, retry_order_activity, submit_order_activity
from core.config import load_settings
from core.observability.logging import configure_logging, get_logger
from temporal_client import get_temporal_client
from workflows.order_workflow import OrderBatchWorkflow, OrderRetryWorkflow, OrderSubmissionWorkflow

logger = get_logger(__name__)

WORKFLOWS = [OrderSubmissionWorkflow, OrderRetryWorkflow, OrderBatchWorkflow]
ACTIVITIES = [submit_order_activity, retry_order_activity]


async def run_worker(queue: str = None):
    """Start a worker listening on the task queue.

    Args:
        queue: Task queue to poll (defaults to TEMPORAL_TASK_QUEUE)

    Raises:
        Exception: If connection to Temporal fails
    """
    settings = load_settings()
    configure_logging(level=settings.log_level_value, json_format=settings.log_json)
    task_queue = queue or settings.temporal_task_queue

    client = await get_temporal_client(settings)
    logger.info(f"Connected to Temporal: {client.namespace}")

    worker = Worker(
        client,
        task_queue=task_queue,
        workflows=WORKFLOWS,
        activities=ACTIVITIES,
        max_concurrent_activities=settings.batch_concurrency,
    )
    logger.info(f"Worker created for queue '{task_queue}':")
    logger.info(f"  - Workflows: {len(WORKFLOWS)}")
    logger.info(f"  - Activities: {len(ACTIVITIES)}")

    try:
        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()
    finally:
        await SubmissionResources.close()
        logger.info("Worker stopped")


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Order Submission Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=None,
        help="Task queue to poll (default: TEMPORAL_TASK_QUEUE)"
    )

    args = parser.parse_args()
    try:
        asyncio.run(run_worker(queue=args.queue))
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    main()
