"""Activity definitions module."""

from activities.submit import (
    submit_order_activity,
    retry_order_activity,
    SubmitOrderInput,
    SubmitOrderOutput,
    RetryOrderInput,
    SubmissionResources,
)

__all__ = [
    # Submission activities
    "submit_order_activity",
    "retry_order_activity",
    "SubmitOrderInput",
    "SubmitOrderOutput",
    "RetryOrderInput",
    "SubmissionResources",
]
