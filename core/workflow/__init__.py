"""Core workflow module - submission state and result types.

The submission state machine itself lives in workflows/submission_orchestrator.py;
Temporal workflows wrapping it live in workflows/order_workflow.py.
"""

from core.workflow.base import (
    SubmissionState,
    StepStatus,
    StepResult,
    SubmissionResult,
)

__all__ = [
    "SubmissionState",
    "StepStatus",
    "StepResult",
    "SubmissionResult",
]
