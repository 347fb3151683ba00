"""Base submission types shared by the orchestrator, activities and workflows."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SubmissionState(str, Enum):
    """Submission state machine values."""
    VALIDATING = "VALIDATING"
    CREATING_CUSTOMER = "CREATING_CUSTOMER"
    CREATING_SALES_ORDER = "CREATING_SALES_ORDER"
    CREATING_SALES_INVOICE = "CREATING_SALES_INVOICE"
    CREATING_GXT_TRANSFER = "CREATING_GXT_TRANSFER"
    CREATING_SALES_RETURN = "CREATING_SALES_RETURN"
    PROCESSING_PAYMENT = "PROCESSING_PAYMENT"
    RECORDING_AUDIT = "RECORDING_AUDIT"
    DONE = "DONE"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class StepStatus(str, Enum):
    """Outcome of one external submission step."""
    SUCCESS = "SUCCESS"
    DUPLICATE = "DUPLICATE"
    FAILED = "FAILED"


@dataclass
class StepResult:
    """Result of one gateway submission."""
    step: str
    status: StepStatus
    message: str = ""
    correlation_id: Optional[str] = None
    response: Any = None
    split_date: Optional[str] = None
    duration_ms: Optional[float] = None

    # True when the step was accepted by an earlier attempt and not resent
    reused: bool = False

    @property
    def ok(self) -> bool:
        """Duplicates count as success for continuation."""
        return self.status in (StepStatus.SUCCESS, StepStatus.DUPLICATE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "status": self.status.value,
            "message": self.message,
            "correlation_id": self.correlation_id,
            "split_date": self.split_date,
            "duration_ms": self.duration_ms,
            "reused": self.reused,
        }


@dataclass
class SubmissionResult:
    """Standard result of one order submission."""
    order_id: str
    state: SubmissionState
    started_at: datetime
    completed_at: Optional[datetime] = None

    category: Optional[str] = None
    success: bool = False
    duplicate: bool = False
    skipped: bool = False
    manual_retry: bool = False

    # Guid of the first successful invoice split
    correlation_id: Optional[str] = None

    steps: List[StepResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    audit_record_id: Optional[str] = None

    def add_step(self, step: StepResult) -> None:
        self.steps.append(step)
        if step.status == StepStatus.DUPLICATE:
            self.duplicate = True

    def step(self, name: str) -> Optional[StepResult]:
        """Latest result recorded under a step name."""
        for step in reversed(self.steps):
            if step.step == name:
                return step
        return None

    def steps_for(self, state: SubmissionState) -> List[StepResult]:
        """Every result of a state, including keyed sub-steps such as invoice splits."""
        prefix = state.value
        return [s for s in self.steps if s.step == prefix or s.step.startswith(prefix + ":")]

    @property
    def message(self) -> str:
        if self.skipped:
            return "Order already submitted"
        if self.errors:
            prefix = "Submitted with errors: " if self.success else ""
            return prefix + "; ".join(self.errors)
        if self.success and self.duplicate:
            return "Submitted (existing document accepted)"
        return "Submitted" if self.success else "Submission failed"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "order_id": self.order_id,
            "state": self.state.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "category": self.category,
            "success": self.success,
            "duplicate": self.duplicate,
            "skipped": self.skipped,
            "manual_retry": self.manual_retry,
            "correlation_id": self.correlation_id,
            "message": self.message,
            "steps": [s.to_dict() for s in self.steps],
            "errors": list(self.errors),
            "audit_record_id": self.audit_record_id,
        }
