"""
Submission Activities

Temporal activities that run the SubmissionOrchestrator:
- submit_order_activity: Submit one order (idempotent via the audit store)
- retry_order_activity: Manual retrigger of one order

Gateway, reference clients and audit store are built once per worker
process from core.config settings and shared by every activity call.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from temporalio import activity

from connectors.fast_accounting import FastGateway
from connectors.loyalty import LoyaltyApiConfig, LoyaltyClient
from connectors.static_reference import StaticPaymentRecordSource
from core.audit.store import AuditStore, JSONFileAuditStore
from core.config import Settings, load_settings
from core.models.canonical import Order, PaymentRecord
from core.observability.logging import (
    log_activity_complete,
    log_activity_error,
    log_activity_start,
    with_correlation,
)
from core.observability.metrics import (
    record_activity_completed,
    record_activity_failed,
    record_activity_started,
)
from workflows.submission_orchestrator import SubmissionOrchestrator


# =============================================================================
# Activity Input/Output Models
# =============================================================================

@dataclass
class SubmitOrderInput:
    """Input for submit_order_activity"""
    order: Dict[str, Any]
    # Recorded cash/voucher payment methods for the order
    payments: List[Dict[str, Any]] = field(default_factory=list)
    force_retry: bool = False


@dataclass
class SubmitOrderOutput:
    """Output from submit_order_activity"""
    order_id: str
    success: bool
    message: str
    state: str
    result: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RetryOrderInput:
    """Input for retry_order_activity"""
    order: Dict[str, Any]
    payments: List[Dict[str, Any]] = field(default_factory=list)
    force_retry: bool = False


# =============================================================================
# Shared Resources
# =============================================================================

class SubmissionResources:
    """Process-wide collaborators shared by activity calls."""

    _instance: Optional["SubmissionResources"] = None

    def __init__(self, settings: Settings, audit_store: Optional[AuditStore] = None):
        if not settings.loyalty_base_url:
            raise ValueError("LOYALTY_API_BASE_URL environment variable not set")
        self.settings = settings
        self.gateway = FastGateway.from_settings(settings)
        self.loyalty = LoyaltyClient(LoyaltyApiConfig(
            base_url=settings.loyalty_base_url,
            timeout_seconds=settings.http_timeout_seconds,
        ))
        self.audit_store = audit_store or JSONFileAuditStore(settings.audit_path)

    @classmethod
    def get(cls) -> "SubmissionResources":
        if cls._instance is None:
            cls._instance = cls(load_settings())
        return cls._instance

    @classmethod
    async def close(cls) -> None:
        """Close HTTP sessions (called on worker shutdown)."""
        if cls._instance is not None:
            await cls._instance.gateway.disconnect()
            await cls._instance.loyalty.disconnect()
            cls._instance = None

    def orchestrator(self, payments: List[Dict[str, Any]]) -> SubmissionOrchestrator:
        return SubmissionOrchestrator(
            gateway=self.gateway,
            catalog=self.loyalty,
            departments=self.loyalty,
            payments=StaticPaymentRecordSource(PaymentRecord.model_validate(p) for p in payments),
            audit_store=self.audit_store,
        )


# =============================================================================
# submit_order Activity
# =============================================================================

@activity.defn
async def submit_order_activity(input: SubmitOrderInput) -> SubmitOrderOutput:
    """
    Submit one order through the orchestrator.

    Step failures are recorded in the audit store and returned, not raised,
    so the activity only fails on infrastructure errors.
    """
    order = Order.model_validate(input.order)
    info = activity.info()
    start = time.monotonic()

    with with_correlation(
        doc_code=order.doc_code,
        workflow_id=info.workflow_id,
        activity_name=info.activity_type,
    ):
        log_activity_start("submit_order", force_retry=input.force_retry)
        record_activity_started("submit_order")
        try:
            orchestrator = SubmissionResources.get().orchestrator(input.payments)
            result = await orchestrator.submit_order(order, force_retry=input.force_retry)
        except Exception as e:
            log_activity_error("submit_order", str(e))
            record_activity_failed("submit_order", str(e))
            raise

        duration_ms = (time.monotonic() - start) * 1000
        log_activity_complete("submit_order", duration_ms=duration_ms, success=result.success)
        record_activity_completed("submit_order", duration_ms)

    return SubmitOrderOutput(
        order_id=result.order_id,
        success=result.success,
        message=result.message,
        state=result.state.value,
        result=result.to_dict(),
    )


# =============================================================================
# retry_order Activity
# =============================================================================

@activity.defn
async def retry_order_activity(input: RetryOrderInput) -> Dict[str, Any]:
    """
    Manually retrigger one order.

    Returns:
        {"success": bool, "message": str, "result": dict}
    """
    order = Order.model_validate(input.order)
    activity.logger.info(f"Manual retry for {order.doc_code} (force_retry={input.force_retry})")

    with with_correlation(doc_code=order.doc_code, workflow_id=activity.info().workflow_id):
        record_activity_started("retry_order")
        try:
            orchestrator = SubmissionResources.get().orchestrator(input.payments)
            outcome = await orchestrator.retry_order(order, force_retry=input.force_retry)
        except Exception as e:
            record_activity_failed("retry_order", str(e))
            raise
        record_activity_completed("retry_order")

    return outcome
