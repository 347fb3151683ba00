"""
Submission Orchestrator

Drives one POS order through the accounting gateway:
VALIDATING → CREATING_CUSTOMER → CREATING_SALES_ORDER → CREATING_SALES_INVOICE
(one submission per fulfillment date) → [CREATING_GXT_TRANSFER] →
PROCESSING_PAYMENT → RECORDING_AUDIT → DONE | FAILED

Sales returns go VALIDATING → CREATING_SALES_RETURN → RECORDING_AUDIT.

Rules:
- Validation failures stop before any gateway call
- A gateway "already exists" answer counts as success (duplicate flag set)
- Every invoice split is attempted even when a sibling fails
- Payment failures are recorded but do not fail the order
- Exactly one audit write per run; step failures never raise out
- Steps accepted by an earlier attempt are not resent unless force_retry
"""

import time
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from connectors.base import (
    CatalogLookup,
    DepartmentLookup,
    DocumentType,
    DuplicateSubmissionError,
    ExternalGateway,
    ExternalServiceError,
    PaymentRecordSource,
    ReferenceNotFoundError,
    is_duplicate_message,
)
from core.audit.store import AuditRecord, AuditStore, STATUS_FAILED, STATUS_SUCCESS
from core.models.canonical import Order
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from core.workflow.base import (
    StepResult,
    StepStatus,
    SubmissionResult,
    SubmissionState,
)
from order_engine import (
    InvoiceFieldEngine,
    InvoicePayloadBuilder,
    MissingRequiredFieldError,
    OrderCategory,
    OrderValidationError,
    ReferenceSnapshot,
    is_cash_payment,
)

logger = get_logger(__name__)


def split_step_key(split_date: date) -> str:
    """Audit key of one invoice split."""
    return f"{SubmissionState.CREATING_SALES_INVOICE.value}:{split_date.strftime('%Y%m%d')}"


def payment_step_key(index: int, method_code: str) -> str:
    """Audit key of one payment posting."""
    return f"{SubmissionState.PROCESSING_PAYMENT.value}:{index}:{method_code}"


class SubmissionOrchestrator:
    """
    Submits orders to the accounting gateway and records one audit record per run.

    Usage:
        orchestrator = SubmissionOrchestrator(gateway, catalog, departments, payments, audit_store)
        result = await orchestrator.submit_order(order)
    """

    def __init__(
        self,
        gateway: ExternalGateway,
        catalog: CatalogLookup,
        departments: DepartmentLookup,
        payments: PaymentRecordSource,
        audit_store: AuditStore,
        engine: Optional[InvoiceFieldEngine] = None,
    ):
        self.gateway = gateway
        self.catalog = catalog
        self.departments = departments
        self.payments = payments
        self.audit_store = audit_store
        self.engine = engine or InvoiceFieldEngine()
        self.metrics = get_metrics()

    # =========================================================================
    # Public API
    # =========================================================================

    async def submit_order(
        self,
        order: Order,
        force_retry: bool = False,
        manual: bool = False,
    ) -> SubmissionResult:
        """
        Run the submission state machine for one order.

        Args:
            order: Order to submit
            force_retry: Re-run every step even if the order is already
                marked successful in the audit store
            manual: Manual retrigger; the audit record is appended instead
                of replacing the latest one

        Returns:
            SubmissionResult (never raises for step failures)
        """
        started = time.monotonic()
        result = SubmissionResult(
            order_id=order.doc_code,
            state=SubmissionState.VALIDATING,
            started_at=datetime.utcnow(),
            manual_retry=manual,
        )
        self.metrics.record_order_started(manual=manual)

        with with_correlation(doc_code=order.doc_code, branch_code=order.branch_code):
            latest = self.audit_store.find_latest(order.doc_code)

            if latest is not None and latest.is_success and not force_retry:
                logger.info("Order already submitted successfully, skipping")
                result.state = SubmissionState.SKIPPED
                result.success = True
                result.skipped = True
                result.category = latest.category
                result.correlation_id = latest.correlation_id
                result.completed_at = datetime.utcnow()
                self.metrics.record_order_skipped()
                return result

            previous = None if force_retry else latest

            try:
                await self._run(order, result, previous)
            except Exception as e:
                logger.exception(f"Unexpected error in {result.state.value}: {e}")
                result.errors.append(f"{result.state.value}: unexpected error: {e}")
                result.success = False

            self._record_audit(result, latest)

            result.state = SubmissionState.DONE if result.success else SubmissionState.FAILED
            result.completed_at = datetime.utcnow()
            duration_ms = (time.monotonic() - started) * 1000
            self.metrics.record_order_completed(
                result.category or OrderCategory.NORMAL.value,
                result.success,
                duration_ms,
            )
            logger.info(
                f"Order finished: {result.state.value}",
                extra_fields={"success": result.success, "duration_ms": round(duration_ms, 1)},
            )

        return result

    async def retry_order(self, order: Order, force_retry: bool = False) -> Dict[str, Any]:
        """
        Manually retrigger one order.

        Returns:
            {"success": bool, "message": str, "result": dict}
        """
        result = await self.submit_order(order, force_retry=force_retry, manual=True)
        return {
            "success": result.success,
            "message": result.message,
            "result": result.to_dict(),
        }

    # =========================================================================
    # State Machine
    # =========================================================================

    async def _run(
        self,
        order: Order,
        result: SubmissionResult,
        previous: Optional[AuditRecord],
    ) -> None:
        # -------------------------------------------------------------
        # VALIDATING
        # -------------------------------------------------------------
        self._enter(result, SubmissionState.VALIDATING)
        try:
            self._validate_header(order)
            snapshot = await self._fetch_reference(order)
            resolved = self.engine.resolve_order(order, snapshot)
            result.category = resolved.category.value
            builder = InvoicePayloadBuilder(resolved)
            builder.valid_lines()
        except (OrderValidationError, ExternalServiceError) as e:
            logger.error(f"Validation failed: {e}")
            result.errors.append(f"{SubmissionState.VALIDATING.value}: {e}")
            result.success = False
            self._enter(result, SubmissionState.FAILED)
            return

        if resolved.flags.is_sale_return:
            await self._run_sale_return(builder, result, previous)
            return

        # -------------------------------------------------------------
        # CREATING_CUSTOMER (never blocks the order)
        # -------------------------------------------------------------
        await self._submit_step(
            result, SubmissionState.CREATING_CUSTOMER, DocumentType.CUSTOMER,
            builder.build_customer, previous,
        )

        # -------------------------------------------------------------
        # CREATING_SALES_ORDER
        # -------------------------------------------------------------
        sales_order = await self._submit_step(
            result, SubmissionState.CREATING_SALES_ORDER, DocumentType.SALES_ORDER,
            builder.build_sales_order, previous,
        )

        # -------------------------------------------------------------
        # CREATING_SALES_INVOICE (one submission per fulfillment date)
        # -------------------------------------------------------------
        splits = await self._submit_invoices(builder, result, previous)
        invoices_ok = bool(splits) and all(s.ok for s in splits)
        result.correlation_id = next(
            (s.correlation_id for s in splits if s.ok and s.correlation_id),
            None,
        )

        # -------------------------------------------------------------
        # CREATING_GXT_TRANSFER (service orders with item lines)
        # -------------------------------------------------------------
        gxt_ok = True
        if resolved.category == OrderCategory.SERVICE:
            gxt_ok = await self._submit_gxt(builder, result, previous)

        # -------------------------------------------------------------
        # PROCESSING_PAYMENT
        # -------------------------------------------------------------
        if any(s.ok for s in splits):
            await self._process_payments(order, builder, result, previous)
        else:
            logger.info("No invoice split succeeded, payment not attempted")

        result.success = sales_order.ok and invoices_ok and gxt_ok

    async def _run_sale_return(
        self,
        builder: InvoicePayloadBuilder,
        result: SubmissionResult,
        previous: Optional[AuditRecord],
    ) -> None:
        step = await self._submit_step(
            result, SubmissionState.CREATING_SALES_RETURN, DocumentType.SALES_RETURN,
            builder.build_sales_return, previous,
        )
        result.correlation_id = step.correlation_id if step.ok else None
        result.success = step.ok

    async def _submit_invoices(
        self,
        builder: InvoicePayloadBuilder,
        result: SubmissionResult,
        previous: Optional[AuditRecord],
    ) -> List[StepResult]:
        try:
            invoices = builder.build_invoices()
        except OrderValidationError as e:
            step = self._failed_step(SubmissionState.CREATING_SALES_INVOICE.value, str(e))
            result.add_step(step)
            result.errors.append(f"{step.step}: {e}")
            return [step]

        steps = []
        for split_date, payload in invoices:
            with with_correlation(split_date=split_date.isoformat()):
                step = await self._submit_step(
                    result,
                    SubmissionState.CREATING_SALES_INVOICE,
                    DocumentType.SALES_INVOICE,
                    lambda payload=payload: payload,
                    previous,
                    key=split_step_key(split_date),
                )
            step.split_date = split_date.isoformat()
            steps.append(step)
        return steps

    async def _submit_gxt(
        self,
        builder: InvoicePayloadBuilder,
        result: SubmissionResult,
        previous: Optional[AuditRecord],
    ) -> bool:
        try:
            payload = builder.build_gxt_transfer()
        except OrderValidationError as e:
            payload = None
            logger.warning(f"GXT transfer not built: {e}")
        if payload is None:
            logger.debug("No GXT transfer needed")
            return True

        step = await self._submit_step(
            result, SubmissionState.CREATING_GXT_TRANSFER, DocumentType.GXT_TRANSFER,
            lambda: payload, previous,
        )
        return step.ok

    async def _process_payments(
        self,
        order: Order,
        builder: InvoicePayloadBuilder,
        result: SubmissionResult,
        previous: Optional[AuditRecord],
    ) -> None:
        self._enter(result, SubmissionState.PROCESSING_PAYMENT)
        try:
            records = await self.payments.by_order_id(order.doc_code)
        except ExternalServiceError as e:
            logger.error(f"Could not load payment records: {e}")
            result.errors.append(f"{SubmissionState.PROCESSING_PAYMENT.value}: {e}")
            return

        if not records:
            logger.info("No payment records for order")
            return

        for index, record in enumerate(records, start=1):
            document_type = (
                DocumentType.CASH_RECEIPT if is_cash_payment(record) else DocumentType.CREDIT_ADVICE
            )
            await self._submit_step(
                result,
                SubmissionState.PROCESSING_PAYMENT,
                document_type,
                lambda record=record: builder.build_payment(record)[1],
                previous,
                key=payment_step_key(index, record.method_code),
            )

    # =========================================================================
    # Steps
    # =========================================================================

    async def _submit_step(
        self,
        result: SubmissionResult,
        state: SubmissionState,
        document_type: DocumentType,
        build: Callable[[], Dict[str, Any]],
        previous: Optional[AuditRecord],
        key: Optional[str] = None,
    ) -> StepResult:
        """
        Build and submit one document, converting every failure into a StepResult.

        Args:
            result: Result being accumulated
            state: State this step belongs to
            document_type: Gateway document
            build: Zero-argument payload factory
            previous: Latest audit record, used to skip steps already accepted
            key: Audit key (defaults to the state name)
        """
        key = key or state.value
        self._enter(result, state)

        if previous is not None and previous.step_succeeded(key):
            prior = previous.steps.get(key) or {}
            logger.info(f"{key} accepted in an earlier attempt, not resending")
            step = StepResult(
                step=key,
                status=StepStatus.SUCCESS,
                message="Accepted in an earlier attempt",
                correlation_id=prior.get("correlation_id"),
                reused=True,
            )
            result.add_step(step)
            return step

        started = time.monotonic()
        with with_correlation(stage=state.value):
            try:
                payload = build()
                response = await self.gateway.submit(document_type, payload)
            except OrderValidationError as e:
                step = self._failed_step(key, str(e))
            except DuplicateSubmissionError as e:
                step = StepResult(step=key, status=StepStatus.DUPLICATE, message=str(e), response=e.raw)
            except ExternalServiceError as e:
                if is_duplicate_message(str(e)):
                    step = StepResult(step=key, status=StepStatus.DUPLICATE, message=str(e), response=e.raw)
                else:
                    step = self._failed_step(key, str(e), e.raw)
            except Exception as e:
                logger.exception(f"Unexpected error submitting {document_type.value}")
                step = self._failed_step(key, f"unexpected error: {e}")
            else:
                if response.is_success:
                    status = StepStatus.SUCCESS
                elif response.is_duplicate:
                    status = StepStatus.DUPLICATE
                else:
                    status = StepStatus.FAILED
                step = StepResult(
                    step=key,
                    status=status,
                    message=response.message,
                    correlation_id=response.correlation_id,
                    response=response.raw,
                )

            step.duration_ms = round((time.monotonic() - started) * 1000, 1)

            if step.status == StepStatus.DUPLICATE:
                logger.warning(f"{document_type.value} already exists, treating as success: {step.message}")
            elif step.status == StepStatus.FAILED:
                logger.error(f"{document_type.value} failed: {step.message}")
                result.errors.append(f"{key}: {step.message}")
            else:
                logger.info(f"{document_type.value} accepted", extra_fields={"guid": step.correlation_id})

        self.metrics.record_step(state.value, step.status.value, step.duration_ms)
        result.add_step(step)
        return step

    @staticmethod
    def _failed_step(key: str, message: str, response: Any = None) -> StepResult:
        return StepResult(step=key, status=StepStatus.FAILED, message=message or "failed", response=response)

    def _enter(self, result: SubmissionResult, state: SubmissionState) -> None:
        if result.state != state:
            logger.info(f"{result.state.value} -> {state.value}")
            result.state = state

    # =========================================================================
    # Validation and Reference Data
    # =========================================================================

    @staticmethod
    def _validate_header(order: Order) -> None:
        """
        Raises:
            MissingRequiredFieldError: Document code or lines absent
        """
        if not order.doc_code or not order.doc_code.strip():
            raise MissingRequiredFieldError("doc_code")
        if not order.lines:
            raise MissingRequiredFieldError("lines", f"Order {order.doc_code} has no lines")

    async def _fetch_reference(self, order: Order) -> ReferenceSnapshot:
        """Fetch catalog and department data once for this order."""
        snapshot = ReferenceSnapshot()

        if order.branch_code:
            try:
                snapshot.department = await self.departments.by_branch_code(order.branch_code)
            except ReferenceNotFoundError:
                logger.warning(f"No department for branch {order.branch_code}")

        for line in order.lines:
            if line.item_code in snapshot.catalog:
                continue
            try:
                snapshot.catalog[line.item_code] = await self.catalog.by_item_code(line.item_code)
            except ReferenceNotFoundError:
                logger.warning(f"No catalog entry for {line.item_code}")
                snapshot.catalog[line.item_code] = None

        return snapshot

    # =========================================================================
    # Audit
    # =========================================================================

    def _record_audit(self, result: SubmissionResult, latest: Optional[AuditRecord]) -> None:
        """Write the single audit record of this run."""
        self._enter(result, SubmissionState.RECORDING_AUDIT)
        final_state = SubmissionState.DONE if result.success else SubmissionState.FAILED

        record = AuditRecord(
            order_id=result.order_id,
            status=STATUS_SUCCESS if result.success else STATUS_FAILED,
            message=result.message,
            correlation_id=result.correlation_id,
            raw_response={s.step: s.response for s in result.steps if s.response is not None},
            retry_count=(latest.retry_count + 1) if latest is not None else 0,
            category=result.category,
            final_state=final_state.value,
            duplicate=result.duplicate,
            manual_retry=result.manual_retry,
            errors=list(result.errors),
            steps={s.step: s.to_dict() for s in result.steps},
        )

        try:
            if result.manual_retry:
                self.audit_store.append(result.order_id, record)
            else:
                self.audit_store.upsert(result.order_id, record)
            result.audit_record_id = record.record_id
        except Exception as e:
            logger.exception(f"Failed to write audit record: {e}")
            result.errors.append(f"{SubmissionState.RECORDING_AUDIT.value}: {e}")
