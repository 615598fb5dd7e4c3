"""Collect-fee service: fee items, settlement preview, payment submission, book fee edit, audit."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import NotificationKind, PaymentMethod
from app.core.exceptions import (
    AdjustmentError,
    InvalidAmount,
    ServiceError,
    SubmissionError,
    UnknownFeeItem,
)
from app.core.models import SettlementAuditLog
from app.core.money import DEFAULT_LOCALE, Money
from app.core.payments.catalog import CATALOG_CATEGORIES, FeeCatalog, FeeLineItem
from app.core.payments.collaborators import (
    BookFeeAdjustmentService,
    FeeCatalogProvider,
    NotificationSink,
    PaymentSubmissionService,
    SubmissionReceipt,
)
from app.core.payments.composer import SettlementError, SettlementRequest, compose
from app.core.payments.selection import OtherFeeEntry, SelectionSet

from .schemas import (
    BookFeeUpdateRequest,
    BookFeeUpdateResponse,
    CollectFeeRequest,
    CollectFeeSubmitRequest,
    FeeItemOut,
    FeeItemsResponse,
    PaymentResultResponse,
    PreviewResponse,
    ReceiptOut,
    RejectedOverride,
    SettlementLineItemOut,
    SettlementOut,
    SettlementVerificationResponse,
)

logger = logging.getLogger(__name__)

BOOK_FEE_LOCK_MESSAGE = "Pay Book fee first to unlock Tuition and Transport."

# (text in backend error, title, message shown to the operator)
SUBMISSION_ERROR_TITLES: Tuple[Tuple[str, str, Optional[str]], ...] = (
    ("Student not found", "Student Not Found", "Student not found. Please check the admission number."),
    ("Active enrollment not found", "Enrollment Not Found", "Student is not enrolled for this academic year."),
    ("Payment sequence violation", "Payment Sequence Error", "Please pay previous terms/months first."),
    ("exceeds remaining_balance", "Amount Exceeds Balance", "Payment amount exceeds remaining balance."),
    ("must be paid in full", "Full Payment Required",
     "This fee must be paid in full. Partial payments are not allowed."),
    ("Book fee prerequisite", "Book Fee Required", "Book fee must be paid before tuition fees."),
    ("Sequential payment validation failed", "Sequential Payment Required", "Please pay pending months first."),
    ("Transport assignment not found", "Transport Assignment Not Found",
     "Student does not have an active transport assignment."),
    ("Duplicate payment months", "Duplicate Payment", "Each month can only be paid once per transaction."),
    ("Missing required parameter", "Missing Information", None),
)


class SettlementRejected(ServiceError):
    """Composer refused the selection; carries the typed error for the response body."""

    def __init__(self, error: SettlementError) -> None:
        super().__init__(error.message, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.error = error


def classify_submission_error(message: str) -> Tuple[str, str]:
    for needle, title, friendly in SUBMISSION_ERROR_TITLES:
        if needle in message:
            return title, friendly or message
    return "Payment Failed", message


# --- In-flight guard ---
_submission_locks: Dict[int, asyncio.Lock] = {}


def _submission_lock(enrollment_id: int) -> asyncio.Lock:
    lock = _submission_locks.get(enrollment_id)
    if lock is None:
        lock = _submission_locks[enrollment_id] = asyncio.Lock()
    return lock


def _release_submission_lock(enrollment_id: int, lock: asyncio.Lock) -> None:
    # Second submissions are refused rather than queued, so nobody waits on a released lock.
    if not lock.locked() and _submission_locks.get(enrollment_id) is lock:
        del _submission_locks[enrollment_id]


# --- Mapping helpers ---
def _fee_item_out(item: FeeLineItem, catalog: FeeCatalog, locale: str) -> FeeItemOut:
    return FeeItemOut(
        id=item.id,
        category=item.category,
        label=item.label,
        original_amount=item.original_amount.to_decimal(),
        original_amount_display=item.original_amount.to_display_string(locale),
        term_number=item.term_number,
        payment_month=item.payment_month,
        locked=item.category in catalog.locked_categories,
    )


def settlement_to_out(settlement: SettlementRequest, locale: str = DEFAULT_LOCALE) -> SettlementOut:
    return SettlementOut(
        line_items=[
            SettlementLineItemOut(
                source_id=li.source_id,
                category=li.category,
                label=li.label,
                amount=li.amount.to_decimal(),
                amount_display=li.amount.to_display_string(locale),
                term_number=li.term_number,
                payment_month=li.payment_month,
                custom_purpose_name=li.custom_purpose_name,
            )
            for li in settlement.line_items
        ],
        payment_method=settlement.payment_method,
        subtotal=settlement.subtotal.to_decimal(),
        surcharge=settlement.surcharge.to_decimal(),
        surcharge_rate_percent=settlement.surcharge_rate,
        total=settlement.total.to_decimal(),
        subtotal_display=settlement.subtotal.to_display_string(locale),
        surcharge_display=settlement.surcharge.to_display_string(locale),
        total_display=settlement.total.to_display_string(locale),
        remarks=settlement.remarks,
    )


def _raw(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


# --- Selection replay ---
def _apply_selections(
    catalog: FeeCatalog,
    selections: List[Dict[str, Optional[str]]],
) -> Tuple[SelectionSet, List[RejectedOverride]]:
    """Replay toggles and overrides onto a fresh SelectionSet. Rejected overrides keep the original amount."""
    selection = SelectionSet(catalog)
    rejected: List[RejectedOverride] = []
    for sel in selections:
        item_id = sel["item_id"]
        try:
            if catalog.is_locked(item_id):
                raise ServiceError(BOOK_FEE_LOCK_MESSAGE, status.HTTP_400_BAD_REQUEST)
            selection.toggle(item_id, True)
        except UnknownFeeItem:
            raise ServiceError(f"Fee item {item_id} is not payable for this student", status.HTTP_400_BAD_REQUEST)

        raw = sel.get("override_amount")
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            continue
        try:
            selection.set_override(item_id, raw)
        except InvalidAmount as e:
            rejected.append(RejectedOverride(item_id=item_id, value=raw, message=e.reason))
    return selection, rejected


def _selection_inputs(payload: CollectFeeRequest) -> List[Dict[str, Optional[str]]]:
    return [{"item_id": s.item_id, "override_amount": _raw(s.override_amount)} for s in payload.selections]


def _parse_other_fee(payload: CollectFeeRequest) -> Optional[OtherFeeEntry]:
    if payload.other_fee is None:
        return None
    raw = _raw(payload.other_fee.amount)
    if raw is not None and not raw.strip():
        return None
    try:
        return OtherFeeEntry.parse(raw, payload.other_fee.reason)
    except InvalidAmount as e:
        raise ServiceError(f"Other fee: {e.reason}", status.HTTP_422_UNPROCESSABLE_ENTITY)


def _compose_or_reject(
    selection: SelectionSet,
    other_fee: Optional[OtherFeeEntry],
    payload: CollectFeeRequest,
) -> SettlementRequest:
    result = compose(selection, other_fee, payload.payment_method, payload.remarks)
    if result.is_failure():
        logger.info("Settlement rejected for enrollment %s: %s",
                    selection.catalog.enrollment_id, result.error.kind.value)
        raise SettlementRejected(result.error)
    return result.value


# --- Fee items ---
async def get_fee_items(
    catalog_provider: FeeCatalogProvider,
    enrollment_id: int,
    locale: str = DEFAULT_LOCALE,
) -> FeeItemsResponse:
    catalog = await catalog_provider.fetch_fee_items(enrollment_id)
    return FeeItemsResponse(
        enrollment_id=enrollment_id,
        book_fee_pending=catalog.book_fee_pending,
        locked_categories=sorted(catalog.locked_categories, key=CATALOG_CATEGORIES.index),
        categories={
            category: [_fee_item_out(item, catalog, locale) for item in catalog.by_category(category)]
            for category in CATALOG_CATEGORIES
        },
    )


# --- Preview ---
async def preview_settlement(
    catalog_provider: FeeCatalogProvider,
    enrollment_id: int,
    payload: CollectFeeRequest,
    sink: NotificationSink,
    locale: str = DEFAULT_LOCALE,
) -> PreviewResponse:
    """Compose the confirmation summary the operator confirms before submitting."""
    catalog = await catalog_provider.fetch_fee_items(enrollment_id)
    selection, rejected = _apply_selections(catalog, _selection_inputs(payload))
    for r in rejected:
        sink.notify(
            NotificationKind.WARNING,
            "Amount not applied",
            f"{catalog.get(r.item_id).label}: {r.message}. The original amount is used.",
        )
    settlement = _compose_or_reject(selection, _parse_other_fee(payload), payload)
    return PreviewResponse(
        enrollment_id=enrollment_id,
        settlement=settlement_to_out(settlement, locale),
        rejected_overrides=rejected,
    )


# --- Payment ---
async def submit_payment(
    db: AsyncSession,
    catalog_provider: FeeCatalogProvider,
    payment_service: PaymentSubmissionService,
    enrollment_id: int,
    payload: CollectFeeSubmitRequest,
    sink: NotificationSink,
    locale: str = DEFAULT_LOCALE,
) -> PaymentResultResponse:
    """
    Re-compose from the submitted inputs, check the total against the one the operator
    confirmed, submit once, then record the settlement for audit.
    """
    try:
        confirmed_total = Money.parse(payload.confirmed_total)
    except InvalidAmount as e:
        raise ServiceError(f"Confirmed total: {e.reason}", status.HTTP_422_UNPROCESSABLE_ENTITY)

    catalog = await catalog_provider.fetch_fee_items(enrollment_id)
    selections = _selection_inputs(payload)
    selection, rejected = _apply_selections(catalog, selections)
    if rejected:
        first = rejected[0]
        raise ServiceError(
            f"{catalog.get(first.item_id).label}: {first.message}",
            status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    other_fee = _parse_other_fee(payload)
    settlement = _compose_or_reject(selection, other_fee, payload)

    if settlement.total != confirmed_total:
        logger.warning(
            "Confirmed total %s does not match recomputed total %s for enrollment %s",
            confirmed_total, settlement.total, enrollment_id,
        )
        raise ServiceError(
            f"Amounts changed since confirmation: payable total is now "
            f"{settlement.total.to_display_string(locale)}. Review and confirm again.",
            status.HTTP_409_CONFLICT,
        )

    lock = _submission_lock(enrollment_id)
    if lock.locked():
        raise ServiceError("A payment for this student is already being processed", status.HTTP_409_CONFLICT)
    try:
        async with lock:
            try:
                receipt = await payment_service.submit(payload.admission_no, settlement)
            except SubmissionError as e:
                title, message = classify_submission_error(e.message)
                sink.notify(NotificationKind.ERROR, title, message)
                raise ServiceError(f"{title}: {message}", e.status_code)

            # The backend has recorded the payment from here on: the receipt is returned
            # even when the audit row cannot be written.
            audit_id = await _record_settlement(
                db, enrollment_id, payload, catalog, selections, other_fee, settlement, receipt
            )
    finally:
        _release_submission_lock(enrollment_id, lock)

    if audit_id is None:
        sink.notify(
            NotificationKind.WARNING,
            "Audit entry not saved",
            "Payment recorded; audit entry could not be saved.",
        )
    sink.notify(
        NotificationKind.SUCCESS,
        "Payment successful",
        f"{settlement.total.to_display_string(locale)} collected. Receipt {receipt.receipt_no or receipt.receipt_ref}.",
    )
    return PaymentResultResponse(
        enrollment_id=enrollment_id,
        admission_no=payload.admission_no,
        audit_id=audit_id,
        receipt=ReceiptOut(
            receipt_ref=receipt.receipt_ref,
            receipt_no=receipt.receipt_no,
            receipt_document_handle=receipt.receipt_document_handle,
        ),
        settlement=settlement_to_out(settlement, locale),
    )


async def _record_settlement(
    db: AsyncSession,
    enrollment_id: int,
    payload: CollectFeeSubmitRequest,
    catalog: FeeCatalog,
    selections: List[Dict[str, Optional[str]]],
    other_fee: Optional[OtherFeeEntry],
    settlement: SettlementRequest,
    receipt: SubmissionReceipt,
) -> Optional[UUID]:
    """Write the audit row; returns its id, or None when the database refused it."""
    log = SettlementAuditLog(
        enrollment_id=enrollment_id,
        admission_no=payload.admission_no,
        payment_method=settlement.payment_method.value,
        inputs={
            "catalog": catalog.to_snapshot(),
            "selections": selections,
            "other_fee": (
                {"amount": str(other_fee.amount), "reason": other_fee.reason} if other_fee is not None else None
            ),
            "remarks": payload.remarks,
        },
        settlement=settlement.to_dict(),
        subtotal=settlement.subtotal.to_decimal(),
        surcharge=settlement.surcharge.to_decimal(),
        total=settlement.total.to_decimal(),
        receipt_ref=receipt.receipt_ref,
        receipt_no=receipt.receipt_no,
    )
    try:
        db.add(log)
        await db.commit()
        await db.refresh(log)
    except SQLAlchemyError:
        await db.rollback()
        logger.error(
            "Audit entry not saved for enrollment %s, receipt_ref=%s total=%s",
            enrollment_id, receipt.receipt_ref, settlement.total, exc_info=True,
        )
        return None
    return log.id


# --- Book fee ---
async def update_book_fee(
    adjustment_service: BookFeeAdjustmentService,
    enrollment_id: int,
    payload: BookFeeUpdateRequest,
    sink: NotificationSink,
    locale: str = DEFAULT_LOCALE,
) -> BookFeeUpdateResponse:
    try:
        amount = Money.parse(payload.amount)
    except InvalidAmount as e:
        raise ServiceError(f"Book fee: {e.reason}", status.HTTP_422_UNPROCESSABLE_ENTITY)
    try:
        await adjustment_service.update(enrollment_id, amount)
    except AdjustmentError as e:
        sink.notify(NotificationKind.ERROR, "Update failed", e.message)
        raise
    sink.notify(NotificationKind.SUCCESS, "Book fee updated", f"Book fee set to {amount.to_display_string(locale)}.")
    return BookFeeUpdateResponse(enrollment_id=enrollment_id, book_fee=amount.to_decimal())


# --- Audit ---
def recompose_from_log(log: SettlementAuditLog) -> Optional[SettlementRequest]:
    """Re-run compose on the stored inputs; None when the stored inputs no longer compose."""
    inputs = log.inputs or {}
    catalog = FeeCatalog.from_snapshot(log.enrollment_id, inputs.get("catalog") or [])
    selection = SelectionSet(catalog)
    for sel in inputs.get("selections") or []:
        selection.toggle(sel["item_id"], True)
        raw = sel.get("override_amount")
        if raw is not None and raw.strip():
            try:
                selection.set_override(sel["item_id"], raw)
            except InvalidAmount:
                return None
    other = inputs.get("other_fee")
    other_fee = OtherFeeEntry.parse(other["amount"], other.get("reason")) if other else None
    result = compose(selection, other_fee, PaymentMethod(log.payment_method), inputs.get("remarks"))
    return result.value if result.is_success() else None


async def verify_settlement(db: AsyncSession, audit_id: UUID) -> Optional[SettlementVerificationResponse]:
    log = await db.get(SettlementAuditLog, audit_id)
    if not log:
        return None
    recomposed = recompose_from_log(log)
    matches = recomposed is not None and recomposed.to_dict() == log.settlement
    if not matches:
        logger.error("Settlement %s does not re-derive to the recorded value", audit_id)
    return SettlementVerificationResponse(
        audit_id=log.id,
        enrollment_id=log.enrollment_id,
        admission_no=log.admission_no,
        matches=matches,
        recorded_total=log.total,
        recomputed_total=recomposed.total.to_decimal() if recomposed is not None else None,
        receipt_ref=log.receipt_ref,
        receipt_no=log.receipt_no,
        created_at=log.created_at,
    )
