"""Collect-fee router: fee items, preview, payment, book fee, settlement audit."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.fee_backend import FeeBackendClient, get_fee_backend
from app.core.config import settings
from app.core.exceptions import ServiceError
from app.core.notifications import CollectingNotificationSink
from app.db.session import get_db

from .schemas import (
    BookFeeUpdateRequest,
    BookFeeUpdateResponse,
    CollectFeeRequest,
    CollectFeeSubmitRequest,
    FeeItemsResponse,
    NotificationOut,
    PaymentResultResponse,
    PreviewResponse,
    SettlementVerificationResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/collect-fee", tags=["collect-fee"])


def _notifications(sink: CollectingNotificationSink) -> List[NotificationOut]:
    return [NotificationOut(**n) for n in sink.to_list()]


def _http_error(e: ServiceError, sink: Optional[CollectingNotificationSink] = None) -> HTTPException:
    if isinstance(e, service.SettlementRejected):
        return HTTPException(status_code=e.status_code, detail=e.error.to_dict())
    if sink is not None and sink.notifications:
        return HTTPException(
            status_code=e.status_code,
            detail={"message": e.message, "notifications": sink.to_list()},
        )
    return HTTPException(status_code=e.status_code, detail=e.message)


# --- Fee items ---
@router.get(
    "/enrollments/{enrollment_id}/fee-items",
    response_model=FeeItemsResponse,
)
async def get_fee_items(
    enrollment_id: int,
    backend: FeeBackendClient = Depends(get_fee_backend),
) -> FeeItemsResponse:
    try:
        return await service.get_fee_items(backend, enrollment_id, locale=settings.display_locale)
    except ServiceError as e:
        raise _http_error(e)


# --- Preview ---
@router.post(
    "/enrollments/{enrollment_id}/preview",
    response_model=PreviewResponse,
)
async def preview_settlement(
    enrollment_id: int,
    payload: CollectFeeRequest,
    backend: FeeBackendClient = Depends(get_fee_backend),
) -> PreviewResponse:
    sink = CollectingNotificationSink()
    try:
        response = await service.preview_settlement(
            backend, enrollment_id, payload, sink, locale=settings.display_locale
        )
    except ServiceError as e:
        raise _http_error(e, sink)
    response.notifications = _notifications(sink)
    return response


# --- Payment ---
@router.post(
    "/enrollments/{enrollment_id}/payments",
    response_model=PaymentResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_payment(
    enrollment_id: int,
    payload: CollectFeeSubmitRequest,
    db: AsyncSession = Depends(get_db),
    backend: FeeBackendClient = Depends(get_fee_backend),
) -> PaymentResultResponse:
    sink = CollectingNotificationSink()
    try:
        response = await service.submit_payment(
            db, backend, backend, enrollment_id, payload, sink, locale=settings.display_locale
        )
    except ServiceError as e:
        raise _http_error(e, sink)
    response.notifications = _notifications(sink)
    return response


# --- Book fee ---
@router.put(
    "/enrollments/{enrollment_id}/book-fee",
    response_model=BookFeeUpdateResponse,
)
async def update_book_fee(
    enrollment_id: int,
    payload: BookFeeUpdateRequest,
    backend: FeeBackendClient = Depends(get_fee_backend),
) -> BookFeeUpdateResponse:
    sink = CollectingNotificationSink()
    try:
        response = await service.update_book_fee(
            backend, enrollment_id, payload, sink, locale=settings.display_locale
        )
    except ServiceError as e:
        raise _http_error(e, sink)
    response.notifications = _notifications(sink)
    return response


# --- Audit ---
@router.get(
    "/settlements/{audit_id}/verify",
    response_model=SettlementVerificationResponse,
)
async def verify_settlement(
    audit_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SettlementVerificationResponse:
    result = await service.verify_settlement(db, audit_id)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Settlement not found",
        )
    return result
