"""
REST client for the institution's fee backend.

Implements the fee catalog, payment submission and book fee adjustment collaborators.
Branch context (institution type, caller's bearer token) is passed in explicitly.
"""

import logging
from typing import Any, Dict, List, Optional, Type

import httpx
from fastapi import Header

from app.core.config import settings
from app.core.enums import FeeCategory, InstitutionType, PaymentMethod
from app.core.exceptions import (
    AdjustmentError,
    BackendError,
    CatalogFetchError,
    InvalidAmount,
    SubmissionError,
)
from app.core.money import Money
from app.core.payments.catalog import FeeCatalog, build_fee_catalog
from app.core.payments.collaborators import SubmissionReceipt
from app.core.payments.composer import SettlementRequest

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = (
    "Network error occurred while processing payment. Please check your connection and try again."
)

# The backend only knows CASH / UPI / CARD / ONLINE.
WIRE_PAYMENT_METHODS = {
    PaymentMethod.CASH: "CASH",
    PaymentMethod.CARD: "CARD",
    PaymentMethod.UPI: "UPI",
    PaymentMethod.CHEQUE: "CASH",
    PaymentMethod.BANK_TRANSFER: "ONLINE",
}


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    return body


def _error_message(response: httpx.Response, default: str) -> str:
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            message = data.get("detail") or data.get("message")
            if message:
                return message if isinstance(message, str) else str(message)
    return response.text or default


def build_payment_payload(settlement: SettlementRequest) -> Dict[str, Any]:
    """SettlementRequest -> pay-fee request body."""
    method = WIRE_PAYMENT_METHODS[settlement.payment_method]
    details: List[Dict[str, Any]] = []
    for li in settlement.line_items:
        detail: Dict[str, Any] = {
            "purpose": li.category.value,
            "paid_amount": str(li.amount),
            "payment_method": method,
        }
        if li.category == FeeCategory.TUITION_FEE and li.term_number:
            detail["term_number"] = li.term_number
        if li.category == FeeCategory.TRANSPORT_FEE and li.payment_month:
            detail["payment_month"] = li.payment_month
        if li.category == FeeCategory.OTHER and li.custom_purpose_name:
            detail["custom_purpose_name"] = li.custom_purpose_name
        details.append(detail)

    payload: Dict[str, Any] = {
        "details": details,
        "card_charges": str(settlement.surcharge),
        "total_amount": str(settlement.total),
    }
    if settlement.remarks:
        payload["remarks"] = settlement.remarks
    return payload


class FeeBackendClient:
    """Async client for `{base_url}/api/v1/{institution}/...` endpoints."""

    def __init__(
        self,
        base_url: str,
        institution: InstitutionType = InstitutionType.COLLEGE,
        *,
        authorization: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._institution = InstitutionType(institution)
        self._base = f"{base_url.rstrip('/')}/api/v1/{self._institution.value}"
        self._headers = {"Authorization": authorization} if authorization else {}
        self._timeout = timeout
        self._transport = transport

    @property
    def institution(self) -> InstitutionType:
        return self._institution

    def receipt_document_handle(self, income_id: int) -> str:
        return f"/api/v1/{self._institution.value}/income/{income_id}/regenerate-receipt"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error_cls: Type[BackendError],
        json: Optional[Dict[str, Any]] = None,
        default_error: str = "Fee backend request failed",
        allow_not_found: bool = False,
    ) -> Optional[Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self._base,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.TransportError as e:
            logger.warning("Fee backend unreachable: %s %s (%s)", method, path, e.__class__.__name__)
            raise error_cls(NETWORK_ERROR_MESSAGE)

        if allow_not_found and response.status_code == 404:
            return None
        if response.is_error:
            message = _error_message(response, f"{default_error} with status {response.status_code}")
            logger.warning("Fee backend %s %s -> %s: %s", method, path, response.status_code, message)
            raise error_cls(message)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise error_cls("Fee backend returned an invalid response")

    async def fetch_fee_items(self, enrollment_id: int) -> FeeCatalog:
        tuition = await self._request(
            "GET",
            f"/tuition-fee-balances/{enrollment_id}",
            error_cls=CatalogFetchError,
            default_error="Fee balance lookup failed",
        )
        transport = await self._request(
            "GET",
            f"/transport-fee-balances/{enrollment_id}",
            error_cls=CatalogFetchError,
            default_error="Transport balance lookup failed",
            allow_not_found=True,
        )
        tuition = _unwrap(tuition) or {}
        transport = _unwrap(transport) or {}
        if not isinstance(tuition, dict) or not isinstance(transport, dict):
            raise CatalogFetchError("Fee balances returned by the backend are invalid")
        months = transport.get("months") or []
        try:
            return build_fee_catalog(enrollment_id, tuition, months)
        except (InvalidAmount, KeyError, ValueError) as e:
            logger.warning("Unusable fee balances for enrollment %s: %s", enrollment_id, e)
            raise CatalogFetchError("Fee balances returned by the backend are invalid")

    async def submit(self, admission_no: str, settlement: SettlementRequest) -> SubmissionReceipt:
        body = await self._request(
            "POST",
            f"/income/pay-fee/{admission_no}",
            error_cls=SubmissionError,
            json=build_payment_payload(settlement),
            default_error="Payment failed",
        )
        # context may sit under data.context or at the top level
        context: Dict[str, Any] = {}
        if isinstance(body, dict):
            context = _unwrap(body).get("context") or body.get("context") or {}
        income_id = context.get("income_id")
        if not isinstance(income_id, int) or isinstance(income_id, bool) or income_id <= 0:
            raise SubmissionError("Payment successful but income_id not found in response context")
        logger.info("Payment recorded for %s: income_id=%s total=%s", admission_no, income_id, settlement.total)
        return SubmissionReceipt(
            receipt_ref=income_id,
            receipt_no=context.get("receipt_no"),
            receipt_document_handle=self.receipt_document_handle(income_id),
        )

    async def update(self, enrollment_id: int, new_amount: Money) -> None:
        await self._request(
            "PUT",
            f"/student-enrollments/{enrollment_id}/book-fee",
            error_cls=AdjustmentError,
            json={"book_fee": str(new_amount)},
            default_error="Book fee update failed",
        )
        logger.info("Book fee for enrollment %s set to %s", enrollment_id, new_amount)


def get_fee_backend(authorization: Optional[str] = Header(None)) -> FeeBackendClient:
    """Per-request client carrying the caller's bearer token through to the backend."""
    return FeeBackendClient(
        settings.fee_backend_url,
        InstitutionType(settings.institution_type.lower()),
        authorization=authorization,
        timeout=settings.fee_backend_timeout_seconds,
    )
