"""Fee backend client against a mocked httpx transport."""

import json
from typing import Callable, List

import httpx
import pytest

from app.clients.fee_backend import (
    NETWORK_ERROR_MESSAGE,
    FeeBackendClient,
    build_payment_payload,
)
from app.core.enums import InstitutionType, PaymentMethod
from app.core.exceptions import AdjustmentError, CatalogFetchError, SubmissionError
from app.core.money import Money
from app.core.payments.catalog import FeeCatalog
from app.core.payments.composer import compose
from app.core.payments.selection import OtherFeeEntry, SelectionSet
from tests.conftest import TRANSPORT_MONTHS, TUITION_BALANCE


def _client(handler: Callable[[httpx.Request], httpx.Response], requests: List[httpx.Request] = None,
            institution: InstitutionType = InstitutionType.COLLEGE) -> FeeBackendClient:
    def record(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return handler(request)

    return FeeBackendClient(
        "http://fee-backend.test/",
        institution,
        authorization="Bearer token-1",
        transport=httpx.MockTransport(record),
    )


def _settlement(catalog: FeeCatalog, method: PaymentMethod = PaymentMethod.CARD):
    selection = SelectionSet(catalog)
    selection.toggle("tuition-term-1", True)
    selection.toggle("transport-2025-06", True)
    other = OtherFeeEntry.parse("50", "ID card")
    return compose(selection, other, method, "First instalment").unwrap()


# --- Catalog ---
@pytest.mark.asyncio
async def test_fetch_fee_items_builds_catalog() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/tuition-fee-balances/7"):
            return httpx.Response(200, json={"data": TUITION_BALANCE})
        return httpx.Response(200, json={"months": TRANSPORT_MONTHS})

    catalog = await _client(handler, requests).fetch_fee_items(7)

    assert [item.id for item in catalog] == [
        "tuition-term-1",
        "tuition-term-2",
        "transport-2025-06",
        "transport-2025-07",
    ]
    assert [r.url.path for r in requests] == [
        "/api/v1/college/tuition-fee-balances/7",
        "/api/v1/college/transport-fee-balances/7",
    ]
    assert requests[0].headers["Authorization"] == "Bearer token-1"


@pytest.mark.asyncio
async def test_missing_transport_assignment_means_no_transport_items() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "transport" in request.url.path:
            return httpx.Response(404, json={"detail": "Transport assignment not found"})
        return httpx.Response(200, json=TUITION_BALANCE)

    catalog = await _client(handler).fetch_fee_items(7)
    assert [item.id for item in catalog] == ["tuition-term-1", "tuition-term-2"]


@pytest.mark.asyncio
async def test_fetch_fee_items_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "Active enrollment not found"})

    with pytest.raises(CatalogFetchError) as exc:
        await _client(handler).fetch_fee_items(7)
    assert exc.value.message == "Active enrollment not found"
    assert exc.value.status_code == 502


@pytest.mark.asyncio
async def test_fetch_fee_items_rejects_bad_amounts() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "transport" in request.url.path:
            return httpx.Response(404)
        return httpx.Response(200, json={"term1_amount": "lots"})

    with pytest.raises(CatalogFetchError):
        await _client(handler).fetch_fee_items(7)


# --- Payment ---
def test_payment_payload(catalog: FeeCatalog) -> None:
    payload = build_payment_payload(_settlement(catalog))

    assert payload["details"] == [
        {"purpose": "TUITION_FEE", "paid_amount": "1000.00", "payment_method": "CARD", "term_number": 1},
        {"purpose": "TRANSPORT_FEE", "paid_amount": "500.00", "payment_method": "CARD", "payment_month": "2025-06-01"},
        {"purpose": "OTHER", "paid_amount": "50.00", "payment_method": "CARD", "custom_purpose_name": "ID card"},
    ]
    assert payload["card_charges"] == "18.60"
    assert payload["total_amount"] == "1568.60"
    assert payload["remarks"] == "First instalment"


@pytest.mark.parametrize(
    "method,wire",
    [
        (PaymentMethod.CASH, "CASH"),
        (PaymentMethod.UPI, "UPI"),
        (PaymentMethod.CHEQUE, "CASH"),
        (PaymentMethod.BANK_TRANSFER, "ONLINE"),
    ],
)
def test_payment_payload_wire_methods(catalog: FeeCatalog, method, wire) -> None:
    payload = build_payment_payload(_settlement(catalog, method))
    assert {d["payment_method"] for d in payload["details"]} == {wire}
    assert payload["card_charges"] == "0.00"


@pytest.mark.asyncio
async def test_submit_returns_receipt(catalog: FeeCatalog) -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            201,
            json={"success": True, "data": {"context": {"income_id": 55, "receipt_no": "RCPT-55"}}},
        )

    client = _client(handler, requests, InstitutionType.SCHOOL)
    receipt = await client.submit("ADM-001", _settlement(catalog))

    assert receipt.receipt_ref == 55
    assert receipt.receipt_no == "RCPT-55"
    assert receipt.receipt_document_handle == "/api/v1/school/income/55/regenerate-receipt"
    assert requests[0].method == "POST"
    assert requests[0].url.path == "/api/v1/school/income/pay-fee/ADM-001"
    assert json.loads(requests[0].content)["total_amount"] == "1568.60"


@pytest.mark.asyncio
async def test_submit_reads_top_level_context(catalog: FeeCatalog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"context": {"income_id": 9}})

    receipt = await _client(handler).submit("ADM-001", _settlement(catalog))
    assert receipt.receipt_ref == 9
    assert receipt.receipt_no is None


@pytest.mark.asyncio
@pytest.mark.parametrize("context", [{}, {"income_id": "55"}, {"income_id": 0}, {"income_id": True}])
async def test_submit_requires_income_id(catalog: FeeCatalog, context) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"context": context}})

    with pytest.raises(SubmissionError) as exc:
        await _client(handler).submit("ADM-001", _settlement(catalog))
    assert "income_id not found" in exc.value.message


@pytest.mark.asyncio
async def test_submit_error_message_from_body(catalog: FeeCatalog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": "Payment sequence violation: pay Term 1 first"})

    with pytest.raises(SubmissionError) as exc:
        await _client(handler).submit("ADM-001", _settlement(catalog))
    assert exc.value.message == "Payment sequence violation: pay Term 1 first"


@pytest.mark.asyncio
async def test_submit_error_plain_text(catalog: FeeCatalog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="Student not found")

    with pytest.raises(SubmissionError) as exc:
        await _client(handler).submit("ADM-001", _settlement(catalog))
    assert exc.value.message == "Student not found"


@pytest.mark.asyncio
async def test_submit_error_without_body(catalog: FeeCatalog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    with pytest.raises(SubmissionError) as exc:
        await _client(handler).submit("ADM-001", _settlement(catalog))
    assert exc.value.message == "Payment failed with status 503"


@pytest.mark.asyncio
async def test_submit_network_error(catalog: FeeCatalog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SubmissionError) as exc:
        await _client(handler).submit("ADM-001", _settlement(catalog))
    assert exc.value.message == NETWORK_ERROR_MESSAGE


# --- Book fee ---
@pytest.mark.asyncio
async def test_update_book_fee() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True})

    await _client(handler, requests).update(7, Money.parse("1250"))

    assert requests[0].method == "PUT"
    assert requests[0].url.path == "/api/v1/college/student-enrollments/7/book-fee"
    assert json.loads(requests[0].content) == {"book_fee": "1250.00"}


@pytest.mark.asyncio
async def test_update_book_fee_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"detail": "Not allowed"})

    with pytest.raises(AdjustmentError) as exc:
        await _client(handler).update(7, Money.parse("1250"))
    assert exc.value.message == "Not allowed"
