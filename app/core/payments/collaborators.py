"""Contracts for the services the collect-fee flow depends on but does not own."""

from dataclasses import dataclass
from typing import Optional, Protocol

from app.core.enums import NotificationKind
from app.core.money import Money
from app.core.payments.catalog import FeeCatalog
from app.core.payments.composer import SettlementRequest


@dataclass(frozen=True)
class SubmissionReceipt:
    receipt_ref: int  # income id on the fee backend
    receipt_no: Optional[str]
    receipt_document_handle: str


class FeeCatalogProvider(Protocol):
    async def fetch_fee_items(self, enrollment_id: int) -> FeeCatalog:
        ...


class PaymentSubmissionService(Protocol):
    async def submit(self, admission_no: str, settlement: SettlementRequest) -> SubmissionReceipt:
        """Raises SubmissionError on network or server failure. Never retried here."""
        ...


class BookFeeAdjustmentService(Protocol):
    async def update(self, enrollment_id: int, new_amount: Money) -> None:
        """Raises AdjustmentError."""
        ...


class NotificationSink(Protocol):
    def notify(self, kind: NotificationKind, title: str, message: str) -> None:
        ...
