"""Collect-fee schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import FeeCategory, NotificationKind, PaymentMethod

# Amounts typed by the operator stay raw until Money parses them, so a bad override
# can be rejected without failing the whole request.
RawAmountIn = Union[str, Decimal]


class NotificationOut(BaseModel):
    kind: NotificationKind
    title: str
    message: str


# --- Fee items ---
class FeeItemOut(BaseModel):
    id: str
    category: FeeCategory
    label: str
    original_amount: Decimal
    original_amount_display: str
    term_number: Optional[int] = None
    payment_month: Optional[str] = None
    locked: bool = False


class FeeItemsResponse(BaseModel):
    enrollment_id: int
    book_fee_pending: bool
    locked_categories: List[FeeCategory]
    categories: Dict[FeeCategory, List[FeeItemOut]]


# --- Settlement ---
class SelectionIn(BaseModel):
    item_id: str = Field(..., min_length=1)
    override_amount: Optional[RawAmountIn] = Field(
        None, description="Replaces the original amount for this payment only; blank keeps the original"
    )


class OtherFeeIn(BaseModel):
    amount: RawAmountIn
    reason: str = ""


class CollectFeeRequest(BaseModel):
    selections: List[SelectionIn] = Field(default_factory=list)
    other_fee: Optional[OtherFeeIn] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    remarks: Optional[str] = Field(None, max_length=500)


class CollectFeeSubmitRequest(CollectFeeRequest):
    admission_no: str = Field(..., min_length=1, max_length=50)
    confirmed_total: RawAmountIn = Field(..., description="Total shown to the operator on the confirmation screen")


class RejectedOverride(BaseModel):
    item_id: str
    value: str
    message: str


class SettlementLineItemOut(BaseModel):
    source_id: str
    category: FeeCategory
    label: str
    amount: Decimal
    amount_display: str
    term_number: Optional[int] = None
    payment_month: Optional[str] = None
    custom_purpose_name: Optional[str] = None


class SettlementOut(BaseModel):
    line_items: List[SettlementLineItemOut]
    payment_method: PaymentMethod
    subtotal: Decimal
    surcharge: Decimal
    surcharge_rate_percent: Decimal
    total: Decimal
    subtotal_display: str
    surcharge_display: str
    total_display: str
    remarks: Optional[str] = None


class PreviewResponse(BaseModel):
    enrollment_id: int
    settlement: SettlementOut
    rejected_overrides: List[RejectedOverride] = Field(default_factory=list)
    notifications: List[NotificationOut] = Field(default_factory=list)


class ReceiptOut(BaseModel):
    receipt_ref: int
    receipt_no: Optional[str] = None
    receipt_document_handle: str


class PaymentResultResponse(BaseModel):
    enrollment_id: int
    admission_no: str
    audit_id: Optional[UUID] = None
    receipt: ReceiptOut
    settlement: SettlementOut
    notifications: List[NotificationOut] = Field(default_factory=list)


# --- Book fee ---
class BookFeeUpdateRequest(BaseModel):
    amount: RawAmountIn


class BookFeeUpdateResponse(BaseModel):
    enrollment_id: int
    book_fee: Decimal
    notifications: List[NotificationOut] = Field(default_factory=list)


# --- Audit ---
class SettlementVerificationResponse(BaseModel):
    audit_id: UUID
    enrollment_id: int
    admission_no: str
    matches: bool
    recorded_total: Decimal
    recomputed_total: Optional[Decimal] = None
    receipt_ref: int
    receipt_no: Optional[str] = None
    created_at: datetime
