"""
Settlement composer.

`compose` is a pure function of (selection, other fee, payment method, remarks): the
summary shown for confirmation and the request that gets submitted are the same value,
and re-running it on the same inputs reproduces it exactly.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from app.core.enums import FeeCategory, PaymentMethod, SettlementErrorKind
from app.core.money import Money
from app.core.payments.selection import OtherFeeEntry, SelectionSet
from app.core.payments.surcharge import surcharge_for, surcharge_rate
from app.core.result import Failure, Result, Success

logger = logging.getLogger(__name__)

OTHER_FEE_SOURCE_ID = "other"
OTHER_FEE_DEFAULT_LABEL = "Other fee"


@dataclass(frozen=True)
class SettlementLineItem:
    source_id: str
    category: FeeCategory
    label: str
    amount: Money
    term_number: Optional[int] = None
    payment_month: Optional[str] = None
    custom_purpose_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "category": self.category.value,
            "label": self.label,
            "amount": str(self.amount),
            "term_number": self.term_number,
            "payment_month": self.payment_month,
            "custom_purpose_name": self.custom_purpose_name,
        }


@dataclass(frozen=True)
class SettlementRequest:
    line_items: Tuple[SettlementLineItem, ...]
    payment_method: PaymentMethod
    subtotal: Money
    surcharge: Money
    total: Money
    remarks: Optional[str] = None

    def __post_init__(self) -> None:
        if self.total != self.subtotal + self.surcharge:
            raise ValueError("Settlement total must equal subtotal plus surcharge")

    @property
    def surcharge_rate(self):
        return surcharge_rate(self.payment_method)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line_items": [li.to_dict() for li in self.line_items],
            "payment_method": self.payment_method.value,
            "subtotal": str(self.subtotal),
            "surcharge": str(self.surcharge),
            "total": str(self.total),
            "remarks": self.remarks,
        }


@dataclass(frozen=True)
class SettlementError:
    kind: SettlementErrorKind
    title: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind.value, "title": self.title, "message": self.message}


_ERROR_TEXT = {
    SettlementErrorKind.EMPTY_SELECTION: ("Select items", "Please select at least one fee item to pay."),
    SettlementErrorKind.INVALID_OTHER_FEE: ("Other fee", "Enter amount and reason for miscellaneous fee."),
    SettlementErrorKind.NEGATIVE_OVERRIDE: ("Invalid amount", "Fee amounts cannot be negative."),
}


def settlement_error(kind: SettlementErrorKind) -> SettlementError:
    title, message = _ERROR_TEXT[kind]
    return SettlementError(kind=kind, title=title, message=message)


def compose(
    selection: SelectionSet,
    other_fee: Optional[OtherFeeEntry],
    method: PaymentMethod,
    remarks: Optional[str] = None,
) -> Result[SettlementRequest, SettlementError]:
    """
    Build the settlement for the current selection. Validation is fail-fast:

    1. EMPTY_SELECTION   - nothing selected and no other fee amount
    2. INVALID_OTHER_FEE - other fee amount without a reason
    3. NEGATIVE_OVERRIDE - any effective amount below zero

    A composition whose subtotal is zero is also EMPTY_SELECTION: the backend never
    receives a zero-value settlement.
    """
    method = PaymentMethod(method)
    selected = selection.selected_items()
    other_has_amount = other_fee is not None and other_fee.has_amount

    if not selected and not other_has_amount:
        return Failure(settlement_error(SettlementErrorKind.EMPTY_SELECTION))
    if other_has_amount and not other_fee.has_reason:
        return Failure(settlement_error(SettlementErrorKind.INVALID_OTHER_FEE))

    line_items: List[SettlementLineItem] = []
    for item in selected:
        amount = selection.effective_amount(item)
        line_items.append(
            SettlementLineItem(
                source_id=item.id,
                category=item.category,
                label=item.label,
                amount=amount,
                term_number=item.term_number,
                payment_month=item.payment_month,
            )
        )
    if other_has_amount:
        reason = other_fee.reason.strip()
        line_items.append(
            SettlementLineItem(
                source_id=OTHER_FEE_SOURCE_ID,
                category=FeeCategory.OTHER,
                label=reason or OTHER_FEE_DEFAULT_LABEL,
                amount=other_fee.amount,
                custom_purpose_name=reason,
            )
        )

    if any(not li.amount.is_non_negative() for li in line_items):
        return Failure(settlement_error(SettlementErrorKind.NEGATIVE_OVERRIDE))

    subtotal = sum((li.amount for li in line_items), Money.zero())
    if not subtotal.is_positive():
        return Failure(settlement_error(SettlementErrorKind.EMPTY_SELECTION))

    surcharge = surcharge_for(subtotal, method)
    settlement = SettlementRequest(
        line_items=tuple(line_items),
        payment_method=method,
        subtotal=subtotal,
        surcharge=surcharge,
        total=subtotal + surcharge,
        remarks=(remarks or "").strip() or None,
    )
    logger.debug(
        "Composed settlement: %d line items, method=%s, total=%s",
        len(line_items), method.value, settlement.total,
    )
    return Success(settlement)
