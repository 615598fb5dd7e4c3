"""Fee catalog: the payable line items of one enrollment, built from the backend's balance records."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from app.core.enums import FeeCategory
from app.core.exceptions import UnknownFeeItem
from app.core.money import Money

BOOK_FEE_ITEM_ID = "book-fee"
TUITION_TERMS = (1, 2, 3)

# Tuition and transport stay locked until the book fee is cleared.
LOCKED_WHILE_BOOK_FEE_PENDING = frozenset({FeeCategory.TUITION_FEE, FeeCategory.TRANSPORT_FEE})

CATALOG_CATEGORIES = (FeeCategory.BOOK_FEE, FeeCategory.TUITION_FEE, FeeCategory.TRANSPORT_FEE)


@dataclass(frozen=True)
class FeeLineItem:
    """One payable obligation. original_amount is server-declared and never mutated."""

    id: str
    category: FeeCategory
    label: str
    original_amount: Money
    term_number: Optional[int] = None
    payment_month: Optional[str] = None

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "label": self.label,
            "original_amount": str(self.original_amount),
            "term_number": self.term_number,
            "payment_month": self.payment_month,
        }

    @classmethod
    def from_snapshot(cls, data: Mapping[str, Any]) -> "FeeLineItem":
        return cls(
            id=data["id"],
            category=FeeCategory(data["category"]),
            label=data["label"],
            original_amount=Money.parse(data["original_amount"]),
            term_number=data.get("term_number"),
            payment_month=data.get("payment_month"),
        )


@dataclass(frozen=True)
class FeeCatalog:
    """Read-only list of fee items for one payment session, in catalog order."""

    enrollment_id: int
    items: Tuple[FeeLineItem, ...] = ()

    def __post_init__(self) -> None:
        seen = set()
        for item in self.items:
            if item.id in seen:
                raise ValueError(f"Duplicate fee item id: {item.id}")
            seen.add(item.id)

    def __iter__(self) -> Iterator[FeeLineItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, item_id: object) -> bool:
        return any(item.id == item_id for item in self.items)

    def get(self, item_id: str) -> FeeLineItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise UnknownFeeItem(item_id)

    def by_category(self, category: FeeCategory) -> List[FeeLineItem]:
        return [item for item in self.items if item.category == category]

    @property
    def book_fee_pending(self) -> bool:
        return any(
            item.category == FeeCategory.BOOK_FEE and item.original_amount.is_positive()
            for item in self.items
        )

    @property
    def locked_categories(self) -> frozenset:
        return LOCKED_WHILE_BOOK_FEE_PENDING if self.book_fee_pending else frozenset()

    def is_locked(self, item_id: str) -> bool:
        return self.get(item_id).category in self.locked_categories

    def to_snapshot(self) -> List[Dict[str, Any]]:
        return [item.to_snapshot() for item in self.items]

    @classmethod
    def from_snapshot(cls, enrollment_id: int, items: Iterable[Mapping[str, Any]]) -> "FeeCatalog":
        return cls(enrollment_id=enrollment_id, items=tuple(FeeLineItem.from_snapshot(i) for i in items))


def _to_money(val: Any) -> Money:
    """Server-declared amount (number, numeric string or None) -> Money."""
    if val is None or val == "":
        return Money.zero()
    if isinstance(val, float):
        val = Decimal(str(val))
    return Money.parse(val)


def _outstanding(total: Any, paid: Any) -> Money:
    return (_to_money(total) - _to_money(paid)).clamp_non_negative()


def _month_label(payment_month: str) -> Tuple[str, str]:
    """'2025-06-01' or '2025-06' -> ('2025-06-01', 'Jun 2025')."""
    month = datetime.strptime(payment_month[:7], "%Y-%m")
    return month.strftime("%Y-%m-01"), month.strftime("%b %Y")


def build_fee_catalog(
    enrollment_id: int,
    tuition_balance: Mapping[str, Any],
    transport_months: Iterable[Mapping[str, Any]] = (),
) -> FeeCatalog:
    """
    Turn the backend's tuition balance record and transport month balances into catalog items.
    Fully paid obligations are left out; order is book fee, tuition terms, transport months.
    """
    items: List[FeeLineItem] = []

    book_outstanding = _outstanding(tuition_balance.get("book_fee"), tuition_balance.get("book_paid"))
    if book_outstanding.is_positive():
        items.append(
            FeeLineItem(
                id=BOOK_FEE_ITEM_ID,
                category=FeeCategory.BOOK_FEE,
                label="Book fee",
                original_amount=book_outstanding,
            )
        )

    for term in TUITION_TERMS:
        outstanding = _outstanding(
            tuition_balance.get(f"term{term}_amount"),
            tuition_balance.get(f"term{term}_paid"),
        )
        if outstanding.is_positive():
            items.append(
                FeeLineItem(
                    id=f"tuition-term-{term}",
                    category=FeeCategory.TUITION_FEE,
                    label=f"Term {term}",
                    original_amount=outstanding,
                    term_number=term,
                )
            )

    months = []
    for row in transport_months:
        payment_month, month_label = _month_label(str(row["payment_month"]))
        outstanding = _outstanding(row.get("amount"), row.get("paid"))
        if outstanding.is_positive():
            months.append((payment_month, month_label, outstanding))
    for payment_month, month_label, outstanding in sorted(months):
        items.append(
            FeeLineItem(
                id=f"transport-{payment_month[:7]}",
                category=FeeCategory.TRANSPORT_FEE,
                label=f"Transport {month_label}",
                original_amount=outstanding,
                payment_month=payment_month,
            )
        )

    return FeeCatalog(enrollment_id=enrollment_id, items=tuple(items))
