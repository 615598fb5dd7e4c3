"""Selection set: which catalog items are being paid in this session, and at what amount."""

from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from app.core.exceptions import ItemNotSelected
from app.core.money import Money, RawAmount
from app.core.payments.catalog import FeeCatalog, FeeLineItem


@dataclass(frozen=True)
class SelectionEntry:
    item_id: str
    selected: bool = True
    override_amount: Optional[Money] = None


@dataclass(frozen=True)
class OtherFeeEntry:
    """Ad hoc miscellaneous fee; it has no server-side identity until submission."""

    amount: Money
    reason: str = ""

    @classmethod
    def parse(cls, raw_amount: RawAmount, reason: Optional[str]) -> "OtherFeeEntry":
        return cls(amount=Money.parse(raw_amount), reason=reason or "")

    @property
    def has_amount(self) -> bool:
        return self.amount.is_positive()

    @property
    def has_reason(self) -> bool:
        return bool(self.reason.strip())


class SelectionSet:
    """
    Selected catalog items with optional amount overrides.

    Only selected items have an entry, so deselecting an item drops its override in the
    same update. Invalid overrides are never stored.
    """

    def __init__(self, catalog: FeeCatalog) -> None:
        self._catalog = catalog
        self._entries: Dict[str, SelectionEntry] = {}

    @property
    def catalog(self) -> FeeCatalog:
        return self._catalog

    def toggle(self, item_id: str, next_selected: bool) -> None:
        self._catalog.get(item_id)
        if next_selected:
            self._entries[item_id] = SelectionEntry(item_id=item_id)
        else:
            self._entries.pop(item_id, None)

    def set_override(self, item_id: str, raw_amount: RawAmount) -> Money:
        """Parse and store an override; on InvalidAmount the previous state is kept."""
        self._catalog.get(item_id)
        entry = self._entries.get(item_id)
        if entry is None:
            raise ItemNotSelected(item_id)
        amount = Money.parse(raw_amount)
        self._entries[item_id] = replace(entry, override_amount=amount)
        return amount

    def is_selected(self, item_id: str) -> bool:
        return item_id in self._entries

    def entry(self, item_id: str) -> Optional[SelectionEntry]:
        return self._entries.get(item_id)

    def effective_amount(self, item: FeeLineItem) -> Optional[Money]:
        entry = self._entries.get(item.id)
        if entry is None:
            return None
        if entry.override_amount is not None:
            return entry.override_amount
        return item.original_amount

    def selected_items(self) -> List[FeeLineItem]:
        return [item for item in self._catalog if item.id in self._entries]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
