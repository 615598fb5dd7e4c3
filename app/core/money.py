"""Money: fixed-point currency amount stored as an integer count of minor units (paise/cents).

Decimal is only used at the boundaries (parsing, serialization, display); every sum and
percentage is computed on the scaled integer so totals never drift.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from app.core.exceptions import InvalidAmount

MINOR_UNITS = 100
DEFAULT_LOCALE = "en-IN"

# locale -> (currency symbol, lakh/crore grouping)
DISPLAY_FORMATS = {
    "en-IN": ("₹", True),
    "en-US": ("$", False),
    "en-GB": ("£", False),
}

_AMOUNT_RE = re.compile(r"^(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)$")

RawAmount = Union[str, int, Decimal, "Money"]


def _group_western(digits: str) -> str:
    return f"{int(digits):,}"


def _group_indian(digits: str) -> str:
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


@dataclass(frozen=True, order=True)
class Money:
    minor: int

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @classmethod
    def from_minor(cls, minor: int) -> "Money":
        return cls(int(minor))

    @classmethod
    def parse(cls, raw: RawAmount) -> "Money":
        """Build Money from untrusted input; raise InvalidAmount unless it is a
        non-negative finite decimal with at most 2 fractional digits."""
        if isinstance(raw, Money):
            if raw.minor < 0:
                raise InvalidAmount(raw, "Amount cannot be negative")
            return raw
        # bool is an int subclass; floats would smuggle binary fractions in
        if isinstance(raw, bool) or isinstance(raw, float) or raw is None:
            raise InvalidAmount(raw)
        if isinstance(raw, int):
            value = Decimal(raw)
        elif isinstance(raw, Decimal):
            value = raw
        elif isinstance(raw, str):
            text = raw.strip()
            if text.startswith("-") and _AMOUNT_RE.match(text[1:]):
                raise InvalidAmount(raw, "Amount cannot be negative")
            if not _AMOUNT_RE.match(text):
                raise InvalidAmount(raw)
            try:
                value = Decimal(text)
            except InvalidOperation:
                raise InvalidAmount(raw)
        else:
            raise InvalidAmount(raw)

        if not value.is_finite():
            raise InvalidAmount(raw)
        if value < 0:
            raise InvalidAmount(raw, "Amount cannot be negative")
        scaled = value * MINOR_UNITS
        if scaled != scaled.to_integral_value():
            raise InvalidAmount(raw, "Amount can have at most 2 decimal places")
        return cls(int(scaled))

    def add(self, other: "Money") -> "Money":
        return Money(self.minor + other.minor)

    def subtract(self, other: "Money") -> "Money":
        return Money(self.minor - other.minor)

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return self.add(other)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return self.subtract(other)

    def multiply_by_rate(self, rate_percent: Union[Decimal, str, int]) -> "Money":
        """Apply a percentage, rounding half-up to the nearest minor unit."""
        exact = Decimal(self.minor) * Decimal(rate_percent) / Decimal(100)
        return Money(int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP)))

    def is_non_negative(self) -> bool:
        return self.minor >= 0

    def is_positive(self) -> bool:
        return self.minor > 0

    def clamp_non_negative(self) -> "Money":
        return self if self.minor >= 0 else Money.zero()

    def to_decimal(self) -> Decimal:
        return (Decimal(self.minor) / MINOR_UNITS).quantize(Decimal("0.01"))

    def to_display_string(self, locale: str = DEFAULT_LOCALE) -> str:
        symbol, indian = DISPLAY_FORMATS.get(locale, DISPLAY_FORMATS[DEFAULT_LOCALE])
        units, cents = divmod(abs(self.minor), MINOR_UNITS)
        digits = _group_indian(str(units)) if indian else _group_western(str(units))
        sign = "-" if self.minor < 0 else ""
        return f"{sign}{symbol}{digits}.{cents:02d}"

    def __str__(self) -> str:
        return str(self.to_decimal())
