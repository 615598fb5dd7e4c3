"""Surcharge policy. The table is the single source of truth for which methods carry a fee."""

from decimal import Decimal
from types import MappingProxyType

from app.core.enums import PaymentMethod
from app.core.money import Money

# payment method -> surcharge in percent of the subtotal
SURCHARGE_POLICY = MappingProxyType(
    {
        PaymentMethod.CARD: Decimal("1.2"),
        PaymentMethod.CASH: Decimal("0"),
        PaymentMethod.UPI: Decimal("0"),
        PaymentMethod.BANK_TRANSFER: Decimal("0"),
        PaymentMethod.CHEQUE: Decimal("0"),
    }
)


def surcharge_rate(method: PaymentMethod) -> Decimal:
    return SURCHARGE_POLICY[PaymentMethod(method)]


def surcharge_for(subtotal: Money, method: PaymentMethod) -> Money:
    rate = surcharge_rate(method)
    if not rate:
        return Money.zero()
    return subtotal.multiply_by_rate(rate)
