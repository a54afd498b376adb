"""Pricing Engine.

Pure arithmetic over line snapshots. Every monetary result is rounded to
two decimal places; nothing here touches storage.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from shared.errors import InvalidQuantityError, ValidationError


class PricedLine(Protocol):
    unit_price: float
    quantity: int


def round_money(amount: float) -> float:
    return round(float(amount), 2)


def line_total(unit_price: float, quantity: int) -> float:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError()
    if unit_price < 0:
        raise ValidationError("Unit price cannot be negative")
    return round_money(unit_price * quantity)


@dataclass(frozen=True)
class CartTotals:
    total: float
    item_count: int


def cart_totals(lines: Iterable[PricedLine]) -> CartTotals:
    total = 0.0
    item_count = 0
    for line in lines:
        total += line_total(line.unit_price, line.quantity)
        item_count += line.quantity
    return CartTotals(total=round_money(total), item_count=item_count)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: float
    tax: float
    delivery_fee: float
    total: float


@dataclass(frozen=True)
class PricingPolicy:
    """Tax and delivery rules applied when an order is placed.

    ``free_delivery_threshold`` of 0 disables free delivery.
    """

    tax_rate: float = 0.0
    delivery_base_fee: float = 2.50
    free_delivery_threshold: float = 15.00

    @classmethod
    def from_settings(cls, settings) -> "PricingPolicy":
        return cls(
            tax_rate=settings.tax_rate,
            delivery_base_fee=settings.delivery_base_fee,
            free_delivery_threshold=settings.free_delivery_threshold,
        )

    def tax_for(self, subtotal: float) -> float:
        return round_money(subtotal * self.tax_rate)

    def delivery_fee_for(self, subtotal: float, is_delivery: bool) -> float:
        if not is_delivery:
            return 0.0
        if self.free_delivery_threshold > 0 and subtotal >= self.free_delivery_threshold:
            return 0.0
        return round_money(self.delivery_base_fee)

    def order_totals(self, lines: Iterable[PricedLine], is_delivery: bool) -> OrderTotals:
        subtotal = cart_totals(lines).total
        tax = self.tax_for(subtotal)
        delivery_fee = self.delivery_fee_for(subtotal, is_delivery)
        return OrderTotals(
            subtotal=subtotal,
            tax=tax,
            delivery_fee=delivery_fee,
            total=round_money(subtotal + tax + delivery_fee),
        )
