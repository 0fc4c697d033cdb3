# Overview: Money Calculator; pure derivation of order totals and payment status.

"""
Money Calculator

Pure and deterministic: no I/O, no session access. Given validated lines and
payment inputs it derives every monetary field stored on an order.

    subtotal = sum(line totals)
    tax      = subtotal * tax_rate / 100        (half-up to the cent)
    total    = subtotal + tax [+ shipping] - discount
    paid >= total  -> due 0, change = paid - total (sales only), "paid"
    paid >  0      -> due = total - paid, "partial"
    otherwise      -> due = total, "pending"

Negative inputs are rejected upstream by order_validator; here they are a
programming error.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from ..errors import InvalidArgument
from ..models.orders import (
    OrderKind,
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_PENDING,
)


@dataclass(frozen=True)
class MoneyBreakdown:
    subtotal_cents: int
    tax_rate: Decimal
    tax_cents: int
    discount_cents: int
    shipping_cents: int
    total_cents: int
    paid_cents: int
    due_cents: int
    change_cents: int
    payment_status: str

    def as_order_fields(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "tax_rate": self.tax_rate,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "shipping_cents": self.shipping_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "due_cents": self.due_cents,
            "change_cents": self.change_cents,
            "payment_status": self.payment_status,
        }


def line_total_cents(quantity: int, unit_price_cents: int) -> int:
    return quantity * unit_price_cents


def tax_cents_for(subtotal_cents: int, tax_rate: Decimal) -> int:
    # nearest-cent rounding (half-up)
    raw = Decimal(subtotal_cents) * Decimal(tax_rate) / Decimal(100)
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def settle_payment(total_cents: int, paid_cents: int, *, tracks_change: bool) -> tuple[int, int, str]:
    """(due_cents, change_cents, payment_status) for a total and amount paid."""
    if paid_cents >= total_cents:
        change = paid_cents - total_cents if tracks_change else 0
        return 0, change, PAYMENT_PAID
    if paid_cents > 0:
        return total_cents - paid_cents, 0, PAYMENT_PARTIAL
    return total_cents, 0, PAYMENT_PENDING


def compute_order_money(
    kind: OrderKind,
    line_totals: Iterable[int],
    *,
    tax_rate: Decimal | int = 0,
    discount_cents: int = 0,
    shipping_cents: int = 0,
    paid_cents: int = 0,
) -> MoneyBreakdown:
    tax_rate = Decimal(tax_rate)
    if tax_rate < 0 or discount_cents < 0 or shipping_cents < 0 or paid_cents < 0:
        raise InvalidArgument("Monetary inputs must not be negative")
    if shipping_cents and not kind.allows_shipping:
        raise InvalidArgument(f"shipping_cents is not allowed on a {kind.name}", field="shipping_cents")

    subtotal = sum(line_totals)
    tax = tax_cents_for(subtotal, tax_rate)
    gross = subtotal + tax + (shipping_cents if kind.allows_shipping else 0)
    if discount_cents > gross:
        raise InvalidArgument(
            "discount_cents cannot exceed the order total before discount",
            field="discount_cents",
            details={"max_discount_cents": gross},
        )
    total = gross - discount_cents

    due, change, status = settle_payment(total, paid_cents, tracks_change=kind.tracks_change)

    return MoneyBreakdown(
        subtotal_cents=subtotal,
        tax_rate=tax_rate,
        tax_cents=tax,
        discount_cents=discount_cents,
        shipping_cents=shipping_cents if kind.allows_shipping else 0,
        total_cents=total,
        paid_cents=paid_cents,
        due_cents=due,
        change_cents=change,
        payment_status=status,
    )
