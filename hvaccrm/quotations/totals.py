"""Quotation money arithmetic.

Every monetary intermediate is rounded to 2 places (ROUND_HALF_UP) before it
feeds the next step, so stored values always add up:

    total_amount == subtotal - discount_amount + tax_amount
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from hvaccrm.quotations.errors import ValidationError

CENT = Decimal("0.01")
MILLI = Decimal("0.001")
HUNDRED = Decimal("100")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_quantity(value: Decimal) -> Decimal:
    return value.quantize(MILLI, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce ``value`` to a finite Decimal or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric, got {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationError(f"{field} must be numeric, got {value!r}") from exc
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}")
    return result


@dataclass(slots=True, frozen=True)
class LineTotal:
    quantity: Decimal
    unit_price: Decimal
    total_amount: Decimal


@dataclass(slots=True, frozen=True)
class QuotationTotals:
    lines: tuple[LineTotal, ...]
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def validate_items(items: Sequence[Any]) -> list[tuple[Decimal, Decimal]]:
    """Check line items and return their (quantity, unit_price) pairs.

    Items may be pydantic inputs, ORM rows or plain dicts.

    Raises:
        ValidationError: empty sequence, quantity <= 0, unit_price < 0,
            or a non-numeric value
    """
    if not items:
        raise ValidationError("Quotation must have at least one line item")

    pairs: list[tuple[Decimal, Decimal]] = []
    for index, item in enumerate(items, start=1):
        raw_qty = item["quantity"] if isinstance(item, dict) else item.quantity
        raw_price = item["unit_price"] if isinstance(item, dict) else item.unit_price
        quantity = to_decimal(raw_qty, f"item {index} quantity")
        unit_price = to_decimal(raw_price, f"item {index} unit_price")
        if quantity <= 0:
            raise ValidationError(f"item {index} quantity must be greater than 0")
        if unit_price < 0:
            raise ValidationError(f"item {index} unit_price must not be negative")
        pairs.append((quantity, unit_price))
    return pairs


def compute_totals(
    items: Sequence[Any],
    discount_percentage: Any = 0,
    tax_rate: Any = 0,
) -> QuotationTotals:
    """Compute line totals, subtotal, discount, tax and grand total.

    >>> t = compute_totals(
    ...     [{"quantity": 2, "unit_price": 500}, {"quantity": 1, "unit_price": 1000}],
    ...     discount_percentage=10, tax_rate=18,
    ... )
    >>> (t.subtotal, t.discount_amount, t.tax_amount, t.total_amount)
    (Decimal('2000.00'), Decimal('200.00'), Decimal('324.00'), Decimal('2124.00'))
    """
    pairs = validate_items(items)
    discount_pct = to_decimal(discount_percentage, "discount_percentage")
    rate = to_decimal(tax_rate, "tax_rate")
    if not Decimal("0") <= discount_pct <= HUNDRED:
        raise ValidationError("discount_percentage must be between 0 and 100")
    if rate < 0:
        raise ValidationError("tax_rate must not be negative")

    lines = tuple(
        LineTotal(quantity=qty, unit_price=price, total_amount=round_money(qty * price))
        for qty, price in pairs
    )
    subtotal = round_money(sum((line.total_amount for line in lines), Decimal("0")))
    discount_amount = round_money(subtotal * discount_pct / HUNDRED)
    taxable_amount = subtotal - discount_amount
    tax_amount = round_money(taxable_amount * rate / HUNDRED)

    return QuotationTotals(
        lines=lines,
        subtotal=subtotal,
        discount_amount=discount_amount,
        taxable_amount=taxable_amount,
        tax_amount=tax_amount,
        total_amount=taxable_amount + tax_amount,
    )
