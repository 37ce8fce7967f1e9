"""
Values -- money arithmetic for invoices and payments.

Responsibility:
    Decimal-only helpers used wherever amounts are validated or summed:
    coercion at the boundary, line totals, invoice totals and the
    epsilon comparison between a declared total and the recomputed one.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Amounts are Decimal, never float.  ``to_decimal`` rejects floats,
      booleans, NaN and infinities at the boundary.
    - ``line_total`` is exactly ``quantity * unit_price`` (no rounding);
      ``round_money`` is the only sanctioned rounding function.

Failure modes:
    - ValidationError on non-numeric, float, boolean or non-finite input.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Protocol

from credit_kernel.exceptions import ValidationError

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")

# Tolerance between a declared invoice total and the sum of its items
DEFAULT_AMOUNT_EPSILON = Decimal("0.01")


class PricedLine(Protocol):
    quantity: Decimal
    unit_price: Decimal


def to_decimal(value: Any, field: str) -> Decimal:
    """
    Coerce ``value`` into a finite Decimal.

    Accepts Decimal, int and numeric strings.  Floats are refused so binary
    rounding noise can never reach a stored amount.

    Raises:
        ValidationError: if ``value`` is not an exact finite number.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(field, f"must be Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValidationError(field, f"not a number: {value!r}") from exc
    else:
        raise ValidationError(field, f"unsupported type {type(value).__name__}")
    if not result.is_finite():
        raise ValidationError(field, "must be finite")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to ``decimal_places`` (default: cents)."""
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    """Exact total of one line item."""
    return quantity * unit_price


def items_total(items: Iterable[PricedLine]) -> Decimal:
    """Sum of ``quantity * unit_price`` over ``items``."""
    return sum((line_total(i.quantity, i.unit_price) for i in items), ZERO)


def amounts_match(
    declared: Decimal,
    computed: Decimal,
    epsilon: Decimal = DEFAULT_AMOUNT_EPSILON,
) -> bool:
    """True when ``declared`` is within ``epsilon`` of ``computed``."""
    return abs(declared - computed) <= epsilon
