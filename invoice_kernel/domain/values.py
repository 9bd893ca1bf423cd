"""
Values -- Decimal coercion and clamping helpers.

Responsibility:
    Convert caller-supplied numbers into ``Decimal`` and clamp them into
    safe ranges. Every monetary or rate value entering an engine passes
    through ``to_decimal`` first.

Invariants enforced:
    - Floats never participate in arithmetic; they are converted through
      ``str()`` so ``0.1`` becomes ``Decimal("0.1")``.
    - Clamping helpers report whether a correction happened, so callers
      can surface it to the user instead of silently dropping input.

Failure modes:
    - InvalidNumericInputError when a value is not a number at all
      (``"abc"``, a list, an object). NaN and infinities are numbers and
      are returned as-is for the clamping helpers to correct.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

from invoice_kernel.domain.currency import CurrencyRegistry
from invoice_kernel.exceptions import InvalidNumericInputError

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value: Any, field: str = "value", default: Decimal = ZERO) -> Decimal:
    """
    Coerce a caller value to Decimal.

    ``None`` and the empty string map to ``default``. Booleans are
    rejected since they are almost always a wiring mistake.

    Raises:
        InvalidNumericInputError: if the value cannot be read as a number.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidNumericInputError(field, value)
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return Decimal(text)
        except InvalidOperation as e:
            raise InvalidNumericInputError(field, value) from e
    raise InvalidNumericInputError(field, value)


def clamp_ceiling(value: Decimal, ceiling: Decimal) -> tuple[Decimal, bool]:
    """
    Clamp to ``<= ceiling``. Expects a finite value.

    Returns:
        Tuple of (clamped_value, was_corrected)
    """
    if value > ceiling:
        return ceiling, True
    return value, False


def clamp_non_negative(value: Decimal) -> tuple[Decimal, bool]:
    """
    Clamp to ``>= 0``; non-finite values become 0.

    Returns:
        Tuple of (clamped_value, was_corrected)
    """
    if not value.is_finite() or value < ZERO:
        return ZERO, True
    return value, False


def clamp_floor(value: Decimal, floor: Decimal) -> tuple[Decimal, bool]:
    """
    Clamp to ``>= floor``; non-finite values become ``floor``.

    Returns:
        Tuple of (clamped_value, was_corrected)
    """
    if not value.is_finite() or value < floor:
        return floor, True
    return value, False


def clamp_range(
    value: Decimal, low: Decimal, high: Decimal
) -> tuple[Decimal, bool]:
    """
    Clamp into ``[low, high]``. NaN becomes ``low``; infinities go to the
    matching bound.

    Returns:
        Tuple of (clamped_value, was_corrected)
    """
    if value.is_nan():
        return low, True
    if value < low:
        return low, True
    if value > high:
        return high, True
    return value, False


def quantize_to(
    value: Decimal, quantum: Decimal, rounding: str | None = ROUND_HALF_UP
) -> Decimal:
    """
    ``value.quantize(quantum)`` with enough context precision for every
    integer digit of ``value``. Non-finite values are returned unchanged.
    """
    if not value.is_finite():
        return value
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() - quantum.adjusted() + 2)
        return value.quantize(quantum, rounding=rounding)


def round_amount(
    value: Decimal,
    currency: str | None = None,
    rounding: str = ROUND_HALF_UP,
) -> Decimal:
    """Round to the currency's decimal places (two when unknown)."""
    return quantize_to(value, CurrencyRegistry.get_quantum(currency), rounding)


def percent_of(base: Decimal, rate_percent: Decimal) -> Decimal:
    """``base * rate_percent / 100`` at full precision."""
    return base * rate_percent / HUNDRED
