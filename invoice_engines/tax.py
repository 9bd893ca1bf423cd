"""
Tax Engine - discount, VAT and withholding amounts for one line.

Pure functions with no I/O. Rates are percentages (18 for 18%) and are
looked up from the reference snapshot by the caller or ``resolve_rate``.

Order of operations for a line:
    discount   on the line subtotal
    VAT        on the discounted amount (always additive, prices are exclusive)
    WHT        on the same discounted amount, independent of VAT

Usage:
    from invoice_engines.tax import compute_discount, compute_vat, compute_wht
    from invoice_kernel.domain.types import DiscountMode
    from decimal import Decimal

    discount = compute_discount(Decimal("200"), DiscountMode.PERCENTAGE, Decimal("10"), Decimal("0"))
    vat = compute_vat(Decimal("200") - discount, Decimal("18"))  # 32.4
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from invoice_kernel.domain.reference_snapshot import ReferenceData
from invoice_kernel.domain.types import DiscountMode, TaxCode
from invoice_kernel.domain.values import (
    HUNDRED,
    ZERO,
    clamp_non_negative,
    clamp_range,
    percent_of,
)
class RateStatus(str, Enum):
    """How a line's tax rate was obtained."""

    NOT_SELECTED = "not_selected"  # No code on the line
    FOUND = "found"
    NOT_FOUND = "not_found"  # Code id not in the snapshot
    INACTIVE = "inactive"
    WRONG_KIND = "wrong_kind"  # Withholding code used as sales tax, or the reverse


@dataclass(frozen=True)
class ResolvedRate:
    """Effective rate for one tax code reference."""

    rate: Decimal
    status: RateStatus
    tax_code: TaxCode | None = None


def clamp_discount_percentage(percentage: Decimal) -> tuple[Decimal, bool]:
    """Clamp a discount percentage into [0, 100]."""
    return clamp_range(percentage, ZERO, HUNDRED)


def clamp_discount_amount(amount: Decimal, subtotal: Decimal) -> tuple[Decimal, bool]:
    """Clamp a discount amount into [0, subtotal]."""
    value, corrected = clamp_non_negative(amount)
    if value > subtotal:
        return subtotal, True
    return value, corrected


def compute_discount(
    subtotal: Decimal,
    mode: DiscountMode,
    percentage: Decimal,
    amount: Decimal,
) -> Decimal:
    """
    Discount value for a line subtotal.

    Percentage mode uses ``percentage`` clamped to [0, 100]. Amount mode
    uses ``amount`` clamped to [0, subtotal]. The input not selected by
    ``mode`` is ignored.
    """
    if mode is DiscountMode.AMOUNT:
        value, _ = clamp_discount_amount(amount, subtotal)
        return value
    pct, _ = clamp_discount_percentage(percentage)
    return percent_of(subtotal, pct)


def compute_vat(amount_after_discount: Decimal, vat_rate: Decimal) -> Decimal:
    """VAT on the discounted amount."""
    return percent_of(amount_after_discount, vat_rate)


def compute_wht(amount_after_discount: Decimal, wht_rate: Decimal) -> Decimal:
    """Withholding on the discounted amount. Never applied to VAT."""
    return percent_of(amount_after_discount, wht_rate)


def resolve_rate(
    reference: ReferenceData,
    tax_code_id: str | None,
    fallback_rate: Decimal = ZERO,
    *,
    withholding: bool = False,
) -> ResolvedRate:
    """
    Rate for a tax code id.

    A line with no code uses ``fallback_rate``. A code that is missing
    from the snapshot, inactive, or of the other kind (a withholding code
    where sales tax is expected, or the reverse) yields rate 0, so the
    line is computed as untaxed rather than rejected.
    """
    if not tax_code_id:
        return ResolvedRate(rate=fallback_rate, status=RateStatus.NOT_SELECTED)

    tax_code = reference.tax_code(tax_code_id)
    if tax_code is None:
        return ResolvedRate(rate=ZERO, status=RateStatus.NOT_FOUND)
    if not tax_code.is_active:
        return ResolvedRate(rate=ZERO, status=RateStatus.INACTIVE, tax_code=tax_code)
    if bool(tax_code.is_withholding) != withholding:
        return ResolvedRate(rate=ZERO, status=RateStatus.WRONG_KIND, tax_code=tax_code)
    return ResolvedRate(rate=tax_code.rate, status=RateStatus.FOUND, tax_code=tax_code)


class TaxEngine:
    """
    Discount, VAT and WHT calculation for a single line.

    Pure functions - no I/O, no reference lookups beyond the snapshot
    passed in.
    """

    def discount(
        self,
        subtotal: Decimal,
        mode: DiscountMode,
        percentage: Decimal,
        amount: Decimal,
    ) -> Decimal:
        return compute_discount(subtotal, mode, percentage, amount)

    def vat(self, amount_after_discount: Decimal, vat_rate: Decimal) -> Decimal:
        return compute_vat(amount_after_discount, vat_rate)

    def wht(self, amount_after_discount: Decimal, wht_rate: Decimal) -> Decimal:
        return compute_wht(amount_after_discount, wht_rate)

    def sales_rate(
        self,
        reference: ReferenceData,
        tax_code_id: str | None,
        fallback_rate: Decimal = ZERO,
    ) -> ResolvedRate:
        return resolve_rate(reference, tax_code_id, fallback_rate)

    def withholding_rate(
        self,
        reference: ReferenceData,
        tax_code_id: str | None,
    ) -> ResolvedRate:
        return resolve_rate(reference, tax_code_id, withholding=True)
