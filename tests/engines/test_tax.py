"""
Tests for the Tax Engine.

Covers:
- Percentage and amount discounts, with clamping
- VAT and WHT on the discounted amount
- Tax code rate resolution (selected, missing, inactive, fallback)
"""

from decimal import Decimal

from invoice_engines.tax import (
    RateStatus,
    TaxEngine,
    clamp_discount_amount,
    clamp_discount_percentage,
    compute_discount,
    compute_vat,
    compute_wht,
    resolve_rate,
)
from invoice_kernel.domain.types import DiscountMode
from tests.factories import build_reference


class TestDiscount:
    """Discount value per mode."""

    def test_percentage(self):
        assert compute_discount(
            Decimal("200"), DiscountMode.PERCENTAGE, Decimal("10"), Decimal("0")
        ) == Decimal("20")

    def test_percentage_above_100_uses_100(self):
        assert compute_discount(
            Decimal("200"), DiscountMode.PERCENTAGE, Decimal("150"), Decimal("0")
        ) == Decimal("200")

    def test_negative_percentage_uses_0(self):
        assert compute_discount(
            Decimal("200"), DiscountMode.PERCENTAGE, Decimal("-5"), Decimal("0")
        ) == Decimal("0")

    def test_amount(self):
        assert compute_discount(
            Decimal("200"), DiscountMode.AMOUNT, Decimal("0"), Decimal("35.50")
        ) == Decimal("35.50")

    def test_amount_above_subtotal_uses_subtotal(self):
        assert compute_discount(
            Decimal("200"), DiscountMode.AMOUNT, Decimal("0"), Decimal("250")
        ) == Decimal("200")

    def test_unselected_input_ignored(self):
        """Amount mode ignores the percentage and vice versa."""
        assert compute_discount(
            Decimal("200"), DiscountMode.AMOUNT, Decimal("50"), Decimal("10")
        ) == Decimal("10")
        assert compute_discount(
            Decimal("200"), DiscountMode.PERCENTAGE, Decimal("5"), Decimal("150")
        ) == Decimal("10")


class TestDiscountClamps:
    def test_percentage_in_range_not_corrected(self):
        assert clamp_discount_percentage(Decimal("25")) == (Decimal("25"), False)

    def test_percentage_nan(self):
        assert clamp_discount_percentage(Decimal("NaN")) == (Decimal("0"), True)

    def test_percentage_infinite(self):
        assert clamp_discount_percentage(Decimal("Infinity")) == (Decimal("100"), True)

    def test_amount_negative(self):
        assert clamp_discount_amount(Decimal("-1"), Decimal("50")) == (Decimal("0"), True)

    def test_amount_above_subtotal(self):
        assert clamp_discount_amount(Decimal("60"), Decimal("50")) == (Decimal("50"), True)


class TestVatAndWht:
    """VAT is additive, WHT is withheld; both use the discounted base."""

    def test_vat(self):
        assert compute_vat(Decimal("180"), Decimal("18")) == Decimal("32.4")

    def test_wht(self):
        assert compute_wht(Decimal("200"), Decimal("2")) == Decimal("4")

    def test_zero_rate(self):
        assert compute_vat(Decimal("180"), Decimal("0")) == Decimal("0")


class TestResolveRate:
    """Tax code lookups against the reference snapshot."""

    def setup_method(self):
        self.reference = build_reference()
        self.engine = TaxEngine()

    def test_found(self):
        resolved = resolve_rate(self.reference, "vat18")
        assert resolved.status is RateStatus.FOUND
        assert resolved.rate == Decimal("18")
        assert resolved.tax_code.posting_account_id == "acc-vat"

    def test_not_selected_uses_fallback(self):
        resolved = resolve_rate(self.reference, None, Decimal("7"))
        assert resolved.status is RateStatus.NOT_SELECTED
        assert resolved.rate == Decimal("7")
        assert resolved.tax_code is None

    def test_missing_code_is_untaxed(self):
        resolved = resolve_rate(self.reference, "nope", Decimal("7"))
        assert resolved.status is RateStatus.NOT_FOUND
        assert resolved.rate == Decimal("0")

    def test_inactive_code_is_untaxed(self):
        resolved = resolve_rate(self.reference, "vat5-old")
        assert resolved.status is RateStatus.INACTIVE
        assert resolved.rate == Decimal("0")

    def test_engine_withholding_rate(self):
        assert self.engine.withholding_rate(self.reference, "wht2").rate == Decimal("2")

    def test_withholding_code_rejected_as_sales_tax(self):
        resolved = self.engine.sales_rate(self.reference, "wht2")
        assert resolved.status is RateStatus.WRONG_KIND
        assert resolved.rate == Decimal("0")

    def test_sales_code_rejected_as_withholding(self):
        resolved = self.engine.withholding_rate(self.reference, "vat18")
        assert resolved.status is RateStatus.WRONG_KIND
        assert resolved.rate == Decimal("0")

    def test_lookup_does_not_log(self, log_capture):
        resolve_rate(self.reference, "nope")
        resolve_rate(self.reference, "vat5-old")
        assert log_capture.records() == []

    def test_engine_withholding_has_no_fallback(self):
        assert self.engine.withholding_rate(self.reference, None).rate == Decimal("0")
