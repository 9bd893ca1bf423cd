"""
Tests for the Posting Preview Builder.

Covers:
- Full posting for a configured invoice (all seven roles, ordering, balance)
- Proportional income distribution across income accounts
- Account defaults and overrides
- Omitted entries and configuration-gap warnings
- Account slot listing
"""

from decimal import ROUND_HALF_UP, Decimal

import pytest

from invoice_engines.aggregation import InvoiceAggregator
from invoice_engines.line import LineCalculator
from invoice_engines.posting import (
    BALANCE_TOLERANCE,
    PostingPreview,
    PostingPreviewBuilder,
    distribute_proportionally,
    list_account_slots,
)
from invoice_kernel.domain.types import (
    AccountNature,
    AccountOverrides,
    AccountRole,
    PostingEntry,
    Product,
    WarningCode,
)
from invoice_kernel.exceptions import (
    IncompleteConfigurationError,
    UnbalancedPreviewError,
)
from tests.factories import (
    PRODUCTS,
    amount_discount_line,
    build_reference,
    make_line,
)


class _PostingCase:
    """Runs lines through the full pipeline up to the posting preview."""

    def setup_method(self):
        self.calculator = LineCalculator()
        self.aggregator = InvoiceAggregator()
        self.builder = PostingPreviewBuilder()
        self.reference = build_reference()

    def build(self, lines, reference=None, **kwargs):
        reference = reference or self.reference
        results = [self.calculator.calculate(line, reference) for line in lines]
        totals = self.aggregator.aggregate(line_results=results)
        preview = self.builder.build(
            lines=lines,
            line_results=results,
            totals=totals,
            reference=reference,
            **kwargs,
        )
        return preview, totals


def _by_role(preview, role):
    return preview.entries_for(role)


def _codes(preview):
    return [w.code for w in preview.warnings]


class TestFullPosting(_PostingCase):
    """A fully configured invoice posts every role and balances."""

    def test_all_roles_posted(self):
        preview, totals = self.build([
            make_line(
                sales_tax_code_id="vat18",
                wht_tax_code_id="wht2",
                discount_percentage="10",
            )
        ])

        assert totals.total == Decimal("208.8")
        summary = [(e.account_name, e.nature, e.amount) for e in preview.entries]
        assert summary == [
            ("Accounts Receivable", AccountNature.DEBIT, Decimal("208.8")),
            ("Cost of Goods Sold", AccountNature.DEBIT, Decimal("120")),
            ("Discount Allowed", AccountNature.DEBIT, Decimal("20")),
            ("WHT Receivable", AccountNature.DEBIT, Decimal("3.6")),
            ("Inventory", AccountNature.CREDIT, Decimal("120")),
            ("Sales - Goods", AccountNature.CREDIT, Decimal("200")),
            ("VAT Payable", AccountNature.CREDIT, Decimal("32.4")),
        ]
        assert preview.total_debits == Decimal("352.4")
        assert preview.total_credits == Decimal("352.4")
        assert preview.is_balanced
        assert preview.is_complete
        assert preview.warnings == ()
        preview.require_balanced()
        preview.require_complete()

    def test_descriptions(self):
        preview, _ = self.build([make_line(sales_tax_code_id="vat18")])
        descriptions = {e.role: e.description for e in preview.entries}
        assert descriptions[AccountRole.RECEIVABLE] == "Accounts Receivable"
        assert descriptions[AccountRole.INCOME] == "Sales Revenue"
        assert descriptions[AccountRole.COGS] == "COGS - Widget"
        assert descriptions[AccountRole.INVENTORY] == "Inventory - Widget"
        assert descriptions[AccountRole.TAX_PAYABLE] == "Tax Payable"

    def test_debits_before_credits(self):
        preview, _ = self.build([
            make_line("A", sales_tax_code_id="vat18"),
            make_line("B", product_id="consulting", quantity="1", unit_price="500"),
        ])
        natures = [e.nature for e in preview.entries]
        first_credit = natures.index(AccountNature.CREDIT)
        assert all(n is AccountNature.CREDIT for n in natures[first_credit:])

    def test_discount_entry_at_zero_when_no_discount(self):
        preview, _ = self.build([make_line()])
        (entry,) = _by_role(preview, AccountRole.DISCOUNT_ALLOWED)
        assert entry.amount == Decimal("0")

    def test_tax_grouped_by_account(self):
        preview, _ = self.build([
            make_line("A", sales_tax_code_id="vat18"),
            make_line("B", product_id="gadget", quantity="1", sales_tax_code_id="vat18"),
        ])
        (tax,) = _by_role(preview, AccountRole.TAX_PAYABLE)
        assert tax.amount == Decimal("54")

    def test_no_tax_entry_for_untaxed_invoice(self):
        preview, _ = self.build([make_line()])
        assert _by_role(preview, AccountRole.TAX_PAYABLE) == ()
        assert _by_role(preview, AccountRole.WHT_RECEIVABLE) == ()

    def test_entry_as_dict(self):
        preview, _ = self.build([make_line()])
        receivable = _by_role(preview, AccountRole.RECEIVABLE)[0].as_dict()
        assert receivable == {
            "accountId": "acc-ar",
            "accountCode": "1100",
            "accountName": "Accounts Receivable",
            "nature": "DEBIT",
            "amount": Decimal("200"),
            "description": "Accounts Receivable",
            "role": "receivable",
        }

    def test_mismatched_results_rejected(self):
        line = make_line("A")
        result = self.calculator.calculate(make_line("B"), self.reference)
        totals = self.aggregator.aggregate(line_results=[result])
        with pytest.raises(ValueError):
            self.builder.build(
                lines=[line],
                line_results=[result],
                totals=totals,
                reference=self.reference,
            )


class TestCostOfSales(_PostingCase):

    def test_service_products_skip_cogs(self):
        preview, _ = self.build([
            make_line(product_id="consulting", quantity="1", unit_price="500")
        ])
        assert _by_role(preview, AccountRole.COGS) == ()
        assert _by_role(preview, AccountRole.INVENTORY) == ()
        assert preview.is_balanced

    def test_zero_cost_skips_cogs(self):
        product = Product(
            id="free",
            name="Free Sample",
            income_account_id="acc-sales-goods",
            cogs_account_id="acc-cogs",
            asset_account_id="acc-inv",
        )
        reference = build_reference(products=PRODUCTS + (product,))
        preview, _ = self.build([make_line(product_id="free")], reference=reference)
        assert _by_role(preview, AccountRole.COGS) == ()

    def test_category_cogs_account_used(self):
        preview, _ = self.build([make_line(product_id="gadget", quantity="1")])
        (cogs,) = _by_role(preview, AccountRole.COGS)
        assert cogs.account_id == "acc-cogs"
        assert cogs.amount == Decimal("50")
        assert cogs.description == "COGS - Gadget"

    def test_cogs_uses_effective_quantity(self):
        preview, _ = self.build([make_line(quantity="-1")])
        (cogs,) = _by_role(preview, AccountRole.COGS)
        assert cogs.amount == Decimal("0.0001") * Decimal("60")

    def test_missing_inventory_account_omits_pair(self):
        product = Product(
            id="half",
            name="Half Configured",
            average_cost=Decimal("10"),
            income_account_id="acc-sales-goods",
            cogs_account_id="acc-cogs",
        )
        reference = build_reference(products=PRODUCTS + (product,))
        preview, _ = self.build([make_line(product_id="half")], reference=reference)
        assert _by_role(preview, AccountRole.COGS) == ()
        assert _by_role(preview, AccountRole.INVENTORY) == ()
        assert _codes(preview) == [WarningCode.INVENTORY_ACCOUNT_UNRESOLVED]
        assert preview.warnings[0].line_id == "L1"
        # Omitting both sides keeps the preview balanced
        assert preview.is_balanced
        assert not preview.is_complete


class TestIncomeDistribution(_PostingCase):
    """Income is split by pre-discount subtotal share and sums to the subtotal."""

    def test_split_by_subtotal_share_not_net(self):
        preview, totals = self.build([
            amount_discount_line("300", line_id="A", quantity="3", unit_price="100"),
            make_line("B", product_id="consulting", quantity="7", unit_price="100"),
        ])
        income = {e.account_id: e.amount for e in _by_role(preview, AccountRole.INCOME)}
        assert income == {
            "acc-sales-goods": Decimal("300"),
            "acc-sales-svc": Decimal("700"),
        }
        assert sum(income.values()) == totals.subtotal == Decimal("1000")
        assert preview.is_balanced

    def test_lines_sharing_an_account_are_grouped(self):
        preview, _ = self.build([
            make_line("A"),
            make_line("B", product_id="gadget", quantity="1", unit_price="100"),
        ])
        (income,) = _by_role(preview, AccountRole.INCOME)
        assert income.amount == Decimal("300")

    def test_unmapped_line_spread_over_mapped_accounts(self):
        bare = Product(id="bare", name="Bare")
        reference = build_reference(products=PRODUCTS + (bare,))
        preview, totals = self.build(
            [
                make_line("A", quantity="1", unit_price="100"),
                make_line("B", product_id="consulting", quantity="3", unit_price="100"),
                make_line("C", product_id="bare", quantity="1", unit_price="400"),
            ],
            reference=reference,
        )
        income = {e.account_id: e.amount for e in _by_role(preview, AccountRole.INCOME)}
        assert income == {
            "acc-sales-goods": Decimal("200.00"),
            "acc-sales-svc": Decimal("600"),
        }
        assert sum(income.values()) == totals.subtotal
        assert WarningCode.INCOME_ACCOUNT_UNRESOLVED in _codes(preview)
        assert preview.is_balanced

    def test_missing_product_reported_once(self):
        preview, totals = self.build([
            make_line("A"),
            make_line("B", product_id="ghost"),
        ])
        assert _codes(preview) == [WarningCode.PRODUCT_NOT_FOUND]
        assert sum(e.amount for e in _by_role(preview, AccountRole.INCOME)) == totals.subtotal

    def test_zero_subtotal_emits_zero_income(self):
        preview, _ = self.build([make_line(unit_price="0")])
        (income,) = _by_role(preview, AccountRole.INCOME)
        assert income.amount == Decimal("0")

    def test_non_terminating_split_sums_exactly(self):
        preview, totals = self.build([
            make_line("A", quantity="1", unit_price="10"),
            make_line("B", product_id="consulting", quantity="1", unit_price="20"),
            make_line("C", product_id="gadget", quantity="1", unit_price="0.01"),
        ])
        amounts = [e.amount for e in _by_role(preview, AccountRole.INCOME)]
        assert sum(amounts) == totals.subtotal

    def test_currency_precision_applied(self):
        preview, totals = self.build(
            [
                make_line("A", quantity="1", unit_price="1"),
                make_line("B", product_id="consulting", quantity="2", unit_price="1"),
            ],
            currency="KWD",
        )
        amounts = {e.account_id: e.amount for e in _by_role(preview, AccountRole.INCOME)}
        assert amounts["acc-sales-goods"] == Decimal("1.000")
        assert sum(amounts.values()) == Decimal("3")


class TestDistributeProportionally:

    def test_even_split_with_residual(self):
        parts = distribute_proportionally(
            Decimal("100"), [Decimal("1")] * 3, Decimal("0.01"), ROUND_HALF_UP
        )
        assert parts == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]

    def test_largest_weight_absorbs_residual(self):
        parts = distribute_proportionally(
            Decimal("10"), [Decimal("1"), Decimal("2")], Decimal("0.01"), ROUND_HALF_UP
        )
        assert parts == [Decimal("3.33"), Decimal("6.67")]

    def test_zero_weights(self):
        assert distribute_proportionally(Decimal("10"), [Decimal("0"), Decimal("0")]) == [
            Decimal("0"),
            Decimal("0"),
        ]

    def test_empty(self):
        assert distribute_proportionally(Decimal("10"), []) == []

    def test_tiny_amount_never_negative(self):
        parts = distribute_proportionally(
            Decimal("0.015"), [Decimal("1")] * 3, Decimal("0.01"), ROUND_HALF_UP
        )
        assert all(p >= 0 for p in parts)
        assert abs(sum(parts) - Decimal("0.015")) < Decimal("1e-20")

    def test_amount_beyond_context_precision(self):
        parts = distribute_proportionally(
            Decimal("2e27"), [Decimal("1e27"), Decimal("1e27")], Decimal("0.01"), ROUND_HALF_UP
        )
        assert parts == [Decimal("1e27"), Decimal("1e27")]


class TestAccountResolution(_PostingCase):
    """Default and override resolution per role."""

    def test_customer_receivable_beats_linked_default(self):
        preview, _ = self.build(
            [make_line()], customer_receivable_account_id="acc-ar-alt"
        )
        (receivable,) = _by_role(preview, AccountRole.RECEIVABLE)
        assert receivable.account_id == "acc-ar-alt"

    def test_receivable_override_wins(self):
        preview, _ = self.build(
            [make_line()],
            customer_receivable_account_id="acc-ar",
            overrides=AccountOverrides(receivable="acc-ar-alt"),
        )
        assert _by_role(preview, AccountRole.RECEIVABLE)[0].account_id == "acc-ar-alt"

    def test_income_override_keyed_by_default(self):
        preview, _ = self.build(
            [make_line()],
            overrides=AccountOverrides(income={"acc-sales-goods": "acc-sales-svc"}),
        )
        (income,) = _by_role(preview, AccountRole.INCOME)
        assert income.account_id == "acc-sales-svc"

    def test_overrides_merge_income_groups(self):
        preview, _ = self.build(
            [
                make_line("A"),
                make_line("B", product_id="consulting", quantity="1", unit_price="100"),
            ],
            overrides=AccountOverrides(income={"acc-sales-goods": "acc-sales-svc"}),
        )
        (income,) = _by_role(preview, AccountRole.INCOME)
        assert income.amount == Decimal("300")

    def test_tax_override(self):
        preview, _ = self.build(
            [make_line(sales_tax_code_id="vat18")],
            overrides=AccountOverrides(tax_payable={"acc-vat": "acc-sales-svc"}),
        )
        (tax,) = _by_role(preview, AccountRole.TAX_PAYABLE)
        assert tax.account_id == "acc-sales-svc"

    def test_override_to_unknown_account_omits_entry(self):
        preview, _ = self.build(
            [make_line()], overrides=AccountOverrides(discount_allowed="nope")
        )
        assert _by_role(preview, AccountRole.DISCOUNT_ALLOWED) == ()
        # No discount on the invoice, so the gap is not reported
        assert preview.warnings == ()


class TestConfigurationGaps(_PostingCase):
    """Unresolvable accounts omit entries and report warnings."""

    def test_no_receivable_account(self):
        reference = build_reference(linked_accounts=())
        preview, _ = self.build([make_line()], reference=reference)
        assert _by_role(preview, AccountRole.RECEIVABLE) == ()
        assert WarningCode.RECEIVABLE_ACCOUNT_UNRESOLVED in _codes(preview)
        assert not preview.is_complete
        with pytest.raises(IncompleteConfigurationError) as exc:
            preview.require_complete()
        assert "receivable_account_unresolved" in exc.value.warning_codes

    def test_no_discount_account_with_discount(self):
        reference = build_reference(linked_accounts=build_reference().linked_accounts[:1])
        preview, _ = self.build([make_line(discount_percentage="5")], reference=reference)
        assert _codes(preview) == [WarningCode.DISCOUNT_ACCOUNT_UNRESOLVED]
        assert not preview.is_balanced
        with pytest.raises(UnbalancedPreviewError):
            preview.require_balanced()

    def test_tax_code_without_posting_account(self):
        preview, _ = self.build([make_line(sales_tax_code_id="vat10-unposted")])
        assert _codes(preview) == [WarningCode.TAX_ACCOUNT_UNRESOLVED]
        assert preview.warnings[0].line_id == "L1"
        assert preview.total_debits - preview.total_credits == Decimal("20")

    def test_fallback_rate_has_no_tax_account(self):
        preview, _ = self.build([make_line(tax_percentage="5")])
        assert _codes(preview) == [WarningCode.TAX_ACCOUNT_UNRESOLVED]

    def test_wht_code_without_posting_account(self):
        preview, _ = self.build([make_line(wht_tax_code_id="vat10-unposted")])
        assert _codes(preview) == [WarningCode.WHT_ACCOUNT_UNRESOLVED]

    def test_zero_tax_amount_not_reported(self):
        preview, _ = self.build(
            [amount_discount_line("200", sales_tax_code_id="vat10-unposted")]
        )
        assert WarningCode.TAX_ACCOUNT_UNRESOLVED not in _codes(preview)


class TestPostingPreview:
    """Totals and gating on a hand-built preview."""

    def _entry(self, nature, amount):
        return PostingEntry(
            account_id="a",
            account_code="1",
            account_name="A",
            nature=nature,
            amount=Decimal(amount),
            description="",
            role=AccountRole.RECEIVABLE,
        )

    def test_tolerance(self):
        preview = PostingPreview(entries=(
            self._entry(AccountNature.DEBIT, "100"),
            self._entry(AccountNature.CREDIT, "100"),
        ))
        assert preview.is_balanced
        off = PostingPreview(entries=(
            self._entry(AccountNature.DEBIT, "100"),
            self._entry(AccountNature.CREDIT, str(Decimal("100") - BALANCE_TOLERANCE * 10)),
        ))
        assert not off.is_balanced

    def test_empty_preview(self):
        preview = PostingPreview(entries=())
        assert preview.total_debits == Decimal("0")
        assert preview.is_balanced
        assert preview.is_complete


class TestAccountSlots:

    def setup_method(self):
        self.reference = build_reference()

    def test_slots_for_configured_invoice(self):
        slots = list_account_slots(
            [
                make_line("A", sales_tax_code_id="vat18", wht_tax_code_id="wht2"),
                make_line("B", product_id="gadget", sales_tax_code_id="vat18"),
                make_line("C", product_id="consulting"),
            ],
            self.reference,
        )
        summary = [(s.role, s.default_account_id) for s in slots]
        assert summary == [
            (AccountRole.RECEIVABLE, "acc-ar"),
            (AccountRole.DISCOUNT_ALLOWED, "acc-disc"),
            (AccountRole.INCOME, "acc-sales-goods"),
            (AccountRole.INCOME, "acc-sales-svc"),
            (AccountRole.COGS, "acc-cogs"),
            (AccountRole.INVENTORY, "acc-inv"),
            (AccountRole.TAX_PAYABLE, "acc-vat"),
            (AccountRole.WHT_RECEIVABLE, "acc-wht"),
        ]
        assert all(s.is_resolved for s in slots)

    def test_receivable_slot_always_present(self):
        reference = build_reference(linked_accounts=())
        (slot,) = list_account_slots([], reference)
        assert slot.role is AccountRole.RECEIVABLE
        assert slot.default_account_id is None
        assert not slot.is_resolved

    def test_slot_shows_override(self):
        slots = list_account_slots(
            [make_line()],
            self.reference,
            overrides=AccountOverrides(income={"acc-sales-goods": "acc-sales-svc"}),
        )
        (income,) = [s for s in slots if s.role is AccountRole.INCOME]
        assert income.default_account_id == "acc-sales-goods"
        assert income.account.id == "acc-sales-svc"
        assert income.nature is AccountNature.CREDIT
