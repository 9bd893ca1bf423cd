"""
Domain types -- lines, reference records, and derived results.

Responsibility:
    Frozen value objects for everything the engines consume (lines,
    tax codes, accounts, products, linked-account defaults, overrides)
    and everything they produce (line results, invoice totals, posting
    entries, warnings).

Invariants enforced:
    - All numeric fields are Decimal after construction (floats and
      strings are coerced through ``to_decimal``).
    - Derived results are never mutated; every pass builds new ones.
    - A line's discount is authoritative only in its ``discount_mode``;
      the other discount field is carried for display.

Failure modes:
    - InvalidNumericInputError when a numeric field is not a number.
    - ValueError when reference data carries a negative tax rate or
      average cost.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from invoice_kernel.domain.values import ZERO, to_decimal


class DiscountMode(str, Enum):
    """Which discount input is authoritative for a line."""

    PERCENTAGE = "percentage"
    AMOUNT = "amount"


class AccountNature(str, Enum):
    """Side of a ledger entry, or an account's natural balance side."""

    DEBIT = "debit"
    CREDIT = "credit"


class AccountRole(str, Enum):
    """Functional slot an account fills in the posting preview."""

    RECEIVABLE = "receivable"
    DISCOUNT_ALLOWED = "discount_allowed"
    INCOME = "income"
    COGS = "cogs"
    INVENTORY = "inventory"
    TAX_PAYABLE = "tax_payable"
    WHT_RECEIVABLE = "wht_receivable"


class WarningCode(str, Enum):
    """Soft problems reported alongside a best-effort result."""

    # Input corrections
    QUANTITY_CLAMPED = "quantity_clamped"
    UNIT_PRICE_CLAMPED = "unit_price_clamped"
    DISCOUNT_PERCENTAGE_CLAMPED = "discount_percentage_clamped"
    DISCOUNT_AMOUNT_CLAMPED = "discount_amount_clamped"
    TAX_PERCENTAGE_CLAMPED = "tax_percentage_clamped"
    EXCHANGE_RATE_CLAMPED = "exchange_rate_clamped"

    # Reference data gaps
    TAX_CODE_NOT_FOUND = "tax_code_not_found"
    TAX_CODE_INACTIVE = "tax_code_inactive"
    TAX_CODE_WRONG_KIND = "tax_code_wrong_kind"
    PRODUCT_NOT_FOUND = "product_not_found"

    # Posting configuration gaps
    RECEIVABLE_ACCOUNT_UNRESOLVED = "receivable_account_unresolved"
    DISCOUNT_ACCOUNT_UNRESOLVED = "discount_account_unresolved"
    INCOME_ACCOUNT_UNRESOLVED = "income_account_unresolved"
    COGS_ACCOUNT_UNRESOLVED = "cogs_account_unresolved"
    INVENTORY_ACCOUNT_UNRESOLVED = "inventory_account_unresolved"
    TAX_ACCOUNT_UNRESOLVED = "tax_account_unresolved"
    WHT_ACCOUNT_UNRESOLVED = "wht_account_unresolved"

    @property
    def is_configuration_gap(self) -> bool:
        """True for warnings that mean a posting entry was omitted."""
        return self.value.endswith("_account_unresolved")


@dataclass(frozen=True)
class EngineWarning:
    """
    A correction or gap the caller should surface to the user.

    ``original`` and ``corrected`` are string renderings of the values so
    the warning can be logged or serialized without Decimal handling.
    """

    code: WarningCode
    message: str
    line_id: str | None = None
    field: str | None = None
    original: str | None = None
    corrected: str | None = None


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxCode:
    """
    Sales tax or withholding tax code.

    ``rate`` is a percentage (18 means 18%).
    """

    id: str
    rate: Decimal
    is_withholding: bool = False
    is_active: bool = True
    posting_account_id: str | None = None
    name: str = ""

    def __post_init__(self) -> None:
        rate = to_decimal(self.rate, "rate")
        if not rate.is_finite() or rate < ZERO:
            raise ValueError(f"Tax code {self.id} has invalid rate: {self.rate}")
        object.__setattr__(self, "rate", rate)


@dataclass(frozen=True)
class Account:
    """Chart-of-accounts entry. ``nature`` is used for display labels only."""

    id: str
    code: str
    name: str
    nature: AccountNature = AccountNature.DEBIT


@dataclass(frozen=True)
class LinkedAccountDefault:
    """Company-wide default account for a role, e.g. ``receivables``."""

    account_type: str
    account_id: str | None


@dataclass(frozen=True)
class Product:
    """
    Catalog product as seen by the pricing engine.

    Category account ids take precedence over the product's own ids when
    resolving posting defaults. ``price_categories`` maps a price
    category id to the calculated price for this product.
    """

    id: str
    name: str = ""
    product_type: str = "goods"
    selling_price: Decimal = ZERO
    average_cost: Decimal = ZERO
    price_tax_inclusive: bool = False
    sales_tax_id: str | None = None
    income_account_id: str | None = None
    category_income_account_id: str | None = None
    cogs_account_id: str | None = None
    category_cogs_account_id: str | None = None
    asset_account_id: str | None = None
    category_asset_account_id: str | None = None
    price_categories: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "selling_price", to_decimal(self.selling_price, "selling_price")
        )
        average_cost = to_decimal(self.average_cost, "average_cost")
        if not average_cost.is_finite() or average_cost < ZERO:
            raise ValueError(
                f"Product {self.id} has invalid average cost: {self.average_cost}"
            )
        object.__setattr__(self, "average_cost", average_cost)
        object.__setattr__(
            self,
            "price_categories",
            MappingProxyType({
                str(k): to_decimal(v, f"price_categories[{k}]")
                for k, v in self.price_categories.items()
            }),
        )

    @property
    def default_income_account_id(self) -> str | None:
        return self.category_income_account_id or self.income_account_id

    @property
    def default_cogs_account_id(self) -> str | None:
        return self.category_cogs_account_id or self.cogs_account_id

    @property
    def default_inventory_account_id(self) -> str | None:
        return self.category_asset_account_id or self.asset_account_id


@dataclass(frozen=True)
class AccountOverrides:
    """
    User-chosen replacements for default accounts.

    Receivable and discount-allowed are single slots. The per-line roles
    are keyed by the default account id they replace, so overriding one
    income account re-routes every line that defaulted to it.
    """

    receivable: str | None = None
    discount_allowed: str | None = None
    income: Mapping[str, str] = field(default_factory=dict)
    cogs: Mapping[str, str] = field(default_factory=dict)
    inventory: Mapping[str, str] = field(default_factory=dict)
    tax_payable: Mapping[str, str] = field(default_factory=dict)
    wht_receivable: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("income", "cogs", "inventory", "tax_payable", "wht_receivable"):
            object.__setattr__(
                self, name, MappingProxyType(dict(getattr(self, name)))
            )

    def effective_account_id(
        self, role: AccountRole, default_id: str | None
    ) -> str | None:
        """``override ?? default`` for the given role."""
        if role is AccountRole.RECEIVABLE:
            return self.receivable or default_id
        if role is AccountRole.DISCOUNT_ALLOWED:
            return self.discount_allowed or default_id
        if default_id is None:
            return None
        by_default: Mapping[str, str] = getattr(self, role.value)
        return by_default.get(default_id) or default_id


# ---------------------------------------------------------------------------
# Line input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Line:
    """
    One invoice or cart row, owned by the caller.

    Callers edit a line by building a new one (``dataclasses.replace``).
    Numeric fields are coerced to Decimal; out-of-range values are kept
    as entered and corrected by the line calculator, which reports each
    correction.
    """

    line_id: str
    product_id: str | None
    quantity: Decimal
    unit_price: Decimal
    discount_mode: DiscountMode = DiscountMode.PERCENTAGE
    discount_percentage: Decimal = ZERO
    discount_amount: Decimal = ZERO
    sales_tax_code_id: str | None = None
    wht_tax_code_id: str | None = None
    price_tax_inclusive: bool = False
    tax_percentage: Decimal = ZERO  # Used only when no sales tax code is selected
    notes: str = ""

    def __post_init__(self) -> None:
        for name in (
            "quantity",
            "unit_price",
            "discount_percentage",
            "discount_amount",
            "tax_percentage",
        ):
            object.__setattr__(self, name, to_decimal(getattr(self, name), name))
        if not isinstance(self.discount_mode, DiscountMode):
            object.__setattr__(self, "discount_mode", DiscountMode(self.discount_mode))


# ---------------------------------------------------------------------------
# Derived results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineResult:
    """
    Computed amounts for one line.

    ``quantity`` is the effective quantity after flooring, so the
    per-unit properties never divide by zero.
    """

    line_id: str
    quantity: Decimal
    unit_price: Decimal
    line_subtotal: Decimal
    discount_value: Decimal
    amount_after_discount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    amount_after_vat: Decimal
    wht_rate: Decimal
    wht_amount: Decimal
    amount_after_wht: Decimal
    line_total: Decimal
    equivalent_amount: Decimal
    warnings: tuple[EngineWarning, ...] = ()

    @property
    def unit_amount_after_discount(self) -> Decimal:
        return self.amount_after_discount / self.quantity

    @property
    def unit_vat_amount(self) -> Decimal:
        return self.vat_amount / self.quantity

    @property
    def unit_line_total(self) -> Decimal:
        return self.line_total / self.quantity


@dataclass(frozen=True)
class InvoiceTotals:
    """Invoice-level totals summed from line results."""

    subtotal: Decimal
    total_discount: Decimal
    total_tax: Decimal
    total_wht: Decimal
    amount_after_discount: Decimal
    amount_after_wht: Decimal
    total: Decimal
    effective_vat_percent: Decimal
    total_equivalent: Decimal = ZERO
    line_count: int = 0


@dataclass(frozen=True)
class PostingEntry:
    """One debit or credit line in the posting preview. Never persisted."""

    account_id: str
    account_code: str
    account_name: str
    nature: AccountNature
    amount: Decimal
    description: str
    role: AccountRole

    def as_dict(self) -> dict[str, Any]:
        return {
            "accountId": self.account_id,
            "accountCode": self.account_code,
            "accountName": self.account_name,
            "nature": self.nature.value.upper(),
            "amount": self.amount,
            "description": self.description,
            "role": self.role.value,
        }
