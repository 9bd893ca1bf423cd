"""EngineSettings -- tunables the engines read for one computation pass."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType

from invoice_kernel.domain.types import AccountRole

DEFAULT_DESCRIPTIONS: Mapping[AccountRole, str] = MappingProxyType({
    AccountRole.RECEIVABLE: "Accounts Receivable",
    AccountRole.DISCOUNT_ALLOWED: "Discount Allowed",
    AccountRole.INCOME: "Sales Revenue",
    AccountRole.COGS: "COGS",
    AccountRole.INVENTORY: "Inventory",
    AccountRole.TAX_PAYABLE: "Tax Payable",
    AccountRole.WHT_RECEIVABLE: "WHT Receivable",
})


@dataclass(frozen=True)
class EngineSettings:
    """
    Engine tunables.

    Built from YAML by ``invoice_config``; the defaults here are what the
    engines use when no configuration is supplied.
    """

    quantity_floor: Decimal = Decimal("0.0001")
    default_exchange_rate: Decimal = Decimal("1")
    # Upper bound for quantity, unit price, fallback tax percentage and
    # exchange rate. Keeps products and invoice sums inside Decimal range.
    input_ceiling: Decimal = Decimal("1e12")
    rounding: str = ROUND_HALF_UP
    service_product_types: frozenset[str] = frozenset({"services"})
    descriptions: Mapping[AccountRole, str] = field(
        default_factory=lambda: DEFAULT_DESCRIPTIONS
    )

    def describe(self, role: AccountRole) -> str:
        return self.descriptions.get(role, DEFAULT_DESCRIPTIONS[role])

    def is_service(self, product_type: str | None) -> bool:
        return product_type in self.service_product_types


DEFAULT_SETTINGS = EngineSettings()
