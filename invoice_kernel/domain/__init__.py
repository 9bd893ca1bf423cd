"""
Pure domain layer.

Immutable value objects and numeric helpers with NO dependencies on:
- Persistence or HTTP collaborators
- Time/clock
- I/O

Every object here is a frozen dataclass or a pure function.
"""

from invoice_kernel.domain.currency import CurrencyRegistry
from invoice_kernel.domain.reference_snapshot import ReferenceData
from invoice_kernel.domain.settings import DEFAULT_SETTINGS, EngineSettings
from invoice_kernel.domain.types import (
    Account,
    AccountNature,
    AccountOverrides,
    AccountRole,
    DiscountMode,
    EngineWarning,
    InvoiceTotals,
    Line,
    LineResult,
    LinkedAccountDefault,
    PostingEntry,
    Product,
    TaxCode,
    WarningCode,
)
from invoice_kernel.domain.values import (
    clamp_non_negative,
    clamp_range,
    round_amount,
    to_decimal,
)

__all__ = [
    "Account",
    "AccountNature",
    "AccountOverrides",
    "AccountRole",
    "CurrencyRegistry",
    "DEFAULT_SETTINGS",
    "DiscountMode",
    "EngineSettings",
    "EngineWarning",
    "InvoiceTotals",
    "Line",
    "LineResult",
    "LinkedAccountDefault",
    "PostingEntry",
    "Product",
    "ReferenceData",
    "TaxCode",
    "WarningCode",
    "clamp_non_negative",
    "clamp_range",
    "round_amount",
    "to_decimal",
]
