"""
Module: invoice_engines
Responsibility:
    Package entrypoint that re-exports all public symbols from the pure
    calculation engine sub-modules. This is the canonical import surface
    for higher layers (invoice_services).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import invoice_kernel (and sibling engine modules).
    MUST NOT import invoice_config or invoice_services.

Invariants enforced:
    - Decimal-only arithmetic: floats are converted at the boundary via
      ``str`` and never participate in arithmetic.
    - Determinism: identical inputs always produce identical outputs.
    - Input is never mutated; every result is a new frozen value.

Failure modes:
    - InvalidNumericInputError for non-numeric input, raised when a Line
      or Product is constructed.
    - Numeric-but-malformed input is clamped and reported as an
      EngineWarning, never raised.

Audit relevance:
    Aggregation and posting-preview invocations are traced via the
    ``@traced_engine`` decorator (see ``invoice_engines.tracer``), emitting
    INVOICE_ENGINE_TRACE log records with engine name, version, input
    fingerprint, and duration.

Usage:
    from invoice_engines.pricing import PriceNormalizer, normalize_price
    from invoice_engines.tax import TaxEngine
    from invoice_engines.line import LineCalculator
    from invoice_engines.aggregation import InvoiceAggregator
    from invoice_engines.posting import PostingPreviewBuilder
    from invoice_engines.payload import build_submission_payload
"""

from invoice_kernel.logging_config import get_logger

logger = get_logger("engines")

from invoice_engines.aggregation import (
    InvoiceAggregator,
    effective_vat_percent,
)
from invoice_engines.line import (
    LineCalculator,
    resolve_exchange_rate,
)
from invoice_engines.payload import build_submission_payload
from invoice_engines.posting import (
    BALANCE_TOLERANCE,
    AccountResolver,
    AccountSlot,
    PostingPreview,
    PostingPreviewBuilder,
    distribute_proportionally,
    list_account_slots,
)
from invoice_engines.pricing import (
    PriceNormalizer,
    normalize_price,
    resolve_catalog_price,
    to_inclusive_price,
)
from invoice_engines.tax import (
    RateStatus,
    ResolvedRate,
    TaxEngine,
    clamp_discount_amount,
    clamp_discount_percentage,
    compute_discount,
    compute_vat,
    compute_wht,
    resolve_rate,
)
from invoice_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Aggregation
    "InvoiceAggregator",
    "effective_vat_percent",
    # Line
    "LineCalculator",
    "resolve_exchange_rate",
    # Payload
    "build_submission_payload",
    # Posting
    "BALANCE_TOLERANCE",
    "AccountResolver",
    "AccountSlot",
    "PostingPreview",
    "PostingPreviewBuilder",
    "distribute_proportionally",
    "list_account_slots",
    # Pricing
    "PriceNormalizer",
    "normalize_price",
    "resolve_catalog_price",
    "to_inclusive_price",
    # Tax
    "RateStatus",
    "ResolvedRate",
    "TaxEngine",
    "clamp_discount_amount",
    "clamp_discount_percentage",
    "compute_discount",
    "compute_vat",
    "compute_wht",
    "resolve_rate",
    # Tracer
    "compute_input_fingerprint",
    "traced_engine",
]
