"""
invoice_services.pricing_service -- Invoice and cart computation pipeline.

Responsibility:
    Run the full pricing pipeline for one snapshot of an invoice (or a
    point-of-sale cart): resolve the exchange rate, calculate every line,
    aggregate totals, and build the posting preview. Also creates new
    lines from catalog products with a normalized, tax-exclusive price.

Architecture position:
    Services -- orchestration over engines + kernel.
    Composes PriceNormalizer, LineCalculator, InvoiceAggregator and
    PostingPreviewBuilder. Holds no state between calls; every call
    recomputes from the snapshot it is given.

Invariants enforced:
    - Stage order: lines, then aggregation, then posting preview. The
      posting preview never sees results from an older snapshot.
    - A product's catalog price is normalized once, when its line is
      created, and never again.
    - Invoices and carts share this one computation path.

Failure modes:
    - UnknownProductError from create_line_from_product when the product
      is not in the reference snapshot.
    - InvalidNumericInputError for non-numeric input, raised when Lines
      are built.

Usage:
    from invoice_services import InvoicePricingService, InvoiceState

    service = InvoicePricingService()
    line = service.create_line("prod-1", reference)
    result = service.compute(InvoiceState(lines=(line,)), reference)
    result.totals.total
    result.posting.is_balanced
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from invoice_engines.aggregation import InvoiceAggregator
from invoice_engines.line import LineCalculator, resolve_exchange_rate
from invoice_engines.payload import build_submission_payload
from invoice_engines.posting import AccountSlot, PostingPreview, PostingPreviewBuilder
from invoice_engines.pricing import PriceNormalizer
from invoice_engines.tax import resolve_rate
from invoice_kernel.domain.reference_snapshot import ReferenceData
from invoice_kernel.domain.settings import DEFAULT_SETTINGS, EngineSettings
from invoice_kernel.domain.types import (
    AccountOverrides,
    EngineWarning,
    InvoiceTotals,
    Line,
    LineResult,
)
from invoice_kernel.domain.values import ONE
from invoice_kernel.exceptions import UnknownProductError
from invoice_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.pricing")


@dataclass(frozen=True)
class InvoiceState:
    """
    One snapshot of an invoice or cart as edited by the user.

    ``exchange_rate`` is taken as entered; the pipeline falls back to the
    configured default for missing or non-positive values.
    """

    lines: tuple[Line, ...] = ()
    exchange_rate: Decimal | int | str | float | None = ONE
    currency_code: str | None = None
    customer_receivable_account_id: str | None = None
    overrides: AccountOverrides = field(default_factory=AccountOverrides)
    invoice_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))


@dataclass(frozen=True)
class InvoiceComputation:
    """Everything derived from one InvoiceState."""

    line_results: tuple[LineResult, ...]
    totals: InvoiceTotals
    posting: PostingPreview
    warnings: tuple[EngineWarning, ...]
    exchange_rate: Decimal

    def result_for(self, line_id: str) -> LineResult | None:
        for result in self.line_results:
            if result.line_id == line_id:
                return result
        return None


class InvoicePricingService:
    """
    Pricing pipeline for invoices and carts.

    Engines are injected so callers can share settings across them;
    defaults are built from ``settings``.
    """

    def __init__(
        self,
        settings: EngineSettings = DEFAULT_SETTINGS,
        line_calculator: LineCalculator | None = None,
        aggregator: InvoiceAggregator | None = None,
        posting_builder: PostingPreviewBuilder | None = None,
        price_normalizer: PriceNormalizer | None = None,
    ):
        self._settings = settings
        self._line_calculator = line_calculator or LineCalculator(settings)
        self._aggregator = aggregator or InvoiceAggregator()
        self._posting_builder = posting_builder or PostingPreviewBuilder(settings)
        self._price_normalizer = price_normalizer or PriceNormalizer()

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    def compute(self, state: InvoiceState, reference: ReferenceData) -> InvoiceComputation:
        """
        Recompute every derived value for ``state``.

        Args:
            state: Current invoice or cart snapshot
            reference: Tax codes, accounts, products and linked defaults

        Returns:
            InvoiceComputation with line results in line order, totals,
            the posting preview, and every warning raised along the way.
        """
        with LogContext.bind(invoice_id=state.invoice_id):
            t0 = time.monotonic()
            warnings: list[EngineWarning] = []

            exchange_rate, rate_warning = resolve_exchange_rate(
                state.exchange_rate, self._settings
            )
            if rate_warning is not None:
                logger.warning("exchange_rate_clamped", extra={
                    "original": rate_warning.original,
                    "corrected": rate_warning.corrected,
                })
                warnings.append(rate_warning)

            line_results = tuple(
                self._line_calculator.calculate(line, reference, exchange_rate)
                for line in state.lines
            )
            for result in line_results:
                warnings.extend(result.warnings)

            totals = self._aggregator.aggregate(line_results=line_results)
            posting = self._posting_builder.build(
                lines=state.lines,
                line_results=line_results,
                totals=totals,
                reference=reference,
                overrides=state.overrides,
                customer_receivable_account_id=state.customer_receivable_account_id,
                currency=state.currency_code,
            )
            warnings.extend(posting.warnings)

            logger.info("invoice_computed", extra={
                "line_count": len(line_results),
                "total": str(totals.total),
                "is_balanced": posting.is_balanced,
                "warning_count": len(warnings),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            })

            return InvoiceComputation(
                line_results=line_results,
                totals=totals,
                posting=posting,
                warnings=tuple(warnings),
                exchange_rate=exchange_rate,
            )

    def create_line(
        self,
        product_id: str,
        reference: ReferenceData,
        *,
        line_id: str | None = None,
        price_category_id: str | None = None,
    ) -> Line:
        """
        Build a new line for a catalog product.

        The unit price is the product's catalog price (or price-category
        price), converted to tax-exclusive with the rate of the product's
        sales tax code. The line defaults to quantity 1 and that sales
        tax code.

        Raises:
            UnknownProductError: If the product is not in ``reference``.
        """
        product = reference.product(product_id)
        if product is None:
            logger.error("product_not_found", extra={"product_id": product_id})
            raise UnknownProductError(product_id)

        tax_rate = resolve_rate(reference, product.sales_tax_id).rate
        unit_price = self._price_normalizer.base_price_for(
            product, tax_rate, price_category_id
        )

        line = Line(
            line_id=line_id or uuid.uuid4().hex,
            product_id=product.id,
            quantity=ONE,
            unit_price=unit_price,
            sales_tax_code_id=product.sales_tax_id,
            price_tax_inclusive=product.price_tax_inclusive,
            tax_percentage=tax_rate,
        )
        logger.info("line_created", extra={
            "line_id": line.line_id,
            "product_id": product.id,
            "unit_price": str(unit_price),
            "sales_tax_code_id": product.sales_tax_id,
        })
        return line

    def account_slots(
        self, state: InvoiceState, reference: ReferenceData
    ) -> tuple[AccountSlot, ...]:
        """Accounts involved in posting ``state``, for override selection."""
        return self._posting_builder.account_slots(
            lines=state.lines,
            reference=reference,
            overrides=state.overrides,
            customer_receivable_account_id=state.customer_receivable_account_id,
        )

    def submission_payload(
        self,
        state: InvoiceState,
        computation: InvoiceComputation,
        *,
        round_to_currency: bool = False,
    ) -> list[dict[str, Any]]:
        """Per-line payload for the invoice-creation API."""
        return build_submission_payload(
            state.lines,
            computation.line_results,
            currency_id=state.currency_code,
            exchange_rate=computation.exchange_rate,
            round_to_currency=round_to_currency,
        )


def compute(
    state: InvoiceState,
    reference: ReferenceData,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> InvoiceComputation:
    """Run the pricing pipeline once with default engines."""
    return InvoicePricingService(settings).compute(state, reference)


def create_line_from_product(
    product_id: str,
    reference: ReferenceData,
    *,
    line_id: str | None = None,
    price_category_id: str | None = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> Line:
    """Build a new line for a catalog product with default engines."""
    return InvoicePricingService(settings).create_line(
        product_id, reference, line_id=line_id, price_category_id=price_category_id
    )


def compute_cart(
    lines: Sequence[Line],
    reference: ReferenceData,
    *,
    customer_receivable_account_id: str | None = None,
    currency_code: str | None = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> InvoiceComputation:
    """
    Point-of-sale cart totals. A cart is an invoice at exchange rate 1
    with no account overrides.
    """
    state = InvoiceState(
        lines=tuple(lines),
        currency_code=currency_code,
        customer_receivable_account_id=customer_receivable_account_id,
    )
    return compute(state, reference, settings)
