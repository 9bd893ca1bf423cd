"""
Invoice Aggregator - sum line results into invoice totals.

The invoice total is the sum of per-line totals, not a re-derivation
from the aggregate columns, so lines with different tax rates never
drift apart from the header.

Usage:
    from invoice_engines.aggregation import InvoiceAggregator

    totals = InvoiceAggregator().aggregate(line_results=results)
    totals.total  # == sum(r.line_total for r in results)
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from decimal import Decimal

from invoice_kernel.domain.types import InvoiceTotals, LineResult
from invoice_kernel.domain.values import HUNDRED, ZERO
from invoice_kernel.logging_config import get_logger
from invoice_engines.tracer import traced_engine

logger = get_logger("engines.aggregation")


def effective_vat_percent(total_tax: Decimal, amount_after_discount: Decimal) -> Decimal:
    """Display metric: total VAT as a percentage of the discounted amount."""
    if amount_after_discount > ZERO:
        return total_tax / amount_after_discount * HUNDRED
    return ZERO


class InvoiceAggregator:
    """
    Aggregate per-line results.

    Pure function - runs only after every line of the current snapshot
    has been calculated.
    """

    @traced_engine("aggregation", "1.0", fingerprint_fields=("line_results",))
    def aggregate(self, line_results: Sequence[LineResult]) -> InvoiceTotals:
        t0 = time.monotonic()

        subtotal = ZERO
        total_discount = ZERO
        total_tax = ZERO
        total_wht = ZERO
        total = ZERO
        total_equivalent = ZERO

        for result in line_results:
            subtotal += result.line_subtotal
            total_discount += result.discount_value
            total_tax += result.vat_amount
            total_wht += result.wht_amount
            total += result.line_total
            total_equivalent += result.equivalent_amount

        amount_after_discount = subtotal - total_discount
        amount_after_wht = amount_after_discount - total_wht

        totals = InvoiceTotals(
            subtotal=subtotal,
            total_discount=total_discount,
            total_tax=total_tax,
            total_wht=total_wht,
            amount_after_discount=amount_after_discount,
            amount_after_wht=amount_after_wht,
            total=total,
            effective_vat_percent=effective_vat_percent(total_tax, amount_after_discount),
            total_equivalent=total_equivalent,
            line_count=len(line_results),
        )

        logger.info("invoice_aggregated", extra={
            "line_count": totals.line_count,
            "subtotal": str(subtotal),
            "total_discount": str(total_discount),
            "total_tax": str(total_tax),
            "total_wht": str(total_wht),
            "total": str(total),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return totals
