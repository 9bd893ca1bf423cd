"""
Submission Payload - per-line request body for the invoice-creation API.

The payload carries the engine's effective values, not the raw input:
quantities and prices after clamping, the discount actually applied, and
the tax amounts computed for the current snapshot. In amount mode the
discount percentage is reported as zero so the receiving side never
applies both.

Usage:
    from invoice_engines.payload import build_submission_payload

    rows = build_submission_payload(
        lines, results, currency_id="USD", exchange_rate=Decimal("1"),
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from invoice_kernel.domain.types import DiscountMode, Line, LineResult
from invoice_kernel.domain.values import ONE, ZERO, round_amount
from invoice_kernel.logging_config import get_logger
from invoice_engines.tax import clamp_discount_percentage

logger = get_logger("engines.payload")


def _line_payload(
    line: Line,
    result: LineResult,
    currency_id: str | None,
    exchange_rate: Decimal,
    money,
) -> dict[str, Any]:
    if line.discount_mode is DiscountMode.AMOUNT:
        discount_percentage = ZERO
    else:
        discount_percentage, _ = clamp_discount_percentage(line.discount_percentage)

    return {
        "productId": line.product_id,
        "quantity": result.quantity,
        "unitPrice": money(result.unit_price),
        "discountPercentage": discount_percentage,
        "discountAmount": money(result.discount_value),
        "taxPercentage": result.vat_rate,
        "taxAmount": money(result.vat_amount),
        "salesTaxId": line.sales_tax_code_id,
        "whtTaxId": line.wht_tax_code_id,
        "whtAmount": money(result.wht_amount),
        "currencyId": currency_id,
        "exchangeRate": exchange_rate,
        "equivalentAmount": money(result.equivalent_amount),
        "lineTotal": money(result.line_total),
        "priceTaxInclusive": line.price_tax_inclusive,
        "notes": line.notes,
    }


def build_submission_payload(
    lines: Sequence[Line],
    line_results: Sequence[LineResult],
    *,
    currency_id: str | None = None,
    exchange_rate: Decimal = ONE,
    round_to_currency: bool = False,
) -> list[dict[str, Any]]:
    """
    Map each line and its result to the API's camelCase line shape.

    Args:
        lines: Line inputs, in the same order as ``line_results``
        line_results: LineCalculator output for the same snapshot
        currency_id: Invoice currency code
        exchange_rate: Resolved invoice exchange rate
        round_to_currency: Round monetary fields to the currency's
            decimal places; rates and quantities are left as computed

    Raises:
        ValueError: If lines and results do not pair up by line_id.
    """
    if len(lines) != len(line_results):
        raise ValueError(
            f"lines ({len(lines)}) and line_results ({len(line_results)}) differ in length"
        )

    if round_to_currency:
        def money(value: Decimal) -> Decimal:
            return round_amount(value, currency_id)
    else:
        def money(value: Decimal) -> Decimal:
            return value

    rows = []
    for line, result in zip(lines, line_results):
        if line.line_id != result.line_id:
            raise ValueError(f"Line {line.line_id} paired with result for {result.line_id}")
        rows.append(_line_payload(line, result, currency_id, exchange_rate, money))

    logger.debug("submission_payload_built", extra={
        "line_count": len(rows),
        "currency_id": currency_id,
        "rounded": round_to_currency,
    })
    return rows
