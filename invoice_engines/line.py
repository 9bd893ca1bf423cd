"""
Module: invoice_engines.line
Responsibility:
    Compose TaxEngine outputs into a complete LineResult for one line:
    subtotal, discount, discounted amount, VAT, WHT, line total and the
    equivalent amount in the invoice's exchange-rate terms.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports kernel domain types and sibling engine modules only.

Invariants enforced:
    - line_total == amount_after_discount - wht_amount + vat_amount.
    - VAT and WHT are both computed from amount_after_discount.
    - A line never reads another line's result.
    - Out-of-range input is clamped and reported as an EngineWarning;
      nothing on this path raises for numeric-but-malformed input.

Failure modes:
    - None for numeric input. Non-numeric input is rejected earlier, when
      the Line is constructed.
"""

from __future__ import annotations

from decimal import Decimal

from invoice_kernel.domain.reference_snapshot import ReferenceData
from invoice_kernel.domain.settings import DEFAULT_SETTINGS, EngineSettings
from invoice_kernel.domain.types import (
    DiscountMode,
    EngineWarning,
    Line,
    LineResult,
    WarningCode,
)
from invoice_kernel.domain.values import (
    ZERO,
    clamp_ceiling,
    clamp_floor,
    clamp_non_negative,
    to_decimal,
)
from invoice_kernel.logging_config import get_logger
from invoice_engines.tax import (
    RateStatus,
    ResolvedRate,
    TaxEngine,
    clamp_discount_amount,
    clamp_discount_percentage,
)

logger = get_logger("engines.line")


def _correction(
    code: WarningCode,
    line_id: str | None,
    field: str,
    original: Decimal,
    corrected: Decimal,
) -> EngineWarning:
    return EngineWarning(
        code=code,
        message=f"{field} {original} was corrected to {corrected}",
        line_id=line_id,
        field=field,
        original=str(original),
        corrected=str(corrected),
    )


def _rate_warning(
    resolved: ResolvedRate, line_id: str, field: str, tax_code_id: str | None
) -> EngineWarning | None:
    if resolved.status is RateStatus.NOT_FOUND:
        return EngineWarning(
            code=WarningCode.TAX_CODE_NOT_FOUND,
            message=f"Tax code {tax_code_id} not found; line treated as untaxed",
            line_id=line_id,
            field=field,
        )
    if resolved.status is RateStatus.INACTIVE:
        return EngineWarning(
            code=WarningCode.TAX_CODE_INACTIVE,
            message=f"Tax code {tax_code_id} is inactive; line treated as untaxed",
            line_id=line_id,
            field=field,
        )
    if resolved.status is RateStatus.WRONG_KIND:
        kind = "a withholding" if field == "sales_tax_code_id" else "not a withholding"
        return EngineWarning(
            code=WarningCode.TAX_CODE_WRONG_KIND,
            message=f"Tax code {tax_code_id} is {kind} code; line treated as untaxed",
            line_id=line_id,
            field=field,
        )
    return None


def resolve_exchange_rate(
    value: Decimal | int | str | float | None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> tuple[Decimal, EngineWarning | None]:
    """
    Invoice exchange rate, falling back to the default for missing,
    zero, negative or non-finite input and capped at the input ceiling.
    """
    rate = to_decimal(value, "exchange_rate", default=settings.default_exchange_rate)
    if rate.is_finite() and rate > ZERO:
        capped, corrected = clamp_ceiling(rate, settings.input_ceiling)
        if not corrected:
            return rate, None
        return capped, _correction(
            WarningCode.EXCHANGE_RATE_CLAMPED, None, "exchange_rate", rate, capped
        )
    fallback = settings.default_exchange_rate
    return fallback, _correction(
        WarningCode.EXCHANGE_RATE_CLAMPED, None, "exchange_rate", rate, fallback
    )


class LineCalculator:
    """
    Per-line pricing.

    Contract:
        Pure function of (line, reference snapshot, exchange rate,
        settings). Returns a frozen LineResult carrying any corrections
        applied to the input as warnings.
    """

    def __init__(
        self,
        settings: EngineSettings = DEFAULT_SETTINGS,
        tax_engine: TaxEngine | None = None,
    ):
        self._settings = settings
        self._tax = tax_engine or TaxEngine()

    def calculate(
        self,
        line: Line,
        reference: ReferenceData,
        exchange_rate: Decimal = Decimal("1"),
    ) -> LineResult:
        """
        Compute the LineResult for one line.

        Args:
            line: Line input as entered by the caller
            reference: Tax code snapshot for rate lookups
            exchange_rate: Invoice exchange rate, already resolved
        """
        warnings: list[EngineWarning] = []

        ceiling = self._settings.input_ceiling

        quantity, floored = clamp_floor(line.quantity, self._settings.quantity_floor)
        quantity, capped = clamp_ceiling(quantity, ceiling)
        if floored or capped:
            warnings.append(_correction(
                WarningCode.QUANTITY_CLAMPED, line.line_id, "quantity",
                line.quantity, quantity,
            ))

        unit_price, floored = clamp_non_negative(line.unit_price)
        unit_price, capped = clamp_ceiling(unit_price, ceiling)
        if floored or capped:
            warnings.append(_correction(
                WarningCode.UNIT_PRICE_CLAMPED, line.line_id, "unit_price",
                line.unit_price, unit_price,
            ))

        line_subtotal = quantity * unit_price

        if line.discount_mode is DiscountMode.AMOUNT:
            discount_input, corrected = clamp_discount_amount(
                line.discount_amount, line_subtotal
            )
            if corrected:
                warnings.append(_correction(
                    WarningCode.DISCOUNT_AMOUNT_CLAMPED, line.line_id,
                    "discount_amount", line.discount_amount, discount_input,
                ))
            discount_value = self._tax.discount(
                line_subtotal, DiscountMode.AMOUNT, ZERO, discount_input
            )
        else:
            discount_input, corrected = clamp_discount_percentage(
                line.discount_percentage
            )
            if corrected:
                warnings.append(_correction(
                    WarningCode.DISCOUNT_PERCENTAGE_CLAMPED, line.line_id,
                    "discount_percentage", line.discount_percentage, discount_input,
                ))
            discount_value = self._tax.discount(
                line_subtotal, DiscountMode.PERCENTAGE, discount_input, ZERO
            )

        fallback_rate, floored = clamp_non_negative(line.tax_percentage)
        fallback_rate, capped = clamp_ceiling(fallback_rate, ceiling)
        if (floored or capped) and line.sales_tax_code_id is None:
            warnings.append(_correction(
                WarningCode.TAX_PERCENTAGE_CLAMPED, line.line_id,
                "tax_percentage", line.tax_percentage, fallback_rate,
            ))

        vat = self._tax.sales_rate(reference, line.sales_tax_code_id, fallback_rate)
        wht = self._tax.withholding_rate(reference, line.wht_tax_code_id)
        for resolved, field, code_id in (
            (vat, "sales_tax_code_id", line.sales_tax_code_id),
            (wht, "wht_tax_code_id", line.wht_tax_code_id),
        ):
            warning = _rate_warning(resolved, line.line_id, field, code_id)
            if warning is not None:
                warnings.append(warning)

        amount_after_discount = line_subtotal - discount_value
        vat_amount = self._tax.vat(amount_after_discount, vat.rate)
        amount_after_vat = amount_after_discount + vat_amount
        wht_amount = self._tax.wht(amount_after_discount, wht.rate)
        amount_after_wht = amount_after_discount - wht_amount
        line_total = amount_after_wht + vat_amount
        equivalent_amount = line_total * exchange_rate

        for warning in warnings:
            event = "input_clamped" if warning.corrected is not None else "tax_code_unresolved"
            logger.warning(event, extra={
                "line_id": line.line_id,
                "warning_code": warning.code.value,
                "field": warning.field,
                "original": warning.original,
                "corrected": warning.corrected,
            })

        logger.debug("line_calculated", extra={
            "line_id": line.line_id,
            "product_id": line.product_id,
            "line_subtotal": str(line_subtotal),
            "discount_value": str(discount_value),
            "vat_rate": str(vat.rate),
            "vat_amount": str(vat_amount),
            "wht_rate": str(wht.rate),
            "wht_amount": str(wht_amount),
            "line_total": str(line_total),
        })

        return LineResult(
            line_id=line.line_id,
            quantity=quantity,
            unit_price=unit_price,
            line_subtotal=line_subtotal,
            discount_value=discount_value,
            amount_after_discount=amount_after_discount,
            vat_rate=vat.rate,
            vat_amount=vat_amount,
            amount_after_vat=amount_after_vat,
            wht_rate=wht.rate,
            wht_amount=wht_amount,
            amount_after_wht=amount_after_wht,
            line_total=line_total,
            equivalent_amount=equivalent_amount,
            warnings=tuple(warnings),
        )
