"""
Price Normalizer - convert catalog prices to tax-exclusive base prices.

Runs once, when a product is added to an invoice or cart line. Every
downstream stage assumes ``unit_price`` is exclusive of VAT, so a
tax-inclusive catalog price is divided out here and never again.

Usage:
    from invoice_engines.pricing import PriceNormalizer, normalize_price
    from decimal import Decimal

    normalize_price(Decimal("118"), Decimal("18"), is_tax_inclusive=True)
    # Decimal("100")
"""

from __future__ import annotations

from decimal import Decimal

from invoice_kernel.domain.types import Product
from invoice_kernel.domain.values import HUNDRED, ONE, ZERO, to_decimal
from invoice_kernel.logging_config import get_logger

logger = get_logger("engines.pricing")


def normalize_price(
    selling_price: Decimal | int | str | float,
    tax_rate: Decimal | int | str | float,
    is_tax_inclusive: bool,
) -> Decimal:
    """
    Base (exclusive) price for a catalog price.

    Args:
        selling_price: Catalog or price-category price
        tax_rate: VAT rate as a percentage (18 for 18%)
        is_tax_inclusive: True if ``selling_price`` already contains VAT

    Returns:
        ``selling_price / (1 + tax_rate/100)`` for inclusive prices with a
        positive rate, otherwise ``selling_price`` unchanged.
    """
    price = to_decimal(selling_price, "selling_price")
    rate = to_decimal(tax_rate, "tax_rate")
    if is_tax_inclusive and rate.is_finite() and rate > ZERO:
        return price / (ONE + rate / HUNDRED)
    return price


def to_inclusive_price(
    base_price: Decimal | int | str | float,
    tax_rate: Decimal | int | str | float,
) -> Decimal:
    """Reconstitute the tax-inclusive price from a base price."""
    base = to_decimal(base_price, "base_price")
    rate = to_decimal(tax_rate, "tax_rate")
    return base * (ONE + rate / HUNDRED)


def resolve_catalog_price(
    product: Product,
    price_category_id: str | None = None,
) -> Decimal:
    """
    Catalog price for a product before tax normalization.

    Selling price, falling back to average cost when no selling price is
    set. A price category's calculated price replaces it when the category
    is selected and the product carries a price for it. Category prices
    are derived from the selling price, so they share its tax-inclusive
    flag.
    """
    price = product.selling_price if product.selling_price else product.average_cost
    if price_category_id is not None:
        category_price = product.price_categories.get(str(price_category_id).strip())
        if category_price:
            price = category_price
    return price


class PriceNormalizer:
    """
    Resolve and normalize the unit price of a newly added line.

    Pure - no I/O. The product's VAT rate is supplied by the caller from
    the product's sales tax code.
    """

    def normalize(
        self,
        selling_price: Decimal,
        tax_rate: Decimal,
        is_tax_inclusive: bool,
    ) -> Decimal:
        return normalize_price(selling_price, tax_rate, is_tax_inclusive)

    def base_price_for(
        self,
        product: Product,
        tax_rate: Decimal,
        price_category_id: str | None = None,
    ) -> Decimal:
        """Exclusive unit price for ``product`` under the selected price category."""
        catalog_price = resolve_catalog_price(product, price_category_id)
        base_price = normalize_price(catalog_price, tax_rate, product.price_tax_inclusive)

        logger.debug("price_normalized", extra={
            "product_id": product.id,
            "price_category_id": price_category_id,
            "catalog_price": str(catalog_price),
            "tax_rate": str(tax_rate),
            "is_tax_inclusive": product.price_tax_inclusive,
            "base_price": str(base_price),
        })
        return base_price
