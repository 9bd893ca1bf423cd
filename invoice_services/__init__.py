"""
invoice_services -- Package init and public API.

Responsibility:
    Orchestration over the pure calculation engines (invoice_engines/).
    This is the layer callers use to price an invoice or cart snapshot.

Architecture position:
    Services -- orchestration over engines + kernel.

    Dependency direction:
        invoice_services/ -> invoice_engines/  (allowed)
        invoice_services/ -> invoice_kernel/   (allowed)
        invoice_engines/  -> invoice_services/ (FORBIDDEN)
        invoice_kernel/   -> invoice_services/ (FORBIDDEN)
"""

from invoice_kernel.logging_config import get_logger

logger = get_logger("services")

from invoice_services.pricing_service import (
    InvoiceComputation,
    InvoicePricingService,
    InvoiceState,
    compute,
    compute_cart,
    create_line_from_product,
)

__all__ = [
    "InvoiceComputation",
    "InvoicePricingService",
    "InvoiceState",
    "compute",
    "compute_cart",
    "create_line_from_product",
]
