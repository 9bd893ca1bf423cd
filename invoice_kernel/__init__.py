"""
Invoice Kernel - domain core for the invoice pricing engine.

Provides:
- Immutable line, tax code, account and product value objects
- Decimal coercion and numeric clamping helpers
- Currency precision lookups for display rounding
- Typed exceptions with machine-readable codes
- Structured JSON logging
"""

__version__ = "0.1.0"
