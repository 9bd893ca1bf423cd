"""Currency -- display precision per currency code."""

from decimal import Decimal
from typing import ClassVar


class CurrencyRegistry:
    """Decimal places per currency code, used for display and payload rounding.

    Invoices reference currencies by the caller's own identifiers, so an
    unknown code is not an error; it falls back to two decimal places.
    """

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    # Only currencies whose minor unit differs from the default are listed.
    _DECIMAL_PLACES: ClassVar[dict[str, int]] = {
        # Zero decimal currencies
        "BIF": 0,
        "CLP": 0,
        "DJF": 0,
        "GNF": 0,
        "ISK": 0,
        "JPY": 0,
        "KMF": 0,
        "KRW": 0,
        "PYG": 0,
        "RWF": 0,
        "UGX": 0,
        "VND": 0,
        "VUV": 0,
        "XAF": 0,
        "XOF": 0,
        "XPF": 0,
        # Three decimal currencies
        "BHD": 3,
        "IQD": 3,
        "JOD": 3,
        "KWD": 3,
        "LYD": 3,
        "OMR": 3,
        "TND": 3,
        # Four decimal currencies
        "CLF": 4,
    }

    @classmethod
    def get_decimal_places(cls, code: str | None) -> int:
        """Decimal places for a currency; default for unknown or missing codes."""
        if not code or not isinstance(code, str):
            return cls.DEFAULT_DECIMAL_PLACES
        return cls._DECIMAL_PLACES.get(
            code.upper().strip(), cls.DEFAULT_DECIMAL_PLACES
        )

    @classmethod
    def get_quantum(cls, code: str | None) -> Decimal:
        """Quantum for ``Decimal.quantize`` at the currency's precision."""
        return Decimal(10) ** -cls.get_decimal_places(code)
