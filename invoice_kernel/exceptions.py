"""
Typed exception hierarchy for the invoice pricing engine.

Every exception carries a class-level ``code`` attribute so callers can
catch by type and report by code instead of parsing messages.

    InvoiceEngineError (base)
    |
    +-- InputError
    |   +-- InvalidNumericInputError
    |
    +-- ReferenceDataError
    |   +-- DuplicateReferenceError
    |   +-- UnknownProductError
    |
    +-- PostingPreviewError
    |   +-- UnbalancedPreviewError
    |   +-- IncompleteConfigurationError
    |
    +-- ConfigurationError
        +-- InvalidSettingsError

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | INVALID_NUMERIC_INPUT       | Value cannot be read as a number at all
----------------|-----------------------------|-----------------------------------------
Reference data  | DUPLICATE_REFERENCE         | Two records share an id in one snapshot
                | UNKNOWN_PRODUCT             | Line creation for a product not in snapshot
----------------|-----------------------------|-----------------------------------------
Posting preview | UNBALANCED_PREVIEW          | Debits != Credits when caller requires it
                | INCOMPLETE_CONFIGURATION    | Required account roles did not resolve
----------------|-----------------------------|-----------------------------------------
Configuration   | INVALID_SETTINGS            | Engine settings file has bad keys/values

Numeric input that is malformed but still a number (negative quantity,
NaN, discount above the line subtotal) is never raised. The engines clamp
it and report an ``EngineWarning`` instead, since the caller is a live
editing form.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class InvoiceEngineError(Exception):
    """
    Base exception for all invoice engine errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "INVOICE_ENGINE_ERROR"


# Input exceptions


class InputError(InvoiceEngineError):
    """Base exception for caller-supplied input errors."""

    code: str = "INPUT_ERROR"


class InvalidNumericInputError(InputError):
    """Value cannot be interpreted as a number."""

    code: str = "INVALID_NUMERIC_INPUT"

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = repr(value)
        super().__init__(f"Field {field!r} is not numeric: {value!r}")


# Reference data exceptions


class ReferenceDataError(InvoiceEngineError):
    """Base exception for reference data snapshot errors."""

    code: str = "REFERENCE_DATA_ERROR"


class DuplicateReferenceError(ReferenceDataError):
    """Two records of the same kind share an id."""

    code: str = "DUPLICATE_REFERENCE"

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"Duplicate {kind} id in reference data: {record_id}")


class UnknownProductError(ReferenceDataError):
    """Product id is not present in the reference snapshot."""

    code: str = "UNKNOWN_PRODUCT"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found in reference data: {product_id}")


# Posting preview exceptions


class PostingPreviewError(InvoiceEngineError):
    """Base exception for posting preview gating errors."""

    code: str = "POSTING_PREVIEW_ERROR"


class UnbalancedPreviewError(PostingPreviewError):
    """Preview debits do not equal credits."""

    code: str = "UNBALANCED_PREVIEW"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = str(debits)
        self.credits = str(credits)
        super().__init__(
            f"Posting preview is unbalanced: debits={debits}, credits={credits}"
        )


class IncompleteConfigurationError(PostingPreviewError):
    """One or more account roles did not resolve to an account."""

    code: str = "INCOMPLETE_CONFIGURATION"

    def __init__(self, warning_codes: list[str]):
        self.warning_codes = warning_codes
        super().__init__(
            "Posting configuration is incomplete: " + ", ".join(warning_codes)
        )


# Configuration exceptions


class ConfigurationError(InvoiceEngineError):
    """Base exception for engine configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class InvalidSettingsError(ConfigurationError):
    """Engine settings contain an unknown key or an invalid value."""

    code: str = "INVALID_SETTINGS"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid engine setting {key!r}: {reason}")
