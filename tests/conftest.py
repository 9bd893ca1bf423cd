"""
Pytest fixtures for the invoice engine test suite.

Provides:
- A fully configured reference data snapshot
- Engine instances with default settings
- A JSON log capture for asserting on structured log records
"""

import json
import logging
from io import StringIO

import pytest

from invoice_engines.aggregation import InvoiceAggregator
from invoice_engines.line import LineCalculator
from invoice_engines.posting import PostingPreviewBuilder
from invoice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from invoice_services.pricing_service import InvoicePricingService
from tests.factories import build_reference


@pytest.fixture
def reference():
    return build_reference()


@pytest.fixture
def line_calculator():
    return LineCalculator()


@pytest.fixture
def aggregator():
    return InvoiceAggregator()


@pytest.fixture
def posting_builder():
    return PostingPreviewBuilder()


@pytest.fixture
def pricing_service():
    return InvoicePricingService()


class LogCapture:
    """Collects JSON log lines written by the invoice_kernel logger tree."""

    def __init__(self, stream: StringIO):
        self._stream = stream

    def records(self) -> list[dict]:
        lines = self._stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    def messages(self) -> list[str]:
        return [r["message"] for r in self.records()]

    def by_message(self, message: str) -> list[dict]:
        return [r for r in self.records() if r["message"] == message]


@pytest.fixture
def log_capture():
    """Route invoice_kernel logs at DEBUG into an in-memory JSON stream."""
    reset_logging()
    LogContext.clear()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    configure_logging(handler=handler, level=logging.DEBUG)
    yield LogCapture(stream)
    LogContext.clear()
    reset_logging()
