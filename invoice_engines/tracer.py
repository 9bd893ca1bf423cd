"""
invoice_engines.tracer -- INVOICE_ENGINE_TRACE records for engine calls.

``@traced_engine`` wraps an engine entry point and logs one
INVOICE_ENGINE_TRACE record per call with the engine name and version, a
fingerprint of the selected keyword inputs, the elapsed time and whether
the call returned or raised.

Fingerprints only read keyword arguments, so traced entry points take their
fingerprinted inputs keyword-only. Two calls with equal inputs always
produce the same fingerprint: mappings are key-sorted, Decimals keep their
exponent, dataclasses contribute their compared fields.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import json
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from invoice_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_MESSAGE = "INVOICE_ENGINE_TRACE"


def _plain(value: Any) -> Any:
    """Reduce a value to JSON-compatible primitives."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Decimal):
        return {"$dec": str(value)}
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            "$type": type(value).__name__,
            **{
                f.name: _plain(getattr(value, f.name))
                for f in dataclasses.fields(value)
                if f.compare
            },
        }
    return repr(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    """16 hex characters of SHA-256 over the named kwargs. Absent names hash as None."""
    canonical = json.dumps(
        [[name, _plain(kwargs.get(name))] for name in fingerprint_fields],
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Args:
        engine_name: Engine identifier, e.g. "posting".
        engine_version: Engine version, e.g. "1.0".
        fingerprint_fields: Keyword argument names hashed into
            ``input_fingerprint``. Empty means no fingerprint.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, kwargs)
                if fingerprint_fields
                else ""
            )
            outcome = "error"
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                outcome = "ok"
                return result
            finally:
                _logger.info(
                    TRACE_MESSAGE,
                    extra={
                        "trace_type": TRACE_MESSAGE,
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fingerprint,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                        "outcome": outcome,
                        "function": func.__qualname__,
                    },
                )

        return wrapper

    return decorator
