"""
invoice_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the way to obtain engine settings at runtime through
    ``get_engine_settings()``, and loads reference-data snapshots from
    YAML through ``load_reference_data()`` for fixtures and offline use.

Architecture position:
    Configuration -- YAML-driven settings, load-time validation.
    This package sits above ``invoice_kernel`` and below
    ``invoice_services``. The kernel MUST NEVER import from
    ``invoice_config``.

Failure modes:
    - ``FileNotFoundError`` -- settings or reference file missing.
    - ``InvalidSettingsError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_engine_settings()`` call emits an
    ``INVOICE_CONFIG_TRACE`` log entry with the source path and checksum,
    tying each computation back to the settings that governed it.
"""

from __future__ import annotations

from pathlib import Path

from invoice_config.loader import (
    compute_checksum,
    load_settings,
    load_yaml_file,
    parse_reference_data,
    parse_settings,
)
from invoice_kernel.domain.reference_snapshot import ReferenceData
from invoice_kernel.domain.settings import EngineSettings
from invoice_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default settings file shipped with the package
DEFAULT_SETTINGS_PATH = Path(__file__).parent / "sets" / "default_settings.yaml"


def get_engine_settings(path: Path | None = None) -> EngineSettings:
    """Load and validate engine settings.

    Args:
        path: Settings YAML with a top-level ``engine_settings`` mapping.
            Defaults to the packaged ``sets/default_settings.yaml``.

    Returns:
        Frozen EngineSettings.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidSettingsError: If validation fails.
    """
    source = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    data = load_yaml_file(source)
    settings = parse_settings(data.get("engine_settings") or {})

    _logger.info(
        "INVOICE_CONFIG_TRACE",
        extra={
            "trace_type": "INVOICE_CONFIG_TRACE",
            "source": str(source),
            "checksum": compute_checksum(data),
            "quantity_floor": str(settings.quantity_floor),
            "rounding": settings.rounding,
        },
    )
    return settings


def load_reference_data(path: Path) -> ReferenceData:
    """Load a ReferenceData snapshot from a YAML file."""
    data = load_yaml_file(Path(path))
    reference = parse_reference_data(data)
    _logger.info(
        "reference_data_loaded",
        extra={
            "source": str(path),
            "checksum": compute_checksum(data),
            "tax_code_count": len(reference.tax_codes),
            "account_count": len(reference.accounts),
            "product_count": len(reference.products),
        },
    )
    return reference


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "compute_checksum",
    "get_engine_settings",
    "load_reference_data",
    "load_settings",
]
