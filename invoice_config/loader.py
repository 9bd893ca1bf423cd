"""
Configuration Loader (``invoice_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into kernel types: ``EngineSettings``
for engine tunables and ``ReferenceData`` for a tax code / account /
product snapshot. Runtime callers go through
``invoice_config.get_engine_settings()``; reference-data loading is
fixture and tooling support for environments without a live backend.

Architecture position
---------------------
**Config layer** -- sits above ``invoice_kernel`` and below
``invoice_services``. The kernel never imports from here; this module
translates YAML into kernel-compatible inputs.

Invariants enforced
-------------------
* Unknown settings keys and invalid values raise
  ``InvalidSettingsError``; no silent defaults for misspelled keys.
* Numbers are read as ``Decimal`` via ``str``; YAML floats never reach
  the engines as floats.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in a reference record  -> ``KeyError`` propagates.
* Repeated record ids  -> ``DuplicateReferenceError``.
"""

from __future__ import annotations

import decimal
import hashlib
import json
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from invoice_kernel.domain.reference_snapshot import ReferenceData
from invoice_kernel.domain.settings import DEFAULT_DESCRIPTIONS, EngineSettings
from invoice_kernel.domain.types import (
    Account,
    AccountNature,
    AccountRole,
    LinkedAccountDefault,
    Product,
    TaxCode,
)
from invoice_kernel.domain.values import to_decimal
from invoice_kernel.exceptions import InvalidNumericInputError, InvalidSettingsError

_ROUNDING_MODES = frozenset({
    decimal.ROUND_CEILING,
    decimal.ROUND_DOWN,
    decimal.ROUND_FLOOR,
    decimal.ROUND_HALF_DOWN,
    decimal.ROUND_HALF_EVEN,
    decimal.ROUND_HALF_UP,
    decimal.ROUND_UP,
    decimal.ROUND_05UP,
})

_SETTINGS_KEYS = frozenset({
    "quantity_floor",
    "default_exchange_rate",
    "input_ceiling",
    "rounding",
    "service_product_types",
    "descriptions",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _positive_decimal(key: str, value: Any) -> Decimal:
    try:
        result = to_decimal(value, key)
    except InvalidNumericInputError as exc:
        raise InvalidSettingsError(key, str(exc)) from exc
    if not result.is_finite() or result <= 0:
        raise InvalidSettingsError(key, f"must be a positive number, got {value!r}")
    return result


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse ``EngineSettings`` from the ``engine_settings`` mapping.

    Keys left out keep their ``EngineSettings`` defaults.

    Raises:
        InvalidSettingsError: on unknown keys or invalid values.
    """
    if not isinstance(data, dict):
        raise InvalidSettingsError("engine_settings", "must be a mapping")
    unknown = sorted(set(data) - _SETTINGS_KEYS)
    if unknown:
        raise InvalidSettingsError(unknown[0], "unknown setting")

    kwargs: dict[str, Any] = {}
    if "quantity_floor" in data:
        kwargs["quantity_floor"] = _positive_decimal("quantity_floor", data["quantity_floor"])
    if "default_exchange_rate" in data:
        kwargs["default_exchange_rate"] = _positive_decimal(
            "default_exchange_rate", data["default_exchange_rate"]
        )
    if "input_ceiling" in data:
        kwargs["input_ceiling"] = _positive_decimal("input_ceiling", data["input_ceiling"])
    if "rounding" in data:
        rounding = str(data["rounding"]).upper()
        if rounding not in _ROUNDING_MODES:
            raise InvalidSettingsError("rounding", f"unknown rounding mode {data['rounding']!r}")
        kwargs["rounding"] = rounding
    if "service_product_types" in data:
        types = data["service_product_types"]
        if isinstance(types, str) or not isinstance(types, list):
            raise InvalidSettingsError("service_product_types", "must be a list")
        kwargs["service_product_types"] = frozenset(str(t) for t in types)
    if "descriptions" in data:
        raw = data["descriptions"] or {}
        if not isinstance(raw, dict):
            raise InvalidSettingsError("descriptions", "must be a mapping")
        descriptions = dict(DEFAULT_DESCRIPTIONS)
        for role_name, text in raw.items():
            try:
                role = AccountRole(role_name)
            except ValueError as exc:
                raise InvalidSettingsError(
                    f"descriptions.{role_name}", "unknown account role"
                ) from exc
            descriptions[role] = str(text)
        kwargs["descriptions"] = MappingProxyType(descriptions)

    return EngineSettings(**kwargs)


def load_settings(path: Path) -> EngineSettings:
    """Parse the ``engine_settings`` block of a YAML file. An absent block means defaults."""
    data = load_yaml_file(Path(path))
    return parse_settings(data.get("engine_settings") or {})


def parse_tax_code(data: dict[str, Any]) -> TaxCode:
    """Parse a TaxCode from a dict."""
    return TaxCode(
        id=str(data["id"]),
        rate=data["rate"],
        is_withholding=bool(data.get("is_withholding", False)),
        is_active=bool(data.get("is_active", True)),
        posting_account_id=_optional_id(data.get("posting_account_id")),
        name=data.get("name", ""),
    )


def parse_account(data: dict[str, Any]) -> Account:
    """Parse an Account from a dict."""
    return Account(
        id=str(data["id"]),
        code=str(data["code"]),
        name=data["name"],
        nature=AccountNature(str(data.get("nature", "debit")).lower()),
    )


def parse_product(data: dict[str, Any]) -> Product:
    """Parse a Product from a dict."""
    return Product(
        id=str(data["id"]),
        name=data.get("name", ""),
        product_type=data.get("product_type", "goods"),
        selling_price=data.get("selling_price", 0),
        average_cost=data.get("average_cost", 0),
        price_tax_inclusive=bool(data.get("price_tax_inclusive", False)),
        sales_tax_id=_optional_id(data.get("sales_tax_id")),
        income_account_id=_optional_id(data.get("income_account_id")),
        category_income_account_id=_optional_id(data.get("category_income_account_id")),
        cogs_account_id=_optional_id(data.get("cogs_account_id")),
        category_cogs_account_id=_optional_id(data.get("category_cogs_account_id")),
        asset_account_id=_optional_id(data.get("asset_account_id")),
        category_asset_account_id=_optional_id(data.get("category_asset_account_id")),
        price_categories=data.get("price_categories") or {},
    )


def parse_linked_account(data: dict[str, Any]) -> LinkedAccountDefault:
    """Parse a LinkedAccountDefault from a dict."""
    return LinkedAccountDefault(
        account_type=data["account_type"],
        account_id=_optional_id(data.get("account_id")),
    )


def parse_reference_data(data: dict[str, Any]) -> ReferenceData:
    """
    Parse a ReferenceData snapshot.

    Expects top-level lists ``tax_codes``, ``accounts``, ``products`` and
    ``linked_accounts``; any of them may be omitted.
    """
    return ReferenceData(
        tax_codes=tuple(parse_tax_code(t) for t in data.get("tax_codes", [])),
        accounts=tuple(parse_account(a) for a in data.get("accounts", [])),
        products=tuple(parse_product(p) for p in data.get("products", [])),
        linked_accounts=tuple(
            parse_linked_account(link) for link in data.get("linked_accounts", [])
        ),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _optional_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
