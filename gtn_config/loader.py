"""
Configuration Loader (``gtn_config.loader``).

Responsibility
--------------
Loads a settings YAML file and parses it into the typed
``gtn_config.schema`` dataclasses.  Callers use
``gtn_config.get_active_config()``; the loader is its implementation.

Invariants enforced
-------------------
* Every parse error raises ``InvalidConfigError`` naming the field; no
  silent defaults for required fields.
* Amounts and percentages are parsed through ``to_decimal`` so a YAML
  float never reaches an engine.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from gtn_config.schema import (
    DEDUCTION_BASES,
    DEDUCTION_KINDS,
    GRANULARITIES,
    MEASURES,
    DeductionDef,
    EngineSettings,
    WaterfallLabelsDef,
)
from gtn_kernel.domain.currency import CurrencyRegistry
from gtn_kernel.exceptions import InvalidConfigError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        InvalidConfigError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise InvalidConfigError(str(path), "top level must be a mapping")
    return data


def parse_decimal(field_name: str, value: Any) -> Decimal:
    """Parse a YAML scalar as Decimal via its string form."""
    if isinstance(value, bool) or value is None:
        raise InvalidConfigError(field_name, f"expected a number, got {value!r}")
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        raise InvalidConfigError(field_name, f"expected a number, got {value!r}") from None
    if not parsed.is_finite():
        raise InvalidConfigError(field_name, f"expected a finite number, got {value!r}")
    return parsed


def _choice(field_name: str, value: Any, allowed: tuple[str, ...]) -> str:
    text = str(value).strip().lower()
    if text not in allowed:
        raise InvalidConfigError(field_name, f"{value!r} not one of {', '.join(allowed)}")
    return text


def parse_labels(data: dict[str, Any]) -> WaterfallLabelsDef:
    defaults = WaterfallLabelsDef()
    labels = {}
    for name in ("list_price", "contract_discount", "invoiced_sales", "net_realized"):
        value = data.get(name, getattr(defaults, name))
        if not isinstance(value, str) or not value.strip():
            raise InvalidConfigError(f"labels.{name}", "must be a non-empty string")
        labels[name] = value
    names = list(labels.values())
    if len(set(names)) != len(names):
        raise InvalidConfigError("labels", "step labels must be distinct")
    return WaterfallLabelsDef(**labels)


def parse_deduction(data: dict[str, Any], index: int) -> DeductionDef:
    """
    Parse a ``DeductionDef`` from a dict.

    Raises:
        InvalidConfigError: on a missing name, unknown kind or basis, a
            negative value, or a percentage above 100.
    """
    prefix = f"deductions[{index}]"
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise InvalidConfigError(f"{prefix}.name", "is required")
    kind = _choice(f"{prefix}.kind", data.get("kind", ""), DEDUCTION_KINDS)
    basis = _choice(f"{prefix}.basis", data.get("basis", "running"), DEDUCTION_BASES)
    value = parse_decimal(f"{prefix}.value", data.get("value"))
    if value < 0:
        raise InvalidConfigError(f"{prefix}.value", "cannot be negative")
    if kind == "percent" and value > 100:
        raise InvalidConfigError(f"{prefix}.value", "percentage above 100")
    return DeductionDef(
        name=name,
        kind=kind,
        value=value,
        basis=basis,
        description=str(data.get("description", "")),
    )


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse ``EngineSettings`` from the raw YAML mapping.

    Postconditions:
        - ``checksum`` is the SHA-256 of the raw mapping.
    Raises:
        InvalidConfigError: on any invalid or missing field.
    """
    for required in ("config_id", "version", "currency"):
        if required not in data:
            raise InvalidConfigError(required, "is required")

    currency = str(data["currency"]).upper()
    if not CurrencyRegistry.is_valid(currency):
        raise InvalidConfigError("currency", f"unknown ISO 4217 code {data['currency']!r}")

    try:
        version = int(data["version"])
    except (TypeError, ValueError):
        raise InvalidConfigError("version", f"expected an integer, got {data['version']!r}") from None

    tolerance = parse_decimal("actuals_tolerance", data.get("actuals_tolerance", "0.01"))
    if tolerance < 0:
        raise InvalidConfigError("actuals_tolerance", "cannot be negative")

    deductions = tuple(
        parse_deduction(item, i) for i, item in enumerate(data.get("deductions") or ())
    )
    names = [d.name for d in deductions]
    if len(set(names)) != len(names):
        raise InvalidConfigError("deductions", "deduction names must be unique")

    return EngineSettings(
        config_id=str(data["config_id"]),
        version=version,
        currency=currency,
        default_granularity=_choice(
            "default_granularity", data.get("default_granularity", "customer"), GRANULARITIES,
        ),
        default_measure=_choice("default_measure", data.get("default_measure", "gross"), MEASURES),
        actuals_tolerance=tolerance,
        labels=parse_labels(data.get("labels") or {}),
        deductions=deductions,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
