"""
gtn_config -- single public entrypoint for engine settings.

Responsibility:
    Provides the only way to obtain settings at runtime through
    ``get_active_config()``.  Returns a frozen ``EngineSettings``.  YAML
    loading lives in ``gtn_config.loader`` and is not called elsewhere.

Architecture position:
    Configuration -- sits above ``gtn_kernel`` and below ``gtn_services``.
    The kernel and the engines MUST NEVER import from ``gtn_config``;
    the service layer translates settings into engine inputs.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``InvalidConfigError`` -- a field fails validation.

Audit relevance:
    Every successful call emits a ``GTN_CONFIG_TRACE`` log entry with the
    config id, version, checksum and currency, tying each computed price
    list back to the exact settings that produced it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from gtn_config.loader import load_yaml_file, parse_settings
from gtn_config.schema import DeductionDef, EngineSettings, WaterfallLabelsDef

_logger = logging.getLogger("gtn_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> EngineSettings:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned settings passed validation.
        - A ``GTN_CONFIG_TRACE`` log entry is emitted on every successful
          call.

    Non-goals:
        - Does NOT cache across calls; callers hold the returned settings.

    Args:
        path: Settings YAML file.  Defaults to gtn_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidConfigError: If a setting is invalid.
    """
    settings_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    settings = parse_settings(load_yaml_file(settings_path))

    _logger.info(
        "GTN_CONFIG_TRACE",
        extra={
            "trace_type": "GTN_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "currency": settings.currency,
            "deduction_count": len(settings.deductions),
            "source": str(settings_path),
        },
    )
    return settings


__all__ = [
    "DeductionDef",
    "EngineSettings",
    "WaterfallLabelsDef",
    "get_active_config",
]
