"""
bizbooks_config -- single public entrypoint for configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain configuration:
    the chart-of-accounts seed, document series, posting-account roles,
    control-account bindings and named tax profiles.

Architecture position:
    Configuration -- sits above ``bizbooks_kernel`` and below
    ``bizbooks_services``.  The kernel never imports this package;
    ``bizbooks_config.bridges`` translates definitions into kernel inputs.

Resolution order for the YAML document:
    1. ``path`` argument
    2. ``BIZBOOKS_CONFIG`` environment variable
    3. the packaged ``defaults.yaml``

Failure modes:
    - ``ConfigurationError`` for a missing file, malformed YAML or a
      document that fails validation.
"""

from __future__ import annotations

import os
from pathlib import Path

from bizbooks_config.loader import load_configuration
from bizbooks_config.schema import (
    AccountDef,
    BizbooksConfiguration,
    SeriesDef,
    TaxProfileDef,
)
from bizbooks_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_ENV_VAR = "BIZBOOKS_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def resolve_config_path(path: Path | str | None = None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def get_active_config(path: Path | str | None = None) -> BizbooksConfiguration:
    """
    Load and validate the active configuration.

    Not cached: callers hold the returned object for the duration of their
    unit of work.
    """
    resolved = resolve_config_path(path)
    config = load_configuration(resolved)
    logger.info(
        "config_loaded",
        extra={
            "source": str(resolved),
            "checksum": config.checksum,
            "account_count": len(config.chart_of_accounts),
            "series_count": len(config.series),
            "tax_profile_count": len(config.tax_profiles),
        },
    )
    return config


__all__ = [
    "AccountDef",
    "BizbooksConfiguration",
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "SeriesDef",
    "TaxProfileDef",
    "get_active_config",
    "resolve_config_path",
]
