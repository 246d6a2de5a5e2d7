"""
credit_config -- single public entrypoint for credit configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``.  YAML loading is internal tooling; callers
    receive a validated ``CreditConfigurationSet`` and turn it into kernel
    rules with ``credit_config.bridges``.

Architecture position:
    Configuration -- sits above ``credit_kernel`` and below
    ``credit_services``.  The kernel MUST NEVER import from
    ``credit_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- parse or validation failures.

Every successful ``get_active_config()`` call emits a
``CREDIT_CONFIG_TRACE`` log entry with the config id, version, checksum
and umbrella count, tying each claim decision back to the policy in force.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from credit_config.loader import load_configuration
from credit_config.schema import CreditConfigurationSet
from credit_config.validator import validate_configuration

_logger = logging.getLogger("credit_kernel.config")

CONFIG_PATH_ENV = "CREDIT_CONFIG_PATH"

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> CreditConfigurationSet:
    """The only public configuration entrypoint.

    Resolution order for the file: ``config_path``, then the
    ``CREDIT_CONFIG_PATH`` environment variable, then the bundled
    ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If the configuration fails validation.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)

    config = load_configuration(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("credit_config_warning", extra={"detail": warning})

    _logger.info(
        "CREDIT_CONFIG_TRACE",
        extra={
            "trace_type": "CREDIT_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "umbrella_count": len(config.umbrellas),
        },
    )
    return config


__all__ = ["CONFIG_PATH_ENV", "CreditConfigurationSet", "get_active_config"]
