"""
Configuration Loader (``credit_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into typed
``credit_config.schema`` dataclass instances.  Runtime callers go through
``credit_config.get_active_config()`` instead of calling this directly.

Architecture position
---------------------
**Config layer** -- no dependency on kernel or services.

Invariants enforced
-------------------
* Numbers are parsed to ``Decimal`` through their string form; YAML floats
  never reach credit arithmetic as binary floats.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-numeric values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from credit_config.schema import (
    CreditConfigurationSet,
    LockingDef,
    RatesDef,
    ThresholdDef,
    UmbrellaDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a YAML scalar into a Decimal via its string form."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field}: expected a number, got {value!r}") from exc


def parse_rates(data: dict[str, Any]) -> RatesDef:
    return RatesDef(
        theory_hours_per_credit=parse_decimal(
            data["theory_hours_per_credit"], "rates.theory_hours_per_credit"
        ),
        practical_hours_per_credit=parse_decimal(
            data["practical_hours_per_credit"], "rates.practical_hours_per_credit"
        ),
        decimal_places=int(data.get("decimal_places", 2)),
    )


def parse_thresholds(data: dict[str, Any] | None, prefix: str = "thresholds") -> tuple[ThresholdDef, ...]:
    """Parse a ``qualification: credits`` mapping."""
    return tuple(
        ThresholdDef(
            qualification=str(qualification),
            required_credits=parse_decimal(value, f"{prefix}.{qualification}"),
        )
        for qualification, value in (data or {}).items()
    )


def parse_umbrella(data: dict[str, Any]) -> UmbrellaDef:
    """
    Parse an umbrella entry.

    ``key`` defaults to the name lowercased with spaces and hyphens
    replaced by underscores.
    """
    name = str(data["name"])
    key = data.get("key") or "_".join(
        name.lower().replace("-", " ").replace("_", " ").split()
    )
    return UmbrellaDef(
        key=str(key),
        name=name,
        thresholds=parse_thresholds(data.get("thresholds"), f"umbrellas.{key}.thresholds"),
    )


def parse_locking(data: dict[str, Any] | None) -> LockingDef:
    data = data or {}
    if "timeout_seconds" not in data:
        return LockingDef()
    return LockingDef(
        timeout_seconds=float(parse_decimal(data["timeout_seconds"], "locking.timeout_seconds"))
    )


def parse_configuration(data: dict[str, Any]) -> CreditConfigurationSet:
    """
    Parse a whole configuration document.

    Raises:
        KeyError: if ``config_id``, ``version`` or ``rates`` is missing.
        ValueError: if a numeric field cannot be parsed.
    """
    return CreditConfigurationSet(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        rates=parse_rates(data["rates"]),
        thresholds=parse_thresholds(data.get("thresholds")),
        umbrellas=tuple(parse_umbrella(u) for u in data.get("umbrellas") or ()),
        locking=parse_locking(data.get("locking")),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> CreditConfigurationSet:
    """Load and parse a configuration file."""
    return parse_configuration(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
