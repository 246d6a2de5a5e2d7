"""
Configuration Schema (``credit_config.schema``).

Responsibility
--------------
Frozen dataclasses describing a parsed credit configuration set.  These
are plain data: no validation beyond what the loader enforces, and no
kernel types.  ``credit_config.bridges`` converts them into the kernel's
``CreditRules``.

Architecture position
---------------------
**Config layer** -- no dependency on kernel or services.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class RatesDef:
    """Hours per credit for each component, and the credit precision."""

    theory_hours_per_credit: Decimal
    practical_hours_per_credit: Decimal
    decimal_places: int = 2


@dataclass(frozen=True)
class ThresholdDef:
    """Required credits for one qualification."""

    qualification: str
    required_credits: Decimal


@dataclass(frozen=True)
class UmbrellaDef:
    """
    One umbrella (broad discipline grouping).

    ``thresholds`` override the set-wide thresholds for this umbrella only.
    """

    key: str
    name: str
    thresholds: tuple[ThresholdDef, ...] = ()


@dataclass(frozen=True)
class LockingDef:
    timeout_seconds: float = 5.0


@dataclass(frozen=True)
class CreditConfigurationSet:
    """A complete, parsed credit configuration."""

    config_id: str
    version: int
    rates: RatesDef
    thresholds: tuple[ThresholdDef, ...]
    umbrellas: tuple[UmbrellaDef, ...]
    locking: LockingDef
    checksum: str = ""
