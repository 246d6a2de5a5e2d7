"""
Configuration Validator (``credit_config.validator``).

Responsibility
--------------
Validates a ``CreditConfigurationSet`` before it is bridged into kernel
rules.

Invariants enforced
-------------------
* Rates are positive; decimal places are non-negative.
* Every threshold names a known qualification and is positive.
* Umbrella keys and normalized names are unique.
* The lock timeout is positive.

Failure modes
-------------
* Errors  -> the configuration MUST NOT be used.
* Warnings  -> usable, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from credit_config.schema import CreditConfigurationSet, ThresholdDef

KNOWN_QUALIFICATIONS = ("certificate", "diploma", "pg diploma")


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: CreditConfigurationSet) -> ConfigValidationResult:
    """Validate a configuration set, collecting every problem found."""
    result = ConfigValidationResult()

    _validate_rates(config, result)
    _validate_thresholds(config.thresholds, "thresholds", result)
    _validate_umbrellas(config, result)
    _validate_locking(config, result)

    return result


def _validate_rates(config: CreditConfigurationSet, result: ConfigValidationResult) -> None:
    rates = config.rates
    if rates.theory_hours_per_credit <= 0:
        result.add_error("rates.theory_hours_per_credit must be positive")
    if rates.practical_hours_per_credit <= 0:
        result.add_error("rates.practical_hours_per_credit must be positive")
    if rates.decimal_places < 0:
        result.add_error("rates.decimal_places must not be negative")


def _validate_thresholds(
    thresholds: tuple[ThresholdDef, ...], where: str, result: ConfigValidationResult
) -> None:
    seen: set[str] = set()
    for threshold in thresholds:
        qual = _normalize(threshold.qualification)
        if qual not in KNOWN_QUALIFICATIONS:
            result.add_error(f"{where}: unknown qualification '{threshold.qualification}'")
        if qual in seen:
            result.add_error(f"{where}: qualification '{threshold.qualification}' listed twice")
        seen.add(qual)
        if threshold.required_credits <= 0:
            result.add_error(
                f"{where}.{threshold.qualification}: required credits must be positive"
            )


def _validate_umbrellas(config: CreditConfigurationSet, result: ConfigValidationResult) -> None:
    if not config.umbrellas:
        result.add_warning("No umbrellas configured; any umbrella key will be accepted")

    keys: set[str] = set()
    names: set[str] = set()
    for umbrella in config.umbrellas:
        if umbrella.key in keys:
            result.add_error(f"Duplicate umbrella key: {umbrella.key}")
        keys.add(umbrella.key)

        normalized = " ".join(umbrella.name.lower().split())
        if normalized in names:
            result.add_error(f"Duplicate umbrella name: {umbrella.name}")
        names.add(normalized)

        _validate_thresholds(umbrella.thresholds, f"umbrellas.{umbrella.key}.thresholds", result)

    set_wide = {_normalize(t.qualification) for t in config.thresholds}
    for qual in KNOWN_QUALIFICATIONS:
        if qual not in set_wide:
            result.add_warning(
                f"No set-wide threshold for '{qual}'; only umbrellas that "
                "override it will accept such claims"
            )


def _normalize(qualification: str) -> str:
    return " ".join(qualification.replace("_", " ").split()).lower()


def _validate_locking(config: CreditConfigurationSet, result: ConfigValidationResult) -> None:
    if config.locking.timeout_seconds <= 0:
        result.add_error("locking.timeout_seconds must be positive")
