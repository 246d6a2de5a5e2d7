"""
Config -> Kernel Bridges.

Functions that convert a parsed configuration set into kernel inputs.
They live in credit_config (the producer) because the kernel must never
import credit_config.

Usage:
    from credit_config import get_active_config
    from credit_config.bridges import build_credit_rules, lock_timeout_seconds

    config = get_active_config()
    rules = build_credit_rules(config)
"""

from __future__ import annotations

from decimal import Decimal

from credit_config.schema import CreditConfigurationSet
from credit_kernel.domain.credits import CreditRates
from credit_kernel.domain.rules import CreditRules
from credit_kernel.domain.values import Qualification


def build_credit_rates(config: CreditConfigurationSet) -> CreditRates:
    return CreditRates(
        theory_hours_per_credit=config.rates.theory_hours_per_credit,
        practical_hours_per_credit=config.rates.practical_hours_per_credit,
        decimal_places=config.rates.decimal_places,
    )


def build_credit_rules(config: CreditConfigurationSet) -> CreditRules:
    """Build the kernel ``CreditRules`` from a configuration set."""
    thresholds: dict[Qualification, Decimal] = {
        Qualification.parse(t.qualification): t.required_credits
        for t in config.thresholds
    }
    overrides: dict[tuple[str, Qualification], Decimal] = {}
    for umbrella in config.umbrellas:
        for t in umbrella.thresholds:
            overrides[(umbrella.key, Qualification.parse(t.qualification))] = t.required_credits

    return CreditRules(
        rates=build_credit_rates(config),
        thresholds=thresholds,
        overrides=overrides,
        umbrellas={u.key: u.name for u in config.umbrellas},
        version=f"{config.config_id}:v{config.version}",
    )


def lock_timeout_seconds(config: CreditConfigurationSet) -> float:
    return config.locking.timeout_seconds
