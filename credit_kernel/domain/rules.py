"""
Credit rules -- the policy the kernel runs under (``credit_kernel.domain.rules``).

Responsibility
--------------
Immutable bundle of credit rates, qualification thresholds, per-umbrella
threshold overrides, and the configured umbrella catalogue.  Built from
YAML by ``credit_config.bridges``; constructed directly in tests.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  The kernel never reads configuration
files; it receives a ``CreditRules`` instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from credit_kernel.domain.credits import (
    DEFAULT_RATES,
    CreditRates,
    match_umbrella,
    umbrella_key_for,
)
from credit_kernel.domain.values import Qualification
from credit_kernel.exceptions import UnknownRequirementError, UnknownUmbrellaError

DEFAULT_THRESHOLDS: Mapping[Qualification, Decimal] = MappingProxyType({
    Qualification.CERTIFICATE: Decimal("20"),
    Qualification.DIPLOMA: Decimal("30"),
    Qualification.PG_DIPLOMA: Decimal("40"),
})


def _freeze(mapping: Mapping | None) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class CreditRules:
    """
    Credit policy.

    Attributes:
        rates: Hours-per-credit conversion.
        thresholds: Default required credits per qualification.
        overrides: Required credits for specific (umbrella_key, qualification)
            pairs, taking precedence over ``thresholds``.
        umbrellas: Configured umbrella key -> display name.  When empty any
            umbrella key is accepted.
        version: Identifier of the configuration the rules came from.
    """

    rates: CreditRates = DEFAULT_RATES
    thresholds: Mapping[Qualification, Decimal] = field(
        default_factory=lambda: DEFAULT_THRESHOLDS
    )
    overrides: Mapping[tuple[str, Qualification], Decimal] = field(
        default_factory=lambda: MappingProxyType({})
    )
    umbrellas: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    version: str = "builtin"

    def __post_init__(self) -> None:
        object.__setattr__(self, "thresholds", _freeze(self.thresholds))
        object.__setattr__(self, "overrides", _freeze(self.overrides))
        object.__setattr__(self, "umbrellas", _freeze(self.umbrellas))

    def required_credits(
        self, umbrella_key: str, qualification: Qualification | str
    ) -> Decimal:
        """
        Required credits for an (umbrella, qualification) pair.

        Raises:
            UnknownRequirementError: unknown umbrella or qualification.
        """
        try:
            qual = Qualification.parse(qualification)
        except ValueError as exc:
            raise UnknownRequirementError(umbrella_key, str(qualification)) from exc

        if self.umbrellas and umbrella_key not in self.umbrellas:
            raise UnknownRequirementError(umbrella_key, qual.value)

        override = self.overrides.get((umbrella_key, qual))
        if override is not None:
            return override
        threshold = self.thresholds.get(qual)
        if threshold is None:
            raise UnknownRequirementError(umbrella_key, qual.value)
        return threshold

    def resolve_umbrella(self, discipline: str) -> str:
        """
        Map a free-text discipline to a configured umbrella key.

        With no umbrella catalogue the normalized discipline becomes the key.

        Raises:
            UnknownUmbrellaError: nothing matched.
        """
        if not self.umbrellas:
            key = umbrella_key_for(discipline or "")
            if not key:
                raise UnknownUmbrellaError(discipline)
            return key
        return match_umbrella(discipline, self.umbrellas)


DEFAULT_RULES = CreditRules()
