"""
Credit arithmetic and umbrella naming (``credit_kernel.domain.credits``).

Responsibility
--------------
Pure functions that turn training hours into credits, resolve a free-text
discipline to a configured umbrella key, and format certificate numbers.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  Imports only ``utils.rounding`` for the
canonical rounding function.

Invariants enforced
-------------------
* Credits are Decimal end to end; floats are rejected at the boundary.
* Each component (theory, practical) is quantized before summing, so the
  total equals the sum of its parts exactly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from credit_kernel.exceptions import InvalidHoursError, UnknownUmbrellaError
from credit_kernel.utils.rounding import (
    CREDIT_DECIMAL_PLACES,
    ZERO,
    round_credits,
    to_decimal,
)


@dataclass(frozen=True)
class CreditRates:
    """Hours required to earn one credit, per component."""

    theory_hours_per_credit: Decimal = Decimal("15")
    practical_hours_per_credit: Decimal = Decimal("30")
    decimal_places: int = CREDIT_DECIMAL_PLACES

    def __post_init__(self) -> None:
        if self.theory_hours_per_credit <= ZERO:
            raise ValueError("theory_hours_per_credit must be positive")
        if self.practical_hours_per_credit <= ZERO:
            raise ValueError("practical_hours_per_credit must be positive")
        if self.decimal_places < 0:
            raise ValueError("decimal_places must not be negative")


DEFAULT_RATES = CreditRates()


@dataclass(frozen=True)
class CourseCredits:
    """Validated hours and the credits derived from them."""

    theory_hours: Decimal
    practical_hours: Decimal
    total_hours: Decimal
    theory_credits: Decimal
    practical_credits: Decimal
    total_credits: Decimal


def _non_negative(field: str, value) -> Decimal:
    try:
        amount = to_decimal(value, field)
    except (TypeError, ValueError) as exc:
        raise InvalidHoursError(field, value, str(exc)) from exc
    if not amount.is_finite():
        raise InvalidHoursError(field, value, "must be a finite number")
    if amount < ZERO:
        raise InvalidHoursError(field, value, "must not be negative")
    return amount


def compute_course_credits(
    theory_hours: Decimal | int | str,
    practical_hours: Decimal | int | str,
    total_hours: Decimal | int | str | None = None,
    rates: CreditRates = DEFAULT_RATES,
) -> CourseCredits:
    """
    Derive credits from training hours.

    Raises:
        InvalidHoursError: negative or non-numeric hours, or a supplied
            total_hours that differs from theory + practical.
    """
    theory = _non_negative("theory_hours", theory_hours)
    practical = _non_negative("practical_hours", practical_hours)
    expected_total = theory + practical
    if total_hours is not None:
        total = _non_negative("total_hours", total_hours)
        if total != expected_total:
            raise InvalidHoursError(
                "total_hours",
                total_hours,
                f"must equal theory_hours + practical_hours ({expected_total})",
            )

    theory_credits = round_credits(
        theory / rates.theory_hours_per_credit, rates.decimal_places
    )
    practical_credits = round_credits(
        practical / rates.practical_hours_per_credit, rates.decimal_places
    )
    return CourseCredits(
        theory_hours=theory,
        practical_hours=practical,
        total_hours=expected_total,
        theory_credits=theory_credits,
        practical_credits=practical_credits,
        total_credits=theory_credits + practical_credits,
    )


# =========================================================================
# Umbrella naming
# =========================================================================


_NON_LETTERS = re.compile(r"[^a-z\s]")
_NON_ALNUM = re.compile(r"[^A-Z0-9\s]")


def normalize_discipline(text: str) -> str:
    """
    Lowercase, treat ``_`` and ``-`` as spaces, drop everything that is not a
    letter, and collapse whitespace.

    >>> normalize_discipline("Cyber_Security & Forensics")
    'cyber security forensics'
    """
    lowered = text.lower().replace("_", " ").replace("-", " ")
    return " ".join(_NON_LETTERS.sub("", lowered).split())


def umbrella_key_for(name: str) -> str:
    """Canonical storage key for an umbrella display name."""
    return normalize_discipline(name).replace(" ", "_")


def match_umbrella(discipline: str, umbrellas: Iterable[str] | Mapping[str, str]) -> str:
    """
    Resolve a free-text discipline to one of the configured umbrella keys.

    Matching is done on normalized text: exact match first, then the first
    umbrella (in configuration order) whose normalized name contains the
    discipline or is contained by it.

    Args:
        discipline: Free text from the course record.
        umbrellas: Umbrella keys, or a mapping of key -> display name.

    Raises:
        UnknownUmbrellaError: nothing matched.
    """
    if isinstance(umbrellas, Mapping):
        candidates = [(key, normalize_discipline(name)) for key, name in umbrellas.items()]
    else:
        candidates = [(key, normalize_discipline(key)) for key in umbrellas]

    target = normalize_discipline(discipline or "")
    if not target:
        raise UnknownUmbrellaError(discipline)

    for key, normalized in candidates:
        if normalized == target:
            return key
    for key, normalized in candidates:
        if normalized and (target in normalized or normalized in target):
            return key
    raise UnknownUmbrellaError(discipline)


def format_certificate_no(umbrella_key: str, sequence: int) -> str:
    """
    Certificate number: ``rru_<UMBRELLA>_<n>``.

    >>> format_certificate_no("cyber_security", 7)
    'rru_CYBER_SECURITY_7'
    """
    upper = umbrella_key.upper().replace("_", " ").replace("-", " ")
    umbrella = "_".join(_NON_ALNUM.sub("", upper).split())
    return f"rru_{umbrella}_{sequence}"
