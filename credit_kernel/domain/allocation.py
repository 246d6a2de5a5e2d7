"""
FIFO allocation planner (``credit_kernel.domain.allocation``).

Responsibility
--------------
Given a student's eligible course slices and a required credit amount,
decide how much to take from each course.  Oldest credits are consumed
first; ties on completion date break on the course id's canonical string.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  The planner only decides; the
ClaimAllocator service performs the reservations.

Invariants enforced
-------------------
* The planned amounts sum to ``required`` exactly.
* No planned amount exceeds the slice's availability.
* All-or-nothing: insufficient total availability raises before any plan
  is returned.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from credit_kernel.exceptions import InsufficientCreditsError, InvalidAmountError
from credit_kernel.utils.rounding import ZERO


@dataclass(frozen=True)
class AvailableSlice:
    """A course's currently available credits, as seen by the planner."""

    course_id: UUID
    completion_date: date
    available: Decimal


@dataclass(frozen=True)
class PlannedContribution:
    """One line of an allocation plan."""

    position: int
    course_id: UUID
    amount: Decimal


def fifo_order(slices: Iterable[AvailableSlice]) -> list[AvailableSlice]:
    """Sort slices oldest first, then by course id string."""
    return sorted(slices, key=lambda s: (s.completion_date, str(s.course_id)))


def plan_allocation(
    slices: Iterable[AvailableSlice],
    required: Decimal,
    umbrella_key: str | None = None,
) -> tuple[PlannedContribution, ...]:
    """
    Plan a greedy FIFO reservation sweep for ``required`` credits.

    Courses with nothing available are skipped.  The last course used may be
    consumed only partially.

    Raises:
        InvalidAmountError: required is not positive.
        InsufficientCreditsError: total availability is below required.
    """
    if required <= ZERO:
        raise InvalidAmountError(required)

    ordered = [s for s in fifo_order(slices) if s.available > ZERO]
    total_available = sum((s.available for s in ordered), ZERO)
    if total_available < required:
        raise InsufficientCreditsError(
            required=required,
            available=total_available,
            umbrella_key=umbrella_key,
        )

    plan: list[PlannedContribution] = []
    remaining = required
    for course_slice in ordered:
        if remaining <= ZERO:
            break
        take = min(course_slice.available, remaining)
        plan.append(
            PlannedContribution(
                position=len(plan),
                course_id=course_slice.course_id,
                amount=take,
            )
        )
        remaining -= take

    return tuple(plan)
