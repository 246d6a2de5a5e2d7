"""
DTOs -- frozen data crossing the kernel boundary.

Responsibility:
    Input records accepted by the services (CourseRecord) and the read-only
    views returned by services and selectors (slices, reservations, claims,
    decisions, certificate mappings, summaries).  Callers never receive ORM
    entities.

Architecture position:
    Kernel > Domain -- zero I/O.  Models convert themselves into these via
    ``to_dto()``; nothing here imports from models/.

Invariants enforced:
    - Views are frozen dataclasses; mappings are wrapped in MappingProxyType.
    - Legacy approval booleans exist only as properties derived from status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping
from uuid import UUID

from credit_kernel.domain.claim_lifecycle import (
    ClaimAction,
    ClaimStatus,
    legacy_flags,
)
from credit_kernel.domain.values import ActorRole, Qualification


class ReservationStatus(str, Enum):
    """Reservation lifecycle.  RELEASED and COMMITTED are terminal."""

    ACTIVE = "active"
    RELEASED = "released"
    COMMITTED = "committed"


@dataclass(frozen=True)
class CourseRecord:
    """
    A completed-course record as received from the ingestion collaborator.

    Either ``umbrella_key`` or a free-text ``discipline`` must be present;
    when only the discipline is given it is matched against the configured
    umbrellas.  Hours are validated by the ledger, not here.
    """

    student_id: str
    name: str
    organization: str
    theory_hours: Decimal | int | str
    practical_hours: Decimal | int | str
    no_of_days: int
    completion_date: date
    discipline: str | None = None
    umbrella_key: str | None = None
    total_hours: Decimal | int | str | None = None
    document_ref: str | None = None

    def __post_init__(self) -> None:
        if not self.student_id:
            raise ValueError("CourseRecord.student_id must not be empty")
        if not self.discipline and not self.umbrella_key:
            raise ValueError("CourseRecord needs a discipline or an umbrella_key")


@dataclass(frozen=True)
class CreditSliceView:
    """The consumable portion of one course."""

    course_id: UUID
    student_id: str
    umbrella_key: str
    completion_date: date
    total_credits: Decimal
    credits_consumed: Decimal

    @property
    def credits_available(self) -> Decimal:
        return self.total_credits - self.credits_consumed


@dataclass(frozen=True)
class CourseView:
    """Full course detail, including the derived credits."""

    course_id: UUID
    student_id: str
    name: str
    organization: str
    discipline: str
    umbrella_key: str
    theory_hours: Decimal
    practical_hours: Decimal
    total_hours: Decimal
    no_of_days: int
    completion_date: date
    theory_credits: Decimal
    practical_credits: Decimal
    total_credits: Decimal
    credits_consumed: Decimal
    document_ref: str | None
    recorded_at: datetime

    @property
    def credits_available(self) -> Decimal:
        return self.total_credits - self.credits_consumed


@dataclass(frozen=True)
class ReservationView:
    reservation_id: UUID
    course_id: UUID
    claim_id: UUID | None
    amount: Decimal
    status: ReservationStatus
    created_at: datetime
    released_at: datetime | None = None
    committed_at: datetime | None = None


@dataclass(frozen=True)
class ApprovalStamp:
    """Who approved or declined a stage, and when."""

    by: str
    role: ActorRole
    at: datetime
    reason: str | None = None


@dataclass(frozen=True)
class ContributionView:
    """One course's share of a claim."""

    position: int
    course_id: UUID
    reservation_id: UUID
    credits_reserved: Decimal
    reservation_status: ReservationStatus


@dataclass(frozen=True)
class ClaimView:
    claim_id: UUID
    student_id: str
    umbrella_key: str
    qualification: Qualification
    required_credits: Decimal
    status: ClaimStatus
    created_at: datetime
    contributions: tuple[ContributionView, ...] = ()
    poc_stamp: ApprovalStamp | None = None
    admin_stamp: ApprovalStamp | None = None
    decline_stamp: ApprovalStamp | None = None
    finalized_at: datetime | None = None
    document_ref: str | None = None
    notes: str | None = None

    @property
    def contributed_credits(self) -> Decimal:
        return sum((c.credits_reserved for c in self.contributions), Decimal("0"))

    @property
    def poc_approved(self) -> bool:
        return legacy_flags(self.status)["poc_approved"]

    @property
    def admin_approved(self) -> bool:
        return legacy_flags(self.status)["admin_approved"]

    @property
    def declined(self) -> bool:
        return legacy_flags(self.status)["declined"]


@dataclass(frozen=True)
class ClaimDecisionView:
    """One row of a claim's append-only decision log."""

    decision_id: UUID
    claim_id: UUID
    action: ClaimAction
    from_status: ClaimStatus | None
    to_status: ClaimStatus
    actor_id: str | None
    actor_role: ActorRole | None
    reason: str | None
    decided_at: datetime


@dataclass(frozen=True)
class MappingLineView:
    position: int
    course_id: UUID
    course_name: str
    organization: str
    theory_hours: Decimal
    practical_hours: Decimal
    total_credits: Decimal
    credits_used: Decimal
    completion_date: date
    document_ref: str | None = None


@dataclass(frozen=True)
class CertificateMappingView:
    """The permanent record produced when a claim reaches ``approved``."""

    mapping_id: UUID
    certificate_id: UUID
    certificate_no: str
    claim_id: UUID
    student_id: str
    umbrella_key: str
    qualification: Qualification
    total_credits_required: Decimal
    issued_at: datetime
    content_hash: str
    lines: tuple[MappingLineView, ...] = ()

    @property
    def credits_mapped(self) -> Decimal:
        return sum((line.credits_used for line in self.lines), Decimal("0"))


@dataclass(frozen=True)
class UmbrellaTotals:
    total: Decimal
    consumed: Decimal

    @property
    def available(self) -> Decimal:
        return self.total - self.consumed


@dataclass(frozen=True)
class StudentCreditSummary:
    """Per-umbrella credit totals for one student."""

    student_id: str
    umbrellas: Mapping[str, UmbrellaTotals] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "umbrellas", MappingProxyType(dict(self.umbrellas)))

    def available(self, umbrella_key: str) -> Decimal:
        totals = self.umbrellas.get(umbrella_key)
        return totals.available if totals is not None else Decimal("0")


@dataclass(frozen=True)
class ClaimAnalytics:
    """Counts for dashboard consumers."""

    claims_by_status: Mapping[ClaimStatus, int]
    declined_by_role: Mapping[ActorRole, int]
    courses_by_umbrella: Mapping[str, int]
    certificates_by_umbrella: Mapping[tuple[str, Qualification], int]

    def __post_init__(self) -> None:
        for name in (
            "claims_by_status",
            "declined_by_role",
            "courses_by_umbrella",
            "certificates_by_umbrella",
        ):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))
