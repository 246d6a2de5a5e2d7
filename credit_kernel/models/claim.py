"""
Module: credit_kernel.models.claim
Responsibility: ORM persistence for certification claims, the course
    contributions that fund them, and their append-only decision log.
Architecture position: Kernel > Models.

Invariants enforced:
    - status is a single enum column; legacy approval booleans are derived
      properties and are never stored.
    - At most one open claim per (student, umbrella, qualification): partial
      unique index over the non-terminal statuses.
    - (claim_id, position) and (claim_id, seq) are unique, so contributions
      and decisions have a stable order.
    - ClaimDecisionModel rows are immutable (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_kernel.db.base import Base, UTCDateTime, UUIDString
from credit_kernel.domain.claim_lifecycle import ClaimAction, ClaimStatus, legacy_flags
from credit_kernel.domain.dtos import (
    ApprovalStamp,
    ClaimDecisionView,
    ClaimView,
    ContributionView,
)
from credit_kernel.domain.values import ActorRole, Qualification
from credit_kernel.models.reservation import CreditReservationModel

_OPEN_STATUSES_SQL = text("status IN ('pending', 'poc_approved', 'admin_approved')")


class CertificationClaimModel(Base):
    """
    A student's request for a qualification under an umbrella.

    Contract:
        Status moves only through ApprovalWorkflow / CertificateMappingWriter.
        Stamps are write-once per stage.
    """

    __tablename__ = "certification_claims"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'poc_approved', 'poc_declined', "
            "'admin_approved', 'admin_declined', 'approved')",
            name="ck_certification_claims_valid_status",
        ),
        CheckConstraint("required_credits > 0", name="ck_certification_claims_positive"),
        Index(
            "ix_certification_claims_open_unique",
            "student_id", "umbrella_key", "qualification",
            unique=True,
            postgresql_where=_OPEN_STATUSES_SQL,
            sqlite_where=_OPEN_STATUSES_SQL,
        ),
        Index("ix_certification_claims_status", "status", "created_at"),
        Index("ix_certification_claims_student", "student_id"),
    )

    student_id: Mapped[str] = mapped_column(String(100), nullable=False)
    umbrella_key: Mapped[str] = mapped_column(String(100), nullable=False)
    qualification: Mapped[str] = mapped_column(String(50), nullable=False)
    required_credits: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ClaimStatus.PENDING.value
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    poc_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    poc_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    admin_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    admin_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    declined_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    declined_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    decline_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    declined_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    document_ref: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    contributions: Mapped[list["ClaimContributionModel"]] = relationship(
        "ClaimContributionModel",
        back_populates="claim",
        order_by="ClaimContributionModel.position",
        lazy="selectin",
    )
    decisions: Mapped[list["ClaimDecisionModel"]] = relationship(
        "ClaimDecisionModel",
        back_populates="claim",
        order_by="ClaimDecisionModel.seq",
        lazy="selectin",
    )

    @property
    def claim_status(self) -> ClaimStatus:
        return ClaimStatus(self.status)

    @property
    def poc_approved(self) -> bool:
        return legacy_flags(self.claim_status)["poc_approved"]

    @property
    def admin_approved(self) -> bool:
        return legacy_flags(self.claim_status)["admin_approved"]

    @property
    def declined(self) -> bool:
        return legacy_flags(self.claim_status)["declined"]

    def __repr__(self) -> str:
        return (
            f"<CertificationClaim {self.id}: student={self.student_id} "
            f"{self.umbrella_key}/{self.qualification} status={self.status}>"
        )

    def to_dto(self) -> ClaimView:
        """Convert ORM model to frozen domain DTO."""
        poc_stamp = None
        if self.poc_by is not None:
            poc_stamp = ApprovalStamp(by=self.poc_by, role=ActorRole.POC, at=self.poc_at)
        admin_stamp = None
        if self.admin_by is not None:
            admin_stamp = ApprovalStamp(
                by=self.admin_by, role=ActorRole.ADMIN, at=self.admin_at
            )
        decline_stamp = None
        if self.declined_by is not None:
            decline_stamp = ApprovalStamp(
                by=self.declined_by,
                role=ActorRole(self.declined_role),
                at=self.declined_at,
                reason=self.decline_reason,
            )
        return ClaimView(
            claim_id=self.id,
            student_id=self.student_id,
            umbrella_key=self.umbrella_key,
            qualification=Qualification(self.qualification),
            required_credits=self.required_credits,
            status=self.claim_status,
            created_at=self.created_at,
            contributions=tuple(c.to_dto() for c in self.contributions),
            poc_stamp=poc_stamp,
            admin_stamp=admin_stamp,
            decline_stamp=decline_stamp,
            finalized_at=self.finalized_at,
            document_ref=self.document_ref,
            notes=self.notes,
        )


class ClaimContributionModel(Base):
    """One course's share of a claim, backed by one reservation."""

    __tablename__ = "claim_contributions"

    __table_args__ = (
        UniqueConstraint("claim_id", "position", name="uq_claim_contribution_position"),
        UniqueConstraint("reservation_id", name="uq_claim_contribution_reservation"),
        Index("ix_claim_contributions_course", "course_id"),
    )

    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("certification_claims.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    course_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("courses.id"), nullable=False
    )
    reservation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("credit_reservations.id"), nullable=False
    )
    credits_reserved: Mapped[Decimal] = mapped_column(nullable=False)

    claim: Mapped["CertificationClaimModel"] = relationship(
        "CertificationClaimModel", back_populates="contributions"
    )
    reservation: Mapped[CreditReservationModel] = relationship(
        CreditReservationModel, lazy="selectin"
    )

    def __repr__(self) -> str:
        return (
            f"<ClaimContribution claim={self.claim_id} #{self.position} "
            f"course={self.course_id} credits={self.credits_reserved}>"
        )

    def to_dto(self) -> ContributionView:
        return ContributionView(
            position=self.position,
            course_id=self.course_id,
            reservation_id=self.reservation_id,
            credits_reserved=self.credits_reserved,
            reservation_status=self.reservation.reservation_status,
        )


class ClaimDecisionModel(Base):
    """Append-only record of one lifecycle transition."""

    __tablename__ = "claim_decisions"

    __table_args__ = (
        UniqueConstraint("claim_id", "seq", name="uq_claim_decision_seq"),
        Index("ix_claim_decisions_actor", "actor_role", "actor_id"),
    )

    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("certification_claims.id"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    claim: Mapped["CertificationClaimModel"] = relationship(
        "CertificationClaimModel", back_populates="decisions"
    )

    def __repr__(self) -> str:
        return (
            f"<ClaimDecision claim={self.claim_id} #{self.seq} "
            f"{self.action}: {self.from_status} -> {self.to_status}>"
        )

    def to_dto(self) -> ClaimDecisionView:
        return ClaimDecisionView(
            decision_id=self.id,
            claim_id=self.claim_id,
            action=ClaimAction(self.action),
            from_status=ClaimStatus(self.from_status) if self.from_status else None,
            to_status=ClaimStatus(self.to_status),
            actor_id=self.actor_id,
            actor_role=ActorRole(self.actor_role) if self.actor_role else None,
            reason=self.reason,
            decided_at=self.decided_at,
        )
