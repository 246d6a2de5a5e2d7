"""
Module: credit_kernel.models.reservation
Responsibility: ORM persistence for credit reservations -- holds against one
    course's credit slice, optionally on behalf of a claim.
Architecture position: Kernel > Models.

Invariants enforced:
    - amount > 0 (check constraint).
    - status is one of active / released / committed; released and committed
      are terminal (enforced by CreditLedger).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_kernel.db.base import Base, UTCDateTime, UUIDString
from credit_kernel.domain.dtos import ReservationStatus, ReservationView


class CreditReservationModel(Base):
    """A hold of ``amount`` credits against one course."""

    __tablename__ = "credit_reservations"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_credit_reservations_positive"),
        CheckConstraint(
            "status IN ('active', 'released', 'committed')",
            name="ck_credit_reservations_valid_status",
        ),
        Index("idx_reservation_course_status", "course_id", "status"),
        Index("idx_reservation_claim", "claim_id"),
    )

    course_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("courses.id"),
        nullable=False,
    )
    # Nullable: reservations may be made outside a claim.
    claim_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReservationStatus.ACTIVE.value
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    committed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    @property
    def reservation_status(self) -> ReservationStatus:
        return ReservationStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<CreditReservation {self.id}: course={self.course_id} "
            f"amount={self.amount} status={self.status}>"
        )

    def to_dto(self) -> ReservationView:
        """Convert ORM model to frozen domain DTO."""
        return ReservationView(
            reservation_id=self.id,
            course_id=self.course_id,
            claim_id=self.claim_id,
            amount=self.amount,
            status=self.reservation_status,
            created_at=self.created_at,
            released_at=self.released_at,
            committed_at=self.committed_at,
        )
