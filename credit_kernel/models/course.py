"""
Module: credit_kernel.models.course
Responsibility: ORM persistence for completed training courses and the
    consumable credit slice each course carries.
Architecture position: Kernel > Models.  May import from db/ and domain/.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - Hours and derived credits are frozen at creation (immutability listener
      in db/immutability.py).
    - 0 <= credits_consumed <= total_credits (check constraints, plus the
      ledger's locked read-modify-write).
    - (student_id, umbrella_key, completion_date) index backs the FIFO sweep.

Failure modes:
    - IntegrityError if credits_consumed leaves [0, total_credits].
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_kernel.db.base import Base, UTCDateTime
from credit_kernel.domain.dtos import CourseView, CreditSliceView

# Columns that may never change once the course is recorded.
COURSE_FROZEN_FIELDS: tuple[str, ...] = (
    "student_id",
    "umbrella_key",
    "theory_hours",
    "practical_hours",
    "total_hours",
    "theory_credits",
    "practical_credits",
    "total_credits",
    "completion_date",
)


class CourseModel(Base):
    """
    One completed course for one student.

    Contract:
        ``credits_consumed`` is the only mutable credit column.  It moves
        only through CreditLedger.reserve / release.
    """

    __tablename__ = "courses"

    __table_args__ = (
        CheckConstraint("credits_consumed >= 0", name="ck_courses_consumed_non_negative"),
        CheckConstraint(
            "credits_consumed <= total_credits",
            name="ck_courses_consumed_within_total",
        ),
        CheckConstraint("theory_hours >= 0", name="ck_courses_theory_non_negative"),
        CheckConstraint("practical_hours >= 0", name="ck_courses_practical_non_negative"),
        # FIFO sweep: a student's courses under one umbrella, oldest first
        Index("idx_course_student_umbrella", "student_id", "umbrella_key", "completion_date"),
    )

    student_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    organization: Mapped[str] = mapped_column(String(500), nullable=False)
    discipline: Mapped[str] = mapped_column(String(500), nullable=False)
    umbrella_key: Mapped[str] = mapped_column(String(100), nullable=False)

    theory_hours: Mapped[Decimal] = mapped_column(nullable=False)
    practical_hours: Mapped[Decimal] = mapped_column(nullable=False)
    total_hours: Mapped[Decimal] = mapped_column(nullable=False)
    no_of_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_date: Mapped[date] = mapped_column(Date, nullable=False)

    theory_credits: Mapped[Decimal] = mapped_column(nullable=False)
    practical_credits: Mapped[Decimal] = mapped_column(nullable=False)
    total_credits: Mapped[Decimal] = mapped_column(nullable=False)
    credits_consumed: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    document_ref: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    @property
    def credits_available(self) -> Decimal:
        return self.total_credits - self.credits_consumed

    def __repr__(self) -> str:
        return (
            f"<Course {self.id}: student={self.student_id} "
            f"umbrella={self.umbrella_key} "
            f"{self.credits_consumed}/{self.total_credits}>"
        )

    def to_slice(self) -> CreditSliceView:
        return CreditSliceView(
            course_id=self.id,
            student_id=self.student_id,
            umbrella_key=self.umbrella_key,
            completion_date=self.completion_date,
            total_credits=self.total_credits,
            credits_consumed=self.credits_consumed,
        )

    def to_dto(self) -> CourseView:
        """Convert ORM model to frozen domain DTO."""
        return CourseView(
            course_id=self.id,
            student_id=self.student_id,
            name=self.name,
            organization=self.organization,
            discipline=self.discipline,
            umbrella_key=self.umbrella_key,
            theory_hours=self.theory_hours,
            practical_hours=self.practical_hours,
            total_hours=self.total_hours,
            no_of_days=self.no_of_days,
            completion_date=self.completion_date,
            theory_credits=self.theory_credits,
            practical_credits=self.practical_credits,
            total_credits=self.total_credits,
            credits_consumed=self.credits_consumed,
            document_ref=self.document_ref,
            recorded_at=self.recorded_at,
        )
