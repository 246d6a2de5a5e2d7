"""
Module: credit_kernel.selectors.credit_selector
Responsibility: Read-only credit queries -- course balances, a student's
    per-umbrella credit summary, and reservations.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Summaries are computed from the course rows at query time; there is no
      separate stored aggregate to drift.
    - Umbrella totals are returned as a closed mapping
      umbrella_key -> UmbrellaTotals, never as dynamic columns.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from credit_kernel.domain.dtos import (
    CourseView,
    CreditSliceView,
    ReservationStatus,
    ReservationView,
    StudentCreditSummary,
    UmbrellaTotals,
)
from credit_kernel.exceptions import CourseNotFoundError
from credit_kernel.models.course import CourseModel
from credit_kernel.models.reservation import CreditReservationModel
from credit_kernel.selectors.base import BaseSelector
from credit_kernel.utils.rounding import ZERO


class CreditSelector(BaseSelector[CourseModel]):
    """Course balance and credit summary queries."""

    def get_course(self, course_id: UUID) -> CourseView:
        return self._course(course_id).to_dto()

    def course_balance(self, course_id: UUID) -> CreditSliceView:
        """Remaining-credit balance of one course."""
        return self._course(course_id).to_slice()

    def available_credits(self, course_id: UUID) -> Decimal:
        return self._course(course_id).credits_available

    def courses_for_student(
        self, student_id: str, umbrella_key: str | None = None
    ) -> list[CourseView]:
        """A student's courses, oldest completion first."""
        stmt = select(CourseModel).where(CourseModel.student_id == student_id)
        if umbrella_key is not None:
            stmt = stmt.where(CourseModel.umbrella_key == umbrella_key)
        courses = self.session.execute(stmt).scalars().all()
        courses = sorted(courses, key=lambda c: (c.completion_date, str(c.id)))
        return [c.to_dto() for c in courses]

    def course_ids_for(self, student_id: str, umbrella_key: str) -> list[UUID]:
        """Ids of the courses an allocation sweep would consider."""
        return list(
            self.session.execute(
                select(CourseModel.id).where(
                    CourseModel.student_id == student_id,
                    CourseModel.umbrella_key == umbrella_key,
                )
            ).scalars().all()
        )

    def student_summary(self, student_id: str) -> StudentCreditSummary:
        """Per-umbrella total / consumed / available credits for a student."""
        # Summed in Python: SQLite has no exact decimal SUM.
        rows = self.session.execute(
            select(
                CourseModel.umbrella_key,
                CourseModel.total_credits,
                CourseModel.credits_consumed,
            ).where(CourseModel.student_id == student_id)
        ).all()
        totals: dict[str, list[Decimal]] = {}
        for umbrella, total, consumed in rows:
            entry = totals.setdefault(umbrella, [ZERO, ZERO])
            entry[0] += total
            entry[1] += consumed
        return StudentCreditSummary(
            student_id=student_id,
            umbrellas={
                umbrella: UmbrellaTotals(total=total, consumed=consumed)
                for umbrella, (total, consumed) in sorted(totals.items())
            },
        )

    def get_reservation(self, reservation_id: UUID) -> ReservationView | None:
        reservation = self.session.get(CreditReservationModel, reservation_id)
        return reservation.to_dto() if reservation is not None else None

    def reservation_course_id(self, reservation_id: UUID) -> UUID | None:
        return self.session.execute(
            select(CreditReservationModel.course_id).where(
                CreditReservationModel.id == reservation_id
            )
        ).scalar_one_or_none()

    def active_reservations(self, course_id: UUID) -> list[ReservationView]:
        reservations = self.session.execute(
            select(CreditReservationModel)
            .where(
                CreditReservationModel.course_id == course_id,
                CreditReservationModel.status == ReservationStatus.ACTIVE.value,
            )
            .order_by(CreditReservationModel.created_at)
        ).scalars().all()
        return [r.to_dto() for r in reservations]

    def _course(self, course_id: UUID) -> CourseModel:
        course = self.session.get(CourseModel, course_id, populate_existing=True)
        if course is None:
            raise CourseNotFoundError(str(course_id))
        return course

