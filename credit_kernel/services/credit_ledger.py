"""
CreditLedger -- single source of truth for unconsumed course credits.

Responsibility:
    Records completed courses (deriving their credits), and moves credits
    between available and consumed through reservations: reserve, release,
    commit.

Architecture position:
    Kernel > Services.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - 0 <= credits_consumed <= total_credits on every course.  Every change
      to credits_consumed happens on a row read under the course lock
      (LockScope + SELECT ... FOR UPDATE).
    - Reserve then release leaves the course exactly as it was.
    - Released and committed reservations never change again.

Failure modes:
    - InvalidHoursError / UnknownUmbrellaError: bad course record, nothing
      stored.
    - CourseNotFoundError, ReservationNotFoundError: unknown ids.
    - InvalidAmountError: non-positive reservation amount, or one finer
      than the stored scale.
    - InsufficientCreditsError: amount exceeds what is available.
    - ReservationCommittedError: releasing a committed reservation.
    - ReservationReleasedError: committing a released reservation.
    - ReservationHeldByClaimError: standalone release or commit of a
      reservation that backs a claim.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from credit_kernel.domain.clock import Clock, SystemClock
from credit_kernel.domain.credits import compute_course_credits
from credit_kernel.domain.dtos import (
    CourseRecord,
    CreditSliceView,
    ReservationStatus,
    ReservationView,
)
from credit_kernel.domain.rules import DEFAULT_RULES, CreditRules
from credit_kernel.exceptions import (
    CourseNotFoundError,
    InsufficientCreditsError,
    InvalidAmountError,
    InvalidHoursError,
    ReservationCommittedError,
    ReservationHeldByClaimError,
    ReservationNotFoundError,
    ReservationReleasedError,
    UnknownUmbrellaError,
)
from credit_kernel.logging_config import get_logger
from credit_kernel.models.course import CourseModel
from credit_kernel.models.reservation import CreditReservationModel
from credit_kernel.services.base import BaseService
from credit_kernel.services.locks import LockScope, course_key, student_key
from credit_kernel.utils.rounding import ZERO, fits_storage_scale, to_decimal

logger = get_logger("services.credit_ledger")


class CreditLedger(BaseService[CourseModel]):
    """
    Course credit ledger.

    Contract:
        Every method that changes ``credits_consumed`` first takes the
        course lock in the supplied LockScope (a no-op if the scope already
        holds it) and re-reads the row with ``populate_existing``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        rules: CreditRules | None = None,
        locks: LockScope | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._rules = rules or DEFAULT_RULES
        self._locks = locks

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    def record_course(self, record: CourseRecord) -> CreditSliceView:
        """
        Validate a completed-course record, derive its credits, and store it.

        Raises:
            InvalidHoursError: negative hours or days, or a total_hours that
                differs from theory + practical.
            UnknownUmbrellaError: discipline matches no configured umbrella, or
                the explicit umbrella_key is not a configured one.
        """
        credits = compute_course_credits(
            record.theory_hours,
            record.practical_hours,
            record.total_hours,
            rates=self._rules.rates,
        )
        if isinstance(record.no_of_days, bool) or not isinstance(record.no_of_days, int):
            raise InvalidHoursError("no_of_days", record.no_of_days, "must be an integer")
        if record.no_of_days < 0:
            raise InvalidHoursError("no_of_days", record.no_of_days, "must not be negative")

        umbrella_key = record.umbrella_key or self._rules.resolve_umbrella(record.discipline)
        if self._rules.umbrellas and umbrella_key not in self._rules.umbrellas:
            raise UnknownUmbrellaError(umbrella_key)

        if self._locks is not None:
            self._locks.acquire(student_key(record.student_id))

        course = CourseModel(
            student_id=record.student_id,
            name=record.name,
            organization=record.organization,
            discipline=record.discipline or umbrella_key,
            umbrella_key=umbrella_key,
            theory_hours=credits.theory_hours,
            practical_hours=credits.practical_hours,
            total_hours=credits.total_hours,
            no_of_days=record.no_of_days,
            completion_date=record.completion_date,
            theory_credits=credits.theory_credits,
            practical_credits=credits.practical_credits,
            total_credits=credits.total_credits,
            credits_consumed=ZERO,
            document_ref=record.document_ref,
            recorded_at=self._clock.now(),
        )
        self.session.add(course)
        self.session.flush()

        logger.info(
            "course_recorded",
            extra={
                "course_id": str(course.id),
                "student_id": course.student_id,
                "umbrella_key": umbrella_key,
                "theory_credits": str(credits.theory_credits),
                "practical_credits": str(credits.practical_credits),
                "total_credits": str(credits.total_credits),
            },
        )
        return course.to_slice()

    def get_slice(self, course_id: UUID) -> CreditSliceView:
        return self._get_course(course_id).to_slice()

    def available_credits(self, course_id: UUID) -> Decimal:
        """Read-only snapshot of a course's available credits."""
        return self._get_course(course_id).credits_available

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def reserve(
        self,
        course_id: UUID,
        amount: Decimal | int | str,
        claim_id: UUID | None = None,
    ) -> UUID:
        """
        Hold ``amount`` credits of one course.

        Returns:
            The new reservation id.

        Raises:
            InvalidAmountError: amount is not a positive number, or has more
                decimal places than the credit columns store.
            InsufficientCreditsError: amount exceeds the course's availability.
            CourseNotFoundError: unknown course.
        """
        try:
            value = to_decimal(amount, "amount")
        except (TypeError, ValueError) as exc:
            raise InvalidAmountError(amount) from exc
        if not value.is_finite() or value <= ZERO:
            raise InvalidAmountError(value)
        if not fits_storage_scale(value):
            raise InvalidAmountError(value, "must have at most 9 decimal places")

        course = self._lock_course(course_id)
        available = course.credits_available
        if value > available:
            raise InsufficientCreditsError(
                required=value,
                available=available,
                course_id=str(course_id),
            )

        course.credits_consumed = course.credits_consumed + value
        reservation = CreditReservationModel(
            course_id=course.id,
            claim_id=claim_id,
            amount=value,
            status=ReservationStatus.ACTIVE.value,
            created_at=self._clock.now(),
        )
        self.session.add(reservation)
        self.session.flush()

        logger.info(
            "credits_reserved",
            extra={
                "reservation_id": str(reservation.id),
                "course_id": str(course.id),
                "claim_id": str(claim_id) if claim_id else None,
                "amount": str(value),
                "credits_available": str(course.credits_available),
            },
        )
        return reservation.id

    def release(
        self, reservation_id: UUID, *, claim_id: UUID | None = None
    ) -> ReservationView:
        """
        Return a reservation's credits to its course.

        Idempotent: releasing an already-released reservation changes
        nothing.  A reservation that backs a claim is released only by that
        claim's decline, which passes its ``claim_id``.

        Raises:
            ReservationHeldByClaimError: the reservation belongs to another
                (or an unnamed) claim.
            ReservationCommittedError: the reservation is permanent.
            ReservationNotFoundError: unknown reservation.
        """
        reservation, course = self._lock_reservation(reservation_id)
        self._check_owner(reservation, claim_id, "release")
        status = reservation.reservation_status

        if status == ReservationStatus.RELEASED:
            logger.debug(
                "reservation_release_noop",
                extra={"reservation_id": str(reservation_id)},
            )
            return reservation.to_dto()
        if status == ReservationStatus.COMMITTED:
            raise ReservationCommittedError(str(reservation_id))

        course.credits_consumed = course.credits_consumed - reservation.amount
        reservation.status = ReservationStatus.RELEASED.value
        reservation.released_at = self._clock.now()
        self.session.flush()

        logger.info(
            "reservation_released",
            extra={
                "reservation_id": str(reservation.id),
                "course_id": str(course.id),
                "claim_id": str(reservation.claim_id) if reservation.claim_id else None,
                "amount": str(reservation.amount),
                "credits_available": str(course.credits_available),
            },
        )
        return reservation.to_dto()

    def commit(
        self, reservation_id: UUID, *, claim_id: UUID | None = None
    ) -> ReservationView:
        """
        Make a reservation permanent.  Idempotent on committed reservations.

        A claim's reservations are committed only by its finalization.

        Raises:
            ReservationHeldByClaimError: the reservation belongs to another
                (or an unnamed) claim.
            ReservationReleasedError: the reservation was released.
            ReservationNotFoundError: unknown reservation.
        """
        reservation, course = self._lock_reservation(reservation_id)
        self._check_owner(reservation, claim_id, "commit")
        status = reservation.reservation_status

        if status == ReservationStatus.COMMITTED:
            return reservation.to_dto()
        if status == ReservationStatus.RELEASED:
            raise ReservationReleasedError(str(reservation_id))

        reservation.status = ReservationStatus.COMMITTED.value
        reservation.committed_at = self._clock.now()
        self.session.flush()

        logger.info(
            "reservation_committed",
            extra={
                "reservation_id": str(reservation.id),
                "course_id": str(course.id),
                "amount": str(reservation.amount),
            },
        )
        return reservation.to_dto()

    def get_reservation(self, reservation_id: UUID) -> ReservationView:
        reservation = self.session.get(CreditReservationModel, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(str(reservation_id))
        return reservation.to_dto()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_course(self, course_id: UUID) -> CourseModel:
        course = self.session.execute(
            select(CourseModel)
            .where(CourseModel.id == course_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if course is None:
            raise CourseNotFoundError(str(course_id))
        return course

    def _lock_course(self, course_id: UUID) -> CourseModel:
        if self._locks is not None:
            self._locks.acquire(course_key(course_id))
        course = self.session.execute(
            select(CourseModel)
            .where(CourseModel.id == course_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if course is None:
            raise CourseNotFoundError(str(course_id))
        return course

    def _lock_reservation(
        self, reservation_id: UUID
    ) -> tuple[CreditReservationModel, CourseModel]:
        course_id = self.session.execute(
            select(CreditReservationModel.course_id).where(
                CreditReservationModel.id == reservation_id
            )
        ).scalar_one_or_none()
        if course_id is None:
            raise ReservationNotFoundError(str(reservation_id))

        # Course first, then reservation: the same order reserve() uses.
        course = self._lock_course(course_id)
        reservation = self.session.execute(
            select(CreditReservationModel)
            .where(CreditReservationModel.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        return reservation, course

    @staticmethod
    def _check_owner(
        reservation: CreditReservationModel, claim_id: UUID | None, operation: str
    ) -> None:
        if reservation.claim_id is not None and reservation.claim_id != claim_id:
            raise ReservationHeldByClaimError(
                str(reservation.id), str(reservation.claim_id), operation
            )
