"""
ClaimAllocator -- turns a claim request into a credit-exact set of
course contributions.

Responsibility:
    Looks up the required credits for (umbrella, qualification), plans a
    FIFO sweep over the student's courses under that umbrella, reserves each
    planned slice through CreditLedger, and persists the claim in
    ``pending`` with its contributions.

Architecture position:
    Kernel > Services.  Flush-only.  Planning is delegated to the pure
    ``domain.allocation`` module.

Invariants enforced:
    - Sum of contributions == required credits, exactly.
    - All-or-nothing: the sweep runs inside a savepoint; any failure
      (insufficient credits, cancellation, lock timeout) rolls every
      reservation of the sweep back before the error propagates.
    - One open claim per (student, umbrella, qualification).

Failure modes:
    - UnknownRequirementError: no threshold for the pair.
    - DuplicateClaimError: an open claim already exists.
    - InsufficientCreditsError: total availability below requirement.
    - AllocationCancelledError: the cancellation token fired mid-sweep.
    - ContentionError: a course lock could not be acquired in time.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from credit_kernel.domain.allocation import AvailableSlice, plan_allocation
from credit_kernel.domain.claim_lifecycle import (
    OPEN_CLAIM_STATUSES,
    ClaimAction,
    ClaimStatus,
)
from credit_kernel.domain.clock import Clock, SystemClock
from credit_kernel.domain.dtos import ClaimView
from credit_kernel.domain.rules import DEFAULT_RULES, CreditRules
from credit_kernel.domain.values import CancellationToken, Qualification
from credit_kernel.exceptions import (
    AllocationCancelledError,
    DuplicateClaimError,
    InsufficientCreditsError,
)
from credit_kernel.logging_config import get_logger
from credit_kernel.models.claim import CertificationClaimModel, ClaimContributionModel
from credit_kernel.models.course import CourseModel
from credit_kernel.services.base import BaseService
from credit_kernel.services.credit_ledger import CreditLedger
from credit_kernel.services.decision_log import DecisionLog
from credit_kernel.services.locks import LockScope, course_key, student_key
from credit_kernel.utils.rounding import ZERO

logger = get_logger("services.claim_allocator")


class ClaimAllocator(BaseService[CertificationClaimModel]):
    """Creates pending claims backed by active reservations."""

    def __init__(
        self,
        session: Session,
        ledger: CreditLedger,
        rules: CreditRules | None = None,
        clock: Clock | None = None,
        locks: LockScope | None = None,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._rules = rules or DEFAULT_RULES
        self._clock = clock or SystemClock()
        self._locks = locks
        self._decisions = DecisionLog(session)

    def submit_claim(
        self,
        student_id: str,
        umbrella_key: str,
        qualification: Qualification | str,
        *,
        document_ref: str | None = None,
        notes: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ClaimView:
        """
        Allocate credits for a new claim and persist it in ``pending``.

        Returns:
            The pending claim with its contributions populated.
        """
        required = self._rules.required_credits(umbrella_key, qualification)
        qual = Qualification.parse(qualification)

        if self._locks is not None:
            self._locks.acquire(student_key(student_id))

        existing = self.session.execute(
            select(CertificationClaimModel.id).where(
                CertificationClaimModel.student_id == student_id,
                CertificationClaimModel.umbrella_key == umbrella_key,
                CertificationClaimModel.qualification == qual.value,
                CertificationClaimModel.status.in_([s.value for s in OPEN_CLAIM_STATUSES]),
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateClaimError(student_id, umbrella_key, qual.value, str(existing))

        courses = self._eligible_courses(student_id, umbrella_key)
        plan = plan_allocation(
            (
                AvailableSlice(
                    course_id=c.id,
                    completion_date=c.completion_date,
                    available=c.credits_available,
                )
                for c in courses
            ),
            required,
            umbrella_key=umbrella_key,
        )

        now = self._clock.now()
        savepoint = self.session.begin_nested()
        reserved = ZERO
        try:
            claim = CertificationClaimModel(
                student_id=student_id,
                umbrella_key=umbrella_key,
                qualification=qual.value,
                required_credits=required,
                status=ClaimStatus.PENDING.value,
                created_at=now,
                document_ref=document_ref,
                notes=notes,
            )
            self.session.add(claim)
            self.session.flush()

            for planned in plan:
                if cancel_token is not None and cancel_token.cancelled:
                    raise AllocationCancelledError(student_id, umbrella_key, reserved)
                reservation_id = self._ledger.reserve(
                    planned.course_id, planned.amount, claim_id=claim.id
                )
                self.session.add(
                    ClaimContributionModel(
                        claim_id=claim.id,
                        position=planned.position,
                        course_id=planned.course_id,
                        reservation_id=reservation_id,
                        credits_reserved=planned.amount,
                    )
                )
                reserved += planned.amount

            if reserved != required:
                raise InsufficientCreditsError(
                    required=required, available=reserved, umbrella_key=umbrella_key
                )

            self._decisions.record(
                claim,
                ClaimAction.SUBMIT,
                None,
                ClaimStatus.PENDING,
                decided_at=now,
            )
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            logger.info(
                "claim_allocation_rolled_back",
                extra={
                    "student_id": student_id,
                    "umbrella_key": umbrella_key,
                    "reserved_before_rollback": str(reserved),
                },
            )
            raise

        self.session.refresh(claim)
        logger.info(
            "claim_submitted",
            extra={
                "claim_id": str(claim.id),
                "student_id": student_id,
                "umbrella_key": umbrella_key,
                "qualification": qual.value,
                "required_credits": str(required),
                "contribution_count": len(plan),
            },
        )
        return claim.to_dto()

    def _eligible_courses(self, student_id: str, umbrella_key: str) -> list[CourseModel]:
        """The student's courses under the umbrella, each locked."""
        course_ids = self.session.execute(
            select(CourseModel.id).where(
                CourseModel.student_id == student_id,
                CourseModel.umbrella_key == umbrella_key,
            )
        ).scalars().all()
        if self._locks is not None:
            self._locks.acquire_all(course_key(cid) for cid in course_ids)
        if not course_ids:
            return []
        return list(
            self.session.execute(
                select(CourseModel)
                .where(CourseModel.id.in_(course_ids))
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

