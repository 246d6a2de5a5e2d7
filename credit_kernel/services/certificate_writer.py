"""
CertificateMappingWriter -- finalizes admin-approved claims.

Responsibility:
    Converts a claim in ``admin_approved`` into a permanent certificate
    mapping: commits every contribution's reservation, allocates the
    certificate number, writes the mapping with its lines and content hash,
    and moves the claim to ``approved``.

Architecture position:
    Kernel > Services.  Flush-only; everything happens inside the caller's
    transaction, so the mapping and the ``approved`` status land together
    or not at all.

Invariants enforced:
    - Finalizing an ``approved`` claim returns its existing mapping and
      consumes nothing further.
    - The mapping's lines sum to the claim's required credits.
    - Certificate numbers come from a locked per-umbrella counter.

Failure modes:
    - ClaimNotFoundError: unknown claim.
    - ClaimNotReadyError: claim is in any status other than
      ``admin_approved`` or ``approved``.
    - ReservationReleasedError: a contribution was released underneath
      the claim.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from credit_kernel.domain.claim_lifecycle import ClaimAction, ClaimStatus, next_status
from credit_kernel.domain.clock import Clock, SystemClock
from credit_kernel.domain.credits import format_certificate_no
from credit_kernel.domain.dtos import CertificateMappingView
from credit_kernel.exceptions import (
    ClaimNotFoundError,
    ClaimNotReadyError,
    InsufficientCreditsError,
)
from credit_kernel.logging_config import get_logger
from credit_kernel.models.certificate import (
    CertificateMappingLineModel,
    CertificateMappingModel,
)
from credit_kernel.models.claim import CertificationClaimModel
from credit_kernel.models.course import CourseModel
from credit_kernel.services.base import BaseService
from credit_kernel.services.credit_ledger import CreditLedger
from credit_kernel.services.decision_log import DecisionLog
from credit_kernel.services.locks import LockScope, claim_key
from credit_kernel.services.sequence_service import (
    SequenceService,
    certificate_sequence_name,
)
from credit_kernel.utils.hashing import hash_certificate_mapping
from credit_kernel.utils.rounding import ZERO

logger = get_logger("services.certificate_writer")


class CertificateMappingWriter(BaseService[CertificateMappingModel]):
    """Writes the immutable certificate-to-course credit mapping."""

    def __init__(
        self,
        session: Session,
        ledger: CreditLedger,
        clock: Clock | None = None,
        locks: LockScope | None = None,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._locks = locks
        self._sequences = SequenceService(session)
        self._decisions = DecisionLog(session)

    def finalize(self, claim_id: UUID) -> CertificateMappingView:
        """
        Finalize an admin-approved claim.  Idempotent per claim.
        """
        if self._locks is not None:
            self._locks.acquire(claim_key(claim_id))
        claim = self.session.execute(
            select(CertificationClaimModel)
            .where(CertificationClaimModel.id == claim_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if claim is None:
            raise ClaimNotFoundError(str(claim_id))

        status = claim.claim_status
        if status == ClaimStatus.APPROVED:
            existing = self._existing_mapping(claim.id)
            if existing is not None:
                logger.info(
                    "finalize_idempotent",
                    extra={"claim_id": str(claim.id), "certificate_no": existing.certificate_no},
                )
                return existing.to_dto()
        target = next_status(status, ClaimAction.FINALIZE)
        if target is None:
            raise ClaimNotReadyError(str(claim_id), status.value)

        contributed = sum((c.credits_reserved for c in claim.contributions), ZERO)
        if contributed != claim.required_credits:
            raise InsufficientCreditsError(
                required=claim.required_credits,
                available=contributed,
                umbrella_key=claim.umbrella_key,
            )

        for contribution in claim.contributions:
            self._ledger.commit(contribution.reservation_id, claim_id=claim.id)

        sequence = self._sequences.next_value(certificate_sequence_name(claim.umbrella_key))
        certificate_no = format_certificate_no(claim.umbrella_key, sequence)
        certificate_id = uuid4()
        issued_at = self._clock.now()

        line_values = []
        for contribution in claim.contributions:
            course = self.session.get(CourseModel, contribution.course_id)
            line_values.append({
                "position": contribution.position,
                "course_id": course.id,
                "course_name": course.name,
                "organization": course.organization,
                "theory_hours": course.theory_hours,
                "practical_hours": course.practical_hours,
                "total_credits": course.total_credits,
                "credits_used": contribution.credits_reserved,
                "completion_date": course.completion_date,
                "document_ref": course.document_ref,
            })

        content_hash = hash_certificate_mapping(
            certificate_id=certificate_id,
            certificate_no=certificate_no,
            claim_id=claim.id,
            student_id=claim.student_id,
            umbrella_key=claim.umbrella_key,
            qualification=claim.qualification,
            total_credits_required=claim.required_credits,
            issued_at=issued_at,
            lines=line_values,
        )
        mapping = CertificateMappingModel(
            certificate_id=certificate_id,
            certificate_no=certificate_no,
            claim_id=claim.id,
            student_id=claim.student_id,
            umbrella_key=claim.umbrella_key,
            qualification=claim.qualification,
            total_credits_required=claim.required_credits,
            issued_at=issued_at,
            content_hash=content_hash,
            lines=[CertificateMappingLineModel(**values) for values in line_values],
        )
        self.session.add(mapping)

        claim.status = target.value
        claim.finalized_at = issued_at
        self.session.flush()
        self._decisions.record(
            claim,
            ClaimAction.FINALIZE,
            status,
            target,
            decided_at=issued_at,
        )

        logger.info(
            "certificate_mapping_written",
            extra={
                "claim_id": str(claim.id),
                "student_id": claim.student_id,
                "certificate_no": certificate_no,
                "certificate_id": str(certificate_id),
                "total_credits": str(claim.required_credits),
                "line_count": len(line_values),
            },
        )
        return mapping.to_dto()

    def _existing_mapping(self, claim_id: UUID) -> CertificateMappingModel | None:
        return self.session.execute(
            select(CertificateMappingModel).where(CertificateMappingModel.claim_id == claim_id)
        ).scalar_one_or_none()
