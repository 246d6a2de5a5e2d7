"""
Module: credit_kernel.selectors.claim_selector
Responsibility: Read-only claim and certificate queries -- review queues by
    role, declined lists, claim breakdowns and decision history, certificate
    mappings by every lookup key, and dashboard counts.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every certificate mapping is hash-verified on load; a mismatch raises
      MappingTamperedError rather than returning altered data.
    - Queues are derived from the status enum only.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from credit_kernel.domain.claim_lifecycle import (
    DECLINED_STATUS_BY_ROLE,
    REVIEW_QUEUE_STATUS,
    ClaimStatus,
)
from credit_kernel.domain.dtos import (
    CertificateMappingView,
    ClaimAnalytics,
    ClaimDecisionView,
    ClaimView,
    ContributionView,
)
from credit_kernel.domain.values import ActorRole, Qualification
from credit_kernel.exceptions import (
    ClaimNotFoundError,
    MappingNotFoundError,
    MappingTamperedError,
)
from credit_kernel.logging_config import get_logger
from credit_kernel.models.certificate import CertificateMappingModel
from credit_kernel.models.claim import CertificationClaimModel, ClaimDecisionModel
from credit_kernel.models.course import CourseModel
from credit_kernel.selectors.base import BaseSelector
from credit_kernel.utils.hashing import hash_certificate_mapping

logger = get_logger("selectors.claim")


def compute_mapping_hash(mapping: CertificateMappingModel) -> str:
    """Recompute the content hash from the stored mapping rows."""
    return hash_certificate_mapping(
        certificate_id=mapping.certificate_id,
        certificate_no=mapping.certificate_no,
        claim_id=mapping.claim_id,
        student_id=mapping.student_id,
        umbrella_key=mapping.umbrella_key,
        qualification=mapping.qualification,
        total_credits_required=mapping.total_credits_required,
        issued_at=mapping.issued_at,
        lines=[
            {
                "course_id": line.course_id,
                "credits_used": line.credits_used,
                "total_credits": line.total_credits,
                "theory_hours": line.theory_hours,
                "practical_hours": line.practical_hours,
                "completion_date": line.completion_date,
            }
            for line in mapping.lines
        ],
    )


class ClaimSelector(BaseSelector[CertificationClaimModel]):
    """Claim, decision and certificate mapping queries."""

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def get_claim(self, claim_id: UUID) -> ClaimView:
        claim = self.session.get(CertificationClaimModel, claim_id, populate_existing=True)
        if claim is None:
            raise ClaimNotFoundError(str(claim_id))
        return claim.to_dto()

    def contributions(self, claim_id: UUID) -> tuple[ContributionView, ...]:
        """A claim's course-contribution breakdown, in allocation order."""
        return self.get_claim(claim_id).contributions

    def decisions(self, claim_id: UUID) -> list[ClaimDecisionView]:
        rows = self.session.execute(
            select(ClaimDecisionModel)
            .where(ClaimDecisionModel.claim_id == claim_id)
            .order_by(ClaimDecisionModel.seq)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def pending_for_role(self, role: ActorRole) -> list[ClaimView]:
        """
        The review queue for a role: POC reviewers see ``pending`` claims,
        Admin reviewers see ``poc_approved`` claims.
        """
        return self._by_status(REVIEW_QUEUE_STATUS[ActorRole(role)])

    def declined_for_role(
        self, role: ActorRole, declined_by: str | None = None
    ) -> list[ClaimView]:
        """Claims declined at the role's stage, optionally by one decliner."""
        return self._by_status(
            DECLINED_STATUS_BY_ROLE[ActorRole(role)], declined_by=declined_by
        )

    def claims_for_student(self, student_id: str) -> list[ClaimView]:
        claims = self.session.execute(
            select(CertificationClaimModel)
            .where(CertificationClaimModel.student_id == student_id)
            .order_by(CertificationClaimModel.created_at)
        ).scalars().all()
        return [c.to_dto() for c in claims]

    def _by_status(
        self, status: ClaimStatus, declined_by: str | None = None
    ) -> list[ClaimView]:
        stmt = (
            select(CertificationClaimModel)
            .where(CertificationClaimModel.status == status.value)
            .order_by(CertificationClaimModel.created_at)
        )
        if declined_by is not None:
            stmt = stmt.where(CertificationClaimModel.declined_by == declined_by)
        return [c.to_dto() for c in self.session.execute(stmt).scalars().all()]

    # ------------------------------------------------------------------
    # Certificate mappings
    # ------------------------------------------------------------------

    def get_mapping_by_claim(self, claim_id: UUID) -> CertificateMappingView:
        return self._one_mapping("claim_id", CertificateMappingModel.claim_id == claim_id, claim_id)

    def get_mapping_by_certificate_id(self, certificate_id: UUID) -> CertificateMappingView:
        return self._one_mapping(
            "certificate_id",
            CertificateMappingModel.certificate_id == certificate_id,
            certificate_id,
        )

    def get_mapping_by_certificate_no(self, certificate_no: str) -> CertificateMappingView:
        return self._one_mapping(
            "certificate_no",
            CertificateMappingModel.certificate_no == certificate_no,
            certificate_no,
        )

    def mappings_for_student(self, student_id: str) -> list[CertificateMappingView]:
        mappings = self.session.execute(
            select(CertificateMappingModel)
            .where(CertificateMappingModel.student_id == student_id)
            .order_by(CertificateMappingModel.issued_at)
        ).scalars().all()
        return [self._verified(m) for m in mappings]

    def _one_mapping(self, lookup: str, clause, value) -> CertificateMappingView:
        mapping = self.session.execute(
            select(CertificateMappingModel)
            .where(clause)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if mapping is None:
            raise MappingNotFoundError(lookup, str(value))
        return self._verified(mapping)

    def _verified(self, mapping: CertificateMappingModel) -> CertificateMappingView:
        computed = compute_mapping_hash(mapping)
        if computed != mapping.content_hash:
            logger.error(
                "certificate_mapping_tampered",
                extra={
                    "mapping_id": str(mapping.id),
                    "certificate_no": mapping.certificate_no,
                },
            )
            raise MappingTamperedError(str(mapping.id), mapping.content_hash, computed)
        return mapping.to_dto()

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def analytics(self) -> ClaimAnalytics:
        """Claims per status, declines per role, courses per umbrella, and
        certificates issued per umbrella + qualification."""
        status_rows = self.session.execute(
            select(CertificationClaimModel.status, func.count(CertificationClaimModel.id))
            .group_by(CertificationClaimModel.status)
        ).all()
        claims_by_status = {status: 0 for status in ClaimStatus}
        for status, count in status_rows:
            claims_by_status[ClaimStatus(status)] = count

        course_rows = self.session.execute(
            select(CourseModel.umbrella_key, func.count(CourseModel.id))
            .group_by(CourseModel.umbrella_key)
        ).all()

        certificate_rows = self.session.execute(
            select(
                CertificateMappingModel.umbrella_key,
                CertificateMappingModel.qualification,
                func.count(CertificateMappingModel.id),
            ).group_by(
                CertificateMappingModel.umbrella_key,
                CertificateMappingModel.qualification,
            )
        ).all()

        return ClaimAnalytics(
            claims_by_status=claims_by_status,
            declined_by_role={
                role: claims_by_status[status]
                for role, status in DECLINED_STATUS_BY_ROLE.items()
            },
            courses_by_umbrella={umbrella: count for umbrella, count in course_rows},
            certificates_by_umbrella={
                (umbrella, Qualification(qual)): count
                for umbrella, qual, count in certificate_rows
            },
        )
