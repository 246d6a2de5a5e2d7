"""
ApprovalWorkflow -- the two-stage (POC, then Admin) claim state machine.

Responsibility:
    Applies POC and Admin decisions to claims.  Each call validates the
    actor's role, locks the claim, checks the transition against
    ``CLAIM_TRANSITIONS``, performs the side effects (stamps, reservation
    releases, finalization), and appends a decision row.

Architecture position:
    Kernel > Services.  Flush-only.

Invariants enforced:
    - Only the transitions in CLAIM_TRANSITIONS happen; terminal claims
      never move again.
    - An illegal transition has no side effect: the check runs before any
      release or stamp.
    - Declines release every contribution before the claim is marked
      terminal, in the same transaction.  Release is idempotent, so a
      retried decline is safe.
    - Admin approval finalizes in the same transaction; ``admin_approved``
      is never left committed on its own.

Failure modes:
    - UnauthorizedActorError: role does not match the stage.
    - ClaimNotFoundError: unknown claim.
    - InvalidTransitionError: illegal from the current status (including a
      lost race: the first writer already advanced the claim).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from credit_kernel.domain.claim_lifecycle import (
    REQUIRED_ROLE,
    ClaimAction,
    ClaimStatus,
    next_status,
)
from credit_kernel.domain.clock import Clock, SystemClock
from credit_kernel.domain.dtos import ClaimView
from credit_kernel.domain.values import Actor
from credit_kernel.exceptions import (
    ClaimNotFoundError,
    InvalidTransitionError,
    UnauthorizedActorError,
)
from credit_kernel.logging_config import get_logger
from credit_kernel.models.claim import CertificationClaimModel
from credit_kernel.services.base import BaseService
from credit_kernel.services.certificate_writer import CertificateMappingWriter
from credit_kernel.services.credit_ledger import CreditLedger
from credit_kernel.services.decision_log import DecisionLog
from credit_kernel.services.locks import LockScope, claim_key, course_key

logger = get_logger("services.approval_workflow")


class ApprovalWorkflow(BaseService[CertificationClaimModel]):
    """POC/Admin approval and decline of certification claims."""

    def __init__(
        self,
        session: Session,
        ledger: CreditLedger,
        writer: CertificateMappingWriter,
        clock: Clock | None = None,
        locks: LockScope | None = None,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._writer = writer
        self._clock = clock or SystemClock()
        self._locks = locks
        self._decisions = DecisionLog(session)

    def poc_approve(self, claim_id: UUID, actor: Actor) -> ClaimView:
        return self._transition(claim_id, ClaimAction.POC_APPROVE, actor).to_dto()

    def poc_decline(self, claim_id: UUID, actor: Actor, reason: str | None = None) -> ClaimView:
        return self._transition(claim_id, ClaimAction.POC_DECLINE, actor, reason).to_dto()

    def admin_approve(self, claim_id: UUID, actor: Actor) -> ClaimView:
        """
        Record the admin approval, then finalize in the same transaction.

        Returns:
            The claim in ``approved``.  The mapping is available through
            ClaimSelector.get_mapping_by_claim().
        """
        claim = self._transition(claim_id, ClaimAction.ADMIN_APPROVE, actor)
        self._writer.finalize(claim.id)
        return claim.to_dto()

    def admin_decline(self, claim_id: UUID, actor: Actor, reason: str | None = None) -> ClaimView:
        return self._transition(claim_id, ClaimAction.ADMIN_DECLINE, actor, reason).to_dto()

    def _transition(
        self,
        claim_id: UUID,
        action: ClaimAction,
        actor: Actor,
        reason: str | None = None,
    ) -> CertificationClaimModel:
        required_role = REQUIRED_ROLE[action]
        if required_role is not None and actor.role != required_role:
            raise UnauthorizedActorError(
                actor_id=actor.identifier,
                actor_role=actor.role.value,
                required_role=required_role.value,
                action=action.value,
            )

        claim = self._lock_claim(claim_id)
        current = claim.claim_status
        target = next_status(current, action)
        if target is None:
            logger.info(
                "claim_transition_rejected",
                extra={
                    "claim_id": str(claim_id),
                    "current_status": current.value,
                    "action": action.value,
                },
            )
            raise InvalidTransitionError(str(claim_id), current.value, action.value)

        now = self._clock.now()
        if target in (ClaimStatus.POC_DECLINED, ClaimStatus.ADMIN_DECLINED):
            if self._locks is not None:
                self._locks.acquire_all(course_key(c.course_id) for c in claim.contributions)
            for contribution in claim.contributions:
                self._ledger.release(contribution.reservation_id, claim_id=claim.id)
            claim.declined_by = actor.identifier
            claim.declined_role = actor.role.value
            claim.decline_reason = reason
            claim.declined_at = now
        elif action == ClaimAction.POC_APPROVE:
            claim.poc_by = actor.identifier
            claim.poc_at = now
        elif action == ClaimAction.ADMIN_APPROVE:
            claim.admin_by = actor.identifier
            claim.admin_at = now

        claim.status = target.value
        self.session.flush()
        self._decisions.record(
            claim, action, current, target, decided_at=now, actor=actor, reason=reason
        )

        logger.info(
            "claim_transition",
            extra={
                "claim_id": str(claim.id),
                "action": action.value,
                "from_status": current.value,
                "to_status": target.value,
                "actor_id": actor.identifier,
                "actor_role": actor.role.value,
            },
        )
        return claim

    def _lock_claim(self, claim_id: UUID) -> CertificationClaimModel:
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
        return claim
