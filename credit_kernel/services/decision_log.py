"""
DecisionLog -- append-only record of claim lifecycle transitions.

Every submit, approve, decline and finalize writes one ClaimDecisionModel
row, numbered per claim.  Rows are immutable once flushed.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select

from credit_kernel.domain.claim_lifecycle import ClaimAction, ClaimStatus
from credit_kernel.domain.dtos import ClaimDecisionView
from credit_kernel.domain.values import Actor
from credit_kernel.models.claim import CertificationClaimModel, ClaimDecisionModel
from credit_kernel.services.base import BaseService


class DecisionLog(BaseService[ClaimDecisionModel]):

    def record(
        self,
        claim: CertificationClaimModel,
        action: ClaimAction,
        from_status: ClaimStatus | None,
        to_status: ClaimStatus,
        decided_at: datetime,
        actor: Actor | None = None,
        reason: str | None = None,
    ) -> ClaimDecisionView:
        seq = self.session.execute(
            select(func.count(ClaimDecisionModel.id)).where(
                ClaimDecisionModel.claim_id == claim.id
            )
        ).scalar_one()
        decision = ClaimDecisionModel(
            claim_id=claim.id,
            seq=seq,
            action=action.value,
            from_status=from_status.value if from_status is not None else None,
            to_status=to_status.value,
            actor_id=actor.identifier if actor is not None else None,
            actor_role=actor.role.value if actor is not None else None,
            reason=reason,
            decided_at=decided_at,
        )
        self.session.add(decision)
        self.session.flush()
        return decision.to_dto()
