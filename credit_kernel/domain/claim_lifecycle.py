"""
Certification claim lifecycle (``credit_kernel.domain.claim_lifecycle``).

Responsibility
--------------
The claim state machine as data: one status enum, one action enum, and an
exhaustive transition table keyed by (status, action).  Services consult
``next_status`` and never compare boolean flags.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.

Invariants enforced
-------------------
* ``CLAIM_TRANSITIONS`` is the only source of legal transitions.
* Terminal statuses have no outgoing edges.
* Each action belongs to exactly one actor role.
"""

from __future__ import annotations

from enum import Enum

from credit_kernel.domain.values import ActorRole


class ClaimStatus(str, Enum):
    """Claim lifecycle states."""

    PENDING = "pending"
    POC_APPROVED = "poc_approved"
    POC_DECLINED = "poc_declined"
    ADMIN_APPROVED = "admin_approved"
    ADMIN_DECLINED = "admin_declined"
    APPROVED = "approved"


class ClaimAction(str, Enum):
    """Actions that move a claim between statuses."""

    SUBMIT = "submit"
    POC_APPROVE = "poc_approve"
    POC_DECLINE = "poc_decline"
    ADMIN_APPROVE = "admin_approve"
    ADMIN_DECLINE = "admin_decline"
    FINALIZE = "finalize"


CLAIM_TRANSITIONS: dict[tuple[ClaimStatus, ClaimAction], ClaimStatus] = {
    (ClaimStatus.PENDING, ClaimAction.POC_APPROVE): ClaimStatus.POC_APPROVED,
    (ClaimStatus.PENDING, ClaimAction.POC_DECLINE): ClaimStatus.POC_DECLINED,
    (ClaimStatus.POC_APPROVED, ClaimAction.ADMIN_APPROVE): ClaimStatus.ADMIN_APPROVED,
    (ClaimStatus.POC_APPROVED, ClaimAction.ADMIN_DECLINE): ClaimStatus.ADMIN_DECLINED,
    (ClaimStatus.ADMIN_APPROVED, ClaimAction.FINALIZE): ClaimStatus.APPROVED,
}

TERMINAL_CLAIM_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.POC_DECLINED,
    ClaimStatus.ADMIN_DECLINED,
    ClaimStatus.APPROVED,
})

DECLINED_CLAIM_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.POC_DECLINED,
    ClaimStatus.ADMIN_DECLINED,
})

# Statuses whose reservations are still active and releasable.
OPEN_CLAIM_STATUSES: frozenset[ClaimStatus] = frozenset(
    set(ClaimStatus) - TERMINAL_CLAIM_STATUSES
)

# None means the system performs the action, not a human.
REQUIRED_ROLE: dict[ClaimAction, ActorRole | None] = {
    ClaimAction.SUBMIT: None,
    ClaimAction.POC_APPROVE: ActorRole.POC,
    ClaimAction.POC_DECLINE: ActorRole.POC,
    ClaimAction.ADMIN_APPROVE: ActorRole.ADMIN,
    ClaimAction.ADMIN_DECLINE: ActorRole.ADMIN,
    ClaimAction.FINALIZE: None,
}

# Which status a reviewer of each role works from.
REVIEW_QUEUE_STATUS: dict[ActorRole, ClaimStatus] = {
    ActorRole.POC: ClaimStatus.PENDING,
    ActorRole.ADMIN: ClaimStatus.POC_APPROVED,
}

# Which declined status belongs to each role.
DECLINED_STATUS_BY_ROLE: dict[ActorRole, ClaimStatus] = {
    ActorRole.POC: ClaimStatus.POC_DECLINED,
    ActorRole.ADMIN: ClaimStatus.ADMIN_DECLINED,
}


def next_status(current: ClaimStatus, action: ClaimAction) -> ClaimStatus | None:
    """Return the target status, or None if the action is illegal from current."""
    return CLAIM_TRANSITIONS.get((current, action))


def is_terminal(status: ClaimStatus) -> bool:
    return status in TERMINAL_CLAIM_STATUSES


def legacy_flags(status: ClaimStatus) -> dict[str, bool]:
    """
    Derived boolean view used by older screens.

    ``poc_approved`` holds once the POC has approved (regardless of what the
    admin did next); ``admin_approved`` holds once the admin approved;
    ``declined`` holds for either declined status.
    """
    return {
        "poc_approved": status in (
            ClaimStatus.POC_APPROVED,
            ClaimStatus.ADMIN_APPROVED,
            ClaimStatus.ADMIN_DECLINED,
            ClaimStatus.APPROVED,
        ),
        "admin_approved": status in (ClaimStatus.ADMIN_APPROVED, ClaimStatus.APPROVED),
        "declined": status in DECLINED_CLAIM_STATUSES,
    }
