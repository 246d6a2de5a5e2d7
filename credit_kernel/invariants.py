"""
Kernel Invariants Contract.

These invariants are structural law for the credit kernel. No configuration
file, umbrella override, or caller option may switch them off.

This module declares them explicitly. Enforcement is distributed across
CreditLedger, ClaimAllocator, ApprovalWorkflow, CertificateMappingWriter,
the ORM immutability listeners, and the lock registry.
"""

from enum import Enum, unique


@unique
class CreditInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    NO_OVER_RESERVATION = "no_over_reservation"
    """0 <= credits_consumed <= total_credits on every course. Enforced by
    CreditLedger.reserve under the per-course lock and by a DB check
    constraint."""

    EXACT_ALLOCATION = "exact_allocation"
    """The contributions of a claim sum to its required credits exactly.
    Enforced by the FIFO planner and re-checked before finalization."""

    RELEASE_ROUND_TRIP = "release_round_trip"
    """Reserve followed by release leaves the ledger unchanged. Enforced by
    CreditLedger.release (idempotent)."""

    LIFECYCLE_ORDER = "lifecycle_order"
    """Claims move only along CLAIM_TRANSITIONS; terminal states have no
    outgoing edges. Enforced by ApprovalWorkflow."""

    MAPPING_IMMUTABILITY = "mapping_immutability"
    """Certificate mappings, their lines, and claim decisions are
    append-only. Enforced by ORM listeners (credit_kernel.db.immutability)."""

    FINALIZE_IDEMPOTENCE = "finalize_idempotence"
    """Finalizing an approved claim returns the existing mapping and consumes
    nothing further. Enforced by CertificateMappingWriter."""

    SERIALIZED_RESOURCES = "serialized_resources"
    """Writes to one course or one claim are serialized with a bounded wait.
    Enforced by ResourceLockRegistry and SELECT ... FOR UPDATE."""


# All invariants as a frozenset for programmatic checks.
ALL_CREDIT_INVARIANTS: frozenset[CreditInvariant] = frozenset(CreditInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "credit_services",
    "credit_config",
)
