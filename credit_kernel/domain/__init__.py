"""Pure domain layer: value objects, credit arithmetic, lifecycle, DTOs. Zero I/O."""

from credit_kernel.domain.allocation import (
    AvailableSlice,
    PlannedContribution,
    fifo_order,
    plan_allocation,
)
from credit_kernel.domain.claim_lifecycle import (
    CLAIM_TRANSITIONS,
    TERMINAL_CLAIM_STATUSES,
    ClaimAction,
    ClaimStatus,
    next_status,
)
from credit_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from credit_kernel.domain.credits import (
    CreditRates,
    compute_course_credits,
    format_certificate_no,
    match_umbrella,
)
from credit_kernel.domain.dtos import (
    CertificateMappingView,
    ClaimView,
    CourseRecord,
    CreditSliceView,
    ReservationStatus,
)
from credit_kernel.domain.rules import CreditRules
from credit_kernel.domain.values import (
    Actor,
    ActorRole,
    CancellationToken,
    Qualification,
)

__all__ = [
    "Actor",
    "ActorRole",
    "AvailableSlice",
    "CLAIM_TRANSITIONS",
    "CancellationToken",
    "CertificateMappingView",
    "ClaimAction",
    "ClaimStatus",
    "ClaimView",
    "Clock",
    "CourseRecord",
    "CreditRates",
    "CreditRules",
    "CreditSliceView",
    "DeterministicClock",
    "PlannedContribution",
    "Qualification",
    "ReservationStatus",
    "SystemClock",
    "TERMINAL_CLAIM_STATUSES",
    "compute_course_credits",
    "fifo_order",
    "format_certificate_no",
    "match_umbrella",
    "next_status",
    "plan_allocation",
]
