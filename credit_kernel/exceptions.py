"""
Typed Exception Hierarchy for the Credit Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the dashboard API layer, batch importers, operators) must be able to
react to a failure without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (stable, machine-readable)
  3. Exceptions carry structured DATA (ids, amounts, states)

    try:
        orchestrator.poc_approve(claim_id, actor)
    except InvalidTransitionError as e:
        api_response(code=e.code, status=e.current_status)
    except ContentionError as e:
        retry_later(e.resource_key)   # retryable by the caller

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CreditKernelError (base)
    |
    +-- CourseError
    |   +-- InvalidHoursError
    |   +-- CourseNotFoundError
    |   +-- UnknownUmbrellaError
    |
    +-- CreditError
    |   +-- InsufficientCreditsError
    |   +-- InvalidAmountError
    |   +-- ReservationNotFoundError
    |   +-- ReservationCommittedError
    |   +-- ReservationReleasedError
    |
    +-- ClaimError
    |   +-- ClaimNotFoundError
    |   +-- InvalidTransitionError
    |   +-- ClaimNotReadyError
    |   +-- DuplicateClaimError
    |   +-- UnknownRequirementError
    |   +-- UnauthorizedActorError
    |   +-- AllocationCancelledError
    |   +-- ReservationHeldByClaimError
    |
    +-- ConcurrencyError
    |   +-- ContentionError
    |
    +-- MappingError
    |   +-- MappingNotFoundError
    |   +-- MappingTamperedError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|------------------------------------------
Course       | INVALID_HOURS             | Negative hours or total != theory+practical
             | COURSE_NOT_FOUND          | Course id doesn't exist
             | UNKNOWN_UMBRELLA          | Discipline matches no configured umbrella
-------------|---------------------------|------------------------------------------
Credit       | INSUFFICIENT_CREDITS      | Reservation/claim exceeds availability
             | INVALID_AMOUNT            | Reservation amount <= 0 or beyond 9 places
             | RESERVATION_NOT_FOUND     | Reservation id doesn't exist
             | RESERVATION_COMMITTED     | Releasing a permanent reservation
             | RESERVATION_RELEASED      | Committing a released reservation
-------------|---------------------------|------------------------------------------
Claim        | CLAIM_NOT_FOUND           | Claim id doesn't exist
             | INVALID_TRANSITION        | Transition not allowed from current state
             | CLAIM_NOT_READY           | finalize() outside admin_approved
             | DUPLICATE_CLAIM           | Open claim already exists for the pair
             | UNKNOWN_REQUIREMENT       | No threshold for umbrella+qualification
             | UNAUTHORIZED_ACTOR        | Actor role doesn't match the stage
             | ALLOCATION_CANCELLED      | Sweep aborted before the claim persisted
             | RESERVATION_HELD_BY_CLAIM | Standalone release/commit of a claim reservation
-------------|---------------------------|------------------------------------------
Concurrency  | CONTENTION                | Bounded lock wait elapsed (retryable)
-------------|---------------------------|------------------------------------------
Mapping      | MAPPING_NOT_FOUND         | No mapping for claim/certificate
             | MAPPING_TAMPERED          | Stored content hash mismatch
-------------|---------------------------|------------------------------------------
Immutability | IMMUTABILITY_VIOLATION    | Modifying an immutable record

===============================================================================
"""

from decimal import Decimal


class CreditKernelError(Exception):
    """
    Base exception for all credit kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CREDIT_KERNEL_ERROR"
    retryable: bool = False


# Course-related exceptions


class CourseError(CreditKernelError):
    """Base exception for course-related errors."""

    code: str = "COURSE_ERROR"


class InvalidHoursError(CourseError):
    """Course hours are malformed; the record is rejected, never stored."""

    code: str = "INVALID_HOURS"

    def __init__(self, field: str, value: Decimal | int | None, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid course hours ({field}={value}): {reason}")


class CourseNotFoundError(CourseError):
    """Course with given ID was not found."""

    code: str = "COURSE_NOT_FOUND"

    def __init__(self, course_id: str):
        self.course_id = course_id
        super().__init__(f"Course not found: {course_id}")


class UnknownUmbrellaError(CourseError):
    """A discipline could not be matched to any configured umbrella."""

    code: str = "UNKNOWN_UMBRELLA"

    def __init__(self, discipline: str):
        self.discipline = discipline
        super().__init__(f"No umbrella matches discipline: {discipline!r}")


# Credit-related exceptions


class CreditError(CreditKernelError):
    """Base exception for credit ledger errors."""

    code: str = "CREDIT_ERROR"


class InsufficientCreditsError(CreditError):
    """Requested credits exceed what is available."""

    code: str = "INSUFFICIENT_CREDITS"

    def __init__(
        self,
        required: Decimal,
        available: Decimal,
        course_id: str | None = None,
        umbrella_key: str | None = None,
    ):
        self.required = required
        self.available = available
        self.course_id = course_id
        self.umbrella_key = umbrella_key
        if course_id is not None:
            scope = f"course {course_id}"
        elif umbrella_key is not None:
            scope = f"umbrella {umbrella_key}"
        else:
            scope = "request"
        super().__init__(
            f"Insufficient credits for {scope}: "
            f"required {required}, available {available}"
        )


class InvalidAmountError(CreditError):
    """Reservation amount must be strictly positive and fit the stored scale."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal, reason: str = "must be positive"):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Reservation amount {reason}, got {amount}")


class ReservationNotFoundError(CreditError):
    """Reservation with given ID was not found."""

    code: str = "RESERVATION_NOT_FOUND"

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation not found: {reservation_id}")


class ReservationCommittedError(CreditError):
    """A committed (permanent) reservation cannot be released."""

    code: str = "RESERVATION_COMMITTED"

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(
            f"Reservation {reservation_id} is committed and cannot be released"
        )


class ReservationReleasedError(CreditError):
    """A released reservation cannot be committed."""

    code: str = "RESERVATION_RELEASED"

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(
            f"Reservation {reservation_id} was released and cannot be committed"
        )


# Claim-related exceptions


class ClaimError(CreditKernelError):
    """Base exception for certification claim errors."""

    code: str = "CLAIM_ERROR"


class ClaimNotFoundError(ClaimError):
    """Claim with given ID was not found."""

    code: str = "CLAIM_NOT_FOUND"

    def __init__(self, claim_id: str):
        self.claim_id = claim_id
        super().__init__(f"Claim not found: {claim_id}")


class InvalidTransitionError(ClaimError):
    """
    Lifecycle transition is not permitted from the claim's current state.

    Also raised to the loser of a race: by the time it acquired the claim,
    the winner had already advanced the state.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(self, claim_id: str, current_status: str, action: str):
        self.claim_id = claim_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} claim {claim_id}: current status is {current_status}"
        )


class ClaimNotReadyError(ClaimError):
    """finalize() was called on a claim that is not admin_approved."""

    code: str = "CLAIM_NOT_READY"

    def __init__(self, claim_id: str, current_status: str):
        self.claim_id = claim_id
        self.current_status = current_status
        super().__init__(
            f"Claim {claim_id} cannot be finalized from status {current_status}"
        )


class DuplicateClaimError(ClaimError):
    """The student already has an open claim for this umbrella+qualification."""

    code: str = "DUPLICATE_CLAIM"

    def __init__(self, student_id: str, umbrella_key: str, qualification: str, existing_claim_id: str):
        self.student_id = student_id
        self.umbrella_key = umbrella_key
        self.qualification = qualification
        self.existing_claim_id = existing_claim_id
        super().__init__(
            f"Student {student_id} already has open claim {existing_claim_id} "
            f"for {umbrella_key}/{qualification}"
        )


class UnknownRequirementError(ClaimError):
    """No required-credit threshold is configured for the pair."""

    code: str = "UNKNOWN_REQUIREMENT"

    def __init__(self, umbrella_key: str, qualification: str):
        self.umbrella_key = umbrella_key
        self.qualification = qualification
        super().__init__(
            f"No credit requirement configured for {umbrella_key}/{qualification}"
        )


class UnauthorizedActorError(ClaimError):
    """The actor's role does not match the approval stage."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: str, actor_role: str, required_role: str, action: str):
        self.actor_id = actor_id
        self.actor_role = actor_role
        self.required_role = required_role
        self.action = action
        super().__init__(
            f"Actor {actor_id} with role {actor_role} cannot {action} "
            f"(requires {required_role})"
        )


class AllocationCancelledError(ClaimError):
    """The allocation sweep was cancelled before the claim was persisted."""

    code: str = "ALLOCATION_CANCELLED"

    def __init__(self, student_id: str, umbrella_key: str, reserved_so_far: Decimal):
        self.student_id = student_id
        self.umbrella_key = umbrella_key
        self.reserved_so_far = reserved_so_far
        super().__init__(
            f"Allocation for student {student_id} ({umbrella_key}) cancelled "
            f"after reserving {reserved_so_far}; sweep rolled back"
        )


class ReservationHeldByClaimError(ClaimError):
    """A claim's reservation can only change through the claim's own workflow."""

    code: str = "RESERVATION_HELD_BY_CLAIM"

    def __init__(self, reservation_id: str, claim_id: str, operation: str):
        self.reservation_id = reservation_id
        self.claim_id = claim_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} reservation {reservation_id}: it backs claim {claim_id}"
        )


# Concurrency-related exceptions


class ConcurrencyError(CreditKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ContentionError(ConcurrencyError):
    """
    A course or claim lock could not be acquired within the bounded wait.

    Retryable by the caller; the core never retries on its own.
    """

    code: str = "CONTENTION"
    retryable: bool = True

    def __init__(self, resource_key: str, timeout_seconds: float):
        self.resource_key = resource_key
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not acquire {resource_key} within {timeout_seconds}s; retry later"
        )


# Mapping-related exceptions


class MappingError(CreditKernelError):
    """Base exception for certificate mapping errors."""

    code: str = "MAPPING_ERROR"


class MappingNotFoundError(MappingError):
    """No certificate mapping exists for the given lookup key."""

    code: str = "MAPPING_NOT_FOUND"

    def __init__(self, lookup: str, value: str):
        self.lookup = lookup
        self.value = value
        super().__init__(f"Certificate mapping not found by {lookup}: {value}")


class MappingTamperedError(MappingError):
    """The stored content hash no longer matches the mapping content."""

    code: str = "MAPPING_TAMPERED"

    def __init__(self, mapping_id: str, expected_hash: str, computed_hash: str):
        self.mapping_id = mapping_id
        self.expected_hash = expected_hash
        self.computed_hash = computed_hash
        super().__init__(
            f"Certificate mapping {mapping_id} failed hash verification: "
            f"expected {expected_hash}, computed {computed_hash}"
        )


# Immutability-related exceptions


class ImmutabilityError(CreditKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Course credit fields, claim decisions, and certificate mappings
    are immutable after creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
