"""
credit_services.certification_orchestrator -- units of work over the kernel.

Responsibility:
    Wires the kernel services together for one session and runs every
    public operation as a unit of work: take the resource locks, open the
    transaction, call the kernel, commit, release the locks.  Reads run in
    their own short transactions without resource locks.

Architecture position:
    Services -- the only layer that owns transaction boundaries.  It may
    import ``credit_kernel`` and ``credit_config``; the kernel imports
    neither.

Invariants enforced:
    - Locks are held across the whole transaction (lock -> begin -> work ->
      commit -> unlock), so a second writer always sees the first writer's
      committed state.
    - Every lock key an operation needs is acquired before the transaction
      begins.  Kernel services re-acquiring a key inside the transaction
      find it already held and never wait while holding the database.
    - Any failure rolls the whole unit of work back; nothing is retried.

Failure modes:
    - Every kernel error propagates unchanged after rollback.
    - ContentionError when a resource lock or a database lock is not
      obtained in time (PostgreSQL ``lock_timeout`` / SQLite busy database).

Usage:
    from credit_services import CertificationOrchestrator

    orchestrator = CertificationOrchestrator.from_config(get_session_factory())
    course = orchestrator.record_course(record)
    claim = orchestrator.submit_claim("S-1", "cyber_security", "certificate")
    orchestrator.poc_approve(claim.claim_id, Actor.poc("poc-7"))
    orchestrator.admin_approve(claim.claim_id, Actor.admin("admin-1"))
    mapping = orchestrator.get_mapping_by_claim(claim.claim_id)
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Generator, Iterable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from credit_config import CreditConfigurationSet, get_active_config
from credit_config.bridges import build_credit_rules, lock_timeout_seconds
from credit_kernel.db.engine import is_postgres, session_scope
from credit_kernel.db.immutability import register_immutability_listeners
from credit_kernel.domain.clock import Clock, SystemClock
from credit_kernel.domain.dtos import (
    CertificateMappingView,
    ClaimAnalytics,
    ClaimDecisionView,
    ClaimView,
    ContributionView,
    CourseRecord,
    CourseView,
    CreditSliceView,
    ReservationView,
    StudentCreditSummary,
)
from credit_kernel.domain.rules import DEFAULT_RULES, CreditRules
from credit_kernel.domain.values import Actor, ActorRole, CancellationToken, Qualification
from credit_kernel.exceptions import ContentionError
from credit_kernel.logging_config import LogContext, get_logger
from credit_kernel.selectors.claim_selector import ClaimSelector
from credit_kernel.selectors.credit_selector import CreditSelector
from credit_kernel.services.approval_workflow import ApprovalWorkflow
from credit_kernel.services.certificate_writer import CertificateMappingWriter
from credit_kernel.services.claim_allocator import ClaimAllocator
from credit_kernel.services.credit_ledger import CreditLedger
from credit_kernel.services.locks import (
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    LockScope,
    ResourceLockRegistry,
    claim_key,
    course_key,
    student_key,
)

logger = get_logger("services.certification_orchestrator")

T = TypeVar("T")

_PG_LOCK_NOT_AVAILABLE = "55P03"


@dataclass(frozen=True)
class KernelServices:
    """The kernel services of one unit of work, sharing one session."""

    session: Session
    ledger: CreditLedger
    allocator: ClaimAllocator
    writer: CertificateMappingWriter
    workflow: ApprovalWorkflow
    credits: CreditSelector
    claims: ClaimSelector


def build_kernel_services(
    session: Session,
    rules: CreditRules,
    clock: Clock,
    locks: LockScope | None = None,
) -> KernelServices:
    """Construct every kernel service once, in dependency order."""
    ledger = CreditLedger(session, clock=clock, rules=rules, locks=locks)
    writer = CertificateMappingWriter(session, ledger, clock=clock, locks=locks)
    return KernelServices(
        session=session,
        ledger=ledger,
        allocator=ClaimAllocator(session, ledger, rules=rules, clock=clock, locks=locks),
        writer=writer,
        workflow=ApprovalWorkflow(session, ledger, writer, clock=clock, locks=locks),
        credits=CreditSelector(session),
        claims=ClaimSelector(session),
    )


def is_lock_timeout(exc: OperationalError) -> bool:
    """True for PostgreSQL lock_timeout and SQLite busy-database errors."""
    if getattr(exc.orig, "pgcode", None) == _PG_LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(exc.orig)


class CertificationOrchestrator:
    """Public entry point for recording courses and processing claims.

    Contract:
        Each write method is one atomic unit of work.  Return values are
        frozen DTOs read inside the same transaction, after all changes.
        Actor identity is passed explicitly to every decision; nothing about
        the caller is kept between calls.

    Non-goals:
        - Does NOT retry on ContentionError; the caller decides.
        - Does NOT authenticate actors; it records and role-checks them.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        rules: CreditRules | None = None,
        clock: Clock | None = None,
        lock_registry: ResourceLockRegistry | None = None,
        lock_timeout: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._rules = rules or DEFAULT_RULES
        self._clock = clock or SystemClock()
        if lock_registry is None:
            lock_registry = ResourceLockRegistry(lock_timeout or DEFAULT_LOCK_TIMEOUT_SECONDS)
        self._locks = lock_registry
        self._lock_timeout = lock_timeout or lock_registry.timeout_seconds

        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        session_factory: sessionmaker[Session],
        config: CreditConfigurationSet | None = None,
        clock: Clock | None = None,
        lock_registry: ResourceLockRegistry | None = None,
    ) -> CertificationOrchestrator:
        """Build an orchestrator from the active (or a given) configuration."""
        config = config or get_active_config()
        return cls(
            session_factory,
            rules=build_credit_rules(config),
            clock=clock,
            lock_registry=lock_registry,
            lock_timeout=lock_timeout_seconds(config),
        )

    @property
    def rules(self) -> CreditRules:
        return self._rules

    # ------------------------------------------------------------------
    # Courses and reservations
    # ------------------------------------------------------------------

    def record_course(self, record: CourseRecord) -> CreditSliceView:
        with LogContext.bind(operation="record_course", student_id=record.student_id):
            with self._unit_of_work(student_key(record.student_id)) as kernel:
                return kernel.ledger.record_course(record)

    def reserve(
        self, course_id: UUID, amount: Decimal | int | str
    ) -> ReservationView:
        """Standalone reservation against one course (no claim)."""
        with LogContext.bind(operation="reserve", course_id=str(course_id)):
            with self._unit_of_work(course_key(course_id)) as kernel:
                reservation_id = kernel.ledger.reserve(course_id, amount)
                return kernel.ledger.get_reservation(reservation_id)

    def release(self, reservation_id: UUID) -> ReservationView:
        """Release a standalone reservation.  Claim reservations are refused."""
        with LogContext.bind(operation="release"):
            with self._unit_of_work(
                resolve=lambda credits, _: self._reservation_keys(credits, reservation_id)
            ) as kernel:
                return kernel.ledger.release(reservation_id)

    def commit_reservation(self, reservation_id: UUID) -> ReservationView:
        with LogContext.bind(operation="commit_reservation"):
            with self._unit_of_work(
                resolve=lambda credits, _: self._reservation_keys(credits, reservation_id)
            ) as kernel:
                return kernel.ledger.commit(reservation_id)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

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
        """Allocate credits FIFO and open a pending claim."""
        with LogContext.bind(operation="submit_claim", student_id=student_id):
            with self._unit_of_work(
                student_key(student_id),
                resolve=lambda credits, _: [
                    course_key(cid) for cid in credits.course_ids_for(student_id, umbrella_key)
                ],
            ) as kernel:
                return kernel.allocator.submit_claim(
                    student_id,
                    umbrella_key,
                    qualification,
                    document_ref=document_ref,
                    notes=notes,
                    cancel_token=cancel_token,
                )

    def poc_approve(self, claim_id: UUID, actor: Actor) -> ClaimView:
        with self._claim_unit_of_work("poc_approve", claim_id, actor) as kernel:
            return kernel.workflow.poc_approve(claim_id, actor)

    def poc_decline(
        self, claim_id: UUID, actor: Actor, reason: str | None = None
    ) -> ClaimView:
        with self._claim_unit_of_work("poc_decline", claim_id, actor) as kernel:
            return kernel.workflow.poc_decline(claim_id, actor, reason)

    def admin_approve(self, claim_id: UUID, actor: Actor) -> ClaimView:
        """Admin approval; the certificate mapping is written in the same unit of work."""
        with self._claim_unit_of_work("admin_approve", claim_id, actor) as kernel:
            return kernel.workflow.admin_approve(claim_id, actor)

    def admin_decline(
        self, claim_id: UUID, actor: Actor, reason: str | None = None
    ) -> ClaimView:
        with self._claim_unit_of_work("admin_decline", claim_id, actor) as kernel:
            return kernel.workflow.admin_decline(claim_id, actor, reason)

    def finalize(self, claim_id: UUID) -> CertificateMappingView:
        """Finalize an admin-approved claim; idempotent once approved."""
        with self._claim_unit_of_work("finalize", claim_id) as kernel:
            return kernel.writer.finalize(claim_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_course(self, course_id: UUID) -> CourseView:
        return self._query(lambda credits, _: credits.get_course(course_id))

    def course_balance(self, course_id: UUID) -> CreditSliceView:
        return self._query(lambda credits, _: credits.course_balance(course_id))

    def courses_for_student(
        self, student_id: str, umbrella_key: str | None = None
    ) -> list[CourseView]:
        return self._query(
            lambda credits, _: credits.courses_for_student(student_id, umbrella_key)
        )

    def student_summary(self, student_id: str) -> StudentCreditSummary:
        return self._query(lambda credits, _: credits.student_summary(student_id))

    def get_claim(self, claim_id: UUID) -> ClaimView:
        return self._query(lambda _, claims: claims.get_claim(claim_id))

    def claim_contributions(self, claim_id: UUID) -> tuple[ContributionView, ...]:
        return self._query(lambda _, claims: claims.contributions(claim_id))

    def claim_decisions(self, claim_id: UUID) -> list[ClaimDecisionView]:
        return self._query(lambda _, claims: claims.decisions(claim_id))

    def claims_for_student(self, student_id: str) -> list[ClaimView]:
        return self._query(lambda _, claims: claims.claims_for_student(student_id))

    def pending_for_role(self, role: ActorRole | str) -> list[ClaimView]:
        return self._query(lambda _, claims: claims.pending_for_role(ActorRole(role)))

    def declined_for_role(
        self, role: ActorRole | str, declined_by: str | None = None
    ) -> list[ClaimView]:
        return self._query(
            lambda _, claims: claims.declined_for_role(ActorRole(role), declined_by)
        )

    def get_mapping_by_claim(self, claim_id: UUID) -> CertificateMappingView:
        return self._query(lambda _, claims: claims.get_mapping_by_claim(claim_id))

    def get_mapping_by_certificate_id(self, certificate_id: UUID) -> CertificateMappingView:
        return self._query(
            lambda _, claims: claims.get_mapping_by_certificate_id(certificate_id)
        )

    def get_mapping_by_certificate_no(self, certificate_no: str) -> CertificateMappingView:
        return self._query(
            lambda _, claims: claims.get_mapping_by_certificate_no(certificate_no)
        )

    def mappings_for_student(self, student_id: str) -> list[CertificateMappingView]:
        return self._query(lambda _, claims: claims.mappings_for_student(student_id))

    def analytics(self) -> ClaimAnalytics:
        return self._query(lambda _, claims: claims.analytics())

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def _claim_unit_of_work(
        self, operation: str, claim_id: UUID, actor: Actor | None = None
    ) -> Generator[KernelServices, None, None]:
        """Claim transitions lock the claim and every contributing course."""
        with LogContext.bind(
            operation=operation,
            claim_id=str(claim_id),
            actor_id=actor.identifier if actor is not None else None,
        ):
            with self._unit_of_work(
                claim_key(claim_id),
                resolve=lambda _, claims: [
                    course_key(c.course_id) for c in claims.contributions(claim_id)
                ],
            ) as kernel:
                yield kernel

    @contextmanager
    def _unit_of_work(
        self,
        *keys: str,
        resolve: Callable[[CreditSelector, ClaimSelector], Iterable[str]] | None = None,
    ) -> Generator[KernelServices, None, None]:
        """
        Lock, open a transaction, yield the kernel services, commit, unlock.

        ``keys`` are acquired first; ``resolve`` then reads any further keys
        (course ids behind a claim or reservation) while those are held.
        """
        correlation_id = LogContext.get_all().get("correlation_id") or str(uuid4())
        with LogContext.bind(correlation_id=correlation_id):
            with self._locks.scope(self._lock_timeout) as scope:
                scope.acquire_all(keys)
                try:
                    if resolve is not None:
                        scope.acquire_all(self._query(resolve))
                    with session_scope(self._session_factory) as session:
                        if is_postgres(session):
                            timeout_ms = int(self._lock_timeout * 1000)
                            session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))
                        yield build_kernel_services(
                            session, self._rules, self._clock, locks=scope
                        )
                except OperationalError as exc:
                    if not is_lock_timeout(exc):
                        raise
                    logger.warning(
                        "database_lock_timeout",
                        extra={"held_keys": list(scope.held), "detail": str(exc.orig)},
                    )
                    raise ContentionError("database", self._lock_timeout) from exc

    def _query(self, fn: Callable[[CreditSelector, ClaimSelector], T]) -> T:
        with session_scope(self._session_factory) as session:
            return fn(CreditSelector(session), ClaimSelector(session))

    @staticmethod
    def _reservation_keys(credits: CreditSelector, reservation_id: UUID) -> list[str]:
        course_id = credits.reservation_course_id(reservation_id)
        return [course_key(course_id)] if course_id is not None else []
