"""
Concurrency tests for claim processing.

Each worker thread drives the orchestrator, so every call is a separate
unit of work on its own connection, serialized only by the lock registry
and the database.

Verifies:
- Two concurrent POC approvals: exactly one wins, the other gets
  InvalidTransitionError
- Concurrent approve vs decline: exactly one transition is applied
- Concurrent submissions never over-reserve a student's credits
- Concurrent reservations against one course never exceed its total
- A held lock surfaces as a retryable ContentionError
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest

from credit_kernel.domain.claim_lifecycle import ClaimStatus
from credit_kernel.domain.values import Actor
from credit_kernel.exceptions import (
    ContentionError,
    DuplicateClaimError,
    InsufficientCreditsError,
    InvalidTransitionError,
)
from credit_kernel.services.locks import ResourceLockRegistry, claim_key
from credit_services import CertificationOrchestrator
from tests.conftest import CYBER, course_record


def run_concurrently(workers, count):
    """Start ``count`` copies of ``workers(index)`` behind a barrier."""
    barrier = Barrier(count)

    def _run(index):
        barrier.wait()
        try:
            return ("ok", workers(index))
        except Exception as exc:
            return ("error", exc)

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(_run, range(count)))


class TestConcurrentApproval:

    def test_one_poc_approval_wins(self, orchestrator):
        orchestrator.record_course(course_record(10))
        claim = orchestrator.submit_claim("S-1001", CYBER, "certificate")

        results = run_concurrently(
            lambda i: orchestrator.poc_approve(claim.claim_id, Actor.poc(f"poc-{i}")), 2
        )

        wins = [value for outcome, value in results if outcome == "ok"]
        losses = [value for outcome, value in results if outcome == "error"]
        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], InvalidTransitionError)
        assert losses[0].current_status == "poc_approved"

        stored = orchestrator.get_claim(claim.claim_id)
        assert stored.status == ClaimStatus.POC_APPROVED
        assert stored.poc_stamp.by == wins[0].poc_stamp.by
        approvals = [
            d for d in orchestrator.claim_decisions(claim.claim_id)
            if d.to_status == ClaimStatus.POC_APPROVED
        ]
        assert len(approvals) == 1

    def test_approve_races_decline(self, orchestrator):
        course = orchestrator.record_course(course_record(10))
        claim = orchestrator.submit_claim("S-1001", CYBER, "certificate")

        def act(index):
            actor = Actor.poc(f"poc-{index}")
            if index == 0:
                return orchestrator.poc_approve(claim.claim_id, actor)
            return orchestrator.poc_decline(claim.claim_id, actor, reason="race")

        results = run_concurrently(act, 2)

        assert sorted(outcome for outcome, _ in results) == ["error", "ok"]
        final = orchestrator.get_claim(claim.claim_id)
        balance = orchestrator.course_balance(course.course_id)
        if final.status == ClaimStatus.POC_APPROVED:
            assert balance.credits_available == Decimal("0")
        else:
            assert final.status == ClaimStatus.POC_DECLINED
            assert balance.credits_available == Decimal("10")

    def test_many_admins_one_certificate(self, orchestrator, poc_actor):
        orchestrator.record_course(course_record(10))
        claim = orchestrator.submit_claim("S-1001", CYBER, "certificate")
        orchestrator.poc_approve(claim.claim_id, poc_actor)

        results = run_concurrently(
            lambda i: orchestrator.admin_approve(claim.claim_id, Actor.admin(f"admin-{i}")), 4
        )

        assert sum(1 for outcome, _ in results if outcome == "ok") == 1
        assert len(orchestrator.mappings_for_student("S-1001")) == 1


class TestConcurrentAllocation:

    def test_submissions_never_over_reserve(self, orchestrator):
        """Three qualifications race for 25 credits; at most two can be funded."""
        orchestrator.record_course(course_record(12))
        orchestrator.record_course(course_record(13))
        qualifications = ["certificate", "diploma", "pg diploma"]

        results = run_concurrently(
            lambda i: orchestrator.submit_claim("S-1001", CYBER, qualifications[i]), 3
        )

        for outcome, value in results:
            if outcome == "error":
                assert isinstance(value, InsufficientCreditsError)
        summary = orchestrator.student_summary("S-1001").umbrellas[CYBER]
        reserved = sum(
            (c.contributed_credits for c in orchestrator.claims_for_student("S-1001")),
            Decimal("0"),
        )
        assert summary.consumed == reserved
        assert summary.consumed <= summary.total

    def test_duplicate_submissions_create_one_claim(self, orchestrator):
        orchestrator.record_course(course_record(30))

        results = run_concurrently(
            lambda i: orchestrator.submit_claim("S-1001", CYBER, "certificate"), 3
        )

        assert sum(1 for outcome, _ in results if outcome == "ok") == 1
        assert all(
            isinstance(value, DuplicateClaimError)
            for outcome, value in results
            if outcome == "error"
        )
        assert len(orchestrator.claims_for_student("S-1001")) == 1

    def test_reservations_bounded_by_course_total(self, orchestrator):
        course = orchestrator.record_course(course_record(5))

        results = run_concurrently(
            lambda i: orchestrator.reserve(course.course_id, Decimal("1.5")), 6
        )

        successes = sum(1 for outcome, _ in results if outcome == "ok")
        assert successes == 3
        balance = orchestrator.course_balance(course.course_id)
        assert balance.credits_consumed == Decimal("4.5")


class TestContention:

    @pytest.mark.slow_locks
    def test_held_claim_lock_times_out(self, session_factory, credit_rules, deterministic_clock):
        registry = ResourceLockRegistry(timeout_seconds=0.2)
        orchestrator = CertificationOrchestrator(
            session_factory,
            rules=credit_rules,
            clock=deterministic_clock,
            lock_registry=registry,
        )
        orchestrator.record_course(course_record(10))
        claim = orchestrator.submit_claim("S-1001", CYBER, "certificate")

        def approve_while_held():
            return orchestrator.poc_approve(claim.claim_id, Actor.poc("poc-late"))

        with registry.scope() as holder:
            holder.acquire(claim_key(claim.claim_id))
            with ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(approve_while_held)
                with pytest.raises(ContentionError) as exc_info:
                    future.result()

        assert exc_info.value.retryable is True
        assert exc_info.value.resource_key == claim_key(claim.claim_id)
        assert orchestrator.get_claim(claim.claim_id).status == ClaimStatus.PENDING
