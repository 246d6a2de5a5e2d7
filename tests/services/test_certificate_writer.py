"""
Tests for CertificateMappingWriter -- the immutable certificate mapping.

Covers:
- finalize() only from admin_approved
- Mapping lines mirror contributions and course details
- Certificate numbers per umbrella, strictly increasing
- Idempotent finalize: same mapping, no extra consumption
- Content hash verified on load; tampering is detected
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update

from credit_kernel.domain.claim_lifecycle import ClaimStatus
from credit_kernel.exceptions import (
    ClaimNotReadyError,
    ImmutabilityViolationError,
    MappingTamperedError,
)
from credit_kernel.models.certificate import CertificateMappingLineModel, CertificateMappingModel
from credit_kernel.models.claim import CertificationClaimModel
from credit_kernel.selectors.claim_selector import compute_mapping_hash
from credit_kernel.services.sequence_service import SequenceService, certificate_sequence_name
from tests.conftest import CRIMINOLOGY, CYBER


def approve_through_poc_and_admin_stage(session, allocator, workflow, poc_actor, student_id, umbrella):
    """Submit and POC-approve a claim, then mark it admin_approved directly."""
    claim = allocator.submit_claim(student_id, umbrella, "certificate")
    workflow.poc_approve(claim.claim_id, poc_actor)
    session.execute(
        update(CertificationClaimModel)
        .where(CertificationClaimModel.id == claim.claim_id)
        .values(status=ClaimStatus.ADMIN_APPROVED.value)
    )
    return claim


class TestFinalize:

    def test_pending_claim_not_ready(self, allocator, certificate_writer, make_course):
        make_course(10)
        claim = allocator.submit_claim("S-1001", CYBER, "certificate")

        with pytest.raises(ClaimNotReadyError) as exc_info:
            certificate_writer.finalize(claim.claim_id)
        assert exc_info.value.current_status == "pending"

    def test_mapping_lines_mirror_contributions(
        self, session, allocator, workflow, certificate_writer, make_course, poc_actor
    ):
        older = make_course(6, completion_date=date(2024, 1, 1), name="Network Defense")
        newer = make_course(6, completion_date=date(2024, 2, 1), name="Malware Analysis")
        claim = approve_through_poc_and_admin_stage(
            session, allocator, workflow, poc_actor, "S-1001", CYBER
        )

        mapping = certificate_writer.finalize(claim.claim_id)

        assert mapping.certificate_no == "rru_CYBER_SECURITY_1"
        assert mapping.total_credits_required == Decimal("10")
        assert [(line.course_id, line.credits_used) for line in mapping.lines] == [
            (older.course_id, Decimal("6")),
            (newer.course_id, Decimal("4")),
        ]
        assert mapping.lines[0].course_name == "Network Defense"
        assert mapping.lines[1].total_credits == Decimal("6")
        assert mapping.lines[0].theory_hours == Decimal("90")
        assert mapping.credits_mapped == mapping.total_credits_required

    def test_finalize_is_idempotent(
        self, session, allocator, workflow, certificate_writer, make_course, poc_actor,
        credit_selector, captured_logs,
    ):
        course = make_course(12)
        claim = approve_through_poc_and_admin_stage(
            session, allocator, workflow, poc_actor, "S-1001", CYBER
        )

        first = certificate_writer.finalize(claim.claim_id)
        second = certificate_writer.finalize(claim.claim_id)

        assert second.mapping_id == first.mapping_id
        assert second.certificate_no == first.certificate_no
        assert credit_selector.available_credits(course.course_id) == Decimal("2")
        assert any(r["message"] == "finalize_idempotent" for r in captured_logs())

    def test_certificate_numbers_per_umbrella(
        self, session, allocator, workflow, certificate_writer, make_course, poc_actor
    ):
        make_course(10, student_id="S-1")
        make_course(10, student_id="S-2")
        make_course(10, student_id="S-3", umbrella_key=CRIMINOLOGY)

        numbers = []
        for student, umbrella in (("S-1", CYBER), ("S-2", CYBER), ("S-3", CRIMINOLOGY)):
            claim = approve_through_poc_and_admin_stage(
                session, allocator, workflow, poc_actor, student, umbrella
            )
            numbers.append(certificate_writer.finalize(claim.claim_id).certificate_no)

        assert numbers == [
            "rru_CYBER_SECURITY_1",
            "rru_CYBER_SECURITY_2",
            "rru_CRIMINOLOGY_1",
        ]
        sequences = SequenceService(session)
        assert sequences.current_value(certificate_sequence_name(CYBER)) == 2

    def test_finalized_claim_is_approved(
        self, session, allocator, workflow, certificate_writer, make_course, poc_actor,
        claim_selector, deterministic_clock,
    ):
        make_course(10)
        claim = approve_through_poc_and_admin_stage(
            session, allocator, workflow, poc_actor, "S-1001", CYBER
        )
        mapping = certificate_writer.finalize(claim.claim_id)

        stored = claim_selector.get_claim(claim.claim_id)
        assert stored.status == ClaimStatus.APPROVED
        assert stored.finalized_at == mapping.issued_at == deterministic_clock.now()


class TestMappingIntegrity:

    @pytest.fixture
    def mapping(self, session, allocator, workflow, certificate_writer, make_course, poc_actor):
        make_course(10)
        claim = approve_through_poc_and_admin_stage(
            session, allocator, workflow, poc_actor, "S-1001", CYBER
        )
        return certificate_writer.finalize(claim.claim_id)

    def test_hash_survives_reload(self, session, mapping, claim_selector):
        session.expire_all()
        loaded = claim_selector.get_mapping_by_certificate_no(mapping.certificate_no)
        assert loaded.content_hash == mapping.content_hash

        model = session.get(CertificateMappingModel, mapping.mapping_id)
        assert compute_mapping_hash(model) == mapping.content_hash

    def test_orm_update_blocked(self, session, mapping):
        line = session.get(CertificateMappingModel, mapping.mapping_id).lines[0]
        line.credits_used = Decimal("1")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_tampering_detected_on_load(self, session, mapping, claim_selector, captured_logs):
        # Core UPDATE bypasses the ORM listeners, as a direct SQL edit would.
        session.execute(
            CertificateMappingLineModel.__table__.update()
            .where(CertificateMappingLineModel.__table__.c.mapping_id == mapping.mapping_id)
            .values(credits_used=Decimal("9"))
        )
        session.expire_all()

        with pytest.raises(MappingTamperedError) as exc_info:
            claim_selector.get_mapping_by_claim(mapping.claim_id)

        assert exc_info.value.expected_hash == mapping.content_hash
        assert any(r["message"] == "certificate_mapping_tampered" for r in captured_logs())
