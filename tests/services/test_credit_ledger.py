"""
Tests for CreditLedger -- course recording and reservations.

Covers:
- record_course(): credit derivation, discipline -> umbrella resolution,
  validation failures, structured log event
- reserve(): availability accounting, amount validation, over-reservation
- release(): restores availability, idempotent, refuses committed
- commit(): permanent consumption, idempotent, refuses released
- claim-owned reservations: only the owning claim may release or commit
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from credit_kernel.domain.dtos import CourseRecord, ReservationStatus
from credit_kernel.exceptions import (
    CourseNotFoundError,
    InsufficientCreditsError,
    InvalidAmountError,
    InvalidHoursError,
    ReservationCommittedError,
    ReservationHeldByClaimError,
    ReservationNotFoundError,
    ReservationReleasedError,
    UnknownUmbrellaError,
)
from credit_kernel.services.credit_ledger import CreditLedger
from tests.conftest import CRIMINOLOGY, CYBER, course_record


class TestRecordCourse:

    def test_derives_credits(self, ledger, credit_selector):
        record = CourseRecord(
            student_id="S-1",
            name="Digital Forensics",
            organization="Cyber Cell",
            theory_hours=Decimal("45"),
            practical_hours=Decimal("60"),
            no_of_days=10,
            completion_date=date(2024, 2, 1),
            umbrella_key=CYBER,
            document_ref="docs/cert-001.pdf",
        )

        course_slice = ledger.record_course(record)

        assert course_slice.total_credits == Decimal("5.00")
        assert course_slice.credits_consumed == Decimal("0")
        assert course_slice.credits_available == Decimal("5.00")

        course = credit_selector.get_course(course_slice.course_id)
        assert course.theory_credits == Decimal("3.00")
        assert course.practical_credits == Decimal("2.00")
        assert course.total_hours == Decimal("105")
        assert course.document_ref == "docs/cert-001.pdf"

    def test_resolves_discipline_to_umbrella(self, ledger):
        course_slice = ledger.record_course(
            course_record(3, umbrella_key=None, discipline="Applied Criminology")
        )
        assert course_slice.umbrella_key == CRIMINOLOGY

    def test_unknown_discipline_rejected(self, ledger):
        with pytest.raises(UnknownUmbrellaError):
            ledger.record_course(course_record(3, umbrella_key=None, discipline="Astrophysics"))

    def test_unconfigured_umbrella_key_rejected(self, ledger, credit_selector):
        with pytest.raises(UnknownUmbrellaError):
            ledger.record_course(course_record(10, umbrella_key="not_configured"))
        assert credit_selector.courses_for_student("S-1001") == []

    def test_any_umbrella_key_without_catalogue(self, session, deterministic_clock):
        open_ledger = CreditLedger(session, clock=deterministic_clock)
        course_slice = open_ledger.record_course(course_record(2, umbrella_key="astronomy"))
        assert course_slice.umbrella_key == "astronomy"

    def test_negative_hours_rejected(self, ledger):
        record = CourseRecord(
            student_id="S-1",
            name="Bad",
            organization="Org",
            theory_hours=-15,
            practical_hours=0,
            no_of_days=1,
            completion_date=date(2024, 1, 1),
            umbrella_key=CYBER,
        )
        with pytest.raises(InvalidHoursError):
            ledger.record_course(record)

    def test_negative_days_rejected(self, ledger):
        record = CourseRecord(
            student_id="S-1",
            name="Bad",
            organization="Org",
            theory_hours=15,
            practical_hours=0,
            no_of_days=-2,
            completion_date=date(2024, 1, 1),
            umbrella_key=CYBER,
        )
        with pytest.raises(InvalidHoursError) as exc_info:
            ledger.record_course(record)
        assert exc_info.value.field == "no_of_days"

    def test_record_needs_umbrella_or_discipline(self):
        with pytest.raises(ValueError):
            CourseRecord(
                student_id="S-1",
                name="No umbrella",
                organization="Org",
                theory_hours=15,
                practical_hours=0,
                no_of_days=1,
                completion_date=date(2024, 1, 1),
            )

    def test_logs_course_recorded(self, ledger, captured_logs):
        course_slice = ledger.record_course(course_record(4))

        records = [r for r in captured_logs() if r["message"] == "course_recorded"]
        assert len(records) == 1
        assert records[0]["course_id"] == str(course_slice.course_id)
        assert records[0]["total_credits"] == "4.00"


class TestReserve:

    def test_reserve_reduces_availability(self, ledger, make_course):
        course = make_course(10)

        reservation_id = ledger.reserve(course.course_id, Decimal("4"))

        assert ledger.available_credits(course.course_id) == Decimal("6")
        reservation = ledger.get_reservation(reservation_id)
        assert reservation.status == ReservationStatus.ACTIVE
        assert reservation.amount == Decimal("4")
        assert reservation.claim_id is None

    def test_reserve_everything(self, ledger, make_course):
        course = make_course(10)
        ledger.reserve(course.course_id, "10")
        assert ledger.available_credits(course.course_id) == Decimal("0")

    def test_over_reservation_rejected(self, ledger, make_course):
        course = make_course(5)
        ledger.reserve(course.course_id, Decimal("3"))

        with pytest.raises(InsufficientCreditsError) as exc_info:
            ledger.reserve(course.course_id, Decimal("2.01"))

        assert exc_info.value.available == Decimal("2")
        assert ledger.available_credits(course.course_id) == Decimal("2")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), "abc", 1.5])
    def test_invalid_amount_rejected(self, ledger, make_course, amount):
        course = make_course(5)
        with pytest.raises(InvalidAmountError):
            ledger.reserve(course.course_id, amount)

    @pytest.mark.parametrize("amount", [Decimal("1e-10"), "0.0000000001", Decimal("1.0000000005")])
    def test_amount_finer_than_stored_scale_rejected(self, ledger, make_course, amount):
        course = make_course(5)
        with pytest.raises(InvalidAmountError) as exc_info:
            ledger.reserve(course.course_id, amount)
        assert "9 decimal places" in str(exc_info.value)
        assert ledger.available_credits(course.course_id) == Decimal("5")

    def test_trailing_zeros_beyond_scale_accepted(self, ledger, make_course):
        course = make_course(5)
        ledger.reserve(course.course_id, Decimal("1.500000000000"))
        assert ledger.available_credits(course.course_id) == Decimal("3.5")

    def test_unknown_course(self, ledger):
        with pytest.raises(CourseNotFoundError):
            ledger.reserve(uuid4(), Decimal("1"))


class TestReleaseAndCommit:

    def test_release_restores_availability(self, ledger, make_course):
        course = make_course(8)
        reservation_id = ledger.reserve(course.course_id, Decimal("3.25"))

        released = ledger.release(reservation_id)

        assert released.status == ReservationStatus.RELEASED
        assert released.released_at is not None
        assert ledger.get_slice(course.course_id).credits_consumed == Decimal("0")

    def test_release_is_idempotent(self, ledger, make_course, captured_logs):
        course = make_course(8)
        reservation_id = ledger.reserve(course.course_id, Decimal("3"))

        ledger.release(reservation_id)
        again = ledger.release(reservation_id)

        assert again.status == ReservationStatus.RELEASED
        assert ledger.available_credits(course.course_id) == Decimal("8")
        messages = [r["message"] for r in captured_logs()]
        assert messages.count("reservation_released") == 1
        assert "reservation_release_noop" in messages

    def test_commit_keeps_consumption(self, ledger, make_course):
        course = make_course(8)
        reservation_id = ledger.reserve(course.course_id, Decimal("5"))

        committed = ledger.commit(reservation_id)

        assert committed.status == ReservationStatus.COMMITTED
        assert committed.committed_at is not None
        assert ledger.available_credits(course.course_id) == Decimal("3")

    def test_commit_is_idempotent(self, ledger, make_course):
        course = make_course(8)
        reservation_id = ledger.reserve(course.course_id, Decimal("5"))
        ledger.commit(reservation_id)
        ledger.commit(reservation_id)
        assert ledger.available_credits(course.course_id) == Decimal("3")

    def test_release_after_commit_rejected(self, ledger, make_course):
        course = make_course(8)
        reservation_id = ledger.reserve(course.course_id, Decimal("5"))
        ledger.commit(reservation_id)

        with pytest.raises(ReservationCommittedError):
            ledger.release(reservation_id)
        assert ledger.available_credits(course.course_id) == Decimal("3")

    def test_commit_after_release_rejected(self, ledger, make_course):
        course = make_course(8)
        reservation_id = ledger.reserve(course.course_id, Decimal("5"))
        ledger.release(reservation_id)

        with pytest.raises(ReservationReleasedError):
            ledger.commit(reservation_id)

    def test_unknown_reservation(self, ledger):
        with pytest.raises(ReservationNotFoundError):
            ledger.release(uuid4())
        with pytest.raises(ReservationNotFoundError):
            ledger.get_reservation(uuid4())


class TestClaimReservations:

    def test_release_refused_without_owning_claim(self, ledger, allocator):
        course = ledger.record_course(course_record(10))
        claim = allocator.submit_claim("S-1001", CYBER, "certificate")
        reservation_id = claim.contributions[0].reservation_id

        with pytest.raises(ReservationHeldByClaimError):
            ledger.release(reservation_id)
        with pytest.raises(ReservationHeldByClaimError):
            ledger.release(reservation_id, claim_id=uuid4())
        with pytest.raises(ReservationHeldByClaimError):
            ledger.commit(reservation_id)

        assert ledger.get_reservation(reservation_id).status == ReservationStatus.ACTIVE
        assert ledger.available_credits(course.course_id) == Decimal("0")

    def test_owning_claim_may_release(self, ledger, allocator):
        course = ledger.record_course(course_record(10))
        claim = allocator.submit_claim("S-1001", CYBER, "certificate")
        reservation_id = claim.contributions[0].reservation_id

        released = ledger.release(reservation_id, claim_id=claim.claim_id)

        assert released.status == ReservationStatus.RELEASED
        assert ledger.available_credits(course.course_id) == Decimal("10")
