"""
Tests for TeacherPayoutService.

Covers the payout lifecycle end to end against SQLite: creation and claim
exclusion, status transitions, deletion rules, concurrent claim conflicts
and the read models used by managers.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.core.exceptions import (
    InvalidPayoutTransitionException,
    MixedCurrencyPayoutException,
    NothingToPayException,
    PayoutClaimConflictException,
    PayoutDeleteConflictException,
    PayoutNotFoundException,
    PayoutTimeoutException,
    TeacherNotFoundException,
    ValidationException,
)
from app.domain.payouts import PayoutFilters
from app.models.lesson import LessonStatus
from app.models.payout import (
    PayoutLineItem,
    QualificationReason,
    TeacherPayout,
    TeacherPayoutStatus,
)
from app.schemas.teacher_payout import TeacherPayoutSummaryResponse
from app.services.teacher_payout_service import TeacherPayoutService
from tests.helpers.payout_doubles import utc


@pytest.fixture
def service(db) -> TeacherPayoutService:
    return TeacherPayoutService(db)


@pytest.fixture
def two_lessons(make_lesson):
    """A completed lesson and a late cancellation, both in January 2025."""
    completed = make_lesson(utc(2025, 1, 10, 10))
    start = utc(2025, 1, 12, 14)
    cancelled = make_lesson(
        start, status=LessonStatus.CANCELLED, cancelled_at=start - timedelta(hours=2)
    )
    return completed, cancelled


class TestCreatePayout:
    def test_creates_pending_payout_with_frozen_line_items(
        self, service, organization, teacher, two_lessons, january, now
    ):
        completed, cancelled = two_lessons

        payout, preview = service.create_payout(
            organization.id, teacher.id, *january, notes="January", now=now
        )

        assert payout.status == TeacherPayoutStatus.PENDING.value
        assert payout.total_amount == Decimal("150.00")
        assert payout.total_minutes == 120
        # Hours count the full scheduled duration; only the amount is scaled
        assert payout.total_hours == Decimal("2.00")
        assert payout.currency == "PLN"
        assert payout.notes == "January"
        assert payout.period_start == january[0]
        assert payout.period_end == january[1]
        assert preview.lesson_ids == [completed.id, cancelled.id]

        items = {item.lesson_id: item for item in payout.line_items}
        assert items[completed.id].amount == Decimal("100.00")
        assert items[completed.id].payout_percent == 100
        assert items[cancelled.id].qualification_reason == QualificationReason.LATE_CANCELLATION.value
        assert items[cancelled.id].payout_percent == 50
        assert items[cancelled.id].amount == Decimal("50.00")
        assert all(item.claim_active for item in payout.line_items)

    def test_second_create_for_same_period_has_nothing_to_pay(
        self, service, organization, teacher, two_lessons, january, now
    ):
        service.create_payout(organization.id, teacher.id, *january, now=now)

        with pytest.raises(NothingToPayException):
            service.create_payout(organization.id, teacher.id, *january, now=now)

    def test_claimed_lessons_excluded_from_overlapping_period(
        self, service, organization, teacher, two_lessons, make_lesson, january, now
    ):
        service.create_payout(organization.id, teacher.id, *january, now=now)
        fresh = make_lesson(utc(2025, 1, 11, 9))

        payout, _ = service.create_payout(
            organization.id, teacher.id, date(2025, 1, 10), date(2025, 1, 12), now=now
        )

        assert [item.lesson_id for item in payout.line_items] == [fresh.id]

    def test_preview_after_create_excludes_claimed_lessons(
        self, service, organization, teacher, two_lessons, january, now
    ):
        service.create_payout(organization.id, teacher.id, *january, now=now)

        preview = service.preview_payout(organization.id, teacher.id, *january, now=now)

        assert preview.is_empty
        assert preview.total_amount == Decimal("0.00")

    def test_no_lessons_raises_nothing_to_pay(self, service, organization, teacher, january, now):
        with pytest.raises(NothingToPayException) as exc_info:
            service.create_payout(organization.id, teacher.id, *january, now=now)
        assert exc_info.value.details["period_start"] == "2025-01-01"

    def test_mixed_currency_rejected(
        self, service, organization, teacher, make_lesson, add_rate, january, now
    ):
        make_lesson(utc(2025, 1, 10))
        make_lesson(utc(2025, 1, 20))
        add_rate(teacher, "30.00", utc(2025, 1, 15), currency="EUR")

        with pytest.raises(MixedCurrencyPayoutException) as exc_info:
            service.create_payout(organization.id, teacher.id, *january, now=now)
        assert exc_info.value.details["currencies"] == ["EUR", "PLN"]
        assert service.list_payouts(organization.id) == []

    def test_unknown_teacher(self, service, organization, january, now):
        with pytest.raises(TeacherNotFoundException):
            service.create_payout(organization.id, "01JUNKNOWNTEACHER000000000", *january, now=now)

    def test_teacher_from_other_organization(
        self, service, make_organization, teacher, two_lessons, january, now
    ):
        other = make_organization(name="Other school")
        with pytest.raises(TeacherNotFoundException):
            service.create_payout(other.id, teacher.id, *january, now=now)

    def test_notes_too_long(self, service, organization, teacher, two_lessons, january, now):
        with pytest.raises(ValidationException) as exc_info:
            service.create_payout(organization.id, teacher.id, *january, notes="x" * 2001, now=now)
        assert exc_info.value.field == "notes"

    def test_inverted_period(self, service, organization, teacher, january, now):
        with pytest.raises(ValidationException):
            service.create_payout(organization.id, teacher.id, january[1], january[0], now=now)


class TestClaimConflicts:
    def test_stale_preview_raises_claim_conflict_and_rolls_back(
        self, service, organization, teacher, two_lessons, january, now
    ):
        stale = service.preview_payout(organization.id, teacher.id, *january, now=now)
        service.create_payout(organization.id, teacher.id, *january, now=now)

        with patch.object(service.preview_service, "preview", return_value=stale):
            with pytest.raises(PayoutClaimConflictException) as exc_info:
                service.create_payout(organization.id, teacher.id, *january, now=now)

        assert sorted(exc_info.value.details["lesson_ids"]) == sorted(stale.lesson_ids)
        assert exc_info.value.retryable is True
        assert len(service.list_payouts(organization.id)) == 1

    def test_conflict_is_retried_with_a_fresh_preview(
        self, service, organization, teacher, make_lesson, january, now, monkeypatch
    ):
        first = make_lesson(utc(2025, 1, 5, 10))
        second = make_lesson(utc(2025, 1, 20, 10))
        stale = service.preview_payout(organization.id, teacher.id, *january, now=now)
        service.create_payout(
            organization.id, teacher.id, date(2025, 1, 1), date(2025, 1, 10), now=now
        )

        real_preview = service.preview_service.preview
        calls = []

        def flaky_preview(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return stale
            return real_preview(*args, **kwargs)

        monkeypatch.setattr(settings, "payout_create_max_attempts", 2)
        with patch.object(service.preview_service, "preview", side_effect=flaky_preview):
            payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)

        assert len(calls) == 2
        assert [item.lesson_id for item in payout.line_items] == [second.id]
        assert first.id not in [item.lesson_id for item in payout.line_items]

    def test_no_retry_by_default(
        self, service, organization, teacher, two_lessons, january, now
    ):
        stale = service.preview_payout(organization.id, teacher.id, *january, now=now)
        service.create_payout(organization.id, teacher.id, *january, now=now)

        with patch.object(service.preview_service, "preview", return_value=stale) as mocked:
            with pytest.raises(PayoutClaimConflictException):
                service.create_payout(organization.id, teacher.id, *january, now=now)
        assert mocked.call_count == 1


def _statement_timeout() -> OperationalError:
    return OperationalError(
        "COMMIT", {}, Exception("canceling statement due to statement timeout")
    )


class TestDatabaseTimeouts:
    def test_timeout_at_commit_leaves_no_payout(
        self, service, db, organization, teacher, two_lessons, january, now
    ):
        with patch.object(db, "commit", side_effect=_statement_timeout()):
            with pytest.raises(PayoutTimeoutException) as exc_info:
                service.create_payout(organization.id, teacher.id, *january, now=now)

        assert exc_info.value.retryable is True
        assert exc_info.value.details == {"operation": "create_payout"}
        assert db.query(TeacherPayout).count() == 0
        assert db.query(PayoutLineItem).count() == 0
        preview = service.preview_payout(organization.id, teacher.id, *january, now=now)
        assert len(preview.lessons) == 2

    def test_timeout_is_retried_when_configured(
        self, service, db, organization, teacher, two_lessons, january, now, monkeypatch
    ):
        monkeypatch.setattr(settings, "payout_create_max_attempts", 2)
        real_commit = db.commit
        calls = []

        def commit_times_out_once():
            calls.append(1)
            if len(calls) == 1:
                raise _statement_timeout()
            real_commit()

        with patch.object(db, "commit", side_effect=commit_times_out_once):
            payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)

        assert len(calls) == 2
        assert db.query(TeacherPayout).one().id == payout.id
        assert db.query(PayoutLineItem).count() == 2


class TestPayoutStatus:
    def test_full_lifecycle_to_paid(self, service, organization, teacher, two_lessons, january, now):
        payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)

        approved = service.set_payout_status(organization.id, payout.id, "APPROVED")
        assert approved.status == "APPROVED"
        assert approved.paid_at is None

        paid = service.set_payout_status(
            organization.id, payout.id, TeacherPayoutStatus.PAID, notes="Bank transfer"
        )
        assert paid.status == "PAID"
        assert paid.paid_at is not None
        assert paid.paid_at.tzinfo is not None
        assert paid.notes == "Bank transfer"

    def test_status_is_case_insensitive(
        self, service, organization, teacher, two_lessons, january, now
    ):
        payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)
        updated = service.set_payout_status(organization.id, payout.id, " approved ")
        assert updated.status == "APPROVED"

    @pytest.mark.parametrize(
        "path, target",
        [
            ((), "PAID"),
            ((), "PENDING"),
            (("APPROVED",), "PENDING"),
            (("APPROVED", "PAID"), "CANCELLED"),
            (("CANCELLED",), "APPROVED"),
        ],
    )
    def test_invalid_transitions(
        self, service, organization, teacher, two_lessons, january, now, path, target
    ):
        payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)
        for step in path:
            service.set_payout_status(organization.id, payout.id, step)

        with pytest.raises(InvalidPayoutTransitionException) as exc_info:
            service.set_payout_status(organization.id, payout.id, target)
        assert exc_info.value.details["target_status"] == target

    def test_unknown_status_rejected(self, service, organization, teacher, two_lessons, january, now):
        payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)
        with pytest.raises(ValidationException) as exc_info:
            service.set_payout_status(organization.id, payout.id, "REFUNDED")
        assert exc_info.value.field == "status"

    def test_cancel_releases_lessons(self, service, organization, teacher, two_lessons, january, now):
        payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)

        service.set_payout_status(organization.id, payout.id, "CANCELLED")

        preview = service.preview_payout(organization.id, teacher.id, *january, now=now)
        assert preview.lesson_ids == [lesson.id for lesson in two_lessons]
        assert preview.total_amount == Decimal("150.00")
        refreshed = service.get_payout(organization.id, payout.id)
        assert refreshed.status == "CANCELLED"
        assert not any(item.claim_active for item in refreshed.line_items)

    def test_cancelled_lessons_can_be_paid_again(
        self, service, organization, teacher, two_lessons, january, now
    ):
        first, _ = service.create_payout(organization.id, teacher.id, *january, now=now)
        service.set_payout_status(organization.id, first.id, "CANCELLED")

        second, _ = service.create_payout(organization.id, teacher.id, *january, now=now)

        assert second.id != first.id
        assert second.total_amount == Decimal("150.00")

    def test_approved_payout_can_be_cancelled(
        self, service, organization, teacher, two_lessons, january, now
    ):
        payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)
        service.set_payout_status(organization.id, payout.id, "APPROVED")
        assert service.set_payout_status(organization.id, payout.id, "CANCELLED").status == "CANCELLED"

    def test_missing_payout(self, service, organization):
        with pytest.raises(PayoutNotFoundException):
            service.set_payout_status(organization.id, "01JMISSINGPAYOUT0000000000", "APPROVED")


class TestDeletePayout:
    def test_delete_latest_pending_payout_releases_lessons(
        self, db, service, organization, teacher, two_lessons, january, now
    ):
        payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)

        service.delete_payout(organization.id, payout.id)

        with pytest.raises(PayoutNotFoundException):
            service.get_payout(organization.id, payout.id)
        assert db.query(PayoutLineItem).filter_by(payout_id=payout.id).count() == 0
        preview = service.preview_payout(organization.id, teacher.id, *january, now=now)
        assert preview.lesson_count == 2

    def test_only_latest_payout_can_be_deleted(
        self, service, organization, teacher, make_lesson, now
    ):
        make_lesson(utc(2025, 1, 5))
        make_lesson(utc(2025, 1, 20))
        older, _ = service.create_payout(
            organization.id, teacher.id, date(2025, 1, 1), date(2025, 1, 10), now=now
        )
        newer, _ = service.create_payout(
            organization.id, teacher.id, date(2025, 1, 11), date(2025, 1, 31), now=now
        )

        with pytest.raises(PayoutDeleteConflictException):
            service.delete_payout(organization.id, older.id)

        service.delete_payout(organization.id, newer.id)
        service.delete_payout(organization.id, older.id)
        assert service.list_payouts(organization.id) == []

    def test_cancelled_newer_payout_does_not_block_delete(
        self, service, organization, teacher, make_lesson, now
    ):
        make_lesson(utc(2025, 1, 5))
        make_lesson(utc(2025, 1, 20))
        older, _ = service.create_payout(
            organization.id, teacher.id, date(2025, 1, 1), date(2025, 1, 10), now=now
        )
        newer, _ = service.create_payout(
            organization.id, teacher.id, date(2025, 1, 11), date(2025, 1, 31), now=now
        )
        service.set_payout_status(organization.id, newer.id, "CANCELLED")

        service.delete_payout(organization.id, older.id)

    def test_non_pending_payout_cannot_be_deleted(
        self, service, organization, teacher, two_lessons, january, now
    ):
        payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)
        service.set_payout_status(organization.id, payout.id, "APPROVED")

        with pytest.raises(PayoutDeleteConflictException) as exc_info:
            service.delete_payout(organization.id, payout.id)
        assert exc_info.value.status_code == 409
        assert service.get_payout(organization.id, payout.id).status == "APPROVED"

    def test_payout_of_other_organization_is_not_found(
        self, service, make_organization, organization, teacher, two_lessons, january, now
    ):
        payout, _ = service.create_payout(organization.id, teacher.id, *january, now=now)
        other = make_organization(name="Other school")

        with pytest.raises(PayoutNotFoundException):
            service.delete_payout(other.id, payout.id)
        with pytest.raises(PayoutNotFoundException):
            service.get_payout(other.id, payout.id)


class TestPayoutQueries:
    @pytest.fixture
    def three_payouts(self, service, organization, teacher, make_lesson, now):
        for day in (utc(2024, 12, 10), utc(2025, 1, 10), utc(2025, 1, 25)):
            make_lesson(day)
        december, _ = service.create_payout(
            organization.id, teacher.id, date(2024, 12, 1), date(2024, 12, 31), now=now
        )
        early_jan, _ = service.create_payout(
            organization.id, teacher.id, date(2025, 1, 1), date(2025, 1, 15), now=now
        )
        late_jan, _ = service.create_payout(
            organization.id, teacher.id, date(2025, 1, 16), date(2025, 1, 31), now=now
        )
        service.set_payout_status(organization.id, december.id, "APPROVED")
        return december, early_jan, late_jan

    def test_ordered_by_status_then_period_end(self, service, organization, three_payouts):
        december, early_jan, late_jan = three_payouts
        ids = [payout.id for payout in service.list_payouts(organization.id)]
        assert ids == [late_jan.id, early_jan.id, december.id]

    def test_cancelled_payouts_sort_last(self, service, organization, three_payouts):
        december, early_jan, late_jan = three_payouts
        service.set_payout_status(organization.id, late_jan.id, "CANCELLED")
        ids = [payout.id for payout in service.list_payouts(organization.id)]
        assert ids == [early_jan.id, december.id, late_jan.id]

    def test_filter_by_status(self, service, organization, three_payouts):
        december, _, _ = three_payouts
        result = service.list_payouts(organization.id, PayoutFilters(status="approved"))
        assert [payout.id for payout in result] == [december.id]

    def test_filter_by_period(self, service, organization, three_payouts):
        _, early_jan, late_jan = three_payouts
        result = service.list_payouts(
            organization.id,
            PayoutFilters(period_start=date(2025, 1, 1), period_end=date(2025, 1, 31)),
        )
        assert {payout.id for payout in result} == {early_jan.id, late_jan.id}

    def test_limit(self, service, organization, three_payouts):
        assert len(service.list_payouts(organization.id, PayoutFilters(limit=2))) == 2

    def test_invalid_filters(self, service, organization):
        with pytest.raises(ValidationException):
            service.list_payouts(organization.id, PayoutFilters(status="LOST"))
        with pytest.raises(ValidationException):
            service.list_payouts(
                organization.id,
                PayoutFilters(period_start=date(2025, 2, 1), period_end=date(2025, 1, 1)),
            )

    def test_list_teacher_payouts(self, service, organization, make_teacher, teacher, three_payouts):
        other = make_teacher(first_name="Ewa", last_name="Zielinska")
        assert len(service.list_teacher_payouts(organization.id, teacher.id)) == 3
        assert service.list_teacher_payouts(organization.id, other.id) == []
        with pytest.raises(TeacherNotFoundException):
            service.list_teacher_payouts(organization.id, "01JUNKNOWNTEACHER000000000")

    def test_other_organization_sees_nothing(self, service, make_organization, three_payouts):
        other = make_organization(name="Other school")
        assert service.list_payouts(other.id) == []


class TestTeachersSummary:
    def test_pending_totals_per_active_teacher(
        self, service, organization, teacher, make_teacher, make_lesson, now
    ):
        other = make_teacher(first_name="Adam", last_name="Bialy", hourly_rate=Decimal("80.00"))
        make_teacher(first_name="Old", last_name="Archive", is_active=False)
        make_lesson(utc(2025, 1, 5))
        make_lesson(utc(2025, 1, 20))
        service.create_payout(
            organization.id, teacher.id, date(2025, 1, 1), date(2025, 1, 10), now=now
        )
        second, _ = service.create_payout(
            organization.id, teacher.id, date(2025, 1, 11), date(2025, 1, 31), now=now
        )
        service.set_payout_status(organization.id, second.id, "APPROVED")

        summary = service.get_teachers_summary(organization.id)

        assert [item.teacher_name for item in summary] == ["Adam Bialy", "Anna Kowalska"]
        assert summary[0].teacher_id == other.id
        assert summary[0].pending_payouts_count == 0
        assert summary[0].pending_payouts_total == Decimal("0")
        assert summary[1].pending_payouts_count == 1
        assert summary[1].pending_payouts_total == Decimal("100.00")
        assert summary[1].currency == "PLN"
        assert summary[1].pending_currency == "PLN"
        assert summary[1].pending_totals_by_currency == {"PLN": Decimal("100.00")}
        assert summary[1].hourly_rate == Decimal("100.00")

    def test_pending_totals_are_not_summed_across_currencies(
        self, service, organization, teacher, add_rate, make_lesson, now
    ):
        add_rate(teacher, "40.00", utc(2025, 1, 15), currency="EUR")
        make_lesson(utc(2025, 1, 5))
        make_lesson(utc(2025, 1, 20))
        service.create_payout(
            organization.id, teacher.id, date(2025, 1, 1), date(2025, 1, 10), now=now
        )
        service.create_payout(
            organization.id, teacher.id, date(2025, 1, 11), date(2025, 1, 31), now=now
        )

        (summary,) = service.get_teachers_summary(organization.id)

        assert summary.pending_payouts_count == 2
        assert summary.pending_payouts_total is None
        assert summary.pending_currency is None
        assert summary.pending_totals_by_currency == {
            "EUR": Decimal("40.00"),
            "PLN": Decimal("100.00"),
        }
        assert summary.currency == "PLN"

        payload = TeacherPayoutSummaryResponse.model_validate(summary).model_dump(mode="json")
        assert payload["pending_payouts_total"] is None
        assert payload["pending_totals_by_currency"] == {"EUR": 40.0, "PLN": 100.0}


class TestLessonsWithPayoutStanding:
    def test_lessons_for_range_annotates_every_lesson(
        self, service, organization, teacher, make_lesson, now
    ):
        completed = make_lesson(utc(2025, 1, 10, 10))
        no_show = make_lesson(utc(2025, 1, 11, 10), status=LessonStatus.NO_SHOW)
        start = utc(2025, 1, 12, 14)
        late = make_lesson(
            start, status=LessonStatus.CANCELLED, cancelled_at=start - timedelta(hours=1)
        )
        payout, _ = service.create_payout(
            organization.id, teacher.id, date(2025, 1, 10), date(2025, 1, 10), now=now
        )

        infos = service.get_lessons_for_range(
            organization.id, teacher.id, date(2025, 1, 1), date(2025, 1, 31), now=now
        )

        by_id = {info.lesson_id: info for info in infos}
        assert [info.lesson_id for info in infos] == [completed.id, no_show.id, late.id]

        assert by_id[completed.id].qualifies_for_payout is True
        assert by_id[completed.id].payout.payout_id == payout.id
        assert by_id[completed.id].payout.payout_status == "PENDING"

        assert by_id[no_show.id].qualifies_for_payout is False
        assert by_id[no_show.id].amount is None
        assert by_id[no_show.id].payout is None

        assert by_id[late.id].qualification_reason == QualificationReason.LATE_CANCELLATION
        assert by_id[late.id].amount == Decimal("50.00")
        assert by_id[late.id].payout is None

    def test_lessons_for_day(self, service, organization, teacher, make_lesson, now):
        inside = make_lesson(utc(2025, 1, 10, 23, 59))
        make_lesson(utc(2025, 1, 11, 0, 1))

        infos = service.get_lessons_for_day(organization.id, teacher.id, date(2025, 1, 10), now=now)

        assert [info.lesson_id for info in infos] == [inside.id]

    def test_inverted_range_rejected(self, service, organization, teacher):
        with pytest.raises(ValidationException) as exc_info:
            service.get_lessons_for_range(
                organization.id, teacher.id, date(2025, 1, 31), date(2025, 1, 1)
            )
        assert exc_info.value.field == "from_date"

    def test_unknown_teacher(self, service, organization):
        with pytest.raises(TeacherNotFoundException):
            service.get_lessons_for_day(
                organization.id, "01JUNKNOWNTEACHER000000000", date(2025, 1, 1)
            )
