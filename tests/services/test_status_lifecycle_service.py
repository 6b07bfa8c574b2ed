"""Tests for the auto-complete job over elapsed bookings."""

from datetime import date, datetime, time
from unittest.mock import MagicMock, patch

import pytest
import pytz
from sqlalchemy.exc import OperationalError

from booking_engine.repositories.status_lifecycle_repository import (
    AUTO_UPDATE_NOTE,
    StatusLifecycleRepository,
)
from booking_engine.services.alert_notifier import AlertNotifier
from booking_engine.services.status_lifecycle_service import (
    JobRunResult,
    StatusLifecycleService,
)

TODAY = date(2026, 3, 2)
# 14:00 in Asia/Shanghai
NOW = datetime(2026, 3, 2, 6, 0, tzinfo=pytz.UTC)


def _transient_error():
    return OperationalError(
        "SELECT", {}, Exception("server closed the connection unexpectedly")
    )


@pytest.fixture
def pair(make_teacher, make_student):
    return make_teacher().id, make_student().id


@pytest.fixture
def notifier():
    return MagicMock(spec=AlertNotifier)


def _service(db, notifier, **kwargs):
    kwargs.setdefault("sleep", MagicMock())
    return StatusLifecycleService(db, notifier=notifier, **kwargs)


class TestEligibility:
    def test_completes_elapsed_bookings_and_logs_each(self, db, pair, make_booking, notifier):
        yesterday = make_booking(*pair, day=date(2026, 3, 1), status="pending")
        ended_today = make_booking(*pair, start=time(9), end=time(10), status="confirmed")

        result = _service(db, notifier).run(now=NOW)

        assert result.success is True
        assert result.updated_count == 2
        for booking in (yesterday, ended_today):
            db.refresh(booking)
            assert booking.status == "completed"
            assert booking.last_auto_update is not None

        logs = StatusLifecycleService(db, notifier=notifier).recent_auto_update_logs(result.run_id)
        assert [(log["schedule_id"], log["previous_status"]) for log in logs] == [
            (yesterday.id, "pending"),
            (ended_today.id, "confirmed"),
        ]
        assert {log["note"] for log in logs} == {AUTO_UPDATE_NOTE}
        assert {log["new_status"] for log in logs} == {"completed"}
        notifier.notify_job_failure.assert_not_called()

    def test_future_and_ongoing_bookings_untouched(self, db, pair, make_booking, notifier):
        later_today = make_booking(*pair, start=time(15), end=time(16))
        ongoing = make_booking(*pair, start=time(13, 30), end=time(14, 30))
        tomorrow = make_booking(*pair, day=date(2026, 3, 3))

        result = _service(db, notifier).run(now=NOW)

        assert result.updated_count == 0
        for booking in (later_today, ongoing, tomorrow):
            db.refresh(booking)
            assert booking.status == "pending"

    def test_cancelled_and_completed_bookings_untouched(self, db, pair, make_booking, notifier):
        cancelled = make_booking(*pair, day=date(2026, 3, 1), status="cancelled")
        completed = make_booking(*pair, day=date(2026, 3, 1), start=time(11), end=time(12), status="completed")

        result = _service(db, notifier).run(now=NOW)

        assert result.updated_count == 0
        db.refresh(cancelled)
        db.refresh(completed)
        assert cancelled.status == "cancelled"
        assert completed.last_auto_update is None

    def test_local_date_is_used_for_today(self, db, pair, make_booking, notifier):
        # 2026-03-01 20:00 UTC is already 04:00 on 2026-03-02 in the schedule timezone
        early = datetime(2026, 3, 1, 20, 0, tzinfo=pytz.UTC)
        booking = make_booking(*pair, day=date(2026, 3, 1), start=time(21), end=time(22))

        result = _service(db, notifier).run(now=early)

        assert result.updated_count == 1
        db.refresh(booking)
        assert booking.status == "completed"

    def test_second_run_finds_nothing(self, db, pair, make_booking, notifier):
        make_booking(*pair, day=date(2026, 3, 1))
        service = _service(db, notifier)

        assert service.run(now=NOW).updated_count == 1
        assert service.run(now=NOW).updated_count == 0


class TestBatching:
    def test_small_batches_cover_every_booking(self, db, pair, make_booking, notifier):
        for hour in (8, 9, 10):
            make_booking(*pair, day=date(2026, 3, 1), start=time(hour), end=time(hour + 1))

        result = _service(db, notifier, batch_size=1).run(now=NOW)

        assert result.updated_count == 3
        assert result.batches == 3

    def test_claim_without_returning_rereads_rows(self, db, pair, make_booking, notifier):
        booking = make_booking(*pair, day=date(2026, 3, 1))

        with patch(
            "booking_engine.services.status_lifecycle_service.supports_update_returning",
            return_value=False,
        ):
            result = _service(db, notifier).run(now=NOW)

        assert result.updated_count == 1
        db.refresh(booking)
        assert booking.status == "completed"

    def test_rows_claimed_elsewhere_are_skipped(self, db, pair, make_booking):
        booking = make_booking(*pair, day=date(2026, 3, 1), status="completed")
        repository = StatusLifecycleRepository(db)

        claimed = repository.complete_bookings(
            [booking.id], TODAY, time(14), NOW, use_returning=False
        )

        assert claimed == []


class TestFailureHandling:
    def test_transient_errors_retry_with_linear_delay(self, db, notifier):
        repository = MagicMock(spec=StatusLifecycleRepository)
        repository.select_elapsed_batch.side_effect = [_transient_error(), _transient_error(), []]
        sleep = MagicMock()

        result = StatusLifecycleService(
            db,
            repository=repository,
            notifier=notifier,
            max_retries=3,
            retry_delay_ms=500,
            sleep=sleep,
        ).run(now=NOW)

        assert result.success is True
        assert [call.args[0] for call in sleep.call_args_list] == [0.5, 1.0]
        assert repository.select_elapsed_batch.call_count == 3

    def test_retries_exhausted_reports_failure_and_alerts(self, db, notifier):
        repository = MagicMock(spec=StatusLifecycleRepository)
        repository.select_elapsed_batch.side_effect = _transient_error()

        result = StatusLifecycleService(
            db, repository=repository, notifier=notifier, max_retries=2, sleep=MagicMock()
        ).run(now=NOW)

        assert result.success is False
        assert "server closed the connection" in result.error
        assert repository.select_elapsed_batch.call_count == 2
        notifier.notify_job_failure.assert_called_once_with(result)

    def test_non_transient_error_fails_without_retry(self, db, notifier):
        repository = MagicMock(spec=StatusLifecycleRepository)
        repository.select_elapsed_batch.side_effect = RuntimeError("boom")
        sleep = MagicMock()

        result = StatusLifecycleService(
            db, repository=repository, notifier=notifier, sleep=sleep
        ).run(now=NOW)

        assert result.success is False
        assert result.error == "boom"
        sleep.assert_not_called()
        notifier.notify_job_failure.assert_called_once()

    def test_failed_batch_keeps_earlier_batches(self, db, pair, make_booking, notifier):
        first = make_booking(*pair, day=date(2026, 2, 28))
        make_booking(*pair, day=date(2026, 3, 1))
        repository = StatusLifecycleRepository(db)
        real_insert_logs = repository.insert_logs
        calls = {"count": 0}

        def _fail_second(*args, **kwargs):
            calls["count"] += 1
            if calls["count"] == 2:
                raise RuntimeError("log table unavailable")
            return real_insert_logs(*args, **kwargs)

        repository.insert_logs = _fail_second

        result = StatusLifecycleService(
            db, repository=repository, notifier=notifier, batch_size=1, sleep=MagicMock()
        ).run(now=NOW)

        assert result.success is False
        db.refresh(first)
        assert first.status == "completed"
        assert (
            StatusLifecycleService(db, notifier=notifier).recent_auto_update_logs(result.run_id)
            != []
        )


class TestJobRunResult:
    def test_success_shape(self):
        result = JobRunResult(success=True, run_id="run-1", updated_count=4, batches=1)

        assert result.to_dict() == {"success": True, "updatedCount": 4, "runId": "run-1"}

    def test_failure_shape(self):
        result = JobRunResult(success=False, run_id="run-2", error="db down")

        assert result.to_dict() == {"success": False, "error": "db down", "runId": "run-2"}
