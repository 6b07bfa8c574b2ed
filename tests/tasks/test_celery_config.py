"""
Tests for the Celery app and beat schedule configuration.
"""

from datetime import timedelta
from unittest.mock import patch

from celery.schedules import crontab

from booking_engine.tasks.beat_schedule import (
    DEFAULT_STATUS_JOB_CRON,
    STATUS_JOB_TASK,
    _parse_cron_expression,
    get_beat_schedule,
)


class TestCronParsing:
    def test_parses_five_fields(self):
        schedule = _parse_cron_expression("15 3 * * 1-5")

        assert isinstance(schedule, crontab)
        assert schedule.minute == {15}
        assert schedule.hour == {3}
        assert schedule.day_of_week == {1, 2, 3, 4, 5}

    def test_invalid_expression_falls_back_to_default(self, caplog):
        schedule = _parse_cron_expression("every night")

        assert schedule == _parse_cron_expression(DEFAULT_STATUS_JOB_CRON)
        assert "falling back" in caplog.text

    def test_default_runs_at_2230(self):
        schedule = _parse_cron_expression(DEFAULT_STATUS_JOB_CRON)

        assert schedule.hour == {22}
        assert schedule.minute == {30}


class TestBeatSchedule:
    def test_production_uses_configured_cron(self):
        with patch("booking_engine.tasks.beat_schedule.settings") as mock_settings:
            mock_settings.status_job_cron = "0 23 * * *"
            schedule = get_beat_schedule("production")

        entry = schedule["auto-complete-elapsed-bookings"]
        assert entry["task"] == STATUS_JOB_TASK
        assert entry["schedule"].hour == {23}
        assert entry["options"]["queue"] == "maintenance"

    def test_testing_runs_frequently(self):
        entry = get_beat_schedule("testing")["auto-complete-elapsed-bookings"]

        assert entry["schedule"] == timedelta(seconds=30)


class TestCeleryApp:
    def test_timezone_and_routing(self):
        from booking_engine.core.config import settings
        from booking_engine.tasks.celery_app import celery_app

        assert celery_app.conf.timezone == settings.schedule_timezone
        assert celery_app.conf.enable_utc is True
        assert celery_app.conf.task_routes["schedule_status.*"] == {"queue": "maintenance"}
        assert "booking_engine.tasks.schedule_status" in celery_app.conf.imports

    def test_broker_url_gets_database_suffix(self, monkeypatch):
        from booking_engine.tasks.celery_app import celery_app, create_celery_app
        from booking_engine.core.config import settings

        monkeypatch.setattr(settings, "redis_url", "redis://cache.internal:6379")
        monkeypatch.delenv("CELERY_BROKER_URL", raising=False)
        monkeypatch.delenv("CELERY_RESULT_BACKEND", raising=False)

        try:
            app = create_celery_app()
            assert app.conf.broker_url == "redis://cache.internal:6379/0"
        finally:
            celery_app.set_current()

    def test_health_check_task(self):
        from booking_engine.tasks.celery_app import health_check

        result = health_check.run()

        assert result["status"] == "healthy"
        assert "timestamp" in result
