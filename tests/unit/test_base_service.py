"""Tests for the shared service plumbing: transactions, error translation and timing."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from booking_engine.core.exceptions import (
    NotFoundException,
    ServiceException,
    ServiceUnavailableException,
)
from booking_engine.services.base import BaseService


class _SampleService(BaseService):
    @BaseService.measure_operation("do_work")
    def do_work(self, fail: bool = False) -> str:
        if fail:
            raise ValueError("boom")
        return "done"


@pytest.fixture(autouse=True)
def _reset_metrics():
    BaseService._class_metrics.pop("_SampleService", None)
    yield
    BaseService._class_metrics.pop("_SampleService", None)


class TestMeasureOperation:
    def test_counts_successes_and_failures(self):
        service = _SampleService(MagicMock())

        assert service.do_work() == "done"
        with pytest.raises(ValueError):
            service.do_work(fail=True)

        metrics = service.get_metrics()["do_work"]
        assert metrics["count"] == 2
        assert metrics["success_rate"] == 0.5
        assert metrics["max_time"] >= metrics["avg_time"] >= 0

    def test_no_metrics_before_first_call(self):
        assert _SampleService(MagicMock()).get_metrics() == {}


class TestTransaction:
    def test_commits_on_success(self):
        db = MagicMock()
        service = _SampleService(db)

        with service.transaction():
            pass

        db.commit.assert_called_once()
        db.rollback.assert_not_called()

    def test_domain_errors_roll_back_unchanged(self):
        db = MagicMock()
        service = _SampleService(db)

        with pytest.raises(NotFoundException):
            with service.transaction():
                raise NotFoundException("missing")

        db.rollback.assert_called_once()
        db.commit.assert_not_called()

    def test_transient_database_error_becomes_503(self):
        db = MagicMock()
        service = _SampleService(db)
        error = OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))

        with pytest.raises(ServiceUnavailableException):
            with service.transaction():
                raise error

        db.rollback.assert_called_once()

    def test_other_database_error_becomes_service_error(self):
        service = _SampleService(MagicMock())
        error = OperationalError("SELECT 1", {}, Exception("syntax error"))

        translated = service.translate_db_error(error)

        assert type(translated) is ServiceException
