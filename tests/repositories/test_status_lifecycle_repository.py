"""Tests for the status lifecycle batch queries."""

from datetime import date, time
from unittest.mock import PropertyMock, patch

from booking_engine.repositories.status_lifecycle_repository import StatusLifecycleRepository


class TestBatchSelect:
    def test_postgresql_locks_selected_rows(self, db):
        repo = StatusLifecycleRepository(db)

        with patch.object(
            StatusLifecycleRepository, "dialect_name", new_callable=PropertyMock
        ) as dialect:
            dialect.return_value = "postgresql"
            sql = repo._batch_select_sql()

        assert sql.endswith("LIMIT :batch_limit FOR UPDATE OF ca SKIP LOCKED")

    def test_sqlite_selects_without_locking(self, db, make_teacher, make_student, make_booking):
        booking = make_booking(make_teacher().id, make_student().id, day=date(2026, 3, 1))
        repo = StatusLifecycleRepository(db)

        assert "FOR UPDATE" not in repo._batch_select_sql()
        assert repo.select_elapsed_batch(date(2026, 3, 2), time(14, 0), 10) == [
            {"id": booking.id, "status": "pending"}
        ]
