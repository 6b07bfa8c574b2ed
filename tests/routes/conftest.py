from typing import Iterator

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from booking_engine.database import get_db
from booking_engine.main import app


@pytest.fixture
def client(db: Session) -> Iterator[TestClient]:
    """API client whose requests share the test session."""

    def _override_get_db() -> Iterator[Session]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
