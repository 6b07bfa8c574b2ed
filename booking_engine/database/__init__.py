"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
import logging
import time
from typing import Any, Callable, Generator, Optional, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from booking_engine.core.config import settings
from booking_engine.core.exceptions import is_transient_db_error

logger = logging.getLogger(__name__)

_DEFAULT_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 10,
    # Fail fast when the pool is exhausted so callers get a 503 instead of blocking
    "pool_timeout": 5,
    "pool_recycle": 300,
    "pool_pre_ping": True,
    "pool_use_lifo": True,
}

_DEFAULT_CONNECT_ARGS: dict[str, Any] = {
    "connect_timeout": 5,
    "application_name": "booking_engine",
}


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Pool settings for server databases; SQLite keeps its own pool class."""
    if db_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}

    kwargs = dict(_DEFAULT_POOL_KWARGS)
    kwargs["poolclass"] = QueuePool
    if db_url.startswith("postgresql"):
        kwargs["connect_args"] = dict(_DEFAULT_CONNECT_ARGS)
    return kwargs


def enable_sqlite_foreign_keys(target: Engine) -> None:
    """SQLite only enforces foreign keys when asked to, per connection."""
    if target.dialect.name != "sqlite":
        return

    @event.listens_for(target, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


db_url = settings.database_url
engine: Engine = create_engine(db_url, future=True, **_build_engine_kwargs(db_url))
enable_sqlite_foreign_keys(engine)


# Log pool events for monitoring
@event.listens_for(engine, "connect")
def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
    connection_record.info["connect_time"] = datetime.now()
    logger.debug("Database connection established")


@event.listens_for(engine, "checkout")
def receive_checkout(dbapi_connection: Any, connection_record: Any, connection_proxy: Any) -> None:
    logger.debug("Connection checked out from pool")


@event.listens_for(engine, "checkin")
def receive_checkin(dbapi_connection: Any, connection_record: Any) -> None:
    logger.debug("Connection returned to pool")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Context manager for short-lived DB operations (jobs, workers)."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db_pool_status() -> dict[str, int]:
    """Get current database pool statistics."""
    pool = engine.pool
    if not isinstance(pool, QueuePool):
        return {"size": 0, "checked_in": 0, "checked_out": 0, "total": 0, "overflow": 0}
    return {
        "size": pool.size(),
        "checked_in": pool.checkedin(),
        "checked_out": pool.checkedout(),
        "total": pool.size() + pool.overflow(),
        "overflow": pool.overflow(),
    }


def init_db(bind: Optional[Engine] = None) -> None:
    """Create all tables known to the metadata."""
    # Import models so Base.metadata is populated
    import booking_engine.models  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(target)
    logger.info("Database tables created", extra={"event": "init_db", "url": str(target.url)})


T = TypeVar("T")


def linear_retry_delay(attempt: int, step_seconds: float) -> float:
    """Delay before retry ``attempt`` (1-based): step, 2*step, 3*step..."""
    return step_seconds * attempt


def with_db_retry(
    op_name: str,
    func: Callable[[], T],
    *,
    max_attempts: int = 3,
    delay_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Execute a DB operation with retries for transient connection failures.

    Only ``OperationalError`` instances classified as transient are retried;
    everything else propagates on the first failure.
    """

    attempt = 1
    while True:
        try:
            return func()
        except OperationalError as exc:
            if attempt >= max_attempts or not is_transient_db_error(exc):
                raise

            delay = linear_retry_delay(attempt, delay_seconds)
            logger.warning(
                "Transient DB failure detected, retrying",
                extra={
                    "event": "db_retry",
                    "op": op_name,
                    "attempt": attempt,
                    "delay": delay,
                    "error": str(exc),
                },
            )
            sleep(delay)
            attempt += 1


__all__ = [
    "Base",
    "SessionLocal",
    "enable_sqlite_foreign_keys",
    "engine",
    "get_db",
    "get_db_session",
    "get_db_pool_status",
    "init_db",
    "linear_retry_delay",
    "with_db_retry",
]
