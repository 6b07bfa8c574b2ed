# booking_engine/database/schema_adapter.py
"""
Schema Adapter for the booking table.

The booking table has carried its session date under three names over its
migration history (``arr_date``, ``class_date``, ``date``). The adapter
probes the live schema once and exposes a single "session date" expression
so query text never has to branch on column names.

Resolution is lazy and the result is immutable once a probe succeeds. A
failing probe falls back to the ``date`` column without caching, so a
metadata outage never blocks booking operations and the next call probes
again.

Probes run on the caller's session connection when one is passed as
``via`` so they never check a second connection out of the pool in the
middle of a transaction.
"""

from dataclasses import dataclass
import logging
import threading
from typing import Dict, Optional, Tuple, Union
import weakref

from sqlalchemy import Date, inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement, literal_column

from .session_utils import resolve_session_bind

logger = logging.getLogger(__name__)

BindLike = Union[Engine, Connection, Session]

BOOKING_TABLE = "course_arrangement"
DATE_COLUMN_CANDIDATES: Tuple[str, ...] = ("arr_date", "class_date", "date")
FALLBACK_DATE_COLUMN = "date"


@dataclass(frozen=True)
class SchemaSnapshot:
    """Result of one successful probe of the booking table."""

    table: str
    date_columns: Tuple[str, ...]

    @property
    def write_column(self) -> str:
        return self.date_columns[0] if self.date_columns else FALLBACK_DATE_COLUMN


def _engine_for(bind: BindLike) -> Engine:
    if isinstance(bind, Session):
        resolved = resolve_session_bind(bind)
        if resolved is None:
            raise RuntimeError("Session is not bound to an engine")
        bind = resolved
    if isinstance(bind, Connection):
        return bind.engine
    return bind


class SchemaAdapter:
    """Resolves the logical session-date column against the live schema."""

    def __init__(self, engine: Engine, table: str = BOOKING_TABLE):
        self.engine = engine
        self.table = table
        self._lock = threading.Lock()
        self._snapshot: Optional[SchemaSnapshot] = None
        self._columns: Dict[str, bool] = {}

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def _column_names(self, table: str, via: Optional[BindLike]) -> Tuple[str, ...]:
        if isinstance(via, Session):
            target: Union[Engine, Connection] = via.connection()
        else:
            target = via or self.engine
        inspector = inspect(target)
        return tuple(col["name"] for col in inspector.get_columns(table))

    def _probe(self, via: Optional[BindLike]) -> Optional[SchemaSnapshot]:
        try:
            present = set(self._column_names(self.table, via))
        except SQLAlchemyError as exc:
            logger.warning(
                "Schema probe for %s failed; using fallback date column '%s': %s",
                self.table,
                FALLBACK_DATE_COLUMN,
                exc,
                extra={"event": "schema_probe_failed", "table": self.table},
            )
            return None

        columns = tuple(name for name in DATE_COLUMN_CANDIDATES if name in present)
        if not columns:
            logger.warning(
                "No known date column on %s; using fallback '%s'",
                self.table,
                FALLBACK_DATE_COLUMN,
            )
        else:
            logger.info("Resolved session date columns for %s: %s", self.table, columns)
        return SchemaSnapshot(table=self.table, date_columns=columns)

    def snapshot(self, via: Optional[BindLike] = None) -> Optional[SchemaSnapshot]:
        """Cached snapshot, probing on first use. None while the probe is failing."""
        if self._snapshot is not None:
            return self._snapshot
        with self._lock:
            if self._snapshot is None:
                self._snapshot = self._probe(via)
            return self._snapshot

    def refresh(self) -> None:
        """Forget cached schema facts (used after DDL, e.g. init_db)."""
        with self._lock:
            self._snapshot = None
            self._columns = {}

    # ------------------------------------------------------------------
    # Date column resolution
    # ------------------------------------------------------------------

    def _quote(self, name: str) -> str:
        return self.engine.dialect.identifier_preparer.quote(name)

    def date_columns(self, via: Optional[BindLike] = None) -> Tuple[str, ...]:
        snapshot = self.snapshot(via)
        if snapshot and snapshot.date_columns:
            return snapshot.date_columns
        return (FALLBACK_DATE_COLUMN,)

    def resolve_date_expression(
        self, table_alias: Optional[str] = None, via: Optional[BindLike] = None
    ) -> str:
        """
        SQL text for the booking's session date.

        Returns ``COALESCE(alias.arr_date, alias.class_date, alias.date)``
        over whichever columns exist, the bare column when only one exists,
        and the ``date`` column when none can be found.
        """
        prefix = f"{table_alias}." if table_alias else ""
        qualified = [f"{prefix}{self._quote(name)}" for name in self.date_columns(via)]
        if len(qualified) == 1:
            return qualified[0]
        return f"COALESCE({', '.join(qualified)})"

    def date_clause(
        self, table_alias: Optional[str] = None, via: Optional[BindLike] = None
    ) -> ColumnElement:
        """The session date as a typed Core expression."""
        return literal_column(self.resolve_date_expression(table_alias, via), type_=Date)

    def date_write_column(self, via: Optional[BindLike] = None) -> str:
        """Physical column new dates are written to (arr_date > class_date > date)."""
        snapshot = self.snapshot(via)
        return snapshot.write_column if snapshot else FALLBACK_DATE_COLUMN

    # ------------------------------------------------------------------
    # Optional participant columns
    # ------------------------------------------------------------------

    def has_column(self, table: str, column: str, via: Optional[BindLike] = None) -> bool:
        key = f"{table}.{column}"
        cached = self._columns.get(key)
        if cached is not None:
            return cached
        try:
            exists = column in self._column_names(table, via)
        except SQLAlchemyError as exc:
            logger.warning("Column probe for %s failed, treating as absent: %s", key, exc)
            return False
        with self._lock:
            self._columns[key] = exists
        return exists

    def has_status_column(self, table: str, via: Optional[BindLike] = None) -> bool:
        """Whether ``table`` exposes an account ``status`` column."""
        return self.has_column(table, "status", via)


_adapters: "weakref.WeakKeyDictionary[Engine, SchemaAdapter]" = weakref.WeakKeyDictionary()
_adapters_lock = threading.Lock()


def get_schema_adapter(bind: BindLike) -> SchemaAdapter:
    """
    Process-wide adapter for the engine behind ``bind``.

    One adapter (and therefore one successful probe) exists per engine.
    """
    engine = _engine_for(bind)
    with _adapters_lock:
        adapter = _adapters.get(engine)
        if adapter is None:
            adapter = SchemaAdapter(engine)
            _adapters[engine] = adapter
        return adapter
