"""
Async adapter over the local SQLite store.

SQLAlchemy is synchronous; every call runs in the default thread pool
executor so it doesn't block the asyncio event loop, and is wrapped in a
bounded retry. Between attempts the adapter disposes its connection pool so
the next attempt opens a fresh connection.

Tables are addressed by name and rows are plain dicts, which is what the
sync engine moves between stores.
"""
import asyncio
import functools
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import Table, select
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel

from tasksync.db.engine import init_db
from tasksync.db.migrations import table_columns
from tasksync.errors import UnknownTableError
from tasksync.models import records as _records  # noqa: F401  (registers tables)
from tasksync.models import sync as _sync  # noqa: F401
from tasksync.utils.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

Row = Dict[str, Any]


class LocalStore:
    """
    Retrying CRUD primitives over the local relational store.

    Only OperationalError (locked database, closed handle, I/O error) is
    retried. Constraint and programming errors surface on the first attempt.
    """

    def __init__(
        self,
        engine,
        retry_attempts: int = 3,
        retry_delay_seconds: float = 0.1,
    ):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            retry_attempts: Attempts per call before the error surfaces.
            retry_delay_seconds: Linear backoff step (delay * attempt).
        """
        self.engine = engine
        self._retry = RetryPolicy(
            max_attempts=retry_attempts,
            delay_seconds=retry_delay_seconds,
            retry_on=(OperationalError,),
        )

    # ── Plumbing ──────────────────────────────────────────────────────────────

    async def _run(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run a sync store call in the thread pool, with retry."""
        loop = asyncio.get_event_loop()
        call = functools.partial(fn, *args, **kwargs)
        return await call_with_retry(
            lambda: loop.run_in_executor(None, call),
            self._retry,
            on_retry=self._recover,
        )

    def _recover(self, exc: BaseException) -> None:
        """Drop pooled connections; the next checkout reopens the database."""
        logger.warning("Reopening local store after error: %s", exc)
        self.engine.dispose()

    @staticmethod
    def _table(name: str) -> Table:
        try:
            return SQLModel.metadata.tables[name]
        except KeyError:
            raise UnknownTableError(f"Unknown local table: {name}") from None

    # ── Schema ────────────────────────────────────────────────────────────────

    async def bootstrap(self) -> None:
        """Create tables, run migrations and seed the Inbox project."""
        await self._run(init_db, self.engine)

    async def columns(self, table: str) -> List[str]:
        """Column names of a local table, from PRAGMA table_info."""
        self._table(table)

        def _columns() -> List[str]:
            with self.engine.connect() as conn:
                return table_columns(conn, table)

        return await self._run(_columns)

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def query_all(self, table: str) -> List[Row]:
        t = self._table(table)

        def _query() -> List[Row]:
            with self.engine.connect() as conn:
                rows = conn.execute(select(t).order_by(t.c.id)).mappings().all()
                return [dict(r) for r in rows]

        return await self._run(_query)

    async def query_one(self, table: str, record_id: int) -> Optional[Row]:
        t = self._table(table)

        def _query() -> Optional[Row]:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(t).where(t.c.id == record_id)
                ).mappings().first()
                return dict(row) if row is not None else None

        return await self._run(_query)

    async def query_where(self, table: str, **criteria: Any) -> List[Row]:
        """Rows whose columns equal all of the given values, ordered by id."""
        t = self._table(table)

        def _query() -> List[Row]:
            stmt = select(t)
            for column, value in criteria.items():
                stmt = stmt.where(t.c[column] == value)
            with self.engine.connect() as conn:
                rows = conn.execute(stmt.order_by(t.c.id)).mappings().all()
                return [dict(r) for r in rows]

        return await self._run(_query)

    # ── Writes ────────────────────────────────────────────────────────────────

    async def insert(self, table: str, fields: Row) -> int:
        """Insert a row and return its id (the given id, if fields carry one)."""
        t = self._table(table)

        def _insert() -> int:
            with self.engine.begin() as conn:
                result = conn.execute(t.insert().values(**fields))
                return result.inserted_primary_key[0]

        return await self._run(_insert)

    async def update(self, table: str, record_id: int, fields: Row) -> int:
        """Update a row by id. Returns the number of rows matched (0 or 1)."""
        t = self._table(table)
        if not fields:
            return 1 if await self.query_one(table, record_id) else 0

        def _update() -> int:
            with self.engine.begin() as conn:
                result = conn.execute(
                    t.update().where(t.c.id == record_id).values(**fields)
                )
                return result.rowcount

        return await self._run(_update)

    async def delete(self, table: str, record_id: int) -> int:
        """Delete a row by id. Returns the number of rows deleted."""
        t = self._table(table)

        def _delete() -> int:
            with self.engine.begin() as conn:
                return conn.execute(t.delete().where(t.c.id == record_id)).rowcount

        return await self._run(_delete)

    async def delete_where(self, table: str, **criteria: Any) -> int:
        """Delete every row matching all criteria. Returns the count deleted."""
        t = self._table(table)
        if not criteria:
            raise ValueError("delete_where needs at least one criterion")

        def _delete() -> int:
            stmt = t.delete()
            for column, value in criteria.items():
                stmt = stmt.where(t.c[column] == value)
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount

        return await self._run(_delete)

    # ── ORM access ────────────────────────────────────────────────────────────

    async def session_call(self, fn: Callable[[Session], T]) -> T:
        """Run fn(session) in the thread pool with a fresh Session, with retry."""

        def _call() -> T:
            with Session(self.engine) as s:
                return fn(s)

        return await self._run(_call)
