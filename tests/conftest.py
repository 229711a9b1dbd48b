"""Shared test fixtures."""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from sqlmodel import create_engine

from tasksync.db.engine import init_db
from tasksync.errors import ConnectivityError, RemoteNotFoundError, RemoteStoreError
from tasksync.store.local import LocalStore
from tasksync.sync.tracker import ChangeTracker


class FakeClock:
    """Deterministic clock: every call returns a time one second later."""

    def __init__(self, start: datetime = datetime(2025, 1, 15, 7, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeRemoteStore:
    """
    In-memory stand-in for RemoteStoreClient.

    Rows live in `tables[table][id]`. New rows get ids from a per-table
    counter that tests can move with set_next_id(). Failures are injected
    per (method, table) with fail(); ping can be made to fail or to block
    on an asyncio.Event.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self.next_ids: Dict[str, int] = {}
        self.calls: List[Tuple[str, str, Optional[int]]] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.ping_error: Optional[Exception] = None
        self.ping_gate: Optional[asyncio.Event] = None
        self.ping_count = 0
        self.configured = True
        self.closed = False

    # ── Test helpers ─────────────────────────────────────────────────────────

    def seed(self, table: str, row: Dict[str, Any]) -> None:
        rows = self.tables.setdefault(table, {})
        rows[row["id"]] = dict(row)
        self.next_ids[table] = max(self.next_ids.get(table, 1), row["id"] + 1)

    def set_next_id(self, table: str, next_id: int) -> None:
        self.next_ids[table] = next_id

    def fail(self, method: str, table: str, exc: Exception) -> None:
        self.failures[(method, table)] = exc

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return [self.tables.get(table, {})[k] for k in sorted(self.tables.get(table, {}))]

    def calls_for(self, method: str) -> List[Tuple[str, str, Optional[int]]]:
        return [c for c in self.calls if c[0] == method]

    def _check(self, method: str, table: str, record_id: Optional[int] = None) -> None:
        self.calls.append((method, table, record_id))
        exc = self.failures.get((method, table))
        if exc is not None:
            raise exc

    # ── RemoteStoreClient surface ────────────────────────────────────────────

    async def ping(self) -> None:
        self.ping_count += 1
        if self.ping_gate is not None:
            await self.ping_gate.wait()
        if self.ping_error is not None:
            raise self.ping_error

    async def select(self, table: str) -> List[Dict[str, Any]]:
        self._check("select", table)
        return [dict(r) for r in self.rows(table)]

    async def get(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        self._check("get", table, record_id)
        row = self.tables.get(table, {}).get(record_id)
        return dict(row) if row is not None else None

    async def insert(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        self._check("insert", table, fields.get("id"))
        rows = self.tables.setdefault(table, {})
        row = dict(fields)
        if row.get("id") is None:
            row["id"] = self.next_ids.get(table, 1)
        if row["id"] in rows:
            raise RemoteStoreError(f"duplicate key {table}.id={row['id']}", status_code=409)
        rows[row["id"]] = row
        self.next_ids[table] = max(self.next_ids.get(table, 1), row["id"] + 1)
        return dict(row)

    async def update(self, table: str, record_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        self._check("update", table, record_id)
        rows = self.tables.get(table, {})
        if record_id not in rows:
            raise RemoteNotFoundError(f"{table} {record_id} not found remotely", status_code=404)
        rows[record_id].update(fields)
        return dict(rows[record_id])

    async def delete(self, table: str, record_id: int) -> None:
        self._check("delete", table, record_id)
        self.tables.get(table, {}).pop(record_id, None)

    async def delete_all(self, table: str) -> None:
        self._check("delete_all", table)
        self.tables[table] = {}

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(name="engine")
def engine_fixture(tmp_path):
    """File-backed SQLite engine with the full schema and the Inbox project.

    File-backed rather than :memory: because the store disposes its pool
    between retries, which would drop an in-memory database.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tasksync.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="store")
def store_fixture(engine) -> LocalStore:
    return LocalStore(engine, retry_attempts=3, retry_delay_seconds=0)


@pytest.fixture(name="tracker")
def tracker_fixture(store, clock) -> ChangeTracker:
    return ChangeTracker(store, clock=clock)


@pytest.fixture(name="remote")
def remote_fixture() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture(name="offline_remote")
def offline_remote_fixture() -> FakeRemoteStore:
    remote = FakeRemoteStore()
    remote.ping_error = ConnectivityError("No connection to remote store")
    return remote
