"""
Async client for the remote relational store.

Speaks the PostgREST dialect served by Supabase:

    GET    /rest/v1/<table>?select=*              → list of rows
    POST   /rest/v1/<table>                        → created row(s)
    PATCH  /rest/v1/<table>?id=eq.<id>             → updated row(s)
    DELETE /rest/v1/<table>?id=eq.<id>

Writes send `Prefer: return=representation` so the remote-assigned id comes
back in the response. Transport failures become ConnectivityError; error
replies become RemoteStoreError. Nothing is retried here: a connectivity
failure ends the sync pass and the scheduler tries again later.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from tasksync.errors import (
    ConfigurationError,
    ConnectivityError,
    RemoteNotFoundError,
    RemoteStoreError,
)

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"
PING_TABLE = "projects"

Row = Dict[str, Any]


class RemoteStoreClient:
    """Thin table-scoped wrapper over the remote REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Project URL, e.g. https://xyz.supabase.co. Empty means
                      "not configured".
            api_key: Anon or service key, sent as apikey and bearer token.
            timeout: Per-request timeout in seconds.
            client: Pre-built httpx.AsyncClient (tests pass one with a
                    MockTransport). Owned by the caller when given.
        """
        self.base_url = (base_url or "").strip().rstrip("/")
        self._api_key = api_key or ""
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self._api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _http(self) -> httpx.AsyncClient:
        if not self.configured:
            raise ConfigurationError("Remote store not configured (missing URL or API key)")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self._timeout,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = self._headers()
        if prefer:
            headers["Prefer"] = prefer
        try:
            resp = await self._http().request(
                method,
                f"{REST_PREFIX}/{table}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.RequestError as exc:
            raise ConnectivityError(f"{method} {table} failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise ConfigurationError(
                f"Remote store rejected credentials ({resp.status_code})"
            )
        if resp.status_code >= 400:
            raise RemoteStoreError(
                f"{method} {table} → {resp.status_code}: {_error_message(resp)}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return None
        return resp.json()

    # ── Operations ────────────────────────────────────────────────────────────

    async def ping(self) -> None:
        """Lightweight read proving the remote is reachable and authorized."""
        await self._request(
            "GET", PING_TABLE, params={"select": "id", "limit": "1"}
        )

    async def select(self, table: str) -> List[Row]:
        rows = await self._request("GET", table, params={"select": "*", "order": "id"})
        return rows or []

    async def get(self, table: str, record_id: int) -> Optional[Row]:
        rows = await self._request(
            "GET", table, params={"select": "*", "id": f"eq.{record_id}"}
        )
        return rows[0] if rows else None

    async def insert(self, table: str, fields: Row) -> Row:
        """Insert one row and return it as stored (with its remote id)."""
        rows = await self._request(
            "POST", table, json=fields, prefer="return=representation"
        )
        return _single(rows, f"insert into {table}")

    async def update(self, table: str, record_id: int, fields: Row) -> Row:
        """
        Update one row by id and return it.

        Raises:
            RemoteNotFoundError: if no remote row has this id.
        """
        rows = await self._request(
            "PATCH",
            table,
            params={"id": f"eq.{record_id}"},
            json=fields,
            prefer="return=representation",
        )
        if not rows:
            raise RemoteNotFoundError(
                f"{table} {record_id} not found remotely", status_code=404
            )
        return _single(rows, f"update {table} {record_id}")

    async def delete(self, table: str, record_id: int) -> None:
        await self._request("DELETE", table, params={"id": f"eq.{record_id}"})

    async def delete_all(self, table: str) -> None:
        """Delete every row of a table (PostgREST refuses unfiltered deletes)."""
        await self._request("DELETE", table, params={"id": "not.is.null"})


def _single(rows: Any, what: str) -> Row:
    if isinstance(rows, list):
        if not rows:
            raise RemoteStoreError(f"{what}: empty response")
        return rows[0]
    if isinstance(rows, dict):
        return rows
    raise RemoteStoreError(f"{what}: unexpected response {rows!r}")


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        return body.get("message") or body.get("hint") or str(body)
    return str(body)
