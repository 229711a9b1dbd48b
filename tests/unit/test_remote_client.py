"""Tests for RemoteStoreClient against a mocked PostgREST endpoint."""
import json

import httpx
import pytest

from tasksync.errors import (
    ConfigurationError,
    ConnectivityError,
    RemoteNotFoundError,
    RemoteStoreError,
)
from tasksync.store.remote import RemoteStoreClient

BASE_URL = "https://example.supabase.co"


def _client(handler) -> RemoteStoreClient:
    http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return RemoteStoreClient(BASE_URL, "anon-key", client=http)


class Recorder:
    """MockTransport handler that records requests and replies from a queue."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


class TestConfiguration:
    def test_configured_needs_url_and_key(self):
        assert RemoteStoreClient(BASE_URL, "key").configured
        assert not RemoteStoreClient("", "key").configured
        assert not RemoteStoreClient(BASE_URL, "").configured

    @pytest.mark.asyncio
    async def test_unconfigured_client_raises_configuration_error(self):
        client = RemoteStoreClient("", "")
        with pytest.raises(ConfigurationError):
            await client.ping()

    def test_trailing_slash_stripped(self):
        assert RemoteStoreClient(BASE_URL + "/", "key").base_url == BASE_URL


class TestRequests:
    @pytest.mark.asyncio
    async def test_ping_reads_one_project_id(self):
        rec = Recorder(httpx.Response(200, json=[]))
        await _client(rec).ping()

        req = rec.requests[0]
        assert req.method == "GET"
        assert req.url.path == "/rest/v1/projects"
        assert req.url.params["select"] == "id"
        assert req.url.params["limit"] == "1"
        assert req.headers["apikey"] == "anon-key"
        assert req.headers["Authorization"] == "Bearer anon-key"

    @pytest.mark.asyncio
    async def test_select_returns_rows_ordered_by_id(self):
        rows = [{"id": 1, "name": "Inbox"}, {"id": 2, "name": "Work"}]
        rec = Recorder(httpx.Response(200, json=rows))

        assert await _client(rec).select("projects") == rows
        assert rec.requests[0].url.params["order"] == "id"

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self):
        rec = Recorder(httpx.Response(200, json=[]))
        assert await _client(rec).get("tasks", 9) is None
        assert rec.requests[0].url.params["id"] == "eq.9"

    @pytest.mark.asyncio
    async def test_insert_returns_remote_row(self):
        rec = Recorder(httpx.Response(201, json=[{"id": 5, "title": "Write report", "project_id": 1}]))

        row = await _client(rec).insert("tasks", {"title": "Write report", "project_id": 1})

        assert row["id"] == 5
        req = rec.requests[0]
        assert req.method == "POST"
        assert req.headers["Prefer"] == "return=representation"
        assert json.loads(req.content) == {"title": "Write report", "project_id": 1}

    @pytest.mark.asyncio
    async def test_update_patches_by_remote_id(self):
        rec = Recorder(httpx.Response(200, json=[{"id": 7, "name": "Renamed"}]))

        row = await _client(rec).update("projects", 7, {"name": "Renamed"})

        assert row == {"id": 7, "name": "Renamed"}
        req = rec.requests[0]
        assert req.method == "PATCH"
        assert req.url.params["id"] == "eq.7"

    @pytest.mark.asyncio
    async def test_update_of_missing_row_raises_not_found(self):
        rec = Recorder(httpx.Response(200, json=[]))
        with pytest.raises(RemoteNotFoundError):
            await _client(rec).update("projects", 7, {"name": "x"})

    @pytest.mark.asyncio
    async def test_delete_all_uses_filter(self):
        rec = Recorder(httpx.Response(204))
        await _client(rec).delete_all("task_tags")
        req = rec.requests[0]
        assert req.method == "DELETE"
        assert req.url.params["id"] == "not.is.null"


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_transport_error_becomes_connectivity_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ConnectivityError):
            await _client(handler).ping()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_failure_becomes_configuration_error(self, status):
        rec = Recorder(httpx.Response(status, json={"message": "Invalid API key"}))
        with pytest.raises(ConfigurationError):
            await _client(rec).ping()

    @pytest.mark.asyncio
    async def test_error_status_becomes_remote_store_error(self):
        rec = Recorder(httpx.Response(409, json={"message": "duplicate key value"}))
        with pytest.raises(RemoteStoreError) as exc_info:
            await _client(rec).insert("tags", {"id": 1, "name": "urgent"})
        assert exc_info.value.status_code == 409
        assert "duplicate key value" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        http = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        client = RemoteStoreClient(BASE_URL, "key", client=http)
        await client.aclose()
        assert not http.is_closed
        await http.aclose()
