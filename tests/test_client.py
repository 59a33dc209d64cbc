"""
Tests for the Metabase REST client, with the backend faked by httpx.MockTransport
"""

import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from metabase_mcp.client import MetabaseClient
from metabase_mcp.config import MetabaseConfig
from metabase_mcp.errors import MetabaseAPIError

BASE_URL = "https://metabase.example.com"


class Recorder:
    """MockTransport handler that records requests and replies from a route table."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.routes.get((request.method, request.url.path))
        if callable(reply):
            return reply(request)
        if reply is None:
            return httpx.Response(200, json={})
        return reply

    def paths(self, method=None):
        return [r.url.path for r in self.requests if method is None or r.method == method]


def make_client(recorder, **config):
    config.setdefault("url", BASE_URL)
    if not any(k in config for k in ("api_key", "session_token", "username")):
        config["api_key"] = "mb_key"
    return MetabaseClient(MetabaseConfig(**config), transport=httpx.MockTransport(recorder))


class TestAuthentication:
    """Credential headers and the login flow."""

    @pytest.mark.asyncio
    async def test_api_key_header(self):
        recorder = Recorder()
        async with make_client(recorder, api_key="secret") as client:
            await client.api_call("GET", "/api/user/current")
        assert recorder.requests[0].headers["X-API-Key"] == "secret"
        assert "X-Metabase-Session" not in recorder.requests[0].headers

    @pytest.mark.asyncio
    async def test_session_token_header(self):
        recorder = Recorder()
        async with make_client(recorder, session_token="tok") as client:
            await client.api_call("GET", "/api/user/current")
        assert recorder.requests[0].headers["X-Metabase-Session"] == "tok"
        assert recorder.paths("POST") == []

    @pytest.mark.asyncio
    async def test_password_login_happens_once(self):
        recorder = Recorder({("POST", "/api/session"): httpx.Response(200, json={"id": "sess-1"})})
        async with make_client(recorder, username="ana", password="pw") as client:
            await asyncio.gather(
                client.api_call("GET", "/api/dashboard"),
                client.api_call("GET", "/api/card"),
            )
            await client.api_call("GET", "/api/database")

        assert recorder.paths("POST").count("/api/session") == 1
        login = recorder.requests[0]
        assert json.loads(login.content) == {"username": "ana", "password": "pw"}
        for request in recorder.requests[1:]:
            assert request.headers["X-Metabase-Session"] == "sess-1"

    @pytest.mark.asyncio
    async def test_login_failure(self):
        recorder = Recorder({("POST", "/api/session"): httpx.Response(401, json={"errors": {"password": "did not match"}})})
        async with make_client(recorder, username="ana", password="bad") as client:
            with pytest.raises(MetabaseAPIError, match="Failed to authenticate with Metabase") as exc:
                await client.api_call("GET", "/api/dashboard")
        assert exc.value.status_code == 401
        assert recorder.paths() == ["/api/session"]

    def test_missing_credentials(self):
        with pytest.raises(ValueError):
            MetabaseClient(MetabaseConfig(url=BASE_URL))


class TestApiCall:
    """Request building and response decoding."""

    @pytest.mark.asyncio
    async def test_none_params_dropped(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            await client.api_call("GET", "/api/card", params={"f": "mine", "model_id": None})
        assert dict(recorder.requests[0].url.params) == {"f": "mine"}

    @pytest.mark.asyncio
    async def test_list_params_repeat_key(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            await client.api_call("GET", "/api/activity/recents", params={"context": ["views", "selections"]})
        assert recorder.requests[0].url.params.get_list("context") == ["views", "selections"]

    @pytest.mark.asyncio
    async def test_json_body(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            await client.api_call("POST", "/api/collection", json={"name": "Finance"})
        assert json.loads(recorder.requests[0].content) == {"name": "Finance"}
        assert recorder.requests[0].headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_error_response(self):
        recorder = Recorder({("GET", "/api/card/99"): httpx.Response(404, json={"message": "Not found."})})
        async with make_client(recorder) as client:
            with pytest.raises(MetabaseAPIError) as exc:
                await client.api_call("GET", "/api/card/99")
        assert exc.value.status_code == 404
        assert "Not found." in str(exc.value)
        assert exc.value.endpoint == "GET /api/card/99"

    @pytest.mark.asyncio
    async def test_plain_text_error(self):
        recorder = Recorder({("GET", "/api/card/1"): httpx.Response(500, text="Internal failure")})
        async with make_client(recorder) as client:
            with pytest.raises(MetabaseAPIError, match="500 Internal failure"):
                await client.api_call("GET", "/api/card/1")

    @pytest.mark.asyncio
    async def test_empty_and_text_bodies(self):
        recorder = Recorder({
            ("DELETE", "/api/card/1"): httpx.Response(204),
            ("POST", "/api/card/1/query/csv"): httpx.Response(
                200, text="a,b\n1,2\n", headers={"content-type": "text/csv"}
            ),
        })
        async with make_client(recorder) as client:
            assert await client.api_call("DELETE", "/api/card/1") is None
            assert await client.api_call("POST", "/api/card/1/query/csv") == "a,b\n1,2\n"

    @pytest.mark.asyncio
    async def test_csv_upload_is_multipart(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            await client.upload_csv("/api/table/3/append-csv", "file", "rows.csv", "id,name\n1,x\n")
        request = recorder.requests[0]
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="file"; filename="rows.csv"' in request.content
        assert b"id,name\n1,x\n" in request.content


class TestNamedCalls:
    """Helpers that combine several requests."""

    @pytest.mark.asyncio
    async def test_archive_vs_hard_delete(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            await client.delete_dashboard(5)
            await client.delete_dashboard(6, hard_delete=True)
        archive, delete = recorder.requests
        assert (archive.method, archive.url.path) == ("PUT", "/api/dashboard/5")
        assert json.loads(archive.content) == {"archived": True}
        assert (delete.method, delete.url.path) == ("DELETE", "/api/dashboard/6")

    @pytest.mark.asyncio
    async def test_add_card_appends_dashcard(self):
        existing = {"id": 10, "card_id": 1, "row": 0, "col": 0, "size_x": 12, "size_y": 8}
        recorder = Recorder({
            ("GET", "/api/dashboard/7"): httpx.Response(200, json={"id": 7, "name": "Ops", "dashcards": [existing]}),
        })
        async with make_client(recorder) as client:
            await client.add_card_to_dashboard(7, {"card_id": 42})

        put = recorder.requests[-1]
        assert (put.method, put.url.path) == ("PUT", "/api/dashboard/7")
        body = json.loads(put.content)
        assert body["name"] == "Ops"
        assert body["dashcards"][0] == existing
        new = body["dashcards"][1]
        assert new["id"] == -1
        assert new["card_id"] == 42
        assert (new["row"], new["col"], new["size_x"], new["size_y"]) == (8, 0, 12, 8)

    @pytest.mark.asyncio
    async def test_remove_cards(self):
        dashcards = [{"id": 1, "card_id": 11}, {"id": 2, "card_id": 12}, {"id": 3, "card_id": 13}]
        recorder = Recorder({("GET", "/api/dashboard/2"): httpx.Response(200, json={"id": 2, "dashcards": dashcards})})
        async with make_client(recorder) as client:
            await client.remove_cards_from_dashboard(2, [11, 13])
        body = json.loads(recorder.requests[-1].content)
        assert [dc["card_id"] for dc in body["dashcards"]] == [12]

    @pytest.mark.asyncio
    async def test_execute_query_body(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            await client.execute_query(3, "SELECT 1")
        request = recorder.requests[0]
        assert request.url.path == "/api/dataset"
        assert json.loads(request.content) == {
            "type": "native",
            "native": {"query": "SELECT 1", "template_tags": {}},
            "parameters": [],
            "database": 3,
        }

    @pytest.mark.asyncio
    async def test_health_skips_login(self):
        recorder = Recorder({("GET", "/api/health"): httpx.Response(200, json={"status": "ok"})})
        async with make_client(recorder, username="ana", password="pw") as client:
            assert await client.health() == {"status": "ok"}
        assert recorder.paths() == ["/api/health"]
