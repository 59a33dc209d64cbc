"""
Tests for Metabase MCP Server wiring: handlers, resources, HTTP app
"""

import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mcp import types
from mcp.server import Server

from metabase_mcp import resources
from metabase_mcp.server import create_server, main
from metabase_mcp.tool_filters import ALL, WRITE, ToolFilterOptions


@pytest.fixture
def client():
    mock = AsyncMock(name="metabase_client")
    mock.get_dashboards.return_value = [{"id": 1, "name": "Sales"}]
    return mock


async def call(server: Server, request):
    handler = server.request_handlers[type(request)]
    return (await handler(request)).root


class TestCreateServer:
    """Server construction and MCP handlers."""

    def test_returns_server(self, client):
        server = create_server(client)
        assert isinstance(server, Server)
        assert server.name == "metabase-mcp"

    def test_filter_mode_is_applied(self, client):
        server = create_server(client, ToolFilterOptions(WRITE))
        assert server.registry.filter_options.mode == WRITE
        assert "create_dashboard" in server.registry
        assert "list_dashboards" not in server.registry

    @pytest.mark.asyncio
    async def test_list_tools(self, client):
        server = create_server(client)
        result = await call(server, types.ListToolsRequest(method="tools/list"))
        names = [t.name for t in result.tools]
        assert names == server.registry.tool_names
        assert "list_dashboards" in names
        assert "delete_dashboard" not in names

    @pytest.mark.asyncio
    async def test_call_tool_wraps_result(self, client):
        server = create_server(client)
        await call(server, types.ListToolsRequest(method="tools/list"))
        request = types.CallToolRequest(
            method="tools/call",
            params=types.CallToolRequestParams(name="list_dashboards", arguments={}),
        )
        result = await call(server, request)
        assert not result.isError
        assert json.loads(result.content[0].text) == [{"id": 1, "name": "Sales"}]

    @pytest.mark.asyncio
    async def test_call_tool_failure_is_error_result(self, client):
        client.get_dashboard.side_effect = RuntimeError("connection reset")
        server = create_server(client, ToolFilterOptions(ALL))
        await call(server, types.ListToolsRequest(method="tools/list"))
        request = types.CallToolRequest(
            method="tools/call",
            params=types.CallToolRequestParams(name="get_dashboard", arguments={"dashboard_id": 1}),
        )
        result = await call(server, request)
        assert result.isError
        assert "connection reset" in result.content[0].text


class TestResources:
    """metabase:// resources."""

    def test_listing(self):
        uris = [str(r.uri) for r in resources.list_resources()]
        assert [u.rstrip("/") for u in uris] == [
            "metabase://dashboards",
            "metabase://cards",
            "metabase://databases",
            "metabase://collections",
            "metabase://users",
        ]

    @pytest.mark.asyncio
    async def test_read(self, client):
        text = await resources.read_resource(client, "metabase://dashboards")
        assert json.loads(text) == [{"id": 1, "name": "Sales"}]

    @pytest.mark.asyncio
    async def test_read_with_trailing_slash(self, client):
        client.get_users.return_value = {"data": []}
        assert json.loads(await resources.read_resource(client, "metabase://users/")) == {"data": []}

    @pytest.mark.asyncio
    async def test_unknown(self, client):
        with pytest.raises(ValueError, match="Unknown resource"):
            await resources.read_resource(client, "metabase://nothing")


class TestMain:
    """Console entry point."""

    def test_exits_nonzero_without_config(self, monkeypatch, tmp_path):
        for var in (
            "METABASE_URL",
            "METABASE_API_KEY",
            "METABASE_SESSION_TOKEN",
            "METABASE_USERNAME",
            "METABASE_PASSWORD",
            "METABASE_ENV_FILE",
        ):
            monkeypatch.delenv(var, raising=False)
        monkeypatch.chdir(tmp_path)
        with pytest.raises(SystemExit) as exc:
            main(["--all"])
        assert exc.value.code == 1


class TestHttpApp:
    """Starlette app for the HTTP transports."""

    def test_routes(self, client):
        from metabase_mcp.http_server import create_app

        app = create_app(ToolFilterOptions(ALL), client=client)
        paths = {route.path for route in app.routes}
        assert {"/health", "/sse", "/messages", "/mcp"} <= paths

    def test_health(self, client):
        from starlette.testclient import TestClient

        from metabase_mcp.http_server import create_app

        client.health.return_value = {"status": "ok"}
        with TestClient(create_app(client=client)) as http:
            body = http.get("/health").json()
        assert body["status"] == "healthy"
        assert body["checks"]["metabase"]["status"] == "ok"
        assert body["checks"]["tools"]["mode"] == "essential"
