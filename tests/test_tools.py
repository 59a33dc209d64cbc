"""
Tests for the Metabase tool groups: registration, tags, validators and handlers
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from metabase_mcp.errors import ToolValidationError
from metabase_mcp.registry import ConfigRegistry, build_table
from metabase_mcp.server import load_groups
from metabase_mcp.tool_filters import ALL, ESSENTIAL, READ, WRITE, ToolFilterOptions

EXPECTED_ESSENTIAL = {
    "list_dashboards", "get_dashboard", "get_dashboard_cards", "get_dashboard_related", "get_dashboard_revisions",
    "list_cards", "execute_card", "get_card_dashboards",
    "list_databases", "get_database", "get_database_schemas", "get_database_schema_tables", "execute_query",
    "list_tables", "get_table",
    "list_collections", "get_collection_items", "search_content", "list_users", "list_permission_groups",
}


@pytest.fixture(scope="module")
def groups():
    return load_groups()


@pytest.fixture
def client():
    return AsyncMock(name="metabase_client")


@pytest.fixture
def registry(client):
    return ConfigRegistry(load_groups(), client, ToolFilterOptions(ALL))


class TestGroups:
    """Every group registers cleanly and carries consistent tags."""

    def test_group_names(self, groups):
        assert [g.name for g in groups] == ["dashboards", "cards", "databases", "tables", "collections"]

    def test_no_collisions(self, groups):
        table = build_table(groups)
        assert len(table) == sum(len(g.tools) for g in groups)

    def test_every_tool_is_reachable_in_some_mode(self, groups):
        for name, entry in build_table(groups).items():
            assert entry.tags.is_essential or entry.tags.is_read or entry.tags.is_write, name

    def test_no_tool_is_both_read_and_write(self, groups):
        for name, entry in build_table(groups).items():
            assert not (entry.tags.is_read and entry.tags.is_write), name

    def test_essential_tools_are_read_only(self, groups):
        for name, entry in build_table(groups).items():
            if entry.tags.is_essential:
                assert entry.tags.is_read and not entry.tags.is_write, name

    def test_group_sizes(self, groups):
        sizes = {g.name: len(g.tools) for g in groups}
        assert sizes == {"dashboards": 23, "cards": 21, "databases": 30, "tables": 16, "collections": 14}

    def test_database_maintenance_tools_are_writes(self, groups):
        table = build_table(groups)
        for name in ("rescan_database_field_values", "discard_database_field_values", "dismiss_database_spinner"):
            assert table[name].tags.is_write, name
        for name in ("get_database_fields", "get_virtual_database_schemas", "get_database_usage_info"):
            assert table[name].tags.is_read, name

    def test_essential_set(self, client):
        registry = ConfigRegistry(load_groups(), client, ToolFilterOptions(ESSENTIAL))
        assert set(registry.tool_names) == EXPECTED_ESSENTIAL

    def test_modes_partition_by_tag(self, groups, client):
        table = build_table(groups)
        write = set(ConfigRegistry(groups, client, ToolFilterOptions(WRITE)).tool_names)
        read = set(ConfigRegistry(groups, client, ToolFilterOptions(READ)).tool_names)
        assert write == {n for n, e in table.items() if e.tags.is_write}
        assert read == {n for n, e in table.items() if e.tags.is_read}
        assert write | read == set(table)

    def test_schemas_declare_required_properties(self, groups):
        for group in groups:
            for name, config in group.tools.items():
                schema = config.input_schema
                assert schema["type"] == "object", name
                assert config.description, name
                for key in schema.get("required", []):
                    assert key in schema["properties"], f"{name}: {key}"


class TestDashboardTools:

    @pytest.mark.asyncio
    async def test_add_card_accepts_camel_case(self, registry, client):
        await registry.dispatch("add_card_to_dashboard", {"dashboard_id": 5, "cardId": 9, "sizeX": 6, "row": 2})
        dashboard_id, card = client.add_card_to_dashboard.await_args.args
        assert dashboard_id == 5
        assert card["card_id"] == 9
        assert card["size_x"] == 6
        assert card["row"] == 2

    @pytest.mark.asyncio
    async def test_add_card_snake_case_wins(self, registry, client):
        await registry.dispatch("add_card_to_dashboard", {"dashboard_id": 5, "card_id": 1, "cardId": 2})
        assert client.add_card_to_dashboard.await_args.args[1]["card_id"] == 1

    @pytest.mark.asyncio
    async def test_add_card_requires_card(self, registry, client):
        with pytest.raises(ToolValidationError):
            await registry.dispatch("add_card_to_dashboard", {"dashboard_id": 5})
        client.add_card_to_dashboard.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_archives_by_default(self, registry, client):
        result = await registry.dispatch("delete_dashboard", {"dashboard_id": 4})
        client.delete_dashboard.assert_awaited_once_with(4, hard_delete=False)
        assert result["action"] == "archived"

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, registry, client):
        client.get_dashboards.return_value = [
            {"id": 1, "name": "Sales Overview"},
            {"id": 2, "name": "Ops", "description": "weekly SALES numbers"},
            {"id": 3, "name": "Marketing"},
        ]
        result = await registry.dispatch("search_dashboards", {"query": "SALES"})
        assert [d["id"] for d in result] == [1, 2]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", "\t"])
    async def test_blank_search_is_rejected(self, registry, client, query):
        client.get_dashboards.return_value = [{"id": 1, "name": "Sales"}, {"id": 2, "name": "Ops"}]
        with pytest.raises(ToolValidationError):
            await registry.dispatch("search_dashboards", {"query": query})
        client.get_dashboards.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search_keeps_inner_spaces(self, registry, client):
        client.get_dashboards.return_value = [{"id": 1, "name": "Sales Overview"}, {"id": 2, "name": "Overview"}]
        result = await registry.dispatch("search_dashboards", {"query": "Sales Over"})
        assert [d["id"] for d in result] == [1]

    @pytest.mark.asyncio
    async def test_save_dashboard(self, registry, client):
        dashboard = {"name": "Imported", "dashcards": []}
        await registry.dispatch("save_dashboard", {"dashboard": dashboard})
        client.api_call.assert_awaited_once_with("POST", "/api/dashboard/save", json=dashboard)

    @pytest.mark.asyncio
    async def test_save_dashboard_to_collection(self, registry, client):
        dashboard = {"name": "Imported"}
        await registry.dispatch("save_dashboard_to_collection", {"parent_collection_id": 4, "dashboard": dashboard})
        client.api_call.assert_awaited_once_with("POST", "/api/dashboard/save/collection/4", json=dashboard)

    @pytest.mark.asyncio
    async def test_save_dashboard_needs_dashboard(self, registry, client):
        with pytest.raises(ToolValidationError):
            await registry.dispatch("save_dashboard_to_collection", {"parent_collection_id": 4})
        client.api_call.assert_not_awaited()


class TestCardTools:

    @pytest.mark.asyncio
    async def test_export_format_is_normalized(self, registry, client):
        await registry.dispatch("export_card_result", {"card_id": 3, "export_format": "CSV"})
        client.api_call.assert_awaited_once_with("POST", "/api/card/3/query/csv", json={})

    @pytest.mark.asyncio
    async def test_export_format_rejected(self, registry, client):
        with pytest.raises(ToolValidationError, match="export_format"):
            await registry.dispatch("export_card_result", {"card_id": 3, "export_format": "pdf"})
        client.api_call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_card_hard(self, registry, client):
        result = await registry.dispatch("delete_card", {"card_id": 8, "hard_delete": True})
        client.delete_card.assert_awaited_once_with(8, hard_delete=True)
        assert result["action"] == "deleted"


class TestDatabaseTools:

    @pytest.mark.asyncio
    async def test_execute_query(self, registry, client):
        client.execute_query.return_value = {"data": {"rows": [[1]]}}
        result = await registry.dispatch("execute_query", {"database_id": 1, "query": "SELECT 1"})
        client.execute_query.assert_awaited_once_with(1, "SELECT 1", None)
        assert result == {"data": {"rows": [[1]]}}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("args", [{"database_id": 1}, {"query": "SELECT 1"}, {"database_id": 1, "query": "   "}])
    async def test_execute_query_validation(self, registry, client, args):
        with pytest.raises(ToolValidationError):
            await registry.dispatch("execute_query", args)
        client.execute_query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_databases_without_filters(self, registry, client):
        await registry.dispatch("list_databases", {"saved": False})
        client.get_databases.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_list_databases_with_filters(self, registry, client):
        await registry.dispatch("list_databases", {"include": "tables", "saved": True, "include_analytics": False})
        client.api_call.assert_awaited_once_with("GET", "/api/database", params={"include": "tables", "saved": True})

    @pytest.mark.asyncio
    async def test_validate_database_needs_engine(self, registry, client):
        with pytest.raises(ToolValidationError):
            await registry.dispatch("validate_database", {"details": {"details": {"host": "db"}}})
        await registry.dispatch("validate_database", {"details": {"engine": "postgres", "details": {"host": "db"}}})
        client.api_call.assert_awaited_once_with(
            "POST", "/api/database/validate", json={"engine": "postgres", "details": {"host": "db"}}
        )

    @pytest.mark.asyncio
    async def test_schema_name_is_quoted(self, registry, client):
        await registry.dispatch("get_database_schema_tables", {"database_id": 2, "schema": "my schema"})
        client.api_call.assert_awaited_once_with("GET", "/api/database/2/schema/my%20schema")

    @pytest.mark.asyncio
    async def test_update_database_needs_changes(self, registry, client):
        with pytest.raises(ToolValidationError, match="No updates"):
            await registry.dispatch("update_database", {"database_id": 2})

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "tool,method,endpoint",
        [
            ("get_database_fields", "GET", "/api/database/3/fields"),
            ("get_database_idfields", "GET", "/api/database/3/idfields"),
            ("get_database_syncable_schemas", "GET", "/api/database/3/syncable_schemas"),
            ("get_database_usage_info", "GET", "/api/database/3/usage_info"),
            ("rescan_database_field_values", "POST", "/api/database/3/rescan_values"),
            ("discard_database_field_values", "POST", "/api/database/3/discard_values"),
            ("dismiss_database_spinner", "POST", "/api/database/3/dismiss_spinner"),
        ],
    )
    async def test_database_id_endpoints(self, registry, client, tool, method, endpoint):
        await registry.dispatch(tool, {"database_id": 3})
        client.api_call.assert_awaited_once_with(method, endpoint)

    @pytest.mark.asyncio
    async def test_schema_tables_for_schema(self, registry, client):
        await registry.dispatch(
            "get_database_schema_tables_for_schema",
            {"database_id": 3, "schema": "public", "include_hidden": True},
        )
        client.api_call.assert_awaited_once_with(
            "GET", "/api/database/3/schema/public", params={"include_hidden": True}
        )

    @pytest.mark.asyncio
    async def test_schema_tables_without_schema(self, registry, client):
        await registry.dispatch("get_database_schema_tables_without_schema", {"database_id": 3})
        client.api_call.assert_awaited_once_with(
            "GET", "/api/database/3/schema_tables_without_schema", params={}
        )

    @pytest.mark.asyncio
    async def test_card_autocomplete_needs_prefix(self, registry, client):
        with pytest.raises(ToolValidationError):
            await registry.dispatch("get_database_card_autocomplete_suggestions", {"database_id": 3})
        await registry.dispatch("get_database_card_autocomplete_suggestions", {"database_id": 3, "prefix": "ord"})
        client.api_call.assert_awaited_once_with(
            "GET", "/api/database/3/card_autocomplete_suggestions", params={"prefix": "ord"}
        )

    @pytest.mark.asyncio
    async def test_autocomplete_passes_prefix(self, registry, client):
        await registry.dispatch("get_database_autocomplete_suggestions", {"database_id": 3, "prefix": "ord"})
        client.api_call.assert_awaited_once_with(
            "GET", "/api/database/3/autocomplete_suggestions", params={"prefix": "ord"}
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "tool,args,endpoint",
        [
            ("get_virtual_database_datasets", {}, "/api/database/-1337/datasets"),
            ("get_virtual_database_metadata", {}, "/api/database/-1337/metadata"),
            ("get_virtual_database_schemas", {}, "/api/database/-1337/schemas"),
            ("get_virtual_database_datasets_for_schema", {"schema": "Our analytics"},
             "/api/database/-1337/schema/Our%20analytics/datasets"),
            ("get_virtual_database_schema_tables", {"schema": "Our analytics"},
             "/api/database/-1337/schema/Our%20analytics/tables"),
        ],
    )
    async def test_virtual_database_endpoints(self, registry, client, tool, args, endpoint):
        await registry.dispatch(tool, {"virtual_db": "-1337", **args})
        client.api_call.assert_awaited_once_with("GET", endpoint)

    @pytest.mark.asyncio
    async def test_virtual_database_needs_schema(self, registry, client):
        with pytest.raises(ToolValidationError):
            await registry.dispatch("get_virtual_database_schema_tables", {"virtual_db": "-1337"})
        client.api_call.assert_not_awaited()


class TestTableTools:

    @pytest.mark.asyncio
    async def test_list_tables_joins_ids(self, registry, client):
        await registry.dispatch("list_tables", {"ids": [1, 2, 3]})
        client.api_call.assert_awaited_once_with("GET", "/api/table", params={"ids": "1,2,3"})

    @pytest.mark.asyncio
    async def test_list_tables_unfiltered(self, registry, client):
        await registry.dispatch("list_tables", {})
        client.api_call.assert_awaited_once_with("GET", "/api/table", params={})

    @pytest.mark.asyncio
    async def test_table_data_default_limit(self, registry, client):
        await registry.dispatch("get_table_data", {"table_id": 7})
        client.api_call.assert_awaited_once_with("GET", "/api/table/7/data", params={"limit": 1000})

    @pytest.mark.asyncio
    async def test_table_data_explicit_limit(self, registry, client):
        await registry.dispatch("get_table_data", {"table_id": 7, "limit": 50})
        client.api_call.assert_awaited_once_with("GET", "/api/table/7/data", params={"limit": 50})

    @pytest.mark.asyncio
    async def test_append_csv(self, registry, client):
        await registry.dispatch("append_csv_to_table", {"table_id": 3, "filename": "rows.csv", "file_content": "a\n1\n"})
        client.upload_csv.assert_awaited_once_with("/api/table/3/append-csv", "file", "rows.csv", "a\n1\n")

    @pytest.mark.asyncio
    async def test_bulk_update_merges_ids(self, registry, client):
        await registry.dispatch("update_tables", {"ids": [1, 2], "updates": {"visibility_type": "hidden"}})
        client.api_call.assert_awaited_once_with(
            "PUT", "/api/table", json={"ids": [1, 2], "visibility_type": "hidden"}
        )


class TestCollectionTools:

    @pytest.mark.asyncio
    async def test_move_to_root(self, registry, client):
        await registry.dispatch("move_to_collection", {"item_type": "dashboard", "item_id": 3, "collection_id": None})
        client.api_call.assert_awaited_once_with("PUT", "/api/dashboard/3", json={"collection_id": None})

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "args",
        [
            {"item_type": "table", "item_id": 3, "collection_id": 1},
            {"item_type": "card", "collection_id": 1},
            {"item_type": "card", "item_id": 3},
        ],
    )
    async def test_move_validation(self, registry, client, args):
        with pytest.raises(ToolValidationError):
            await registry.dispatch("move_to_collection", args)
        client.api_call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search_passes_filters_through(self, registry, client):
        await registry.dispatch("search_content", {"q": "revenue", "models": "card", "archived": None})
        client.api_call.assert_awaited_once_with("GET", "/api/search", params={"q": "revenue", "models": "card"})

    @pytest.mark.asyncio
    async def test_search_needs_query(self, registry, client):
        with pytest.raises(ToolValidationError):
            await registry.dispatch("search_content", {"q": "  "})

    @pytest.mark.asyncio
    async def test_create_collection_sends_known_fields(self, registry, client):
        await registry.dispatch("create_collection", {"name": "Finance", "color": "#509EE3", "extra": 1})
        client.api_call.assert_awaited_once_with(
            "POST", "/api/collection", json={"name": "Finance", "color": "#509EE3"}
        )

    @pytest.mark.asyncio
    async def test_list_users(self, registry, client):
        await registry.dispatch("list_users", {"include_deactivated": True})
        client.get_users.assert_awaited_once_with(include_deactivated=True)
