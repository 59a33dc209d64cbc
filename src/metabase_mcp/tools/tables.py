"""Table tools: metadata, relationships, sample data, field values, and CSV uploads."""

from . import ToolConfig, ToolGroup, tool_group
from .helpers import id_property, object_schema, present, require


ESSENTIAL = ["list_tables", "get_table"]
READING = [
    "list_tables",
    "get_table",
    "get_table_fks",
    "get_table_query_metadata",
    "get_table_related",
    "get_card_table_fks",
    "get_card_table_query_metadata",
    "get_table_data",
]
WRITING = [
    "update_table",
    "update_tables",
    "reorder_table_fields",
    "append_csv_to_table",
    "replace_table_csv",
    "sync_table_schema",
    "rescan_table_field_values",
    "discard_table_field_values",
]

DEFAULT_DATA_LIMIT = 1000

TABLE_ID = {"table_id": id_property("Table ID")}
CARD_ID = {"card_id": id_property("Card ID of the saved question or model")}
FIELD_VISIBILITY = {
    "include_sensitive_fields": {"type": "boolean", "description": "Include sensitive fields"},
    "include_hidden_fields": {"type": "boolean", "description": "Include hidden fields"},
    "include_editable_data_model": {"type": "boolean", "description": "Include editable data model"},
}


def _join_ids(args: dict) -> dict:
    """Metabase expects the ids filter as one comma separated value."""
    ids = args.get("ids")
    if not ids:
        return {}
    return {"ids": ",".join(str(i) for i in ids)}


def _default_limit(args: dict) -> dict:
    return {**args, "limit": args.get("limit") or DEFAULT_DATA_LIMIT}


async def _list_tables(client, args):
    return await client.api_call("GET", "/api/table", params=args)


async def _get_table(client, args):
    params = present(args, *FIELD_VISIBILITY)
    return await client.api_call("GET", f"/api/table/{args['table_id']}", params=params)


async def _get_table_fks(client, args):
    return await client.api_call("GET", f"/api/table/{args['table_id']}/fks")


async def _get_table_query_metadata(client, args):
    params = present(args, *FIELD_VISIBILITY)
    return await client.api_call("GET", f"/api/table/{args['table_id']}/query_metadata", params=params)


async def _get_table_related(client, args):
    return await client.api_call("GET", f"/api/table/{args['table_id']}/related")


async def _get_card_table_fks(client, args):
    return await client.api_call("GET", f"/api/table/card__{args['card_id']}/fks")


async def _get_card_table_query_metadata(client, args):
    return await client.api_call("GET", f"/api/table/card__{args['card_id']}/query_metadata")


async def _get_table_data(client, args):
    return await client.api_call("GET", f"/api/table/{args['table_id']}/data", params={"limit": args["limit"]})


async def _update_table(client, args):
    return await client.api_call("PUT", f"/api/table/{args['table_id']}", json=args["updates"])


async def _update_tables(client, args):
    return await client.api_call("PUT", "/api/table", json={"ids": args["ids"], **args["updates"]})


async def _reorder_table_fields(client, args):
    return await client.api_call("PUT", f"/api/table/{args['table_id']}/fields/order", json=args["field_order"])


async def _append_csv_to_table(client, args):
    return await client.upload_csv(
        f"/api/table/{args['table_id']}/append-csv", "file", args["filename"], args["file_content"]
    )


async def _replace_table_csv(client, args):
    return await client.upload_csv(
        f"/api/table/{args['table_id']}/replace-csv", "csv_file", "data.csv", args["csv_file"]
    )


async def _sync_table_schema(client, args):
    result = await client.api_call("POST", f"/api/table/{args['table_id']}/sync_schema")
    return {"table_id": args["table_id"], "status": "schema_sync_triggered", "result": result}


async def _rescan_table_field_values(client, args):
    return await client.api_call("POST", f"/api/table/{args['table_id']}/rescan_values")


async def _discard_table_field_values(client, args):
    return await client.api_call("POST", f"/api/table/{args['table_id']}/discard_values")


def register() -> ToolGroup:
    tools = [
        ToolConfig(
            name="list_tables",
            description="List tables, optionally restricted to a set of table IDs",
            input_schema=object_schema(
                {"ids": {"type": "array", "items": {"type": "integer"}, "description": "Optional list of table IDs to filter by"}}
            ),
            handler=_list_tables,
            transform_args=_join_ids,
        ),
        ToolConfig(
            name="get_table",
            description="Get a table by ID",
            input_schema=object_schema({**TABLE_ID, **FIELD_VISIBILITY}, required=["table_id"]),
            handler=_get_table,
            validate=require("table_id"),
        ),
        ToolConfig(
            name="get_table_fks",
            description="Get the foreign keys whose destination is a field in this table",
            input_schema=object_schema(TABLE_ID, required=["table_id"]),
            handler=_get_table_fks,
            validate=require("table_id"),
        ),
        ToolConfig(
            name="get_table_query_metadata",
            description="Get the metadata needed to build queries against a table, including fields and FK targets",
            input_schema=object_schema({**TABLE_ID, **FIELD_VISIBILITY}, required=["table_id"]),
            handler=_get_table_query_metadata,
            validate=require("table_id"),
        ),
        ToolConfig(
            name="get_table_related",
            description="Get related entities (segments, metrics, linked tables) for a table",
            input_schema=object_schema(TABLE_ID, required=["table_id"]),
            handler=_get_table_related,
            validate=require("table_id"),
        ),
        ToolConfig(
            name="get_card_table_fks",
            description="Get foreign keys for the virtual table backed by a saved question or model",
            input_schema=object_schema(CARD_ID, required=["card_id"]),
            handler=_get_card_table_fks,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="get_card_table_query_metadata",
            description="Get query metadata for the virtual table backed by a saved question or model",
            input_schema=object_schema(CARD_ID, required=["card_id"]),
            handler=_get_card_table_query_metadata,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="get_table_data",
            description=f"Fetch sample rows from a table (default limit {DEFAULT_DATA_LIMIT})",
            input_schema=object_schema(
                {**TABLE_ID, "limit": {"type": "integer", "minimum": 1, "description": f"Row limit (default {DEFAULT_DATA_LIMIT})"}},
                required=["table_id"],
            ),
            handler=_get_table_data,
            validate=require("table_id"),
            transform_args=_default_limit,
        ),
        ToolConfig(
            name="update_table",
            description="Update a table's display name, description, visibility, or other settings",
            input_schema=object_schema(
                {**TABLE_ID, "updates": {"type": "object", "description": "Fields to update"}},
                required=["table_id", "updates"],
            ),
            handler=_update_table,
            validate=require("table_id", "updates"),
        ),
        ToolConfig(
            name="update_tables",
            description="Apply the same update to several tables at once",
            input_schema=object_schema(
                {
                    "ids": {"type": "array", "items": {"type": "integer"}, "minItems": 1, "description": "IDs of tables to update"},
                    "updates": {"type": "object", "description": "Update payload applied to all tables"},
                },
                required=["ids", "updates"],
            ),
            handler=_update_tables,
            validate=require("ids", "updates"),
        ),
        ToolConfig(
            name="reorder_table_fields",
            description="Set the display order of a table's fields",
            input_schema=object_schema(
                {
                    **TABLE_ID,
                    "field_order": {"type": "array", "items": {"type": "integer"}, "description": "Field IDs in the desired order"},
                },
                required=["table_id", "field_order"],
            ),
            handler=_reorder_table_fields,
            validate=require("table_id", "field_order"),
        ),
        ToolConfig(
            name="append_csv_to_table",
            description="Append rows from CSV content to an uploaded table",
            input_schema=object_schema(
                {
                    **TABLE_ID,
                    "filename": {"type": "string", "minLength": 1, "description": "CSV filename (for metadata only)"},
                    "file_content": {"type": "string", "description": "CSV file content as string"},
                },
                required=["table_id", "filename", "file_content"],
            ),
            handler=_append_csv_to_table,
            validate=require("table_id", "filename", "file_content"),
        ),
        ToolConfig(
            name="replace_table_csv",
            description="Replace all rows of an uploaded table with CSV content",
            input_schema=object_schema(
                {**TABLE_ID, "csv_file": {"type": "string", "description": "CSV file content as string"}},
                required=["table_id", "csv_file"],
            ),
            handler=_replace_table_csv,
            validate=require("table_id", "csv_file"),
        ),
        ToolConfig(
            name="sync_table_schema",
            description="Trigger a schema sync for a single table",
            input_schema=object_schema(TABLE_ID, required=["table_id"]),
            handler=_sync_table_schema,
            validate=require("table_id"),
        ),
        ToolConfig(
            name="rescan_table_field_values",
            description="Rescan the cached distinct values of a table's fields",
            input_schema=object_schema(TABLE_ID, required=["table_id"]),
            handler=_rescan_table_field_values,
            validate=require("table_id"),
        ),
        ToolConfig(
            name="discard_table_field_values",
            description="Discard the cached distinct values of a table's fields",
            input_schema=object_schema(TABLE_ID, required=["table_id"]),
            handler=_discard_table_field_values,
            validate=require("table_id"),
        ),
    ]

    return tool_group("tables", tools, essential=ESSENTIAL, reading=READING, writing=WRITING)
