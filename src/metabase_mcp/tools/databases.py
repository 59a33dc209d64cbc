"""Database tools: connections, schemas, metadata, sync, and native SQL queries."""

from urllib.parse import quote

from . import ToolConfig, ToolGroup, tool_group
from ..errors import ToolValidationError
from .helpers import id_property, object_schema, present, require, without


ESSENTIAL = [
    "list_databases",
    "get_database",
    "get_database_schemas",
    "get_database_schema_tables",
    "execute_query",
]
READING = [
    "list_databases",
    "get_database",
    "get_database_schemas",
    "get_database_schema_tables",
    "get_database_metadata",
    "get_database_healthcheck",
    "get_database_fields",
    "get_database_idfields",
    "get_database_schema_tables_for_schema",
    "get_database_schema_tables_without_schema",
    "get_database_syncable_schemas",
    "get_database_usage_info",
    "get_database_autocomplete_suggestions",
    "get_database_card_autocomplete_suggestions",
    "get_virtual_database_datasets",
    "get_virtual_database_datasets_for_schema",
    "get_virtual_database_metadata",
    "get_virtual_database_schema_tables",
    "get_virtual_database_schemas",
    "execute_query",
    "execute_query_export",
]
WRITING = [
    "create_database",
    "validate_database",
    "update_database",
    "delete_database",
    "create_sample_database",
    "sync_database_schema",
    "rescan_database_field_values",
    "discard_database_field_values",
    "dismiss_database_spinner",
]

DATABASE_ID = {"database_id": id_property("Database ID")}
SCHEMA = {"schema": {"type": "string", "minLength": 1, "description": "Schema name"}}
VIRTUAL_DB = {
    "virtual_db": {
        "type": "string",
        "minLength": 1,
        "description": "Virtual database identifier (the saved questions database, e.g. -1337)",
    }
}
TABLE_VISIBILITY = {
    "include_hidden": {"type": "boolean", "default": False, "description": "Include hidden tables"},
    "include_editable_data_model": {
        "type": "boolean",
        "default": False,
        "description": "Only include tables for which the current user has data model editing permissions",
    },
}

LIST_FLAGS = (
    "include_analytics",
    "saved",
    "include_editable_data_model",
    "exclude_uneditable_details",
    "include_only_uploadable",
)


async def _list_databases(client, args):
    if not args:
        return await client.get_databases()
    return await client.api_call("GET", "/api/database", params=args)


def _list_params(args: dict) -> dict:
    """Keep only the filters that change the result; false flags are the server default."""
    params = present(args, "include", "router_database_id")
    params.update({flag: True for flag in LIST_FLAGS if args.get(flag)})
    return params


async def _get_database(client, args):
    params = present(args, "include", "include_editable_data_model", "exclude_uneditable_details")
    return await client.api_call("GET", f"/api/database/{args['database_id']}", params=params)


async def _get_database_schemas(client, args):
    return await client.api_call("GET", f"/api/database/{args['database_id']}/schemas")


async def _get_database_schema_tables(client, args):
    schema = args.get("schema")
    if schema is None:
        # Tables of databases that do not use schemas
        return await client.api_call("GET", f"/api/database/{args['database_id']}/schema")
    return await client.api_call("GET", f"/api/database/{args['database_id']}/schema/{quote(schema, safe='')}")


async def _get_database_metadata(client, args):
    params = present(args, "include_hidden", "include_editable_data_model", "remove_inactive")
    return await client.api_call("GET", f"/api/database/{args['database_id']}/metadata", params=params)


async def _get_database_healthcheck(client, args):
    return await client.api_call("GET", f"/api/database/{args['database_id']}/healthcheck")


async def _execute_query(client, args):
    return await client.execute_query(args["database_id"], args["query"], args.get("native_parameters"))


def _validate_query(args: dict) -> None:
    require("database_id", "query")(args)
    if not str(args["query"]).strip():
        raise ToolValidationError("Query must not be blank")


async def _execute_query_export(client, args):
    payload = {
        "query": args["query"],
        "format_rows": args.get("format_rows", False),
        "pivot_results": args.get("pivot_results", False),
        "visualization_settings": args.get("visualization_settings") or {},
    }
    return await client.api_call("POST", f"/api/dataset/{args['export_format']}", json=payload)


async def _create_database(client, args):
    return await client.api_call("POST", "/api/database", json=args)


async def _validate_database(client, args):
    return await client.api_call("POST", "/api/database/validate", json=args["details"])


def _validate_connection_details(args: dict) -> None:
    require("details")(args)
    details = args["details"]
    if not isinstance(details, dict) or not details.get("details") or not details.get("engine"):
        raise ToolValidationError("Details must contain 'details' object and 'engine' string")


async def _update_database(client, args):
    updates = without(args, "database_id")
    if not updates:
        raise ToolValidationError(f"No updates provided for database {args['database_id']}")
    return await client.api_call("PUT", f"/api/database/{args['database_id']}", json=updates)


async def _delete_database(client, args):
    await client.api_call("DELETE", f"/api/database/{args['database_id']}")
    return {"database_id": args["database_id"], "action": "deleted", "status": "success"}


async def _create_sample_database(client, args):
    return await client.api_call("POST", "/api/database/sample_database")


async def _sync_database_schema(client, args):
    result = await client.api_call("POST", f"/api/database/{args['database_id']}/sync_schema")
    return {"database_id": args["database_id"], "status": "schema_sync_triggered", "result": result}


def _database_call(method: str, suffix: str):
    """Handler for a parameterless /api/database/{id}/<suffix> endpoint."""

    async def handler(client, args):
        return await client.api_call(method, f"/api/database/{args['database_id']}/{suffix}")

    return handler


async def _get_database_schema_tables_for_schema(client, args):
    params = present(args, *TABLE_VISIBILITY)
    endpoint = f"/api/database/{args['database_id']}/schema/{quote(args['schema'], safe='')}"
    return await client.api_call("GET", endpoint, params=params)


async def _get_database_schema_tables_without_schema(client, args):
    params = present(args, *TABLE_VISIBILITY)
    return await client.api_call(
        "GET", f"/api/database/{args['database_id']}/schema_tables_without_schema", params=params
    )


async def _get_database_autocomplete_suggestions(client, args):
    params = present(args, "prefix", "substring")
    return await client.api_call("GET", f"/api/database/{args['database_id']}/autocomplete_suggestions", params=params)


async def _get_database_card_autocomplete_suggestions(client, args):
    return await client.api_call(
        "GET",
        f"/api/database/{args['database_id']}/card_autocomplete_suggestions",
        params={"prefix": args["prefix"]},
    )


def _virtual_db_path(args: dict) -> str:
    return f"/api/database/{quote(str(args['virtual_db']), safe='')}"


async def _get_virtual_database_datasets(client, args):
    return await client.api_call("GET", f"{_virtual_db_path(args)}/datasets")


async def _get_virtual_database_datasets_for_schema(client, args):
    return await client.api_call("GET", f"{_virtual_db_path(args)}/schema/{quote(args['schema'], safe='')}/datasets")


async def _get_virtual_database_metadata(client, args):
    return await client.api_call("GET", f"{_virtual_db_path(args)}/metadata")


async def _get_virtual_database_schema_tables(client, args):
    return await client.api_call("GET", f"{_virtual_db_path(args)}/schema/{quote(args['schema'], safe='')}/tables")


async def _get_virtual_database_schemas(client, args):
    return await client.api_call("GET", f"{_virtual_db_path(args)}/schemas")


def register() -> ToolGroup:
    tools = [
        ToolConfig(
            name="list_databases",
            description="Fetch all Databases. Optionally include tables, saved questions, and filter by permissions.",
            input_schema=object_schema(
                {
                    "include": {"type": "string", "enum": ["tables"], "description": "Include tables in the response"},
                    "include_analytics": {"type": "boolean", "default": False, "description": "Include analytics information"},
                    "saved": {"type": "boolean", "default": False, "description": "Include saved questions virtual database"},
                    "include_editable_data_model": {
                        "type": "boolean",
                        "default": False,
                        "description": "Only include DBs for which the current user has data model editing permissions",
                    },
                    "exclude_uneditable_details": {
                        "type": "boolean",
                        "default": False,
                        "description": "Only include DBs for which the current user can edit the DB details",
                    },
                    "include_only_uploadable": {
                        "type": "boolean",
                        "default": False,
                        "description": "Only include DBs into which Metabase can insert new data",
                    },
                    "router_database_id": id_property("Router database ID filter"),
                }
            ),
            handler=_list_databases,
            transform_args=_list_params,
        ),
        ToolConfig(
            name="get_database",
            description="Get a single Database by ID. Optionally include tables and fields.",
            input_schema=object_schema(
                {
                    **DATABASE_ID,
                    "include": {"type": "string", "enum": ["tables", "tables.fields"], "description": "Include tables or tables with fields"},
                    "include_editable_data_model": {
                        "type": "boolean",
                        "description": "Only return tables for which the current user has data model editing permissions",
                    },
                    "exclude_uneditable_details": {
                        "type": "boolean",
                        "description": "Exclude database details if user lacks edit permissions",
                    },
                },
                required=["database_id"],
            ),
            handler=_get_database,
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_schemas",
            description="List the schema names of a database",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_get_database_schemas,
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_schema_tables",
            description="List the tables in one schema of a database; omit schema for databases without schemas",
            input_schema=object_schema(
                {**DATABASE_ID, "schema": {"type": "string", "description": "Schema name"}},
                required=["database_id"],
            ),
            handler=_get_database_schema_tables,
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_metadata",
            description="Get metadata for a Database, including all tables and fields",
            input_schema=object_schema(
                {
                    **DATABASE_ID,
                    "include_hidden": {"type": "boolean", "description": "Include hidden tables and fields"},
                    "include_editable_data_model": {"type": "boolean", "description": "Only tables the user can edit"},
                    "remove_inactive": {"type": "boolean", "description": "Drop inactive tables"},
                },
                required=["database_id"],
            ),
            handler=_get_database_metadata,
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_healthcheck",
            description="Check whether Metabase can currently connect to a database",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_get_database_healthcheck,
            validate=require("database_id"),
        ),
        ToolConfig(
            name="execute_query",
            description="Execute a native SQL query against a Metabase database",
            input_schema=object_schema(
                {
                    **DATABASE_ID,
                    "query": {"type": "string", "description": "SQL query to execute"},
                    "native_parameters": {
                        "type": "array",
                        "items": {"type": "object"},
                        "description": "Optional parameters for the query",
                    },
                },
                required=["database_id", "query"],
            ),
            handler=_execute_query,
            validate=_validate_query,
        ),
        ToolConfig(
            name="execute_query_export",
            description="Execute a query and download the result data as a file in the specified format",
            input_schema=object_schema(
                {
                    "export_format": {"type": "string", "enum": ["csv", "json", "xlsx"], "description": "Export format"},
                    "query": {"type": "object", "description": "Query object to execute"},
                    "format_rows": {"type": "boolean", "default": False, "description": "Whether to format rows"},
                    "pivot_results": {"type": "boolean", "default": False, "description": "Whether to pivot results"},
                    "visualization_settings": {"type": "object", "default": {}, "description": "Visualization settings object"},
                },
                required=["export_format", "query"],
            ),
            handler=_execute_query_export,
            validate=require("export_format", "query"),
        ),
        ToolConfig(
            name="create_database",
            description="Add a new Database connection",
            input_schema=object_schema(
                {
                    "name": {"type": "string", "minLength": 1, "description": "Name of the database connection"},
                    "engine": {"type": "string", "minLength": 1, "description": "Database engine (postgres, mysql, h2, ...)"},
                    "details": {"type": "object", "description": "Connection details"},
                    "auto_run_queries": {"type": "boolean", "description": "Whether to auto-run queries"},
                    "cache_ttl": {"type": "integer", "minimum": 1, "description": "Cache TTL in hours"},
                    "connection_source": {"type": "string", "enum": ["admin", "setup"], "default": "admin", "description": "Connection source"},
                    "is_full_sync": {"type": "boolean", "default": True, "description": "Whether to perform full schema sync"},
                    "is_on_demand": {"type": "boolean", "default": False, "description": "Whether this is an on-demand database"},
                    "schedules": {"type": "object", "description": "Sync and field-value scan schedules"},
                },
                required=["name", "engine", "details"],
            ),
            handler=_create_database,
            validate=require("name", "engine", "details"),
            transform_args=without,
        ),
        ToolConfig(
            name="validate_database",
            description="Validate that Metabase can connect to a database given a set of details",
            input_schema=object_schema(
                {
                    "details": {
                        "type": "object",
                        "properties": {
                            "details": {"type": "object", "description": "Database connection details"},
                            "engine": {"type": "string", "minLength": 1, "description": "Database engine"},
                        },
                        "required": ["details", "engine"],
                    }
                },
                required=["details"],
            ),
            handler=_validate_database,
            validate=_validate_connection_details,
        ),
        ToolConfig(
            name="update_database",
            description="Update a Database connection's settings",
            input_schema=object_schema(
                {
                    **DATABASE_ID,
                    "name": {"type": "string", "description": "New display name"},
                    "engine": {"type": "string", "description": "Database engine"},
                    "details": {"type": "object", "description": "Connection details"},
                    "description": {"type": "string", "description": "Description"},
                    "auto_run_queries": {"type": "boolean", "description": "Whether to auto-run queries"},
                    "cache_ttl": {"type": "integer", "minimum": 1, "description": "Cache TTL in hours"},
                    "refingerprint": {"type": "boolean", "description": "Re-fingerprint fields"},
                    "schedules": {"type": "object", "description": "Sync and field-value scan schedules"},
                    "settings": {"type": "object", "description": "Database settings"},
                },
                required=["database_id"],
            ),
            handler=_update_database,
            validate=require("database_id"),
        ),
        ToolConfig(
            name="delete_database",
            description="Delete a Database connection and everything built on it - this cannot be undone",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_delete_database,
            validate=require("database_id"),
        ),
        ToolConfig(
            name="create_sample_database",
            description="Add the Metabase sample database",
            input_schema=object_schema({}),
            handler=_create_sample_database,
        ),
        ToolConfig(
            name="sync_database_schema",
            description="Trigger a manual update of the schema metadata for this Database",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_sync_database_schema,
            validate=require("database_id"),
        ),
        ToolConfig(
            name="rescan_database_field_values",
            description="Rescan the cached field values (FieldValues) for every field in a Database",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_database_call("POST", "rescan_values"),
            validate=require("database_id"),
        ),
        ToolConfig(
            name="discard_database_field_values",
            description="Discard the cached field values (FieldValues) belonging to a Database",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_database_call("POST", "discard_values"),
            validate=require("database_id"),
        ),
        ToolConfig(
            name="dismiss_database_spinner",
            description="Dismiss the initial sync spinner shown for a Database",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_database_call("POST", "dismiss_spinner"),
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_fields",
            description="Get all Fields belonging to a Database",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_database_call("GET", "fields"),
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_idfields",
            description="Get all primary key (ID) fields of a Database",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_database_call("GET", "idfields"),
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_schema_tables_for_schema",
            description="List the Tables in one schema of a Database, optionally including hidden tables",
            input_schema=object_schema({**DATABASE_ID, **SCHEMA, **TABLE_VISIBILITY}, required=["database_id", "schema"]),
            handler=_get_database_schema_tables_for_schema,
            validate=require("database_id", "schema"),
        ),
        ToolConfig(
            name="get_database_schema_tables_without_schema",
            description="List the Tables of a Database that has no schemas",
            input_schema=object_schema({**DATABASE_ID, **TABLE_VISIBILITY}, required=["database_id"]),
            handler=_get_database_schema_tables_without_schema,
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_syncable_schemas",
            description="List every schema Metabase can sync for a Database",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_database_call("GET", "syncable_schemas"),
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_usage_info",
            description="Count the questions, models, metrics and segments that use a Database",
            input_schema=object_schema(DATABASE_ID, required=["database_id"]),
            handler=_database_call("GET", "usage_info"),
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_autocomplete_suggestions",
            description="Get table and field name suggestions for the SQL editor",
            input_schema=object_schema(
                {
                    **DATABASE_ID,
                    "prefix": {"type": "string", "description": "Match names starting with this text"},
                    "substring": {"type": "string", "description": "Match names containing this text"},
                },
                required=["database_id"],
            ),
            handler=_get_database_autocomplete_suggestions,
            validate=require("database_id"),
        ),
        ToolConfig(
            name="get_database_card_autocomplete_suggestions",
            description="Get saved question and model suggestions for the SQL editor",
            input_schema=object_schema(
                {**DATABASE_ID, "prefix": {"type": "string", "minLength": 1, "description": "Prefix for autocomplete suggestions"}},
                required=["database_id", "prefix"],
            ),
            handler=_get_database_card_autocomplete_suggestions,
            validate=require("database_id", "prefix"),
        ),
        ToolConfig(
            name="get_virtual_database_datasets",
            description="List the datasets (models) of the saved questions virtual database",
            input_schema=object_schema(VIRTUAL_DB, required=["virtual_db"]),
            handler=_get_virtual_database_datasets,
            validate=require("virtual_db"),
        ),
        ToolConfig(
            name="get_virtual_database_datasets_for_schema",
            description="List the datasets in one schema (collection) of the saved questions virtual database",
            input_schema=object_schema({**VIRTUAL_DB, **SCHEMA}, required=["virtual_db", "schema"]),
            handler=_get_virtual_database_datasets_for_schema,
            validate=require("virtual_db", "schema"),
        ),
        ToolConfig(
            name="get_virtual_database_metadata",
            description="Get metadata for the saved questions virtual database",
            input_schema=object_schema(VIRTUAL_DB, required=["virtual_db"]),
            handler=_get_virtual_database_metadata,
            validate=require("virtual_db"),
        ),
        ToolConfig(
            name="get_virtual_database_schema_tables",
            description="List the virtual tables in one schema of the saved questions virtual database",
            input_schema=object_schema({**VIRTUAL_DB, **SCHEMA}, required=["virtual_db", "schema"]),
            handler=_get_virtual_database_schema_tables,
            validate=require("virtual_db", "schema"),
        ),
        ToolConfig(
            name="get_virtual_database_schemas",
            description="List the schemas (collections) of the saved questions virtual database",
            input_schema=object_schema(VIRTUAL_DB, required=["virtual_db"]),
            handler=_get_virtual_database_schemas,
            validate=require("virtual_db"),
        ),
    ]

    return tool_group("databases", tools, essential=ESSENTIAL, reading=READING, writing=WRITING)
