"""Card (saved question) tools: list, execute, export, parameters, CRUD, sharing, moves."""

from urllib.parse import quote

from . import ToolConfig, ToolGroup, tool_group
from .helpers import id_property, object_schema, require, require_one_of, without


ESSENTIAL = ["list_cards", "execute_card", "get_card_dashboards"]
READING = [
    "list_cards",
    "get_card",
    "execute_card",
    "get_card_dashboards",
    "get_card_query_metadata",
    "get_card_series",
    "list_embeddable_cards",
    "list_public_cards",
    "get_card_param_values",
    "search_card_param_values",
    "get_card_param_remapping",
    "export_card_result",
    "execute_pivot_card_query",
]
WRITING = [
    "create_card",
    "update_card",
    "delete_card",
    "copy_card",
    "move_cards",
    "move_cards_to_collection",
    "create_card_public_link",
    "delete_card_public_link",
]

EXPORT_FORMATS = ("csv", "json", "xlsx", "api")

CARD_ID = {"card_id": id_property("Card ID")}
PARAM_KEY = {"param_key": {"type": "string", "minLength": 1, "description": "Parameter key"}}


async def _list_cards(client, args):
    return await client.get_cards(f=args.get("f"), model_id=args.get("model_id"))


async def _get_card(client, args):
    return await client.api_call("GET", f"/api/card/{args['card_id']}")


async def _execute_card(client, args):
    return await client.execute_card(
        args["card_id"],
        ignore_cache=args.get("ignore_cache", False),
        collection_preview=args.get("collection_preview"),
        dashboard_id=args.get("dashboard_id"),
    )


async def _get_card_dashboards(client, args):
    return await client.api_call("GET", f"/api/card/{args['card_id']}/dashboards")


async def _get_card_query_metadata(client, args):
    return await client.api_call("GET", f"/api/card/{args['card_id']}/query_metadata")


async def _get_card_series(client, args):
    params = {
        "last_cursor": args.get("last_cursor"),
        "query": args.get("query") or None,
        "exclude_ids": args.get("exclude_ids"),
    }
    return await client.api_call("GET", f"/api/card/{args['card_id']}/series", params=params)


async def _list_embeddable_cards(client, args):
    return await client.api_call("GET", "/api/card/embeddable")


async def _list_public_cards(client, args):
    return await client.api_call("GET", "/api/card/public")


async def _get_card_param_values(client, args):
    return await client.api_call("GET", f"/api/card/{args['card_id']}/params/{quote(args['param_key'], safe='')}/values")


async def _search_card_param_values(client, args):
    endpoint = (
        f"/api/card/{args['card_id']}/params/{quote(args['param_key'], safe='')}"
        f"/search/{quote(args['query'], safe='')}"
    )
    return await client.api_call("GET", endpoint)


async def _get_card_param_remapping(client, args):
    return await client.api_call(
        "GET",
        f"/api/card/{args['card_id']}/params/{quote(args['param_key'], safe='')}/remapping",
        params={"value": args["value"]},
    )


async def _export_card_result(client, args):
    return await client.api_call(
        "POST",
        f"/api/card/{args['card_id']}/query/{args['export_format']}",
        json=args.get("parameters") or {},
    )


def _lowercase_format(args: dict) -> dict:
    return {**args, "export_format": str(args.get("export_format", "")).lower()}


def _validate_export(args: dict) -> None:
    require("card_id", "export_format")(args)
    require_one_of("export_format", EXPORT_FORMATS)(_lowercase_format(args))


async def _execute_pivot_card_query(client, args):
    return await client.api_call("POST", f"/api/card/pivot/{args['card_id']}/query", json=args.get("parameters") or {})


async def _create_card(client, args):
    return await client.api_call("POST", "/api/card", json=args)


def _card_defaults(args: dict) -> dict:
    """Metabase rejects cards without display or visualization_settings."""
    card = without(args)
    card.setdefault("display", "table")
    card.setdefault("visualization_settings", {})
    return card


async def _update_card(client, args):
    return await client.api_call(
        "PUT",
        f"/api/card/{args['card_id']}",
        json=args["updates"],
        params=args.get("query_params"),
    )


async def _delete_card(client, args):
    hard_delete = bool(args.get("hard_delete", False))
    await client.delete_card(args["card_id"], hard_delete=hard_delete)
    return {
        "card_id": args["card_id"],
        "action": "deleted" if hard_delete else "archived",
        "status": "success",
    }


async def _copy_card(client, args):
    return await client.api_call("POST", f"/api/card/{args['card_id']}/copy")


async def _move_cards(client, args):
    body = {"card_ids": args["card_ids"]}
    if args.get("collection_id"):
        body["collection_id"] = args["collection_id"]
    if args.get("dashboard_id"):
        body["dashboard_id"] = args["dashboard_id"]
    return await client.api_call("POST", "/api/cards/move", json=body)


async def _move_cards_to_collection(client, args):
    body = {"card_ids": args["card_ids"]}
    if args.get("collection_id") is not None:
        body["collection_id"] = args["collection_id"]
    return await client.api_call("POST", "/api/card/collections", json=body)


async def _create_card_public_link(client, args):
    return await client.api_call("POST", f"/api/card/{args['card_id']}/public_link")


async def _delete_card_public_link(client, args):
    await client.api_call("DELETE", f"/api/card/{args['card_id']}/public_link")
    return {"card_id": args["card_id"], "action": "public_link_deleted", "status": "success"}


def register() -> ToolGroup:
    tools = [
        ToolConfig(
            name="list_cards",
            description="List Metabase cards (saved questions and models) with optional filters",
            input_schema=object_schema(
                {
                    "f": {
                        "type": "string",
                        "enum": ["all", "mine", "bookmarked", "database", "table", "using_model", "archived"],
                        "description": "Filter cards by source",
                    },
                    "model_id": id_property("Filter cards built on this model (used with f=using_model)"),
                }
            ),
            handler=_list_cards,
        ),
        ToolConfig(
            name="get_card",
            description="Get a card by ID including its query definition and visualization settings",
            input_schema=object_schema(CARD_ID, required=["card_id"]),
            handler=_get_card,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="execute_card",
            description="Execute a saved card and return its query results",
            input_schema=object_schema(
                {
                    **CARD_ID,
                    "ignore_cache": {"type": "boolean", "default": False, "description": "Ignore cached results"},
                    "collection_preview": {"type": "boolean", "description": "Collection preview flag"},
                    "dashboard_id": id_property("Execute within a dashboard context"),
                },
                required=["card_id"],
            ),
            handler=_execute_card,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="get_card_dashboards",
            description="List the dashboards that contain a card",
            input_schema=object_schema(CARD_ID, required=["card_id"]),
            handler=_get_card_dashboards,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="get_card_query_metadata",
            description="Get query metadata (tables, fields) for a card",
            input_schema=object_schema(CARD_ID, required=["card_id"]),
            handler=_get_card_query_metadata,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="get_card_series",
            description="Get cards that can be combined with this card as a series",
            input_schema=object_schema(
                {
                    **CARD_ID,
                    "last_cursor": {"type": ["string", "integer"], "description": "Pagination cursor"},
                    "query": {"type": "string", "description": "Filter by card name"},
                    "exclude_ids": {"type": "array", "items": {"type": "integer"}, "description": "Card IDs to exclude"},
                },
                required=["card_id"],
            ),
            handler=_get_card_series,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="list_embeddable_cards",
            description="List cards with embedding enabled (requires superuser)",
            input_schema=object_schema({}),
            handler=_list_embeddable_cards,
        ),
        ToolConfig(
            name="list_public_cards",
            description="List cards with public links (requires superuser)",
            input_schema=object_schema({}),
            handler=_list_public_cards,
        ),
        ToolConfig(
            name="get_card_param_values",
            description="Get the possible values of a card parameter",
            input_schema=object_schema({**CARD_ID, **PARAM_KEY}, required=["card_id", "param_key"]),
            handler=_get_card_param_values,
            validate=require("card_id", "param_key"),
        ),
        ToolConfig(
            name="search_card_param_values",
            description="Search the values of a card parameter",
            input_schema=object_schema(
                {
                    **CARD_ID,
                    **PARAM_KEY,
                    "query": {"type": "string", "minLength": 1, "description": "Search query"},
                },
                required=["card_id", "param_key", "query"],
            ),
            handler=_search_card_param_values,
            validate=require("card_id", "param_key", "query"),
        ),
        ToolConfig(
            name="get_card_param_remapping",
            description="Get the remapped display value for a card parameter value",
            input_schema=object_schema(
                {
                    **CARD_ID,
                    **PARAM_KEY,
                    "value": {"type": "string", "description": "Parameter value to remap"},
                },
                required=["card_id", "param_key", "value"],
            ),
            handler=_get_card_param_remapping,
            validate=require("card_id", "param_key", "value"),
        ),
        ToolConfig(
            name="export_card_result",
            description="Execute a card and export the results as csv, json, xlsx or api",
            input_schema=object_schema(
                {
                    **CARD_ID,
                    "export_format": {"type": "string", "enum": list(EXPORT_FORMATS), "description": "Export format"},
                    "parameters": {"type": "object", "description": "Execution parameters"},
                },
                required=["card_id", "export_format"],
            ),
            handler=_export_card_result,
            validate=_validate_export,
            transform_args=_lowercase_format,
        ),
        ToolConfig(
            name="execute_pivot_card_query",
            description="Execute a pivot query for a card",
            input_schema=object_schema(
                {**CARD_ID, "parameters": {"type": "object", "description": "Execution parameters"}},
                required=["card_id"],
            ),
            handler=_execute_pivot_card_query,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="create_card",
            description="Create a new card (saved question). Defaults to a table visualization",
            input_schema=object_schema(
                {
                    "name": {"type": "string", "minLength": 1, "description": "Card name"},
                    "description": {"type": "string", "description": "Description"},
                    "dataset_query": {"type": "object", "description": "Dataset query object (native or MBQL)"},
                    "display": {"type": "string", "description": "Visualization type (table, bar, line, ...)"},
                    "visualization_settings": {"type": "object", "description": "Visualization settings"},
                    "collection_id": id_property("Collection to save the card in"),
                    "type": {"type": "string", "enum": ["question", "model", "metric"], "description": "Card type"},
                },
                required=["name", "dataset_query"],
            ),
            handler=_create_card,
            validate=require("name", "dataset_query"),
            transform_args=_card_defaults,
        ),
        ToolConfig(
            name="update_card",
            description="Update an existing card",
            input_schema=object_schema(
                {
                    **CARD_ID,
                    "updates": {"type": "object", "description": "Fields to update"},
                    "query_params": {"type": "object", "description": "Optional query parameters for the update"},
                },
                required=["card_id", "updates"],
            ),
            handler=_update_card,
            validate=require("card_id", "updates"),
        ),
        ToolConfig(
            name="delete_card",
            description="Archive a card, or permanently delete it with hard_delete",
            input_schema=object_schema(
                {
                    **CARD_ID,
                    "hard_delete": {"type": "boolean", "default": False, "description": "Hard delete if true, else archive"},
                },
                required=["card_id"],
            ),
            handler=_delete_card,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="copy_card",
            description="Copy a card",
            input_schema=object_schema(CARD_ID, required=["card_id"]),
            handler=_copy_card,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="move_cards",
            description="Move cards to a collection or a dashboard",
            input_schema=object_schema(
                {
                    "card_ids": {"type": "array", "items": {"type": "integer"}, "description": "Card IDs to move"},
                    "collection_id": id_property("Target collection ID"),
                    "dashboard_id": id_property("Target dashboard ID"),
                },
                required=["card_ids"],
            ),
            handler=_move_cards,
            validate=require("card_ids"),
        ),
        ToolConfig(
            name="move_cards_to_collection",
            description="Move cards to a collection (omit collection_id for the root collection)",
            input_schema=object_schema(
                {
                    "card_ids": {"type": "array", "items": {"type": "integer"}, "description": "Card IDs to move"},
                    "collection_id": id_property("Target collection ID"),
                },
                required=["card_ids"],
            ),
            handler=_move_cards_to_collection,
            validate=require("card_ids"),
        ),
        ToolConfig(
            name="create_card_public_link",
            description="Create a public link for a card (requires superuser)",
            input_schema=object_schema(CARD_ID, required=["card_id"]),
            handler=_create_card_public_link,
            validate=require("card_id"),
        ),
        ToolConfig(
            name="delete_card_public_link",
            description="Delete the public link of a card (requires superuser)",
            input_schema=object_schema(CARD_ID, required=["card_id"]),
            handler=_delete_card_public_link,
            validate=require("card_id"),
        ),
    ]

    return tool_group("cards", tools, essential=ESSENTIAL, reading=READING, writing=WRITING)
