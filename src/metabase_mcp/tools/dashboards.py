"""Dashboard tools: list, inspect, search, create, update, delete, share, dashcards."""

from . import ToolConfig, ToolGroup, tool_group
from ..errors import ToolValidationError
from .helpers import id_property, object_schema, present, require, without


ESSENTIAL = [
    "list_dashboards",
    "get_dashboard",
    "get_dashboard_cards",
    "get_dashboard_related",
    "get_dashboard_revisions",
]
READING = [
    "list_dashboards",
    "get_dashboard",
    "get_dashboard_cards",
    "get_dashboard_related",
    "get_dashboard_revisions",
    "list_embeddable_dashboards",
    "list_public_dashboards",
    "search_dashboards",
    "execute_dashboard_card",
]
WRITING = [
    "create_dashboard",
    "update_dashboard",
    "delete_dashboard",
    "copy_dashboard",
    "add_card_to_dashboard",
    "update_dashboard_cards",
    "remove_cards_from_dashboard",
    "create_public_link",
    "delete_public_link",
    "favorite_dashboard",
    "unfavorite_dashboard",
    "revert_dashboard",
    "save_dashboard",
    "save_dashboard_to_collection",
]

DASHBOARD_ID = {"dashboard_id": id_property("The ID of the dashboard")}


async def _list_dashboards(client, args):
    return await client.get_dashboards()


async def _get_dashboard(client, args):
    return await client.get_dashboard(args["dashboard_id"])


async def _get_dashboard_cards(client, args):
    dashboard = await client.get_dashboard(args["dashboard_id"])
    return dashboard.get("dashcards") or []


async def _get_dashboard_related(client, args):
    return await client.api_call("GET", f"/api/dashboard/{args['dashboard_id']}/related")


async def _get_dashboard_revisions(client, args):
    return await client.api_call("GET", f"/api/dashboard/{args['dashboard_id']}/revisions")


async def _list_embeddable_dashboards(client, args):
    return await client.api_call("GET", "/api/dashboard/embeddable")


async def _list_public_dashboards(client, args):
    return await client.api_call("GET", "/api/dashboard/public")


async def _search_dashboards(client, args):
    query = args["query"]
    matches = []
    for d in await client.get_dashboards():
        name = (d.get("name") or "").lower()
        description = (d.get("description") or "").lower()
        if query in name or query in description:
            matches.append(d)
    limit = args.get("limit")
    return matches[:limit] if limit else matches


def _lowercase_query(args: dict) -> dict:
    return {**args, "query": args["query"].lower()}


def _require_search_text(args: dict) -> None:
    require("query")(args)
    # A blank query would match every dashboard
    if not str(args["query"]).strip():
        raise ToolValidationError("Search query must not be blank")


async def _execute_dashboard_card(client, args):
    result = await client.execute_card(args["card_id"], dashboard_id=args["dashboard_id"])
    return {
        "dashboard_id": args["dashboard_id"],
        "card_id": args["card_id"],
        "status": "completed",
        "data": result,
    }


async def _create_dashboard(client, args):
    return await client.api_call("POST", "/api/dashboard", json=args)


async def _update_dashboard(client, args):
    updates = without(args, "dashboard_id")
    return await client.api_call("PUT", f"/api/dashboard/{args['dashboard_id']}", json=updates)


async def _delete_dashboard(client, args):
    await client.delete_dashboard(args["dashboard_id"], hard_delete=args["hard_delete"])
    return {
        "dashboard_id": args["dashboard_id"],
        "action": "deleted" if args["hard_delete"] else "archived",
        "status": "success",
    }


def _default_hard_delete(args: dict) -> dict:
    return {**args, "hard_delete": bool(args.get("hard_delete", False))}


async def _copy_dashboard(client, args):
    copy_data = without(args, "from_dashboard_id")
    return await client.api_call("POST", f"/api/dashboard/{args['from_dashboard_id']}/copy", json=copy_data)


def _first(args: dict, *keys: str):
    return next((args[k] for k in keys if args.get(k) is not None), None)


def _normalize_dashcard(args: dict) -> dict:
    """Accept both camelCase and snake_case card fields."""
    card = {
        "card_id": _first(args, "card_id", "cardId"),
        "size_x": _first(args, "size_x", "sizeX"),
        "size_y": _first(args, "size_y", "sizeY"),
        **present(args, "row", "col", "parameter_mappings", "series"),
    }
    return {"dashboard_id": args["dashboard_id"], "card": card}


def _require_card_id(args: dict) -> None:
    require("dashboard_id")(args)
    if args.get("card_id") is None and args.get("cardId") is None:
        require("card_id")(args)


async def _add_card_to_dashboard(client, args):
    return await client.add_card_to_dashboard(args["dashboard_id"], args["card"])


async def _update_dashboard_cards(client, args):
    return await client.update_dashboard_cards(args["dashboard_id"], args["cards"])


async def _remove_cards_from_dashboard(client, args):
    return await client.remove_cards_from_dashboard(args["dashboard_id"], args["card_ids"])


async def _create_public_link(client, args):
    return await client.api_call("POST", f"/api/dashboard/{args['dashboard_id']}/public_link")


async def _delete_public_link(client, args):
    await client.api_call("DELETE", f"/api/dashboard/{args['dashboard_id']}/public_link")
    return {"dashboard_id": args["dashboard_id"], "action": "public_link_deleted", "status": "success"}


async def _favorite_dashboard(client, args):
    return await client.api_call("POST", f"/api/dashboard/{args['dashboard_id']}/favorite")


async def _unfavorite_dashboard(client, args):
    return await client.api_call("DELETE", f"/api/dashboard/{args['dashboard_id']}/favorite")


async def _revert_dashboard(client, args):
    return await client.api_call(
        "POST", f"/api/dashboard/{args['dashboard_id']}/revert", json={"revision_id": args["revision_id"]}
    )


async def _save_dashboard(client, args):
    return await client.api_call("POST", "/api/dashboard/save", json=args["dashboard"])


async def _save_dashboard_to_collection(client, args):
    return await client.api_call(
        "POST", f"/api/dashboard/save/collection/{args['parent_collection_id']}", json=args["dashboard"]
    )


def register() -> ToolGroup:
    tools = [
        ToolConfig(
            name="list_dashboards",
            description="Retrieve all Metabase dashboards - use this to discover available dashboards, get an overview of analytical content, or find specific dashboards",
            input_schema=object_schema({}),
            handler=_list_dashboards,
        ),
        ToolConfig(
            name="get_dashboard",
            description="Retrieve detailed information about a specific Metabase dashboard including cards, layout, and settings",
            input_schema=object_schema(DASHBOARD_ID, required=["dashboard_id"]),
            handler=_get_dashboard,
            validate=require("dashboard_id"),
        ),
        ToolConfig(
            name="get_dashboard_cards",
            description="Retrieve all cards placed on a Metabase dashboard with their positioning and configuration",
            input_schema=object_schema(DASHBOARD_ID, required=["dashboard_id"]),
            handler=_get_dashboard_cards,
            validate=require("dashboard_id"),
        ),
        ToolConfig(
            name="get_dashboard_related",
            description="Retrieve entities related to a Metabase dashboard - similar dashboards, related cards and data sources",
            input_schema=object_schema(DASHBOARD_ID, required=["dashboard_id"]),
            handler=_get_dashboard_related,
            validate=require("dashboard_id"),
        ),
        ToolConfig(
            name="get_dashboard_revisions",
            description="Retrieve revision history for a Metabase dashboard - use this to review past changes before reverting",
            input_schema=object_schema(DASHBOARD_ID, required=["dashboard_id"]),
            handler=_get_dashboard_revisions,
            validate=require("dashboard_id"),
        ),
        ToolConfig(
            name="list_embeddable_dashboards",
            description="Retrieve all Metabase dashboards configured for embedding (requires superuser)",
            input_schema=object_schema({}),
            handler=_list_embeddable_dashboards,
        ),
        ToolConfig(
            name="list_public_dashboards",
            description="Retrieve all Metabase dashboards with public URLs enabled (requires superuser)",
            input_schema=object_schema({}),
            handler=_list_public_dashboards,
        ),
        ToolConfig(
            name="search_dashboards",
            description="Search dashboards by name or description text (case-insensitive)",
            input_schema=object_schema(
                {
                    "query": {"type": "string", "minLength": 1, "description": "Search query string"},
                    "limit": {"type": "integer", "minimum": 1, "description": "Maximum number of results to return"},
                },
                required=["query"],
            ),
            handler=_search_dashboards,
            validate=_require_search_text,
            transform_args=_lowercase_query,
        ),
        ToolConfig(
            name="execute_dashboard_card",
            description="Execute a specific card in the context of a dashboard and retrieve fresh data",
            input_schema=object_schema(
                {
                    **DASHBOARD_ID,
                    "card_id": id_property("The ID of the card to execute"),
                },
                required=["dashboard_id", "card_id"],
            ),
            handler=_execute_dashboard_card,
            validate=require("dashboard_id", "card_id"),
        ),
        ToolConfig(
            name="create_dashboard",
            description="Create a new Metabase dashboard - use this to build new analytical views or organize related cards",
            input_schema=object_schema(
                {
                    "name": {"type": "string", "minLength": 1, "description": "Name of the dashboard"},
                    "description": {"type": "string", "description": "Description of the dashboard"},
                    "parameters": {"type": "array", "items": {"type": "object"}, "description": "Dashboard parameters array"},
                    "collection_id": id_property("Collection ID to save the dashboard in"),
                    "collection_position": {"type": "integer", "description": "Position within the collection"},
                },
                required=["name"],
            ),
            handler=_create_dashboard,
            validate=require("name"),
            transform_args=without,
        ),
        ToolConfig(
            name="update_dashboard",
            description="Update dashboard properties including name, description, parameters, archive state and embedding settings",
            input_schema=object_schema(
                {
                    **DASHBOARD_ID,
                    "name": {"type": "string", "description": "New name for the dashboard"},
                    "description": {"type": "string", "description": "New description for the dashboard"},
                    "parameters": {"type": "array", "items": {"type": "object"}, "description": "Dashboard parameters"},
                    "archived": {"type": "boolean", "description": "Whether to archive the dashboard"},
                    "collection_id": id_property("Collection ID to move the dashboard to"),
                    "collection_position": {"type": "integer", "description": "Position within the collection"},
                    "enable_embedding": {"type": "boolean", "description": "Enable embedding (requires superuser)"},
                    "embedding_params": {"type": "object", "description": "Embedding parameters"},
                    "caveats": {"type": "string", "description": "Dashboard caveats"},
                    "points_of_interest": {"type": "string", "description": "Points of interest"},
                },
                required=["dashboard_id"],
            ),
            handler=_update_dashboard,
            validate=require("dashboard_id"),
        ),
        ToolConfig(
            name="delete_dashboard",
            description="Archive a dashboard, or permanently delete it with hard_delete - permanent deletion cannot be undone",
            input_schema=object_schema(
                {
                    **DASHBOARD_ID,
                    "hard_delete": {"type": "boolean", "default": False, "description": "Permanently delete (true) or archive (false)"},
                },
                required=["dashboard_id"],
            ),
            handler=_delete_dashboard,
            validate=require("dashboard_id"),
            transform_args=_default_hard_delete,
        ),
        ToolConfig(
            name="copy_dashboard",
            description="Create a copy of an existing dashboard with all cards and layout",
            input_schema=object_schema(
                {
                    "from_dashboard_id": id_property("The ID of the dashboard to copy"),
                    "name": {"type": "string", "description": "Name for the new dashboard copy"},
                    "description": {"type": "string", "description": "Description for the new dashboard copy"},
                    "collection_id": id_property("Collection ID for the new dashboard"),
                    "collection_position": {"type": "integer", "description": "Position within the collection"},
                    "is_deep_copy": {"type": "boolean", "description": "Also copy the cards instead of reusing them"},
                },
                required=["from_dashboard_id"],
            ),
            handler=_copy_dashboard,
            validate=require("from_dashboard_id"),
        ),
        ToolConfig(
            name="add_card_to_dashboard",
            description="Add an existing card to a dashboard, placed below the current cards unless row/col are given",
            input_schema=object_schema(
                {
                    **DASHBOARD_ID,
                    "card_id": id_property("The ID of the card to add"),
                    "cardId": id_property("Alias of card_id"),
                    "row": {"type": "integer", "minimum": 0, "description": "Row position"},
                    "col": {"type": "integer", "minimum": 0, "description": "Column position"},
                    "size_x": {"type": "integer", "minimum": 1, "description": "Card width"},
                    "size_y": {"type": "integer", "minimum": 1, "description": "Card height"},
                    "sizeX": {"type": "integer", "minimum": 1, "description": "Alias of size_x"},
                    "sizeY": {"type": "integer", "minimum": 1, "description": "Alias of size_y"},
                    "parameter_mappings": {"type": "array", "items": {"type": "object"}, "description": "Parameter mappings for the card"},
                    "series": {"type": "array", "items": {"type": "object"}, "description": "Series data for the card"},
                },
                required=["dashboard_id"],
            ),
            handler=_add_card_to_dashboard,
            validate=_require_card_id,
            transform_args=_normalize_dashcard,
        ),
        ToolConfig(
            name="update_dashboard_cards",
            description="Replace the cards on a dashboard - use this to rearrange layout or resize visualizations",
            input_schema=object_schema(
                {
                    **DASHBOARD_ID,
                    "cards": {
                        "type": "array",
                        "description": "Complete list of dashcards (id, card_id, row, col, size_x, size_y, series)",
                        "items": {"type": "object"},
                    },
                },
                required=["dashboard_id", "cards"],
            ),
            handler=_update_dashboard_cards,
            validate=require("dashboard_id", "cards"),
        ),
        ToolConfig(
            name="remove_cards_from_dashboard",
            description="Remove cards from a dashboard by card ID; the cards themselves are not deleted",
            input_schema=object_schema(
                {
                    **DASHBOARD_ID,
                    "card_ids": {"type": "array", "items": {"type": "integer"}, "description": "Card IDs to remove"},
                },
                required=["dashboard_id", "card_ids"],
            ),
            handler=_remove_cards_from_dashboard,
            validate=require("dashboard_id", "card_ids"),
        ),
        ToolConfig(
            name="create_public_link",
            description="Generate a publicly accessible URL for a dashboard (requires superuser)",
            input_schema=object_schema(DASHBOARD_ID, required=["dashboard_id"]),
            handler=_create_public_link,
            validate=require("dashboard_id"),
        ),
        ToolConfig(
            name="delete_public_link",
            description="Remove public URL access for a dashboard (requires superuser)",
            input_schema=object_schema(DASHBOARD_ID, required=["dashboard_id"]),
            handler=_delete_public_link,
            validate=require("dashboard_id"),
        ),
        ToolConfig(
            name="favorite_dashboard",
            description="Mark a dashboard as favorite for quick access",
            input_schema=object_schema(DASHBOARD_ID, required=["dashboard_id"]),
            handler=_favorite_dashboard,
            validate=require("dashboard_id"),
        ),
        ToolConfig(
            name="unfavorite_dashboard",
            description="Remove a dashboard from the user's favorites",
            input_schema=object_schema(DASHBOARD_ID, required=["dashboard_id"]),
            handler=_unfavorite_dashboard,
            validate=require("dashboard_id"),
        ),
        ToolConfig(
            name="revert_dashboard",
            description="Restore a dashboard to a previous revision from its history",
            input_schema=object_schema(
                {
                    **DASHBOARD_ID,
                    "revision_id": id_property("The revision ID to revert to"),
                },
                required=["dashboard_id", "revision_id"],
            ),
            handler=_revert_dashboard,
            validate=require("dashboard_id", "revision_id"),
        ),
        ToolConfig(
            name="save_dashboard",
            description="Save a complete dashboard object with nested cards and tabs in one request",
            input_schema=object_schema(
                {"dashboard": {"type": "object", "description": "Dashboard object to save"}},
                required=["dashboard"],
            ),
            handler=_save_dashboard,
            validate=require("dashboard"),
        ),
        ToolConfig(
            name="save_dashboard_to_collection",
            description="Save a complete dashboard object directly into a collection",
            input_schema=object_schema(
                {
                    "parent_collection_id": id_property("The parent collection ID"),
                    "dashboard": {"type": "object", "description": "Dashboard object to save"},
                },
                required=["parent_collection_id", "dashboard"],
            ),
            handler=_save_dashboard_to_collection,
            validate=require("parent_collection_id", "dashboard"),
        ),
    ]

    return tool_group("dashboards", tools, essential=ESSENTIAL, reading=READING, writing=WRITING)
