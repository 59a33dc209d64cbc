"""Collection, search, user, permission and activity tools."""

from . import ToolConfig, ToolGroup, tool_group
from ..errors import ToolValidationError
from .helpers import all_of, id_property, object_schema, present, require, require_one_of, without


ESSENTIAL = [
    "list_collections",
    "get_collection_items",
    "search_content",
    "list_users",
    "list_permission_groups",
]
READING = [
    "list_collections",
    "get_collection_items",
    "search_content",
    "list_users",
    "list_permission_groups",
    "get_most_recently_viewed_dashboard",
    "get_popular_items",
    "get_recent_views",
    "get_recents",
]
WRITING = [
    "create_collection",
    "update_collection",
    "delete_collection",
    "move_to_collection",
    "post_recents",
]

MOVABLE_ITEMS = ("card", "dashboard")
RECENTS_CONTEXTS = ["selections", "views"]

COLLECTION_ID = {"collection_id": id_property("Collection ID")}
COLLECTION_FIELDS = {
    "name": {"type": "string", "minLength": 1, "description": "Name of the collection"},
    "description": {"type": "string", "description": "Description of the collection"},
    "color": {"type": "string", "description": "Color of the collection"},
    "parent_id": id_property("Parent collection ID (omit for root level)"),
}


async def _list_collections(client, args):
    return await client.get_collections(archived=bool(args.get("archived")))


async def _get_collection_items(client, args):
    params = {"models": args.get("models"), "archived": args.get("archived")}
    return await client.api_call("GET", f"/api/collection/{args['collection_id']}/items", params=params)


async def _search_content(client, args):
    # Any extra arguments are passed through as search filters
    return await client.api_call("GET", "/api/search", params=args)


def _validate_search(args: dict) -> None:
    q = args.get("q")
    if not isinstance(q, str) or not q.strip():
        raise ToolValidationError("Search query 'q' must be a non-empty string")


async def _list_users(client, args):
    return await client.get_users(include_deactivated=bool(args.get("include_deactivated")))


async def _list_permission_groups(client, args):
    return await client.get_permission_groups()


async def _create_collection(client, args):
    return await client.api_call("POST", "/api/collection", json=present(args, *COLLECTION_FIELDS))


async def _update_collection(client, args):
    updates = without(args, "collection_id")
    if not updates:
        raise ToolValidationError(f"No updates provided for collection {args['collection_id']}")
    return await client.api_call("PUT", f"/api/collection/{args['collection_id']}", json=updates)


async def _delete_collection(client, args):
    await client.api_call("DELETE", f"/api/collection/{args['collection_id']}")
    return {"collection_id": args["collection_id"], "action": "deleted", "status": "success"}


def _require_target(args: dict) -> None:
    # null is a valid target: it means the root collection
    if "collection_id" not in args:
        raise ToolValidationError("Missing required argument(s): collection_id")


async def _move_to_collection(client, args):
    return await client.api_call(
        "PUT", f"/api/{args['item_type']}/{args['item_id']}", json={"collection_id": args["collection_id"]}
    )


async def _get_most_recently_viewed_dashboard(client, args):
    return await client.api_call("GET", "/api/activity/most_recently_viewed_dashboard")


async def _get_popular_items(client, args):
    return await client.api_call("GET", "/api/activity/popular_items")


async def _get_recent_views(client, args):
    return await client.api_call("GET", "/api/activity/recent_views")


async def _get_recents(client, args):
    params = {"context": args.get("context"), "include_metadata": args.get("include_metadata")}
    return await client.api_call("GET", "/api/activity/recents", params=params)


async def _post_recents(client, args):
    return await client.api_call("POST", "/api/activity/recents", json=args["data"])


def register() -> ToolGroup:
    tools = [
        ToolConfig(
            name="list_collections",
            description="List all collections in Metabase",
            input_schema=object_schema(
                {"archived": {"type": "boolean", "default": False, "description": "Include archived collections"}}
            ),
            handler=_list_collections,
        ),
        ToolConfig(
            name="get_collection_items",
            description="Retrieve the items (cards, dashboards, sub-collections) inside a collection",
            input_schema=object_schema(
                {
                    **COLLECTION_ID,
                    "models": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Restrict to these item models (card, dashboard, collection, dataset)",
                    },
                    "archived": {"type": "boolean", "description": "Return archived items instead"},
                },
                required=["collection_id"],
            ),
            handler=_get_collection_items,
            validate=require("collection_id"),
        ),
        ToolConfig(
            name="search_content",
            description=(
                "Search across all Metabase content including cards, dashboards, collections, and models. "
                "Extra arguments such as models or collection are passed through as search filters."
            ),
            input_schema={
                "type": "object",
                "properties": {"q": {"type": "string", "minLength": 1, "description": "Search query"}},
                "required": ["q"],
                "additionalProperties": True,
            },
            handler=_search_content,
            validate=_validate_search,
            transform_args=without,
        ),
        ToolConfig(
            name="list_users",
            description="List all users in Metabase",
            input_schema=object_schema(
                {"include_deactivated": {"type": "boolean", "default": False, "description": "Include deactivated users"}}
            ),
            handler=_list_users,
        ),
        ToolConfig(
            name="list_permission_groups",
            description="List all permission groups",
            input_schema=object_schema({}),
            handler=_list_permission_groups,
        ),
        ToolConfig(
            name="create_collection",
            description="Create a new collection",
            input_schema=object_schema(COLLECTION_FIELDS, required=["name"]),
            handler=_create_collection,
            validate=require("name"),
        ),
        ToolConfig(
            name="update_collection",
            description="Update a collection's name, description, color, or parent",
            input_schema=object_schema(
                {**COLLECTION_ID, **COLLECTION_FIELDS, "archived": {"type": "boolean", "description": "Archive the collection"}},
                required=["collection_id"],
            ),
            handler=_update_collection,
            validate=require("collection_id"),
        ),
        ToolConfig(
            name="delete_collection",
            description="Delete a collection",
            input_schema=object_schema(COLLECTION_ID, required=["collection_id"]),
            handler=_delete_collection,
            validate=require("collection_id"),
        ),
        ToolConfig(
            name="move_to_collection",
            description="Move a card or dashboard to a different collection, or to the root with collection_id null",
            input_schema=object_schema(
                {
                    "item_type": {"type": "string", "enum": list(MOVABLE_ITEMS), "description": "Item type"},
                    "item_id": id_property("Item ID"),
                    "collection_id": {
                        "type": ["integer", "null"],
                        "description": "Target collection ID (null for root)",
                    },
                },
                required=["item_type", "item_id", "collection_id"],
            ),
            handler=_move_to_collection,
            validate=all_of(
                require("item_type", "item_id"),
                require_one_of("item_type", MOVABLE_ITEMS),
                _require_target,
            ),
        ),
        ToolConfig(
            name="get_most_recently_viewed_dashboard",
            description="Get the dashboard the current user viewed most recently",
            input_schema=object_schema({}),
            handler=_get_most_recently_viewed_dashboard,
        ),
        ToolConfig(
            name="get_popular_items",
            description="Get the most popular items in Metabase",
            input_schema=object_schema({}),
            handler=_get_popular_items,
        ),
        ToolConfig(
            name="get_recent_views",
            description="Get the current user's recent views",
            input_schema=object_schema({}),
            handler=_get_recent_views,
        ),
        ToolConfig(
            name="get_recents",
            description="Get the items the current user has viewed or selected recently, filterable by context",
            input_schema=object_schema(
                {
                    "context": {
                        "type": "array",
                        "items": {"type": "string", "enum": RECENTS_CONTEXTS},
                        "description": "Filter by context type",
                    },
                    "include_metadata": {"type": "boolean", "default": False, "description": "Include metadata"},
                }
            ),
            handler=_get_recents,
        ),
        ToolConfig(
            name="post_recents",
            description="Record a recent activity entry for the current user",
            input_schema=object_schema(
                {"data": {"type": "object", "description": "Activity data to post"}},
                required=["data"],
            ),
            handler=_post_recents,
            validate=require("data"),
        ),
    ]

    return tool_group("collections", tools, essential=ESSENTIAL, reading=READING, writing=WRITING)
