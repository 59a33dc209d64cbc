"""Read-only metabase:// resources: JSON listings of the main Metabase entities."""

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from mcp.types import Resource

MIME_TYPE = "application/json"


@dataclass(frozen=True)
class MetabaseResource:
    uri: str
    name: str
    description: str
    load: Callable[[Any], Awaitable[Any]]


RESOURCES = (
    MetabaseResource(
        uri="metabase://dashboards",
        name="All Dashboards",
        description="List of all Metabase dashboards with metadata including name, description, creator, and collection info",
        load=lambda client: client.get_dashboards(),
    ),
    MetabaseResource(
        uri="metabase://cards",
        name="All Cards",
        description="List of all Metabase cards/questions with query definitions, visualization settings, and metadata",
        load=lambda client: client.get_cards(),
    ),
    MetabaseResource(
        uri="metabase://databases",
        name="All Databases",
        description="List of all Metabase database connections with engine type, features, and connection status",
        load=lambda client: client.get_databases(),
    ),
    MetabaseResource(
        uri="metabase://collections",
        name="All Collections",
        description="List of all Metabase collections with hierarchy, permissions, and organizational metadata",
        load=lambda client: client.get_collections(),
    ),
    MetabaseResource(
        uri="metabase://users",
        name="All Users",
        description="List of all active Metabase users with profile and group membership information",
        load=lambda client: client.get_users(),
    ),
)

_BY_URI = {r.uri: r for r in RESOURCES}


def list_resources() -> list[Resource]:
    return [Resource(uri=r.uri, name=r.name, description=r.description, mimeType=MIME_TYPE) for r in RESOURCES]


async def read_resource(client: Any, uri: Any) -> str:
    """Load one resource and return it as indented JSON.

    Raises:
        ValueError: If the URI is not one of RESOURCES.
    """
    # URL types may add a trailing slash to the bare host
    key = str(uri).rstrip("/")
    resource = _BY_URI.get(key)
    if resource is None:
        raise ValueError(f"Unknown resource: {uri}")
    data = await resource.load(client)
    return json.dumps(data, indent=2, default=str)
