"""
Metabase MCP Server

A Model Context Protocol server exposing the Metabase REST API as tools and
read-only resources. Tools are declared per group (dashboards, cards,
databases, tables, collections) and served from one filtered registry.

Error Handling Strategy:
- All startup phases are wrapped in try/except with detailed logging
- Errors are logged to stderr; stdout is reserved for the stdio transport
- Tool failures are raised as classified MCP errors and returned to the
  client as error results, so the server keeps running
"""

import logging
import sys
import traceback
from typing import Any, Optional, Sequence

# Configure logging FIRST, before any other imports that might log
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("metabase-mcp")

from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.types import Resource, TextContent, Tool

from . import resources
from .client import MetabaseClient
from .config import load_config, validate_config
from .registry import ConfigRegistry, format_response
from .tool_filters import ToolFilterOptions, parse_filter_options
from .tools import ToolGroup, cards, collections, dashboards, databases, tables

SERVER_NAME = "metabase-mcp"

# Registration order is the listing order
GROUP_MODULES = (dashboards, cards, databases, tables, collections)


def load_groups() -> list[ToolGroup]:
    """Register every tool group. A group that fails to load aborts startup."""
    groups = []
    for module in GROUP_MODULES:
        group = module.register()
        groups.append(group)
        logger.info(f"{group.name.capitalize()} group loaded ({len(group.tools)} tools)")
    return groups


def build_registry(client: Any, filter_options: Optional[ToolFilterOptions] = None) -> ConfigRegistry:
    return ConfigRegistry(load_groups(), client, filter_options)


def create_server(client: Any, filter_options: Optional[ToolFilterOptions] = None) -> Server:
    """Create and configure the MCP server around a Metabase client.

    Args:
        client: Backend client passed to every tool handler.
        filter_options: Active tool filter. Defaults to essential mode.

    Returns:
        Configured MCP Server instance.
    """
    logger.info("Creating MCP server...")

    # Phase 1: Build the filtered registry
    try:
        registry = build_registry(client, filter_options)
    except Exception as e:
        logger.critical(f"Failed to build tool registry: {e}")
        logger.critical(f"Traceback:\n{traceback.format_exc()}")
        raise

    # Phase 2: Create server instance
    server = Server(SERVER_NAME)
    logger.info("Server instance created")

    # Phase 3: Register server handlers
    @server.list_tools()
    async def list_tools() -> list[Tool]:
        tools = registry.list_schemas()
        logger.debug(f"list_tools called, returning {len(tools)} tools")
        return tools

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        logger.info(f"Tool call: {name}")
        try:
            result = await registry.dispatch(name, arguments)
        except Exception as e:
            logger.error(f"Tool '{name}' failed with error: {e}")
            logger.error(f"Arguments: {arguments}")
            logger.error(f"Traceback:\n{traceback.format_exc()}")
            raise
        logger.info(f"Tool {name} completed successfully")
        return format_response(result)

    @server.list_resources()
    async def list_resources() -> list[Resource]:
        return resources.list_resources()

    @server.read_resource()
    async def read_resource(uri) -> list[ReadResourceContents]:
        logger.info(f"Resource read: {uri}")
        try:
            text = await resources.read_resource(client, uri)
        except Exception as e:
            logger.error(f"Resource '{uri}' failed with error: {e}")
            raise
        return [ReadResourceContents(content=text, mime_type=resources.MIME_TYPE)]

    server.registry = registry
    logger.info(f"Server handlers registered ({len(registry)} tools)")
    return server


def create_client() -> MetabaseClient:
    """Load configuration from the environment and open the backend client."""
    config = load_config()
    validate_config(config)
    logger.info(f"Metabase URL: {config.url} (auth: {config.auth_method})")
    return MetabaseClient(config)


# =============================================================================
# Main Entry Point (stdio transport)
# =============================================================================

async def run(filter_options: Optional[ToolFilterOptions] = None):
    """Run the MCP server via stdio transport."""
    logger.info("=" * 60)
    logger.info("Starting Metabase MCP Server (stdio)...")
    logger.info("=" * 60)

    try:
        client = create_client()
    except Exception as e:
        logger.critical(f"Failed to configure Metabase client: {e}")
        raise

    try:
        server = create_server(client, filter_options)
        logger.info("Opening stdio transport...")
        async with stdio_server() as (read_stream, write_stream):
            logger.info("Transport ready, starting server loop...")
            init_options = server.create_initialization_options()
            await server.run(read_stream, write_stream, init_options)
    except Exception as e:
        logger.critical(f"Server runtime error: {e}")
        logger.critical(f"Traceback:\n{traceback.format_exc()}")
        raise
    finally:
        await client.aclose()
        logger.info("Server shutdown complete")


def main(argv: Optional[Sequence[str]] = None):
    """Console entry point: parse filter flags, then serve over stdio."""
    import asyncio

    filter_options = parse_filter_options(sys.argv[1:] if argv is None else argv)
    logger.info(f"Tool filter mode: {filter_options.mode}")

    try:
        asyncio.run(run(filter_options))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.critical(f"FATAL ERROR: {type(e).__name__}: {e}")
        logger.critical(f"Full traceback:\n{traceback.format_exc()}")
        sys.exit(1)


if __name__ == "__main__":
    main()
