"""
Metabase MCP HTTP Server

Remote transports for the Metabase MCP server: streamable HTTP at /mcp and
the older SSE transport at /sse with client messages posted to /messages/.
"""

import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route

from mcp.server.sse import SseServerTransport
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager

from .client import MetabaseClient
from .server import SERVER_NAME, create_client, create_server
from .tool_filters import ToolFilterOptions, parse_filter_options

logger = logging.getLogger("metabase-mcp")

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


async def _check_metabase_health(client: MetabaseClient) -> dict:
    """Check Metabase connectivity and return status."""
    try:
        start = time.time()
        body = await client.health()
        latency_ms = int((time.time() - start) * 1000)
        return {"status": body.get("status", "ok"), "latency_ms": latency_ms}
    except Exception as e:
        return {"status": "error", "error": f"{type(e).__name__}: {str(e)}"}


def create_app(
    filter_options: Optional[ToolFilterOptions] = None,
    client: Optional[MetabaseClient] = None,
) -> Starlette:
    """Create the Starlette ASGI application."""
    client = client or create_client()
    server = create_server(client, filter_options)
    session_manager = StreamableHTTPSessionManager(app=server, stateless=True)
    sse = SseServerTransport("/messages/")

    @asynccontextmanager
    async def lifespan(app):
        logger.info("Metabase MCP HTTP Server starting...")
        try:
            async with session_manager.run():
                yield
        finally:
            await client.aclose()
            logger.info("Metabase MCP HTTP Server shut down.")

    async def handle_sse(request: Request) -> Response:
        logger.info("SSE client connected")
        async with sse.connect_sse(request.scope, request.receive, request._send) as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
        logger.info("SSE client disconnected")
        return Response()

    async def health(request: Request) -> JSONResponse:
        """Report "healthy" when Metabase answers, "degraded" otherwise."""
        checks = {
            "metabase": await _check_metabase_health(client),
            "tools": {"status": "ok", "count": len(server.registry), "mode": server.registry.filter_options.mode},
        }
        overall_status = "healthy" if checks["metabase"]["status"] != "error" else "degraded"
        return JSONResponse({
            "status": overall_status,
            "server": SERVER_NAME,
            "checks": checks,
        })

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/sse", handle_sse, methods=["GET"]),
        Mount("/messages/", app=sse.handle_post_message),
        Mount("/mcp", app=session_manager.handle_request),
    ]

    return Starlette(routes=routes, lifespan=lifespan)


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point for HTTP server."""
    host = os.environ.get("HOST", DEFAULT_HOST)
    port = int(os.environ.get("PORT", str(DEFAULT_PORT)))

    filter_options = parse_filter_options(sys.argv[1:] if argv is None else argv)
    logger.info(f"Tool filter mode: {filter_options.mode}")

    try:
        app = create_app(filter_options)
    except Exception as e:
        logger.critical(f"FATAL ERROR: {type(e).__name__}: {e}")
        sys.exit(1)

    logger.info(f"Serving on http://{host}:{port} (/mcp, /sse, /health)")
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
