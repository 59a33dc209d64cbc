"""Error types for the Metabase MCP server.

Registry errors subclass the MCP library's McpError so the runtime reports
them to the client with their JSON-RPC error code intact.
"""

from typing import Optional

from mcp.shared.exceptions import McpError
from mcp.types import ErrorData, INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND


class MethodNotFoundError(McpError):
    """Tool name is unknown or filtered out of the active mode."""

    def __init__(self, message: str):
        super().__init__(ErrorData(code=METHOD_NOT_FOUND, message=message))


class ToolValidationError(McpError):
    """Tool arguments were rejected before any backend call."""

    def __init__(self, message: str):
        super().__init__(ErrorData(code=INVALID_PARAMS, message=message))


class ToolInternalError(McpError):
    """A tool handler failed for a reason that has no classification of its own."""

    def __init__(self, message: str):
        super().__init__(ErrorData(code=INTERNAL_ERROR, message=message))


class DuplicateToolError(ValueError):
    """Two tool groups define the same tool name."""


class ConfigError(ValueError):
    """Metabase connection settings are missing or malformed."""


class MetabaseAPIError(RuntimeError):
    """Metabase answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint
