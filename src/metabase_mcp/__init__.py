"""
Metabase MCP Server

Exposes the Metabase REST API to MCP clients as filtered, config-driven tools.
"""

from .server import main, run, create_server

__version__ = "0.3.0"
__all__ = ["main", "run", "create_server"]
