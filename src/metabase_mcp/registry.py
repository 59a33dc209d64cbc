"""Config-driven tool registry.

Merges every tool group into one name-keyed table, drops the tools the
active filter mode excludes, and dispatches calls through a single path:
validate, transform, run the handler.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from mcp.shared.exceptions import McpError
from mcp.types import TextContent, Tool

from .errors import DuplicateToolError, MethodNotFoundError, ToolInternalError
from .tool_filters import ToolFilterOptions, ToolTags
from .tools import ToolConfig, ToolGroup

logger = logging.getLogger("metabase-mcp")


@dataclass(frozen=True)
class RegistryEntry:
    config: ToolConfig
    tags: ToolTags
    group: str


def format_response(result: Any) -> list[TextContent]:
    """Wrap a handler result in the envelope every tool call returns.

    Strings (e.g. CSV exports) are passed through as-is; everything else is
    serialized as indented JSON.
    """
    if isinstance(result, str):
        text = result
    else:
        text = json.dumps(result, indent=2, default=str)
    return [TextContent(type="text", text=text)]


def build_table(groups: Sequence[ToolGroup]) -> dict[str, RegistryEntry]:
    """Merge tool groups in order into one table.

    Raises:
        DuplicateToolError: If two groups define the same tool name.
        ValueError: If a group tags a tool it does not define.
    """
    table: dict[str, RegistryEntry] = {}
    for group in groups:
        group.check_tags()
        for name, config in group.tools.items():
            if name in table:
                raise DuplicateToolError(
                    f"Tool '{name}' from group '{group.name}' collides with group '{table[name].group}'"
                )
            table[name] = RegistryEntry(config=config, tags=group.tags_for(name), group=group.name)
    return table


class ConfigRegistry:
    """Filtered, read-only table of tool configs with listing and dispatch."""

    def __init__(
        self,
        groups: Sequence[ToolGroup],
        client: Any,
        filter_options: Optional[ToolFilterOptions] = None,
    ):
        self.client = client
        self.filter_options = filter_options or ToolFilterOptions()

        table = build_table(groups)
        self._entries: dict[str, RegistryEntry] = {
            name: entry for name, entry in table.items() if self.filter_options.allows(entry.tags)
        }
        # Schemas are immutable; build them once so every listing is identical
        self._schemas: list[Tool] = [
            Tool(name=e.config.name, description=e.config.description, inputSchema=e.config.input_schema)
            for e in self._entries.values()
        ]
        logger.info(
            f"Registry built: {len(self._entries)} of {len(table)} tools kept "
            f"(mode: {self.filter_options.mode})"
        )

    @property
    def tool_names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def list_schemas(self) -> list[Tool]:
        """Return the public schema of every kept tool, in registration order."""
        return list(self._schemas)

    async def dispatch(self, name: str, arguments: Optional[dict] = None) -> Any:
        """Run one tool call and return the handler's result unchanged.

        Raises:
            MethodNotFoundError: If the tool is unknown or filtered out.
            ToolValidationError: If the tool's validator rejects the arguments.
            ToolInternalError: If the handler fails with an unclassified error.
        """
        entry = self._entries.get(name)
        if entry is None:
            raise MethodNotFoundError(f"Unknown tool: {name}")

        config = entry.config
        raw_args = arguments or {}
        try:
            if config.validate is not None:
                config.validate(raw_args)
            args = config.transform_args(raw_args) if config.transform_args is not None else raw_args
            return await config.handler(self.client, args)
        except McpError:
            raise
        except Exception as e:
            raise ToolInternalError(f"Tool execution failed: {e}") from e
