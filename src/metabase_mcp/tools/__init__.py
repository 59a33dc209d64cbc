"""Tool config types for the Metabase MCP Server."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ..tool_filters import ToolTags

Handler = Callable[[Any, dict], Awaitable[Any]]


@dataclass(frozen=True)
class ToolConfig:
    """Declarative description of one callable tool."""
    name: str
    description: str
    input_schema: dict
    handler: Handler
    validate: Optional[Callable[[dict], None]] = None
    transform_args: Optional[Callable[[dict], dict]] = None


@dataclass
class ToolGroup:
    """A named group of related tool configs and their filter tags."""
    name: str
    tools: dict[str, ToolConfig]
    essential_tools: list[str] = field(default_factory=list)
    reading_tools: list[str] = field(default_factory=list)
    writing_tools: list[str] = field(default_factory=list)

    def tags_for(self, tool_name: str) -> ToolTags:
        return ToolTags(
            is_essential=tool_name in self.essential_tools,
            is_write=tool_name in self.writing_tools,
            is_read=tool_name in self.reading_tools,
        )

    def check_tags(self) -> None:
        """Raise ValueError if a tag list names a tool this group does not define."""
        for label, names in (
            ("essential", self.essential_tools),
            ("reading", self.reading_tools),
            ("writing", self.writing_tools),
        ):
            unknown = [n for n in names if n not in self.tools]
            if unknown:
                raise ValueError(f"Group '{self.name}' tags unknown {label} tools: {', '.join(unknown)}")


def tool_group(
    name: str,
    configs: list[ToolConfig],
    essential: list[str],
    reading: list[str],
    writing: list[str],
) -> ToolGroup:
    """Build a ToolGroup keyed by tool name.

    Raises:
        ValueError: If two configs in the list share a name.
    """
    tools: dict[str, ToolConfig] = {}
    for config in configs:
        if config.name in tools:
            raise ValueError(f"Group '{name}' defines tool '{config.name}' twice")
        tools[config.name] = config
    return ToolGroup(
        name=name,
        tools=tools,
        essential_tools=list(essential),
        reading_tools=list(reading),
        writing_tools=list(writing),
    )
