"""Tool filtering by command line mode flags (--all, --write, --read, --essential)."""

from dataclasses import dataclass
from typing import Sequence

ESSENTIAL = "essential"
WRITE = "write"
READ = "read"
ALL = "all"

# Highest priority first; the first flag present wins regardless of argv order
_FLAG_PRIORITY = (
    ("--all", ALL),
    ("--write", WRITE),
    ("--read", READ),
    ("--essential", ESSENTIAL),
)


@dataclass(frozen=True)
class ToolTags:
    """Filter metadata for one tool. Never consulted by dispatch."""
    is_essential: bool = False
    is_write: bool = False
    is_read: bool = False


@dataclass(frozen=True)
class ToolFilterOptions:
    mode: str = ESSENTIAL

    def allows(self, tags: ToolTags) -> bool:
        """Return True if a tool with these tags is registered in this mode."""
        if self.mode == ALL:
            return True
        if self.mode == WRITE:
            return tags.is_write
        if self.mode == READ:
            return tags.is_read
        return tags.is_essential


def parse_filter_options(argv: Sequence[str]) -> ToolFilterOptions:
    """Parse process arguments into filter options.

    Unrecognized arguments are ignored. Defaults to essential mode.
    """
    args = set(argv)
    for flag, mode in _FLAG_PRIORITY:
        if flag in args:
            return ToolFilterOptions(mode=mode)
    return ToolFilterOptions(mode=ESSENTIAL)
