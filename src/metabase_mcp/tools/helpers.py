"""Shared utilities for all tool groups."""

from typing import Any, Callable, Iterable

from ..errors import ToolValidationError

ID_SCHEMA = {"type": "integer", "minimum": 1}


def id_property(description: str) -> dict:
    """Schema for a positive integer id argument."""
    return {**ID_SCHEMA, "description": description}


def object_schema(properties: dict, required: Iterable[str] = ()) -> dict:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    required = list(required)
    if required:
        schema["required"] = required
    return schema


def require(*keys: str) -> Callable[[dict], None]:
    """Build a validator that rejects missing or empty arguments."""

    def validate(args: dict) -> None:
        missing = [k for k in keys if args.get(k) is None or args.get(k) == ""]
        if missing:
            raise ToolValidationError(f"Missing required argument(s): {', '.join(missing)}")

    return validate


def require_one_of(key: str, allowed: Iterable[str]) -> Callable[[dict], None]:
    """Build a validator that restricts an argument to a fixed set of values."""
    allowed = tuple(allowed)

    def validate(args: dict) -> None:
        value = args.get(key)
        if value not in allowed:
            raise ToolValidationError(f"Invalid {key}: {value!r}. Must be one of: {', '.join(allowed)}")

    return validate


def all_of(*validators: Callable[[dict], None]) -> Callable[[dict], None]:
    """Chain validators; the first failure wins."""

    def validate(args: dict) -> None:
        for v in validators:
            v(args)

    return validate


def without(args: dict, *keys: str) -> dict:
    """Copy of args minus the given keys and any None values."""
    return {k: v for k, v in args.items() if k not in keys and v is not None}


def present(args: dict, *keys: str) -> dict:
    """Subset of args for the given keys that are set."""
    return {k: args[k] for k in keys if args.get(k) is not None}
