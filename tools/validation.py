"""Argument checks shared by the tool handlers.  All failures raise ValueError."""

from __future__ import annotations

import math
from typing import Any, Iterable

MAX_STRING_LENGTH = 2000


def require_str(args: dict[str, Any], name: str, max_length: int = MAX_STRING_LENGTH) -> str:
    value = args.get(name)
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    if len(value) > max_length:
        raise ValueError(f"{name} exceeds {max_length} characters")
    return value


def optional_str(args: dict[str, Any], name: str, max_length: int = MAX_STRING_LENGTH) -> str | None:
    if args.get(name) is None:
        return None
    return require_str(args, name, max_length)


def optional_amount(args: dict[str, Any], name: str = "amount") -> float:
    """Non-negative finite number; missing means 0."""
    value = args.get(name)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{name} must be a finite number >= 0")
    return float(value)


def require_choice(args: dict[str, Any], name: str, choices: Iterable[str]) -> str:
    allowed = tuple(choices)
    value = args.get(name)
    if value not in allowed:
        raise ValueError(f"{name} must be one of: {', '.join(allowed)}")
    return value  # type: ignore[return-value]


def reject_unknown(args: dict[str, Any], allowed: Iterable[str], tool: str) -> None:
    unknown = sorted(set(args) - set(allowed))
    if unknown:
        raise ValueError(f"{tool} does not accept: {', '.join(unknown)}")


def credential(args: dict[str, Any], name: str) -> str | None:
    """A presented verification key.  Anything that isn't a string is simply no key."""
    value = args.get(name)
    return value if isinstance(value, str) else None
