"""Individual agent implementations — contract analysis and security scoring."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

_FENCE_OPENER = re.compile(r"```(?:json)?\s*")


def extract_balanced_object(text: str, start: int = 0) -> str | None:
    """Return the first complete ``{...}`` object at or after *start*.

    Braces inside double-quoted strings are ignored and a backslash always
    consumes the next character, so ``\\"`` never toggles the string state.
    Returns ``None`` when there is no ``{`` or the object is never closed.
    """
    first = text.find("{", start)
    if first == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i in range(first, len(text)):
        ch = text[i]
        if escape_next:
            escape_next = False
            continue
        if ch == "\\":
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[first : i + 1]

    return None


def _try_loads(candidate: str, loads: Callable[[str], T], strategy: str) -> tuple[bool, T | None]:
    try:
        return True, loads(candidate)
    except (ValueError, RecursionError) as e:
        logger.debug(
            "json_candidate_rejected",
            strategy=strategy,
            error=str(e),
            preview=candidate[:500],
        )
        return False, None


def extract_json(
    text: str,
    loads: Callable[[str], Any] = json.loads,
    default: Any = None,
) -> Any:
    """Recover the first well-formed JSON value from LLM output.

    Strategies, first success wins:

    1. the whole trimmed text,
    2. the first object after a ```` ``` ```` / ```` ```json ```` fence opener,
    3. the first balanced object anywhere in the text.

    *loads* is the deserializer applied to each candidate; a ``ValueError`` from
    it (``json.JSONDecodeError``, pydantic ``ValidationError``) or a
    ``RecursionError`` on pathologically deep nesting just moves on to the next
    strategy. Returns *default* (``None`` unless given) when nothing parses;
    pass a marker object to tell "absent" apart from a literal ``null``.
    """
    trimmed = text.strip()

    ok, value = _try_loads(trimmed, loads, "whole_text")
    if ok:
        return value

    fence = _FENCE_OPENER.search(trimmed)
    if fence:
        candidate = extract_balanced_object(trimmed, fence.end())
        if candidate is not None:
            ok, value = _try_loads(candidate, loads, "fenced_block")
            if ok:
                return value

    # Runs even when a fenced candidate was found but failed to parse
    candidate = extract_balanced_object(trimmed, 0)
    if candidate is not None:
        ok, value = _try_loads(candidate, loads, "balanced_object")
        if ok:
            return value

    return default
