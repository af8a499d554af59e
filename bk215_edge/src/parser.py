"""
Stream framer for the BK215 TCP protocol.

The device sends JSON objects back-to-back with no newline or length framing,
so message boundaries have to be found by brace matching.  The scanner tracks
brace depth while honouring string literals and backslash escapes, so braces
inside string values are not counted.

This is a pure function: no I/O, no state beyond the buffer it is given.  The
caller keeps ``rest`` and prepends it to the next chunk.

CHANGELOG:
- 2026-10-04: Drop framed values that decode to something other than an object
- 2026-10-02: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ParseResult:
    """Result of framing one buffer.

    Attributes:
        messages: Decoded top-level JSON objects, in stream order.
        rest: Unconsumed tail (incomplete object) to prime the next call with.
    """

    messages: list[dict[str, Any]] = field(default_factory=list)
    rest: str = ""


def parse_json_stream(rx: str) -> ParseResult:
    """Extract every complete JSON object from *rx*.

    Args:
        rx: Previous ``rest`` plus the newly received text.

    Returns:
        A :class:`ParseResult` with the decoded objects and the leftover tail.
        Garbage before the first ``{`` and after the last complete object is
        dropped; malformed fragments are skipped without aborting the scan.
    """
    result = ParseResult()

    start = rx.find("{")
    if start < 0:
        return result

    rx = rx[start:]

    in_string = False
    escape = False
    depth = 0
    obj_start = 0

    for i, c in enumerate(rx):
        if in_string:
            if escape:
                escape = False
            elif c == "\\":
                escape = True
            elif c == '"':
                in_string = False
            continue

        if c == '"' and depth > 0:
            in_string = True
        elif c == "{":
            if depth == 0:
                obj_start = i
            depth += 1
        elif c == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                _decode_into(rx[obj_start : i + 1], result.messages)

    # An unfinished object is kept whole for the next chunk.  Anything else
    # after the last complete object is garbage: a '{' there would have
    # opened a new object.
    if depth > 0:
        result.rest = rx[obj_start:]
    return result


def _decode_into(raw: str, out: list[dict[str, Any]]) -> None:
    """Decode one framed candidate and append it if it is a JSON object."""
    try:
        obj = json.loads(raw)
    except ValueError:
        logger.debug("Dropping malformed JSON fragment: %.80s", raw)
        return
    if isinstance(obj, dict):
        out.append(obj)
