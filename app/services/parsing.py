"""Decoding of untrusted model output.

Every call site states its own policy: pass a ``fallback`` to always recover,
or leave it out to get a ``Failed`` result the caller must surface.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FENCE_RE = re.compile(r"^```[\w-]*[ \t]*\n?(.*?)\n?```$", re.DOTALL)


@dataclass
class Parsed(Generic[T]):
    value: T


@dataclass
class Fallback(Generic[T]):
    value: T
    reason: str


@dataclass
class Failed:
    reason: str


ParseResult = Parsed[T] | Fallback[T] | Failed


def strip_wrappers(text: str | None) -> str:
    """Remove surrounding whitespace and an enclosing code fence."""
    if not text:
        return ""
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        cleaned = match.group(1).strip()
    return cleaned


def _first_json_block(text: str) -> str | None:
    """Return the first balanced {...} or [...] block embedded in text."""
    start = None
    depth = 0
    in_string = False
    escape = False
    opener = closer = ""
    for i, ch in enumerate(text):
        if start is None:
            if ch in "{[":
                start, opener = i, ch
                closer = "}" if ch == "{" else "]"
                depth = 1
            continue
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def decode_json(text: str | None) -> Any:
    """Decode a JSON payload, tolerating fences and surrounding prose.

    Raises ValueError when nothing decodable is found.
    """
    cleaned = strip_wrappers(text)
    if not cleaned:
        raise ValueError("empty response")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    block = _first_json_block(cleaned)
    if block is None:
        raise ValueError("no JSON payload found")
    try:
        return json.loads(block)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON payload: {e}") from e


def parse_structured(
    raw: str | None,
    decoder: Callable[[Any], T],
    fallback: T | None = None,
) -> ParseResult[T]:
    """Decode ``raw`` as JSON and shape it with ``decoder``.

    ``decoder`` raises ValueError (pydantic's ValidationError included) when
    the payload has the wrong shape.
    """
    try:
        return Parsed(decoder(decode_json(raw)))
    except ValueError as e:
        reason = str(e).splitlines()[0] if str(e) else type(e).__name__
        if fallback is not None:
            logger.warning(f"Using fallback for unparsable AI response: {reason}")
            return Fallback(fallback, reason)
        logger.warning(f"Unparsable AI response: {reason}")
        return Failed(reason)


def parse_document(raw: str | None) -> Parsed[str] | Failed:
    """Markdown documents only need their wrappers removed and to be non-empty."""
    content = strip_wrappers(raw)
    if not content:
        return Failed("empty response")
    return Parsed(content)
