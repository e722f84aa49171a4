"""Parser for generation provider responses.

The provider is asked for a bare JSON object but sometimes wraps it in a
markdown code fence or surrounds it with prose.  :func:`parse_copy_response`
handles both:

1. Strip a surrounding code fence (```` ``` ```` or ```` ```json ````).
2. Locate the first ``{`` and its matching ``}``, skipping braces inside
   JSON strings.
3. Decode that span and require ``headlines`` and ``descriptions`` arrays.
4. Keep the non-blank string items and truncate to the requested counts.
   A response left with no headline and no description is a failure.

The parser never raises.  It returns either :class:`ParsedCopy` or
:class:`ParseFailed` so that a bad response stays a per-URL failure.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from rsa_writer.core.schemas import MAX_DESCRIPTIONS, MAX_HEADLINES, GeneratedCopy

_FENCE_RE = re.compile(r"^```[\w-]*[ \t]*\n?(?P<body>.*?)\n?```$", re.DOTALL)


@dataclass(frozen=True)
class ParsedCopy:
    headlines: tuple[str, ...]
    descriptions: tuple[str, ...]

    def to_generated_copy(self) -> GeneratedCopy:
        return GeneratedCopy(headlines=list(self.headlines), descriptions=list(self.descriptions))


@dataclass(frozen=True)
class ParseFailed:
    reason: str


ParseOutcome = Union[ParsedCopy, ParseFailed]


def strip_code_fence(text: str) -> str:
    """Remove one markdown code fence surrounding *text*, if present."""
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    if match:
        return match.group("body").strip()
    return stripped


def find_json_object(text: str) -> Optional[str]:
    """Return the span from the first ``{`` to its matching ``}``.

    Braces inside double-quoted strings (including escaped quotes) are not
    counted.  Returns ``None`` when there is no ``{`` or it is never closed.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def _clean_items(values: list[Any], limit: int) -> tuple[str, ...]:
    items = [value.strip() for value in values if isinstance(value, str) and value.strip()]
    return tuple(items[:limit])


def parse_copy_response(
    text: Optional[str],
    *,
    max_headlines: int = MAX_HEADLINES,
    max_descriptions: int = MAX_DESCRIPTIONS,
) -> ParseOutcome:
    """Parse a provider response into headlines and descriptions.

    Args:
        text: Raw response text.
        max_headlines: Headlines kept; extras are dropped.
        max_descriptions: Descriptions kept; extras are dropped.

    Returns:
        :class:`ParsedCopy` on success, otherwise :class:`ParseFailed` with
        a short reason.
    """
    if not text or not text.strip():
        return ParseFailed("Empty response")

    candidate = find_json_object(strip_code_fence(text))
    if candidate is None:
        return ParseFailed("No JSON object found in response")

    try:
        decoded = json.loads(candidate)
    except json.JSONDecodeError as exc:
        return ParseFailed(f"Invalid JSON: {exc.msg}")

    if not isinstance(decoded, dict):
        return ParseFailed("Response is not a JSON object")

    headlines = decoded.get("headlines")
    descriptions = decoded.get("descriptions")
    if not isinstance(headlines, list) or not isinstance(descriptions, list):
        return ParseFailed("Response lacks headlines and descriptions arrays")

    parsed = ParsedCopy(
        headlines=_clean_items(headlines, max_headlines),
        descriptions=_clean_items(descriptions, max_descriptions),
    )
    if not parsed.headlines and not parsed.descriptions:
        return ParseFailed("No headlines or descriptions")
    return parsed
