"""
Turn untrusted model output into schema-valid attributes.

Everything here is pure: no I/O, no logging, no clock. The inference reply is
free text that may wrap a JSON object in prose, so parsing is split into
locating the object (`find_json_object`) and coercing each field
(`normalize_attributes`).
"""

from __future__ import annotations

import json
import math
from typing import Any, Iterable

from . import vocabulary


def find_json_object(text: str) -> str | None:
    """
    Return the first balanced `{...}` substring of `text`, or None.

    Braces inside JSON string literals are ignored. If an opening brace never
    closes, scanning restarts from the next opening brace.
    """
    if not isinstance(text, str):
        return None

    start = text.find("{")
    while start != -1:
        end = _matching_brace(text, start)
        if end is not None:
            return text[start : end + 1]
        start = text.find("{", start + 1)
    return None


def _matching_brace(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def parse_model_output(text: str) -> dict[str, Any] | None:
    """
    Locate and decode the first JSON object in a model reply.

    Returns None when there is no balanced object or it does not decode.
    """
    candidate = find_json_object(text)
    if candidate is None:
        return None
    try:
        data = json.loads(candidate)
    except (ValueError, RecursionError):
        # Deeply nested replies exhaust the decoder stack.
        return None
    return data if isinstance(data, dict) else None


def normalize_themes(raw: Any, allowed: Iterable[str] = vocabulary.THEMES) -> list[str]:
    allowed_set = frozenset(allowed)
    if isinstance(raw, list):
        items = raw
    elif isinstance(raw, str):
        items = [part.strip() for part in raw.split(",")]
    else:
        return []
    # Order and duplicates are kept as the model returned them.
    return [item for item in items if isinstance(item, str) and item in allowed_set]


def _choice(raw: Any, allowed: tuple[str, ...], default: str) -> str:
    if isinstance(raw, str) and raw in allowed:
        return raw
    return default


def normalize_urgency(raw: Any) -> str:
    return _choice(raw, vocabulary.URGENCY_LEVELS, vocabulary.DEFAULT_URGENCY)


def normalize_sentiment(raw: Any) -> str:
    return _choice(raw, vocabulary.SENTIMENTS, vocabulary.DEFAULT_SENTIMENT)


def normalize_value(raw: Any) -> int:
    """
    Round half up to the nearest integer and clamp to [0, 100].

    Booleans, strings, NaN and other non-numbers map to the default.
    """
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return vocabulary.DEFAULT_VALUE
    if isinstance(raw, float):
        if math.isnan(raw):
            return vocabulary.DEFAULT_VALUE
        if math.isinf(raw):
            return vocabulary.VALUE_MAX if raw > 0 else vocabulary.VALUE_MIN
        raw = math.floor(raw + 0.5)
    return max(vocabulary.VALUE_MIN, min(vocabulary.VALUE_MAX, int(raw)))


def normalize_attributes(
    data: Any,
    *,
    themes: Iterable[str] = vocabulary.THEMES,
) -> dict[str, Any]:
    """
    Coerce a decoded model object into `{themes, urgency, value, sentiment}`.

    Never raises; anything that is not a dict yields the defaults.
    """
    if not isinstance(data, dict):
        return vocabulary.default_attributes()

    return {
        "themes": normalize_themes(data.get("themes"), themes),
        "urgency": normalize_urgency(data.get("urgency")),
        "value": normalize_value(data.get("value")),
        "sentiment": normalize_sentiment(data.get("sentiment")),
    }
