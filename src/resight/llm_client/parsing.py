"""Defensive extraction of a JSON object from model output."""

import re
from typing import Any

import orjson

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences (```json ... ```) around a payload."""
    return _FENCE_RE.sub("", text).strip()


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Find the JSON object in a model reply.

    Tries, in order: the text with code fences stripped, then the widest
    ``{...}`` span inside it.

    Args:
        text: Raw model output.

    Returns:
        The parsed object, or None when no JSON object could be recovered.
    """
    cleaned = strip_code_fences(text)
    candidates = [cleaned]
    match = _OBJECT_RE.search(cleaned)
    if match and match.group(0) != cleaned:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            parsed = orjson.loads(candidate)
        except orjson.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None
