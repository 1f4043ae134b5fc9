"""Tolerant parsing of streamed tool-call argument text."""

import json
import re

import json5

from .errors import ArgumentParseError

_FENCE_OPEN = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$")

NON_OBJECT_ERROR = "Expected a JSON object for tool arguments (got a non-object value)."


def _strip_code_fences(text: str) -> str:
    trimmed = text.strip()
    if not trimmed.startswith("```"):
        return trimmed
    return _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", trimmed, count=1), count=1).strip()


def _candidates(text: str) -> list[str]:
    candidates = [text]
    start, end = text.find("{"), text.rfind("}")
    if start >= 0 and end > start:
        sliced = text[start:end + 1].strip()
        if sliced and sliced != text:
            candidates.append(sliced)
    return candidates


def _parse_object(text: str, loads) -> dict:
    try:
        parsed = loads(text)
    except (ValueError, TypeError, RecursionError) as exc:
        raise ArgumentParseError(str(exc)) from exc
    if not isinstance(parsed, dict):
        raise ArgumentParseError(NON_OBJECT_ERROR)
    return parsed


def parse_tool_call_arguments(raw: str | None) -> tuple[dict, str | None]:
    """Turn raw tool-argument text into a dict, never raising.

    Tries strict JSON, then JSON5, on the text itself and then on the slice
    between the first ``{`` and the last ``}``. A surrounding markdown code
    fence is removed first.

    Args:
        raw: Accumulated argument text exactly as the vendor streamed it.

    Returns:
        ``(args, parse_error)``. ``args`` is always a dict; ``parse_error`` is
        None on success and a human-readable diagnostic otherwise.
    """
    text = (raw or "").strip()
    if not text:
        return {}, None

    last_error = None
    for candidate in _candidates(_strip_code_fences(text)):
        for loads in (json.loads, json5.loads):
            try:
                return _parse_object(candidate, loads), None
            except ArgumentParseError as exc:
                last_error = exc.message

    return {}, f"Invalid JSON for tool arguments: {last_error or 'unknown error'}"
