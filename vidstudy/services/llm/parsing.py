"""
Tolerant parsing of model replies.

Models wrap JSON in ```json fences, add a sentence before it, or return a
bare array where an object was asked for. Parsing tries, in order:

1. the whole reply (after stripping one code fence),
2. the outermost JSON object or array found in the text.

Shape normalization is explicit: a `ListPayload` is either a bare array or
an object carrying the array under one of the known field names.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Sequence

from vidstudy.services.llm.errors import InvalidResponse

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\n?([\s\S]*?)```")


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the trimmed text."""
    s = (text or "").strip()
    m = _FENCE_RE.search(s)
    if m:
        return m.group(1).strip()
    # unterminated fence (stream cut short, or model forgot to close)
    if s.startswith("```"):
        s = s.split("\n", 1)[1] if "\n" in s else ""
    return s.strip()


_WRAPPING_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*[ \t]*\n?([\s\S]*?)\n?```$")


def strip_wrapping_fence(text: str) -> str:
    """For free text: drop a fence only when it wraps the whole reply.

    Fenced blocks inside a markdown answer are content and stay.
    """
    s = (text or "").strip()
    m = _WRAPPING_FENCE_RE.match(s)
    if m and "```" not in m.group(1):
        return m.group(1).strip()
    return s


def _outermost(text: str, open_ch: str, close_ch: str) -> str | None:
    start = text.find(open_ch)
    end = text.rfind(close_ch)
    if start >= 0 and end > start:
        return text[start : end + 1]
    return None


def parse_json(text: str) -> Any:
    """Best-effort JSON extraction; raises InvalidResponse when nothing parses."""
    body = strip_code_fences(text)
    if not body:
        raise InvalidResponse(detail="Empty response from model")

    try:
        return json.loads(body)
    except ValueError:
        pass

    candidates = [_outermost(body, "{", "}"), _outermost(body, "[", "]")]
    # whichever bracket opens first is the outermost value
    candidates = sorted((c for c in candidates if c), key=body.find)
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue

    raise InvalidResponse(detail=f"Model returned non-JSON. First 200 chars: {body[:200]!r}")


@dataclass(frozen=True)
class ListPayload:
    """A list of items, and which shape it arrived in ("bare" or the wrapping field)."""

    items: list[Any]
    shape: str


def parse_list_payload(text: str, fields: Sequence[str]) -> ListPayload:
    data = parse_json(text)

    if isinstance(data, list):
        return ListPayload(items=data, shape="bare")
    if isinstance(data, dict):
        for name in fields:
            value = data.get(name)
            if isinstance(value, list):
                return ListPayload(items=value, shape=name)

    expected = ", ".join(fields)
    raise InvalidResponse(detail=f"Expected an array or an object with one of [{expected}]")


def parse_object_payload(text: str, fields: Sequence[str], required_key: str) -> dict[str, Any]:
    """An object that has `required_key` itself, or is wrapped under one of `fields`."""
    data = parse_json(text)

    if isinstance(data, dict):
        if required_key in data:
            return data
        for name in fields:
            value = data.get(name)
            if isinstance(value, dict) and required_key in value:
                return value

    raise InvalidResponse(detail=f"Expected an object with a {required_key!r} key")
