"""Defensive JSON extraction from free-form completion text.

Completions wrap JSON in markdown fences, add prose around it, emit invalid
escapes, or get cut off mid-object. ``extract_json`` tries, in order: the raw
candidate, a sanitized candidate, and a repaired (closed-off) candidate, and
reports an explicit failure instead of raising.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Literal

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_OPEN_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*)", re.IGNORECASE)
_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_BAD_ESCAPE_RE = re.compile(r'\\(?!["\\/bfnrtu])')


@dataclass(frozen=True)
class JsonParsed:
    """Successfully decoded JSON value."""

    value: Any


@dataclass(frozen=True)
class JsonParseFailure:
    """No usable JSON in the text."""

    reason: str


JsonParseResult = JsonParsed | JsonParseFailure


def _strip_fence(text: str) -> str:
    """Body of the first fenced block (closed or truncated), else the text."""
    closed = _FENCE_RE.search(text)
    if closed:
        return closed.group(1).strip()
    opened = _OPEN_FENCE_RE.search(text)
    if opened:
        return opened.group(1).strip()
    return text


def _extract_balanced(text: str, open_ch: str, close_ch: str) -> str | None:
    """First ``open_ch ... close_ch`` block, bracket-matched outside strings.

    An unclosed block returns everything from the opening bracket on.
    """
    start = text.find(open_ch)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return text[start:]


def _sanitize(text: str) -> str:
    """Drop control characters and backslashes that start no valid escape."""
    return _BAD_ESCAPE_RE.sub("", _CONTROL_CHARS_RE.sub("", text))


def _open_counts(text: str) -> tuple[int, int]:
    braces = brackets = 0
    in_string = False
    escape = False
    for ch in text:
        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            braces += 1
        elif ch == "}":
            braces -= 1
        elif ch == "[":
            brackets += 1
        elif ch == "]":
            brackets -= 1
    return braces, brackets


def _repair_truncated(text: str) -> str | None:
    """Close a truncated object/array after its last complete member."""
    braces, brackets = _open_counts(text)
    if braces <= 0 and brackets <= 0:
        return None

    last_obj = text.rfind("}")
    repaired = text[: last_obj + 1] if last_obj > 0 else text
    braces, brackets = _open_counts(repaired)

    # Close in reverse order of opening
    stack: list[str] = []
    in_string = False
    escape = False
    for ch in repaired:
        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack:
            stack.pop()
    if in_string:
        return None
    return repaired + "".join(reversed(stack))


def _loads(candidate: str) -> Any:
    """json.loads with sanitize and repair retries."""
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    sanitized = _sanitize(candidate)
    try:
        return json.loads(sanitized)
    except json.JSONDecodeError:
        pass

    repaired = _repair_truncated(sanitized)
    if repaired is not None:
        try:
            return json.loads(repaired)
        except json.JSONDecodeError:
            pass

    raise ValueError("all JSON parse attempts failed")


def extract_json(
    text: str | None, *, expect: Literal["object", "array"] = "object"
) -> JsonParseResult:
    """Extract the first well-formed JSON object (or array) from ``text``."""
    if not text or not text.strip():
        return JsonParseFailure("empty completion")

    body = _strip_fence(text)

    if expect == "array":
        array_str = _extract_balanced(body, "[", "]")
        if array_str is not None:
            try:
                value = _loads(array_str)
            except ValueError as e:
                return JsonParseFailure(str(e))
            if isinstance(value, list):
                return JsonParsed(value)
            if isinstance(value, dict):
                return JsonParsed([value])
        object_str = _extract_balanced(body, "{", "}")
        if object_str is not None:
            try:
                value = _loads(object_str)
            except ValueError as e:
                return JsonParseFailure(str(e))
            if isinstance(value, dict):
                return JsonParsed([value])
        return JsonParseFailure("no JSON array found")

    object_str = _extract_balanced(body, "{", "}")
    if object_str is None:
        return JsonParseFailure("no JSON object found")
    try:
        value = _loads(object_str)
    except ValueError as e:
        return JsonParseFailure(str(e))
    if not isinstance(value, dict):
        return JsonParseFailure(f"expected object, got {type(value).__name__}")
    return JsonParsed(value)


def split_reply_and_json(text: str) -> tuple[str, dict[str, Any] | None]:
    """Separate the prose reply from a trailing ```json block.

    Returns:
        (reply text without the block, decoded object or None when the
        block is missing or unusable)
    """
    match = _JSON_FENCE_RE.search(text)
    if not match:
        return text.strip(), None

    reply = (text[: match.start()] + text[match.end() :]).strip()
    result = extract_json(match.group(1))
    if isinstance(result, JsonParsed):
        return reply, result.value
    return reply, None
