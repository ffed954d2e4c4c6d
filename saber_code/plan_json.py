"""Recover a JSON plan object from free-form model output."""

import json
import re
from typing import Any, Iterator, List

from .errors import PlanParseError

__all__ = [
    "extract_json_object", "repair_json", "parse_plan_text",
    "find_placeholders", "GOAL_PLACEHOLDERS",
]

GOAL_PLACEHOLDERS = {"<goal string>", "<goal>", "...", "your goal here"}

# only untagged or json-tagged fences; ```js and friends hold code, not plans
_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n(.*?)```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_SINGLE_QUOTED_RE = re.compile(r"'([^'\\\n\"]*)'")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
_ANGLE_PLACEHOLDER_RE = re.compile(r"<[A-Za-z][A-Za-z0-9_ \-]*>")


def _balanced_object(text: str, start: int = 0) -> str:
    start = text.find("{", start)
    if start < 0:
        return ""
    depth = 0
    quote = None
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in "\"'":
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return ""


def _candidates(raw: str) -> Iterator[str]:
    """Balanced ``{...}`` blocks: fenced JSON first, then every block in the text."""
    for fenced in _FENCE_RE.finditer(raw):
        found = _balanced_object(fenced.group(1))
        if found:
            yield found
    pos = raw.find("{")
    while pos >= 0:
        found = _balanced_object(raw, pos)
        if found:
            yield found
            pos += len(found) - 1
        pos = raw.find("{", pos + 1)


def extract_json_object(raw: str) -> str:
    """Return the first balanced ``{...}`` block, looking inside a code fence first."""
    if not isinstance(raw, str) or not raw.strip():
        raise PlanParseError("Model returned an empty response", raw or "")
    for found in _candidates(raw):
        return found
    raise PlanParseError("No JSON object found in model output", raw)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return json.loads(repair_json(text))


def _split_strings(text: str) -> List[str]:
    """Split into alternating [outside, "string", outside, ...] segments."""
    segments = []
    buf = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            buf.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                segments.append("".join(buf))
                buf = []
                in_string = False
            continue
        if ch == '"':
            segments.append("".join(buf))
            buf = [ch]
            in_string = True
        else:
            buf.append(ch)
    segments.append("".join(buf))
    return segments


def _outside_strings(text: str, fix) -> str:
    segments = _split_strings(text)
    for i in range(0, len(segments), 2):
        segments[i] = fix(segments[i])
    return "".join(segments)


def _fix_structure(part: str) -> str:
    part = _TRAILING_COMMA_RE.sub(r"\1", part)
    return _BARE_KEY_RE.sub(r'\1"\2"\3', part)


def repair_json(text: str) -> str:
    """Fix the common model mistakes: single quotes, trailing commas, bare keys.

    Double-quoted string contents are never touched.
    """
    text = _outside_strings(text, lambda part: _SINGLE_QUOTED_RE.sub(r'"\1"', part))
    return _outside_strings(text, _fix_structure)


def parse_plan_text(raw: str) -> dict:
    """Parse the first candidate object that loads as a JSON object."""
    extract_json_object(raw)
    first_error = None
    for text in _candidates(raw):
        try:
            data = _loads(text)
        except json.JSONDecodeError as e:
            first_error = first_error or e
            continue
        if isinstance(data, dict):
            return data
    if first_error is not None:
        raise PlanParseError(
            f"Invalid JSON in plan ({first_error.msg} at line {first_error.lineno})", raw
        )
    raise PlanParseError("Plan must be a JSON object", raw)


def find_placeholders(value: Any) -> List[str]:
    """Placeholder markers found anywhere inside ``value``."""
    found: List[str] = []
    if isinstance(value, str):
        if "..." in value:
            found.append("...")
        found.extend(_ANGLE_PLACEHOLDER_RE.findall(value))
    elif isinstance(value, dict):
        for item in value.values():
            found.extend(find_placeholders(item))
    elif isinstance(value, (list, tuple)):
        for item in value:
            found.extend(find_placeholders(item))
    return found
