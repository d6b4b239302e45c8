"""Response normalization: shape detection, JSON repair and shape validation."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

_DIAGNOSTIC_TEXT_LIMIT = 2000


class UnparseableResponseError(ValueError):
    """Raised when a model response cannot be normalized into the expected shape."""

    def __init__(self, flow_name: str, unparseable: Unparseable) -> None:
        super().__init__(f"{flow_name}: unparseable response ({unparseable.reason}).")
        self.flow_name = flow_name
        self.unparseable = unparseable


# Response shapes. One variant per observed layout; detect_shape picks exactly one.


@dataclass(frozen=True)
class DirectObject:
    payload: dict


@dataclass(frozen=True)
class WrappedArray:
    items: list


@dataclass(frozen=True)
class MessageEnvelope:
    """``{"message": {"content": [{"text": "..."}]}}``"""

    text: str


@dataclass(frozen=True)
class CompletionEnvelope:
    """``{"choices": [{"message": {"content": "..."}}]}``"""

    text: str


@dataclass(frozen=True)
class TextPayload:
    text: str


@dataclass(frozen=True)
class UnknownShape:
    raw: Any


ResponseShape = (
    DirectObject | WrappedArray | MessageEnvelope | CompletionEnvelope | TextPayload | UnknownShape
)


def _message_envelope_text(raw: dict) -> str | None:
    message = raw.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, list) and content:
        first = content[0]
        if isinstance(first, dict) and isinstance(first.get("text"), str):
            return first["text"]
    if isinstance(content, str) and len(raw) == 1:
        return content
    return None


def _completion_envelope_text(raw: dict) -> str | None:
    choices = raw.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    return None


def detect_shape(raw: Any) -> ResponseShape:
    """Classify a raw response into one of the known shapes."""

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        return TextPayload(raw)
    if isinstance(raw, list):
        return WrappedArray(raw)
    if isinstance(raw, dict):
        text = _message_envelope_text(raw)
        if text is not None:
            return MessageEnvelope(text)
        text = _completion_envelope_text(raw)
        if text is not None:
            return CompletionEnvelope(text)
        return DirectObject(raw)
    return UnknownShape(raw)


# Repair steps. Pure text -> text transforms, applied once each in REPAIR_STEPS order.

_CODE_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([\]}])")
_ADJACENT_OBJECTS_RE = re.compile(r"}\s*{")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if present."""

    match = _CODE_FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _sub_outside_strings(pattern: re.Pattern[str], repl: str, text: str) -> str:
    """Apply ``pattern.sub`` to the text between JSON string literals only."""

    pieces: list[str] = []
    start = 0
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
                pieces.append(text[start : index + 1])
                start = index + 1
            continue
        if char == '"':
            pieces.append(pattern.sub(repl, text[start:index]))
            start = index
            in_string = True
    tail = text[start:]
    pieces.append(tail if in_string else pattern.sub(repl, tail))
    return "".join(pieces)


def strip_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing bracket or brace."""

    return _sub_outside_strings(_TRAILING_COMMA_RE, r"\1", text)


def join_adjacent_objects(text: str) -> str:
    """Insert the missing comma between ``}`` and ``{``."""

    return _sub_outside_strings(_ADJACENT_OBJECTS_RE, "},{", text)


def _unclosed_brackets(text: str) -> list[str] | None:
    """Return the stack of open brackets, or None if the text ends inside a string."""

    stack: list[str] = []
    in_string = False
    escaped = False
    for char in text:
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
        elif char in "[{":
            stack.append(char)
        elif char in "]}":
            if not stack:
                return None
            stack.pop()
    if in_string:
        return None
    return stack


def close_truncated_array(text: str) -> str:
    """Cut a truncated array after its last complete object and close what is still open."""

    if "[" not in text:
        return text
    if _unclosed_brackets(text) == []:
        return text

    cut = text.rfind("}")
    while cut != -1:
        candidate = text[: cut + 1].rstrip()
        stack = _unclosed_brackets(candidate)
        if stack is not None and "[" in stack and stack[-1] == "[":
            closers = "".join("]" if bracket == "[" else "}" for bracket in reversed(stack))
            return candidate + closers
        cut = text.rfind("}", 0, cut)
    return text


RepairStep = Callable[[str], str]

REPAIR_STEPS: tuple[tuple[str, RepairStep], ...] = (
    ("strip_trailing_commas", strip_trailing_commas),
    ("join_adjacent_objects", join_adjacent_objects),
    ("close_truncated_array", close_truncated_array),
)


@dataclass(frozen=True)
class ParsedText:
    value: Any
    text: str
    repairs: tuple[str, ...]


def parse_json_text(text: str) -> ParsedText | None:
    """Parse JSON text, falling back to the repair steps. Returns None if nothing parses."""

    current = strip_code_fences(text)
    try:
        return ParsedText(json.loads(current), current, ())
    except json.JSONDecodeError:
        pass

    applied: list[str] = []
    for name, step in REPAIR_STEPS:
        repaired = step(current)
        if repaired == current:
            continue
        current = repaired
        applied.append(name)
        try:
            return ParsedText(json.loads(current), current, tuple(applied))
        except json.JSONDecodeError:
            continue
    return None


# Normalization result.


@dataclass(frozen=True)
class ExpectedShape:
    """Pydantic model the payload must satisfy; bare arrays are wrapped under collection_key."""

    model: type[BaseModel]
    collection_key: str | None = None


@dataclass(frozen=True)
class ParsedPayload:
    data: Any
    shape: str
    repairs: tuple[str, ...] = ()
    original_text: str | None = None
    repaired_text: str | None = None


@dataclass(frozen=True)
class Unparseable:
    reason: str
    shape: str
    original_text: str = ""
    repaired_text: str = ""


def _truncate(text: str) -> str:
    return text[:_DIAGNOSTIC_TEXT_LIMIT]


def _validate(value: Any, expected: ExpectedShape | None) -> tuple[Any, str | None]:
    if expected is None:
        return value, None

    if isinstance(value, list):
        if expected.collection_key is None:
            return None, "bare array received but no collection key is expected"
        value = {expected.collection_key: value}
    if not isinstance(value, dict):
        return None, f"expected an object, got {type(value).__name__}"

    try:
        return expected.model.model_validate(value), None
    except ValidationError as exc:
        return None, f"shape mismatch: {exc.error_count()} validation error(s)"


def normalize(raw: Any, expected: ExpectedShape | None = None) -> ParsedPayload | Unparseable:
    """Turn a raw model response into a validated payload, or explain why it cannot."""

    shape = detect_shape(raw)
    shape_name = type(shape).__name__

    if isinstance(shape, UnknownShape):
        return Unparseable(
            reason=f"unknown response type {type(raw).__name__}",
            shape=shape_name,
            original_text=_truncate(repr(raw)),
        )

    if isinstance(shape, DirectObject):
        data, error = _validate(shape.payload, expected)
        if error:
            return Unparseable(error, shape_name, _truncate(json.dumps(shape.payload, default=str)))
        return ParsedPayload(data=data, shape=shape_name)

    if isinstance(shape, WrappedArray):
        data, error = _validate(shape.items, expected)
        if error:
            return Unparseable(error, shape_name, _truncate(json.dumps(shape.items, default=str)))
        return ParsedPayload(data=data, shape=shape_name)

    text = shape.text
    parsed = parse_json_text(text)
    if parsed is None:
        repaired = strip_code_fences(text)
        for _, step in REPAIR_STEPS:
            repaired = step(repaired)
        return Unparseable(
            reason="invalid JSON after repair",
            shape=shape_name,
            original_text=_truncate(text),
            repaired_text=_truncate(repaired),
        )

    data, error = _validate(parsed.value, expected)
    if error:
        return Unparseable(error, shape_name, _truncate(text), _truncate(parsed.text))
    return ParsedPayload(
        data=data,
        shape=shape_name,
        repairs=parsed.repairs,
        original_text=text,
        repaired_text=parsed.text if parsed.repairs else None,
    )
