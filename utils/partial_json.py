"""Best-effort field extraction from JSON that is still being streamed.

The model emits one JSON object token by token. While the object is still
open, `extract_fields` recovers every declared field whose value is already
syntactically complete:

  string  → returned once its closing quote has arrived, never guessed
  object  → returned once its closing brace has arrived
  array   → returned whole once closed; while still open, the prefix of
            complete elements is returned instead

A field that cannot be determined yet is simply absent from the result.
Extraction is a pure function of the buffer: there is no cursor carried
between calls, so the caller recomputes from the full buffer each time.

Key lookup matches the quoted key followed by a colon. That is enough to
tell `"name"` apart from `"companyName"` for the fixed stage schemas; it is
not a general JSON tokenizer and a key repeated inside a nested object
earlier in the buffer will be matched first.

The module also holds the final-parse helpers the stage runner applies once
the stream has ended (`find_json_object`, `clean_json_text`).
"""
import json
import re
from functools import lru_cache
from typing import Any, Iterable

from models.stages import ExtractedFieldSet, FieldDef

_OPENERS = {"array": "[", "object": "{"}
_CLOSERS = {"[": "]", "{": "}"}
_SCALAR_TERMINATORS = frozenset(",]}")

# Known artifacts of model-produced JSON
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def extract_fields(buffer: str, schema: Iterable[FieldDef]) -> dict[str, Any]:
    """Return the value of every schema field that is already complete in `buffer`."""
    result: dict[str, Any] = {}
    for field in schema:
        value_start = _value_start(buffer, field.name)
        if value_start is None:
            continue
        if field.kind == "string":
            value = _read_string(buffer, value_start)
        else:
            value = _read_container(buffer, value_start, _OPENERS[field.kind])
        if value is not None:
            result[field.name] = value
    return result


def extract_field_set(
    buffer: str,
    schema: Iterable[FieldDef],
    token_count: int,
    is_final: bool = False,
) -> ExtractedFieldSet:
    fields = extract_fields(buffer, schema)
    return ExtractedFieldSet(
        fields=fields,
        field_count=len(fields),
        token_count=token_count,
        is_final=is_final,
    )


# ---------------------------------------------------------------------------
# Final parse helpers
# ---------------------------------------------------------------------------

def find_json_object(text: str) -> str | None:
    """Return the first balanced `{...}` span in `text`, or None."""
    start = text.find("{")
    if start == -1:
        return None
    end = _span_end(text, start)
    if end is None:
        return None
    return text[start:end]


def clean_json_text(text: str) -> str:
    """Strip trailing commas and stray control characters (keeps \\n, \\r, \\t)."""
    text = _TRAILING_COMMA.sub(r"\1", text)
    return _CONTROL_CHARS.sub("", text)


def load_json_object(text: str) -> dict[str, Any] | None:
    """Locate, clean and strictly parse the first JSON object in `text`.

    Returns None when there is no object span or it does not parse to a dict.
    """
    span = find_json_object(text)
    if span is None:
        return None
    try:
        value = json.loads(clean_json_text(span))
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------

@lru_cache(maxsize=256)
def _key_pattern(name: str) -> re.Pattern:
    return re.compile(re.escape(json.dumps(name)) + r"\s*:")


def _value_start(text: str, name: str) -> int | None:
    match = _key_pattern(name).search(text)
    if match is None:
        return None
    return _skip_ws(text, match.end())


def _skip_ws(text: str, i: int) -> int:
    while i < len(text) and text[i].isspace():
        i += 1
    return i


def _string_end(text: str, start: int) -> int | None:
    """Index of the unescaped quote closing the string opened at `start`."""
    i = start + 1
    while i < len(text):
        c = text[i]
        if c == "\\":
            i += 2
            continue
        if c == '"':
            return i
        i += 1
    return None


def _span_end(text: str, start: int) -> int | None:
    """Index just past the delimiter closing the container opened at `start`.

    Only delimiters of the same kind move the depth counter; string contents
    are skipped so brackets inside values do not count.
    """
    opener = text[start]
    closer = _CLOSERS[opener]
    depth = 0
    i = start
    while i < len(text):
        c = text[i]
        if c == '"':
            end = _string_end(text, i)
            if end is None:
                return None
            i = end + 1
            continue
        if c == opener:
            depth += 1
        elif c == closer:
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def _scalar_end(text: str, start: int) -> int | None:
    """End of a bare number/literal; None while it may still be growing."""
    i = start
    while i < len(text):
        if text[i] in _SCALAR_TERMINATORS or text[i].isspace():
            return i
        i += 1
    return None


def _read_string(text: str, start: int) -> str | None:
    if start >= len(text) or text[start] != '"':
        return None
    end = _string_end(text, start)
    if end is None:
        return None
    try:
        return json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None


def _read_container(text: str, start: int, opener: str) -> Any:
    if start >= len(text) or text[start] != opener:
        return None
    end = _span_end(text, start)
    if end is not None:
        try:
            return json.loads(text[start:end])
        except json.JSONDecodeError:
            return None
    if opener == "[":
        return _partial_array(text, start) or None
    return None


def _partial_array(text: str, start: int) -> list[Any]:
    """Complete elements of the still-open array at `start`, up to the first incomplete one."""
    items: list[Any] = []
    i = start + 1
    while True:
        i = _skip_ws(text, i)
        if i >= len(text):
            break
        c = text[i]
        if c == ",":
            i += 1
            continue
        if c in _CLOSERS:
            end = _span_end(text, i)
        elif c == '"':
            quote = _string_end(text, i)
            end = None if quote is None else quote + 1
        else:
            end = _scalar_end(text, i)
        if end is None:
            break
        try:
            items.append(json.loads(text[i:end]))
        except json.JSONDecodeError:
            break
        i = end
    return items
