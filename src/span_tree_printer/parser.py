"""NDJSON trace file parser for OTLP ExportTraceServiceRequest."""

from __future__ import annotations

import gzip
import json
import string
import sys
import warnings
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import IO, Any, Iterator

_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(frozen=True)
class Attribute:
    """A single span attribute; value is a str, int, float, bool, list or dict."""

    key: str
    value: Any


@dataclass
class Span:
    """A single span, either parsed from a trace file or adapted from the SDK."""

    trace_id: str
    span_id: str
    parent_span_id: str
    name: str
    start_time_unix_nano: int
    end_time_unix_nano: int
    attributes: list[Attribute] = field(default_factory=list)

    @property
    def duration_nano(self) -> int:
        return self.end_time_unix_nano - self.start_time_unix_nano


def flatten_attributes(attrs: list[dict] | None) -> list[Attribute]:
    """Convert an OTLP attribute list to a list of Attribute.

    Each attribute is ``{"key": "...", "value": {"string_value": "..."}}``.
    Order and repeated keys are kept as they appear in the input.
    """
    if not attrs:
        return []
    result: list[Attribute] = []
    for attr in attrs:
        if not isinstance(attr, dict):
            continue
        key = attr.get("key", "")
        value_obj = attr.get("value", {})
        if not key or not isinstance(value_obj, dict):
            continue
        result.append(Attribute(key, _extract_value(value_obj)))
    return result


def _pick(value_obj: dict[str, Any], snake: str, camel: str) -> tuple[bool, Any]:
    if snake in value_obj:
        return True, value_obj[snake]
    if camel in value_obj:
        return True, value_obj[camel]
    return False, None


def _extract_value(value_obj: dict[str, Any]) -> Any:
    """Extract a typed value from an OTLP attribute value object."""
    found, val = _pick(value_obj, "string_value", "stringValue")
    if found:
        return val
    found, val = _pick(value_obj, "int_value", "intValue")
    if found:
        return int(val)
    found, val = _pick(value_obj, "double_value", "doubleValue")
    if found:
        return float(val)
    found, val = _pick(value_obj, "bool_value", "boolValue")
    if found:
        return bool(val)
    found, val = _pick(value_obj, "array_value", "arrayValue")
    if found:
        if isinstance(val, dict) and "values" in val:
            return [_extract_value(v) for v in val["values"]]
        return []
    found, val = _pick(value_obj, "kvlist_value", "kvlistValue")
    if found:
        if isinstance(val, dict) and "values" in val:
            return {
                kv.get("key", ""): _extract_value(kv.get("value", {}))
                for kv in val["values"]
            }
        return {}
    found, val = _pick(value_obj, "bytes_value", "bytesValue")
    if found:
        return val
    return None


def normalize_id(raw_id: str | None) -> str:
    """Normalize a trace/span ID to a lowercase hex string."""
    if not raw_id:
        return ""
    return raw_id.strip().lower()


def is_valid_span_id(span_id: str | None) -> bool:
    """Return True for a non-empty hex id that is not all zeros.

    Spans whose parent id fails this check are roots.
    """
    if not span_id:
        return False
    if not all(c in _HEX_DIGITS for c in span_id):
        return False
    return span_id.strip("0") != ""


def _dicts(value: Any) -> Iterator[dict[str, Any]]:
    """Yield the dict members of a JSON list; anything else yields nothing."""
    if isinstance(value, list):
        yield from (item for item in value if isinstance(item, dict))


def _field(raw: dict[str, Any], snake: str, camel: str, default: Any = "") -> Any:
    return raw.get(snake) or raw.get(camel, default)


def parse_line(line: str) -> list[Span]:
    """Parse one NDJSON line holding an OTLP ExportTraceServiceRequest.

    Spans that cannot be converted are dropped without failing the line.
    Raises ValueError (``json.JSONDecodeError`` included) when the line is
    not a request object.
    """
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("Line is not a JSON object")

    resource_spans = data.get("resource_spans", data.get("resourceSpans"))
    if not isinstance(resource_spans, list):
        raise ValueError("Missing or invalid resource_spans")

    spans: list[Span] = []
    for resource in _dicts(resource_spans):
        for scope in _dicts(_field(resource, "scope_spans", "scopeSpans", None)):
            for raw in _dicts(scope.get("spans")):
                try:
                    spans.append(_parse_raw_span(raw))
                except (KeyError, TypeError, ValueError):
                    continue
    return spans


def _parse_raw_span(raw: dict[str, Any]) -> Span:
    # ids are hex strings; times may arrive as strings or ints
    return Span(
        trace_id=normalize_id(_field(raw, "trace_id", "traceId")),
        span_id=normalize_id(_field(raw, "span_id", "spanId")),
        parent_span_id=normalize_id(_field(raw, "parent_span_id", "parentSpanId")),
        name=raw.get("name", ""),
        start_time_unix_nano=int(_field(raw, "start_time_unix_nano", "startTimeUnixNano", 0)),
        end_time_unix_nano=int(_field(raw, "end_time_unix_nano", "endTimeUnixNano", 0)),
        attributes=flatten_attributes(raw.get("attributes")),
    )


def parse_stream(stream: IO) -> list[Span]:
    """Parse an NDJSON stream of text or bytes lines into spans.

    Blank lines are ignored. A line that is not a valid request is skipped
    with a warning naming its 1-based line number.
    """
    spans: list[Span] = []
    for line_num, raw_line in enumerate(stream, start=1):
        if isinstance(raw_line, bytes):
            raw_line = raw_line.decode("utf-8", errors="replace")
        if not raw_line.strip():
            continue
        try:
            spans += parse_line(raw_line)
        except ValueError as exc:
            warnings.warn(f"Skipping malformed line {line_num}: {exc}", stacklevel=2)
    return spans


@contextmanager
def _open_trace(path: str) -> Iterator[IO]:
    if path == "-":
        yield sys.stdin
    else:
        opener = gzip.open if path.endswith(".gz") else open
        with opener(path, "rt", encoding="utf-8") as f:
            yield f


def parse_file(path: str) -> list[Span]:
    """Parse an NDJSON trace file: plain text, ``.gz`` compressed, or ``-`` for stdin."""
    with _open_trace(path) as stream:
        return parse_stream(stream)
