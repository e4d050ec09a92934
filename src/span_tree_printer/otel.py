"""Adapter from OpenTelemetry SDK spans (e.g. ``InMemorySpanExporter``)."""

from __future__ import annotations

from typing import Any, Iterable

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.trace import format_span_id, format_trace_id

from span_tree_printer.parser import Attribute, Span


def _convert_value(value: Any) -> Any:
    # SDK sequence attributes are stored as tuples
    if isinstance(value, (list, tuple)):
        return list(value)
    return value


def from_readable_span(span: ReadableSpan) -> Span:
    """Convert a finished SDK span into a Span."""
    context = span.get_span_context()
    parent = span.parent
    attributes = span.attributes or {}

    return Span(
        trace_id=format_trace_id(context.trace_id),
        span_id=format_span_id(context.span_id),
        parent_span_id=format_span_id(parent.span_id) if parent is not None else "",
        name=span.name,
        start_time_unix_nano=span.start_time or 0,
        end_time_unix_nano=span.end_time or 0,
        attributes=[Attribute(key, _convert_value(value)) for key, value in attributes.items()],
    )


def from_readable_spans(spans: Iterable[ReadableSpan]) -> list[Span]:
    return [from_readable_span(s) for s in spans]
