"""
Pytest configuration and Hypothesis strategies for property-based testing.

This module provides custom Hypothesis strategies for generating valid OTLP spans,
NDJSON lines, and span trees for comprehensive property-based testing.
"""

import json
from typing import Any

from hypothesis import strategies as st

from span_tree_printer.parser import Attribute, Span

# Fixed reference time to avoid flaky tests (~2023-11-14)
REFERENCE_TIME_NS = 1700000000 * int(1e9)


# ============================================================================
# Basic Building Blocks
# ============================================================================


@st.composite
def hex_id(draw, length: int = 16) -> str:
    """
    Generate a valid, non-zero hexadecimal ID string.

    Args:
        length: Number of hex characters (default 16 for span_id, 32 for trace_id)

    Returns:
        Hexadecimal string of specified length
    """
    hex_chars = "0123456789abcdef"
    chars = draw(st.lists(st.sampled_from(hex_chars), min_size=length, max_size=length))
    if set(chars) == {"0"}:
        chars[-1] = "1"
    return "".join(chars)


attribute_key = st.text(
    min_size=1,
    max_size=30,
    alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd"), whitelist_characters="._-"),
)

# rich removes these from a line or moves text after them onto a new line
_REFLOWED_CHARACTERS = "\n\t\x07\x08\x0b\x0c\r"

_any_inline_character = st.characters(
    blacklist_categories=("Cs",), blacklist_characters=_REFLOWED_CHARACTERS
)

attribute_value = st.one_of(
    st.text(
        max_size=40,
        alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd"), whitelist_characters=" _-"),
    ),
    st.text(max_size=20, alphabet=_any_inline_character),
    st.integers(min_value=-(2**63), max_value=2**63 - 1),
    st.floats(allow_nan=False, allow_infinity=False),
    st.booleans(),
)

# Adds statement- and stack-trace-sized strings; keep forests small when using it
wide_attribute_value = st.one_of(
    attribute_value,
    st.text(min_size=200, max_size=700, alphabet=_any_inline_character),
)


@st.composite
def otlp_attribute(draw) -> dict[str, Any]:
    """
    Generate a valid OTLP attribute key-value pair.

    Returns:
        Dict with 'key' and 'value' fields matching OTLP attribute structure
    """
    key = draw(attribute_key)

    value_type = draw(
        st.sampled_from(["string_value", "int_value", "double_value", "bool_value"])
    )

    if value_type == "string_value":
        value_content = draw(st.text(max_size=200))
    elif value_type == "int_value":
        value_content = draw(st.integers(min_value=-(2**63), max_value=2**63 - 1))
    elif value_type == "double_value":
        value_content = draw(st.floats(allow_nan=False, allow_infinity=False))
    else:  # bool_value
        value_content = draw(st.booleans())

    return {"key": key, "value": {value_type: value_content}}


# ============================================================================
# OTLP Span Strategies
# ============================================================================


@st.composite
def otlp_span(
    draw,
    parent_span_id: str | None = None,
    trace_id: str | None = None,
    span_id: str | None = None,
) -> dict:
    """
    Generate a valid OTLP span structure.

    Args:
        parent_span_id: Optional parent span ID (if None, generates root span)
        trace_id: Optional trace ID (if None, generates new one)
        span_id: Optional span ID (if None, generates new one)

    Returns:
        Dict representing a valid OTLP span
    """
    if trace_id is None:
        trace_id = draw(hex_id(length=32))
    if span_id is None:
        span_id = draw(hex_id(length=16))

    start_time = draw(
        st.integers(
            min_value=REFERENCE_TIME_NS,
            max_value=REFERENCE_TIME_NS + 86400 * int(1e9),  # Up to 1 day after reference
        )
    )
    duration_ns = draw(st.integers(min_value=1000, max_value=3600 * int(1e9)))  # 1μs to 1 hour

    span = {
        "trace_id": trace_id,
        "span_id": span_id,
        "name": draw(st.text(min_size=1, max_size=100)),
        "kind": draw(
            st.sampled_from(["SPAN_KIND_INTERNAL", "SPAN_KIND_SERVER", "SPAN_KIND_CLIENT"])
        ),
        "start_time_unix_nano": str(start_time),
        "end_time_unix_nano": str(start_time + duration_ns),
        "attributes": draw(st.lists(otlp_attribute(), max_size=10)),
        "status": {"code": "STATUS_CODE_UNSET"},
    }

    if parent_span_id is not None:
        span["parent_span_id"] = parent_span_id

    return span


# ============================================================================
# NDJSON Strategies
# ============================================================================


@st.composite
def ndjson_line(draw, span_strategy=None) -> str:
    """
    Generate a valid OTLP NDJSON line (ExportTraceServiceRequest).

    Args:
        span_strategy: Optional Hypothesis strategy for generating spans
                      (defaults to generic otlp_span)

    Returns:
        JSON string representing a valid NDJSON line
    """
    if span_strategy is None:
        span_strategy = otlp_span()

    spans = draw(st.lists(span_strategy, min_size=1, max_size=5))

    export_request = {
        "resource_spans": [
            {
                "resource": {"attributes": []},
                "scope_spans": [{"scope": {"name": "test"}, "spans": spans}],
            }
        ]
    }

    return json.dumps(export_request, separators=(",", ":"))


@st.composite
def malformed_ndjson_line(draw) -> str:
    """
    Generate a malformed NDJSON line for resilience testing.

    Returns:
        Invalid JSON string or valid JSON without resource_spans
    """
    malformed_type = draw(
        st.sampled_from(["invalid_json", "missing_resource_spans", "empty_object"])
    )

    if malformed_type == "invalid_json":
        return draw(
            st.text(min_size=1, max_size=100).filter(
                lambda x: x.strip() and not x.strip().startswith("{")
            )
        )
    elif malformed_type == "missing_resource_spans":
        return json.dumps({"some_field": draw(st.text(max_size=50))})
    else:  # empty_object
        return "{}"


# ============================================================================
# Span Tree Strategies
# ============================================================================


@st.composite
def span_tree(draw, max_depth: int = 3, max_children: int = 3) -> list[dict]:
    """
    Generate a hierarchical tree of OTLP spans with parent-child relationships.

    Span IDs are sequential so every ID in the tree is unique.

    Returns:
        List of OTLP spans forming a valid tree structure, in creation order
    """
    trace_id = draw(hex_id(length=32))
    spans: list[dict] = []

    def generate_subtree(parent_id: str | None, depth: int) -> None:
        span = draw(
            otlp_span(
                parent_span_id=parent_id,
                trace_id=trace_id,
                span_id=f"{len(spans) + 1:016x}",
            )
        )
        spans.append(span)

        if depth < max_depth:
            num_children = draw(st.integers(min_value=0, max_value=max_children))
            for _ in range(num_children):
                generate_subtree(span["span_id"], depth + 1)

    generate_subtree(None, 0)

    return spans


@st.composite
def span_forest(
    draw, max_spans: int = 20, max_start_offset: int = 5, values=attribute_value
) -> list[Span]:
    """
    Generate a shuffled list of Span objects forming one or more trees.

    Start times come from a small range so that sibling ties are common.
    Every span_id is unique; each non-root span points at an earlier span.
    ``values`` is the strategy for attribute values.

    Returns:
        List of Span objects in arbitrary order
    """
    count = draw(st.integers(min_value=1, max_value=max_spans))
    trace_id = draw(hex_id(length=32))
    spans: list[Span] = []

    for index in range(count):
        span_id = f"{index + 1:016x}"
        if index == 0 or not draw(st.booleans()):
            parent_span_id = ""
        else:
            parent_span_id = spans[draw(st.integers(min_value=0, max_value=index - 1))].span_id
        start = REFERENCE_TIME_NS + draw(st.integers(min_value=0, max_value=max_start_offset))
        attributes = [
            Attribute(k, v)
            for k, v in draw(st.lists(st.tuples(attribute_key, values), max_size=4))
        ]
        spans.append(
            Span(
                trace_id=trace_id,
                span_id=span_id,
                parent_span_id=parent_span_id,
                name=f"span-{index + 1}",
                start_time_unix_nano=start,
                end_time_unix_nano=start + draw(st.integers(min_value=0, max_value=10**9)),
                attributes=attributes,
            )
        )

    return draw(st.permutations(spans))
