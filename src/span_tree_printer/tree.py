"""Span forest builder — derives parent/child relations from a flat span list."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from span_tree_printer.parser import Span, is_valid_span_id


@dataclass
class SpanForest:
    """Root spans plus a parent span_id → ordered children mapping."""

    roots: List[Span] = field(default_factory=list)
    children: Dict[str, List[Span]] = field(default_factory=dict)

    def children_of(self, span: Span) -> List[Span]:
        return self.children.get(span.span_id, [])


def _start_time(span: Span) -> int:
    return span.start_time_unix_nano


def group_by_trace(spans: Sequence[Span]) -> Dict[str, List[Span]]:
    """Group spans by trace_id into a dict."""
    groups: Dict[str, List[Span]] = {}
    for span in spans:
        groups.setdefault(span.trace_id, []).append(span)
    return groups


def build_forest(spans: Sequence[Span]) -> SpanForest:
    """Build the span forest from a flat span list.

    - Spans without a valid parent_span_id are roots
    - Every other span is filed under its parent_span_id, whether or not
      that parent is present; orphans are therefore never reachable
    - Duplicate span_ids are not detected, they simply coexist
    - Children and roots are sorted by start_time_unix_nano ascending,
      ties keep input order
    """
    forest = SpanForest()

    for span in spans:
        if is_valid_span_id(span.parent_span_id):
            forest.children.setdefault(span.parent_span_id, []).append(span)
        else:
            forest.roots.append(span)

    # list.sort is stable, so equal start times keep input order
    for siblings in forest.children.values():
        siblings.sort(key=_start_time)
    forest.roots.sort(key=_start_time)
    return forest
