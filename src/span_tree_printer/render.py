"""Span box renderer: nests each span's children inside its bordered box."""

from __future__ import annotations

import io
import math
import os
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import IO, Any, Callable, FrozenSet, List, Mapping, Optional, Sequence

from rich.box import ROUNDED, Box
from rich.cells import cell_len
from rich.console import Console, ConsoleOptions, Group, RenderableType, RenderResult
from rich.panel import Panel
from rich.segment import Segment
from rich.text import Text

from span_tree_printer.parser import Span, is_valid_span_id
from span_tree_printer.tree import build_forest

AttributeClassifier = Callable[[str, Any], bool]

ERROR_ATTRIBUTE_KEYS = frozenset({"error", "error_code", "rpc.connect_rpc.error_code"})
ERROR_ATTRIBUTE_VALUES = frozenset({"error", "not_found"})

_NANOS_PER_MICRO = 1_000
_NANOS_PER_MILLI = 1_000_000
_NANOS_PER_SECOND = 1_000_000_000
_NANOS_PER_MINUTE = 60 * _NANOS_PER_SECOND
_NANOS_PER_HOUR = 60 * _NANOS_PER_MINUTE


@dataclass(frozen=True)
class Theme:
    """Visual settings for rendered span boxes.

    Styles are rich style strings. ``timezone=None`` renders times in local
    time. ``color_system`` is a rich color system name, ``None`` for plain
    text, or ``"auto"`` to use 256 colors only when the sink is a terminal.
    """

    border_style: str = "color(63)"
    label_style: str = "bold color(212)"
    value_style: str = "color(250)"
    emphasis_style: str = "color(196)"
    box: Box = ROUNDED
    child_indent: str = "  "
    bullet: str = "•"
    timezone: Optional[tzinfo] = None
    color_system: Optional[str] = "auto"


DEFAULT_THEME = Theme()


class SpanCycleError(ValueError):
    """A span was reached again while rendering its own subtree."""

    def __init__(self, span_id: str) -> None:
        super().__init__(f"Span {span_id!r} appears within its own subtree")
        self.span_id = span_id


def is_error_attribute(key: str, value: Any) -> bool:
    """Default classifier: flag well-known error keys and sentinel values."""
    if key in ERROR_ATTRIBUTE_KEYS:
        return True
    return isinstance(value, str) and value in ERROR_ATTRIBUTE_VALUES


def format_timestamp(unix_nano: int, tz: Optional[tzinfo] = None) -> str:
    """Format as ``2006-01-02 15:04:05.000 MST``; ``tz=None`` means local time."""
    seconds, nanos = divmod(unix_nano, _NANOS_PER_SECOND)
    moment = datetime.fromtimestamp(seconds, tz=tz or timezone.utc)
    if tz is None:
        moment = moment.astimezone()
    return f"{moment:%Y-%m-%d %H:%M:%S}.{nanos // _NANOS_PER_MILLI:03d} {moment:%Z}"


def _decimal(value: int, unit: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{frac:0{digits}d}".rstrip("0")


def format_duration(nanos: int) -> str:
    """Render a nanosecond duration as e.g. ``250ms``, ``1.5s`` or ``2m3.5s``."""
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    n = abs(nanos)
    if n < _NANOS_PER_MICRO:
        return f"{sign}{n}ns"
    if n < _NANOS_PER_MILLI:
        return f"{sign}{_decimal(n, _NANOS_PER_MICRO)}µs"
    if n < _NANOS_PER_SECOND:
        return f"{sign}{_decimal(n, _NANOS_PER_MILLI)}ms"

    hours, rest = divmod(n, _NANOS_PER_HOUR)
    minutes, rest = divmod(rest, _NANOS_PER_MINUTE)
    seconds = _decimal(rest, _NANOS_PER_SECOND)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


def _format_float(value: float) -> str:
    """Shortest ``%g`` form with Go's switch to exponent notation at 1e+06."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    number = Decimal(repr(value)).normalize()
    sign, digits, exponent = number.as_tuple()
    exp = len(digits) + exponent - 1
    if -4 <= exp < 6:
        return format(number, "f")
    mantissa = "".join(str(d) for d in digits)
    if len(mantissa) > 1:
        mantissa = mantissa[0] + "." + mantissa[1:]
    return f"{'-' if sign else ''}{mantissa}e{'-' if exp < 0 else '+'}{abs(exp):02d}"


def format_value(value: Any) -> str:
    """Generic display form of an attribute value, as Go's ``%v`` prints it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(format_value(v) for v in value) + "]"
    if isinstance(value, dict):
        pairs = sorted(value.items(), key=lambda item: str(item[0]))
        return "map[" + " ".join(f"{k}:{format_value(v)}" for k, v in pairs) + "]"
    return str(value)


def _resolve_color_system(theme: Theme, out: Optional[IO[str]] = None) -> Optional[str]:
    if theme.color_system != "auto":
        return theme.color_system
    if os.environ.get("NO_COLOR"):
        return None
    isatty = getattr(out, "isatty", None)
    if callable(isatty) and isatty():
        return "256"
    return None


def _make_console(color_system: Optional[str]) -> Console:
    return Console(
        file=io.StringIO(),
        color_system=color_system,
        force_terminal=color_system is not None,
        no_color=False,
        highlight=False,
        markup=False,
        emoji=False,
        legacy_windows=False,
    )


class _RenderedBox:
    """A box already rendered to segment lines, embedded as-is in its parent."""

    def __init__(self, lines: List[List[Segment]], width: int, indent: str = "") -> None:
        self.lines = lines
        self.width = width
        self.indent = indent

    @property
    def outer_width(self) -> int:
        return cell_len(self.indent) + self.width

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        margin = Segment(self.indent)
        for line in self.lines:
            yield margin
            yield from line
            yield Segment.line()


def _line(*parts: Any) -> Text:
    text = Text.assemble(*parts, no_wrap=True, overflow="ignore")
    text.expand_tabs()
    return text


def _label_value(label: str, value: Any, theme: Theme) -> Text:
    return _line((label, theme.label_style), "  ", (str(value), theme.value_style))


def _build_box(
    span: Span,
    children: Mapping[str, Sequence[Span]],
    theme: Theme,
    classifier: AttributeClassifier,
    console: Console,
    ancestors: FrozenSet[str],
    indent: str = "",
) -> _RenderedBox:
    lines: List[Text] = [
        _label_value("Span Name:", span.name, theme),
        _label_value("TraceID:", span.trace_id, theme),
        _label_value("SpanID:", span.span_id, theme),
    ]
    if is_valid_span_id(span.parent_span_id):
        lines.append(_label_value("ParentSpan:", span.parent_span_id, theme))
    start = format_timestamp(span.start_time_unix_nano, theme.timezone)
    end = format_timestamp(span.end_time_unix_nano, theme.timezone)
    lines.append(_label_value("Start Time:", start, theme))
    lines.append(_label_value("End Time:", end, theme))
    lines.append(_label_value("Duration:", format_duration(span.duration_nano), theme))

    lines.append(_line(("Attributes:", theme.label_style)))
    for attr in span.attributes:
        style = theme.emphasis_style if classifier(attr.key, attr.value) else theme.value_style
        bullet = f"{theme.bullet} {attr.key} = {format_value(attr.value)}"
        lines.append(_line(theme.child_indent, (bullet, style)))

    content: List[RenderableType] = list(lines)
    content_width = max(line.cell_len for line in lines)
    path = ancestors | {span.span_id}
    for child in children.get(span.span_id, ()):
        if child.span_id in path:
            raise SpanCycleError(child.span_id)
        child_box = _build_box(
            child, children, theme, classifier, console, path, theme.child_indent
        )
        content.append(child_box)
        content_width = max(content_width, child_box.outer_width)

    # one column of padding and one border column on each side
    width = content_width + 4
    # blank cells share the border style so simplify() folds nested gutters
    # into a single segment per line
    panel = Panel(
        Group(*content),
        box=theme.box,
        style=theme.border_style,
        border_style=theme.border_style,
        width=width,
        padding=(0, 1),
    )
    rendered = console.render_lines(panel, console.options.update_width(width))
    return _RenderedBox([list(Segment.simplify(line)) for line in rendered], width, indent)


def _box_to_str(console: Console, box: _RenderedBox) -> str:
    with console.capture() as capture:
        console.print(box, crop=False)
    return capture.get().rstrip("\n")


def render_span_box(
    span: Span,
    children: Mapping[str, Sequence[Span]],
    theme: Theme | None = None,
    classifier: AttributeClassifier | None = None,
) -> str:
    """Render one span and its whole subtree as a single bordered block.

    ``children`` maps a parent span_id to its ordered children, as produced
    by :func:`build_forest`. Each child block is rendered once and placed,
    prefixed by ``theme.child_indent``, inside this span's box. Boxes are
    as wide as their longest line; nothing is wrapped or cut.

    There is no output stream to inspect here, so ``color_system="auto"``
    always renders plain text. Pass an explicit color system for styling.

    Raises SpanCycleError if a span is reached again inside its own subtree.
    """
    theme = theme or DEFAULT_THEME
    console = _make_console(_resolve_color_system(theme))
    box = _build_box(span, children, theme, classifier or is_error_attribute, console, frozenset())
    return _box_to_str(console, box)


def print_span_tree(
    out: IO[str],
    spans: Sequence[Span],
    theme: Theme | None = None,
    classifier: AttributeClassifier | None = None,
) -> None:
    """Write one box per root span to ``out``, each followed by a newline.

    Nothing is written for an empty span list. Errors raised by ``out``
    propagate to the caller.
    """
    if not spans:
        return

    theme = theme or DEFAULT_THEME
    classifier = classifier or is_error_attribute
    console = _make_console(_resolve_color_system(theme, out))
    forest = build_forest(spans)
    for root in forest.roots:
        box = _build_box(root, forest.children, theme, classifier, console, frozenset())
        out.write(_box_to_str(console, box) + "\n")


def format_span_tree(
    spans: Sequence[Span],
    theme: Theme | None = None,
    classifier: AttributeClassifier | None = None,
) -> str:
    """Return what :func:`print_span_tree` would write, as a string."""
    buf = io.StringIO()
    print_span_tree(buf, spans, theme, classifier)
    return buf.getvalue()
