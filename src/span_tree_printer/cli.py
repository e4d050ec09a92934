"""CLI entry point for span-tree."""

from __future__ import annotations

import argparse
import sys
from datetime import timezone

from span_tree_printer import __version__
from span_tree_printer.parser import normalize_id, parse_file
from span_tree_printer.render import Theme, print_span_tree
from span_tree_printer.tree import group_by_trace

_COLOR_SYSTEMS = {"auto": "auto", "always": "256", "never": None}


def main() -> int:
    """CLI entry point. Returns 0 on success, 1 on error."""
    parser = argparse.ArgumentParser(
        prog="span-tree",
        description="Print OpenTelemetry trace files as nested span boxes",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "input",
        help="Trace file path (.json or .json.gz), or - for stdin",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Write the tree to this file instead of stdout",
    )
    parser.add_argument(
        "--trace",
        default=None,
        metavar="TRACE_ID",
        help="Only print spans belonging to this trace",
    )
    parser.add_argument(
        "--color",
        choices=sorted(_COLOR_SYSTEMS),
        default="auto",
        help="Colorize output (default: auto, only when writing to a terminal)",
    )
    parser.add_argument(
        "--utc",
        action="store_true",
        help="Show start/end times in UTC instead of local time",
    )

    args = parser.parse_args()

    theme = Theme(
        color_system=_COLOR_SYSTEMS[args.color],
        timezone=timezone.utc if args.utc else None,
    )

    # Pipeline: parse → (filter) → build forest + render → write
    try:
        spans = parse_file(args.input)

        if args.trace is not None:
            spans = group_by_trace(spans).get(normalize_id(args.trace), [])

        if not spans:
            print("No spans to print", file=sys.stderr)
            return 0

        if args.output is None:
            print_span_tree(sys.stdout, spans, theme)
        else:
            with open(args.output, "w", encoding="utf-8") as f:
                print_span_tree(f, spans, theme)
            print(f"Span tree written: {args.output} ({len(spans)} spans)", file=sys.stderr)
        return 0

    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except PermissionError as exc:
        print(f"Error: Permission denied — {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
