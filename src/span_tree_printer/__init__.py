"""Render OpenTelemetry spans as nested boxes in a terminal."""

__version__ = "0.1.0"
