"""Rendering of source positions as ``file:line:col``."""

from typing import Optional

from .ast_model import SourceLocation


def format_location(location: Optional[SourceLocation]) -> str:
    """``file:line:col``, or an empty string for a synthesized declaration."""
    if location is None:
        return ""
    return f"{location.file}:{location.line}:{location.column}"


def location_suffix(location: Optional[SourceLocation]) -> str:
    """`` at file:line:col``, or nothing when the location is invalid."""
    if location is None:
        return ""
    return " at " + format_location(location)
