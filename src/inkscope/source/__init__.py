"""Source package - knot and variable scanning of ink script text."""

from inkscope.source.scanner import (
    KNOT_DECLARATION,
    VARIABLE_DECLARATION,
    SourceCache,
    SourceFileInfo,
    content_hash,
    extract_knots,
    extract_variables,
    find_knot_line,
)

__all__ = [
    "KNOT_DECLARATION",
    "VARIABLE_DECLARATION",
    "SourceCache",
    "SourceFileInfo",
    "content_hash",
    "extract_knots",
    "extract_variables",
    "find_knot_line",
]
