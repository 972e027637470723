"""inkscope: knot graph extraction and runtime position tracking for ink stories."""

__version__ = "0.1.0"
