# utils/__init__.py
"""General utility functions for the AGE graph client."""

from __future__ import annotations

from .agtype import Edge, Path, Vertex, decode_row, parse_agtype
from .file_io import load_structured_file

__all__ = [
    "Edge",
    "Path",
    "Vertex",
    "decode_row",
    "parse_agtype",
    "load_structured_file",
]
