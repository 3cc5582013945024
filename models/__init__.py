# models/__init__.py
"""Export commonly used AGE client model types.

This package exposes a stable import surface for the Pydantic models used by the
schema validator and the batch loader.
"""

from .graph_data import (
    GraphData,
    GraphValidationReport,
    LoadIssue,
    LoadOptions,
    LoadProgress,
    LoadResult,
    LoadResultBuilder,
)
from .schema_models import (
    EdgeLabel,
    PropertyDefinition,
    PropertyType,
    SchemaDefinition,
    VertexLabel,
)

__all__ = [
    "GraphData",
    "GraphValidationReport",
    "LoadIssue",
    "LoadOptions",
    "LoadProgress",
    "LoadResult",
    "LoadResultBuilder",
    "EdgeLabel",
    "PropertyDefinition",
    "PropertyType",
    "SchemaDefinition",
    "VertexLabel",
]
