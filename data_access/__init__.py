# data_access/__init__.py
"""Expose the `data_access` public API via lazy exports.

Notes:
    Import-time behavior:
        This package avoids eager imports of the database driver by lazily resolving
        exports on first access via [`__getattr__()`](data_access/__init__.py:41). This
        keeps `from data_access import QueryBuilder` working while `import data_access`
        alone stays cheap.

    Contract:
        - Only names listed in `_EXPORTS` and `_SUBMODULES` are exposed via lazy resolution.
        - Missing attributes raise `AttributeError` as normal module attribute access would.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

# Public exports (attribute name -> (module, attribute))
_EXPORTS: dict[str, tuple[str, str]] = {
    # Query building
    "QueryBuilder": ("data_access.cypher_builders.query_builder", "QueryBuilder"),
    # Staging
    "StagingStore": ("data_access.staging_store", "StagingStore"),
    "type_key": ("data_access.staging_store", "type_key"),
    # Bulk loading
    "BatchLoader": ("data_access.batch_loader", "BatchLoader"),
}

_SUBMODULES: dict[str, str] = {
    "batch_loader": "data_access.batch_loader",
    "staging_store": "data_access.staging_store",
    "cypher_builders": "data_access.cypher_builders",
}


def __getattr__(name: str) -> Any:
    """Resolve public exports and submodules lazily on first attribute access.

    Raises:
        AttributeError: If `name` is not a declared export or submodule.
    """
    if name in _EXPORTS:
        module_path, attr_name = _EXPORTS[name]
        module = import_module(module_path)
        return getattr(module, attr_name)

    if name in _SUBMODULES:
        return import_module(_SUBMODULES[name])

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_EXPORTS.keys()) + list(_SUBMODULES.keys())))


__all__ = [
    "QueryBuilder",
    "StagingStore",
    "type_key",
    "BatchLoader",
]
