# config/validator.py
"""
Configuration validation utilities for the AGE graph client.

This module provides a single public function `validate_all()` that:
1. Reads the active `AgeClientSettings` object (Pydantic has already validated types).
2. Performs cross‑field sanity checks that cannot be expressed purely with
   Pydantic field validators (e.g., related numeric ranges).
3. Returns a structured health report dictionary.

The report layout:

{
    "overall_health": "healthy" | "warning" | "error",
    "issues": {
        "errors":   [{ "field": "<field>", "message": "<msg>" }, ...],
        "warnings": [{ "field": "<field>", "message": "<msg>" }, ...],
        "info":     [{ "field": "<field>", "message": "<msg>" }, ...],
    }
}
"""

from __future__ import annotations

import re

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _add_issue(
    issues: dict[str, list[dict[str, str]]],
    severity: str,
    field: str,
    message: str,
) -> None:
    """Utility to append an issue entry to the report."""
    issues.setdefault(severity, []).append({"field": field, "message": message})


def validate_all(current_settings=None) -> dict:
    """
    Validate the current configuration state.

    Returns a health‑report dict with overall status and detailed issue lists.
    """
    if current_settings is None:
        import config

        current_settings = config.settings

    issues: dict[str, list[dict[str, str]]] = {"errors": [], "warnings": [], "info": []}

    # Identifiers are interpolated into SQL and Cypher text, never bound.
    for name in ("AGE_GRAPH_NAME", "STAGING_SCHEMA", "STAGING_TABLE"):
        value = getattr(current_settings, name)
        if not _IDENTIFIER_RE.match(value or ""):
            _add_issue(
                issues,
                "errors",
                name,
                f"{name} ({value!r}) must be a plain SQL identifier.",
            )

    if current_settings.BATCH_SIZE < 1:
        _add_issue(
            issues,
            "errors",
            "BATCH_SIZE",
            f"BATCH_SIZE must be >= 1; got {current_settings.BATCH_SIZE}.",
        )
    elif current_settings.BATCH_SIZE > 50_000:
        _add_issue(
            issues,
            "warnings",
            "BATCH_SIZE",
            f"BATCH_SIZE is very large ({current_settings.BATCH_SIZE}); staged rows may exceed memory limits.",
        )

    if current_settings.TRANSACTION_TIMEOUT_SECONDS <= 0:
        _add_issue(
            issues,
            "errors",
            "TRANSACTION_TIMEOUT_SECONDS",
            "TRANSACTION_TIMEOUT_SECONDS must be positive.",
        )

    if current_settings.MAX_PARALLEL_BATCHES < 1:
        _add_issue(
            issues,
            "errors",
            "MAX_PARALLEL_BATCHES",
            f"MAX_PARALLEL_BATCHES must be >= 1; got {current_settings.MAX_PARALLEL_BATCHES}.",
        )
    elif current_settings.MAX_PARALLEL_BATCHES > current_settings.DB_POOL_MAX_CONNECTIONS:
        _add_issue(
            issues,
            "warnings",
            "MAX_PARALLEL_BATCHES",
            (
                f"MAX_PARALLEL_BATCHES ({current_settings.MAX_PARALLEL_BATCHES}) exceeds "
                f"DB_POOL_MAX_CONNECTIONS ({current_settings.DB_POOL_MAX_CONNECTIONS}); "
                "parallel batches beyond the pool size queue for a free connection."
            ),
        )

    if current_settings.DB_CONNECT_RETRY_ATTEMPTS < 1:
        _add_issue(
            issues,
            "errors",
            "DB_CONNECT_RETRY_ATTEMPTS",
            "DB_CONNECT_RETRY_ATTEMPTS must be >= 1.",
        )

    if not current_settings.AGE_DSN and current_settings.PGPASSWORD == "postgres":
        _add_issue(
            issues,
            "info",
            "PGPASSWORD",
            "Using the default PostgreSQL password.",
        )

    overall = "healthy"
    if issues["errors"]:
        overall = "error"
    elif issues["warnings"]:
        overall = "warning"

    return {
        "overall_health": overall,
        "issues": issues,
    }
