# core/exceptions.py
"""Define standardized exception types for the AGE graph client.

This module provides a small exception hierarchy and helpers used across the
package to propagate actionable error details without losing the original
exception. Driver exceptions are converted at the executor boundary with
`handle_database_error`; everything above that layer raises only these types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import psycopg2
import psycopg2.errors


class GraphClientError(Exception):
    """Base exception for all AGE graph client errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


@dataclass(frozen=True)
class FieldError:
    """One failed check on one field of one record."""

    field: str
    message: str
    value: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {"field": self.field, "message": self.message, "value": self.value}


class ValidationError(GraphClientError):
    """A record or pattern failed a schema or shape check.

    Carries the per-field failures in ``errors`` so callers can report every
    problem at once instead of the first one.
    """

    def __init__(
        self,
        message: str,
        errors: list[FieldError] | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.errors = list(errors or [])
        merged = dict(details or {})
        if self.errors:
            merged.setdefault("errors", [e.as_dict() for e in self.errors])
        super().__init__(f"Validation failed: {message}", merged)


class QueryValidationError(ValidationError):
    """A built query references unknown labels or properties, or is out of order."""


class QueryError(GraphClientError):
    """The engine rejected a statement or the statement is malformed."""

    def __init__(
        self,
        message: str,
        statement: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.statement = statement
        merged = dict(details or {})
        if statement is not None:
            merged.setdefault("statement", statement)
        super().__init__(message, merged)


class DatabaseError(GraphClientError):
    """Errors related to database operations."""


class DatabaseConnectionError(DatabaseError):
    """Errors related to database connection issues."""


class DatabaseTransactionError(DatabaseError):
    """Errors related to database transaction handling."""


class OperationTimeoutError(GraphClientError):
    """An operation exceeded its time budget.

    ``partial_result`` holds whatever the operation completed before the
    deadline, when it can report one.
    """

    def __init__(
        self,
        message: str,
        timeout: float | None = None,
        partial_result: Any = None,
        details: dict[str, Any] | None = None,
    ):
        self.timeout = timeout
        self.partial_result = partial_result
        merged = dict(details or {})
        if timeout is not None:
            merged.setdefault("timeout_seconds", timeout)
        super().__init__(message, merged)


class BatchLoaderError(GraphClientError):
    """A bulk load failed; wraps the underlying error with load context.

    ``phase`` is one of ``validation``, ``vertices``, ``edges``, ``transaction``
    or ``cleanup``. The original exception is chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        phase: str,
        type_name: str | None = None,
        index: int | None = None,
        record: Any = None,
        statement: str | None = None,
        cause: BaseException | None = None,
    ):
        self.phase = phase
        self.type_name = type_name
        self.index = index
        self.record = record
        self.statement = statement
        self.cause = cause
        details = create_error_context(
            phase=phase,
            type=type_name,
            index=index,
            record=record,
            statement=statement,
            cause=str(cause) if cause is not None else None,
        )
        super().__init__(message, details)
        if cause is not None:
            self.__cause__ = cause


def create_error_context(**kwargs: Any) -> dict[str, Any]:
    """Build a context dictionary for structured errors.

    Args:
        **kwargs: Key-value pairs to include.

    Returns:
        A dictionary containing only keys whose values are not `None`.
    """
    return {k: v for k, v in kwargs.items() if v is not None}


def handle_database_error(operation: str, original_error: Exception, **context: Any) -> GraphClientError:
    """Convert a driver exception into a standardized client error.

    Args:
        operation: Name/description of the database operation that failed.
        original_error: The caught exception.
        **context: Additional structured context to attach.

    Returns:
        A `GraphClientError` subclass chosen from the psycopg2 exception class,
        falling back to heuristics over the error text.
    """
    if isinstance(original_error, GraphClientError):
        return original_error

    pgerror = getattr(original_error, "pgerror", None)
    error_details = create_error_context(
        operation=operation,
        original_error=(pgerror or str(original_error)).strip(),
        error_type=type(original_error).__name__,
        sqlstate=getattr(original_error, "pgcode", None),
        **context,
    )

    if isinstance(original_error, psycopg2.errors.QueryCanceled):
        return OperationTimeoutError(f"Statement cancelled during {operation}", details=error_details)
    if isinstance(original_error, psycopg2.OperationalError | psycopg2.InterfaceError):
        return DatabaseConnectionError(f"Database connection failed during {operation}", details=error_details)
    if isinstance(original_error, psycopg2.errors.InFailedSqlTransaction):
        return DatabaseTransactionError(f"Database transaction failed during {operation}", details=error_details)
    if isinstance(original_error, psycopg2.ProgrammingError | psycopg2.DataError | psycopg2.InternalError):
        return QueryError(
            f"Query rejected during {operation}: {error_details['original_error']}",
            statement=context.get("statement"),
            details=error_details,
        )

    text = str(original_error).lower()
    if "connection" in text:
        return DatabaseConnectionError(f"Database connection failed during {operation}", details=error_details)
    elif "transaction" in text:
        return DatabaseTransactionError(f"Database transaction failed during {operation}", details=error_details)
    else:
        return DatabaseError(f"Database error during {operation}", details=error_details)
