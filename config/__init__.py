# config/__init__.py
"""Expose AGE client configuration as stable module-level constants.

This package provides a facade over the underlying Pydantic settings model defined
in [`config.settings`](config/settings.py:1). The primary API is the `settings`
singleton plus a set of module-level constants mirroring its fields.

Configuration precedence and lifecycle:
- On initial import, configuration is loaded by importing [`config.settings`](config/settings.py:1),
  which constructs the `settings` singleton.
- Values come from the process environment and may be sourced from a `.env` file.
- [`reload()`](config/__init__.py:80) re-reads `.env` with override enabled, then replaces
  this module's exported values (see [`config.loader.reload_settings()`](config/loader.py:30)).

Notes:
    Values are duplicated into module globals for callers that read `config.BATCH_SIZE`
    style constants. New code should prefer the `settings` object.
"""

from typing import Any

from .settings import (
    AgeClientSettings as AgeClientSettings,
)
from .settings import (
    rich_formatter as rich_formatter,
)
from .settings import (
    settings as settings,
)
from .settings import (
    simple_formatter as simple_formatter,
)

AGE_DSN = settings.AGE_DSN
PGHOST = settings.PGHOST
PGPORT = settings.PGPORT
PGUSER = settings.PGUSER
PGPASSWORD = settings.PGPASSWORD
PGDATABASE = settings.PGDATABASE

DB_POOL_MIN_CONNECTIONS = settings.DB_POOL_MIN_CONNECTIONS
DB_POOL_MAX_CONNECTIONS = settings.DB_POOL_MAX_CONNECTIONS
DB_CONNECT_RETRY_ATTEMPTS = settings.DB_CONNECT_RETRY_ATTEMPTS
DB_CONNECT_RETRY_DELAY_SECONDS = settings.DB_CONNECT_RETRY_DELAY_SECONDS

AGE_GRAPH_NAME = settings.AGE_GRAPH_NAME
AGE_CREATE_GRAPH_IF_MISSING = settings.AGE_CREATE_GRAPH_IF_MISSING

STAGING_SCHEMA = settings.STAGING_SCHEMA
STAGING_TABLE = settings.STAGING_TABLE

BATCH_SIZE = settings.BATCH_SIZE
TRANSACTION_TIMEOUT_SECONDS = settings.TRANSACTION_TIMEOUT_SECONDS
MAX_PARALLEL_BATCHES = settings.MAX_PARALLEL_BATCHES
VALIDATE_BEFORE_LOAD = settings.VALIDATE_BEFORE_LOAD

LOG_LEVEL_STR = settings.LOG_LEVEL_STR
LOG_FORMAT = settings.LOG_FORMAT
LOG_DATE_FORMAT = settings.LOG_DATE_FORMAT
LOG_FILE = settings.LOG_FILE
ENABLE_RICH_LOGGING = settings.ENABLE_RICH_LOGGING
ENABLE_RICH_PROGRESS = settings.ENABLE_RICH_PROGRESS


def get(key: str) -> Any:
    """Return the value of a configuration attribute from `settings`.

    Args:
        key: Attribute name on the `settings` singleton.

    Returns:
        The current value of the named attribute.

    Raises:
        AttributeError: If `key` is not a valid attribute on `settings`.
    """
    return getattr(settings, key)


def set(key: str, value: Any) -> None:
    """Set a configuration attribute on `settings` at runtime.

    This mutates the in-memory settings instance and does not persist to `.env`.
    """
    setattr(settings, key, value)


def reload() -> bool:
    """Reload configuration and refresh this package's exported constants.

    Returns:
        ``True`` when the reload succeeded.
    """
    from .loader import reload_settings

    return reload_settings()
