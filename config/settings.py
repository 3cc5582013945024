# config/settings.py
"""
Configuration settings for the AGE graph client.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import logging as stdlib_logging
from collections.abc import MutableMapping
from typing import Any

import structlog
from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger()


class AgeClientSettings(BaseSettings):
    """Full configuration for the AGE graph client."""

    # PostgreSQL / AGE Connection Settings
    # A full DSN wins over the discrete PG* fields when provided.
    AGE_DSN: str | None = None
    PGHOST: str = "localhost"
    PGPORT: int = 5432
    PGUSER: str = "postgres"
    PGPASSWORD: str = "postgres"
    PGDATABASE: str = "postgres"

    # Connection Pool
    DB_POOL_MIN_CONNECTIONS: int = 1
    DB_POOL_MAX_CONNECTIONS: int = 10
    DB_CONNECT_RETRY_ATTEMPTS: int = 3
    DB_CONNECT_RETRY_DELAY_SECONDS: float = 1.0

    # Graph
    AGE_GRAPH_NAME: str = "default"
    AGE_CREATE_GRAPH_IF_MISSING: bool = True

    # Parameter staging table
    STAGING_SCHEMA: str = "age_schema_client"
    STAGING_TABLE: str = "age_params"

    # Batch loader defaults
    BATCH_SIZE: int = 1000
    TRANSACTION_TIMEOUT_SECONDS: float = 300.0
    MAX_PARALLEL_BATCHES: int = 1
    VALIDATE_BEFORE_LOAD: bool = True

    # Logging & UI
    LOG_LEVEL_STR: str = Field("INFO", alias="LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = None
    ENABLE_RICH_LOGGING: bool = True
    ENABLE_RICH_PROGRESS: bool = True

    @model_validator(mode="after")
    def clamp_pool_bounds(self) -> AgeClientSettings:
        # psycopg2 refuses a pool whose minimum exceeds its maximum.
        if self.DB_POOL_MIN_CONNECTIONS > self.DB_POOL_MAX_CONNECTIONS:
            object.__setattr__(
                self, "DB_POOL_MIN_CONNECTIONS", self.DB_POOL_MAX_CONNECTIONS
            )
        return self

    def connection_kwargs(self) -> dict[str, Any]:
        """Return keyword arguments for ``psycopg2.connect`` / pool construction."""
        if self.AGE_DSN:
            return {"dsn": self.AGE_DSN}
        return {
            "host": self.PGHOST,
            "port": self.PGPORT,
            "user": self.PGUSER,
            "password": self.PGPASSWORD,
            "dbname": self.PGDATABASE,
        }

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")


settings = AgeClientSettings()


# Update module level variables for backward compatibility
for _field in settings.model_fields:
    globals()[_field] = getattr(settings, _field)


# Configure structlog to integrate with standard logging and output human‑readable messages
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="%m/%d/%Y, %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)


# Filter internal structlog fields
def filter_internal_keys(
    logger: Any, name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Remove internal structlog fields from event dict."""
    keys_to_remove = [k for k in event_dict.keys() if k.startswith("_")]
    for key in keys_to_remove:
        event_dict.pop(key, None)
    return event_dict


def _format_context(event_dict: MutableMapping[str, Any], markup: bool) -> str:
    context_parts = []
    for key, value in event_dict.items():
        if key.startswith("_"):
            continue
        if isinstance(value, str) and len(value) > 50:
            value_str = f"{value[:47]}..."
        else:
            value_str = str(value)
        context_parts.append(f"[dim]{key}[/dim]={value_str}" if markup else f"{key}={value_str}")
    return f"({', '.join(context_parts)})" if context_parts else ""


# Simple human-readable formatter for structlog (with Rich markup for console)
def simple_log_format_rich(
    logger: Any, name: str, event_dict: MutableMapping[str, Any]
) -> str:
    """Simple human-readable log formatter with Rich markup for console output."""
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)

    level = event_dict.pop("level", "INFO")
    timestamp = event_dict.pop("timestamp", "")
    logger_name = event_dict.pop("logger", "")
    event = event_dict.pop("event", "")

    parts = []
    if timestamp:
        parts.append(f"{timestamp}")
    if logger_name:
        short_name = logger_name.split(".")[-1] if "." in logger_name else logger_name
        parts.append(f"[cyan]{short_name}[/cyan]")

    level_upper = level.upper()
    if level_upper == "ERROR" or level_upper == "CRITICAL":
        parts.append(f"[red]{level_upper}[/red]")
    elif level_upper == "WARNING":
        parts.append(f"[yellow]{level_upper}[/yellow]")
    elif level_upper == "INFO":
        parts.append(f"[green]{level_upper}[/green]")
    else:
        parts.append(level_upper)

    parts.append(f"[bold]{event}[/bold]" if event else "")

    context = _format_context(event_dict, markup=True)
    if context:
        parts.append(context)

    return " ".join(parts)


# Simple human-readable formatter for structlog (plain text for files)
def simple_log_format_plain(
    logger: Any, name: str, event_dict: MutableMapping[str, Any]
) -> str:
    """Simple human-readable log formatter without markup for file output."""
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)

    level = event_dict.pop("level", "INFO")
    timestamp = event_dict.pop("timestamp", "")
    logger_name = event_dict.pop("logger", "")
    event = event_dict.pop("event", "")

    parts = []
    if timestamp:
        parts.append(f"{timestamp}")
    if logger_name:
        short_name = logger_name.split(".")[-1] if "." in logger_name else logger_name
        parts.append(f"[{short_name}]")

    parts.append(level.upper())
    parts.append(event if event else "")

    context = _format_context(event_dict, markup=False)
    if context:
        parts.append(context)

    return " ".join(parts)


_FOREIGN_PRE_CHAIN = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="%m/%d/%Y, %H:%M:%S"),
    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
]

# Formatter for file output (plain text, no Rich markup)
simple_formatter = structlog.stdlib.ProcessorFormatter(
    foreign_pre_chain=_FOREIGN_PRE_CHAIN,
    processors=[
        filter_internal_keys,
        simple_log_format_plain,
    ],
)

# Formatter for Rich console output (with color markup)
rich_formatter = structlog.stdlib.ProcessorFormatter(
    foreign_pre_chain=_FOREIGN_PRE_CHAIN,
    processors=[
        filter_internal_keys,
        simple_log_format_rich,
    ],
)

# Library default: one plain console handler unless the host application has
# already configured logging. ``core.logging_config.setup_logging`` replaces it.
root_logger = stdlib_logging.getLogger()
if not root_logger.handlers:
    handler: stdlib_logging.Handler = stdlib_logging.StreamHandler()
    handler.setFormatter(simple_formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.LOG_LEVEL_STR)
