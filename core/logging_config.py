# core/logging_config.py
"""Configure AGE client logging sinks and formatting.

This module configures:
- Standard library logging handlers (console and optional rotating file).
- Rich console integration when enabled.
- Baseline log level overrides for noisy third-party libraries.

Notes:
    This module performs side-effectful logger configuration and should be
    called once at process startup via [`setup_logging()`](core/logging_config.py:27).
"""

import logging as stdlib_logging
import logging.handlers
import os

import structlog
from rich.logging import RichHandler

import config
from config import rich_formatter, simple_formatter
from ui.progress_display import get_shared_console


def setup_logging() -> None:
    """Set up logging handlers and formatting.

    This configures:
    - Rotating file logging when a log file is configured.
    - Rich console output when enabled, plain stream output otherwise.

    Notes:
        This function replaces the root logger handler list and is intended to be called
        once during application startup.
    """
    root_logger = stdlib_logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(config.LOG_LEVEL_STR)

    if config.LOG_FILE:
        log_path = os.path.abspath(config.LOG_FILE)
        try:
            os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
            file_handler = stdlib_logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                mode="a",
                encoding="utf-8",
            )
        except OSError as e:
            fallback = stdlib_logging.StreamHandler()
            fallback.setFormatter(simple_formatter)
            root_logger.addHandler(fallback)
            root_logger.error(
                f"Failed to configure file logging: {e}. Logging to console instead.",
                exc_info=True,
            )
        else:
            file_handler.setLevel(config.LOG_LEVEL_STR)
            file_handler.setFormatter(simple_formatter)
            root_logger.addHandler(file_handler)
            root_logger.info(f"File logging enabled. Log file: {log_path}")

    if config.ENABLE_RICH_LOGGING:
        rich_handler = RichHandler(
            level=config.LOG_LEVEL_STR,
            rich_tracebacks=True,
            show_path=False,
            markup=True,
            show_time=False,  # Timestamp already in our formatter
            show_level=False,  # Level already in our formatter
            console=get_shared_console(),
        )
        rich_handler.setFormatter(rich_formatter)
        root_logger.addHandler(rich_handler)
    elif not any(
        isinstance(h, stdlib_logging.StreamHandler) and not isinstance(h, stdlib_logging.FileHandler)
        for h in root_logger.handlers
    ):
        stream_handler = stdlib_logging.StreamHandler()
        stream_handler.setLevel(config.LOG_LEVEL_STR)
        stream_handler.setFormatter(simple_formatter)
        root_logger.addHandler(stream_handler)

    stdlib_logging.getLogger("psycopg2").setLevel(stdlib_logging.WARNING)
    stdlib_logging.getLogger("asyncio").setLevel(stdlib_logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging setup complete",
        level=stdlib_logging.getLevelName(root_logger.level),
    )
