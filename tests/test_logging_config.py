from __future__ import annotations

import logging
import logging.handlers
from collections.abc import Generator
from pathlib import Path

import pytest
from rich.logging import RichHandler

import config
from core.logging_config import setup_logging


@pytest.fixture(autouse=True)
def _restore_root_handlers() -> Generator[None, None, None]:
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_file_and_plain_console_handlers(tmp_path: Path, monkeypatch) -> None:
    log_file = tmp_path / "logs" / "client.log"
    monkeypatch.setattr(config, "LOG_FILE", str(log_file))
    monkeypatch.setattr(config, "ENABLE_RICH_LOGGING", False)
    monkeypatch.setattr(config, "LOG_LEVEL_STR", "DEBUG")

    setup_logging()

    handlers = logging.getLogger().handlers
    assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in handlers)
    assert any(type(h) is logging.StreamHandler for h in handlers)
    assert log_file.parent.is_dir()
    assert logging.getLogger("psycopg2").level == logging.WARNING


def test_rich_console_handler(monkeypatch) -> None:
    monkeypatch.setattr(config, "LOG_FILE", None)
    monkeypatch.setattr(config, "ENABLE_RICH_LOGGING", True)

    setup_logging()

    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], RichHandler)
