# config/loader.py
"""
Configuration reload utilities for the AGE graph client.

The main public function is ``reload_settings()`` which:
1. Reloads environment variables from ``.env`` (via ``dotenv.load_dotenv``).
2. Re‑creates the ``AgeClientSettings`` instance so that any changed values are applied.
3. Updates the symbols exported by the ``config`` package to reflect the new values.
"""

from __future__ import annotations

import importlib

import structlog
from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

logger = structlog.get_logger(__name__)


def _import_settings_module():
    return importlib.import_module("config.settings")


def reload_settings() -> bool:
    """
    Reload configuration from the environment and refresh the ``config`` package.

    Returns ``True`` on success, ``False`` when the new environment does not
    validate. The previous settings stay in effect on failure.
    """
    load_dotenv(override=True)

    settings_mod = _import_settings_module()
    try:
        fresh = settings_mod.AgeClientSettings()
    except PydanticValidationError as exc:
        logger.error("Configuration reload rejected", errors=exc.errors())
        return False

    importlib.reload(settings_mod)

    import config as config_pkg

    config_pkg.settings = settings_mod.settings
    config_pkg.AgeClientSettings = settings_mod.AgeClientSettings
    for field_name in type(fresh).model_fields:
        setattr(config_pkg, field_name, getattr(settings_mod.settings, field_name))

    logger.info("Configuration reloaded")
    return True
