from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
import yaml

from core.exceptions import ValidationError

logger = structlog.get_logger(__name__)

_YAML_SUFFIXES = (".yaml", ".yml")
_JSON_SUFFIXES = (".json",)


def load_structured_file(path: str | Path) -> dict[str, Any]:
    """
    Load a JSON or YAML document whose root element is a mapping.

    Guarantees:
    - The format is chosen from the file suffix (``.json``, ``.yaml``, ``.yml``).
    - Reads with encoding="utf-8".
    - An empty YAML document loads as ``{}``.
    - A missing file raises ``FileNotFoundError`` unchanged.
    - Parse errors and non-mapping roots raise ``ValidationError`` naming the file.
    """
    target = Path(path)
    suffix = target.suffix.lower()
    if suffix not in _YAML_SUFFIXES + _JSON_SUFFIXES:
        raise ValidationError(
            f"unsupported file type '{suffix}'",
            details={"path": str(target), "supported": list(_YAML_SUFFIXES + _JSON_SUFFIXES)},
        )

    text = target.read_text(encoding="utf-8")
    try:
        if suffix in _JSON_SUFFIXES:
            content = json.loads(text) if text.strip() else {}
        else:
            content = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        logger.error("Failed to parse structured file", path=str(target), error=str(e))
        raise ValidationError(f"could not parse {target.name}", details={"path": str(target), "error": str(e)}) from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ValidationError(
            f"{target.name} must have a mapping as its root element",
            details={"path": str(target), "root_type": type(content).__name__},
        )
    return content
