# utils/agtype.py
"""Decode AGE ``agtype`` text into Python values.

psycopg2 has no adapter for ``ag_catalog.agtype`` and hands columns back as their
text form: JSON extended with ``::vertex``, ``::edge``, ``::path`` and ``::numeric``
annotations, and the bare tokens ``NaN``, ``Infinity`` and ``-Infinity``. Annotations
may appear at any nesting depth (a list of vertices, a path of vertices and edges).
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from core.exceptions import QueryError

_NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][-+]?\d+)?")
_ANNOTATION_RE = re.compile(r"::([A-Za-z_]+)")
_WHITESPACE = " \t\n\r"
_LITERALS = {
    "true": True,
    "false": False,
    "null": None,
    "NaN": float("nan"),
    "Infinity": float("inf"),
    "-Infinity": float("-inf"),
}


@dataclass(frozen=True)
class Vertex:
    id: int
    label: str
    properties: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.properties[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.properties.get(key, default)


@dataclass(frozen=True)
class Edge:
    id: int
    label: str
    start_id: int
    end_id: int
    properties: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.properties[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.properties.get(key, default)


@dataclass(frozen=True)
class Path:
    elements: tuple[Vertex | Edge, ...]

    @property
    def vertices(self) -> list[Vertex]:
        return [e for e in self.elements if isinstance(e, Vertex)]

    @property
    def edges(self) -> list[Edge]:
        return [e for e in self.elements if isinstance(e, Edge)]


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def fail(self, message: str) -> QueryError:
        return QueryError(
            f"Malformed agtype value: {message}",
            details={"position": self.pos, "value": self.text[:200]},
        )

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in _WHITESPACE:
            self.pos += 1

    def expect(self, char: str) -> None:
        self.skip_ws()
        if self.pos >= len(self.text) or self.text[self.pos] != char:
            raise self.fail(f"expected '{char}'")
        self.pos += 1

    def parse(self) -> Any:
        value = self.value()
        self.skip_ws()
        if self.pos != len(self.text):
            raise self.fail("trailing characters")
        return value

    def value(self) -> Any:
        self.skip_ws()
        if self.pos >= len(self.text):
            raise self.fail("unexpected end of input")
        char = self.text[self.pos]
        if char == "{":
            raw: Any = self.obj()
        elif char == "[":
            raw = self.array()
        elif char == '"':
            raw = self.string()
        else:
            raw = self.scalar()
        return self.annotate(raw)

    def obj(self) -> dict[str, Any]:
        self.pos += 1
        result: dict[str, Any] = {}
        self.skip_ws()
        if self.text.startswith("}", self.pos):
            self.pos += 1
            return result
        while True:
            self.skip_ws()
            if not self.text.startswith('"', self.pos):
                raise self.fail("expected object key")
            key = self.string()
            self.expect(":")
            result[key] = self.value()
            self.skip_ws()
            if self.text.startswith(",", self.pos):
                self.pos += 1
                continue
            self.expect("}")
            return result

    def array(self) -> list[Any]:
        self.pos += 1
        result: list[Any] = []
        self.skip_ws()
        if self.text.startswith("]", self.pos):
            self.pos += 1
            return result
        while True:
            result.append(self.value())
            self.skip_ws()
            if self.text.startswith(",", self.pos):
                self.pos += 1
                continue
            self.expect("]")
            return result

    def string(self) -> str:
        try:
            value, end = json.decoder.scanstring(self.text, self.pos + 1)
        except json.JSONDecodeError as e:
            raise self.fail(e.msg) from e
        self.pos = end
        return value

    def scalar(self) -> Any:
        for token in ("-Infinity", "Infinity", "NaN", "true", "false", "null"):
            if self.text.startswith(token, self.pos):
                self.pos += len(token)
                return _LITERALS[token]
        match = _NUMBER_RE.match(self.text, self.pos)
        if not match:
            raise self.fail("unexpected token")
        self.pos = match.end()
        literal = match.group(0)
        annotation = _ANNOTATION_RE.match(self.text, self.pos)
        if annotation and annotation.group(1) == "numeric":
            return Decimal(literal)
        if any(c in literal for c in ".eE"):
            return float(literal)
        return int(literal)

    def annotate(self, raw: Any) -> Any:
        match = _ANNOTATION_RE.match(self.text, self.pos)
        if not match:
            return raw
        self.pos = match.end()
        kind = match.group(1)
        if kind in ("vertex", "edge") and not isinstance(raw, dict):
            raise self.fail(f"::{kind} must annotate an object")
        if kind == "path" and not isinstance(raw, list):
            raise self.fail("::path must annotate an array")
        if kind == "vertex":
            return Vertex(id=raw["id"], label=raw["label"], properties=raw.get("properties") or {})
        if kind == "edge":
            return Edge(
                id=raw["id"],
                label=raw["label"],
                start_id=raw["start_id"],
                end_id=raw["end_id"],
                properties=raw.get("properties") or {},
            )
        if kind == "path":
            return Path(elements=tuple(raw))
        if kind == "numeric":
            return raw if isinstance(raw, Decimal) else Decimal(str(raw))
        return raw


def parse_agtype(value: Any) -> Any:
    """Decode one agtype column value.

    Non-string values (already decoded, or SQL NULL as ``None``) pass through.
    """
    if not isinstance(value, str):
        return value
    return _Parser(value).parse()


def decode_row(row: dict[str, Any]) -> dict[str, Any]:
    return {key: parse_agtype(value) for key, value in row.items()}
