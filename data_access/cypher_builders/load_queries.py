# data_access/cypher_builders/load_queries.py
"""
Cypher generators for bulk vertex/edge creation from a staged array.

Each generator takes ``source``, a Cypher expression that evaluates to the staged
array (``<schema>.get_array('<key>')`` or ``<schema>.get_<type>_vertices()``), and
returns ``(cypher, result_columns)``. Labels and property names come from the
schema and are checked as identifiers before they reach query text.
"""

from __future__ import annotations

from data_access.cypher_builders.patterns import check_identifier
from models.graph_data import EDGE_FROM_FIELD, EDGE_TO_FIELD

CREATED_VERTICES_COLUMN = "created_vertices"
CREATED_EDGES_COLUMN = "created_edges"
REFERENCE_COLUMNS = ["idx", "src_found", "dst_found"]


def _property_map(variable: str, properties: list[str]) -> str:
    for name in properties:
        check_identifier(name, "property name")
    if not properties:
        return ""
    items = ", ".join(f"{name}: {variable}.{name}" for name in properties)
    return f" {{{items}}}"


def create_vertices_cypher(label: str, properties: list[str], source: str) -> tuple[str, list[str]]:
    """One vertex per staged element, with the listed properties copied across.

    Example:
        UNWIND age_schema_client.get_array('load_1:vertex_Person') AS vertex_data
        CREATE (v:Person {id: vertex_data.id, name: vertex_data.name})
        RETURN count(v) AS created_vertices
    """
    check_identifier(label, "vertex label")
    cypher = (
        f"UNWIND {source} AS vertex_data\n"
        f"CREATE (v:{label}{_property_map('vertex_data', properties)})\n"
        f"RETURN count(v) AS {CREATED_VERTICES_COLUMN}"
    )
    return cypher, [CREATED_VERTICES_COLUMN]


def create_edges_cypher(
    label: str,
    from_label: str,
    from_identifier: str,
    to_label: str,
    to_identifier: str,
    properties: list[str],
    source: str,
) -> tuple[str, list[str]]:
    """One edge per staged element whose endpoints both exist.

    Endpoints are matched by identifier first, so an element referencing a
    missing vertex yields no row and creates nothing.
    """
    for value, kind in (
        (label, "edge label"),
        (from_label, "vertex label"),
        (to_label, "vertex label"),
        (from_identifier, "property name"),
        (to_identifier, "property name"),
    ):
        check_identifier(value, kind)
    properties = [p for p in properties if p not in (EDGE_FROM_FIELD, EDGE_TO_FIELD)]
    cypher = (
        f"UNWIND {source} AS edge_data\n"
        f"MATCH (src:{from_label} {{{from_identifier}: edge_data.{EDGE_FROM_FIELD}}})\n"
        f"MATCH (dst:{to_label} {{{to_identifier}: edge_data.{EDGE_TO_FIELD}}})\n"
        f"CREATE (src)-[e:{label}{_property_map('edge_data', properties)}]->(dst)\n"
        f"RETURN count(e) AS {CREATED_EDGES_COLUMN}"
    )
    return cypher, [CREATED_EDGES_COLUMN]


def unresolved_references_cypher(
    from_label: str,
    from_identifier: str,
    to_label: str,
    to_identifier: str,
    source: str,
) -> tuple[str, list[str]]:
    """Positions in the staged array whose source or target vertex does not exist.

    Returns one row per unresolved element: ``idx`` plus how many source and
    target vertices matched.
    """
    for value, kind in (
        (from_label, "vertex label"),
        (to_label, "vertex label"),
        (from_identifier, "property name"),
        (to_identifier, "property name"),
    ):
        check_identifier(value, kind)
    cypher = (
        f"WITH {source} AS batch\n"
        f"UNWIND range(0, size(batch) - 1) AS idx\n"
        f"WITH batch[idx] AS edge_data, idx\n"
        f"OPTIONAL MATCH (src:{from_label} {{{from_identifier}: edge_data.{EDGE_FROM_FIELD}}})\n"
        f"WITH edge_data, idx, count(src) AS src_found\n"
        f"OPTIONAL MATCH (dst:{to_label} {{{to_identifier}: edge_data.{EDGE_TO_FIELD}}})\n"
        f"WITH idx, src_found, count(dst) AS dst_found\n"
        f"WHERE src_found = 0 OR dst_found = 0\n"
        f"RETURN idx, src_found, dst_found"
    )
    return cypher, list(REFERENCE_COLUMNS)
