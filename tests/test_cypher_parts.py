# tests/test_cypher_parts.py
"""Tests for the pattern, part and load-query building blocks."""

import pytest

from core.exceptions import ValidationError
from data_access.cypher_builders.load_queries import (
    create_edges_cypher,
    create_vertices_cypher,
    unresolved_references_cypher,
)
from data_access.cypher_builders.parts import (
    LimitPart,
    MatchPart,
    OrderByPart,
    ReturnPart,
    SortOrder,
    UnwindPart,
    WherePart,
    WithPart,
    output_name,
)
from data_access.cypher_builders.patterns import Direction, EdgePattern, VertexPattern, check_identifier


class TestPatterns:
    def test_vertex_pattern_without_constraints(self):
        assert VertexPattern("Person", "p").render() == "(p:Person)"

    def test_vertex_pattern_parameters(self):
        pattern = VertexPattern("Person", "p", {"name": "Alice"})
        pattern.add_constraints({"age": 30})

        assert pattern.render() == "(p:Person {name: $p_name, age: $p_age})"
        assert pattern.parameters() == {"p_name": "Alice", "p_age": 30}

    @pytest.mark.parametrize(
        "direction, expected",
        [
            (Direction.OUTGOING, "(a)-[r:KNOWS]->(b)"),
            (Direction.INCOMING, "(a)<-[r:KNOWS]-(b)"),
            (Direction.BOTH, "(a)-[r:KNOWS]-(b)"),
        ],
    )
    def test_edge_directions(self, direction, expected):
        assert EdgePattern("KNOWS", "a", "b", alias="r", direction=direction).render() == expected

    def test_constraint_rejects_nan_before_rendering(self):
        with pytest.raises(ValidationError) as exc_info:
            VertexPattern("Person", "p", {"age": float("nan")})

        assert exc_info.value.errors[0].field == "age"

    @pytest.mark.parametrize("value", ["1abc", "a-b", "", "a b", None])
    def test_check_identifier_rejects(self, value):
        with pytest.raises(ValidationError):
            check_identifier(value, "alias")


class TestParts:
    @pytest.mark.parametrize(
        "expression, expected",
        [
            ("count(p) AS total", "total"),
            ("p", "p"),
            ("p.name", "p_name"),
            ("count(p)", "col3"),
        ],
    )
    def test_output_name(self, expression, expected):
        assert output_name(expression, 3) == expected

    def test_match_part_joins_patterns(self):
        part = MatchPart([VertexPattern("Person", "a"), VertexPattern("Person", "b")], optional=True)
        assert part.render() == "OPTIONAL MATCH (a:Person), (b:Person)"

    def test_where_combine_rejects_conflicting_values(self):
        first = WherePart("p.age > $x", {"x": 1})
        with pytest.raises(ValidationError):
            first.combine(WherePart("p.age < $x", {"x": 2}))

    def test_where_combine_merges_params(self):
        combined = WherePart("a", {"x": 1}).combine(WherePart("b", {"y": 2}))
        assert combined.render() == "WHERE (a) AND (b)"
        assert combined.parameters() == {"x": 1, "y": 2}

    def test_empty_where(self):
        with pytest.raises(ValidationError):
            WherePart("   ")

    def test_return_columns_are_unique(self):
        part = ReturnPart(["p.name", "p_name"])
        assert part.columns() == ["p_name", "p_name_1"]

    def test_empty_return(self):
        with pytest.raises(ValidationError):
            ReturnPart([])

    def test_order_by_rejects_unknown_direction(self):
        with pytest.raises(ValidationError):
            OrderByPart().add_item("p.name", "sideways")

    def test_order_by_accepts_enum(self):
        part = OrderByPart()
        part.add_item("p.name", SortOrder.DESC)
        assert part.render() == "ORDER BY p.name DESC"

    def test_limit_rejects_bool(self):
        with pytest.raises(ValidationError):
            LimitPart(True)

    def test_with_part_carry(self):
        part = WithPart(["p", "count(*) AS n"], distinct=True)
        assert part.render() == "WITH DISTINCT p, count(*) AS n"
        assert part.render(carry="__params") == "WITH DISTINCT p, count(*) AS n, __params"
        assert part.output_names() == ["p", "n"]

    def test_unwind_part(self):
        assert UnwindPart("[1, 2]", "x").render() == "UNWIND [1, 2] AS x"


class TestLoadQueries:
    def test_create_vertices(self):
        cypher, columns = create_vertices_cypher("Person", ["id", "name"], "s.get_array('k')")

        assert cypher == (
            "UNWIND s.get_array('k') AS vertex_data\n"
            "CREATE (v:Person {id: vertex_data.id, name: vertex_data.name})\n"
            "RETURN count(v) AS created_vertices"
        )
        assert columns == ["created_vertices"]

    def test_create_edges_matches_endpoints_before_creating(self):
        cypher, columns = create_edges_cypher("WORKS_AT", "Person", "id", "Company", "code", ["role", "from"], "src()")

        assert cypher.splitlines() == [
            "UNWIND src() AS edge_data",
            "MATCH (src:Person {id: edge_data.from})",
            "MATCH (dst:Company {code: edge_data.to})",
            "CREATE (src)-[e:WORKS_AT {role: edge_data.role}]->(dst)",
            "RETURN count(e) AS created_edges",
        ]
        assert columns == ["created_edges"]

    def test_edge_without_properties(self):
        cypher, _ = create_edges_cypher("KNOWS", "Person", "id", "Person", "id", [], "src()")
        assert "CREATE (src)-[e:KNOWS]->(dst)" in cypher

    def test_unresolved_references(self):
        cypher, columns = unresolved_references_cypher("Person", "id", "Company", "id", "src()")

        assert cypher.startswith("WITH src() AS batch\n")
        assert "WHERE src_found = 0 OR dst_found = 0" in cypher
        assert columns == ["idx", "src_found", "dst_found"]

    def test_property_names_are_checked(self):
        with pytest.raises(ValidationError):
            create_vertices_cypher("Person", ["name}) DETACH DELETE (x"], "src()")
