# tests/test_staging_store.py
"""Tests for data_access/staging_store.py."""

import math
from datetime import date, datetime

import pytest

from core.exceptions import ValidationError
from data_access.staging_store import StagingStore, serialize_value, type_key


class TestKeysAndNames:
    def test_type_key(self):
        assert type_key("Person", "vertices") == "vertex_Person"
        assert type_key("WORKS_AT", "edges") == "edge_WORKS_AT"

    def test_type_key_rejects_unsafe_names(self):
        with pytest.raises(ValidationError):
            type_key("Person'); DROP TABLE x; --", "vertices")

    def test_type_function_name_is_lowercased(self, store):
        assert store.type_function_name("Person", "vertices") == "get_person_vertices"
        assert store.type_function_name("WORKS_AT", "edges") == "get_works_at_edges"

    @pytest.mark.parametrize("key", ["", "has space", "quote'd", "semi;colon"])
    def test_invalid_keys(self, store, key):
        with pytest.raises(ValidationError):
            store.full_key(key)

    def test_scoped_keys_nest(self, store):
        nested = store.scoped("load_1").scoped("part")
        assert nested.full_key("vertex_Person") == "load_1:part:vertex_Person"

    def test_invalid_schema_name(self, fake_age):
        with pytest.raises(ValidationError):
            StagingStore(fake_age, schema_name="bad-schema")


class TestSerialization:
    def test_rejects_nan_and_infinity(self):
        with pytest.raises(ValidationError):
            serialize_value({"x": math.nan})
        with pytest.raises(ValidationError):
            serialize_value([math.inf])

    def test_dates_become_iso_strings(self):
        assert serialize_value({"d": date(2024, 1, 2)}) == '{"d": "2024-01-02"}'
        assert serialize_value(datetime(2024, 1, 2, 3, 4, 5)) == '"2024-01-02T03:04:05"'

    def test_unserializable_object(self):
        with pytest.raises(ValidationError, match="cannot be staged"):
            serialize_value(object())


class TestDataAccess:
    async def test_upsert_then_get(self, store, fake_age):
        await store.upsert("threshold", {"min": 30, "tags": ["a", "b"]})

        assert await store.get("threshold") == {"min": 30, "tags": ["a", "b"]}
        statement, params = fake_age.assert_statement_executed(r"ON CONFLICT \(key\) DO UPDATE")
        assert params == ("threshold", '{"min": 30, "tags": ["a", "b"]}')
        assert "30" not in statement

    async def test_last_write_wins(self, store):
        await store.upsert("k", "v")
        await store.upsert("k", "v2")

        assert await store.get("k") == "v2"

    async def test_missing_key_reads_none(self, store):
        assert await store.get("absent") is None

    async def test_delete(self, store):
        await store.upsert("k", 1)

        assert await store.delete("k") is True
        assert await store.delete("k") is False

    async def test_namespace_isolation(self, store, fake_age):
        load = store.scoped("load_abc")
        await load.upsert("vertex_Person", [{"id": "p1"}])
        await load.upsert("edge_KNOWS", [])
        await store.upsert("other", True)

        assert fake_age.staged["load_abc:vertex_Person"] == [{"id": "p1"}]
        assert await load.keys() == ["load_abc:edge_KNOWS", "load_abc:vertex_Person"]
        assert await store.keys() == ["load_abc:edge_KNOWS", "load_abc:vertex_Person", "other"]

        assert await load.delete_namespace() == 2
        assert fake_age.staged == {"other": True}

    async def test_delete_namespace_needs_a_namespace(self, store):
        with pytest.raises(ValidationError):
            await store.delete_namespace()

    async def test_using_session_joins_its_transaction(self, store, fake_age):
        async with fake_age.session() as session:
            await session.begin()
            await store.using(session).upsert("k", 1)
            assert fake_age.staged == {"k": 1}
            await session.rollback()

        assert fake_age.staged == {}


class TestInstallAndExpressions:
    async def test_install_creates_table_and_functions(self, store, fake_age):
        await store.install()

        fake_age.assert_statement_executed(r"CREATE SCHEMA IF NOT EXISTS age_schema_client")
        fake_age.assert_statement_executed(
            r"CREATE TABLE IF NOT EXISTS age_schema_client\.age_params \(key text PRIMARY KEY, value jsonb NOT NULL\)"
        )
        for name in ("get", "get_array", "get_all"):
            fake_age.assert_statement_executed(rf"FUNCTION age_schema_client\.{name}\(")

    def test_install_is_idempotent_text(self, store):
        statements = store.install_statements()
        assert all("IF NOT EXISTS" in s or "CREATE OR REPLACE" in s for s in statements)

    async def test_ensure_type_function(self, store, fake_age):
        name = await store.scoped("load_1").ensure_type_function("Person", "vertices")

        assert name == "get_person_vertices"
        assert fake_age.type_functions == {"get_person_vertices": "load_1:vertex_Person"}

    def test_expressions(self, store):
        scoped = store.scoped("ns")
        assert store.get_expression("k") == "age_schema_client.get('k')"
        assert scoped.get_array_expression("k") == "age_schema_client.get_array('ns:k')"
        assert store.get_all_expression() == "age_schema_client.get_all()"
        assert store.type_function_expression("Person", "vertices") == "age_schema_client.get_person_vertices()"

    def test_defaults_come_from_configuration(self, fake_age, monkeypatch):
        import config

        monkeypatch.setattr(config.settings, "STAGING_SCHEMA", "custom_schema")
        monkeypatch.setattr(config.settings, "STAGING_TABLE", "custom_params")

        assert StagingStore(fake_age).qualified_table == "custom_schema.custom_params"
