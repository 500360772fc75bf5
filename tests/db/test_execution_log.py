"""
Tests for agentbase.db.execution_log

A fake Database records every statement; information_schema lookups return
the columns of the last CREATE TABLE unless a test pins them.
"""

import asyncio
import json
import re
from decimal import Decimal

import asyncpg
import pytest

from agentbase.db.execution_log import (
    ExecutionLogStore,
    build_create_table_sql,
    coerce_value,
    map_column_type,
    param_columns,
    table_name_for,
)
from agentbase.orchestrator.provenance import NodeType, ProvenanceGraph

_FIXED = ["id", "created_at", "updated_at", "execution_result", "input_params", "node_id", "parent_node_id"]


class FakeDatabase:
    def __init__(self, existing_columns=None, create_error=None):
        self.executed = []
        self.existing_columns = existing_columns
        self.create_error = create_error
        self._created_columns = {}

    async def execute(self, query, *args):
        self.executed.append((query, args))
        if query.startswith("CREATE TABLE"):
            await asyncio.sleep(0)
            table = re.search(r'EXISTS "(\w+)"', query).group(1)
            self._created_columns[table] = _FIXED + re.findall(r'"(\w+)" \w+', query)
            if self.create_error is not None:
                raise self.create_error
        return "INSERT 0 1"

    async def fetch(self, query, *args):
        table = args[0]
        columns = self.existing_columns if self.existing_columns is not None else self._created_columns.get(table, [])
        return [{"column_name": c} for c in columns]

    def statements(self, prefix):
        return [(q, a) for q, a in self.executed if q.startswith(prefix)]


SCHEMA = {
    "type": "object",
    "properties": {
        "city": {"type": "string"},
        "days": {"type": "integer"},
        "metric": {"type": "boolean"},
        "tags": {"type": "array", "items": {"type": "string"}},
        "options": {"type": "object"},
        "anything": {},
        "bad key": {"type": "string"},
        "node_id": {"type": "string"},
    },
    "required": ["city"],
}


class TestSchemaMapping:

    def test_table_name(self):
        assert table_name_for("forecast") == "tool_forecast"

    @pytest.mark.parametrize("tool_id", ["bad-id", "x; DROP TABLE users", "a b", 'q"uote'])
    def test_table_name_rejects_unsafe_ids(self, tool_id):
        with pytest.raises(ValueError):
            table_name_for(tool_id)

    def test_long_table_name_is_shortened(self):
        long_a = "utility_" + "a" * 60
        long_b = "utility_" + "a" * 61

        name_a = table_name_for(long_a)
        name_b = table_name_for(long_b)

        assert len(name_a) == 63
        assert len(name_b) == 63
        assert name_a != name_b
        assert name_a.startswith("tool_utility_aaa")
        assert table_name_for(long_a) == name_a
        assert table_name_for("x" * 58) == "tool_" + "x" * 58

    def test_long_parameter_name_gets_no_column(self):
        schema = {"type": "object", "properties": {"p" * 64: {"type": "string"}, "ok": {"type": "string"}}}
        assert param_columns(schema) == {"ok": "TEXT"}

    def test_map_column_type(self):
        assert map_column_type({"type": "string"}) == "TEXT"
        assert map_column_type({"type": "integer"}) == "NUMERIC"
        assert map_column_type({"type": "number"}) == "NUMERIC"
        assert map_column_type({"type": "boolean"}) == "BOOLEAN"
        assert map_column_type({"type": "object"}) == "JSONB"
        assert map_column_type({"type": "array"}) == "JSONB"
        assert map_column_type({"type": ["null", "integer"]}) == "NUMERIC"
        assert map_column_type({}) == "TEXT"
        assert map_column_type("string") == "TEXT"

    def test_param_columns_skip_invalid_and_reserved(self):
        columns = param_columns(SCHEMA)
        assert columns == {
            "city": "TEXT",
            "days": "NUMERIC",
            "metric": "BOOLEAN",
            "tags": "JSONB",
            "options": "JSONB",
            "anything": "TEXT",
        }

    def test_param_columns_without_properties(self):
        assert param_columns(None) == {}
        assert param_columns({"type": "object"}) == {}

    def test_create_table_sql(self):
        sql = build_create_table_sql("forecast", SCHEMA)

        assert sql.startswith('CREATE TABLE IF NOT EXISTS "tool_forecast" (')
        assert "id BIGSERIAL PRIMARY KEY" in sql
        assert "execution_result JSONB" in sql
        assert '"city" TEXT' in sql
        assert '"days" NUMERIC' in sql
        assert '"tags" JSONB' in sql
        assert "bad key" not in sql
        assert sql.count("node_id") == 2  # node_id + parent_node_id, no parameter duplicate


class TestCoerceValue:

    def test_values(self):
        assert coerce_value(None, "TEXT") is None
        assert coerce_value("Paris", "TEXT") == "Paris"
        assert coerce_value(3, "TEXT") == "3"
        assert coerce_value(3, "NUMERIC") == Decimal("3")
        assert coerce_value(2.5, "NUMERIC") == Decimal("2.5")
        assert coerce_value("abc", "NUMERIC") is None
        assert coerce_value(True, "NUMERIC") is None
        assert coerce_value(True, "BOOLEAN") is True
        assert coerce_value("yes", "BOOLEAN") is None
        assert json.loads(coerce_value(["a", "b"], "JSONB")) == ["a", "b"]


class TestExecutionLogStore:

    @pytest.mark.asyncio
    async def test_ensure_log_creates_once(self):
        db = FakeDatabase()
        store = ExecutionLogStore(db)

        await asyncio.gather(*[store.ensure_log("forecast", SCHEMA) for _ in range(5)])
        await store.ensure_log("forecast", SCHEMA)

        assert len(db.statements("CREATE TABLE")) == 1
        assert store.ensured_tables == {"tool_forecast"}

    @pytest.mark.asyncio
    async def test_concurrent_creation_elsewhere_is_success(self):
        db = FakeDatabase(create_error=asyncpg.exceptions.DuplicateTableError("relation already exists"))
        store = ExecutionLogStore(db)

        await store.ensure_log("forecast", SCHEMA)

        assert "tool_forecast" in store.ensured_tables

    @pytest.mark.asyncio
    async def test_unsafe_id_never_reaches_sql(self):
        db = FakeDatabase()
        store = ExecutionLogStore(db)

        with pytest.raises(ValueError):
            await store.ensure_log("x; DROP TABLE users", SCHEMA)
        assert db.executed == []

    @pytest.mark.asyncio
    async def test_append_requires_provisioning(self):
        store = ExecutionLogStore(FakeDatabase())
        with pytest.raises(RuntimeError):
            await store.append("forecast", {"city": "Paris"}, {"success": True})

    @pytest.mark.asyncio
    async def test_append_row(self, identity):
        graph = ProvenanceGraph()
        root = graph.create_root(identity)
        node = graph.spawn_child(root.node_id, NodeType.UTILITY, label="forecast")
        db = FakeDatabase()
        store = ExecutionLogStore(db)
        params = {"city": "Paris", "days": 3, "tags": ["rain"], "unknown": "x"}
        result = {"success": True, "data": {"temp": 21}}

        await store.record("forecast", SCHEMA, params, result, node=node)

        query, args = db.statements("INSERT")[0]
        assert query.startswith('INSERT INTO "tool_forecast" (')
        assert '"execution_result", "input_params", "node_id", "parent_node_id", "city", "days", "tags"' in query
        assert "$7" in query and "$8" not in query
        assert json.loads(args[0]) == result
        assert json.loads(args[1]) == params
        assert args[2] == node.node_id
        assert args[3] == root.node_id
        assert args[4:] == ("Paris", Decimal("3"), '["rain"]')

    @pytest.mark.asyncio
    async def test_missing_columns_are_skipped(self):
        # Table was created before "days" was added to the schema
        db = FakeDatabase(existing_columns=_FIXED + ["city"])
        store = ExecutionLogStore(db)

        await store.record("forecast", SCHEMA, {"city": "Paris", "days": 3}, {"success": True})

        query, args = db.statements("INSERT")[0]
        assert '"days"' not in query
        assert json.loads(args[1]) == {"city": "Paris", "days": 3}

    @pytest.mark.asyncio
    async def test_append_without_node(self):
        db = FakeDatabase()
        store = ExecutionLogStore(db)

        await store.record("forecast", SCHEMA, None, {"success": False})

        _, args = db.statements("INSERT")[0]
        assert args[1] == "{}"
        assert args[2] is None
        assert args[3] is None
