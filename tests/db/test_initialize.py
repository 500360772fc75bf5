"""Tests for agentbase.db.initialize"""

from contextlib import asynccontextmanager

import pytest

from agentbase.db.initialize import MIGRATIONS, ensure_schema


class FakeConnection:
    def __init__(self, current_version):
        self.current_version = current_version
        self.executed = []

    @asynccontextmanager
    async def transaction(self):
        yield

    async def execute(self, query, *args):
        self.executed.append((query.strip(), args))

    async def fetchrow(self, query, *args):
        return {"v": self.current_version}


class FakeDatabase:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


class TestEnsureSchema:

    def test_migrations_are_ordered(self):
        versions = [v for v, _, _ in MIGRATIONS]
        assert versions == sorted(versions)
        assert len(set(versions)) == len(versions)

    @pytest.mark.asyncio
    async def test_fresh_database(self):
        conn = FakeConnection(current_version=0)
        await ensure_schema(FakeDatabase(conn))

        statements = [q for q, _ in conn.executed]
        assert statements[0].startswith("SELECT pg_advisory_lock")
        assert any("CREATE TABLE IF NOT EXISTS conversations" in q for q in statements)
        assert any("CREATE TABLE IF NOT EXISTS conversation_messages" in q for q in statements)
        recorded = [args[0] for q, args in conn.executed if q.startswith("INSERT INTO schema_version")]
        assert recorded == [v for v, _, _ in MIGRATIONS]
        assert statements[-1].startswith("SELECT pg_advisory_unlock")

    @pytest.mark.asyncio
    async def test_up_to_date(self):
        conn = FakeConnection(current_version=MIGRATIONS[-1][0])
        await ensure_schema(FakeDatabase(conn))

        statements = [q for q, _ in conn.executed]
        assert not any(q.startswith("INSERT INTO schema_version") for q in statements)
        assert statements[-1].startswith("SELECT pg_advisory_unlock")
