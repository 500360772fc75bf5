"""Tests for agentbase.db.thread_store"""

import json
from contextlib import asynccontextmanager

import pytest

from agentbase.db.thread_store import MemoryThreadStore, PostgresThreadStore
from agentbase.errors import ThreadNotFound
from agentbase.messages import Message, MessageToolCall


# =========================================================================
# MemoryThreadStore
# =========================================================================


class TestMemoryThreadStore:

    @pytest.mark.asyncio
    async def test_create_load_append(self):
        store = MemoryThreadStore()
        await store.create_thread("conv_1", user_id="user_1")

        assert await store.exists("conv_1")
        assert await store.load_thread("conv_1") == []

        await store.append_messages("conv_1", [Message.user("hi"), Message.assistant("hello")])
        await store.append_messages("conv_1", [Message.user("bye")])

        thread = await store.load_thread("conv_1")
        assert [m.content for m in thread] == ["hi", "hello", "bye"]

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self):
        store = MemoryThreadStore()
        await store.create_thread("conv_1")
        await store.append_messages("conv_1", [Message.user("hi")])
        await store.create_thread("conv_1")

        assert len(await store.load_thread("conv_1")) == 1

    @pytest.mark.asyncio
    async def test_unknown_thread(self):
        store = MemoryThreadStore()
        assert not await store.exists("nope")
        with pytest.raises(ThreadNotFound):
            await store.load_thread("nope")
        with pytest.raises(ThreadNotFound):
            await store.append_messages("nope", [Message.user("hi")])

    @pytest.mark.asyncio
    async def test_load_returns_copy(self):
        store = MemoryThreadStore()
        await store.create_thread("conv_1")
        thread = await store.load_thread("conv_1")
        thread.append(Message.user("sneaky"))

        assert await store.load_thread("conv_1") == []

    @pytest.mark.asyncio
    async def test_delete(self):
        store = MemoryThreadStore()
        await store.create_thread("conv_1")

        assert await store.delete_thread("conv_1") is True
        assert await store.delete_thread("conv_1") is False
        assert not await store.exists("conv_1")


# =========================================================================
# PostgresThreadStore (fake connection)
# =========================================================================


class FakeConnection:
    def __init__(self, thread_exists=True, next_position=0):
        self.thread_exists = thread_exists
        self.next_position = next_position
        self.executed = []
        self.rows = None
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield

    async def fetchval(self, query, *args):
        if "FOR UPDATE" in query:
            return 1 if self.thread_exists else None
        return self.next_position

    async def executemany(self, query, rows):
        self.rows = rows

    async def execute(self, query, *args):
        self.executed.append((query, args))


class FakeDatabase:
    def __init__(self, conn=None, exists=True, rows=None, delete_status="DELETE 1"):
        self.conn = conn or FakeConnection()
        self.exists = exists
        self.rows = rows or []
        self.delete_status = delete_status
        self.executed = []

    @asynccontextmanager
    async def acquire(self):
        yield self.conn

    async def execute(self, query, *args):
        self.executed.append((query, args))
        if query.strip().startswith("DELETE"):
            return self.delete_status
        return "INSERT 0 1"

    async def fetchval(self, query, *args):
        return 1 if self.exists else None

    async def fetch(self, query, *args):
        return self.rows


class TestPostgresThreadStore:

    @pytest.mark.asyncio
    async def test_create_thread_is_upsert(self):
        db = FakeDatabase()
        await PostgresThreadStore(db).create_thread("conv_1", user_id="user_1", organization_id="org_1")

        query, args = db.executed[0]
        assert "ON CONFLICT (conversation_id) DO NOTHING" in query
        assert args == ("conv_1", "user_1", "org_1")

    @pytest.mark.asyncio
    async def test_append_positions_and_payload(self):
        conn = FakeConnection(next_position=3)
        store = PostgresThreadStore(FakeDatabase(conn=conn))
        call = MessageToolCall(id="c1", name="calc", arguments={"expr": "2+2"})

        await store.append_messages("conv_1", [
            Message.assistant(None, [call]),
            Message.tool("c1", "4"),
        ])

        assert conn.transactions == 1
        first, second = conn.rows
        assert first[:4] == ("conv_1", 3, "assistant", None)
        assert json.loads(first[4]) == [call.to_dict()]
        assert first[5] is None
        assert second == ("conv_1", 4, "tool", "4", None, "c1")
        assert "updated_at" in conn.executed[-1][0]

    @pytest.mark.asyncio
    async def test_append_to_missing_thread(self):
        conn = FakeConnection(thread_exists=False)
        store = PostgresThreadStore(FakeDatabase(conn=conn))

        with pytest.raises(ThreadNotFound):
            await store.append_messages("nope", [Message.user("hi")])
        assert conn.rows is None

    @pytest.mark.asyncio
    async def test_append_nothing_is_noop(self):
        conn = FakeConnection()
        await PostgresThreadStore(FakeDatabase(conn=conn)).append_messages("conv_1", [])
        assert conn.transactions == 0

    @pytest.mark.asyncio
    async def test_load_thread(self):
        call = MessageToolCall(id="c1", name="calc", arguments={"expr": "2+2"})
        rows = [
            {"role": "user", "content": "2+2?", "tool_calls": None, "tool_call_id": None},
            {"role": "assistant", "content": None, "tool_calls": json.dumps([call.to_dict()]), "tool_call_id": None},
            {"role": "tool", "content": "4", "tool_calls": None, "tool_call_id": "c1"},
        ]
        store = PostgresThreadStore(FakeDatabase(rows=rows))

        thread = await store.load_thread("conv_1")

        assert [m.role for m in thread] == ["user", "assistant", "tool"]
        assert thread[1].tool_calls == [call]
        assert thread[2].tool_call_id == "c1"

    @pytest.mark.asyncio
    async def test_load_missing_thread(self):
        store = PostgresThreadStore(FakeDatabase(exists=False))
        with pytest.raises(ThreadNotFound):
            await store.load_thread("nope")

    @pytest.mark.asyncio
    async def test_delete(self):
        assert await PostgresThreadStore(FakeDatabase()).delete_thread("conv_1") is True
        assert await PostgresThreadStore(FakeDatabase(delete_status="DELETE 0")).delete_thread("x") is False
