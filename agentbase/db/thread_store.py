"""
AgentBase Thread Store - Persisted conversation threads

A thread is the ordered, append-only message history of one conversation.
The run controller loads it at the start of a run and appends the run's new
messages once the run completes.

Backends:
- MemoryThreadStore: process-local dict, for tests and single-process use
- PostgresThreadStore: asyncpg, tables ``conversations`` and
  ``conversation_messages`` (created by ``ensure_schema``)
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..errors import ThreadNotFound
from ..messages import Message, MessageToolCall
from .database import Database

logger = logging.getLogger(__name__)


class ThreadStore(ABC):
    """Abstract storage for conversation threads."""

    @abstractmethod
    async def create_thread(
        self,
        conversation_id: str,
        user_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> None:
        """Create an empty thread. No-op when it already exists."""

    @abstractmethod
    async def exists(self, conversation_id: str) -> bool:
        """Check whether a thread exists."""

    @abstractmethod
    async def load_thread(self, conversation_id: str) -> List[Message]:
        """
        Load all messages of a thread in insertion order.

        Raises:
            ThreadNotFound: If the thread does not exist
        """

    @abstractmethod
    async def append_messages(self, conversation_id: str, messages: List[Message]) -> None:
        """
        Append messages to the end of a thread.

        Raises:
            ThreadNotFound: If the thread does not exist
        """

    @abstractmethod
    async def delete_thread(self, conversation_id: str) -> bool:
        """Delete a thread and its messages. Returns True if it existed."""


class MemoryThreadStore(ThreadStore):
    """In-memory thread store."""

    def __init__(self) -> None:
        self._threads: Dict[str, List[Message]] = {}
        self._lock = asyncio.Lock()

    async def create_thread(
        self,
        conversation_id: str,
        user_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> None:
        async with self._lock:
            self._threads.setdefault(conversation_id, [])

    async def exists(self, conversation_id: str) -> bool:
        return conversation_id in self._threads

    async def load_thread(self, conversation_id: str) -> List[Message]:
        thread = self._threads.get(conversation_id)
        if thread is None:
            raise ThreadNotFound(conversation_id)
        return list(thread)

    async def append_messages(self, conversation_id: str, messages: List[Message]) -> None:
        async with self._lock:
            thread = self._threads.get(conversation_id)
            if thread is None:
                raise ThreadNotFound(conversation_id)
            thread.extend(messages)

    async def delete_thread(self, conversation_id: str) -> bool:
        async with self._lock:
            return self._threads.pop(conversation_id, None) is not None


class PostgresThreadStore(ThreadStore):
    """
    PostgreSQL thread store.

    Usage:
        db = Database(dsn="postgresql://...")
        await db.initialize()
        await ensure_schema(db)
        threads = PostgresThreadStore(db)
    """

    def __init__(self, db: Database):
        self._db = db

    async def create_thread(
        self,
        conversation_id: str,
        user_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> None:
        await self._db.execute(
            """
            INSERT INTO conversations (conversation_id, user_id, organization_id)
            VALUES ($1, $2, $3)
            ON CONFLICT (conversation_id) DO NOTHING
            """,
            conversation_id,
            user_id,
            organization_id,
        )

    async def exists(self, conversation_id: str) -> bool:
        found = await self._db.fetchval(
            "SELECT 1 FROM conversations WHERE conversation_id = $1",
            conversation_id,
        )
        return found is not None

    async def load_thread(self, conversation_id: str) -> List[Message]:
        if not await self.exists(conversation_id):
            raise ThreadNotFound(conversation_id)
        rows = await self._db.fetch(
            """
            SELECT role, content, tool_calls, tool_call_id
            FROM conversation_messages
            WHERE conversation_id = $1
            ORDER BY position ASC
            """,
            conversation_id,
        )
        return [self._row_to_message(r) for r in rows]

    async def append_messages(self, conversation_id: str, messages: List[Message]) -> None:
        if not messages:
            return
        async with self._db.acquire() as conn:
            async with conn.transaction():
                # Row lock serializes concurrent appends to the same thread.
                locked = await conn.fetchval(
                    "SELECT 1 FROM conversations WHERE conversation_id = $1 FOR UPDATE",
                    conversation_id,
                )
                if locked is None:
                    raise ThreadNotFound(conversation_id)

                next_position = await conn.fetchval(
                    "SELECT COALESCE(MAX(position) + 1, 0) FROM conversation_messages "
                    "WHERE conversation_id = $1",
                    conversation_id,
                )
                await conn.executemany(
                    """
                    INSERT INTO conversation_messages
                        (conversation_id, position, role, content, tool_calls, tool_call_id)
                    VALUES ($1, $2, $3, $4, $5::jsonb, $6)
                    """,
                    [
                        (
                            conversation_id,
                            next_position + offset,
                            m.role,
                            m.content,
                            json.dumps([tc.to_dict() for tc in m.tool_calls]) if m.tool_calls else None,
                            m.tool_call_id,
                        )
                        for offset, m in enumerate(messages)
                    ],
                )
                await conn.execute(
                    "UPDATE conversations SET updated_at = NOW() WHERE conversation_id = $1",
                    conversation_id,
                )
        logger.debug(f"Appended {len(messages)} message(s) to {conversation_id}")

    async def delete_thread(self, conversation_id: str) -> bool:
        result = await self._db.execute(
            "DELETE FROM conversations WHERE conversation_id = $1",
            conversation_id,
        )
        return result == "DELETE 1"

    @staticmethod
    def _row_to_message(row) -> Message:
        raw_calls = row["tool_calls"]
        if isinstance(raw_calls, str):
            raw_calls = json.loads(raw_calls)
        return Message(
            role=row["role"],
            content=row["content"],
            tool_calls=[MessageToolCall.from_dict(tc) for tc in raw_calls or []],
            tool_call_id=row["tool_call_id"],
        )
