"""
AgentBase Database - asyncpg-based persistence.

- Database: shared connection pool manager (one per app)
- ensure_schema: apply pending migrations (conversation tables)
- ThreadStore / MemoryThreadStore / PostgresThreadStore: conversation threads
- ExecutionLogStore: per-utility execution log, provisioned on first use
"""

from .database import Database
from .initialize import ensure_schema
from .thread_store import ThreadStore, MemoryThreadStore, PostgresThreadStore
from .execution_log import ExecutionLogStore

__all__ = [
    "Database",
    "ensure_schema",
    "ThreadStore",
    "MemoryThreadStore",
    "PostgresThreadStore",
    "ExecutionLogStore",
]
