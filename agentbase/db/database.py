"""
AgentBase Database - asyncpg pool shared by the thread store and execution log.

The ``database`` config entry is either a DSN string or a mapping:

    database:
      dsn: ${DATABASE_URL}
      min_size: 1
      max_size: 10
      command_timeout: 30

Usage:
    db = Database.from_config(cfg["database"])
    await db.initialize()
    await ensure_schema(db)
    ...
    await db.close()
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

import asyncpg

logger = logging.getLogger(__name__)

_POOL_OPTIONS = ("min_size", "max_size", "command_timeout")


class Database:
    """Owns one asyncpg pool; ``initialize`` is idempotent and safe to race."""

    def __init__(self, dsn: str, **pool_options: Any):
        unknown = set(pool_options) - set(_POOL_OPTIONS)
        if unknown:
            raise ValueError(f"Unknown database options: {sorted(unknown)}")
        if not dsn:
            raise ValueError("Database DSN must be non-empty")
        self.dsn = dsn
        self.pool_options: Dict[str, Any] = {"min_size": 1, "max_size": 10, **pool_options}
        self._pool: Optional[asyncpg.Pool] = None
        self._open_lock: Optional[asyncio.Lock] = None

    @classmethod
    def from_config(cls, value: Union[str, Dict[str, Any]]) -> "Database":
        if isinstance(value, str):
            return cls(value)
        options = dict(value)
        return cls(options.pop("dsn", ""), **options)

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database is not initialized; await initialize() first")
        return self._pool

    async def initialize(self) -> None:
        if self._open_lock is None:
            self._open_lock = asyncio.Lock()
        async with self._open_lock:
            if self._pool is not None:
                return
            self._pool = await asyncpg.create_pool(self.dsn, **self.pool_options)
        logger.info(
            f"[Database] pool open (min={self.pool_options['min_size']}, "
            f"max={self.pool_options['max_size']})"
        )

    async def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()
            logger.info("[Database] pool closed")

    def acquire(self):
        """``async with db.acquire() as conn`` for multi-statement work."""
        return self.pool.acquire()

    async def execute(self, query: str, *args: Any) -> str:
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)
