"""
AgentBase Execution Log Store - Per-utility append-only execution log

Every utility gets its own table, ``tool_<utility_id>``, provisioned on first
use from the utility's parameter schema:

    id              BIGSERIAL PRIMARY KEY
    created_at      TIMESTAMPTZ DEFAULT NOW()
    updated_at      TIMESTAMPTZ DEFAULT NOW()
    execution_result JSONB        -- full result, serialized verbatim
    input_params    JSONB         -- full argument object
    node_id         TEXT          -- execution node that made the call
    parent_node_id  TEXT
    "<param>"       <mapped type> -- one column per declared parameter

Type mapping: string -> TEXT, integer/number -> NUMERIC, boolean -> BOOLEAN,
object/array -> JSONB, anything else -> TEXT.

Table and column names are derived from untrusted ids, so every identifier
must match ``[A-Za-z_][A-Za-z0-9_]*`` before it reaches a DDL statement.
Table names longer than 63 characters are shortened with a digest suffix;
longer parameter names get no column (they stay in ``input_params``).
"""

import asyncio
import hashlib
import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Set

import asyncpg

from ..orchestrator.provenance import ExecutionNode
from .database import Database

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

TABLE_PREFIX = "tool_"

# PostgreSQL truncates identifiers longer than this (NAMEDATALEN - 1)
MAX_IDENTIFIER_LENGTH = 63

TYPE_MAPPING: Dict[str, str] = {
    "string": "TEXT",
    "integer": "NUMERIC",
    "number": "NUMERIC",
    "boolean": "BOOLEAN",
    "object": "JSONB",
    "array": "JSONB",
}

FIXED_COLUMNS = (
    ("id", "BIGSERIAL PRIMARY KEY"),
    ("created_at", "TIMESTAMPTZ DEFAULT NOW()"),
    ("updated_at", "TIMESTAMPTZ DEFAULT NOW()"),
    ("execution_result", "JSONB"),
    ("input_params", "JSONB"),
    ("node_id", "TEXT"),
    ("parent_node_id", "TEXT"),
)

RESERVED_COLUMNS = frozenset(name for name, _ in FIXED_COLUMNS)


def is_valid_identifier(name: Any) -> bool:
    return isinstance(name, str) and bool(_IDENTIFIER_RE.match(name))


def map_column_type(prop_schema: Any) -> str:
    """Map a JSON schema property to a PostgreSQL column type."""
    if not isinstance(prop_schema, dict):
        return "TEXT"
    json_type = prop_schema.get("type")
    # ["string", "null"] style unions map by their first non-null member
    if isinstance(json_type, list):
        json_type = next((t for t in json_type if t != "null"), None)
    return TYPE_MAPPING.get(json_type, "TEXT")


def table_name_for(tool_id: str) -> str:
    """
    Table name for a utility's log.

    Names over the identifier limit keep a readable prefix and end in a
    digest of the full id, so distinct ids never share a table.

    Raises:
        ValueError: If the resulting name is not a safe identifier
    """
    name = f"{TABLE_PREFIX}{tool_id}"
    if not is_valid_identifier(name):
        raise ValueError(f"Invalid tool id for table name: {tool_id!r}")
    if len(name) > MAX_IDENTIFIER_LENGTH:
        digest = hashlib.sha256(tool_id.encode()).hexdigest()[:12]
        name = f"{name[:MAX_IDENTIFIER_LENGTH - len(digest) - 1]}_{digest}"
    return name


def param_columns(schema: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Column name -> column type for every loggable parameter in the schema."""
    columns: Dict[str, str] = {}
    properties = (schema or {}).get("properties") or {}
    if not isinstance(properties, dict):
        return columns
    for key, prop in properties.items():
        if not is_valid_identifier(key):
            logger.warning(f"[ExecutionLog] invalid column identifier {key!r}, skipping")
            continue
        if len(key) > MAX_IDENTIFIER_LENGTH:
            logger.warning(f"[ExecutionLog] column identifier {key!r} is too long, skipping")
            continue
        if key in RESERVED_COLUMNS:
            logger.warning(f"[ExecutionLog] parameter {key!r} collides with a fixed column, skipping")
            continue
        columns[key] = map_column_type(prop)
    return columns


def build_create_table_sql(tool_id: str, schema: Optional[Dict[str, Any]]) -> str:
    """DDL for a utility's log table. Only validated identifiers are interpolated."""
    table = table_name_for(tool_id)
    definitions = [f"{name} {ddl}" for name, ddl in FIXED_COLUMNS]
    definitions.extend(f'"{col}" {col_type}' for col, col_type in param_columns(schema).items())
    return f'CREATE TABLE IF NOT EXISTS "{table}" ({", ".join(definitions)})'


def coerce_value(value: Any, column_type: str) -> Any:
    """Convert a parameter value to what asyncpg expects for the column type."""
    if value is None:
        return None
    if column_type == "JSONB":
        return json.dumps(value, ensure_ascii=False, default=str)
    if column_type == "BOOLEAN":
        return value if isinstance(value, bool) else None
    if column_type == "NUMERIC":
        if isinstance(value, bool):
            return None
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


class ExecutionLogStore:
    """
    Durable per-utility execution log.

    Provisioning is check-then-create: ``CREATE TABLE IF NOT EXISTS`` plus an
    in-process memo, with a per-table lock so concurrent first calls inside one
    process issue a single DDL. Cross-process races surface as duplicate-table
    or unique violations on the catalog and are treated as success.

    Usage:
        log = ExecutionLogStore(db)
        await log.record("calc", schema, {"expr": "2+2"}, {"success": True, "data": 4})
    """

    def __init__(self, db: Database):
        self._db = db
        self._ensured: Dict[str, Dict[str, str]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def ensured_tables(self) -> Set[str]:
        return set(self._ensured)

    async def ensure_log(self, tool_id: str, schema: Optional[Dict[str, Any]]) -> None:
        """Idempotently provision the log table for a utility."""
        table = table_name_for(tool_id)
        if table in self._ensured:
            return

        lock = self._locks.setdefault(table, asyncio.Lock())
        async with lock:
            if table in self._ensured:
                return
            try:
                await self._db.execute(build_create_table_sql(tool_id, schema))
            except (asyncpg.exceptions.DuplicateTableError, asyncpg.exceptions.UniqueViolationError):
                logger.debug(f"[ExecutionLog] {table} created concurrently")

            # The table may predate a schema change; only insert into columns that exist.
            existing = await self._existing_columns(table)
            declared = param_columns(schema)
            self._ensured[table] = {
                col: col_type for col, col_type in declared.items() if col in existing
            }
            dropped = set(declared) - existing
            if dropped:
                logger.warning(
                    f"[ExecutionLog] {table} has no column for {sorted(dropped)}; "
                    f"values kept in input_params only"
                )
            logger.info(f"[ExecutionLog] ensured {table}")

    async def append(
        self,
        tool_id: str,
        params: Optional[Dict[str, Any]],
        result: Any,
        node: Optional[ExecutionNode] = None,
    ) -> None:
        """
        Write one entry.

        Keys without a mapped column are left out of the structured columns;
        the full params and result are always stored as JSON.
        """
        table = table_name_for(tool_id)
        columns = self._ensured.get(table)
        if columns is None:
            raise RuntimeError(f"Execution log for '{tool_id}' not provisioned; call ensure_log first")

        params = params or {}
        names: List[str] = ["execution_result", "input_params", "node_id", "parent_node_id"]
        values: List[Any] = [
            json.dumps(result, ensure_ascii=False, default=str),
            json.dumps(params, ensure_ascii=False, default=str),
            node.node_id if node else None,
            node.parent_node_id if node else None,
        ]
        for key, value in params.items():
            col_type = columns.get(key)
            if col_type is None:
                continue
            names.append(key)
            values.append(coerce_value(value, col_type))

        placeholders = ", ".join(f"${i}" for i in range(1, len(values) + 1))
        column_list = ", ".join(f'"{n}"' for n in names)
        await self._db.execute(
            f'INSERT INTO "{table}" ({column_list}) VALUES ({placeholders})',
            *values,
        )

    async def record(
        self,
        tool_id: str,
        schema: Optional[Dict[str, Any]],
        params: Optional[Dict[str, Any]],
        result: Any,
        node: Optional[ExecutionNode] = None,
    ) -> None:
        """ensure_log + append; the call the dispatcher makes after each dispatch."""
        await self.ensure_log(tool_id, schema)
        await self.append(tool_id, params, result, node=node)

    async def _existing_columns(self, table: str) -> Set[str]:
        rows = await self._db.fetch(
            "SELECT column_name FROM information_schema.columns WHERE table_name = $1",
            table,
        )
        return {r["column_name"] for r in rows}
