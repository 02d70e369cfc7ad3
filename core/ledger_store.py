"""
Ledger Store

Document store consumed by every settlement repository. Each operation is
atomic for a single document; multi-document units are composed by the
services as compensating sagas.

Usage:
    from core.ledger_store import PostgresLedgerStore

    store = PostgresLedgerStore.from_config(infra_config)
    await store.connect()
    order_id = await store.insert("orders", {"status": "pending"})
    order = await store.update("orders", order_id, {"status": "confirmed"},
                               expected={"status": "pending"})
"""

import asyncio
import json
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import asyncpg

from .config import InfraConfig
from .errors import ConflictError, DependencyError

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a document to its stored JSON form (Decimal and datetime as strings)"""
    return json.loads(json.dumps(doc, default=_json_default))


@runtime_checkable
class LedgerStoreProtocol(Protocol):
    """Interface of the durable document store"""

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    async def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        ...

    async def update(
        self,
        collection: str,
        doc_id: str,
        patch: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Merge `patch` into the document.

        When `expected` is given the write only happens if every expected
        field still has the given value (compare-and-set). Returns the
        updated document, or None when the document is missing or the
        expectation no longer holds.
        """
        ...

    async def delete(self, collection: str, doc_id: str) -> bool:
        ...


class PostgresLedgerStore:
    """
    Ledger store on PostgreSQL.

    All collections share one table of JSONB documents keyed by
    (collection, id). Compare-and-set uses JSONB containment so the check
    and the write happen in a single UPDATE statement.
    """

    TABLE = "ledger_documents"

    def __init__(
        self,
        dsn: str,
        schema: str = "settlement",
        min_pool: int = 1,
        max_pool: int = 10,
        command_timeout: float = 10.0,
    ):
        self.dsn = dsn
        self.schema = schema
        self.min_pool = min_pool
        self.max_pool = max_pool
        self.command_timeout = command_timeout
        self._pool: Optional[asyncpg.Pool] = None

    @classmethod
    def from_config(cls, infra: InfraConfig) -> "PostgresLedgerStore":
        return cls(
            dsn=infra.postgres_dsn,
            schema=infra.postgres_schema,
            min_pool=infra.postgres_min_pool,
            max_pool=infra.postgres_max_pool,
        )

    @property
    def _table(self) -> str:
        return f"{self.schema}.{self.TABLE}"

    async def connect(self):
        """Create the connection pool and ensure the documents table exists"""
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=self.min_pool,
                max_size=self.max_pool,
                command_timeout=self.command_timeout,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(f"CREATE SCHEMA IF NOT EXISTS {self.schema}")
                await conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self._table} (
                        collection TEXT NOT NULL,
                        id TEXT NOT NULL,
                        data JSONB NOT NULL,
                        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                        PRIMARY KEY (collection, id)
                    )
                    """
                )
                await conn.execute(
                    f"CREATE INDEX IF NOT EXISTS {self.TABLE}_data_idx "
                    f"ON {self._table} USING GIN (data jsonb_path_ops)"
                )
            logger.info(f"Ledger store connected ({self._table})")
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            raise DependencyError(f"Ledger store unavailable: {e}") from e

    async def close(self):
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Ledger store connection pool closed")

    async def health_check(self) -> bool:
        try:
            await self._fetchval("SELECT 1")
            return True
        except DependencyError:
            return False

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raw = await self._fetchval(
            f"SELECT data FROM {self._table} WHERE collection = $1 AND id = $2",
            collection, doc_id,
        )
        return json.loads(raw) if raw else None

    async def query(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        sql = f"SELECT data FROM {self._table} WHERE collection = $1 AND data @> $2::jsonb"
        params: List[Any] = [collection, json.dumps(encode_document(filters or {}))]
        if order_by:
            params.append(order_by)
            sql += f" ORDER BY data->>${len(params)} {'DESC' if descending else 'ASC'}"
        if limit:
            params.append(limit)
            sql += f" LIMIT ${len(params)}"

        rows = await self._fetch(sql, *params)
        return [json.loads(row["data"]) for row in rows]

    async def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        doc = encode_document(doc)
        doc_id = str(doc.get("id") or uuid.uuid4())
        doc["id"] = doc_id
        try:
            await self._execute(
                f"INSERT INTO {self._table} (collection, id, data) VALUES ($1, $2, $3::jsonb)",
                collection, doc_id, json.dumps(doc),
            )
        except asyncpg.UniqueViolationError as e:
            raise ConflictError(f"{collection}/{doc_id} already exists") from e
        return doc_id

    async def update(
        self,
        collection: str,
        doc_id: str,
        patch: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        raw = await self._fetchval(
            f"""
            UPDATE {self._table}
            SET data = data || $3::jsonb, updated_at = now()
            WHERE collection = $1 AND id = $2 AND data @> $4::jsonb
            RETURNING data
            """,
            collection, doc_id,
            json.dumps(encode_document(patch)),
            json.dumps(encode_document(expected or {})),
        )
        return json.loads(raw) if raw else None

    async def delete(self, collection: str, doc_id: str) -> bool:
        deleted = await self._fetchval(
            f"DELETE FROM {self._table} WHERE collection = $1 AND id = $2 RETURNING id",
            collection, doc_id,
        )
        return deleted is not None

    # ==================== Internal ====================

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise DependencyError("Ledger store is not connected")
        return self._pool

    async def _fetchval(self, sql: str, *args):
        try:
            async with self._require_pool().acquire() as conn:
                return await conn.fetchval(sql, *args)
        except asyncpg.UniqueViolationError:
            raise
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            raise DependencyError(f"Ledger store error: {e}") from e

    async def _fetch(self, sql: str, *args):
        try:
            async with self._require_pool().acquire() as conn:
                return await conn.fetch(sql, *args)
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            raise DependencyError(f"Ledger store error: {e}") from e

    async def _execute(self, sql: str, *args):
        try:
            async with self._require_pool().acquire() as conn:
                return await conn.execute(sql, *args)
        except asyncpg.UniqueViolationError:
            raise
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            raise DependencyError(f"Ledger store error: {e}") from e
