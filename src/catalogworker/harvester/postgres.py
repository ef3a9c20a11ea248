"""PostgreSQL-backed catalog store.

Tables are created by ``create_schema()``. Every operation borrows its own
connection from an async pool, so concurrent reconciliations never share a
transaction. Privilege replacement runs delete-all + insert inside one
transaction, so concurrent readers see either the previous or the new grant
set. Reindexing is delegated to the search indexer through ``NOTIFY`` on
``reindex_channel``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from .errors import StoreUnavailableError
from .models import CatalogRecord, Operation, OperationGrant

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS catalog_record (
    id            SERIAL PRIMARY KEY,
    uuid          TEXT NOT NULL,
    schema_id     TEXT NOT NULL,
    harvest_uuid  TEXT NOT NULL,
    owner_id      TEXT,
    data          BYTEA NOT NULL,
    created_at    TIMESTAMPTZ NOT NULL,
    changed_at    TIMESTAMPTZ NOT NULL,
    UNIQUE (harvest_uuid, uuid)
);
CREATE TABLE IF NOT EXISTS catalog_operation_allowed (
    record_id  INTEGER NOT NULL REFERENCES catalog_record(id) ON DELETE CASCADE,
    group_id   TEXT NOT NULL,
    operation  TEXT NOT NULL,
    PRIMARY KEY (record_id, group_id, operation)
);
CREATE TABLE IF NOT EXISTS catalog_record_category (
    record_id    INTEGER NOT NULL REFERENCES catalog_record(id) ON DELETE CASCADE,
    category_id  TEXT NOT NULL,
    PRIMARY KEY (record_id, category_id)
);
"""


class PostgresCatalogStore:
    """Catalog store over a pool of async psycopg connections."""

    def __init__(
        self,
        database_url: str,
        reindex_channel: str = "catalog_reindex",
        pool_size: int = 5,
        timeout: float = 30.0,
    ):
        """
        Args:
            database_url: PostgreSQL connection URL
            reindex_channel: NOTIFY channel the search indexer listens on
            pool_size: Maximum pooled connections
            timeout: Seconds to wait for a connection before giving up
        """
        self.database_url = database_url
        self.reindex_channel = reindex_channel
        self.pool_size = pool_size
        self.timeout = timeout
        self._pool: Optional[AsyncConnectionPool] = None

    async def _get_pool(self) -> AsyncConnectionPool:
        """Lazy pool; connections are autocommit with dict rows."""
        if self._pool is None:
            pool = AsyncConnectionPool(
                self.database_url,
                min_size=1,
                max_size=self.pool_size,
                timeout=self.timeout,
                kwargs={"row_factory": dict_row, "autocommit": True},
                open=False,
            )
            try:
                await pool.open(wait=True, timeout=self.timeout)
            except Exception:
                await pool.close()
                raise
            self._pool = pool
        return self._pool

    async def ping(self) -> None:
        try:
            pool = await self._get_pool()
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")
        except psycopg.Error as e:
            raise StoreUnavailableError(f"Catalog database unreachable: {e}") from e

    async def create_schema(self) -> None:
        pool = await self._get_pool()
        async with pool.connection() as conn:
            await conn.execute(SCHEMA_SQL)

    async def _load(self, conn, rows: List[dict]) -> List[CatalogRecord]:
        if not rows:
            return []

        ids = [row["id"] for row in rows]
        grants: dict[int, set] = {i: set() for i in ids}
        categories: dict[int, set] = {i: set() for i in ids}

        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT record_id, group_id, operation FROM catalog_operation_allowed "
                "WHERE record_id = ANY(%s)",
                (ids,),
            )
            for row in await cur.fetchall():
                grants[row["record_id"]].add(
                    OperationGrant(row["group_id"], Operation(row["operation"]))
                )

            await cur.execute(
                "SELECT record_id, category_id FROM catalog_record_category "
                "WHERE record_id = ANY(%s)",
                (ids,),
            )
            for row in await cur.fetchall():
                categories[row["record_id"]].add(row["category_id"])

        return [
            CatalogRecord(
                id=row["id"],
                uuid=row["uuid"],
                schema_id=row["schema_id"],
                harvest_uuid=row["harvest_uuid"],
                data=bytes(row["data"]),
                created_at=row["created_at"],
                changed_at=row["changed_at"],
                owner_id=row["owner_id"],
                categories=frozenset(categories[row["id"]]),
                operations=frozenset(grants[row["id"]]),
            )
            for row in rows
        ]

    async def find_by_owner(self, harvest_uuid: str) -> List[CatalogRecord]:
        pool = await self._get_pool()
        async with pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "SELECT * FROM catalog_record WHERE harvest_uuid = %s ORDER BY id",
                    (harvest_uuid,),
                )
                rows = await cur.fetchall()
            return await self._load(conn, rows)

    async def find_by_owner_and_identity(
        self, harvest_uuid: str, uuid: str
    ) -> Optional[CatalogRecord]:
        pool = await self._get_pool()
        async with pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "SELECT * FROM catalog_record WHERE harvest_uuid = %s AND uuid = %s",
                    (harvest_uuid, uuid),
                )
                row = await cur.fetchone()
            records = await self._load(conn, [row] if row else [])
        return records[0] if records else None

    async def insert(
        self,
        harvest_uuid: str,
        schema_id: str,
        data: bytes,
        uuid: str,
        created_at: datetime,
        owner_id: Optional[str] = None,
    ) -> int:
        pool = await self._get_pool()
        async with pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO catalog_record
                        (uuid, schema_id, harvest_uuid, owner_id, data, created_at, changed_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (uuid, schema_id, harvest_uuid, owner_id, data, created_at, created_at),
                )
                row = await cur.fetchone()
        return row["id"]

    async def replace_content(
        self, record_id: int, data: bytes, changed_at: datetime
    ) -> None:
        pool = await self._get_pool()
        async with pool.connection() as conn:
            await conn.execute(
                "UPDATE catalog_record SET data = %s, changed_at = %s WHERE id = %s",
                (data, changed_at, record_id),
            )

    async def replace_allowed_operations(
        self, record_id: int, grants: Iterable[OperationGrant]
    ) -> None:
        rows = [(record_id, g.group, g.operation.value) for g in grants]
        pool = await self._get_pool()
        async with pool.connection() as conn:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.execute(
                        "DELETE FROM catalog_operation_allowed WHERE record_id = %s",
                        (record_id,),
                    )
                    if rows:
                        await cur.executemany(
                            "INSERT INTO catalog_operation_allowed "
                            "(record_id, group_id, operation) VALUES (%s, %s, %s)",
                            rows,
                        )

    async def replace_categories(
        self, record_id: int, categories: Iterable[str]
    ) -> None:
        rows = [(record_id, category) for category in categories]
        pool = await self._get_pool()
        async with pool.connection() as conn:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.execute(
                        "DELETE FROM catalog_record_category WHERE record_id = %s",
                        (record_id,),
                    )
                    if rows:
                        await cur.executemany(
                            "INSERT INTO catalog_record_category (record_id, category_id) "
                            "VALUES (%s, %s)",
                            rows,
                        )

    async def delete(self, record_id: int) -> None:
        pool = await self._get_pool()
        async with pool.connection() as conn:
            # Privileges and categories cascade.
            await conn.execute("DELETE FROM catalog_record WHERE id = %s", (record_id,))
            await self._notify(conn, "delete", record_id)

    async def reindex(self, record_id: int) -> None:
        pool = await self._get_pool()
        async with pool.connection() as conn:
            await self._notify(conn, "index", record_id)

    async def _notify(self, conn, action: str, record_id: int) -> None:
        await conn.execute(
            "SELECT pg_notify(%s, %s)", (self.reindex_channel, f"{action}:{record_id}")
        )

    async def close(self):
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None


__all__ = ["PostgresCatalogStore", "SCHEMA_SQL"]
