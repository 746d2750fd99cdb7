"""
PostgreSQL-backed catalog store and listing index (psycopg 3, async).

Tables (created on first connect):

    catalog_records(article_key TEXT PRIMARY KEY, supplier TEXT, data JSONB)
    listing_index(owner TEXT, article_key TEXT, visible BOOL, indexed BOOL,
                  category TEXT, PRIMARY KEY (owner, article_key))
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional

from ..harvester.models import AggregatedRecord, identity_key
from .store import Listing

logger = logging.getLogger(__name__)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS catalog_records (
        article_key TEXT PRIMARY KEY,
        supplier TEXT,
        data JSONB NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS catalog_records_supplier ON catalog_records (supplier)",
    """
    CREATE TABLE IF NOT EXISTS listing_index (
        owner TEXT NOT NULL,
        article_key TEXT NOT NULL,
        visible BOOLEAN NOT NULL DEFAULT TRUE,
        indexed BOOLEAN NOT NULL DEFAULT TRUE,
        category TEXT,
        PRIMARY KEY (owner, article_key)
    )
    """,
]


class PostgresCatalog:
    """Catalog store and listing index sharing one async connection."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self._conn = None
        self._connect_lock = asyncio.Lock()

    async def _connection(self):
        """Lazy connection; creates the schema on first use.

        Concurrent callers share one connect under ``_connect_lock``.
        """
        if self._conn is not None and not self._conn.closed:
            return self._conn
        async with self._connect_lock:
            if self._conn is None or self._conn.closed:
                import psycopg
                from psycopg.rows import dict_row

                conn = await psycopg.AsyncConnection.connect(
                    self.database_url, row_factory=dict_row, autocommit=True
                )
                async with conn.cursor() as cur:
                    for statement in _SCHEMA:
                        await cur.execute(statement)
                self._conn = conn
                logger.info("Connected to catalog database")
        return self._conn

    async def close(self):
        if self._conn is not None and not self._conn.closed:
            await self._conn.close()
        self._conn = None

    # =========================================================================
    # CatalogStore
    # =========================================================================

    async def get(self, article: str) -> Optional[AggregatedRecord]:
        conn = await self._connection()
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT data FROM catalog_records WHERE article_key = %s",
                (identity_key(article),),
            )
            row = await cur.fetchone()
        return AggregatedRecord.model_validate(row["data"]) if row else None

    async def save(self, record: AggregatedRecord) -> None:
        from psycopg.types.json import Jsonb

        conn = await self._connection()
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO catalog_records (article_key, supplier, data)
                VALUES (%s, %s, %s)
                ON CONFLICT (article_key)
                DO UPDATE SET supplier = EXCLUDED.supplier, data = EXCLUDED.data
                """,
                (record.identity, record.supplier, Jsonb(record.model_dump(mode="json"))),
            )

    async def delete_many(self, articles: Iterable[str]) -> int:
        keys = [identity_key(a) for a in articles]
        if not keys:
            return 0
        conn = await self._connection()
        async with conn.cursor() as cur:
            await cur.execute("DELETE FROM catalog_records WHERE article_key = ANY(%s)", (keys,))
            return cur.rowcount

    async def list(self, supplier: str) -> List[AggregatedRecord]:
        conn = await self._connection()
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT data FROM catalog_records WHERE supplier = %s ORDER BY article_key",
                (supplier,),
            )
            rows = await cur.fetchall()
        return [AggregatedRecord.model_validate(row["data"]) for row in rows]


class PostgresListingIndex:
    """Listing index stored next to the catalog."""

    def __init__(self, catalog: PostgresCatalog):
        self.catalog = catalog

    async def get(self, owner: str, article: str) -> Optional[Listing]:
        conn = await self.catalog._connection()
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT visible, indexed, category FROM listing_index "
                "WHERE owner = %s AND article_key = %s",
                (owner, identity_key(article)),
            )
            row = await cur.fetchone()
        return Listing(**row) if row else None

    async def set_visibility(
        self, owner: str, articles: Iterable[str], visible: bool, indexed: bool
    ) -> None:
        conn = await self.catalog._connection()
        async with conn.cursor() as cur:
            await cur.executemany(
                """
                INSERT INTO listing_index (owner, article_key, visible, indexed)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (owner, article_key)
                DO UPDATE SET visible = EXCLUDED.visible, indexed = EXCLUDED.indexed
                """,
                [(owner, identity_key(a), visible, indexed) for a in articles],
            )

    async def remove_many(self, owner: str, articles: Iterable[str]) -> int:
        keys = [identity_key(a) for a in articles]
        if not keys:
            return 0
        conn = await self.catalog._connection()
        async with conn.cursor() as cur:
            await cur.execute(
                "DELETE FROM listing_index WHERE owner = %s AND article_key = ANY(%s)",
                (owner, keys),
            )
            return cur.rowcount

    async def get_category(self, owner: str, article: str) -> Optional[str]:
        listing = await self.get(owner, article)
        return listing.category if listing else None

    async def set_category(self, owner: str, article: str, category: str) -> None:
        conn = await self.catalog._connection()
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO listing_index (owner, article_key, category)
                VALUES (%s, %s, %s)
                ON CONFLICT (owner, article_key) DO UPDATE SET category = EXCLUDED.category
                """,
                (owner, identity_key(article), category),
            )


__all__ = ["PostgresCatalog", "PostgresListingIndex"]
