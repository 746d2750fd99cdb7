"""
Tests for the PostgreSQL catalog and listing index against a fake connection.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import psycopg
import pytest
from psycopg.types.json import Jsonb

from catalogworker.catalog import apply_missing_policy
from catalogworker.catalog.postgres import PostgresCatalog, PostgresListingIndex
from catalogworker.catalog.store import Listing
from catalogworker.entries import MissingPolicy

from conftest import make_record


class FakeCursor:
    """Records statements; returns scripted rows."""

    def __init__(self, conn):
        self.conn = conn
        self.rowcount = conn.rowcount

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, sql, params=None):
        self.conn.executed.append((" ".join(sql.split()), params))

    async def executemany(self, sql, params_seq):
        self.conn.executed.append((" ".join(sql.split()), list(params_seq)))

    async def fetchone(self):
        return self.conn.rows[0] if self.conn.rows else None

    async def fetchall(self):
        return list(self.conn.rows)


class FakeConnection:
    def __init__(self, rows=None, rowcount=0):
        self.rows = rows or []
        self.rowcount = rowcount
        self.executed = []
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    async def close(self):
        self.closed = True


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def catalog(conn):
    catalog = PostgresCatalog("postgresql://catalog.test/db")
    catalog._conn = conn
    return catalog


@pytest.fixture
def index(catalog):
    return PostgresListingIndex(catalog)


class TestPostgresCatalog:
    """SQL issued by the catalog store."""

    @pytest.mark.asyncio
    async def test_get_uses_identity_key(self, catalog, conn):
        conn.rows = [{"data": make_record("AB-1", supplier="dd").model_dump(mode="json")}]

        record = await catalog.get("  AB-1 ")

        sql, params = conn.executed[-1]
        assert sql.startswith("SELECT data FROM catalog_records")
        assert params == ("ab-1",)
        assert record.article == "AB-1"
        assert record.supplier == "dd"

    @pytest.mark.asyncio
    async def test_get_missing(self, catalog):
        assert await catalog.get("nope") is None

    @pytest.mark.asyncio
    async def test_save_upserts_jsonb(self, catalog, conn):
        await catalog.save(make_record("AB-1", supplier="dd"))

        sql, (key, supplier, data) = conn.executed[-1]
        assert "ON CONFLICT (article_key)" in sql
        assert key == "ab-1"
        assert supplier == "dd"
        assert isinstance(data, Jsonb)
        assert data.obj["article"] == "AB-1"

    @pytest.mark.asyncio
    async def test_delete_many(self, catalog, conn):
        conn.rowcount = 2

        removed = await catalog.delete_many(["A", "b "])

        sql, params = conn.executed[-1]
        assert sql == "DELETE FROM catalog_records WHERE article_key = ANY(%s)"
        assert params == (["a", "b"],)
        assert removed == 2

    @pytest.mark.asyncio
    async def test_delete_nothing_skips_query(self, catalog, conn):
        assert await catalog.delete_many([]) == 0
        assert conn.executed == []

    @pytest.mark.asyncio
    async def test_list_by_supplier(self, catalog, conn):
        conn.rows = [
            {"data": make_record("A", supplier="dd").model_dump(mode="json")},
            {"data": make_record("B", supplier="dd").model_dump(mode="json")},
        ]

        records = await catalog.list("dd")

        assert [r.article for r in records] == ["A", "B"]
        assert conn.executed[-1][1] == ("dd",)

    @pytest.mark.asyncio
    async def test_close(self, catalog, conn):
        await catalog.close()

        assert conn.closed
        assert catalog._conn is None


class TestPostgresListingIndex:
    """Visibility, removal and categories per owner."""

    @pytest.mark.asyncio
    async def test_get_listing(self, index, conn):
        conn.rows = [{"visible": False, "indexed": True, "category": "spoilers"}]

        listing = await index.get("shop", "A-1")

        assert listing == Listing(visible=False, indexed=True, category="spoilers")
        assert conn.executed[-1][1] == ("shop", "a-1")

    @pytest.mark.asyncio
    async def test_set_visibility_batches(self, index, conn):
        await index.set_visibility("shop", ["A", "B"], visible=False, indexed=False)

        sql, params = conn.executed[-1]
        assert sql.startswith("INSERT INTO listing_index")
        assert params == [("shop", "a", False, False), ("shop", "b", False, False)]

    @pytest.mark.asyncio
    async def test_category_round_trip(self, index, conn):
        await index.set_category("shop", "A", "lights")
        assert conn.executed[-1][1] == ("shop", "a", "lights")

        conn.rows = [{"visible": True, "indexed": True, "category": "lights"}]
        assert await index.get_category("shop", "A") == "lights"

    @pytest.mark.asyncio
    async def test_delete_policy_hits_both_tables(self, catalog, index, conn):
        await apply_missing_policy(MissingPolicy.DELETE, "shop", ["A", "B"], catalog, index)

        statements = [sql for sql, _ in conn.executed]
        assert statements[0].startswith("DELETE FROM catalog_records")
        assert statements[1].startswith("DELETE FROM listing_index")
        assert conn.executed[1][1] == ("shop", ["a", "b"])


class TestPostgresConnection:
    """Lazy connect and schema creation."""

    @pytest.mark.asyncio
    async def test_first_use_creates_schema(self):
        conn = FakeConnection()
        catalog = PostgresCatalog("postgresql://catalog.test/db")

        with patch.object(psycopg.AsyncConnection, "connect", AsyncMock(return_value=conn)) as connect:
            assert await catalog._connection() is conn

        connect.assert_awaited_once()
        assert connect.await_args.args == ("postgresql://catalog.test/db",)
        assert connect.await_args.kwargs["autocommit"] is True
        statements = [sql for sql, _ in conn.executed]
        assert any(s.startswith("CREATE TABLE IF NOT EXISTS catalog_records") for s in statements)
        assert any(s.startswith("CREATE TABLE IF NOT EXISTS listing_index") for s in statements)

    @pytest.mark.asyncio
    async def test_concurrent_first_use_connects_once(self):
        """Callers racing on a cold catalog share a single connection."""
        conn = FakeConnection()

        async def slow_connect(*args, **kwargs):
            await asyncio.sleep(0.01)
            return conn

        catalog = PostgresCatalog("postgresql://catalog.test/db")
        with patch.object(
            psycopg.AsyncConnection, "connect", AsyncMock(side_effect=slow_connect)
        ) as connect:
            first, second = await asyncio.gather(catalog._connection(), catalog._connection())

        assert first is conn and second is conn
        assert connect.await_count == 1

    @pytest.mark.asyncio
    async def test_reconnects_after_close(self):
        old, new = FakeConnection(), FakeConnection()
        old.closed = True
        catalog = PostgresCatalog("postgresql://catalog.test/db")
        catalog._conn = old

        with patch.object(psycopg.AsyncConnection, "connect", AsyncMock(return_value=new)):
            assert await catalog._connection() is new
