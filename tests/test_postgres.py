"""
Tests for the PostgreSQL catalog store.

Statement flow is checked against a recording connection pool. A live
database is used only when CATALOG_TEST_DATABASE_URL is set.
"""

import asyncio
import os
import uuid as uuidlib
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

from catalogworker.harvester.config import HarvesterConfig
from catalogworker.harvester.errors import StoreUnavailableError
from catalogworker.harvester.models import Operation, OperationGrant
from catalogworker.harvester.orchestrator import HarvestOrchestrator
from catalogworker.harvester.postgres import SCHEMA_SQL, PostgresCatalogStore

# Nothing listens on port 1.
UNREACHABLE_URL = "postgresql://catalog@127.0.0.1:1/catalog?connect_timeout=2"

LIVE_DATABASE_URL = os.getenv("CATALOG_TEST_DATABASE_URL")

CREATED = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, sql, params=None):
        self.conn.log.append((" ".join(sql.split()), params, self.conn.in_tx))

    async def executemany(self, sql, rows):
        self.conn.log.append((" ".join(sql.split()), list(rows), self.conn.in_tx))

    async def fetchone(self):
        return self.conn.results.pop(0)

    async def fetchall(self):
        return self.conn.results.pop(0)


class FakeConnection:
    """Records statements, whether a transaction was open, and serves queued rows."""

    def __init__(self, results):
        self.log = []
        self.in_tx = False
        self.results = results

    @asynccontextmanager
    async def transaction(self):
        self.in_tx = True
        try:
            yield
        finally:
            self.in_tx = False

    def cursor(self):
        return FakeCursor(self)

    async def execute(self, sql, params=None):
        self.log.append((" ".join(sql.split()), params, self.in_tx))


class FakePool:
    """Hands out a fresh FakeConnection per checkout."""

    def __init__(self, results=None):
        self.results = list(results or [])
        self.connections = []
        self.closed = False

    @asynccontextmanager
    async def connection(self):
        conn = FakeConnection(self.results)
        self.connections.append(conn)
        # Let concurrent checkouts interleave.
        await asyncio.sleep(0)
        yield conn

    async def close(self):
        self.closed = True


def fake_store(results=None):
    store = PostgresCatalogStore("postgresql://unused")
    store._pool = FakePool(results)
    return store


def record_row(record_id, uuid="uuid-1"):
    return {
        "id": record_id,
        "uuid": uuid,
        "schema_id": "iso19139",
        "harvest_uuid": "source-a",
        "owner_id": None,
        "data": memoryview(b"<xml/>"),
        "created_at": CREATED,
        "changed_at": CREATED,
    }


class TestPostgresCatalogStore:
    """Connection failures surface as StoreUnavailableError."""

    @pytest.mark.asyncio
    async def test_ping_unreachable(self):
        store = PostgresCatalogStore(UNREACHABLE_URL, timeout=2)

        with pytest.raises(StoreUnavailableError):
            await store.ping()

        await store.close()

    @pytest.mark.asyncio
    async def test_orchestrator_aborts_before_walking(self, source):
        config = HarvesterConfig(database_url=UNREACHABLE_URL, database_timeout=2)
        orchestrator = HarvestOrchestrator(config=config)

        with pytest.raises(StoreUnavailableError):
            await orchestrator.run(source)

        await orchestrator.close()

    def test_schema_enforces_identity_per_source(self):
        assert "UNIQUE (harvest_uuid, uuid)" in SCHEMA_SQL
        assert SCHEMA_SQL.count("ON DELETE CASCADE") == 2


class TestStatements:
    """Statement order and transaction scope against a recording pool."""

    @pytest.mark.asyncio
    async def test_insert_returns_id(self):
        store = fake_store(results=[{"id": 42}])

        record_id = await store.insert("source-a", "iso19139", b"<xml/>", "uuid-1", CREATED)

        assert record_id == 42
        sql, params, _ = store._pool.connections[0].log[0]
        assert sql.startswith("INSERT INTO catalog_record")
        assert "RETURNING id" in sql
        assert params == (
            "uuid-1", "iso19139", "source-a", None, b"<xml/>", CREATED, CREATED
        )

    @pytest.mark.asyncio
    async def test_replace_allowed_operations_in_one_transaction(self):
        store = fake_store()
        grants = [
            OperationGrant("all", Operation.VIEW),
            OperationGrant("editors", Operation.EDITING),
        ]

        await store.replace_allowed_operations(7, grants)

        log = store._pool.connections[0].log
        assert [entry[0].split()[0] for entry in log] == ["DELETE", "INSERT"]
        assert all(in_tx for _, _, in_tx in log)
        assert log[0][1] == (7,)
        assert sorted(log[1][1]) == [(7, "all", "view"), (7, "editors", "editing")]

    @pytest.mark.asyncio
    async def test_replace_with_no_grants_only_deletes(self):
        store = fake_store()

        await store.replace_allowed_operations(7, [])

        log = store._pool.connections[0].log
        assert len(log) == 1
        assert log[0][0].startswith("DELETE FROM catalog_operation_allowed")
        assert log[0][2] is True

    @pytest.mark.asyncio
    async def test_replace_categories_in_one_transaction(self):
        store = fake_store()

        await store.replace_categories(7, ["datasets"])

        log = store._pool.connections[0].log
        assert [entry[0].split()[0] for entry in log] == ["DELETE", "INSERT"]
        assert all(in_tx for _, _, in_tx in log)
        assert log[1][1] == [(7, "datasets")]

    @pytest.mark.asyncio
    async def test_delete_notifies_indexer(self):
        store = fake_store()

        await store.delete(5)

        log = store._pool.connections[0].log
        assert log[0][0] == "DELETE FROM catalog_record WHERE id = %s"
        assert log[0][1] == (5,)
        assert log[1][0] == "SELECT pg_notify(%s, %s)"
        assert log[1][1] == ("catalog_reindex", "delete:5")

    @pytest.mark.asyncio
    async def test_reindex_uses_configured_channel(self):
        store = PostgresCatalogStore("postgresql://unused", reindex_channel="search")
        store._pool = FakePool()

        await store.reindex(9)

        assert store._pool.connections[0].log[0][1] == ("search", "index:9")

    @pytest.mark.asyncio
    async def test_find_loads_grants_and_categories(self):
        store = fake_store(
            results=[
                record_row(3),
                [
                    {"record_id": 3, "group_id": "all", "operation": "view"},
                    {"record_id": 3, "group_id": "all", "operation": "download"},
                ],
                [{"record_id": 3, "category_id": "datasets"}],
            ]
        )

        record = await store.find_by_owner_and_identity("source-a", "uuid-1")

        assert record.id == 3
        assert record.data == b"<xml/>"
        assert record.operations == frozenset(
            {OperationGrant("all", Operation.VIEW), OperationGrant("all", Operation.DOWNLOAD)}
        )
        assert record.categories == frozenset({"datasets"})
        # Record, grants and categories are read on one connection.
        assert len(store._pool.connections) == 1
        assert store._pool.connections[0].log[1][1] == ([3],)

    @pytest.mark.asyncio
    async def test_find_missing_returns_none(self):
        store = fake_store(results=[None])

        assert await store.find_by_owner_and_identity("source-a", "uuid-9") is None
        assert len(store._pool.connections[0].log) == 1

    @pytest.mark.asyncio
    async def test_find_by_owner_groups_children_per_record(self):
        store = fake_store(
            results=[
                [record_row(1, "uuid-1"), record_row(2, "uuid-2")],
                [{"record_id": 2, "group_id": "all", "operation": "view"}],
                [{"record_id": 1, "category_id": "datasets"}],
            ]
        )

        records = await store.find_by_owner("source-a")

        assert [r.uuid for r in records] == ["uuid-1", "uuid-2"]
        assert records[0].operations == frozenset()
        assert records[0].categories == frozenset({"datasets"})
        assert records[1].operations == frozenset({OperationGrant("all", Operation.VIEW)})

    @pytest.mark.asyncio
    async def test_concurrent_operations_use_separate_connections(self):
        store = fake_store()
        grants = [OperationGrant("all", Operation.VIEW)]

        await asyncio.gather(
            store.replace_allowed_operations(1, grants),
            store.replace_allowed_operations(2, grants),
        )

        connections = store._pool.connections
        assert len(connections) == 2
        for conn in connections:
            record_id = conn.log[0][1][0]
            assert conn.log[1][1] == [(record_id, "all", "view")]
        assert {conn.log[0][1][0] for conn in connections} == {1, 2}

    @pytest.mark.asyncio
    async def test_close_closes_pool(self):
        store = fake_store()
        pool = store._pool

        await store.close()

        assert pool.closed is True
        assert store._pool is None


@pytest.mark.skipif(not LIVE_DATABASE_URL, reason="CATALOG_TEST_DATABASE_URL not set")
class TestLiveDatabase:
    """Round trip against a real PostgreSQL database."""

    @pytest.mark.asyncio
    async def test_insert_replace_delete(self):
        store = PostgresCatalogStore(LIVE_DATABASE_URL, timeout=5)
        harvest_uuid = f"test-{uuidlib.uuid4()}"
        try:
            await store.create_schema()
            record_id = await store.insert(
                harvest_uuid, "iso19139", b"<xml/>", "uuid-1", CREATED
            )
            await store.replace_allowed_operations(
                record_id, [OperationGrant("all", Operation.VIEW)]
            )
            await store.replace_categories(record_id, ["datasets"])

            record = await store.find_by_owner_and_identity(harvest_uuid, "uuid-1")
            assert record.operations == frozenset({OperationGrant("all", Operation.VIEW)})
            assert record.categories == frozenset({"datasets"})

            await store.delete(record_id)
            assert await store.find_by_owner(harvest_uuid) == []
        finally:
            await store.close()
