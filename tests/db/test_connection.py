"""Tests for database connection and schema initialization."""

import asyncio
from unittest.mock import patch

import pytest

from profile_kb.db.connection import create_connection
from profile_kb.db.sqlite_backend import SQLiteBackend
from profile_kb.errors import StoreUnavailable


@pytest.mark.asyncio
async def test_create_in_memory_connection():
    db = await create_connection(":memory:")
    try:
        cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
        tables = {row[0] for row in await cursor.fetchall()}
        assert {"schema_version", "profile_entities", "knowledge_items"} <= tables
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_memory_ignores_database_url():
    with patch.dict("os.environ", {"PKB_DATABASE_URL": "postgresql://nowhere/db"}):
        db = await create_connection(":memory:")
    try:
        assert isinstance(db, SQLiteBackend)
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_sqlite_vec_loaded(db):
    cursor = await db.execute("SELECT vec_version()")
    row = await cursor.fetchone()
    assert row[0].startswith("v")


@pytest.mark.asyncio
async def test_similarity_function_registered(db):
    cursor = await db.execute("SELECT similarity('word', 'words')")
    row = await cursor.fetchone()
    assert row[0] == pytest.approx(4 / 7)


@pytest.mark.asyncio
async def test_schema_version_recorded_once(db):
    await db.apply_schema()
    cursor = await db.execute("SELECT COUNT(*) FROM schema_version")
    row = await cursor.fetchone()
    assert row[0] == 1


@pytest.mark.asyncio
async def test_file_database_created(tmp_path):
    path = tmp_path / "nested" / "kb.db"
    db = await create_connection(path)
    try:
        assert path.exists()
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_scope_lock_serializes_same_key(db):
    order: list[str] = []

    async def worker(name: str) -> None:
        async with db.scope_lock("u1:experience:2019-03"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])


@pytest.mark.asyncio
async def test_scope_lock_times_out_while_held(db):
    async with db.scope_lock("u1:skill:*"):
        with pytest.raises(StoreUnavailable, match="not acquired within"):
            async with db.scope_lock("u1:skill:*", timeout=0.01):
                pytest.fail("lock should not have been taken")

    # Still usable once released
    async with db.scope_lock("u1:skill:*", timeout=0.01):
        pass


@pytest.mark.asyncio
async def test_scope_lock_other_keys_not_blocked(db):
    async with db.scope_lock("u1:skill:*"):
        async with db.scope_lock("u1:experience:2019-03", timeout=0.01):
            pass
