"""Tests for the fact writer."""

import asyncio

import pytest

from profile_kb.dedup.gate import DeduplicationGate
from profile_kb.errors import InvalidInput, StoreUnavailable
from profile_kb.ingest.writer import FactWriter, scope_lock_key
from profile_kb.models.dedup import DedupStatus
from profile_kb.models.entities import Experience, Skill
from profile_kb.models.item import ContentType, IngestSource
from profile_kb.store.knowledge_store import KnowledgeStore
from tests.conftest import DEFAULT_THRESHOLDS

IHG = {"company": "IHG", "position": "Technical Lead", "start_date": "2019-03"}


def test_scope_lock_key():
    assert scope_lock_key("u1", Experience(**IHG)) == "u1:experience:2019-03"
    assert scope_lock_key("u1", Experience(company="IHG", position="Lead")) == "u1:experience:*"
    assert scope_lock_key("u1", Skill(name=" Python ")) == "u1:skill:python"


@pytest.mark.asyncio
async def test_write_creates_entity_and_item(writer, store, fake_embedder):
    result = await writer.write("u1", ContentType.EXPERIENCE, IHG, IngestSource.RESUME)

    assert result.action == "created"
    assert result.decision.status == DedupStatus.NO_MATCH
    assert result.item.source_ref == result.entity.id
    assert result.item.text == "Technical Lead at IHG"
    # The gate's embedding is reused for the item
    assert fake_embedder.calls == ["Technical Lead at IHG"]
    assert await store.count_items("u1") == 1


@pytest.mark.asyncio
async def test_duplicate_is_skipped(writer, store):
    first = await writer.write("u1", ContentType.EXPERIENCE, IHG)
    second = await writer.write("u1", ContentType.EXPERIENCE, IHG)

    assert second.action == "skipped"
    assert second.entity is None
    assert second.matched_id == first.entity.id
    assert await store.count_items("u1") == 1


@pytest.mark.asyncio
async def test_invalid_fields_raise_before_writing(writer, store):
    with pytest.raises(InvalidInput):
        await writer.write("u1", ContentType.EXPERIENCE, {"company": "IHG"})
    assert await store.entities_without_items("u1") == []


@pytest.mark.asyncio
async def test_gate_failure_still_creates(flaky, fake_embedder):
    store = KnowledgeStore(flaky)
    gate = DeduplicationGate(flaky, fake_embedder, DEFAULT_THRESHOLDS)
    writer = FactWriter(store, gate, fake_embedder)
    flaky.failing.add("nearest_by_vector")

    result = await writer.write("u1", ContentType.EXPERIENCE, IHG)

    assert result.action == "created"
    assert result.decision.status == DedupStatus.FAILED
    assert len(fake_embedder.calls) == 1


@pytest.mark.asyncio
async def test_embedding_outage_leaves_item_pending(writer, store, fake_embedder):
    fake_embedder.available = False

    result = await writer.write("u1", ContentType.EXPERIENCE, IHG)

    assert result.action == "pending"
    assert result.item is None
    assert await store.count_items("u1") == 0
    assert [e.id for e in await store.entities_without_items("u1")] == [result.entity.id]

    fake_embedder.available = True
    report = await writer.backfill_missing_items("u1")
    assert report.filled == [result.entity.id]
    assert report.stopped is None
    assert await store.count_items("u1") == 1
    assert await store.entities_without_items("u1") == []


@pytest.mark.asyncio
async def test_backfill_stops_while_embedder_down(writer, store, fake_embedder):
    fake_embedder.available = False
    await writer.write("u1", ContentType.SKILL, {"name": "Python"})
    await writer.write("u1", ContentType.SKILL, {"name": "Rust"})
    fake_embedder.calls.clear()

    report = await writer.backfill_missing_items()

    assert report.filled == []
    assert report.stopped
    assert len(fake_embedder.calls) == 1
    assert len(await store.entities_without_items("u1")) == 2


@pytest.mark.asyncio
async def test_backfill_removes_pending_duplicate(writer, store, fake_embedder):
    fake_embedder.available = False
    pending = await writer.write("u1", ContentType.EXPERIENCE, IHG)
    fake_embedder.available = True
    # The same fact arrives again, from another pipeline, once embeddings are back
    again = await writer.write("u1", ContentType.EXPERIENCE, IHG, IngestSource.PROFILE_TEXT)
    assert again.action == "created"

    report = await writer.backfill_missing_items("u1")

    assert report.duplicates_removed == [pending.entity.id]
    assert report.filled == []
    assert await store.get_entity("u1", pending.entity.id) is None
    assert await store.count_items("u1") == 1


@pytest.mark.asyncio
async def test_item_insert_failure_leaves_no_orphan_entity(flaky, fake_embedder):
    store = KnowledgeStore(flaky)
    gate = DeduplicationGate(flaky, fake_embedder, DEFAULT_THRESHOLDS)
    writer = FactWriter(store, gate, fake_embedder)
    flaky.failing.add("item_insert")

    with pytest.raises(StoreUnavailable):
        await writer.write("u1", ContentType.EXPERIENCE, IHG)

    assert await store.entities_without_items("u1") == []
    assert await store.count_items("u1") == 0

    flaky.failing.clear()
    retry = await writer.write("u1", ContentType.EXPERIENCE, IHG)
    assert retry.action == "created"
    assert (await writer.backfill_missing_items("u1")).filled == []
    assert await store.count_items("u1") == 1


@pytest.mark.asyncio
async def test_item_insert_failure_keeps_entity_if_cleanup_fails(flaky, fake_embedder, caplog):
    store = KnowledgeStore(flaky)
    gate = DeduplicationGate(flaky, fake_embedder, DEFAULT_THRESHOLDS)
    writer = FactWriter(store, gate, fake_embedder)
    flaky.failing.update({"item_insert", "entity_lookup"})

    with pytest.raises(StoreUnavailable):
        await writer.write("u1", ContentType.SKILL, {"name": "Python"})

    assert "stays pending" in caplog.text
    flaky.failing.clear()
    assert len(await store.entities_without_items("u1")) == 1


@pytest.mark.asyncio
async def test_lock_timeout_surfaces_as_store_unavailable(writer, store, monkeypatch):
    monkeypatch.setenv("PKB_SCOPE_LOCK_TIMEOUT", "0.01")
    fact = Skill(name="Python")

    async with store.scope_lock(scope_lock_key("u1", fact)):
        with pytest.raises(StoreUnavailable, match="not acquired"):
            await writer.write("u1", ContentType.SKILL, fact)

    assert await store.count_items("u1") == 0


@pytest.mark.asyncio
async def test_concurrent_writes_of_same_fact(writer, store, fake_embedder):
    fake_embedder.delay = 0.01

    results = await asyncio.gather(
        writer.write("u1", ContentType.EXPERIENCE, IHG),
        writer.write("u1", ContentType.EXPERIENCE, IHG),
    )

    assert sorted(r.action for r in results) == ["created", "skipped"]
    assert await store.count_items("u1") == 1


@pytest.mark.asyncio
async def test_replace_with_new_text_recreates_item(writer, store):
    created = await writer.write("u1", ContentType.EXPERIENCE, IHG)

    result = await writer.replace(
        "u1", created.entity.id, {**IHG, "description": "Led the loyalty platform"}
    )

    assert result.action == "updated"
    assert result.item.id != created.item.id
    assert result.item.text == "Technical Lead at IHG: Led the loyalty platform"
    items = await store.items_for_entity("u1", created.entity.id)
    assert [i.id for i in items] == [result.item.id]


@pytest.mark.asyncio
async def test_replace_with_same_text_keeps_item(writer, store):
    created = await writer.write("u1", ContentType.EXPERIENCE, IHG)

    result = await writer.replace("u1", created.entity.id, {**IHG, "end_date": "2023-06"})

    assert result.item.id == created.item.id
    entity = await store.get_entity("u1", created.entity.id)
    assert entity.fields["end_date"] == "2023-06"


@pytest.mark.asyncio
async def test_replace_missing_entity(writer):
    with pytest.raises(ValueError, match="not found"):
        await writer.replace("u1", "experience_missing", IHG)


@pytest.mark.asyncio
async def test_delete(writer, store):
    created = await writer.write("u1", ContentType.EXPERIENCE, IHG)
    assert await writer.delete("u1", created.entity.id) is True
    assert await store.count_items("u1") == 0
    assert await writer.delete("u1", created.entity.id) is False
