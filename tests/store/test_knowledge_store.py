"""Tests for the knowledge store."""

import pytest

from profile_kb.errors import StoreUnavailable
from profile_kb.models.entities import Experience, Skill
from profile_kb.models.item import ContentType, IngestSource
from profile_kb.store.knowledge_store import KnowledgeStore
from tests.conftest import basis

IHG = Experience(
    company="IHG",
    position="Technical Lead",
    start_date="2019-03",
    description="Led the loyalty platform team",
)


@pytest.mark.asyncio
async def test_create_entity(store):
    entity = await store.create_entity("u1", IHG, IngestSource.RESUME)
    assert entity.id.startswith("experience_")
    assert entity.content_type == ContentType.EXPERIENCE
    assert entity.fields["company"] == "IHG"
    assert entity.source == IngestSource.RESUME

    loaded = await store.get_entity("u1", entity.id)
    assert loaded is not None
    assert loaded.as_fact() == IHG


@pytest.mark.asyncio
async def test_add_item_carries_scope_and_source(store):
    entity = await store.create_entity("u1", IHG, IngestSource.RESUME)
    item = await store.add_item(entity, IHG.render_text(), basis(0))

    assert item.source_ref == entity.id
    assert item.scope_key == "2019-03"
    assert item.source == IngestSource.RESUME

    loaded = await store.get_item("u1", item.id)
    assert loaded.text == "Technical Lead at IHG: Led the loyalty platform team"
    assert [i.id for i in await store.items_for_entity("u1", entity.id)] == [item.id]


@pytest.mark.asyncio
async def test_update_entity_fields(store):
    entity = await store.create_entity("u1", IHG)
    updated = await store.update_entity_fields(
        entity, IHG.model_copy(update={"end_date": "2023-06"})
    )
    assert updated.fields["end_date"] == "2023-06"
    loaded = await store.get_entity("u1", entity.id)
    assert loaded.fields["end_date"] == "2023-06"


@pytest.mark.asyncio
async def test_update_entity_rejects_other_type(store):
    entity = await store.create_entity("u1", IHG)
    with pytest.raises(ValueError, match="Cannot store"):
        await store.update_entity_fields(entity, Skill(name="Python"))


@pytest.mark.asyncio
async def test_delete_entity_removes_items(store):
    entity = await store.create_entity("u1", IHG)
    await store.add_item(entity, IHG.render_text(), basis(0))
    assert await store.delete_entity("u1", entity.id) is True
    assert await store.count_items("u1") == 0
    assert await store.get_entity("u1", entity.id) is None


@pytest.mark.asyncio
async def test_delete_items_keeps_entity(store):
    entity = await store.create_entity("u1", IHG)
    await store.add_item(entity, IHG.render_text(), basis(0))
    assert await store.delete_items_for_entity("u1", entity.id) == 1
    assert await store.get_entity("u1", entity.id) is not None
    pending = await store.entities_without_items("u1")
    assert [e.id for e in pending] == [entity.id]


@pytest.mark.asyncio
async def test_store_failure_raises_store_unavailable(flaky):
    store = KnowledgeStore(flaky)
    flaky.failing.add("entity_insert")
    with pytest.raises(StoreUnavailable, match="entity insert failed"):
        await store.create_entity("u1", IHG)


@pytest.mark.asyncio
async def test_item_insert_failure(flaky):
    store = KnowledgeStore(flaky)
    entity = await store.create_entity("u1", IHG)
    flaky.failing.add("item_insert")
    with pytest.raises(StoreUnavailable, match="item insert"):
        await store.add_item(entity, IHG.render_text(), basis(0))
