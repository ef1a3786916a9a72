"""Tests for the SQLAlchemy entity store."""

import pytest
from structlog.testing import capture_logs

from Contentorator import models
from Contentorator.db import session_scope
from Contentorator.errors import (
    EntryValidationError,
    RelationTargetNotFoundError,
    UniqueConstraintError,
)


@pytest.mark.asyncio
async def test_create_honours_explicit_primary_key(store, actor):
    entry = await store.create("category", {"id": 5, "name": "News"}, actor=actor)
    assert entry == {"id": 5, "name": "News"}

    again = await store.find_one("category", {"id": 5})
    assert again == {"id": 5, "name": "News"}


@pytest.mark.asyncio
async def test_create_allocates_next_primary_key(store):
    await store.create("category", {"id": 3, "name": "A"})
    entry = await store.create("category", {"name": "B"})
    assert entry["id"] == 4


@pytest.mark.asyncio
async def test_create_records_actor(store, actor):
    await store.create("author", {"name": "Ann"}, actor=actor)

    async with session_scope() as s:
        row = (await s.execute(models.Entry.__table__.select())).one()
    assert row.created_by == "7"
    assert row.updated_by == "7"


@pytest.mark.asyncio
async def test_create_rejects_non_integer_primary_key(store):
    with pytest.raises(EntryValidationError):
        await store.create("author", {"id": "abc", "name": "Ann"})


@pytest.mark.asyncio
async def test_create_rejects_taken_primary_key(store):
    await store.create("author", {"id": 1, "name": "Ann"})
    with pytest.raises(UniqueConstraintError):
        await store.create("author", {"id": 1, "name": "Bob"})


@pytest.mark.asyncio
async def test_create_rejects_unknown_attribute(store):
    with pytest.raises(EntryValidationError, match="Unknown attribute"):
        await store.create("author", {"name": "Ann", "nickname": "A"})


@pytest.mark.asyncio
async def test_create_requires_required_plain_attributes(store):
    with pytest.raises(EntryValidationError, match="required"):
        await store.create("category", {"description": "no name"})
    assert await store.count("category") == 0


@pytest.mark.asyncio
async def test_unique_attribute_violation(store):
    await store.create("author", {"name": "Ann", "email": "ann@example.com"})
    with pytest.raises(UniqueConstraintError) as exc_info:
        await store.create("author", {"name": "Ann 2", "email": "ann@example.com"})
    assert exc_info.value.attribute == "email"
    assert await store.count("author") == 1


@pytest.mark.asyncio
async def test_update_merges_into_existing_data(store, actor):
    await store.create("article", {"id": 10, "title": "T", "slug": "t"})
    await store.create("category", {"id": 1, "name": "A"})

    entry = await store.update("article", 10, {"id": 10, "category": 1}, actor=actor)

    assert entry == {"id": 10, "title": "T", "slug": "t", "category": {"id": 1}}


@pytest.mark.asyncio
async def test_update_keeps_own_unique_value(store):
    await store.create("author", {"id": 1, "email": "ann@example.com"})
    entry = await store.update("author", 1, {"email": "ann@example.com", "name": "Ann"})
    assert entry["name"] == "Ann"


@pytest.mark.asyncio
async def test_update_of_missing_entry_returns_none(store):
    assert await store.update("author", 99, {"name": "Ghost"}) is None
    assert await store.update("author", "not-an-id", {"name": "Ghost"}) is None


@pytest.mark.asyncio
async def test_relation_to_missing_target_is_rejected(store):
    await store.create("post", {"id": 1, "title": "P"})
    with pytest.raises(RelationTargetNotFoundError):
        await store.update("post", 1, {"author": 42})


@pytest.mark.asyncio
async def test_to_many_relation_is_normalized(store):
    await store.create("author", {"id": 1, "name": "Ann"})
    await store.create("author", {"id": 2, "name": "Bob"})
    await store.create("article", {"id": 10, "title": "T"})

    entry = await store.update("article", 10, {"authors": [1, {"id": 2}]})

    assert entry["authors"] == [{"id": 1}, {"id": 2}]


@pytest.mark.asyncio
async def test_to_one_relation_rejects_lists(store):
    await store.create("category", {"id": 1, "name": "A"})
    await store.create("article", {"id": 10, "title": "T"})
    with pytest.raises(EntryValidationError):
        await store.update("article", 10, {"category": [1]})


@pytest.mark.asyncio
async def test_media_reference_must_exist(store):
    await store.create("article", {"id": 10, "title": "T"})
    with pytest.raises(RelationTargetNotFoundError):
        await store.update("article", 10, {"cover": {"id": 3}})


@pytest.mark.asyncio
async def test_media_reference_by_name(store):
    async with session_scope() as s:
        s.add(models.MediaFile(name="cover.png", hash="h" * 64, ext=".png", url="media/x.png"))
    await store.create("article", {"id": 10, "title": "T"})

    entry = await store.update("article", 10, {"cover": {"name": "cover.png"}})

    assert entry["cover"] == {"id": 1}


@pytest.mark.asyncio
async def test_dynamic_zone_items_need_an_allowed_component(store):
    await store.create("article", {"id": 10, "title": "T"})

    with pytest.raises(EntryValidationError):
        await store.update("article", 10, {"blocks": [{"body": "no component"}]})
    with pytest.raises(EntryValidationError):
        await store.update("article", 10, {"blocks": [{"__component": "shared.slider"}]})

    entry = await store.update(
        "article", 10, {"blocks": [{"__component": "shared.quote", "text": "q"}]}
    )
    assert entry["blocks"] == [{"__component": "shared.quote", "text": "q"}]


@pytest.mark.asyncio
async def test_component_must_be_an_object(store):
    await store.create("article", {"id": 10, "title": "T"})
    with pytest.raises(EntryValidationError):
        await store.update("article", 10, {"seo": 5})


@pytest.mark.asyncio
async def test_find_one_by_plain_attribute(store):
    await store.create("article", {"id": 1, "title": "A", "slug": "a"})
    await store.create("article", {"id": 2, "title": "B", "slug": "b"})

    assert (await store.find_one("article", {"slug": "b"}))["id"] == 2
    assert await store.find_one("article", {"slug": "c"}) is None


@pytest.mark.asyncio
async def test_find_many_for_single_and_collection_types(store):
    assert await store.find_many("homepage") is None

    await store.create("homepage", {"headline": "Hi"})
    assert await store.find_many("homepage") == {"id": 1, "headline": "Hi"}

    with pytest.raises(EntryValidationError):
        await store.create("homepage", {"headline": "Second"})

    await store.create("author", {"id": 2, "name": "B"})
    await store.create("author", {"id": 1, "name": "A"})
    assert [a["id"] for a in await store.find_many("author")] == [1, 2]


@pytest.mark.asyncio
async def test_rejected_write_rolls_back_without_error_log(store):
    await store.create("author", {"name": "Ann", "email": "ann@example.com"})

    with capture_logs() as logs:
        with pytest.raises(UniqueConstraintError):
            await store.create("author", {"name": "Bob", "email": "ann@example.com"})

    events = [e["event"] for e in logs]
    assert "db.session.error" not in events
    assert "db.session.rollback" in events
    assert await store.count("author") == 1
