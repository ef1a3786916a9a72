"""Tests for update-or-create of single records."""

from unittest.mock import AsyncMock

import pytest

from Contentorator.metrics import get_counter
from Contentorator.upsert import update_or_create


def _mock_store(**overrides) -> AsyncMock:
    store = AsyncMock()
    store.find_one.return_value = None
    store.find_many.return_value = None
    store.create.side_effect = lambda slug, data, actor=None: {"id": data.get("id", 1), **data}
    store.update.side_effect = lambda slug, entry_id, data, actor=None: {"id": entry_id, **data}
    for name, value in overrides.items():
        setattr(store, name, value)
    return store


@pytest.mark.asyncio
async def test_record_without_primary_key_is_created(registry):
    store = _mock_store()

    await update_or_create(registry, store, "author", {"name": "Ann"})

    store.create.assert_awaited_once_with("author", {"name": "Ann"}, actor=None)
    store.update.assert_not_awaited()
    store.find_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_record_with_primary_key_is_updated(registry):
    store = _mock_store()

    await update_or_create(registry, store, "author", {"id": 3, "name": "Ann"})

    store.update.assert_awaited_once_with("author", 3, {"id": 3, "name": "Ann"}, actor=None)
    store.create.assert_not_awaited()
    assert get_counter("upsert.updated") == 1


@pytest.mark.asyncio
async def test_update_miss_falls_back_to_create(registry):
    store = _mock_store(update=AsyncMock(return_value=None))

    entry = await update_or_create(registry, store, "author", {"id": 3, "name": "Ann"})

    store.create.assert_awaited_once_with("author", {"id": 3, "name": "Ann"}, actor=None)
    assert entry == {"id": 3, "name": "Ann"}
    assert get_counter("upsert.update_miss") == 1
    assert get_counter("upsert.created") == 1


@pytest.mark.asyncio
async def test_identity_field_adopts_matching_primary_key(registry):
    store = _mock_store(find_one=AsyncMock(return_value={"id": 8, "slug": "hello"}))
    record = {"id": 99, "slug": "hello", "title": "Hello"}

    await update_or_create(registry, store, "article", record, "slug")

    store.find_one.assert_awaited_once_with("article", {"slug": "hello"})
    store.update.assert_awaited_once_with(
        "article", 8, {"slug": "hello", "title": "Hello", "id": 8}, actor=None
    )
    store.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_identity_field_without_match_discards_file_primary_key(registry):
    store = _mock_store()

    await update_or_create(registry, store, "article", {"id": 99, "slug": "new"}, "slug")

    store.create.assert_awaited_once_with("article", {"slug": "new"}, actor=None)
    store.update.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("empty", [None, ""])
async def test_empty_identity_value_falls_back_to_primary_key(registry, empty):
    store = _mock_store()

    await update_or_create(registry, store, "article", {"id": 4, "slug": empty}, "slug")

    store.find_one.assert_not_awaited()
    store.update.assert_awaited_once()
    assert store.update.await_args.args[1] == 4


@pytest.mark.asyncio
async def test_single_type_is_created_when_absent(registry, actor):
    store = _mock_store()

    await update_or_create(registry, store, "homepage", {"headline": "Hi"}, "headline", actor=actor)

    store.find_one.assert_not_awaited()
    store.create.assert_awaited_once_with("homepage", {"headline": "Hi"}, actor=actor)


@pytest.mark.asyncio
async def test_single_type_updates_its_sole_instance(registry):
    store = _mock_store(find_many=AsyncMock(return_value={"id": 1, "headline": "Old"}))

    await update_or_create(registry, store, "homepage", {"id": 50, "headline": "New"})

    store.update.assert_awaited_once_with(
        "homepage", 1, {"id": 50, "headline": "New"}, actor=None
    )
    store.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_custom_identity_field_never_duplicates(registry, store):
    await store.create("article", {"id": 1, "slug": "hello", "title": "First"})

    entry = await update_or_create(
        registry, store, "article", {"id": 77, "slug": "hello", "title": "Second"}, "slug"
    )

    assert entry == {"id": 1, "slug": "hello", "title": "Second"}
    assert await store.count("article") == 1


@pytest.mark.asyncio
async def test_default_identity_creates_then_updates(registry, store):
    await update_or_create(registry, store, "author", {"id": 2, "name": "Ann"})
    await update_or_create(registry, store, "author", {"id": 2, "name": "Ann B."})

    assert await store.find_many("author") == [{"id": 2, "name": "Ann B."}]
    assert get_counter("upsert.created") == 1
    assert get_counter("upsert.updated") == 1
