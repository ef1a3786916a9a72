"""Update-or-create of a single normalized record."""

from __future__ import annotations

from typing import Any

import structlog

from Contentorator.interfaces import Actor
from Contentorator.metrics import inc_counter

log = structlog.get_logger()


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


async def update_or_create(
    registry,
    store,
    slug: str,
    record: dict[str, Any],
    id_field: str | None = None,
    *,
    actor: Actor | None = None,
) -> dict[str, Any]:
    """Persist ``record`` into ``slug`` and return the stored entry.

    ``id_field`` defaults to the content type's primary key and is ignored for
    single types. ``record`` must already be a private copy (see
    ``normalizer.normalize``); it is modified in place when an existing entry
    is matched.
    """
    model = registry.get_model(slug)
    if model.is_single_type:
        return await _update_or_create_single_type(
            store, slug, record, model.primary_key, actor=actor
        )
    return await _update_or_create_collection_type(
        store, slug, record, id_field or model.primary_key, model.primary_key, actor=actor
    )


async def _create(store, slug: str, record: dict[str, Any], actor: Actor | None) -> dict[str, Any]:
    entry = await store.create(slug, record, actor=actor)
    inc_counter("upsert.created")
    return entry


async def _update_or_create_collection_type(
    store,
    slug: str,
    record: dict[str, Any],
    id_field: str,
    primary_key: str,
    *,
    actor: Actor | None,
) -> dict[str, Any]:
    if id_field != primary_key and not _is_empty(record.get(id_field)):
        # The identity field wins over whatever primary key the file carried
        record.pop(primary_key, None)
        existing = await store.find_one(slug, {id_field: record[id_field]})
        if existing is not None:
            record[primary_key] = existing[primary_key]

    if _is_empty(record.get(primary_key)):
        return await _create(store, slug, record, actor)

    entry = await store.update(slug, record[primary_key], record, actor=actor)
    if entry is None:
        inc_counter("upsert.update_miss")
        log.debug("upsert.update_miss", slug=slug, entry_id=record[primary_key])
        return await _create(store, slug, record, actor)
    inc_counter("upsert.updated")
    return entry


async def _update_or_create_single_type(
    store,
    slug: str,
    record: dict[str, Any],
    primary_key: str,
    *,
    actor: Actor | None,
) -> dict[str, Any]:
    existing = await store.find_many(slug)
    if not existing:
        return await _create(store, slug, record, actor)

    entry = await store.update(slug, existing[primary_key], record, actor=actor)
    if entry is None:
        inc_counter("upsert.update_miss")
        return await _create(store, slug, record, actor)
    inc_counter("upsert.updated")
    return entry
