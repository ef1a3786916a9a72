"""SQLAlchemy-backed entity store for content entries.

Every operation opens its own unit of work through ``session_factory`` (by
default ``db.session_scope``), so a write is committed as soon as the call
returns and a failing write rolls back only itself.

Write-time rules enforced here:

* attributes must exist on the content type,
* ``required`` plain attributes must be present on create,
* ``unique`` plain attributes must not repeat within a content type,
* relation and media values must reference existing entries / files and are
  stored as ``{"id": n}`` references (lists for to-many attributes),
* dynamic zones must be lists of mappings carrying ``__component``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from typing import Any

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from Contentorator import models
from Contentorator.content_schema import AttributeKind, AttributeSpec, ContentTypeSchema
from Contentorator.db import session_scope
from Contentorator.errors import (
    EntryValidationError,
    RelationTargetNotFoundError,
    UniqueConstraintError,
)
from Contentorator.interfaces import Actor

log = structlog.get_logger()

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _as_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _json_match(key: str, value: Any):
    """SQL clause comparing ``Entry.data[key]`` with ``value``, or None if not expressible."""
    column = models.Entry.data[key]
    if isinstance(value, bool):
        return column.as_boolean() == value
    if isinstance(value, int):
        return column.as_integer() == value
    if isinstance(value, float):
        return column.as_float() == value
    if isinstance(value, str):
        return column.as_string() == value
    return None


class EntityService:
    def __init__(self, registry, session_factory: SessionFactory = session_scope):
        self.registry = registry
        self._session_factory = session_factory

    # ── Reads ──────────────────────────────────────────────────────────

    async def find_one(self, slug: str, where: Mapping[str, Any]) -> dict[str, Any] | None:
        model = self.registry.get_model(slug)
        async with self._session_factory() as s:
            entry = await self._find_entry(s, model, where)
            return self._to_dict(model, entry) if entry is not None else None

    async def find_many(self, slug: str) -> dict[str, Any] | list[dict[str, Any]] | None:
        """The sole entry of a single type (or None); all entries of a collection type."""
        model = self.registry.get_model(slug)
        async with self._session_factory() as s:
            q = await s.execute(
                select(models.Entry)
                .where(models.Entry.slug == slug)
                .order_by(models.Entry.entry_id)
            )
            entries = list(q.scalars().all())
        if model.is_single_type:
            return self._to_dict(model, entries[0]) if entries else None
        return [self._to_dict(model, e) for e in entries]

    async def count(self, slug: str) -> int:
        async with self._session_factory() as s:
            q = await s.execute(
                select(func.count()).select_from(models.Entry).where(models.Entry.slug == slug)
            )
            return int(q.scalar_one())

    # ── Writes ─────────────────────────────────────────────────────────

    async def create(
        self, slug: str, data: Mapping[str, Any], *, actor: Actor | None = None
    ) -> dict[str, Any]:
        model = self.registry.get_model(slug)
        raw_id = data.get(model.primary_key)
        entry_id = None
        if raw_id is not None:
            entry_id = _as_id(raw_id)
            if entry_id is None:
                raise EntryValidationError(
                    f"{slug}.{model.primary_key} must be an integer, got {raw_id!r}"
                )

        async with self._session_factory() as s:
            if model.is_single_type and await self._first_entry(s, slug) is not None:
                raise EntryValidationError(f"Single type {slug} already has an entry")

            prepared = await self._prepare_data(s, model, data)
            self._check_required(model, prepared)
            await self._check_unique(s, model, prepared, current_id=None)

            if entry_id is None:
                entry_id = await self._next_entry_id(s, slug)
            elif await self._get_entry(s, slug, entry_id) is not None:
                raise UniqueConstraintError(slug, model.primary_key, entry_id)

            entry = models.Entry(
                slug=slug,
                entry_id=entry_id,
                data=prepared,
                created_by=actor.ref if actor else None,
                updated_by=actor.ref if actor else None,
            )
            s.add(entry)
            try:
                await s.flush()
            except IntegrityError as exc:
                raise UniqueConstraintError(slug, model.primary_key, entry_id) from exc
            log.debug("entity.created", slug=slug, entry_id=entry_id)
            return self._to_dict(model, entry)

    async def update(
        self,
        slug: str,
        entry_id: Any,
        data: Mapping[str, Any],
        *,
        actor: Actor | None = None,
    ) -> dict[str, Any] | None:
        """Merge ``data`` into an existing entry; None when the entry does not exist."""
        model = self.registry.get_model(slug)
        key = _as_id(entry_id)
        if key is None:
            return None

        async with self._session_factory() as s:
            entry = await self._get_entry(s, slug, key)
            if entry is None:
                return None
            prepared = await self._prepare_data(s, model, data)
            await self._check_unique(s, model, prepared, current_id=entry.entry_id)
            # Reassign so the JSON column is flagged dirty
            entry.data = {**(entry.data or {}), **prepared}
            if actor is not None:
                entry.updated_by = actor.ref
            await s.flush()
            log.debug("entity.updated", slug=slug, entry_id=key)
            return self._to_dict(model, entry)

    # ── Helpers ────────────────────────────────────────────────────────

    @staticmethod
    def _to_dict(model: ContentTypeSchema, entry: models.Entry) -> dict[str, Any]:
        return {model.primary_key: entry.entry_id, **(entry.data or {})}

    @staticmethod
    async def _get_entry(s: AsyncSession, slug: str, entry_id: int) -> models.Entry | None:
        q = await s.execute(
            select(models.Entry).where(
                models.Entry.slug == slug, models.Entry.entry_id == entry_id
            )
        )
        return q.scalar_one_or_none()

    @staticmethod
    async def _first_entry(s: AsyncSession, slug: str) -> models.Entry | None:
        q = await s.execute(
            select(models.Entry)
            .where(models.Entry.slug == slug)
            .order_by(models.Entry.entry_id)
            .limit(1)
        )
        return q.scalar_one_or_none()

    @staticmethod
    async def _next_entry_id(s: AsyncSession, slug: str) -> int:
        q = await s.execute(
            select(func.max(models.Entry.entry_id)).where(models.Entry.slug == slug)
        )
        return (q.scalar() or 0) + 1

    async def _find_entry(
        self, s: AsyncSession, model: ContentTypeSchema, where: Mapping[str, Any]
    ) -> models.Entry | None:
        stmt = select(models.Entry).where(models.Entry.slug == model.uid)
        leftover: dict[str, Any] = {}
        for key, value in where.items():
            if key == model.primary_key:
                entry_id = _as_id(value)
                if entry_id is None:
                    return None
                stmt = stmt.where(models.Entry.entry_id == entry_id)
                continue
            clause = _json_match(key, value)
            if clause is None:
                leftover[key] = value
            else:
                stmt = stmt.where(clause)

        q = await s.execute(stmt.order_by(models.Entry.entry_id))
        for entry in q.scalars():
            data = entry.data or {}
            if all(data.get(k) == v for k, v in leftover.items()):
                return entry
        return None

    async def _prepare_data(
        self, s: AsyncSession, model: ContentTypeSchema, data: Mapping[str, Any]
    ) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, value in data.items():
            if key == model.primary_key:
                continue
            attr = model.attribute(key)
            if attr is None:
                raise EntryValidationError(f"Unknown attribute {model.uid}.{key}")
            if attr.kind is AttributeKind.relation:
                out[key] = await self._resolve_relation(s, attr, value)
            elif attr.kind is AttributeKind.media:
                out[key] = await self._resolve_media(s, attr, value)
            elif attr.kind is AttributeKind.dynamiczone:
                out[key] = self._check_dynamic_zone(model, attr, value)
            elif attr.kind is AttributeKind.component:
                out[key] = self._check_component(model, attr, value)
            else:
                out[key] = value
        return out

    @staticmethod
    def _check_required(model: ContentTypeSchema, prepared: Mapping[str, Any]) -> None:
        missing = [
            a.name
            for a in model.attributes
            if a.required and a.kind is AttributeKind.plain and prepared.get(a.name) is None
        ]
        if missing:
            raise EntryValidationError(f"{model.uid} is missing required attributes: {missing}")

    async def _check_unique(
        self,
        s: AsyncSession,
        model: ContentTypeSchema,
        prepared: Mapping[str, Any],
        *,
        current_id: int | None,
    ) -> None:
        for attr in model.attributes:
            if not attr.unique or attr.kind is not AttributeKind.plain:
                continue
            value = prepared.get(attr.name)
            if value is None:
                continue
            other = await self._find_entry(s, model, {attr.name: value})
            if other is not None and other.entry_id != current_id:
                raise UniqueConstraintError(model.uid, attr.name, value)

    @staticmethod
    def _reference_ids(attr: AttributeSpec, value: Any) -> list[int]:
        items = value if isinstance(value, list) else [value]
        if isinstance(value, list) and not attr.is_to_many:
            raise EntryValidationError(f"{attr.name} accepts a single reference, got a list")
        ids: list[int] = []
        for item in items:
            ref = item.get("id") if isinstance(item, Mapping) else item
            ref_id = _as_id(ref)
            if ref_id is None:
                raise EntryValidationError(f"Invalid reference for {attr.name}: {item!r}")
            ids.append(ref_id)
        return ids

    @staticmethod
    def _references(attr: AttributeSpec, ids: list[int]) -> Any:
        refs = [{"id": i} for i in ids]
        if attr.is_to_many:
            return refs
        return refs[0] if refs else None

    async def _resolve_relation(self, s: AsyncSession, attr: AttributeSpec, value: Any) -> Any:
        if value is None:
            return [] if attr.is_to_many else None
        ids = self._reference_ids(attr, value)
        if attr.target and ids:
            q = await s.execute(
                select(models.Entry.entry_id).where(
                    models.Entry.slug == attr.target, models.Entry.entry_id.in_(ids)
                )
            )
            missing = sorted(set(ids) - set(q.scalars().all()))
            if missing:
                raise RelationTargetNotFoundError(
                    f"{attr.name} references missing {attr.target} entries: {missing}"
                )
        return self._references(attr, ids)

    async def _resolve_media(self, s: AsyncSession, attr: AttributeSpec, value: Any) -> Any:
        if value is None:
            return [] if attr.is_to_many else None
        items = value if isinstance(value, list) else [value]
        if isinstance(value, list) and not attr.is_to_many:
            raise EntryValidationError(f"{attr.name} accepts a single file, got a list")

        ids: list[int] = []
        for item in items:
            file_id = _as_id(item.get("id") if isinstance(item, Mapping) else item)
            if file_id is not None:
                found = await s.get(models.MediaFile, file_id)
            elif isinstance(item, Mapping):
                found = await self._lookup_media(s, item)
            else:
                raise EntryValidationError(f"Invalid file reference for {attr.name}: {item!r}")
            if found is None:
                raise RelationTargetNotFoundError(f"{attr.name} references a missing file: {item!r}")
            ids.append(found.id)
        return self._references(attr, ids)

    @staticmethod
    async def _lookup_media(s: AsyncSession, ref: Mapping[str, Any]) -> models.MediaFile | None:
        clauses = []
        if ref.get("hash"):
            clauses.append(models.MediaFile.hash == ref["hash"])
        if ref.get("name"):
            clauses.append(models.MediaFile.name == ref["name"])
        if ref.get("url"):
            clauses.append(models.MediaFile.source_url == ref["url"])
            clauses.append(models.MediaFile.url == ref["url"])
        if not clauses:
            return None
        q = await s.execute(
            select(models.MediaFile).where(or_(*clauses)).order_by(models.MediaFile.id).limit(1)
        )
        return q.scalar_one_or_none()

    @staticmethod
    def _check_component(model: ContentTypeSchema, attr: AttributeSpec, value: Any) -> Any:
        if value is None:
            return value
        if attr.repeatable:
            if not isinstance(value, list) or not all(isinstance(v, Mapping) for v in value):
                raise EntryValidationError(
                    f"{model.uid}.{attr.name} must be a list of component objects"
                )
        elif not isinstance(value, Mapping):
            raise EntryValidationError(f"{model.uid}.{attr.name} must be a component object")
        return value

    @staticmethod
    def _check_dynamic_zone(model: ContentTypeSchema, attr: AttributeSpec, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            raise EntryValidationError(f"{model.uid}.{attr.name} must be a list")
        for item in value:
            if not isinstance(item, Mapping) or not isinstance(item.get("__component"), str):
                raise EntryValidationError(
                    f"{model.uid}.{attr.name} items must be objects with a __component"
                )
            if attr.components and item["__component"] not in attr.components:
                raise EntryValidationError(
                    f"{item['__component']} is not allowed in {model.uid}.{attr.name}"
                )
        return value
