"""Collaborator contracts used by the batch importer.

The importer only talks to these protocols; ``SchemaRegistry``,
``EntityService`` and ``MediaResolver`` are the implementations shipped with
the package.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from Contentorator.content_schema import AttributeKind, AttributeSpec, ContentTypeSchema


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf an import runs."""

    id: str | int
    email: str | None = None

    @property
    def ref(self) -> str:
        return str(self.id)


class SchemaRegistryProtocol(Protocol):
    def get_model(self, slug: str) -> ContentTypeSchema: ...

    def get_model_attributes(
        self,
        slug: str,
        *,
        include: Iterable[AttributeKind | str] | None = None,
        exclude: Iterable[AttributeKind | str] | None = None,
        include_primary_key: bool = False,
    ) -> list[AttributeSpec]: ...


class EntityStore(Protocol):
    async def find_one(self, slug: str, where: Mapping[str, Any]) -> dict[str, Any] | None: ...

    async def find_many(self, slug: str) -> dict[str, Any] | list[dict[str, Any]] | None: ...

    async def create(
        self, slug: str, data: Mapping[str, Any], *, actor: Actor | None = None
    ) -> dict[str, Any]: ...

    async def update(
        self, slug: str, entry_id: Any, data: Mapping[str, Any], *, actor: Actor | None = None
    ) -> dict[str, Any] | None: ...


class MediaResolverProtocol(Protocol):
    async def find_or_import_file(
        self,
        file_ref: Any,
        actor: Actor | None,
        *,
        allowed_types: Sequence[str] = ("any",),
    ) -> dict[str, Any]: ...
