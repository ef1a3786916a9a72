"""Content-type descriptors, the schema registry and attribute classification.

Descriptors are loaded from a JSON mapping keyed by content-type uid::

    {
      "api::article.article": {
        "kind": "collectionType",
        "attributes": {
          "title": {"type": "string", "unique": true},
          "category": {"type": "relation", "relation": "manyToOne",
                       "target": "api::category.category"}
        }
      }
    }

Every attribute is tagged with an ``AttributeKind``. Store types that are not
one of the relational kinds (``string``, ``integer``, ``json``...) are
``plain``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from Contentorator.errors import SchemaError, UnknownContentTypeError


class AttributeKind(str, Enum):
    plain = "plain"
    component = "component"
    dynamiczone = "dynamiczone"
    media = "media"
    relation = "relation"


# Kinds whose values point at, or embed, other records
RELATIONAL_KINDS: frozenset[AttributeKind] = frozenset(
    {
        AttributeKind.component,
        AttributeKind.dynamiczone,
        AttributeKind.media,
        AttributeKind.relation,
    }
)

_TO_MANY_RELATIONS = frozenset({"oneToMany", "manyToMany", "morphToMany", "manyWay"})

ContentTypeKind = Literal["collectionType", "singleType"]


class AttributeSpec(BaseModel):
    name: str
    type: str
    # None only for the synthetic primary-key attribute
    kind: AttributeKind | None = None
    target: str | None = None
    relation: str | None = None
    component: str | None = None
    components: list[str] = Field(default_factory=list)
    repeatable: bool = False
    multiple: bool = False
    unique: bool = False
    required: bool = False
    allowed_types: list[str] | None = Field(default=None, alias="allowedTypes")

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _derive_kind(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("kind") is not None:
            return data
        attr_type = data.get("type")
        if attr_type == "id":
            return data
        try:
            kind = AttributeKind(attr_type)
        except ValueError:
            kind = AttributeKind.plain
        return {**data, "kind": kind}

    @property
    def is_to_many(self) -> bool:
        if self.kind is AttributeKind.relation:
            return self.relation in _TO_MANY_RELATIONS
        if self.kind is AttributeKind.media:
            return self.multiple
        return False


class ContentTypeSchema(BaseModel):
    uid: str
    kind: ContentTypeKind = "collectionType"
    primary_key: str = Field(default="id", alias="primaryKey")
    attributes: list[AttributeSpec] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _attributes_from_mapping(cls, data: Any) -> Any:
        # Accept the {name: {...}} form used by content-type files
        if isinstance(data, dict) and isinstance(data.get("attributes"), Mapping):
            attrs = [
                {"name": name, **spec} if isinstance(spec, Mapping) else spec
                for name, spec in data["attributes"].items()
            ]
            return {**data, "attributes": attrs}
        return data

    @property
    def is_single_type(self) -> bool:
        return self.kind == "singleType"

    def attribute(self, name: str) -> AttributeSpec | None:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None


def _kind_set(kinds: Iterable[AttributeKind | str] | None) -> frozenset[AttributeKind] | None:
    if kinds is None:
        return None
    return frozenset(AttributeKind(k) for k in kinds)


class SchemaRegistry:
    """In-memory registry of content-type descriptors keyed by uid (slug)."""

    def __init__(self, content_types: Iterable[ContentTypeSchema] = ()):
        self._types: dict[str, ContentTypeSchema] = {}
        for ct in content_types:
            self.register(ct)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> SchemaRegistry:
        if not isinstance(raw, Mapping):
            raise SchemaError("Content-type definitions must be a mapping of uid to descriptor")
        schemas = []
        for uid, descriptor in raw.items():
            if not isinstance(descriptor, Mapping):
                raise SchemaError(f"Descriptor for {uid} must be a mapping")
            try:
                schemas.append(ContentTypeSchema.model_validate({**descriptor, "uid": uid}))
            except ValidationError as exc:
                raise SchemaError(f"Invalid descriptor for {uid}: {exc}") from exc
        return cls(schemas)

    @classmethod
    def from_file(cls, path: str | Path) -> SchemaRegistry:
        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            raise SchemaError(f"Failed to load content types from {path}: {exc}") from exc
        return cls.from_dict(raw)

    def register(self, content_type: ContentTypeSchema) -> None:
        self._types[content_type.uid] = content_type

    def __contains__(self, slug: object) -> bool:
        return slug in self._types

    def slugs(self) -> list[str]:
        return list(self._types)

    def get_model(self, slug: str) -> ContentTypeSchema:
        try:
            return self._types[slug]
        except KeyError:
            raise UnknownContentTypeError(slug) from None

    def get_model_attributes(
        self,
        slug: str,
        *,
        include: Iterable[AttributeKind | str] | None = None,
        exclude: Iterable[AttributeKind | str] | None = None,
        include_primary_key: bool = False,
    ) -> list[AttributeSpec]:
        """Return the attributes of ``slug`` filtered by kind.

        ``include`` keeps attributes whose kind is in the set, ``exclude``
        keeps those whose kind is not. When ``include_primary_key`` is set the
        primary key is appended as a kind-less attribute.
        """
        if include is not None and exclude is not None:
            raise ValueError("Pass either include or exclude, not both")
        model = self.get_model(slug)
        wanted = _kind_set(include)
        unwanted = _kind_set(exclude)

        attrs = [
            attr
            for attr in model.attributes
            if (wanted is None or attr.kind in wanted)
            and (unwanted is None or attr.kind not in unwanted)
        ]
        if include_primary_key and not any(a.name == model.primary_key for a in attrs):
            attrs.append(AttributeSpec(name=model.primary_key, type="id"))
        return attrs

    def classify(
        self,
        slug: str,
        *,
        include: Iterable[AttributeKind | str] | None = None,
        exclude: Iterable[AttributeKind | str] | None = None,
        include_primary_key: bool = False,
    ) -> list[str]:
        return classify(
            self, slug, include=include, exclude=exclude, include_primary_key=include_primary_key
        )


def classify(
    registry,
    slug: str,
    *,
    include: Iterable[AttributeKind | str] | None = None,
    exclude: Iterable[AttributeKind | str] | None = None,
    include_primary_key: bool = False,
) -> list[str]:
    """Attribute names of ``slug`` for any registry implementing the registry protocol."""
    return [
        attr.name
        for attr in registry.get_model_attributes(
            slug, include=include, exclude=exclude, include_primary_key=include_primary_key
        )
    ]
