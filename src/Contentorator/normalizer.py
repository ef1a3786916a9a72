"""Record normalization for the two import passes.

A raw record is reduced to the attributes the current pass writes: plain
attributes in the first pass, relational ones in the second. The primary key
is kept in both so updates can address the entry.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from Contentorator.content_schema import RELATIONAL_KINDS, AttributeKind


class RelationPass(str, Enum):
    EXCLUDE_RELATIONS = "exclude_relations"
    ONLY_RELATIONS = "only_relations"


def expand_compact_components(record: dict[str, Any], component_names: Iterable[str]) -> dict[str, Any]:
    """Replace bare integer component values with ``{"id": value}``.

    Older export files wrote a component reference as its id alone.
    Mutates and returns ``record``.
    """
    for name in component_names:
        value = record.get(name)
        # bool is an int subclass but never an id
        if isinstance(value, int) and not isinstance(value, bool):
            record[name] = {"id": value}
    return record


def normalize(
    record: Mapping[str, Any],
    attribute_names: Iterable[str],
    component_names: Iterable[str] = (),
) -> dict[str, Any]:
    """Return a deep copy of ``record`` restricted to ``attribute_names``."""
    keep = set(attribute_names)
    datum = copy.deepcopy(dict(record))
    datum = {k: v for k, v in datum.items() if k in keep}
    return expand_compact_components(datum, component_names)


def pass_attribute_names(registry, slug: str, mode: RelationPass) -> tuple[list[str], list[str]]:
    """Attribute names kept by ``mode`` and the component names the legacy rule applies to."""
    if mode is RelationPass.EXCLUDE_RELATIONS:
        names = [
            a.name
            for a in registry.get_model_attributes(
                slug, exclude=RELATIONAL_KINDS, include_primary_key=True
            )
        ]
        return names, []
    names = [
        a.name
        for a in registry.get_model_attributes(slug, include=RELATIONAL_KINDS, include_primary_key=True)
    ]
    components = [
        a.name for a in registry.get_model_attributes(slug, include=[AttributeKind.component])
    ]
    return names, components


def prepare_record(registry, slug: str, record: Mapping[str, Any], mode: RelationPass) -> dict[str, Any]:
    names, components = pass_attribute_names(registry, slug, mode)
    return normalize(record, names, components)
