"""Import document parsing.

An import file is JSON shaped as ``{"data": {slug: records}}`` where
``records`` is either a mapping (keys only group, values are iterated in file
order) or a list.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from Contentorator.errors import ImportDocumentError

# Entity records are objects and media records are file references; a record
# of the wrong shape fails on its own when it is imported
RawRecord = Any


class ImportDocument(BaseModel):
    data: dict[str, list[RawRecord]]

    model_config = ConfigDict(frozen=True)

    @field_validator("data", mode="before")
    @classmethod
    def _records_as_lists(cls, v: Any) -> Any:
        if not isinstance(v, Mapping):
            return v
        return {
            slug: list(records.values()) if isinstance(records, Mapping) else records
            for slug, records in v.items()
        }

    def groups(self) -> Iterator[tuple[str, list[RawRecord]]]:
        """(slug, records) pairs in document order."""
        yield from self.data.items()

    def record_count(self) -> int:
        return sum(len(records) for records in self.data.values())


def parse_import_document(content: str | bytes | Mapping[str, Any] | ImportDocument) -> ImportDocument:
    if isinstance(content, ImportDocument):
        return content
    if isinstance(content, (str, bytes)):
        try:
            content = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ImportDocumentError(f"Import file is not valid JSON: {exc}") from exc
    if not isinstance(content, Mapping) or "data" not in content:
        raise ImportDocumentError("Import file must be an object with a 'data' key")
    try:
        return ImportDocument.model_validate({"data": content["data"]})
    except ValidationError as exc:
        raise ImportDocumentError(f"Malformed import data: {exc}") from exc
