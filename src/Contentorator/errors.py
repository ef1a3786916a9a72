"""Error taxonomy for the content importer.

Two families matter to callers:

* ``SchemaError`` means the job itself is structurally invalid (unknown
  content type, malformed import document). The batch aborts.
* ``RecordError`` means one record could not be written. The batch importer
  records it as a failure and moves on to the next record.
"""

from __future__ import annotations


class ImporterError(Exception):
    """Base class for importer errors."""
    pass


class SchemaError(ImporterError):
    """Raised when a content type or its descriptor cannot be resolved."""
    pass


class UnknownContentTypeError(SchemaError):
    """Raised when a slug is not registered in the schema registry."""

    def __init__(self, slug: str):
        super().__init__(f"Unknown content type: {slug}")
        self.slug = slug


class ImportDocumentError(SchemaError):
    """Raised when the import file does not have the expected shape."""
    pass


class RecordError(ImporterError):
    """Raised when a single record cannot be created, updated or resolved."""
    pass


class EntryValidationError(RecordError):
    """Raised when entry data breaks a write-time rule of its content type."""
    pass


class UniqueConstraintError(RecordError):
    """Raised when a unique attribute value is already taken."""

    def __init__(self, slug: str, attribute: str, value):
        super().__init__(f"{slug}.{attribute} must be unique, {value!r} is already used")
        self.slug = slug
        self.attribute = attribute
        self.value = value


class RelationTargetNotFoundError(RecordError):
    """Raised when a relation or media value points at a missing entry."""
    pass


class MediaImportError(RecordError):
    """Raised when a file reference can be neither found nor imported."""
    pass
