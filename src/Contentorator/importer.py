"""Two-pass bulk importer for content entries.

Records of every content type in the import document are written twice:

1. plain attributes only (relations, components, dynamic zones and media
   excluded), so every entry referenced anywhere in the batch exists;
2. relational attributes only, now that their targets exist.

Both passes walk the document in key order and process records one at a time.
A failing record is recorded as an ``ImportFailure`` and the batch continues;
only schema errors (unknown content type, malformed document) abort the call.
Nothing written before a failure is rolled back.

Records under the media slug are file references and go through the media
resolver in both passes; resolving an already imported file is a no-op, and
a file that failed in the first pass is reported once.
"""

from __future__ import annotations

import time
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from Contentorator.config import Settings, load_settings
from Contentorator.content_schema import SchemaRegistry
from Contentorator.document import ImportDocument, RawRecord, parse_import_document
from Contentorator.entity_service import EntityService
from Contentorator.errors import EntryValidationError, SchemaError
from Contentorator.interfaces import (
    Actor,
    EntityStore,
    MediaResolverProtocol,
    SchemaRegistryProtocol,
)
from Contentorator.media import MediaResolver
from Contentorator.metrics import inc_counter, observe_histogram
from Contentorator.normalizer import RelationPass, normalize, pass_attribute_names
from Contentorator.upsert import update_or_create

DEFAULT_MEDIA_SLUG = "plugin::upload.file"


@dataclass(frozen=True)
class ImportFailure:
    """A record that could not be imported and why."""

    error: str
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "data": self.data}


@dataclass
class ImportResult:
    failures: list[ImportFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {"failures": [f.to_dict() for f in self.failures]}


class BatchImporter:
    def __init__(
        self,
        registry: SchemaRegistryProtocol,
        store: EntityStore,
        media: MediaResolverProtocol,
        *,
        media_slug: str = DEFAULT_MEDIA_SLUG,
        media_allowed_types: Sequence[str] = ("any",),
        logger=None,
    ):
        self.registry = registry
        self.store = store
        self.media = media
        self.media_slug = media_slug
        self.media_allowed_types = tuple(media_allowed_types)
        self.log = logger if logger is not None else structlog.get_logger(__name__)

    async def run(
        self,
        document: ImportDocument | str | bytes | Mapping[str, Any],
        *,
        slug: str,
        user: Actor | None,
        id_field: str | None = None,
    ) -> ImportResult:
        """Import every group of ``document``.

        ``id_field`` is the identity field for the ``slug`` group only; all
        other groups match on their primary key.
        """
        doc = parse_import_document(document)
        log = self.log.bind(target_slug=slug, id_field=id_field)
        start = time.perf_counter()
        log.info("importer.start", groups=len(doc.data), records=doc.record_count())

        result = ImportResult()
        # Positions of media records that failed to resolve in the first pass
        failed_media: set[int] = set()
        for mode in (RelationPass.EXCLUDE_RELATIONS, RelationPass.ONLY_RELATIONS):
            for group_slug, records in doc.groups():
                if group_slug == self.media_slug:
                    failed = await self._import_media(
                        records, user, log.bind(phase=mode.value), skip=failed_media
                    )
                    failed_media.update(failed)
                    failures = list(failed.values())
                else:
                    failures = await self._import_group(
                        group_slug,
                        records,
                        user=user,
                        id_field=id_field if group_slug == slug else None,
                        mode=mode,
                        log=log.bind(slug=group_slug, phase=mode.value),
                    )
                result.failures.extend(failures)

        duration_ms = int((time.perf_counter() - start) * 1000)
        observe_histogram("importer.duration_ms", duration_ms)
        log.info("importer.complete", failures=len(result.failures), duration_ms=duration_ms)
        return result

    async def _import_media(
        self,
        records: list[RawRecord],
        user: Actor | None,
        log,
        *,
        skip: Collection[int] = (),
    ) -> dict[int, ImportFailure]:
        """Resolve every file reference not in ``skip``; failures keyed by position."""
        failures: dict[int, ImportFailure] = {}
        for position, record in enumerate(records):
            if position in skip:
                continue
            try:
                await self.media.find_or_import_file(
                    record, user, allowed_types=self.media_allowed_types
                )
            except SchemaError:
                raise
            except Exception as exc:
                log.error("importer.media.failed", error=str(exc), exc_info=True)
                inc_counter("importer.media.failed")
                failures[position] = ImportFailure(error=str(exc), data=record)
            else:
                inc_counter("importer.media.ok")
        return failures

    async def _import_group(
        self,
        slug: str,
        records: list[RawRecord],
        *,
        user: Actor | None,
        id_field: str | None,
        mode: RelationPass,
        log,
    ) -> list[ImportFailure]:
        # Resolved once per group; an unknown slug aborts the batch here
        attribute_names, component_names = pass_attribute_names(self.registry, slug, mode)
        if id_field and id_field not in attribute_names:
            # Both passes must address the entry the identity field matched
            attribute_names = [*attribute_names, id_field]

        failures: list[ImportFailure] = []
        for record in records:
            try:
                if not isinstance(record, Mapping):
                    raise EntryValidationError(
                        f"{slug} record must be an object, got {type(record).__name__}"
                    )
                datum = normalize(record, attribute_names, component_names)
                await update_or_create(
                    self.registry, self.store, slug, datum, id_field, actor=user
                )
            except SchemaError:
                raise
            except Exception as exc:
                log.error("importer.record.failed", error=str(exc), exc_info=True)
                inc_counter("importer.record.failed")
                failures.append(ImportFailure(error=str(exc), data=record))
            else:
                inc_counter("importer.record.ok")
        return failures


async def import_data(
    file_content: ImportDocument | str | bytes | Mapping[str, Any],
    *,
    slug: str,
    user: Actor | None,
    id_field: str | None = None,
    registry: SchemaRegistryProtocol | None = None,
    settings: Settings | None = None,
    logger=None,
) -> ImportResult:
    """Import ``file_content`` with the stores configured by ``settings``.

    The registry is loaded from ``settings.schema_path`` when not given.
    """
    settings = settings or load_settings()
    registry = registry or SchemaRegistry.from_file(settings.schema_path)
    importer = BatchImporter(
        registry,
        EntityService(registry),
        MediaResolver(
            settings.media_root, fetch_timeout_seconds=settings.media_fetch_timeout_seconds
        ),
        media_slug=settings.media_slug,
        media_allowed_types=settings.media_allowed_types,
        logger=logger,
    )
    return await importer.run(file_content, slug=slug, user=user, id_field=id_field)
