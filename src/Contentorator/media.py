"""Find-or-import resolution of file references.

A file reference is either a string (its URL or local path) or a mapping with
any of ``id``, ``hash``, ``name``, ``url``, ``alternativeText`` and
``caption``. Existing files are matched by id, hash, name and then source URL;
otherwise the URL is read, hashed and stored under ``media_root``.
Re-resolving a reference that was already imported returns the stored file.
"""

from __future__ import annotations

import asyncio
import hashlib
import mimetypes
from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from Contentorator import models
from Contentorator.db import session_scope
from Contentorator.errors import MediaImportError
from Contentorator.interfaces import Actor

log = structlog.get_logger()

FILE_TYPE_EXTENSIONS: dict[str, frozenset[str]] = {
    "images": frozenset(
        {".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".bmp", ".tif", ".tiff", ".ico", ".avif"}
    ),
    "videos": frozenset({".mp4", ".mov", ".avi", ".mkv", ".webm", ".wmv", ".mpeg", ".ogv"}),
    "audios": frozenset({".mp3", ".wav", ".ogg", ".flac", ".aac", ".m4a", ".oga"}),
}


def file_type_of(ext: str) -> str:
    """Media family of an extension: images, videos, audios, or files."""
    ext = ext.lower()
    for family, extensions in FILE_TYPE_EXTENSIONS.items():
        if ext in extensions:
            return family
    return "files"


def is_extension_allowed(ext: str, allowed_types: Sequence[str]) -> bool:
    if "any" in allowed_types:
        return True
    return file_type_of(ext) in allowed_types


@dataclass(frozen=True)
class FileRef:
    id: Any = None
    hash: str | None = None
    name: str | None = None
    url: str | None = None
    alternative_text: str | None = None
    caption: str | None = None

    @classmethod
    def coerce(cls, raw: Any) -> FileRef:
        if isinstance(raw, str):
            return cls(url=raw)
        if isinstance(raw, Mapping):
            return cls(
                id=raw.get("id"),
                hash=raw.get("hash"),
                name=raw.get("name"),
                url=raw.get("url"),
                alternative_text=raw.get("alternativeText"),
                caption=raw.get("caption"),
            )
        raise MediaImportError(f"Invalid file reference: {raw!r}")

    @property
    def ext(self) -> str:
        if not self.url:
            return Path(self.name or "").suffix.lower()
        return Path(urlparse(self.url).path).suffix.lower()


class MediaResolver:
    def __init__(
        self,
        media_root: str | Path,
        *,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = session_scope,
        fetch_timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.media_root = Path(media_root)
        self._session_factory = session_factory
        self._fetch_timeout = fetch_timeout_seconds
        self._http_client = http_client

    async def find_or_import_file(
        self,
        file_ref: Any,
        actor: Actor | None,
        *,
        allowed_types: Sequence[str] = ("any",),
    ) -> dict[str, Any]:
        """Return the handle of an existing or newly imported file.

        Raises MediaImportError when the reference matches nothing and cannot
        be imported.
        """
        ref = FileRef.coerce(file_ref)
        async with self._session_factory() as s:
            found = await self._find_existing(s, ref)
            if found is not None and not is_extension_allowed(found.ext, allowed_types):
                log.info("media.file.type_not_allowed", file_id=found.id, ext=found.ext)
                found = None
            if found is not None:
                return found.to_handle()

        if not ref.url:
            raise MediaImportError(f"File not found and no url to import it from: {file_ref!r}")
        return await self._import(ref, actor, allowed_types)

    async def _find_existing(self, s: AsyncSession, ref: FileRef) -> models.MediaFile | None:
        if isinstance(ref.id, int) and not isinstance(ref.id, bool):
            found = await s.get(models.MediaFile, ref.id)
            if found is not None:
                return found
        for column, value in (
            (models.MediaFile.hash, ref.hash),
            (models.MediaFile.name, ref.name),
            (models.MediaFile.source_url, ref.url),
        ):
            if not value:
                continue
            q = await s.execute(
                select(models.MediaFile).where(column == value).order_by(models.MediaFile.id).limit(1)
            )
            found = q.scalar_one_or_none()
            if found is not None:
                return found
        return None

    async def _import(
        self, ref: FileRef, actor: Actor | None, allowed_types: Sequence[str]
    ) -> dict[str, Any]:
        ext = ref.ext
        if not is_extension_allowed(ext, allowed_types):
            raise MediaImportError(
                f"File type {ext or '<none>'} of {ref.url} is not allowed ({', '.join(allowed_types)})"
            )

        content = await self._read(ref.url)
        digest = hashlib.sha256(content).hexdigest()

        async with self._session_factory() as s:
            q = await s.execute(
                select(models.MediaFile).where(models.MediaFile.hash == digest).limit(1)
            )
            same = q.scalar_one_or_none()
            if same is not None:
                return same.to_handle()

            stored = self.media_root / f"{digest}{ext}"
            await asyncio.to_thread(self._write, stored, content)

            name = ref.name or Path(unquote(urlparse(ref.url).path)).name
            media = models.MediaFile(
                name=name,
                hash=digest,
                ext=ext,
                mime=mimetypes.guess_type(name)[0],
                size=len(content),
                url=str(stored),
                source_url=ref.url,
                alternative_text=ref.alternative_text,
                caption=ref.caption,
                created_by=actor.ref if actor else None,
            )
            s.add(media)
            await s.flush()
            log.info("media.file.imported", file_id=media.id, name=name, size=len(content))
            return media.to_handle()

    async def _read(self, url: str) -> bytes:
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            return await self._fetch(url)
        path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(url)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise MediaImportError(f"Cannot read file {url}: {exc}") from exc

    async def _fetch(self, url: str) -> bytes:
        client = self._http_client or httpx.AsyncClient(timeout=self._fetch_timeout)
        try:
            resp = await client.get(url, follow_redirects=True)
            resp.raise_for_status()
            return resp.content
        except httpx.HTTPError as exc:
            raise MediaImportError(f"Cannot fetch file {url}: {exc}") from exc
        finally:
            if self._http_client is None:
                await client.aclose()

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
