# models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from Contentorator.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Entry(Base):
    """One content entry of any content type.

    ``entry_id`` is the content type's own primary key value, unique per slug.
    Attribute values live in ``data``; relation values are stored as
    ``{"id": n}`` references (or lists of them).
    """

    __tablename__ = "entries"
    __table_args__ = (
        UniqueConstraint("slug", "entry_id", name="ux_entries_slug_entry_id"),
        Index("ix_entries_slug", "slug"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(255))
    entry_id: Mapped[int] = mapped_column(Integer)
    data: Mapped[dict] = mapped_column(JSON, default=dict)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class MediaFile(Base):
    __tablename__ = "media_files"
    __table_args__ = (
        Index("ix_media_files_hash", "hash"),
        Index("ix_media_files_name", "name"),
        Index("ix_media_files_source_url", "source_url"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    hash: Mapped[str] = mapped_column(String(64))  # sha256 hex of the content
    ext: Mapped[str] = mapped_column(String(16), default="")
    mime: Mapped[str | None] = mapped_column(String(128), nullable=True)
    size: Mapped[int] = mapped_column(Integer, default=0)
    url: Mapped[str] = mapped_column(Text)  # stored location under media_root
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    alternative_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def to_handle(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "hash": self.hash,
            "ext": self.ext,
            "mime": self.mime,
            "size": self.size,
            "url": self.url,
            "alternativeText": self.alternative_text,
            "caption": self.caption,
        }
