# tests/conftest.py

import copy
import gc
import os
from collections.abc import AsyncIterator

import pytest
import sqlalchemy as sa

# Point the app engine at a process-local in-memory DB before any app module
# creates it.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import Contentorator.db as _db  # noqa: E402

_db.DATABASE_URL = os.environ["DATABASE_URL"]
_db._engine = None
_db._sessionmaker = None
_db._schema_initialized = False

# Import models so all ORM tables are registered on Base.metadata before create_all
from Contentorator import models as _models  # noqa: F401,E402
from Contentorator.content_schema import SchemaRegistry  # noqa: E402
from Contentorator.db import Base, get_engine  # noqa: E402
from Contentorator.entity_service import EntityService  # noqa: E402
from Contentorator.importer import BatchImporter  # noqa: E402
from Contentorator.interfaces import Actor  # noqa: E402
from Contentorator.media import MediaResolver  # noqa: E402
from Contentorator.metrics import reset_counters  # noqa: E402

MEDIA_SLUG = "plugin::upload.file"

CONTENT_TYPES = {
    "category": {
        "kind": "collectionType",
        "attributes": {
            "name": {"type": "string", "unique": True, "required": True},
            "description": {"type": "text"},
        },
    },
    "author": {
        "kind": "collectionType",
        "attributes": {
            "name": {"type": "string"},
            "email": {"type": "email", "unique": True},
        },
    },
    "article": {
        "kind": "collectionType",
        "attributes": {
            "title": {"type": "string"},
            "slug": {"type": "uid", "unique": True},
            "category": {"type": "relation", "relation": "manyToOne", "target": "category"},
            "authors": {"type": "relation", "relation": "manyToMany", "target": "author"},
            "cover": {"type": "media", "multiple": False, "allowedTypes": ["images"]},
            "seo": {"type": "component", "component": "shared.seo", "repeatable": False},
            "blocks": {
                "type": "dynamiczone",
                "components": ["shared.rich-text", "shared.quote"],
            },
        },
    },
    "post": {
        "kind": "collectionType",
        "attributes": {
            "title": {"type": "string"},
            "author": {"type": "relation", "relation": "manyToOne", "target": "author"},
        },
    },
    "homepage": {
        "kind": "singleType",
        "attributes": {
            "headline": {"type": "string"},
            "featured": {"type": "relation", "relation": "oneToOne", "target": "article"},
        },
    },
}


@pytest.fixture(scope="session", autouse=True)
async def _app_engine_lifecycle() -> AsyncIterator[None]:
    """Create tables on the app engine and dispose it after the test session."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield None
    finally:
        await engine.dispose()
    gc.collect()


@pytest.fixture(autouse=True)
async def _reset_db_per_test() -> AsyncIterator[None]:
    engine = get_engine()
    async with engine.begin() as conn:
        is_sqlite = conn.dialect.name == "sqlite"
        if is_sqlite:
            await conn.execute(sa.text("PRAGMA foreign_keys=OFF"))
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
        if is_sqlite:
            await conn.execute(sa.text("PRAGMA foreign_keys=ON"))
    reset_counters()
    yield None


@pytest.fixture
def content_types() -> dict:
    return copy.deepcopy(CONTENT_TYPES)


@pytest.fixture
def registry(content_types) -> SchemaRegistry:
    return SchemaRegistry.from_dict(content_types)


@pytest.fixture
def store(registry) -> EntityService:
    return EntityService(registry)


@pytest.fixture
def media_resolver(tmp_path) -> MediaResolver:
    return MediaResolver(tmp_path / "media")


@pytest.fixture
def actor() -> Actor:
    return Actor(id=7, email="editor@example.com")


@pytest.fixture
def importer(registry, store, media_resolver) -> BatchImporter:
    return BatchImporter(registry, store, media_resolver, media_slug=MEDIA_SLUG)
