"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncIterator

import httpx
import pytest

from strapi_import_export import EntryImporter, ImportConfig, StrapiConfig
from strapi_import_export.stores import InMemoryEntityStore, InMemoryMediaStore

ARTICLE = "api::article.article"
AUTHOR = "api::author.author"
TAG = "api::tag.tag"


@pytest.fixture
def schemas() -> dict:
    """Collection schemas used across importer tests.

    Articles have a single image cover, a gallery, an author (many-to-one)
    and tags (many-to-many). Authors point back to their favorite article,
    which lets tests build reference cycles.
    """
    return {
        ARTICLE: {
            "info": {"displayName": "Article", "pluralName": "articles"},
            "attributes": {
                "name": {"type": "string", "required": True},
                "body": {"type": "text"},
                "cover": {"type": "media", "multiple": False, "allowedTypes": ["images"]},
                "gallery": {"type": "media", "multiple": True},
                "author": {"type": "relation", "relation": "manyToOne", "target": AUTHOR},
                "tags": {"type": "relation", "relation": "manyToMany", "target": TAG},
            },
        },
        AUTHOR: {
            "info": {"displayName": "Author", "pluralName": "authors"},
            "attributes": {
                "name": {"type": "string", "required": True},
                "favorite": {"type": "relation", "relation": "oneToOne", "target": ARTICLE},
            },
        },
        TAG: {
            "info": {"displayName": "Tag", "pluralName": "tags"},
            "attributes": {
                "name": {"type": "string"},
                "parent": {"type": "relation", "relation": "manyToOne", "target": TAG},
            },
        },
    }


@pytest.fixture
def entity_store(schemas: dict) -> InMemoryEntityStore:
    return InMemoryEntityStore(schemas)


@pytest.fixture
def media_store() -> InMemoryMediaStore:
    return InMemoryMediaStore()


@pytest.fixture
def import_config() -> ImportConfig:
    """Import configuration matching entries by ``name``."""
    return ImportConfig(unique_identifier_field="name")


@pytest.fixture
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def importer(
    entity_store: InMemoryEntityStore,
    media_store: InMemoryMediaStore,
    import_config: ImportConfig,
    http_client: httpx.AsyncClient,
) -> EntryImporter:
    return EntryImporter(entity_store, media_store, config=import_config, http_client=http_client)


@pytest.fixture
def strapi_config() -> StrapiConfig:
    """Create a test Strapi configuration with fast retries.

    Returns:
        Test configuration with mock values
    """
    return StrapiConfig(
        base_url="http://localhost:1337",
        api_token="test-token-12345678",
        retry={"max_attempts": 3, "initial_wait": 0, "max_wait": 0},
    )
