"""Collaborator interfaces consumed by the import pipeline.

The pipeline never locates services on its own: concrete stores and the
authorizer are passed to ``EntryImporter`` at construction. Any object with
matching methods satisfies these protocols; see ``stores.memory`` and
``stores.strapi`` for the bundled implementations.
"""

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .models.references import StoredEntity, StoredFile, UploadMetadata
from .models.schema import CollectionSchema


@runtime_checkable
class EntityStore(Protocol):
    """Schema lookup and CRUD access to collections."""

    async def get_schema(self, collection: str) -> CollectionSchema:
        """Schema of a collection.

        Raises:
            StoreRejectedError: If the collection does not exist
        """
        ...

    async def find_one(self, collection: str, entity_id: int) -> StoredEntity | None:
        """Entity by id, or None."""
        ...

    async def find_many(
        self,
        collection: str,
        filters: dict[str, Any],
        limit: int | None = None,
    ) -> list[StoredEntity]:
        """Entities whose fields equal every value in ``filters``."""
        ...

    async def create(self, collection: str, data: dict[str, Any]) -> StoredEntity:
        """Create an entity.

        Raises:
            StoreRejectedError: If the store refuses the data
        """
        ...

    async def update(
        self, collection: str, entity_id: int, data: dict[str, Any]
    ) -> StoredEntity:
        """Update fields of an existing entity.

        Raises:
            StoreRejectedError: If the store refuses the data
        """
        ...


@runtime_checkable
class MediaStore(Protocol):
    """Lookup and upload of media library files."""

    async def find_file(
        self,
        *,
        id: int | None = None,
        hash_prefix: str | None = None,
        name: str | None = None,
    ) -> StoredFile | None:
        """First file matching the given criterion.

        ``hash_prefix`` matches files whose hash starts with ``<hash_prefix>_``.
        """
        ...

    async def upload(self, file_path: Path, metadata: UploadMetadata) -> StoredFile:
        """Store a local file.

        The stored hash must start with the slug of the file name without its
        extension followed by ``_``.

        Raises:
            StoreRejectedError: If the store refuses the file
        """
        ...


@runtime_checkable
class Authorizer(Protocol):
    """Permission check performed once before an import starts."""

    def can_read(self, collection: str, principal: Any) -> bool:
        """Whether ``principal`` may read (and thus import into) ``collection``."""
        ...
