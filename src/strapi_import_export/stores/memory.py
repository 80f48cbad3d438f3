"""In-memory entity and media stores.

Useful for dry runs and tests. The entity store validates writes against the
collection schema the way Strapi does (unknown keys and missing required
fields are rejected), and the media store names uploads the way Strapi's
upload plugin does (``<slug of file name>_<random suffix>``).
"""

import logging
import secrets
from collections import defaultdict
from collections.abc import Mapping
from pathlib import Path, PurePosixPath
from typing import Any

from slugify import slugify

from ..exceptions import StoreRejectedError
from ..models.references import StoredEntity, StoredFile, UploadMetadata
from ..models.schema import CollectionSchema

logger = logging.getLogger(__name__)

_SYSTEM_FIELDS = {"id", "documentId", "createdAt", "updatedAt", "publishedAt", "locale"}


def _as_schema(uid: str, schema: CollectionSchema | Mapping[str, Any]) -> CollectionSchema:
    if isinstance(schema, CollectionSchema):
        return schema
    if "attributes" in schema:
        return CollectionSchema.model_validate({"uid": uid, **schema})
    return CollectionSchema(uid=uid, attributes=dict(schema))


class InMemoryEntityStore:
    """Entity store keeping entries in dictionaries.

    Example:
        >>> store = InMemoryEntityStore({
        ...     "api::article.article": {"title": {"type": "string", "required": True}},
        ... })
        >>> entity = await store.create("api::article.article", {"title": "Hello"})
        >>> entity.id
        1
    """

    def __init__(
        self, schemas: Mapping[str, CollectionSchema | Mapping[str, Any]] | None = None
    ) -> None:
        self._schemas: dict[str, CollectionSchema] = {
            uid: _as_schema(uid, schema) for uid, schema in (schemas or {}).items()
        }
        self._entries: defaultdict[str, dict[int, dict[str, Any]]] = defaultdict(dict)
        self._last_id: defaultdict[str, int] = defaultdict(int)
        self.operations: list[tuple[str, str, int | None]] = []

    def add_schema(self, uid: str, schema: CollectionSchema | Mapping[str, Any]) -> None:
        self._schemas[uid] = _as_schema(uid, schema)

    def entries(self, collection: str) -> list[StoredEntity]:
        """All entries of a collection, in id order."""
        return [
            StoredEntity(id=entity_id, collection=collection, data=dict(data))
            for entity_id, data in sorted(self._entries[collection].items())
        ]

    async def get_schema(self, collection: str) -> CollectionSchema:
        schema = self._schemas.get(collection)
        if schema is None:
            raise StoreRejectedError(
                f"Unknown collection: {collection}", details={"collection": collection}
            )
        return schema

    async def find_one(self, collection: str, entity_id: int) -> StoredEntity | None:
        data = self._entries[collection].get(entity_id)
        if data is None:
            return None
        return StoredEntity(id=entity_id, collection=collection, data=dict(data))

    async def find_many(
        self,
        collection: str,
        filters: dict[str, Any],
        limit: int | None = None,
    ) -> list[StoredEntity]:
        found: list[StoredEntity] = []
        for entity_id, data in sorted(self._entries[collection].items()):
            if all(data.get(k) == v for k, v in filters.items()):
                found.append(StoredEntity(id=entity_id, collection=collection, data=dict(data)))
                if limit is not None and len(found) >= limit:
                    break
        return found

    async def create(self, collection: str, data: dict[str, Any]) -> StoredEntity:
        schema = await self.get_schema(collection)
        self._validate(schema, data, partial=False)

        self._last_id[collection] += 1
        entity_id = self._last_id[collection]
        self._entries[collection][entity_id] = dict(data)
        self.operations.append(("create", collection, entity_id))
        return StoredEntity(id=entity_id, collection=collection, data=dict(data))

    async def update(
        self, collection: str, entity_id: int, data: dict[str, Any]
    ) -> StoredEntity:
        schema = await self.get_schema(collection)
        current = self._entries[collection].get(entity_id)
        if current is None:
            raise StoreRejectedError(
                f"No {collection} entry with id {entity_id}",
                status_code=404,
                details={"collection": collection},
            )
        self._validate(schema, data, partial=True)

        current.update(data)
        self.operations.append(("update", collection, entity_id))
        return StoredEntity(id=entity_id, collection=collection, data=dict(current))

    @staticmethod
    def _validate(schema: CollectionSchema, data: dict[str, Any], partial: bool) -> None:
        unknown = [k for k in data if k not in schema.attributes and k not in _SYSTEM_FIELDS]
        if unknown:
            raise StoreRejectedError(
                f"Invalid key(s) for {schema.uid}: {', '.join(unknown)}",
                status_code=400,
                details={"collection": schema.uid, "fields": unknown},
            )
        if partial:
            return
        missing = [
            name
            for name, attr in schema.attributes.items()
            if isinstance(attr, dict) and attr.get("required") and data.get(name) is None
        ]
        if missing:
            raise StoreRejectedError(
                f"Missing required field(s) for {schema.uid}: {', '.join(missing)}",
                status_code=400,
                details={"collection": schema.uid, "fields": missing},
            )


class InMemoryMediaStore:
    """Media store keeping file metadata and content in memory.

    Attributes:
        uploads: Metadata of every upload, in order
        uploaded_paths: Local paths handed to ``upload``, in order
    """

    def __init__(self) -> None:
        self._files: dict[int, StoredFile] = {}
        self._content: dict[int, bytes] = {}
        self._last_id = 0
        self.uploads: list[UploadMetadata] = []
        self.uploaded_paths: list[Path] = []

    @property
    def files(self) -> list[StoredFile]:
        return list(self._files.values())

    def content(self, file_id: int) -> bytes:
        return self._content[file_id]

    def add_file(self, name: str, hash: str | None = None, content: bytes = b"") -> StoredFile:
        """Register an existing file."""
        return self._store(name, content, hash=hash)

    async def find_file(
        self,
        *,
        id: int | None = None,
        hash_prefix: str | None = None,
        name: str | None = None,
    ) -> StoredFile | None:
        if id is not None:
            return self._files.get(id)
        if hash_prefix is not None:
            prefix = f"{hash_prefix}_"
            return next((f for f in self._files.values() if f.hash.startswith(prefix)), None)
        if name is not None:
            return next((f for f in self._files.values() if f.name == name), None)
        return None

    async def upload(self, file_path: Path, metadata: UploadMetadata) -> StoredFile:
        path = Path(file_path)
        if not path.is_file():
            raise StoreRejectedError(f"File not found: {file_path}", status_code=400)

        self.uploaded_paths.append(path)
        self.uploads.append(metadata)
        stored = self._store(path.name, path.read_bytes(), display_name=metadata.name)
        stored.mime = metadata.mime
        logger.debug(f"Stored upload {path.name} as #{stored.id} ({stored.hash})")
        return stored

    def _store(
        self,
        file_name: str,
        content: bytes,
        hash: str | None = None,
        display_name: str | None = None,
    ) -> StoredFile:
        pure = PurePosixPath(file_name)
        stem = str(pure.with_suffix("")) if pure.suffix else file_name

        self._last_id += 1
        stored = StoredFile(
            id=self._last_id,
            hash=hash or f"{slugify(stem)}_{secrets.token_hex(5)}",
            ext=pure.suffix.lower(),
            name=display_name or file_name,
            url=f"/uploads/{slugify(stem)}{pure.suffix.lower()}",
        )
        self._files[stored.id] = stored
        self._content[stored.id] = content
        return stored
