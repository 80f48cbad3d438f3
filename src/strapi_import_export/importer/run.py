"""State scoped to a single import run.

An ``ImportRun`` is created by ``EntryImporter`` for each invocation and
closed when the invocation returns. Nothing in it outlives the run.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any

from ..models.config import ImportConfig
from ..models.schema import CollectionSchema
from ..protocols import EntityStore

logger = logging.getLogger(__name__)

# (collection, "field=value") identifying a record independently of its id
NaturalKey = tuple[str, str]


def natural_key(collection: str, data: dict[str, Any], config: ImportConfig) -> NaturalKey | None:
    """Key identifying a record by its unique identifier field, else its id.

    Example:
        >>> config = ImportConfig(unique_identifier_field="slug")
        >>> natural_key("api::tag.tag", {"slug": "python"}, config)
        ('api::tag.tag', 'slug=python')
    """
    unique_field = config.get_unique_identifier_field(collection)
    if unique_field and data.get(unique_field) is not None:
        return (collection, f"{unique_field}={data[unique_field]}")
    entity_id = data.get("id")
    if isinstance(entity_id, int) and not isinstance(entity_id, bool):
        return (collection, f"id={entity_id}")
    return None


class KeyedLocks:
    """Lazily created ``asyncio.Lock`` per key.

    Serializes lookup-then-write sequences on the same resource (a media hash
    part, a record's natural key) without blocking unrelated keys.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def __call__(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)

    def clear(self) -> None:
        self._locks.clear()


@dataclass
class PendingPatch:
    """Relation left empty to break a cycle, written once its target commits.

    Patches created for the same to-many field share ``ids`` so each one
    writes the full, growing list.
    """

    collection: str
    entity_id: int
    field: str
    multiple: bool
    ids: list[int] = field(default_factory=list)


class ImportRun:
    """Per-invocation state of an import.

    Attributes:
        collection: Target collection of the top-level records
        config: Import configuration
        abort_event: Once set, no further top-level record is started
        media_locks: Locks keyed by media hash part
        write_locks: Locks keyed by record natural key
    """

    def __init__(
        self,
        collection: str,
        config: ImportConfig,
        abort_event: asyncio.Event | None = None,
    ) -> None:
        self.collection = collection
        self.config = config
        self.abort_event = abort_event or asyncio.Event()
        self.media_locks = KeyedLocks()
        self.write_locks = KeyedLocks()
        self._schemas: dict[str, CollectionSchema] = {}
        self._pending: defaultdict[NaturalKey, list[PendingPatch]] = defaultdict(list)

    @property
    def aborted(self) -> bool:
        return self.abort_event.is_set()

    async def get_schema(self, store: EntityStore, collection: str) -> CollectionSchema:
        """Schema of a collection, fetched once per run."""
        schema = self._schemas.get(collection)
        if schema is None:
            schema = await store.get_schema(collection)
            self._schemas[collection] = schema
        return schema

    def defer(self, target: NaturalKey, patch: PendingPatch) -> None:
        logger.debug(
            f"Deferring {patch.collection} #{patch.entity_id}.{patch.field} "
            f"until {target[0]} ({target[1]}) is written"
        )
        self._pending[target].append(patch)

    def pop_patches(self, target: NaturalKey) -> list[PendingPatch]:
        return self._pending.pop(target, [])

    def unresolved_patches(self) -> dict[NaturalKey, list[PendingPatch]]:
        return {k: v for k, v in self._pending.items() if v}

    def close(self) -> None:
        """Release run-scoped resources."""
        for target, patches in self.unresolved_patches().items():
            for patch in patches:
                logger.warning(
                    f"Relation {patch.collection} #{patch.entity_id}.{patch.field} left empty: "
                    f"{target[0]} ({target[1]}) was never written"
                )
        self._pending.clear()
        self._schemas.clear()
        self.media_locks.clear()
        self.write_locks.clear()
