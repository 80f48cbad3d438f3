"""Relation reference resolution.

Relation fields of an input record may hold ids, unique identifier values or
whole nested records. This module turns each of them into the id of an
entity of the target collection, importing nested records first.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import CyclicReferenceError, RecordImportError, RelationError
from ..models.config import ImportConfig
from ..models.enums import FieldKind
from ..models.references import (
    NestedRecord,
    RelationById,
    RelationByUniqueValue,
    RelationReference,
    StoredEntity,
    parse_relation_reference,
)
from ..models.schema import CollectionSchema
from ..protocols import EntityStore
from .run import ImportRun, NaturalKey, natural_key

logger = logging.getLogger(__name__)

# (collection, data, depth, ancestors, run) -> written entity
NestedImporter = Callable[
    [str, dict[str, Any], int, frozenset[NaturalKey], ImportRun], Awaitable[StoredEntity]
]


@dataclass(frozen=True)
class DeferredRelation:
    """Relation to a record that is still being imported higher up the chain."""

    target: NaturalKey


@dataclass
class DeferredLink:
    """Relation field written empty, to be patched once its targets commit.

    Attributes:
        field: Relation field name
        multiple: Whether the field holds a list of ids
        targets: Natural keys of the records the field waits for
        ids: Ids resolved immediately; patches append to this list
    """

    field: str
    multiple: bool
    targets: list[NaturalKey] = field(default_factory=list)
    ids: list[int] = field(default_factory=list)


class RelationResolver:
    """Resolve relation references against the entity store.

    Nested records are imported through ``import_nested`` (the orchestrator)
    one level deeper than their parent. Beyond ``max_relation_depth`` they are
    kept as plain data. A nested record that is already being imported by one
    of its ancestors closes a cycle: it is either looked up, deferred (written
    empty and patched later) or rejected, depending on ``break_cycles``.
    """

    def __init__(
        self,
        entity_store: EntityStore,
        config: ImportConfig,
        import_nested: NestedImporter,
    ) -> None:
        self.entity_store = entity_store
        self.config = config
        self._import_nested = import_nested

    async def resolve(
        self,
        ref: RelationReference,
        target_collection: str,
        *,
        run: ImportRun,
        depth: int,
        ancestors: frozenset[NaturalKey] = frozenset(),
    ) -> StoredEntity | DeferredRelation | dict[str, Any]:
        """Resolve one reference.

        Args:
            ref: Relation reference
            target_collection: Collection the relation points to
            run: Current import run
            depth: Depth a nested record would be imported at
            ancestors: Natural keys of the records being imported above

        Returns:
            The target entity, a DeferredRelation when a cycle is broken, or
            the raw nested data when ``depth`` exceeds the configured maximum

        Raises:
            RelationError: If an id or unique value matches no entity
            CyclicReferenceError: On a cycle when ``break_cycles`` is off
        """
        if isinstance(ref, RelationById):
            entity = await self.entity_store.find_one(target_collection, ref.id)
            if entity is None:
                raise RelationError(
                    f"No {target_collection} entry with id {ref.id}",
                    details={"target": target_collection, "source": ref.id},
                )
            return entity

        if isinstance(ref, RelationByUniqueValue):
            return await self._find_by_unique_value(target_collection, ref.value)

        return await self._resolve_nested(ref, target_collection, run, depth, ancestors)

    async def _find_by_unique_value(self, collection: str, value: Any) -> StoredEntity:
        unique_field = self.config.get_unique_identifier_field(collection)
        if not unique_field:
            raise RelationError(
                f"Cannot resolve {value!r} in {collection}: no unique identifier field configured",
                details={"target": collection, "source": value},
            )

        matches = await self.entity_store.find_many(collection, {unique_field: value}, limit=1)
        if not matches:
            raise RelationError(
                f"No {collection} entry with {unique_field}={value!r}",
                details={"target": collection, "source": value},
            )
        return matches[0]

    async def _resolve_nested(
        self,
        ref: NestedRecord,
        collection: str,
        run: ImportRun,
        depth: int,
        ancestors: frozenset[NaturalKey],
    ) -> StoredEntity | DeferredRelation | dict[str, Any]:
        if depth > self.config.max_relation_depth:
            logger.debug(
                f"Keeping nested {collection} object as data: depth {depth} exceeds "
                f"{self.config.max_relation_depth}"
            )
            return ref.data

        key = natural_key(collection, ref.data, self.config)
        if key is not None and key in ancestors:
            return await self._break_cycle(key, ref.data)

        return await self._import_nested(collection, ref.data, depth, ancestors, run)

    async def _break_cycle(
        self, key: NaturalKey, data: dict[str, Any]
    ) -> StoredEntity | DeferredRelation:
        collection, label = key
        if not self.config.break_cycles:
            raise CyclicReferenceError(
                f"Cyclic reference to {collection} ({label})",
                details={"target": collection, "source": label},
            )

        existing = await self._find_existing(collection, data)
        if existing is not None:
            logger.debug(f"Cycle on {collection} ({label}) closed by existing entry #{existing.id}")
            return existing

        return DeferredRelation(target=key)

    async def _find_existing(self, collection: str, data: dict[str, Any]) -> StoredEntity | None:
        unique_field = self.config.get_unique_identifier_field(collection)
        if unique_field and data.get(unique_field) is not None:
            matches = await self.entity_store.find_many(
                collection, {unique_field: data[unique_field]}, limit=1
            )
            return matches[0] if matches else None
        if isinstance(data.get("id"), int):
            return await self.entity_store.find_one(collection, data["id"])
        return None

    async def resolve_record_relations(
        self,
        collection: str,
        data: dict[str, Any],
        schema: CollectionSchema,
        *,
        run: ImportRun,
        depth: int,
        ancestors: frozenset[NaturalKey],
    ) -> tuple[dict[str, Any], list[DeferredLink]]:
        """Replace every relation value of a record with target ids.

        Args:
            collection: Collection of the record
            data: Record fields
            schema: Schema of ``collection``
            run: Current import run
            depth: Depth of the record itself (top-level records are 0)
            ancestors: Natural keys of the record and the records above it

        Returns:
            (payload with relation ids, relations deferred to break cycles)
        """
        payload = dict(data)
        links: list[DeferredLink] = []

        for field_name, value in data.items():
            field_schema = schema.get_field(field_name)
            if field_schema is None or field_schema.kind != FieldKind.RELATION:
                continue
            if value is None or not field_schema.target:
                continue

            multiple = field_schema.multiple or isinstance(value, list)
            items = value if isinstance(value, list) else [value]
            resolved: list[Any] = []
            link = DeferredLink(field=field_name, multiple=multiple)

            for item in items:
                ref = parse_relation_reference(item)
                if ref is None:
                    continue
                try:
                    target = await self.resolve(
                        ref,
                        field_schema.target,
                        run=run,
                        depth=depth + 1,
                        ancestors=ancestors,
                    )
                except RecordImportError as e:
                    e.details.setdefault("collection", collection)
                    e.details.setdefault("field", field_name)
                    raise

                if isinstance(target, StoredEntity):
                    resolved.append(target.id)
                    link.ids.append(target.id)
                elif isinstance(target, DeferredRelation):
                    link.targets.append(target.target)
                else:
                    resolved.append(target)

            if multiple:
                payload[field_name] = resolved
            else:
                payload[field_name] = resolved[0] if resolved else None

            if link.targets:
                links.append(link)

        return payload, links

    @staticmethod
    def build_patch_value(ids: list[int], multiple: bool) -> Any:
        """Relation value for a patch write.

        Example:
            >>> RelationResolver.build_patch_value([10, 11], multiple=True)
            [10, 11]
            >>> RelationResolver.build_patch_value([10], multiple=False)
            10
        """
        if multiple:
            return list(ids)
        return ids[-1] if ids else None
