"""Main import orchestration.

This module drives an import run: for each top-level record it resolves
media, resolves relations (importing nested records first), then creates or
updates the entry, collecting one outcome per record.
"""

import asyncio
import logging
from collections.abc import Sequence
from contextlib import nullcontext
from typing import Any

import httpx

from ..exceptions import AuthorizationError, RecordImportError
from ..models.config import ImportConfig
from ..models.enums import FieldKind, FileType, RecordState
from ..models.outcome import ImportOutcome, ImportResult
from ..models.references import StoredEntity, parse_media_reference
from ..models.schema import CollectionSchema
from ..parsers import detect_format, parse_records, verify_format
from ..protocols import Authorizer, EntityStore, MediaStore
from .media_resolver import MediaResolver
from .relation_resolver import DeferredLink, RelationResolver
from .run import ImportRun, NaturalKey, PendingPatch, natural_key

logger = logging.getLogger(__name__)


class _RecordProgress:
    """Tracks the pipeline stage of one top-level record."""

    def __init__(self, index: int, collection: str) -> None:
        self.index = index
        self.collection = collection
        self.state = RecordState.PENDING

    def advance(self, state: RecordState) -> None:
        logger.debug(f"Record {self.index} ({self.collection}): {self.state.value} -> {state.value}")
        self.state = state


class EntryImporter:
    """Import records into a collection of an entity store.

    Collaborators are injected at construction; the importer never looks up
    services on its own.

    Example:
        >>> from strapi_import_export import EntryImporter, ImportConfig
        >>> from strapi_import_export.stores import InMemoryEntityStore, InMemoryMediaStore
        >>>
        >>> entities = InMemoryEntityStore({"api::article.article": {...}})
        >>> importer = EntryImporter(
        ...     entities,
        ...     InMemoryMediaStore(),
        ...     config=ImportConfig(unique_identifier_field="name"),
        ... )
        >>> async with importer:
        ...     result = await importer.import_data(b'[{"name": "a"}]', "api::article.article")
        >>> result.created
        1
    """

    def __init__(
        self,
        entity_store: EntityStore,
        media_store: MediaStore,
        config: ImportConfig | None = None,
        authorizer: Authorizer | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the importer.

        Args:
            entity_store: Schema lookup and entity CRUD
            media_store: Media library lookup and upload
            config: Import settings (defaults from the environment)
            authorizer: Permission check consulted when the caller passes no
                explicit authorization decision
            http_client: Client used to fetch remote media (created and owned
                by the importer when omitted)
        """
        self.entity_store = entity_store
        self.media_store = media_store
        self.config = config or ImportConfig()
        self.authorizer = authorizer

        self._client = http_client or httpx.AsyncClient(timeout=self.config.fetch_timeout)
        self._owns_client = http_client is None

        self.media_resolver = MediaResolver(
            media_store, self._client, fetch_timeout=self.config.fetch_timeout
        )
        self.relation_resolver = RelationResolver(entity_store, self.config, self._import_nested)

    async def __aenter__(self) -> "EntryImporter":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the media HTTP client if the importer created it."""
        if self._owns_client:
            await self._client.aclose()

    # Entry points

    async def import_data(
        self,
        content: bytes | str,
        collection: str,
        *,
        declared_type: str | None = None,
        filename: str | None = None,
        principal: Any = None,
        authorized: bool | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> ImportResult:
        """Classify, parse and import raw JSON or CSV content.

        Args:
            content: Raw input
            collection: Target collection UID
            declared_type: Format tag or MIME type of the input
            filename: Original file name, used to infer the format
            principal: Caller identity handed to the authorizer
            authorized: Authorization decision already taken by the caller
            abort_event: Stops scheduling new records once set

        Returns:
            ImportResult with one outcome per processed record

        Raises:
            AuthorizationError: If the caller may not import into ``collection``
            FormatMismatchError: If the content does not match its format
            MalformedInputError: If the content cannot be parsed
        """
        self._authorize(collection, principal, authorized)

        fmt = detect_format(content, declared_type=declared_type, filename=filename)
        verify_format(content, fmt, trust=self.config.trust_input_format)
        records = parse_records(content, fmt)

        logger.info(f"Importing {len(records)} {fmt.value.upper()} records into {collection}")
        return await self._import(records, collection, abort_event)

    async def import_records(
        self,
        records: Sequence[dict[str, Any]],
        collection: str,
        *,
        principal: Any = None,
        authorized: bool | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> ImportResult:
        """Import already parsed records.

        One record's failure never aborts the batch: it is recorded in that
        record's outcome and the next record proceeds.

        Args:
            records: Records in input order
            collection: Target collection UID
            principal: Caller identity handed to the authorizer
            authorized: Authorization decision already taken by the caller
            abort_event: Stops scheduling new records once set; records in
                flight finish

        Returns:
            ImportResult with outcomes in input order

        Raises:
            AuthorizationError: If the caller may not import into ``collection``
        """
        self._authorize(collection, principal, authorized)
        return await self._import(records, collection, abort_event)

    def _authorize(self, collection: str, principal: Any, authorized: bool | None) -> None:
        if authorized is None:
            authorized = (
                self.authorizer.can_read(collection, principal) if self.authorizer else True
            )
        if not authorized:
            logger.warning(f"Import into {collection} refused for principal {principal!r}")
            raise AuthorizationError(
                f"Not allowed to import into {collection}",
                details={"collection": collection},
            )

    # Run

    async def _import(
        self,
        records: Sequence[dict[str, Any]],
        collection: str,
        abort_event: asyncio.Event | None,
    ) -> ImportResult:
        run = ImportRun(collection, self.config, abort_event)
        outcomes: list[ImportOutcome | None] = [None] * len(records)
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        tasks: list[asyncio.Task[None]] = []

        async def process(idx: int, record: dict[str, Any]) -> None:
            try:
                outcomes[idx] = await self._import_top_level(idx, record, run)
            finally:
                semaphore.release()

        try:
            for idx, record in enumerate(records):
                await semaphore.acquire()
                if run.aborted:
                    semaphore.release()
                    logger.warning(
                        f"Import into {collection} aborted after scheduling {len(tasks)} "
                        f"of {len(records)} records"
                    )
                    break
                tasks.append(asyncio.create_task(process(idx, record)))

            await asyncio.gather(*tasks)
        finally:
            run.close()

        skipped = len(records) - len(tasks)
        result = ImportResult(
            collection=collection,
            outcomes=[o for o in outcomes if o is not None],
            aborted=skipped > 0,
            skipped=skipped,
        )

        logger.info(
            f"Import into {collection} finished: {result.created} created, "
            f"{result.updated} updated, {result.failed} failed, {result.skipped} skipped"
        )
        return result

    async def _import_top_level(
        self, idx: int, record: dict[str, Any], run: ImportRun
    ) -> ImportOutcome:
        progress = _RecordProgress(idx, run.collection)
        try:
            entity, created = await self._import_entry(
                run.collection, record, 0, frozenset(), run, progress
            )
        except RecordImportError as e:
            failed_at = progress.state
            progress.advance(RecordState.FAILED)
            logger.error(
                f"Record {idx} of {run.collection} failed while {failed_at.value}: {e} "
                f"{e.details}"
            )
            return ImportOutcome.failed(idx, e, failed_at)
        except Exception as e:
            failed_at = progress.state
            progress.advance(RecordState.FAILED)
            logger.error(
                f"Record {idx} of {run.collection} failed unexpectedly while {failed_at.value}",
                exc_info=True,
            )
            return ImportOutcome.failed(idx, e, failed_at)

        progress.advance(RecordState.COMMITTED)
        if created:
            return ImportOutcome.created(idx, entity.id)
        return ImportOutcome.updated(idx, entity.id)

    async def _import_nested(
        self,
        collection: str,
        data: dict[str, Any],
        depth: int,
        ancestors: frozenset[NaturalKey],
        run: ImportRun,
    ) -> StoredEntity:
        entity, _ = await self._import_entry(collection, data, depth, ancestors, run)
        return entity

    async def _import_entry(
        self,
        collection: str,
        data: dict[str, Any],
        depth: int,
        ancestors: frozenset[NaturalKey],
        run: ImportRun,
        progress: _RecordProgress | None = None,
    ) -> tuple[StoredEntity, bool]:
        """Resolve and write one record, top-level or nested.

        Returns:
            (written entity, True if it was created)
        """
        schema = await run.get_schema(self.entity_store, collection)
        key = natural_key(collection, data, self.config)
        path = ancestors | {key} if key is not None else ancestors

        if progress:
            progress.advance(RecordState.RESOLVING_MEDIA)
        payload = await self._resolve_media_fields(collection, data, schema, run)

        if progress:
            progress.advance(RecordState.RESOLVING_RELATIONS)
        payload, links = await self.relation_resolver.resolve_record_relations(
            collection, payload, schema, run=run, depth=depth, ancestors=path
        )

        if progress:
            progress.advance(RecordState.WRITING)
        entity, created = await self._write(collection, payload, key, run)

        self._defer_links(collection, entity, links, run)
        if key is not None:
            await self._apply_patches(key, entity, run)

        return entity, created

    async def _resolve_media_fields(
        self,
        collection: str,
        data: dict[str, Any],
        schema: CollectionSchema,
        run: ImportRun,
    ) -> dict[str, Any]:
        payload = dict(data)

        for field_name, value in data.items():
            field_schema = schema.get_field(field_name)
            if field_schema is None or field_schema.kind != FieldKind.MEDIA or value is None:
                continue

            allowed_types = (
                self.config.get_allowed_file_types(collection, field_name)
                or field_schema.allowed_types
                or [FileType.FILES]
            )
            multiple = field_schema.multiple or isinstance(value, list)
            items = value if isinstance(value, list) else [value]

            file_ids: list[int] = []
            for item in items:
                ref = parse_media_reference(item)
                if ref is None:
                    logger.warning(f"Ignoring {collection}.{field_name} value {item!r}")
                    continue
                try:
                    file = await self.media_resolver.resolve(
                        ref, allowed_types, locks=run.media_locks
                    )
                except RecordImportError as e:
                    e.details.setdefault("collection", collection)
                    e.details.setdefault("field", field_name)
                    raise
                if file is None:
                    logger.info(f"No allowed media file for {collection}.{field_name}: {item!r}")
                    continue
                file_ids.append(file.id)

            if multiple:
                payload[field_name] = file_ids
            else:
                payload[field_name] = file_ids[0] if file_ids else None

        return payload

    async def _write(
        self,
        collection: str,
        payload: dict[str, Any],
        key: NaturalKey | None,
        run: ImportRun,
    ) -> tuple[StoredEntity, bool]:
        """Update the entry matching the unique identifier field, else create one."""
        unique_field = self.config.get_unique_identifier_field(collection)
        data = {k: v for k, v in payload.items() if k != "id"}

        async with run.write_locks(key) if key is not None else nullcontext():
            existing: StoredEntity | None = None
            if unique_field and payload.get(unique_field) is not None:
                matches = await self.entity_store.find_many(
                    collection, {unique_field: payload[unique_field]}, limit=1
                )
                existing = matches[0] if matches else None

            if existing is not None:
                entity = await self.entity_store.update(collection, existing.id, data)
                logger.debug(f"Updated {collection} #{entity.id}")
                return entity, False

            entity = await self.entity_store.create(collection, data)
            logger.debug(f"Created {collection} #{entity.id}")
            return entity, True

    @staticmethod
    def _defer_links(
        collection: str,
        entity: StoredEntity,
        links: list[DeferredLink],
        run: ImportRun,
    ) -> None:
        for link in links:
            for target in link.targets:
                run.defer(
                    target,
                    PendingPatch(
                        collection=collection,
                        entity_id=entity.id,
                        field=link.field,
                        multiple=link.multiple,
                        ids=link.ids,
                    ),
                )

    async def _apply_patches(self, key: NaturalKey, entity: StoredEntity, run: ImportRun) -> None:
        """Write relations that were waiting for ``entity`` to exist.

        ``entity`` is already committed, so a rejected patch leaves the
        relation empty and is logged instead of failing the record.
        """
        for patch in run.pop_patches(key):
            patch.ids.append(entity.id)
            value = RelationResolver.build_patch_value(patch.ids, patch.multiple)
            try:
                await self.entity_store.update(
                    patch.collection, patch.entity_id, {patch.field: value}
                )
            except RecordImportError as e:
                logger.error(
                    f"Relation {patch.collection} #{patch.entity_id}.{patch.field} left empty: "
                    f"patch with {key[0]} #{entity.id} failed: {e} {e.details}"
                )
                continue
            logger.debug(
                f"Patched {patch.collection} #{patch.entity_id}.{patch.field} "
                f"with {key[0]} #{entity.id}"
            )
