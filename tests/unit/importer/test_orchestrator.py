"""Tests for EntryImporter."""

import asyncio
import json
import logging
from typing import Any

import httpx
import pytest
import respx

from strapi_import_export import (
    AuthorizationError,
    EntryImporter,
    FormatMismatchError,
    ImportConfig,
    MalformedInputError,
    OutcomeStatus,
    RecordState,
)
from strapi_import_export.exceptions import StoreRejectedError
from strapi_import_export.importer import ImportRun
from strapi_import_export.models import StoredEntity
from strapi_import_export.stores import InMemoryEntityStore, InMemoryMediaStore

ARTICLE = "api::article.article"
AUTHOR = "api::author.author"
TAG = "api::tag.tag"

PIC_URL = "https://x/y/pic.png"


class AbortingEntityStore(InMemoryEntityStore):
    """Entity store that sets an abort event after its first create."""

    def __init__(self, schemas: dict, abort_event: asyncio.Event) -> None:
        super().__init__(schemas)
        self.abort_event = abort_event

    async def create(self, collection: str, data: dict[str, Any]) -> StoredEntity:
        entity = await super().create(collection, data)
        self.abort_event.set()
        return entity


class RejectingUpdateStore(InMemoryEntityStore):
    """Entity store that refuses updates to one collection."""

    def __init__(self, schemas: dict, collection: str) -> None:
        super().__init__(schemas)
        self.collection = collection

    async def update(
        self, collection: str, entity_id: int, data: dict[str, Any]
    ) -> StoredEntity:
        if collection == self.collection:
            raise StoreRejectedError(f"{collection} update rejected", status_code=400)
        return await super().update(collection, entity_id, data)


class DenyAll:
    def can_read(self, collection: str, principal: Any) -> bool:
        return False


class TestBatch:
    """Test per-record isolation and ordering."""

    async def test_one_failure_does_not_abort_batch(
        self,
        importer: EntryImporter,
        entity_store: InMemoryEntityStore,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        records = [
            {"name": "a"},
            {"name": "b"},
            {"name": "c", "author": 999},
            {"name": "d"},
            {"name": "e"},
        ]

        with caplog.at_level(logging.ERROR):
            result = await importer.import_records(records, ARTICLE)

        assert [o.index for o in result.outcomes] == [0, 1, 2, 3, 4]
        assert [o.status for o in result.outcomes] == [
            OutcomeStatus.CREATED,
            OutcomeStatus.CREATED,
            OutcomeStatus.FAILED,
            OutcomeStatus.CREATED,
            OutcomeStatus.CREATED,
        ]
        failure = result.outcomes[2]
        assert failure.error_type == "RelationError"
        assert failure.failed_at == RecordState.RESOLVING_RELATIONS
        assert "999" in (failure.reason or "")
        assert (result.created, result.failed, result.aborted) == (4, 1, False)
        assert len(entity_store.entries(ARTICLE)) == 4
        assert "Record 2 of api::article.article failed" in caplog.text

    async def test_unknown_field_rejected(self, importer: EntryImporter) -> None:
        result = await importer.import_records([{"name": "a", "colour": "red"}], ARTICLE)

        assert result.outcomes[0].status == OutcomeStatus.FAILED
        assert "colour" in (result.outcomes[0].reason or "")

    async def test_update_by_unique_field(
        self, importer: EntryImporter, entity_store: InMemoryEntityStore
    ) -> None:
        """Test re-importing a record updates the entry it matches."""
        first = await importer.import_records([{"name": "a", "body": "v1"}], ARTICLE)
        second = await importer.import_records([{"name": "a", "body": "v2"}], ARTICLE)

        assert first.outcomes[0].status == OutcomeStatus.CREATED
        assert second.outcomes[0].status == OutcomeStatus.UPDATED
        assert second.outcomes[0].entity_id == first.outcomes[0].entity_id
        entries = entity_store.entries(ARTICLE)
        assert len(entries) == 1
        assert entries[0].data["body"] == "v2"

    async def test_without_unique_field_always_creates(
        self,
        entity_store: InMemoryEntityStore,
        media_store: InMemoryMediaStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        importer = EntryImporter(entity_store, media_store, ImportConfig(), http_client=http_client)

        await importer.import_records([{"name": "a"}], ARTICLE)
        result = await importer.import_records([{"name": "a"}], ARTICLE)

        assert result.created == 1
        assert len(entity_store.entries(ARTICLE)) == 2

    async def test_input_id_not_written(
        self, importer: EntryImporter, entity_store: InMemoryEntityStore
    ) -> None:
        result = await importer.import_records([{"id": 99, "name": "a"}], ARTICLE)

        assert result.outcomes[0].entity_id == 1
        assert "id" not in entity_store.entries(ARTICLE)[0].data

    async def test_concurrent_outcomes_keep_input_order(
        self,
        entity_store: InMemoryEntityStore,
        media_store: InMemoryMediaStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        config = ImportConfig(unique_identifier_field="name", max_concurrency=4)
        importer = EntryImporter(entity_store, media_store, config, http_client=http_client)
        records = [{"name": f"a{i}"} if i != 6 else {"body": "x"} for i in range(10)]

        result = await importer.import_records(records, ARTICLE)

        assert [o.index for o in result.outcomes] == list(range(10))
        assert result.created == 9
        assert result.outcomes[6].status == OutcomeStatus.FAILED

    async def test_shared_nested_record_written_once(
        self,
        entity_store: InMemoryEntityStore,
        media_store: InMemoryMediaStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        """Test concurrent records referencing the same nested record share one entry."""
        config = ImportConfig(unique_identifier_field="name", max_concurrency=3)
        importer = EntryImporter(entity_store, media_store, config, http_client=http_client)
        records = [{"name": f"post-{i}", "author": {"name": "Jane"}} for i in range(3)]

        result = await importer.import_records(records, ARTICLE)

        authors = entity_store.entries(AUTHOR)
        assert result.created == 3
        assert len(authors) == 1
        assert {e.data["author"] for e in entity_store.entries(ARTICLE)} == {authors[0].id}


class TestImportData:
    """Test raw input handling."""

    async def test_json_input(self, importer: EntryImporter) -> None:
        content = json.dumps([{"name": "a"}, {"name": "b"}]).encode()

        result = await importer.import_data(content, ARTICLE, declared_type="application/json")

        assert result.created == 2

    async def test_csv_input_with_nested_columns(
        self, importer: EntryImporter, entity_store: InMemoryEntityStore
    ) -> None:
        content = b"name,author.name,tags,tags\na,Jane,,\nb,Jane,,\n"

        result = await importer.import_data(content, ARTICLE, filename="articles.csv")

        assert result.created == 2
        assert len(entity_store.entries(AUTHOR)) == 1
        assert entity_store.entries(ARTICLE)[0].data["tags"] == []

    async def test_format_mismatch_aborts_before_writes(
        self, importer: EntryImporter, entity_store: InMemoryEntityStore
    ) -> None:
        with pytest.raises(FormatMismatchError):
            await importer.import_data(b"name,body\na,b\n", ARTICLE, declared_type="json")

        assert entity_store.operations == []

    async def test_trusted_format_reaches_parser(
        self,
        entity_store: InMemoryEntityStore,
        media_store: InMemoryMediaStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        """Test trusted input skips verification but still fails parsing."""
        config = ImportConfig(trust_input_format=True)
        importer = EntryImporter(entity_store, media_store, config, http_client=http_client)

        with pytest.raises(MalformedInputError):
            await importer.import_data(b"name,body\na,b\n", ARTICLE, declared_type="json")

        assert entity_store.operations == []


class TestAuthorization:
    """Test the permission check performed before any work."""

    async def test_explicit_refusal(
        self, importer: EntryImporter, entity_store: InMemoryEntityStore
    ) -> None:
        with pytest.raises(AuthorizationError, match="api::article.article"):
            await importer.import_records([{"name": "a"}], ARTICLE, authorized=False)

        assert entity_store.operations == []

    async def test_authorizer_refusal(
        self,
        entity_store: InMemoryEntityStore,
        media_store: InMemoryMediaStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        importer = EntryImporter(
            entity_store, media_store, authorizer=DenyAll(), http_client=http_client
        )

        with pytest.raises(AuthorizationError):
            await importer.import_data(b'[{"name": "a"}]', ARTICLE, principal="editor")

        assert entity_store.operations == []

    async def test_explicit_decision_wins(
        self,
        entity_store: InMemoryEntityStore,
        media_store: InMemoryMediaStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        importer = EntryImporter(
            entity_store, media_store, authorizer=DenyAll(), http_client=http_client
        )

        result = await importer.import_records([{"name": "a"}], ARTICLE, authorized=True)

        assert result.created == 1


class TestMedia:
    """Test media fields end to end."""

    @respx.mock
    async def test_cover_url_uploaded_once(
        self,
        importer: EntryImporter,
        entity_store: InMemoryEntityStore,
        media_store: InMemoryMediaStore,
    ) -> None:
        route = respx.get(PIC_URL).mock(return_value=httpx.Response(200, content=b"png"))
        records = [{"name": "a", "cover": PIC_URL}, {"name": "b", "cover": {"url": PIC_URL}}]

        result = await importer.import_records(records, ARTICLE)

        assert result.created == 2
        assert route.call_count == 1
        assert len(media_store.files) == 1
        file = media_store.files[0]
        assert file.hash.startswith("y-pic_")
        assert [e.data["cover"] for e in entity_store.entries(ARTICLE)] == [file.id, file.id]

    @respx.mock
    async def test_media_locks_scoped_to_run(
        self, importer: EntryImporter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test hash-part locks live on the run and are released when it closes."""
        respx.get(PIC_URL).mock(return_value=httpx.Response(200, content=b"png"))
        lock_counts: list[tuple[int, int]] = []
        original_close = ImportRun.close

        def close(run: ImportRun) -> None:
            before = len(run.media_locks)
            original_close(run)
            lock_counts.append((before, len(run.media_locks)))

        monkeypatch.setattr(ImportRun, "close", close)

        result = await importer.import_records([{"name": "a", "cover": {"url": PIC_URL}}], ARTICLE)

        assert result.created == 1
        assert lock_counts == [(1, 0)]
        assert len(importer.media_resolver._default_locks) == 0

    @respx.mock
    async def test_gallery_mixes_ids_and_urls(
        self,
        importer: EntryImporter,
        entity_store: InMemoryEntityStore,
        media_store: InMemoryMediaStore,
    ) -> None:
        respx.get("https://x/doc.pdf").mock(return_value=httpx.Response(200, content=b"%PDF"))
        existing = media_store.add_file("clip.mp4")

        await importer.import_records(
            [{"name": "a", "gallery": [existing.id, "https://x/doc.pdf", 404]}], ARTICLE
        )

        gallery = entity_store.entries(ARTICLE)[0].data["gallery"]
        assert gallery[0] == existing.id
        assert len(gallery) == 2

    async def test_disallowed_media_left_empty(
        self, importer: EntryImporter, entity_store: InMemoryEntityStore
    ) -> None:
        """Test a URL with a disallowed extension is never fetched and leaves the field empty."""
        with respx.mock(assert_all_called=False) as mock:
            route = mock.get("https://x/tool.exe").mock(return_value=httpx.Response(200))

            result = await importer.import_records(
                [{"name": "a", "cover": "https://x/tool.exe"}], ARTICLE
            )

        assert result.created == 1
        assert not route.called
        assert entity_store.entries(ARTICLE)[0].data["cover"] is None

    async def test_configured_allow_list_overrides_schema(
        self,
        entity_store: InMemoryEntityStore,
        media_store: InMemoryMediaStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        config = ImportConfig(allowed_file_types={f"{ARTICLE}.cover": ["videos"]})
        importer = EntryImporter(entity_store, media_store, config, http_client=http_client)
        clip = media_store.add_file("clip.mp4")

        await importer.import_records([{"name": "a", "cover": clip.id}], ARTICLE)

        assert entity_store.entries(ARTICLE)[0].data["cover"] == clip.id

    @respx.mock
    async def test_fetch_failure_fails_record_only(
        self, importer: EntryImporter, entity_store: InMemoryEntityStore
    ) -> None:
        respx.get(PIC_URL).mock(return_value=httpx.Response(500))

        result = await importer.import_records(
            [{"name": "a", "cover": PIC_URL}, {"name": "b"}], ARTICLE
        )

        failure = result.outcomes[0]
        assert failure.status == OutcomeStatus.FAILED
        assert failure.error_type == "FetchError"
        assert failure.failed_at == RecordState.RESOLVING_MEDIA
        assert result.outcomes[1].status == OutcomeStatus.CREATED
        assert [e.data["name"] for e in entity_store.entries(ARTICLE)] == ["b"]


class TestRelations:
    """Test relation fields end to end."""

    async def test_nested_record_written_before_parent(
        self, importer: EntryImporter, entity_store: InMemoryEntityStore
    ) -> None:
        """Test nested records are written first and stay written if the parent fails."""
        result = await importer.import_records(
            [{"name": "Post", "author": {"name": "Jane"}, "tags": ["python"]}],
            ARTICLE,
        )

        assert result.outcomes[0].status == OutcomeStatus.FAILED
        assert result.outcomes[0].error_type == "RelationError"
        assert entity_store.entries(ARTICLE) == []

        await entity_store.create(TAG, {"name": "python"})
        result = await importer.import_records(
            [{"name": "Post", "author": {"name": "Jane"}, "tags": ["python"]}],
            ARTICLE,
        )

        jane = entity_store.entries(AUTHOR)[0]
        post = entity_store.entries(ARTICLE)[0]
        assert result.outcomes[0].status == OutcomeStatus.CREATED
        assert post.data["author"] == jane.id
        assert post.data["tags"] == [entity_store.entries(TAG)[0].id]
        assert entity_store.operations[-2:] == [
            ("update", AUTHOR, jane.id),
            ("create", ARTICLE, post.id),
        ]

    async def test_cycle_written_in_two_phases(
        self, importer: EntryImporter, entity_store: InMemoryEntityStore
    ) -> None:
        """Test a cycle is written empty first, then patched once the target exists."""
        record = {"name": "Post", "author": {"name": "Jane", "favorite": {"name": "Post"}}}

        result = await importer.import_records([record], ARTICLE)

        post = entity_store.entries(ARTICLE)[0]
        jane = entity_store.entries(AUTHOR)[0]
        assert result.outcomes[0].status == OutcomeStatus.CREATED
        assert post.data["author"] == jane.id
        assert jane.data["favorite"] == post.id
        assert entity_store.operations == [
            ("create", AUTHOR, jane.id),
            ("create", ARTICLE, post.id),
            ("update", AUTHOR, jane.id),
        ]

    async def test_rejected_cycle_patch_keeps_outcome(
        self,
        schemas: dict,
        media_store: InMemoryMediaStore,
        import_config: ImportConfig,
        http_client: httpx.AsyncClient,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test a refused patch leaves the relation empty without failing the written record."""
        entity_store = RejectingUpdateStore(schemas, AUTHOR)
        importer = EntryImporter(entity_store, media_store, import_config, http_client=http_client)
        record = {"name": "Post", "author": {"name": "Jane", "favorite": {"name": "Post"}}}

        result = await importer.import_records([record], ARTICLE)

        post = entity_store.entries(ARTICLE)[0]
        jane = entity_store.entries(AUTHOR)[0]
        assert result.outcomes[0].status == OutcomeStatus.CREATED
        assert result.outcomes[0].entity_id == post.id
        assert post.data["author"] == jane.id
        assert jane.data["favorite"] is None
        assert f"{AUTHOR} #{jane.id}.favorite left empty" in caplog.text

    async def test_cycle_rejected_when_not_breaking(
        self,
        entity_store: InMemoryEntityStore,
        media_store: InMemoryMediaStore,
        http_client: httpx.AsyncClient,
    ) -> None:
        config = ImportConfig(unique_identifier_field="name", break_cycles=False)
        importer = EntryImporter(entity_store, media_store, config, http_client=http_client)
        record = {"name": "Post", "author": {"name": "Jane", "favorite": {"name": "Post"}}}

        result = await importer.import_records([record], ARTICLE)

        assert result.outcomes[0].error_type == "CyclicReferenceError"
        assert result.outcomes[0].failed_at == RecordState.RESOLVING_RELATIONS
        assert entity_store.operations == []

    async def test_depth_limit(
        self, importer: EntryImporter, entity_store: InMemoryEntityStore
    ) -> None:
        """Test nested records past the maximum depth are kept as data."""
        record: dict[str, Any] = {"name": "t7"}
        for level in range(6, -1, -1):
            record = {"name": f"t{level}", "parent": record}

        result = await importer.import_records([record], TAG)

        tags = {e.data["name"]: e for e in entity_store.entries(TAG)}
        assert result.created == 1
        assert sorted(tags) == ["t0", "t1", "t2", "t3", "t4", "t5"]
        assert tags["t4"].data["parent"] == tags["t5"].id
        assert tags["t5"].data["parent"] == {"name": "t6", "parent": {"name": "t7"}}


class TestAbort:
    """Test cancellation through the abort event."""

    async def test_already_set(self, importer: EntryImporter) -> None:
        event = asyncio.Event()
        event.set()

        result = await importer.import_records(
            [{"name": "a"}, {"name": "b"}], ARTICLE, abort_event=event
        )

        assert result.outcomes == []
        assert result.skipped == 2
        assert result.aborted is True
        assert result.success is False

    async def test_set_during_run(
        self,
        schemas: dict,
        media_store: InMemoryMediaStore,
        import_config: ImportConfig,
        http_client: httpx.AsyncClient,
    ) -> None:
        """Test records in flight finish and later records are not started."""
        event = asyncio.Event()
        entity_store = AbortingEntityStore(schemas, event)
        importer = EntryImporter(entity_store, media_store, import_config, http_client=http_client)

        result = await importer.import_records(
            [{"name": "a"}, {"name": "b"}, {"name": "c"}], ARTICLE, abort_event=event
        )

        assert [o.index for o in result.outcomes] == [0]
        assert result.outcomes[0].status == OutcomeStatus.CREATED
        assert result.skipped == 2
        assert result.aborted is True


async def test_owned_http_client_closed(
    entity_store: InMemoryEntityStore, media_store: InMemoryMediaStore
) -> None:
    async with EntryImporter(entity_store, media_store) as importer:
        client = importer._client

    assert client.is_closed


async def test_injected_http_client_left_open(
    entity_store: InMemoryEntityStore,
    media_store: InMemoryMediaStore,
    http_client: httpx.AsyncClient,
) -> None:
    async with EntryImporter(entity_store, media_store, http_client=http_client):
        pass

    assert not http_client.is_closed
