"""Unit tests for IngestionService.

The store is a real SQLite file and the blob store is a temp directory; the
provider is the in-memory FakeProvider so embedding calls can be inspected.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from virtuai.models.document import Document, DocumentStatus, IngestionMode
from virtuai.models.tenant import Credential, TenantContext
from virtuai.providers.blob.local_blob_store import LocalBlobStore
from virtuai.providers.extraction.text_extractor import DocumentTextExtractor
from virtuai.providers.store.sqlite_document_store import SQLiteDocumentStore
from virtuai.services.ingestion_service import IngestionService
from virtuai.services.segmenter import Segmenter
from virtuai.utils.errors import (
    EmptyContentError,
    InvalidCredentialError,
    MissingCredentialError,
    NotFoundError,
    RateLimitedError,
    TooManyFragmentsError,
)
from tests.conftest import FakeProvider, make_settings

TENANT = TenantContext(tenant_id="t1")
TEXT = "refund policy\n\nshipping times\n\nwarranty terms"


def _service(store, tmp_path: Path, provider: FakeProvider, **overrides) -> IngestionService:
    settings = make_settings(
        tmp_path,
        paragraph_fragment_chars=overrides.pop("paragraph_fragment_chars", 20),
        fixed_fragment_chars=overrides.pop("fixed_fragment_chars", 20),
        **overrides,
    )
    return IngestionService(
        store=store,
        blob_store=LocalBlobStore(root=tmp_path / "blobs"),
        extractor=DocumentTextExtractor(),
        provider=provider,
        segmenter=Segmenter.from_settings(settings),
        settings=settings,
    )


async def _seed(store: SQLiteDocumentStore, content: str | None = TEXT, **kwargs) -> Document:
    tenant = kwargs.pop("tenant", "t1")
    agent = kwargs.pop("agent", "a1")
    if await store.get_agent(agent) is None:
        await store.create_agent(tenant, name="Helper", agent_id=agent)
    await store.set_credential(tenant, kwargs.pop("api_key", f"sk-{tenant}-key-0000000000"))
    return await store.create_document(tenant, agent, content=content, **kwargs)


async def _status(store: SQLiteDocumentStore, document: Document) -> Document:
    return await store.get_document(document.tenant_id, document.agent_id, document.document_id)


# ======================================================================
# Happy paths
# ======================================================================


class TestEmbedMode:
    @pytest.mark.asyncio
    async def test_attached_text_is_segmented_and_committed(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store)
        service = _service(store, tmp_path, fake_provider)

        result = await service.ingest_document(TENANT, "a1", document.document_id, IngestionMode.EMBED)

        assert result.fragment_count == 3
        assert result.status is DocumentStatus.PROCESSED
        assert result.mode is IngestionMode.EMBED
        assert result.truncated is False
        fragments = await store.list_fragments(document.document_id)
        assert [f.content for f in fragments] == ["refund policy", "shipping times", "warranty terms"]
        assert all(f.tenant_id == "t1" and f.agent_id == "a1" for f in fragments)
        assert (await _status(store, document)).status is DocumentStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_reingest_is_idempotent(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store)
        service = _service(store, tmp_path, fake_provider)

        first = await service.ingest_document(TENANT, "a1", document.document_id)
        second = await service.ingest_document(TENANT, "a1", document.document_id)

        assert first.fragment_count == second.fragment_count == 3
        fragments = await store.list_fragments(document.document_id)
        assert [f.index for f in fragments] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_embeddings_use_the_tenant_key(self, store, tmp_path, fake_provider) -> None:
        doc_one = await _seed(store, tenant="t1", agent="a1", api_key="sk-tenant-one-1111111")
        doc_two = await _seed(store, tenant="t2", agent="a2", api_key="sk-tenant-two-2222222")
        service = _service(store, tmp_path, fake_provider)

        await service.ingest_document(TenantContext(tenant_id="t1"), "a1", doc_one.document_id)
        await service.ingest_document(TenantContext(tenant_id="t2"), "a2", doc_two.document_id)

        keys = [key for key, _ in fake_provider.embed_calls]
        assert keys == ["sk-tenant-one-1111111"] * 3 + ["sk-tenant-two-2222222"] * 3

    @pytest.mark.asyncio
    async def test_long_text_is_truncated_and_persisted(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store, content="word " * 40)
        service = _service(store, tmp_path, fake_provider, max_document_chars=50, paragraph_fragment_chars=100)

        result = await service.ingest_document(TENANT, "a1", document.document_id)

        assert result.truncated is True
        assert len((await _status(store, document)).content) == 50

    @pytest.mark.asyncio
    async def test_concurrent_embedding_preserves_order(self, store, tmp_path) -> None:
        class _SlowFirst(FakeProvider):
            async def embed(self, credential: Credential, text: str) -> list[float]:
                if text.startswith("refund"):
                    await asyncio.sleep(0.02)
                return await super().embed(credential, text)

        document = await _seed(store)
        service = _service(store, tmp_path, _SlowFirst(), embed_concurrency=3)

        await service.ingest_document(TENANT, "a1", document.document_id)

        fragments = await store.list_fragments(document.document_id)
        assert [f.content for f in fragments] == ["refund policy", "shipping times", "warranty terms"]
        assert fragments[0].embedding[0] == 1.0


class TestProcessMode:
    @pytest.mark.asyncio
    async def test_extracts_uploaded_file_with_fixed_profile(self, store, tmp_path, fake_provider) -> None:
        blobs = LocalBlobStore(root=tmp_path / "blobs")
        await blobs.upload("t1/a1/notes.txt", b"refund   policy\n\nshipping\ttimes")
        document = await _seed(store, content=None, storage_locator="t1/a1/notes.txt")
        service = _service(store, tmp_path, fake_provider, fixed_fragment_chars=100)

        result = await service.ingest_document(TENANT, "a1", document.document_id, IngestionMode.PROCESS)

        assert result.fragment_count == 1
        assert result.title == "Untitled document"
        fragments = await store.list_fragments(document.document_id)
        assert fragments[0].content == "refund policy shipping times"
        stored = await _status(store, document)
        assert stored.content == "refund   policy\n\nshipping\ttimes"
        assert stored.title == "Untitled document"

    @pytest.mark.asyncio
    async def test_process_ignores_attached_text(self, store, tmp_path, fake_provider) -> None:
        blobs = LocalBlobStore(root=tmp_path / "blobs")
        await blobs.upload("t1/a1/fresh.txt", b"fresh upload")
        document = await _seed(store, content="stale text", title="Manual", storage_locator="t1/a1/fresh.txt")
        service = _service(store, tmp_path, fake_provider)

        result = await service.ingest_document(TENANT, "a1", document.document_id, IngestionMode.PROCESS)

        assert result.title == "Manual"
        assert [f.content for f in await store.list_fragments(document.document_id)] == ["fresh upload"]

    @pytest.mark.asyncio
    async def test_embed_without_text_falls_back_to_extraction(self, store, tmp_path, fake_provider) -> None:
        blobs = LocalBlobStore(root=tmp_path / "blobs")
        await blobs.upload("t1/a1/doc.txt", b"only in the file")
        document = await _seed(store, content=None, storage_locator="t1/a1/doc.txt")
        service = _service(store, tmp_path, fake_provider)

        result = await service.ingest_document(TENANT, "a1", document.document_id, IngestionMode.EMBED)

        assert result.fragment_count == 1
        assert (await _status(store, document)).content == "only in the file"


# ======================================================================
# Failure paths
# ======================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_unknown_document_leaves_nothing_changed(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store)
        service = _service(store, tmp_path, fake_provider)

        with pytest.raises(NotFoundError):
            await service.ingest_document(TENANT, "a1", "missing-doc")
        with pytest.raises(NotFoundError):
            await service.ingest_document(TenantContext(tenant_id="t2"), "a1", document.document_id)

        assert (await _status(store, document)).status is DocumentStatus.UPLOADED

    @pytest.mark.asyncio
    async def test_missing_credential(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store)
        await store.delete_credential("t1")
        service = _service(store, tmp_path, fake_provider)

        with pytest.raises(MissingCredentialError):
            await service.ingest_document(TENANT, "a1", document.document_id)

        stored = await _status(store, document)
        assert stored.status is DocumentStatus.ERROR
        assert stored.error_reason == "Missing OpenAI key in Settings. Please save your OpenAI key first."
        assert fake_provider.embed_calls == []

    @pytest.mark.asyncio
    async def test_fragment_ceiling_rejects_before_embedding(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store)
        service = _service(store, tmp_path, fake_provider, max_fragments_per_document=2)

        with pytest.raises(TooManyFragmentsError) as exc_info:
            await service.ingest_document(TENANT, "a1", document.document_id)

        assert exc_info.value.count == 3
        assert fake_provider.embed_calls == []
        stored = await _status(store, document)
        assert stored.status is DocumentStatus.ERROR
        assert stored.error_reason == "Too many chunks (3). Please upload a smaller document."

    @pytest.mark.asyncio
    async def test_embedding_failure_commits_nothing(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store)
        service = _service(store, tmp_path, fake_provider)
        await service.ingest_document(TENANT, "a1", document.document_id)

        fake_provider.fail_on = {"shipping": RateLimitedError(message="insufficient_quota")}
        with pytest.raises(RateLimitedError):
            await service.ingest_document(TENANT, "a1", document.document_id)

        stored = await _status(store, document)
        assert stored.status is DocumentStatus.ERROR
        assert "no quota/billing" in stored.error_reason
        assert await store.search_fragments("t1", "a1", [1.0] * 7, top_k=10) == []

    @pytest.mark.asyncio
    async def test_concurrent_failure_reports_lowest_index(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store)
        fake_provider.fail_on = {
            "warranty": RateLimitedError(),
            "shipping": InvalidCredentialError(),
        }
        service = _service(store, tmp_path, fake_provider, embed_concurrency=3)

        with pytest.raises(InvalidCredentialError):
            await service.ingest_document(TENANT, "a1", document.document_id)
        assert await store.list_fragments(document.document_id) == []

    @pytest.mark.asyncio
    async def test_no_text_anywhere_is_empty_content(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store, content=None)
        service = _service(store, tmp_path, fake_provider)

        with pytest.raises(EmptyContentError):
            await service.ingest_document(TENANT, "a1", document.document_id)
        assert (await _status(store, document)).status is DocumentStatus.ERROR

    @pytest.mark.asyncio
    async def test_missing_blob_is_not_found_and_marks_error(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store, content=None, storage_locator="t1/a1/gone.pdf")
        service = _service(store, tmp_path, fake_provider)

        with pytest.raises(NotFoundError):
            await service.ingest_document(TENANT, "a1", document.document_id, IngestionMode.PROCESS)
        assert (await _status(store, document)).status is DocumentStatus.ERROR

    @pytest.mark.asyncio
    async def test_error_document_can_be_retried(self, store, tmp_path, fake_provider) -> None:
        document = await _seed(store)
        await store.delete_credential("t1")
        service = _service(store, tmp_path, fake_provider)
        with pytest.raises(MissingCredentialError):
            await service.ingest_document(TENANT, "a1", document.document_id)

        await store.set_credential("t1", "sk-t1-key-restored-000")
        result = await service.ingest_document(TENANT, "a1", document.document_id)

        assert result.status is DocumentStatus.PROCESSED
        stored = await _status(store, document)
        assert stored.status is DocumentStatus.PROCESSED
        assert stored.error_reason is None

    @pytest.mark.asyncio
    async def test_embed_timeout_is_provider_error(self, store, tmp_path) -> None:
        from virtuai.utils.errors import ProviderError

        class _Hangs(FakeProvider):
            async def embed(self, credential: Credential, text: str) -> list[float]:
                await asyncio.sleep(5)
                return [1.0]

        document = await _seed(store)
        service = _service(
            store,
            tmp_path,
            _Hangs(),
            provider_timeout_seconds=0.01,
            provider_connect_timeout_seconds=0.01,
        )
        with pytest.raises(ProviderError, match="timed out"):
            await service.ingest_document(TENANT, "a1", document.document_id)

    @pytest.mark.asyncio
    async def test_status_write_failure_does_not_mask_original_error(self, tmp_path, fake_provider) -> None:
        document = Document(document_id="d1", tenant_id="t1", agent_id="a1", content=TEXT)
        store = MagicMock(spec=SQLiteDocumentStore)
        store.get_document = AsyncMock(return_value=document)
        store.get_credential = AsyncMock(return_value=None)
        store.set_document_status = AsyncMock(side_effect=[None, RuntimeError("db locked")])
        service = _service(store, tmp_path, fake_provider)

        with pytest.raises(MissingCredentialError):
            await service.ingest_document(TENANT, "a1", "d1")
        assert store.set_document_status.await_count == 2


# ======================================================================
# Overlapping runs on one document
# ======================================================================


class _GatedDownloads(LocalBlobStore):
    """Blocks every download until ``release`` is set."""

    def __init__(self, root: Path) -> None:
        super().__init__(root=root)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def download(self, locator: str) -> bytes:
        self.entered.set()
        await self.release.wait()
        return await super().download(locator)


class _BlocksFirstEmbed(FakeProvider):
    """Holds the first embed call until ``release``; later calls run freely."""

    def __init__(self, then_raise: Exception | None = None) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.then_raise = then_raise
        self.armed = True

    async def embed(self, credential: Credential, text: str) -> list[float]:
        if self.armed:
            self.armed = False
            self.entered.set()
            await self.release.wait()
            if self.then_raise is not None:
                raise self.then_raise
        return await super().embed(credential, text)


class TestOverlappingRuns:
    @pytest.mark.asyncio
    async def test_late_run_keeps_the_committed_fragments(self, store, tmp_path, fake_provider) -> None:
        blobs = _GatedDownloads(tmp_path / "blobs")
        await blobs.upload("t1/a1/late.txt", b"holiday hours")
        document = await _seed(store, storage_locator="t1/a1/late.txt")
        settings = make_settings(tmp_path, paragraph_fragment_chars=20, fixed_fragment_chars=20)
        slow = IngestionService(
            store=store,
            blob_store=blobs,
            extractor=DocumentTextExtractor(),
            provider=fake_provider,
            segmenter=Segmenter.from_settings(settings),
            settings=settings,
        )
        fast = _service(store, tmp_path, fake_provider)

        slow_run = asyncio.create_task(
            slow.ingest_document(TENANT, "a1", document.document_id, IngestionMode.PROCESS)
        )
        await blobs.entered.wait()
        fast_result = await fast.ingest_document(TENANT, "a1", document.document_id, IngestionMode.EMBED)
        blobs.release.set()
        slow_result = await slow_run

        assert fast_result.fragment_count == 3
        assert fast_result.superseded is False
        assert slow_result.superseded is True
        assert slow_result.fragment_count == 3
        assert (await _status(store, document)).status is DocumentStatus.PROCESSED
        fragments = await store.list_fragments(document.document_id)
        assert [f.content for f in fragments] == ["refund policy", "shipping times", "warranty terms"]
        matches = await store.search_fragments("t1", "a1", [1.0, 0, 0, 0, 0, 0, 0.1], top_k=5)
        assert matches[0].content == "refund policy"

    @pytest.mark.asyncio
    async def test_run_held_in_embedding_loses_to_faster_commit(self, store, tmp_path) -> None:
        provider = _BlocksFirstEmbed()
        document = await _seed(store)
        service = _service(store, tmp_path, provider)
        provider.armed = False
        await service.ingest_document(TENANT, "a1", document.document_id)
        provider.armed = True

        slow_run = asyncio.create_task(service.ingest_document(TENANT, "a1", document.document_id))
        await provider.entered.wait()
        fast_result = await service.ingest_document(TENANT, "a1", document.document_id)
        provider.release.set()
        slow_result = await slow_run

        assert fast_result.superseded is False
        assert slow_result.superseded is True
        assert [f.index for f in await store.list_fragments(document.document_id)] == [0, 1, 2]
        assert (await _status(store, document)).status is DocumentStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_late_failure_does_not_clobber_committed_run(self, store, tmp_path) -> None:
        provider = _BlocksFirstEmbed(then_raise=RateLimitedError(message="insufficient_quota"))
        document = await _seed(store)
        service = _service(store, tmp_path, provider)

        slow_run = asyncio.create_task(service.ingest_document(TENANT, "a1", document.document_id))
        await provider.entered.wait()
        await service.ingest_document(TENANT, "a1", document.document_id)
        provider.release.set()

        with pytest.raises(RateLimitedError):
            await slow_run

        stored = await _status(store, document)
        assert stored.status is DocumentStatus.PROCESSED
        assert stored.error_reason is None
        assert len(await store.list_fragments(document.document_id)) == 3
