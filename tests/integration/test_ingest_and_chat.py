"""End-to-end flow through KnowledgeCore: upload, ingest, retrieve, answer.

Two tenants share one database to check that fragments, credentials and
transcripts never cross tenant boundaries.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import fitz
import pytest

from virtuai.models.chat import Grounding
from virtuai.models.document import DocumentStatus, IngestionMode
from virtuai.models.results import ErrorPayload, IngestionResult
from virtuai.models.tenant import Credential, TenantContext
from virtuai.providers.blob.local_blob_store import LocalBlobStore
from virtuai.providers.extraction.text_extractor import DocumentTextExtractor
from virtuai.providers.llm.openai_provider_client import OpenAIProviderClient
from virtuai.providers.store.sqlite_document_store import SQLiteDocumentStore
from virtuai.services.chat_service import CONTEXT_PREAMBLE, ChatService
from virtuai.services.ingestion_service import IngestionService
from virtuai.services.knowledge_core import KnowledgeCore
from virtuai.services.messages import Audience
from virtuai.services.segmenter import Segmenter
from virtuai.utils.errors import ErrorKind
from tests.conftest import VOCABULARY, FakeProvider, make_settings


def _pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        doc.new_page().insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
async def world(tmp_path: Path):
    """Core wired to real SQLite and blob storage with two tenants."""
    settings = make_settings(tmp_path, fixed_fragment_chars=60, retrieval_top_k=2)
    store = SQLiteDocumentStore(db_path=settings.database_path)
    await store.initialize()
    blobs = LocalBlobStore(root=settings.blob_root)
    provider = FakeProvider(reply="Grounded reply.")

    core = KnowledgeCore(
        ingestion=IngestionService(
            store=store,
            blob_store=blobs,
            extractor=DocumentTextExtractor(),
            provider=provider,
            segmenter=Segmenter.from_settings(settings),
            settings=settings,
        ),
        chat=ChatService(store=store, provider=provider, settings=settings),
    )

    for tenant, agent in (("shop", "shop-bot"), ("clinic", "clinic-bot")):
        await store.create_agent(tenant, name=agent, agent_id=agent)
        await store.set_credential(tenant, f"sk-{tenant}-secret-000000")

    return core, store, blobs, provider


async def _upload(store, blobs, tenant: str, agent: str, name: str, data: bytes, title=None):
    locator = f"{tenant}/{agent}/{name}"
    await blobs.upload(locator, data)
    return await store.create_document(tenant, agent, title=title, storage_locator=locator)


@pytest.mark.asyncio
async def test_pdf_ingest_then_grounded_chat(world) -> None:
    core, store, blobs, provider = world
    document = await _upload(
        store,
        blobs,
        "shop",
        "shop-bot",
        "policies.pdf",
        _pdf("Refund requests are honoured for 30 days.", "Shipping is free on orders over 50."),
    )

    result = await core.ingest_document(
        TenantContext(tenant_id="shop"), "shop-bot", document.document_id, IngestionMode.PROCESS
    )
    assert isinstance(result, IngestionResult)
    assert result.fragment_count >= 1
    assert result.title == "Untitled document"

    answer = await core.chat("shop-bot", "What is the refund policy?", use_knowledge=True)
    assert answer.reply == "Grounded reply."
    assert answer.grounding is Grounding.WITH_CONTEXT

    context = provider.complete_calls[-1]["messages"][1].content
    assert context.startswith(CONTEXT_PREAMBLE)
    assert "Refund requests" in context

    transcript = await store.list_messages("shop", "shop-bot", answer.session_id)
    assert [m.content for m in transcript] == ["What is the refund policy?", "Grounded reply."]


@pytest.mark.asyncio
async def test_retrieval_never_crosses_tenants(world) -> None:
    core, store, blobs, provider = world
    shop_doc = await _upload(store, blobs, "shop", "shop-bot", "a.txt", b"refund refund refund policy")
    clinic_doc = await _upload(store, blobs, "clinic", "clinic-bot", "b.txt", b"holiday opening hours")

    await core.ingest_document(TenantContext(tenant_id="shop"), "shop-bot", shop_doc.document_id)
    await core.ingest_document(TenantContext(tenant_id="clinic"), "clinic-bot", clinic_doc.document_id)

    answer = await core.chat("clinic-bot", "refund?", use_knowledge=True)
    context_messages = provider.complete_calls[-1]["messages"]
    rendered = "\n".join(m.content for m in context_messages)
    assert "refund refund" not in rendered
    assert provider.complete_calls[-1]["api_key"] == "sk-clinic-secret-000000"
    assert answer.grounding is Grounding.WITH_CONTEXT


@pytest.mark.asyncio
async def test_failed_reingest_hides_previous_fragments(world) -> None:
    core, store, blobs, provider = world
    document = await _upload(store, blobs, "shop", "shop-bot", "w.txt", b"warranty lasts two years")
    ctx = TenantContext(tenant_id="shop")
    await core.ingest_document(ctx, "shop-bot", document.document_id)

    await store.delete_credential("shop")
    outcome = await core.ingest_document(ctx, "shop-bot", document.document_id)

    assert isinstance(outcome, ErrorPayload)
    assert outcome.kind is ErrorKind.MISSING_CREDENTIAL
    stored = await store.get_document("shop", "shop-bot", document.document_id)
    assert stored.status is DocumentStatus.ERROR
    assert await store.search_fragments("shop", "shop-bot", [0, 0, 1.0, 0, 0, 0, 0.1], top_k=5) == []


@pytest.mark.asyncio
async def test_public_and_tenant_wording_differ(world) -> None:
    core, store, _, _ = world
    await store.delete_credential("shop")

    public = await core.chat("shop-bot", "hello")
    tenant = await core.chat(
        "shop-bot", "hello", ctx=TenantContext(tenant_id="shop"), audience=Audience.TENANT
    )

    assert public.message == "Bot owner has not added an OpenAI key."
    assert tenant.message == "Missing OpenAI key in Settings. Please save your OpenAI key first."


@pytest.mark.asyncio
async def test_ceiling_applies_per_document(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, paragraph_fragment_chars=5, max_fragments_per_document=3)
    store = SQLiteDocumentStore(db_path=settings.database_path)
    await store.initialize()
    await store.create_agent("shop", name="bot", agent_id="bot")
    await store.set_credential("shop", "sk-shop-secret-000000")
    document = await store.create_document("shop", "bot", content="abcde" * 4)
    provider = FakeProvider()
    core = KnowledgeCore(
        ingestion=IngestionService(
            store=store,
            blob_store=LocalBlobStore(root=settings.blob_root),
            extractor=DocumentTextExtractor(),
            provider=provider,
            segmenter=Segmenter.from_settings(settings),
            settings=settings,
        ),
        chat=ChatService(store=store, provider=provider, settings=settings),
    )

    outcome = await core.ingest_document(TenantContext(tenant_id="shop"), "bot", document.document_id)

    assert outcome == ErrorPayload(
        kind=ErrorKind.TOO_MANY_FRAGMENTS,
        message="Too many chunks (4). Please upload a smaller document.",
    )
    assert provider.embed_calls == []


# ======================================================================
# Two tenants in flight at once
# ======================================================================

_KEYS = {"shop": "sk-shop-secret-000000", "clinic": "sk-clinic-secret-000000"}
_WORDS = {"shop": ("refund", "shipping", "warranty"), "clinic": ("invoice", "password", "holiday")}
_CONTENT = {
    "shop": "refund policy\n\nshipping rules\n\nwarranty cover",
    "clinic": "invoice copies\n\npassword resets\n\nholiday hours",
}
_QUESTIONS = {"shop": "refund?", "clinic": "holiday?"}


def _owner(text: str) -> str:
    lowered = text.lower()
    owners = {tenant for tenant, words in _WORDS.items() if any(w in lowered for w in words)}
    assert len(owners) == 1, f"text mentions {owners or 'no tenant'}: {text!r}"
    return owners.pop()


class _Interleaving(FakeProvider):
    """Yields to the event loop before every call so concurrent runs interleave."""

    async def embed(self, credential: Credential, text: str) -> list[float]:
        await asyncio.sleep(0)
        return await super().embed(credential, text)

    async def complete(self, credential, model, messages, temperature) -> str:
        await asyncio.sleep(0)
        return await super().complete(credential, model, messages, temperature)


async def _two_tenant_core(tmp_path: Path, provider, **overrides):
    settings = make_settings(tmp_path, paragraph_fragment_chars=20, retrieval_top_k=3, **overrides)
    store = SQLiteDocumentStore(db_path=settings.database_path)
    await store.initialize()
    core = KnowledgeCore(
        ingestion=IngestionService(
            store=store,
            blob_store=LocalBlobStore(root=settings.blob_root),
            extractor=DocumentTextExtractor(),
            provider=provider,
            segmenter=Segmenter.from_settings(settings),
            settings=settings,
        ),
        chat=ChatService(store=store, provider=provider, settings=settings),
    )
    documents = {}
    for tenant in _KEYS:
        await store.create_agent(tenant, name=tenant, agent_id=f"{tenant}-bot")
        await store.set_credential(tenant, _KEYS[tenant])
        documents[tenant] = await store.create_document(
            tenant, f"{tenant}-bot", content=_CONTENT[tenant]
        )
    return core, documents


async def _run_both_tenants(core, documents) -> None:
    ingested = await asyncio.gather(
        *(
            core.ingest_document(
                TenantContext(tenant_id=tenant), f"{tenant}-bot", documents[tenant].document_id
            )
            for tenant in _KEYS
        )
    )
    assert all(isinstance(r, IngestionResult) and r.fragment_count == 3 for r in ingested)

    answers = await asyncio.gather(
        *(core.chat(f"{tenant}-bot", _QUESTIONS[tenant], use_knowledge=True) for tenant in _KEYS)
    )
    assert all(a.grounding is Grounding.WITH_CONTEXT for a in answers)


@pytest.mark.asyncio
@pytest.mark.parametrize("embed_concurrency", [1, 3])
async def test_concurrent_tenants_each_use_their_own_key(tmp_path: Path, embed_concurrency: int) -> None:
    provider = _Interleaving()
    core, documents = await _two_tenant_core(tmp_path, provider, embed_concurrency=embed_concurrency)

    await _run_both_tenants(core, documents)

    assert len(provider.embed_calls) == 8
    for key, text in provider.embed_calls:
        assert key == _KEYS[_owner(text)]

    assert len(provider.complete_calls) == 2
    for call in provider.complete_calls:
        tenant = _owner(call["messages"][-1].content)
        assert call["api_key"] == _KEYS[tenant]
        context = "\n".join(m.content for m in call["messages"][:-1])
        for other, words in _WORDS.items():
            if other != tenant:
                assert not any(w in context for w in words)


def _bag_of_words(text: str) -> list[float]:
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCABULARY] + [0.1]


def _recording_sdk(calls: list[tuple[str, str, str]]):
    """Factory standing in for ``openai.AsyncOpenAI`` that records the key per request."""

    def build(**kwargs) -> MagicMock:
        key = kwargs["api_key"]
        client = AsyncMock()

        async def create_embedding(model: str, input: str) -> MagicMock:  # noqa: A002
            await asyncio.sleep(0)
            calls.append(("embed", key, input))
            response = MagicMock()
            response.data = [MagicMock(embedding=_bag_of_words(input))]
            response.usage = MagicMock(total_tokens=3)
            return response

        async def create_completion(model: str, messages: list[dict], temperature: float) -> MagicMock:
            await asyncio.sleep(0)
            calls.append(("complete", key, messages[-1]["content"]))
            response = MagicMock()
            response.choices = [MagicMock(message=MagicMock(content="ok"))]
            response.usage = MagicMock(total_tokens=9)
            return response

        client.embeddings.create = AsyncMock(side_effect=create_embedding)
        client.chat.completions.create = AsyncMock(side_effect=create_completion)
        return client

    return build


@pytest.mark.asyncio
async def test_concurrent_tenants_through_the_openai_client(tmp_path: Path) -> None:
    calls: list[tuple[str, str, str]] = []
    with patch(
        "virtuai.providers.llm.openai_provider_client.openai.AsyncOpenAI",
        side_effect=_recording_sdk(calls),
    ):
        provider = OpenAIProviderClient(make_settings(tmp_path))
        core, documents = await _two_tenant_core(tmp_path, provider, embed_concurrency=3)
        await _run_both_tenants(core, documents)

    assert [kind for kind, _, _ in calls].count("embed") == 8
    assert [kind for kind, _, _ in calls].count("complete") == 2
    for _, key, text in calls:
        assert key == _KEYS[_owner(text)]
