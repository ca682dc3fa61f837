"""Orchestrator for per-document ingestion.

Pipeline stages: **resolve -> fetch -> extract -> segment -> embed -> commit**.

The :class:`IngestionService` coordinates the document store, blob store,
text extractor, segmenter and provider client without any of them knowing
about each other.  It also owns the document lifecycle:

    1. The document is moved to ``processing`` before any external call, so
       a crash leaves it visibly stuck rather than falsely ``uploaded``.
    2. Every fragment is embedded before anything is written; the fragment
       set and the ``processed`` status are then committed in one store
       transaction.
    3. Any failure moves the document to ``error`` with a tenant-readable
       reason and re-raises the classified exception.

Two entry points share this flow (see :class:`IngestionMode`): ``PROCESS``
re-extracts the upload and uses the fixed-width profile, ``EMBED`` reuses
attached text and uses the paragraph profile.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from virtuai.models.document import Document, DocumentStatus, Fragment, IngestionMode
from virtuai.models.results import IngestionResult
from virtuai.services.messages import Audience, error_kind, friendly_message
from virtuai.services.segmenter import Segmenter
from virtuai.utils.concurrency import first_failure, throttled_gather
from virtuai.utils.errors import (
    EmptyContentError,
    InvalidTransitionError,
    MissingCredentialError,
    NotFoundError,
    ProviderError,
    TooManyFragmentsError,
    VirtuAIError,
)

if TYPE_CHECKING:
    from virtuai.config.settings import Settings
    from virtuai.interfaces.blob_store import IBlobStore
    from virtuai.interfaces.document_store import IDocumentStore
    from virtuai.interfaces.provider_client import IProviderClient
    from virtuai.interfaces.text_extractor import ITextExtractor
    from virtuai.models.tenant import Credential, TenantContext

logger = structlog.get_logger(logger_name=__name__)

_UNTITLED = "Untitled document"

_PROFILE_FOR_MODE: dict[IngestionMode, str] = {
    IngestionMode.PROCESS: Segmenter.FIXED_PROFILE,
    IngestionMode.EMBED: Segmenter.PARAGRAPH_PROFILE,
}


class IngestionService:
    """Moves one document from raw bytes to queryable fragments.

    Parameters
    ----------
    store:
        Document metadata, fragments and credentials.
    blob_store:
        Raw uploaded bytes.
    extractor:
        Bytes-to-text extraction.
    provider:
        Embedding calls, made with the tenant's own credential.
    segmenter:
        Configured segmentation profiles.
    settings:
        Fragment ceiling, text bound, timeouts and embed concurrency.
    """

    def __init__(
        self,
        store: IDocumentStore,
        blob_store: IBlobStore,
        extractor: ITextExtractor,
        provider: IProviderClient,
        segmenter: Segmenter,
        settings: Settings,
    ) -> None:
        self._store = store
        self._blob_store = blob_store
        self._extractor = extractor
        self._provider = provider
        self._segmenter = segmenter
        self._settings = settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest_document(
        self,
        ctx: TenantContext,
        agent_id: str,
        document_id: str,
        mode: IngestionMode = IngestionMode.EMBED,
    ) -> IngestionResult:
        """Ingest a document and return a summary of the run.

        Parameters
        ----------
        ctx:
            The tenant on whose behalf ingestion runs.
        agent_id:
            The agent that owns the document.
        document_id:
            The document to ingest.
        mode:
            Which entry point triggered the run.

        Returns
        -------
        IngestionResult
            Fragment count and timing for the completed run.

        Raises
        ------
        NotFoundError
            If the document does not exist under (tenant, agent).  The
            document status is left untouched.
        VirtuAIError
            Any other classified failure; the document ends in ``error``.
        """
        start = time.monotonic()
        with structlog.contextvars.bound_contextvars(
            tenant_id=ctx.tenant_id,
            agent_id=agent_id,
            document_id=document_id,
            mode=mode.value,
        ):
            document = await self._store.get_document(ctx.tenant_id, agent_id, document_id)
            if document is None:
                raise NotFoundError(message="Document not found")

            await self._store.set_document_status(document_id, DocumentStatus.PROCESSING)
            logger.info("ingestion_started", previous_status=document.status.value)

            try:
                result = await self._run(ctx, document, mode, start)
            except Exception as exc:
                await self._mark_error(document_id, exc)
                raise

            logger.info(
                "ingestion_complete",
                fragments=result.fragment_count,
                truncated=result.truncated,
                elapsed_s=round(result.ingestion_time, 2),
            )
            return result

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    async def _run(
        self,
        ctx: TenantContext,
        document: Document,
        mode: IngestionMode,
        start: float,
    ) -> IngestionResult:
        text, title, truncated = await self._obtain_text(document, mode)

        credential = await self._store.get_credential(ctx.tenant_id)
        if credential is None:
            raise MissingCredentialError(message=f"Tenant {ctx.tenant_id} has no provider key")

        # Skipped once a concurrent run has already committed.
        await self._store.delete_fragments(
            document.document_id, only_if_status=DocumentStatus.PROCESSING
        )

        pieces = self._segmenter.segment(text, _PROFILE_FOR_MODE[mode])
        if not pieces:
            raise EmptyContentError()
        ceiling = self._settings.max_fragments_per_document
        if len(pieces) > ceiling:
            raise TooManyFragmentsError(count=len(pieces), limit=ceiling)

        vectors = await self._embed_all(credential, pieces)
        fragments = [
            Fragment(
                tenant_id=ctx.tenant_id,
                agent_id=document.agent_id,
                document_id=document.document_id,
                index=idx,
                content=piece,
                embedding=vector,
            )
            for idx, (piece, vector) in enumerate(zip(pieces, vectors))
        ]
        try:
            await self._store.commit_fragments(document.document_id, fragments)
        except InvalidTransitionError:
            superseded = await self._superseded_result(document, mode, start)
            if superseded is None:
                raise
            return superseded

        return IngestionResult(
            document_id=document.document_id,
            title=title,
            mode=mode,
            fragment_count=len(fragments),
            status=DocumentStatus.PROCESSED,
            truncated=truncated,
            ingestion_time=time.monotonic() - start,
        )

    async def _superseded_result(
        self, document: Document, mode: IngestionMode, start: float
    ) -> IngestionResult | None:
        """Describe the winning commit when another run finished first."""
        current = await self._store.get_document(
            document.tenant_id, document.agent_id, document.document_id
        )
        if current is None or current.status is not DocumentStatus.PROCESSED:
            return None
        committed = await self._store.list_fragments(document.document_id)
        logger.warning("ingestion_superseded", committed_fragments=len(committed))
        return IngestionResult(
            document_id=document.document_id,
            title=current.title,
            mode=mode,
            fragment_count=len(committed),
            status=DocumentStatus.PROCESSED,
            superseded=True,
            ingestion_time=time.monotonic() - start,
        )

    async def _obtain_text(
        self, document: Document, mode: IngestionMode
    ) -> tuple[str, str | None, bool]:
        """Return ``(text, title, truncated)``, persisting newly extracted text."""
        attached = document.content or ""
        if mode is IngestionMode.EMBED and attached.strip():
            text, title, fresh = attached, document.title, False
        else:
            text, title = await self._download_and_extract(document)
            fresh = True

        if not text.strip():
            raise EmptyContentError()

        limit = self._settings.max_document_chars
        truncated = len(text) > limit
        if truncated:
            logger.warning("document_text_truncated", original_chars=len(text), limit=limit)
            text = text[:limit]

        if fresh or truncated:
            await self._store.set_document_text(document.document_id, text, title)
        return text, title, truncated

    async def _download_and_extract(self, document: Document) -> tuple[str, str]:
        if not document.storage_locator:
            raise EmptyContentError(message="Document has no uploaded file to extract text from")

        try:
            data = await asyncio.wait_for(
                self._blob_store.download(document.storage_locator),
                timeout=self._settings.download_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                message="Timed out downloading document",
                provider_name=self._blob_store.get_provider_name(),
            ) from exc

        try:
            extracted = await asyncio.wait_for(
                asyncio.to_thread(self._extractor.extract, data),
                timeout=self._settings.extract_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                message="Timed out extracting document text",
                provider_name=self._extractor.get_provider_name(),
            ) from exc

        title = extracted.title or document.title or _UNTITLED
        logger.info("document_extracted", chars=len(extracted.text), pages=extracted.page_count)
        return extracted.text, title

    async def _embed_all(self, credential: Credential, pieces: list[str]) -> list[list[float]]:
        """Embed every piece, in index order, or raise the lowest-index failure."""
        concurrency = self._settings.embed_concurrency
        if concurrency <= 1:
            vectors: list[list[float]] = []
            for idx, piece in enumerate(pieces):
                try:
                    vectors.append(await self._embed_one(credential, piece))
                except VirtuAIError as exc:
                    self._log_embed_failure(idx, len(pieces), exc)
                    raise
            return vectors

        results = await throttled_gather(
            [self._embed_one(credential, piece) for piece in pieces],
            semaphore=asyncio.Semaphore(concurrency),
            return_exceptions=True,
        )
        failure = first_failure(results)
        if failure is not None:
            idx, exc = failure
            self._log_embed_failure(idx, len(pieces), exc)
            raise exc
        return list(results)  # type: ignore[arg-type]

    async def _embed_one(self, credential: Credential, text: str) -> list[float]:
        bound = self._settings.provider_timeout_seconds + self._settings.provider_connect_timeout_seconds
        try:
            return await asyncio.wait_for(self._provider.embed(credential, text), timeout=bound)
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                message=f"Embedding timed out after {bound:g}s",
                provider_name=self._provider.get_provider_name(),
            ) from exc

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _mark_error(self, document_id: str, exc: BaseException) -> None:
        reason = friendly_message(exc, Audience.TENANT)
        try:
            await self._store.set_document_status(document_id, DocumentStatus.ERROR, error_reason=reason)
        except Exception as status_exc:  # noqa: BLE001
            logger.error("document_status_update_failed", error=str(status_exc))
        logger.warning(
            "ingestion_failed",
            kind=error_kind(exc).value,
            error_type=type(exc).__name__,
            reason=reason,
        )

    @staticmethod
    def _log_embed_failure(idx: int, total: int, exc: BaseException) -> None:
        logger.warning(
            "fragment_embed_failed",
            index=idx,
            total=total,
            error_type=type(exc).__name__,
        )
