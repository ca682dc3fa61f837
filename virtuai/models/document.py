"""Document lifecycle and fragment models.

A :class:`Document` moves through :class:`DocumentStatus` as it is
ingested::

    uploaded   -> processing
    processing -> processed | error | processing
    processed  -> processing     (explicit re-ingestion)
    error      -> processing     (explicit retry)

``processing -> processing`` exists so a run abandoned mid-flight (crash,
dropped connection) can simply be re-invoked.

Fragments are only visible to search while their document is
``processed``; see :meth:`IDocumentStore.commit_fragments`.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatus(str, Enum):  # noqa: UP042
    """Ingestion state of a document."""

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"

    def can_transition_to(self, target: DocumentStatus) -> bool:
        """Return ``True`` if moving from this status to *target* is allowed."""
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.UPLOADED: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset(
        {DocumentStatus.PROCESSING, DocumentStatus.PROCESSED, DocumentStatus.ERROR}
    ),
    DocumentStatus.PROCESSED: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.ERROR: frozenset({DocumentStatus.PROCESSING}),
}


class IngestionMode(str, Enum):  # noqa: UP042
    """Which ingestion entry point triggered a run.

    ``PROCESS`` always re-reads the raw bytes and segments with the
    fixed-width profile.  ``EMBED`` reuses already extracted text when
    present and segments with the paragraph profile.
    """

    PROCESS = "process"
    EMBED = "embed"


class Document(BaseModel):
    """An uploaded document owned by one tenant and one agent."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    tenant_id: str
    agent_id: str
    title: str | None = None
    storage_locator: str | None = Field(
        default=None, description="Blob-store key of the raw bytes."
    )
    content: str | None = Field(
        default=None, description="Extracted text, truncated to the configured bound."
    )
    status: DocumentStatus = DocumentStatus.UPLOADED
    error_reason: str | None = None
    created_at: datetime | None = None


class Fragment(BaseModel):
    """A bounded slice of a document's text plus its embedding vector."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    agent_id: str
    document_id: str
    index: int = Field(ge=0, description="Zero-based position within the document.")
    content: str = Field(min_length=1)
    embedding: list[float] = Field(min_length=1)


class FragmentMatch(BaseModel):
    """A fragment returned by a nearest-neighbour search."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    index: int
    content: str
    score: float = Field(description="Cosine similarity, higher is closer.")
