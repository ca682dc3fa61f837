"""Pydantic request/response schemas for the virtuai API.

Request schemas end with "Request", response schemas end with "Response".
Incoming JSON is validated against them (422 on failure) and FastAPI
renders them into the OpenAPI docs at ``/docs``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from virtuai.models.chat import ChatAnswer, Grounding
from virtuai.models.document import Document, DocumentStatus, IngestionMode
from virtuai.models.results import IngestionResult


class ErrorResponse(BaseModel):
    """Standard error response body.  ``error`` is the stable error kind."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    components: dict[str, bool]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentResponse(BaseModel):
    """A document's metadata and lifecycle status."""

    document_id: str
    agent_id: str
    title: str | None = None
    status: DocumentStatus
    error_reason: str | None = None

    @classmethod
    def from_document(cls, document: Document) -> DocumentResponse:
        return cls(
            document_id=document.document_id,
            agent_id=document.agent_id,
            title=document.title,
            status=document.status,
            error_reason=document.error_reason,
        )


class IngestResponse(BaseModel):
    """Outcome of a successful ingestion run."""

    document_id: str
    title: str | None = None
    mode: IngestionMode
    fragment_count: int
    status: DocumentStatus
    truncated: bool = False
    superseded: bool = False

    @classmethod
    def from_result(cls, result: IngestionResult) -> IngestResponse:
        return cls(
            document_id=result.document_id,
            title=result.title,
            mode=result.mode,
            fragment_count=result.fragment_count,
            status=result.status,
            truncated=result.truncated,
            superseded=result.superseded,
        )


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    """A chat turn from a tenant testing its own agent."""

    message: str = Field(..., min_length=1, max_length=8000)
    session_id: str | None = Field(default=None, max_length=200)
    use_knowledge: bool = Field(
        default=False, description="Ground the reply in the agent's documents."
    )


class WidgetChatRequest(ChatRequest):
    """A chat turn from the public widget; the agent identifies the tenant."""

    agent_id: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    """The assistant reply for one chat turn."""

    reply: str
    session_id: str
    grounding: Grounding
    fragments_used: int = 0

    @classmethod
    def from_answer(cls, answer: ChatAnswer) -> ChatResponse:
        return cls(
            reply=answer.reply,
            session_id=answer.session_id,
            grounding=answer.grounding,
            fragments_used=answer.fragments_used,
        )


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class CredentialRequest(BaseModel):
    """Save or replace the tenant's provider key."""

    api_key: str = Field(..., min_length=1, max_length=500)


class CredentialResponse(BaseModel):
    """Credential status; the key itself is only ever shown masked."""

    configured: bool
    masked_key: str | None = None
