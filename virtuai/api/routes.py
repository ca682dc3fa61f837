"""FastAPI routes for the virtuai knowledge core.

Service dependencies are resolved from ``app.state`` (populated at startup
by ``main._build_all``) via ``Depends`` with the ``Annotated`` pattern.

# ─── API ROUTE MAP ─────────────────────────────────────────────────────
#
# Endpoint                                          Method  Audience
# ─────────────────────────────────────────────────────────────────────
# /api/v1/health                                    GET     -
# /api/v1/agents/{aid}/documents                    POST    tenant (upload)
# /api/v1/agents/{aid}/documents/{did}              GET     tenant
# /api/v1/agents/{aid}/documents/{did}/process      POST    tenant
# /api/v1/agents/{aid}/documents/{did}/embed        POST    tenant
# /api/v1/agents/{aid}/chat                         POST    tenant
# /api/v1/widget/chat                               POST    public
# /api/v1/credentials                               GET/PUT/DELETE tenant
#
# Tenant identity comes from the ``X-Tenant-Id`` header, set by the
# authentication proxy in front of this service.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import uuid
from pathlib import PurePosixPath
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from virtuai import __version__
from virtuai.api.middleware import error_response
from virtuai.api.schemas import (
    ChatRequest,
    ChatResponse,
    CredentialRequest,
    CredentialResponse,
    DocumentResponse,
    HealthResponse,
    IngestResponse,
    WidgetChatRequest,
)
from virtuai.interfaces.blob_store import IBlobStore
from virtuai.interfaces.document_store import IDocumentStore
from virtuai.models.document import IngestionMode
from virtuai.models.results import ErrorPayload
from virtuai.models.tenant import TenantContext
from virtuai.services.knowledge_core import KnowledgeCore
from virtuai.services.messages import Audience
from virtuai.utils.errors import NotFoundError
from virtuai.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_MAX_UPLOAD_BYTES = 20 * 1024 * 1024
_UPLOAD_CHUNK_SIZE = 64 * 1024


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_core(request: Request) -> KnowledgeCore:
    """Return the knowledge core facade from application state."""
    return request.app.state.knowledge_core


def _get_store(request: Request) -> IDocumentStore:
    """Return the document store from application state."""
    return request.app.state.document_store


def _get_blob_store(request: Request) -> IBlobStore:
    """Return the blob store from application state."""
    return request.app.state.blob_store


def _get_tenant(x_tenant_id: Annotated[str, Header(alias="X-Tenant-Id")]) -> TenantContext:
    """Build the tenant context from the authenticated tenant header."""
    tenant_id = x_tenant_id.strip()
    if not tenant_id:
        raise HTTPException(status_code=401, detail="Missing tenant")
    return TenantContext(tenant_id=tenant_id)


CoreDep = Annotated[KnowledgeCore, Depends(_get_core)]
StoreDep = Annotated[IDocumentStore, Depends(_get_store)]
BlobStoreDep = Annotated[IBlobStore, Depends(_get_blob_store)]
TenantDep = Annotated[TenantContext, Depends(_get_tenant)]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Return application health and which components are wired."""
    components = {
        name: getattr(request.app.state, name, None) is not None
        for name in ("document_store", "blob_store", "provider_client", "knowledge_core")
    }
    status = "healthy" if all(components.values()) else "degraded"
    return HealthResponse(status=status, version=__version__, components=components)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post("/agents/{agent_id}/documents", response_model=DocumentResponse, status_code=201)
async def upload_document(
    agent_id: str,
    file: UploadFile,
    ctx: TenantDep,
    store: StoreDep,
    blob_store: BlobStoreDep,
    title: Annotated[str | None, Form()] = None,
) -> DocumentResponse:
    """Store an uploaded file and register it as an ``uploaded`` document."""
    if await store.get_agent(agent_id, ctx.tenant_id) is None:
        raise NotFoundError(message="Bot not found")

    data = bytearray()
    while chunk := await file.read(_UPLOAD_CHUNK_SIZE):
        data.extend(chunk)
        if len(data) > _MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=413, detail="File too large (max 20 MB)")
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")

    suffix = PurePosixPath(file.filename or "").suffix.lower()
    locator = f"{ctx.tenant_id}/{agent_id}/{uuid.uuid4().hex}{suffix}"
    await blob_store.upload(locator, bytes(data))

    document = await store.create_document(
        ctx.tenant_id,
        agent_id,
        title=title or file.filename or None,
        storage_locator=locator,
    )
    logger.info("document_uploaded", document_id=document.document_id, size=len(data))
    return DocumentResponse.from_document(document)


@router.get("/agents/{agent_id}/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    agent_id: str, document_id: str, ctx: TenantDep, store: StoreDep
) -> DocumentResponse:
    """Return a document's status (and failure reason, if any)."""
    document = await store.get_document(ctx.tenant_id, agent_id, document_id)
    if document is None:
        raise NotFoundError(message="Document not found")
    return DocumentResponse.from_document(document)


async def _ingest(
    core: KnowledgeCore,
    ctx: TenantContext,
    agent_id: str,
    document_id: str,
    mode: IngestionMode,
) -> IngestResponse | JSONResponse:
    outcome = await core.ingest_document(ctx, agent_id, document_id, mode)
    if isinstance(outcome, ErrorPayload):
        return error_response(outcome)
    return IngestResponse.from_result(outcome)


@router.post(
    "/agents/{agent_id}/documents/{document_id}/process", response_model=IngestResponse
)
async def process_document(
    agent_id: str, document_id: str, ctx: TenantDep, core: CoreDep
) -> IngestResponse | JSONResponse:
    """Re-extract the uploaded file and ingest it with the fixed-width profile."""
    return await _ingest(core, ctx, agent_id, document_id, IngestionMode.PROCESS)


@router.post("/agents/{agent_id}/documents/{document_id}/embed", response_model=IngestResponse)
async def embed_document(
    agent_id: str, document_id: str, ctx: TenantDep, core: CoreDep
) -> IngestResponse | JSONResponse:
    """Ingest the document's attached text with the paragraph profile."""
    return await _ingest(core, ctx, agent_id, document_id, IngestionMode.EMBED)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post("/agents/{agent_id}/chat", response_model=ChatResponse)
async def tenant_chat(
    agent_id: str, body: ChatRequest, ctx: TenantDep, core: CoreDep
) -> ChatResponse | JSONResponse:
    """Chat with one of the caller's own agents; errors are actionable."""
    outcome = await core.chat(
        agent_id,
        body.message,
        session_id=body.session_id,
        use_knowledge=body.use_knowledge,
        ctx=ctx,
        audience=Audience.TENANT,
    )
    if isinstance(outcome, ErrorPayload):
        return error_response(outcome)
    return ChatResponse.from_answer(outcome)


@router.post("/widget/chat", response_model=ChatResponse)
async def widget_chat(body: WidgetChatRequest, core: CoreDep) -> ChatResponse | JSONResponse:
    """Public chat endpoint used by the embeddable widget."""
    outcome = await core.chat(
        body.agent_id,
        body.message,
        session_id=body.session_id,
        use_knowledge=body.use_knowledge,
        audience=Audience.PUBLIC,
    )
    if isinstance(outcome, ErrorPayload):
        return error_response(outcome)
    return ChatResponse.from_answer(outcome)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@router.get("/credentials", response_model=CredentialResponse)
async def get_credential(ctx: TenantDep, store: StoreDep) -> CredentialResponse:
    """Report whether a key is stored, showing it masked."""
    credential = await store.get_credential(ctx.tenant_id)
    if credential is None:
        return CredentialResponse(configured=False)
    return CredentialResponse(configured=True, masked_key=credential.masked())


@router.put("/credentials", response_model=CredentialResponse)
async def put_credential(
    body: CredentialRequest, ctx: TenantDep, store: StoreDep
) -> CredentialResponse:
    """Save or replace the tenant's provider key."""
    if not body.api_key.strip():
        raise HTTPException(status_code=400, detail="API key must not be blank")
    credential = await store.set_credential(ctx.tenant_id, body.api_key)
    return CredentialResponse(configured=True, masked_key=credential.masked())


@router.delete("/credentials", response_model=CredentialResponse)
async def delete_credential(ctx: TenantDep, store: StoreDep) -> CredentialResponse:
    """Remove the tenant's provider key."""
    await store.delete_credential(ctx.tenant_id)
    return CredentialResponse(configured=False)
