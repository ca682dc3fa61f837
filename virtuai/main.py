"""virtuai FastAPI application entry point.

Wires together providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and
configures structured logging.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from virtuai import __version__
from virtuai.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from virtuai.api.routes import router as api_router
from virtuai.config.loader import build_settings
from virtuai.config.settings import Settings
from virtuai.interfaces.blob_store import IBlobStore
from virtuai.providers.blob.http_blob_store import HTTPBlobStore
from virtuai.providers.blob.local_blob_store import LocalBlobStore
from virtuai.providers.extraction.text_extractor import DocumentTextExtractor
from virtuai.providers.llm.openai_provider_client import OpenAIProviderClient
from virtuai.providers.store.sqlite_document_store import SQLiteDocumentStore
from virtuai.services.chat_service import ChatService
from virtuai.services.ingestion_service import IngestionService
from virtuai.services.knowledge_core import KnowledgeCore
from virtuai.services.segmenter import Segmenter
from virtuai.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = build_settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Component factories
# ---------------------------------------------------------------------------


def _build_blob_store(app_settings: Settings, http_client: httpx.AsyncClient) -> IBlobStore:
    """Use HTTP object storage when a base URL is configured, else local disk."""
    if app_settings.blob_base_url:
        return HTTPBlobStore(
            http_client=http_client,
            base_url=app_settings.blob_base_url,
            timeout=app_settings.download_timeout_seconds,
        )
    return LocalBlobStore(root=app_settings.blob_root)


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    http_client = httpx.AsyncClient(timeout=app_settings.download_timeout_seconds)

    document_store = SQLiteDocumentStore(db_path=app_settings.database_path)
    blob_store = _build_blob_store(app_settings, http_client)
    provider_client = OpenAIProviderClient(settings=app_settings, http_client=http_client)
    segmenter = Segmenter.from_settings(app_settings)

    ingestion_service = IngestionService(
        store=document_store,
        blob_store=blob_store,
        extractor=DocumentTextExtractor(),
        provider=provider_client,
        segmenter=segmenter,
        settings=app_settings,
    )
    chat_service = ChatService(
        store=document_store,
        provider=provider_client,
        settings=app_settings,
    )

    return {
        "http_client": http_client,
        "document_store": document_store,
        "blob_store": blob_store,
        "provider_client": provider_client,
        "segmenter": segmenter,
        "ingestion_service": ingestion_service,
        "chat_service": chat_service,
        "knowledge_core": KnowledgeCore(ingestion=ingestion_service, chat=chat_service),
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["document_store"].initialize()

    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        provider=components["provider_client"].get_provider_name(),
        blob_store=components["blob_store"].get_provider_name(),
    )

    yield

    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="virtuai API",
        version=__version__,
        description=(
            "Per-tenant document ingestion and retrieval-augmented chat for "
            "conversational agents, using each tenant's own provider key."
        ),
        lifespan=_lifespan,
    )

    # Last added = first executed.
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=settings.get_cors_origins())

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "virtuai.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
