"""virtuai API layer — routes, schemas, and middleware."""

from virtuai.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from virtuai.api.routes import router
from virtuai.api.schemas import (
    ChatRequest,
    ChatResponse,
    CredentialRequest,
    CredentialResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    IngestResponse,
    WidgetChatRequest,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "CredentialRequest",
    "CredentialResponse",
    "DocumentResponse",
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "HealthResponse",
    "IngestResponse",
    "RequestLoggingMiddleware",
    "WidgetChatRequest",
    "configure_cors",
    "router",
]
