"""Caller-facing boundary of the knowledge core.

Presentation layers (HTTP routes, the CLI, an embeddable widget backend)
call :class:`KnowledgeCore` instead of the services directly.  It never
lets an exception cross the boundary: every outcome is either a result
model or an :class:`ErrorPayload` whose message suits the audience.
"""

from __future__ import annotations

import structlog

from virtuai.models.chat import ChatAnswer
from virtuai.models.document import IngestionMode
from virtuai.models.results import ErrorPayload, IngestionResult
from virtuai.models.tenant import TenantContext
from virtuai.services.chat_service import ChatService
from virtuai.services.ingestion_service import IngestionService
from virtuai.services.messages import Audience, to_error_payload
from virtuai.utils.errors import VirtuAIError

logger = structlog.get_logger(logger_name=__name__)


class KnowledgeCore:
    """Facade over ingestion and chat returning structured outcomes."""

    def __init__(self, ingestion: IngestionService, chat: ChatService) -> None:
        self._ingestion = ingestion
        self._chat = chat

    async def ingest_document(
        self,
        ctx: TenantContext,
        agent_id: str,
        document_id: str,
        mode: IngestionMode = IngestionMode.EMBED,
    ) -> IngestionResult | ErrorPayload:
        """Ingest a document on behalf of its owning tenant."""
        try:
            return await self._ingestion.ingest_document(ctx, agent_id, document_id, mode)
        except Exception as exc:  # noqa: BLE001
            return self._to_payload(exc, Audience.TENANT)

    async def chat(
        self,
        agent_id: str,
        message: str,
        session_id: str | None = None,
        use_knowledge: bool = True,
        ctx: TenantContext | None = None,
        audience: Audience = Audience.PUBLIC,
    ) -> ChatAnswer | ErrorPayload:
        """Answer one chat turn.

        Public callers pass no *ctx*; the tenant is resolved from the agent
        and failures use deflecting wording.  A tenant testing its own agent
        passes *ctx* and ``Audience.TENANT`` to get actionable messages.
        """
        try:
            return await self._chat.answer(ctx, agent_id, message, session_id, use_knowledge)
        except Exception as exc:  # noqa: BLE001
            return self._to_payload(exc, audience)

    @staticmethod
    def _to_payload(exc: Exception, audience: Audience) -> ErrorPayload:
        payload = to_error_payload(exc, audience)
        if isinstance(exc, VirtuAIError):
            logger.info("core_request_failed", kind=payload.kind.value, audience=audience.value)
        else:
            logger.exception("core_request_crashed", audience=audience.value)
        return payload
