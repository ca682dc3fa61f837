"""Retrieval-augmented chat orchestration.

One chat turn runs:

  1. AGENT       -- resolve the agent (and, for public chat, its tenant).
  2. CREDENTIAL  -- load the tenant's own provider key; there is no shared key.
  3. RETRIEVE    -- optionally embed the question and fetch the top-K
                    fragments scoped to (tenant, agent).
  4. PROMPT      -- [agent instruction, optional context block, user message].
  5. COMPLETE    -- one completion call at a low, fixed temperature.
  6. TRANSCRIPT  -- append the user message, then the reply.

Two partial-failure policies are explicit here.  Retrieval failures degrade
to an answer without context (:meth:`ChatService.retrieve` returns a
``WITHOUT_CONTEXT`` outcome carrying the reason).  Transcript failures are
logged and dropped (:meth:`ChatService.record_turn`).  Every other failure
propagates to the caller.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog

from virtuai.models.chat import (
    ChatAnswer,
    ChatRole,
    Grounding,
    PromptMessage,
    RetrievalOutcome,
)
from virtuai.models.document import FragmentMatch
from virtuai.models.tenant import TenantContext
from virtuai.utils.errors import MissingCredentialError, NotFoundError
from virtuai.utils.logging import get_logger

if TYPE_CHECKING:
    from virtuai.config.settings import Settings
    from virtuai.interfaces.document_store import IDocumentStore
    from virtuai.interfaces.provider_client import IProviderClient
    from virtuai.models.tenant import Agent, Credential

logger: structlog.BoundLogger = get_logger(__name__)

CONTEXT_PREAMBLE = (
    "Use the context below when it helps answer the user.\n"
    "If the context does not contain the answer, reply normally.\n\n"
    "Context:\n"
)


def build_context_block(matches: list[FragmentMatch], max_chars: int) -> tuple[str, int]:
    """Render *matches* as a bulleted context message within *max_chars*.

    Returns ``(block, fragments_used)``.  The block is empty when no
    fragment fits.  Fragments are added best-first; the first one is cut
    to fit rather than dropped.
    """
    budget = max_chars - len(CONTEXT_PREAMBLE)
    lines: list[str] = []
    for match in matches:
        content = match.content.strip()
        if not content:
            continue
        line = f"- {content}"
        cost = len(line) + (1 if lines else 0)
        if cost > budget:
            if not lines and budget > 2:
                lines.append(line[:budget].rstrip())
            break
        lines.append(line)
        budget -= cost
    if not lines:
        return "", 0
    return CONTEXT_PREAMBLE + "\n".join(lines), len(lines)


class ChatService:
    """Answers one user message for an agent, optionally grounded in its documents.

    Parameters
    ----------
    store:
        Agents, credentials, fragment search and transcripts.
    provider:
        Embedding and completion calls, made with the tenant's own key.
    settings:
        Default model/prompt, temperature, top-K and context budget.
    """

    def __init__(
        self,
        store: IDocumentStore,
        provider: IProviderClient,
        settings: Settings,
    ) -> None:
        self._store = store
        self._provider = provider
        self._settings = settings

    async def answer(
        self,
        ctx: TenantContext | None,
        agent_id: str,
        user_message: str,
        session_id: str | None = None,
        use_knowledge: bool = True,
    ) -> ChatAnswer:
        """Produce the reply for one chat turn.

        Parameters
        ----------
        ctx:
            The calling tenant, or ``None`` on the public surface where the
            tenant is resolved from the agent itself.
        agent_id:
            The agent being chatted with.
        user_message:
            The end user's message.
        session_id:
            Conversation thread; a new one is allocated when omitted.
        use_knowledge:
            Whether to attempt retrieval.  When ``False`` no embedding call
            is made.

        Raises
        ------
        NotFoundError
            If the agent does not exist (within *ctx*, when given).
        MissingCredentialError
            If the agent's tenant has no provider key.
        VirtuAIError
            Classified completion failures.
        """
        agent = await self._store.get_agent(agent_id, ctx.tenant_id if ctx else None)
        if agent is None:
            raise NotFoundError(message="Bot not found")
        tenant = TenantContext(tenant_id=agent.tenant_id)
        session = session_id or str(uuid.uuid4())

        with structlog.contextvars.bound_contextvars(
            tenant_id=tenant.tenant_id, agent_id=agent.agent_id, session_id=session
        ):
            credential = await self._store.get_credential(tenant.tenant_id)
            if credential is None:
                raise MissingCredentialError(message=f"Tenant {tenant.tenant_id} has no provider key")

            retrieval = await self.retrieve(credential, tenant, agent, user_message, use_knowledge)
            messages, fragments_used = self.build_messages(agent, retrieval, user_message)

            reply = await self._provider.complete(
                credential,
                model=agent.model or self._settings.default_chat_model,
                messages=messages,
                temperature=self._settings.chat_temperature,
            )

            await self.record_turn(tenant, agent, session, user_message, reply)

            grounding = Grounding.WITH_CONTEXT if fragments_used else Grounding.WITHOUT_CONTEXT
            logger.info(
                "chat_answered",
                grounding=grounding.value,
                fragments_used=fragments_used,
                retrieval_degraded=retrieval.degraded,
            )
            return ChatAnswer(
                reply=reply,
                session_id=session,
                grounding=grounding,
                fragments_used=fragments_used,
                retrieval_degraded=retrieval.degraded,
            )

    # ------------------------------------------------------------------
    # Named fallback paths
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        credential: Credential,
        tenant: TenantContext,
        agent: Agent,
        query: str,
        use_knowledge: bool,
    ) -> RetrievalOutcome:
        """Fetch supporting fragments, degrading to no context on any failure."""
        if not use_knowledge:
            return RetrievalOutcome(grounding=Grounding.WITHOUT_CONTEXT)

        try:
            vector = await self._provider.embed(credential, query)
            matches = await self._store.search_fragments(
                tenant.tenant_id,
                agent.agent_id,
                vector,
                self._settings.retrieval_top_k,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("retrieval_degraded", error_type=type(exc).__name__)
            return RetrievalOutcome(
                grounding=Grounding.WITHOUT_CONTEXT,
                degraded_reason=type(exc).__name__,
            )

        matches = [m for m in matches if m.content.strip()]
        return RetrievalOutcome(
            grounding=Grounding.WITH_CONTEXT if matches else Grounding.WITHOUT_CONTEXT,
            matches=matches,
        )

    async def record_turn(
        self,
        tenant: TenantContext,
        agent: Agent,
        session_id: str,
        user_message: str,
        reply: str,
    ) -> None:
        """Append the user message then the reply; failures are only logged."""
        for role, content in ((ChatRole.USER, user_message), (ChatRole.ASSISTANT, reply)):
            try:
                await self._store.append_message(
                    tenant.tenant_id, agent.agent_id, session_id, role, content
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "transcript_write_failed",
                    role=role.value,
                    error_type=type(exc).__name__,
                )

    # ------------------------------------------------------------------
    # Prompt assembly
    # ------------------------------------------------------------------

    def build_messages(
        self, agent: Agent, retrieval: RetrievalOutcome, user_message: str
    ) -> tuple[list[PromptMessage], int]:
        """Return the ordered prompt and how many fragments made it into context."""
        instruction = (agent.system_prompt or "").strip() or self._settings.default_system_prompt
        messages = [PromptMessage(role=ChatRole.SYSTEM, content=instruction)]

        fragments_used = 0
        if retrieval.grounding is Grounding.WITH_CONTEXT:
            block, fragments_used = build_context_block(
                retrieval.matches, self._settings.context_max_chars
            )
            if block:
                messages.append(PromptMessage(role=ChatRole.SYSTEM, content=block))

        messages.append(PromptMessage(role=ChatRole.USER, content=user_message))
        return messages, fragments_used
