"""virtuai domain models — re-exports all public model classes.

    - tenant.py    — tenant context, agents, credentials
    - document.py  — document lifecycle, fragments, search matches
    - chat.py      — prompt messages, retrieval outcome, chat answers
    - results.py   — caller-facing ingestion result and error payload
"""

from __future__ import annotations

from virtuai.models.chat import (
    ChatAnswer,
    ChatMessage,
    ChatRole,
    Grounding,
    PromptMessage,
    RetrievalOutcome,
)
from virtuai.models.document import (
    Document,
    DocumentStatus,
    Fragment,
    FragmentMatch,
    IngestionMode,
)
from virtuai.models.results import ErrorPayload, IngestionResult
from virtuai.models.tenant import Agent, Credential, TenantContext

__all__ = [
    "Agent",
    "ChatAnswer",
    "ChatMessage",
    "ChatRole",
    "Credential",
    "Document",
    "DocumentStatus",
    "ErrorPayload",
    "Fragment",
    "FragmentMatch",
    "Grounding",
    "IngestionMode",
    "IngestionResult",
    "PromptMessage",
    "RetrievalOutcome",
    "TenantContext",
]
