"""Chat orchestration models.

:class:`Grounding` makes the retrieval fallback explicit: every answer says
whether it was generated with retrieved context or without it, and
:class:`RetrievalOutcome` records why retrieval was skipped or degraded.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from virtuai.models.document import FragmentMatch


class ChatRole(str, Enum):  # noqa: UP042
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class PromptMessage(BaseModel):
    """One role/content pair sent to the completion endpoint."""

    model_config = ConfigDict(frozen=True)

    role: ChatRole
    content: str

    def to_wire(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class Grounding(str, Enum):  # noqa: UP042
    WITH_CONTEXT = "with_context"
    WITHOUT_CONTEXT = "without_context"


class RetrievalOutcome(BaseModel):
    """Result of the optional retrieval step of a chat turn."""

    model_config = ConfigDict(frozen=True)

    grounding: Grounding = Grounding.WITHOUT_CONTEXT
    matches: list[FragmentMatch] = Field(default_factory=list)
    degraded_reason: str | None = Field(
        default=None,
        description="Set when retrieval was attempted but failed.",
    )

    @property
    def degraded(self) -> bool:
        return self.degraded_reason is not None


class ChatAnswer(BaseModel):
    """The reply to one chat turn."""

    model_config = ConfigDict(frozen=True)

    reply: str
    session_id: str
    grounding: Grounding
    fragments_used: int = Field(default=0, ge=0)
    retrieval_degraded: bool = False


class ChatMessage(BaseModel):
    """A persisted transcript message."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    agent_id: str
    session_id: str
    role: ChatRole
    content: str
    created_at: datetime | None = None
