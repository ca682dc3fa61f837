"""Tenant-scoped identity models: tenant context, agents and credentials.

Every core operation receives a :class:`TenantContext` explicitly instead of
reading a "current tenant" from global state, so isolation can be checked
by looking at call signatures alone.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from virtuai.utils.logging import mask_secret


class TenantContext(BaseModel):
    """The resolved tenant on whose behalf an operation runs."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str = Field(min_length=1, description="Opaque stable tenant identifier.")


class Agent(BaseModel):
    """A conversational persona owned by exactly one tenant.

    ``system_prompt`` and ``model`` may be unset, in which case the chat
    orchestrator falls back to the configured defaults.
    """

    model_config = ConfigDict(frozen=True)

    agent_id: str = Field(description="Unique agent identifier.")
    tenant_id: str = Field(description="Owning tenant.")
    name: str = Field(default="", description="Display name.")
    system_prompt: str | None = Field(default=None, description="Instruction text.")
    model: str | None = Field(default=None, description="Generation model identifier.")


class Credential(BaseModel):
    """A tenant's provider API key.

    The key is held as :class:`~pydantic.SecretStr` so accidental ``repr``
    or log output never shows it.  Use :meth:`masked` for display and
    :meth:`reveal` only at the provider boundary.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    api_key: SecretStr

    def reveal(self) -> str:
        return self.api_key.get_secret_value()

    def masked(self) -> str:
        return mask_secret(self.reveal())
