"""Abstract base class for the durable document store gateway.

The gateway is the only way the core touches persistent state: agents,
document metadata and status, fragment rows with vectors, the tenant
credential, and chat transcripts.  Raw document bytes live behind
:class:`~virtuai.interfaces.blob_store.IBlobStore` instead.

All lookups are scoped by tenant.  A row belonging to another tenant is
indistinguishable from a missing row.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from virtuai.models.chat import ChatMessage, ChatRole
from virtuai.models.document import Document, DocumentStatus, Fragment, FragmentMatch
from virtuai.models.tenant import Agent, Credential


# Concrete implementation: SQLiteDocumentStore (virtuai/providers/store/)
class IDocumentStore(ABC):
    """Contract for the relational side of the knowledge core."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    # -- Agents ---------------------------------------------------------

    @abstractmethod
    async def get_agent(self, agent_id: str, tenant_id: str | None = None) -> Agent | None:
        """Return the agent, or ``None`` if absent.

        Parameters
        ----------
        agent_id:
            Agent identifier.
        tenant_id:
            When given, an agent owned by a different tenant is treated as
            absent.  Public chat omits it and resolves the tenant from the
            agent itself.
        """

    # -- Documents ------------------------------------------------------

    @abstractmethod
    async def get_document(
        self, tenant_id: str, agent_id: str, document_id: str
    ) -> Document | None:
        """Return the document only if all three keys match, else ``None``."""

    @abstractmethod
    async def set_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_reason: str | None = None,
    ) -> None:
        """Move the document to *status*.

        Raises
        ------
        InvalidTransitionError
            If the lifecycle does not allow the change.
        NotFoundError
            If the document does not exist.
        """

    @abstractmethod
    async def set_document_text(
        self, document_id: str, text: str, title: str | None = None
    ) -> None:
        """Attach extracted text (and optionally a title) to the document."""

    # -- Fragments ------------------------------------------------------

    @abstractmethod
    async def delete_fragments(
        self, document_id: str, only_if_status: DocumentStatus | None = None
    ) -> None:
        """Remove every fragment of the document.

        When *only_if_status* is given the delete is applied only while the
        document still has that status, checked in the same statement.
        """

    @abstractmethod
    async def insert_fragments(self, fragments: list[Fragment]) -> None:
        """Insert fragment rows in the given order."""

    @abstractmethod
    async def commit_fragments(self, document_id: str, fragments: list[Fragment]) -> None:
        """Replace the document's fragments and mark it ``processed`` atomically.

        Deleting the previous generation, inserting *fragments* and flipping
        the status happen in one transaction, so a concurrent reader never
        sees ``processed`` next to a partial or stale fragment set.
        """

    @abstractmethod
    async def search_fragments(
        self,
        tenant_id: str,
        agent_id: str,
        query_vector: list[float],
        top_k: int,
    ) -> list[FragmentMatch]:
        """Return up to *top_k* nearest fragments, best first.

        Only fragments of ``processed`` documents within (tenant, agent)
        are considered.
        """

    @abstractmethod
    async def list_fragments(self, document_id: str) -> list[Fragment]:
        """Return the document's fragments ordered by index."""

    # -- Credentials ----------------------------------------------------

    @abstractmethod
    async def get_credential(self, tenant_id: str) -> Credential | None:
        """Return the tenant's provider key, or ``None`` if none is stored."""

    @abstractmethod
    async def set_credential(self, tenant_id: str, api_key: str) -> Credential:
        """Store or replace the tenant's provider key."""

    @abstractmethod
    async def delete_credential(self, tenant_id: str) -> bool:
        """Delete the tenant's key.  Returns ``True`` if one existed."""

    # -- Transcripts ----------------------------------------------------

    @abstractmethod
    async def append_message(
        self,
        tenant_id: str,
        agent_id: str,
        session_id: str,
        role: ChatRole,
        content: str,
    ) -> None:
        """Append one transcript message.  Messages are never updated."""

    @abstractmethod
    async def list_messages(
        self, tenant_id: str, agent_id: str, session_id: str
    ) -> list[ChatMessage]:
        """Return a session's messages in creation order."""

    # -- Administrative helpers ------------------------------------------

    @abstractmethod
    async def create_tenant(self, tenant_id: str, name: str = "") -> None:
        """Register a tenant.  Idempotent."""

    @abstractmethod
    async def create_agent(
        self,
        tenant_id: str,
        name: str,
        system_prompt: str | None = None,
        model: str | None = None,
        agent_id: str | None = None,
    ) -> Agent:
        """Create an agent under *tenant_id*."""

    @abstractmethod
    async def create_document(
        self,
        tenant_id: str,
        agent_id: str,
        title: str | None = None,
        storage_locator: str | None = None,
        content: str | None = None,
        document_id: str | None = None,
    ) -> Document:
        """Create a document in status ``uploaded``."""
