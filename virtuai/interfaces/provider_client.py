"""Abstract base class for the external model provider.

The provider exposes two capabilities, embedding and chat completion.
Implementations are stateless with respect to tenants: the credential is an
argument of every call, so a single client instance safely serves many
tenants concurrently.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from virtuai.models.chat import PromptMessage
from virtuai.models.tenant import Credential


# Concrete implementation: OpenAIProviderClient (virtuai/providers/llm/)
class IProviderClient(ABC):
    """Contract for embedding and completion calls made on a tenant's behalf.

    Implementations never retry.  Every failure is raised as one of
    :class:`~virtuai.utils.errors.RateLimitedError`,
    :class:`~virtuai.utils.errors.InvalidCredentialError` or
    :class:`~virtuai.utils.errors.ProviderError`.
    """

    @abstractmethod
    async def embed(self, credential: Credential, text: str) -> list[float]:
        """Return the embedding vector for *text*.

        Parameters
        ----------
        credential:
            The requesting tenant's provider key.
        text:
            The text to embed.

        Returns
        -------
        list[float]
            A fixed-dimension vector.

        Raises
        ------
        ProviderError
            If the call fails, times out, or returns an empty vector.
        RateLimitedError
            If the tenant's quota or billing is exhausted.
        InvalidCredentialError
            If the key is rejected.
        """

    @abstractmethod
    async def complete(
        self,
        credential: Credential,
        model: str,
        messages: list[PromptMessage],
        temperature: float,
    ) -> str:
        """Generate a reply for the ordered *messages*.

        Parameters
        ----------
        credential:
            The requesting tenant's provider key.
        model:
            Generation model identifier.
        messages:
            Ordered role/content messages.
        temperature:
            Sampling temperature.

        Returns
        -------
        str
            The reply text, never empty.

        Raises
        ------
        ProviderError
            If the call fails, times out, or returns no text.
        RateLimitedError
            If the tenant's quota or billing is exhausted.
        InvalidCredentialError
            If the key is rejected.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error messages."""
