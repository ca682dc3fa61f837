"""Abstract base class for raw document byte storage."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: LocalBlobStore, HTTPBlobStore (virtuai/providers/blob/)
class IBlobStore(ABC):
    """Contract for reading and writing raw uploaded bytes by locator."""

    @abstractmethod
    async def download(self, locator: str) -> bytes:
        """Return the bytes stored under *locator*.

        Raises
        ------
        NotFoundError
            If nothing is stored under *locator*.
        ProviderError
            If the backend cannot be reached.
        """

    @abstractmethod
    async def upload(self, locator: str, data: bytes) -> None:
        """Store *data* under *locator*, replacing any previous bytes."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error messages."""
