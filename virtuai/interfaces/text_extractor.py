"""Abstract base class for raw-bytes-to-text extraction."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict


class ExtractedText(BaseModel):
    """Text pulled from a document, plus a title when the format carries one."""

    model_config = ConfigDict(frozen=True)

    text: str
    title: str | None = None
    page_count: int = 0


# Concrete implementation: DocumentTextExtractor (virtuai/providers/extraction/)
class ITextExtractor(ABC):
    """Contract for turning uploaded bytes into plain text."""

    @abstractmethod
    def extract(self, data: bytes) -> ExtractedText:
        """Extract text from *data*.

        Extraction is CPU-bound and synchronous; callers run it in a worker
        thread.

        Raises
        ------
        EmptyContentError
            If the bytes are not a supported format.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error messages."""
