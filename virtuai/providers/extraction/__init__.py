"""Document text extraction adapters."""

from virtuai.providers.extraction.text_extractor import DocumentTextExtractor

__all__ = ["DocumentTextExtractor"]
