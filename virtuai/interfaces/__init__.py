"""Public interface definitions for all external collaborators.

The knowledge core reaches storage and the model provider only through the
abstract base classes defined here.  Concrete adapters live in
``virtuai/providers/`` and are wired together in ``virtuai/main.py``.

    Interface          →  Concrete implementation
    ─────────────────────────────────────────────────────
    IProviderClient    →  OpenAIProviderClient
    IDocumentStore     →  SQLiteDocumentStore
    IBlobStore         →  LocalBlobStore, HTTPBlobStore
    ITextExtractor     →  DocumentTextExtractor
"""

from virtuai.interfaces.blob_store import IBlobStore
from virtuai.interfaces.document_store import IDocumentStore
from virtuai.interfaces.provider_client import IProviderClient
from virtuai.interfaces.text_extractor import ExtractedText, ITextExtractor

__all__ = [
    "ExtractedText",
    "IBlobStore",
    "IDocumentStore",
    "IProviderClient",
    "ITextExtractor",
]
