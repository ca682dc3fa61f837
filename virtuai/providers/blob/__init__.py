"""Raw document byte storage adapters."""

from virtuai.providers.blob.http_blob_store import HTTPBlobStore
from virtuai.providers.blob.local_blob_store import LocalBlobStore

__all__ = ["HTTPBlobStore", "LocalBlobStore"]
