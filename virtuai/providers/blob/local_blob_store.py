"""Filesystem-backed blob store.

Raw uploads are stored as files beneath a root directory; the locator is
the path relative to that root.  Locators that would escape the root are
rejected as not found.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from virtuai.interfaces.blob_store import IBlobStore
from virtuai.utils.errors import NotFoundError, ProviderError

logger = structlog.get_logger(logger_name=__name__)


class LocalBlobStore(IBlobStore):
    """Blob store rooted at a local directory."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def _resolve(self, locator: str) -> Path:
        path = (self._root / locator.lstrip("/")).resolve()
        if path != self._root and self._root not in path.parents:
            raise NotFoundError(message=f"Blob {locator!r} not found", provider_name=self.get_provider_name())
        return path

    async def download(self, locator: str) -> bytes:
        path = self._resolve(locator)
        if not path.is_file():
            raise NotFoundError(message=f"Blob {locator!r} not found", provider_name=self.get_provider_name())
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise ProviderError(
                message=f"Failed to read blob {locator!r}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("blob_downloaded", locator=locator, size=len(data))
        return data

    async def upload(self, locator: str, data: bytes) -> None:
        path = self._resolve(locator)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as exc:
            raise ProviderError(
                message=f"Failed to write blob {locator!r}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("blob_uploaded", locator=locator, size=len(data))

    def get_provider_name(self) -> str:
        return "local_blob"
