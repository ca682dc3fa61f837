"""HTTP blob store for object storage exposed over plain GET/PUT.

The ``httpx.AsyncClient`` is injected so the application shares one
connection pool and tests can substitute ``httpx.MockTransport``.
"""

from __future__ import annotations

from urllib.parse import quote

import httpx
import structlog

from virtuai.interfaces.blob_store import IBlobStore
from virtuai.utils.errors import NotFoundError, ProviderError

logger = structlog.get_logger(logger_name=__name__)


class HTTPBlobStore(IBlobStore):
    """Blob store that reads ``{base_url}/{locator}`` over HTTP.

    Parameters
    ----------
    http_client:
        Shared async HTTP client.
    base_url:
        Bucket or object-storage prefix, e.g. ``https://files.example.com/docs``.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(self, http_client: httpx.AsyncClient, base_url: str, timeout: float = 30.0) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _url(self, locator: str) -> str:
        return f"{self._base_url}/{quote(locator.lstrip('/'))}"

    async def download(self, locator: str) -> bytes:
        url = self._url(locator)
        try:
            response = await self._http.get(url, timeout=self._timeout, follow_redirects=True)
        except httpx.TimeoutException as exc:
            raise ProviderError(
                message=f"Timed out downloading {locator!r}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(
                message=f"Failed to download {locator!r}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code == 404:
            raise NotFoundError(message=f"Blob {locator!r} not found", provider_name=self.get_provider_name())
        if response.status_code >= 400:
            logger.warning("blob_http_error", locator=locator, status=response.status_code)
            raise ProviderError(
                message=f"Blob download failed with HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
            )
        logger.debug("blob_downloaded", locator=locator, size=len(response.content))
        return response.content

    async def upload(self, locator: str, data: bytes) -> None:
        url = self._url(locator)
        try:
            response = await self._http.put(url, content=data, timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ProviderError(
                message=f"Failed to upload {locator!r}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "http_blob"
