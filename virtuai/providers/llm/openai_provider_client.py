"""OpenAI-compatible provider client.

Wraps the ``openai`` async SDK to implement :class:`IProviderClient`.  The
tenant's own key is supplied on every call, so a fresh SDK client is built
per request; when a shared ``httpx.AsyncClient`` is injected the underlying
connection pool is still reused across tenants.

SDK retries are disabled (``max_retries=0``): retry policy belongs to the
caller, and every failure is classified immediately.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from virtuai.config.settings import Settings
from virtuai.interfaces.provider_client import IProviderClient
from virtuai.models.chat import PromptMessage
from virtuai.models.tenant import Credential
from virtuai.providers.llm.classification import classify_provider_failure
from virtuai.utils.errors import ProviderError

logger = structlog.get_logger(logger_name=__name__)


class OpenAIProviderClient(IProviderClient):
    """Provider client backed by an OpenAI-compatible API.

    Parameters
    ----------
    settings:
        Supplies the embedding model, optional base URL and timeouts.
    http_client:
        Optional shared HTTP client.  When omitted each SDK client owns
        (and closes) its own connection pool.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._http_client = http_client
        self._embedding_model = settings.embedding_model
        self._timeout = openai.Timeout(
            settings.provider_timeout_seconds,
            connect=settings.provider_connect_timeout_seconds,
        )
        self._provider_label = (
            "openai-compatible" if settings.provider_base_url else "openai"
        )

    # ------------------------------------------------------------------
    # IProviderClient implementation
    # ------------------------------------------------------------------

    async def embed(self, credential: Credential, text: str) -> list[float]:
        """Embed a single text with the configured embedding model."""
        client = self._build_client(credential)
        try:
            response = await client.embeddings.create(
                model=self._embedding_model,
                input=text,
            )
        except openai.APIError as exc:
            raise self._classify(exc) from exc
        finally:
            await self._release(client)

        data = getattr(response, "data", None) or []
        vector = data[0].embedding if data else None
        if not vector:
            raise ProviderError(
                message=f"{self._provider_label} returned an empty embedding",
                provider_name=self.get_provider_name(),
            )
        logger.debug(
            "openai_embedding",
            model=self._embedding_model,
            provider=self._provider_label,
            dimension=len(vector),
            tokens=response.usage.total_tokens if getattr(response, "usage", None) else None,
        )
        return list(vector)

    async def complete(
        self,
        credential: Credential,
        model: str,
        messages: list[PromptMessage],
        temperature: float,
    ) -> str:
        """Generate a chat completion from the ordered messages."""
        client = self._build_client(credential)
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[m.to_wire() for m in messages],
                temperature=temperature,
            )
        except openai.APIError as exc:
            raise self._classify(exc) from exc
        finally:
            await self._release(client)

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise ProviderError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_completion",
            model=model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if getattr(response, "usage", None) else None,
        )
        return content

    def get_provider_name(self) -> str:
        return self._provider_label

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_client(self, credential: Credential) -> openai.AsyncOpenAI:
        client_kwargs: dict = {
            "api_key": credential.reveal(),
            "timeout": self._timeout,
            "max_retries": 0,
        }
        if self._settings.provider_base_url:
            client_kwargs["base_url"] = self._settings.provider_base_url
        if self._http_client is not None:
            client_kwargs["http_client"] = self._http_client
        return openai.AsyncOpenAI(**client_kwargs)

    async def _release(self, client: openai.AsyncOpenAI) -> None:
        # A shared pool outlives the request; only per-call pools are closed.
        if self._http_client is None:
            await client.close()

    def _classify(self, exc: openai.APIError) -> Exception:
        if isinstance(exc, openai.APITimeoutError):
            logger.warning("provider_timeout", provider=self._provider_label)
            return ProviderError(
                message=f"{self._provider_label} timed out after {self._settings.provider_timeout_seconds:g}s",
                provider_name=self.get_provider_name(),
            )
        status_code = exc.status_code if isinstance(exc, openai.APIStatusError) else None
        classified = classify_provider_failure(
            status_code=status_code,
            code=exc.code or getattr(exc, "type", None),
            message=exc.message,
            provider_name=self.get_provider_name(),
        )
        logger.warning(
            "provider_call_failed",
            provider=self._provider_label,
            status_code=status_code,
            kind=classified.kind.value,
        )
        return classified
