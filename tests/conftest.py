"""Shared pytest fixtures for the virtuai test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
import structlog

from virtuai.config.settings import Settings
from virtuai.interfaces.provider_client import IProviderClient
from virtuai.models.chat import PromptMessage
from virtuai.models.tenant import Credential
from virtuai.providers.store.sqlite_document_store import SQLiteDocumentStore
from virtuai.utils.logging import redact_secrets

# Words that get their own embedding dimension in FakeProvider.
VOCABULARY = ("refund", "shipping", "warranty", "invoice", "password", "holiday")


def make_settings(tmp_path: Path | None = None, **overrides) -> Settings:
    """Build Settings with deterministic test values."""
    defaults = {
        "database_path": str(tmp_path / "virtuai.db") if tmp_path else "data/test.db",
        "blob_root": str(tmp_path / "blobs") if tmp_path else "data/test-blobs",
        "blob_base_url": "",
        "provider_base_url": "",
        "embedding_model": "text-embedding-3-small",
        "default_chat_model": "gpt-4o-mini",
        "default_system_prompt": "You are a helpful assistant.",
        "chat_temperature": 0.3,
        "retrieval_top_k": 3,
        "context_max_chars": 8000,
        "max_fragments_per_document": 200,
        "max_document_chars": 200_000,
        "paragraph_fragment_chars": 1200,
        "fixed_fragment_chars": 900,
        "embed_concurrency": 1,
    }
    defaults.update(overrides)
    return Settings(**defaults)


class FakeProvider(IProviderClient):
    """In-memory provider client with bag-of-words embeddings.

    Records every call so tests can assert on ordering and on which
    credential was used.  ``fail_on`` maps a substring to an exception
    raised when an embedded text contains it.
    """

    def __init__(self, reply: str = "Here is your answer.") -> None:
        self.reply = reply
        self.embed_calls: list[tuple[str, str]] = []
        self.complete_calls: list[dict] = []
        self.fail_on: dict[str, Exception] = {}
        self.complete_error: Exception | None = None

    async def embed(self, credential: Credential, text: str) -> list[float]:
        self.embed_calls.append((credential.reveal(), text))
        for needle, exc in self.fail_on.items():
            if needle in text:
                raise exc
        lowered = text.lower()
        return [float(lowered.count(word)) for word in VOCABULARY] + [0.1]

    async def complete(
        self,
        credential: Credential,
        model: str,
        messages: list[PromptMessage],
        temperature: float,
    ) -> str:
        self.complete_calls.append(
            {
                "api_key": credential.reveal(),
                "model": model,
                "messages": messages,
                "temperature": temperature,
            }
        )
        if self.complete_error is not None:
            raise self.complete_error
        return self.reply

    def get_provider_name(self) -> str:
        return "fake"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
async def store(tmp_path: Path) -> SQLiteDocumentStore:
    """A freshly initialised SQLite store in a temp directory."""
    s = SQLiteDocumentStore(db_path=tmp_path / "virtuai.db")
    await s.initialize()
    return s


@pytest.fixture(autouse=True)
def _quiet_logging() -> None:
    """Route structlog to an uncached no-op logger so capsys output stays clean."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            redact_secrets,
            structlog.processors.KeyValueRenderer(),
        ],
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )
