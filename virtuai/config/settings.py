"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from (highest priority first):
#
#   1. Environment variables — e.g. MAX_FRAGMENTS_PER_DOCUMENT=150
#   2. .env file in the working directory
#   3. The defaults declared below
#
# Field ``embed_concurrency`` maps to env var ``EMBED_CONCURRENCY``.
#
# There is deliberately no platform-wide OpenAI key here: every provider
# call uses the requesting tenant's own stored credential.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """virtuai application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Storage ===
    database_path: str = "data/virtuai.db"
    blob_root: str = "data/blobs"
    blob_base_url: str = ""  # When set, raw documents are fetched over HTTP instead of from disk.

    # === Provider ===
    provider_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs.
    embedding_model: str = "text-embedding-3-small"
    default_chat_model: str = "gpt-4o-mini"
    default_system_prompt: str = "You are a helpful assistant."
    chat_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    provider_timeout_seconds: float = Field(default=25.0, gt=0)
    provider_connect_timeout_seconds: float = Field(default=5.0, gt=0)

    # === Retrieval ===
    retrieval_top_k: int = Field(default=6, ge=1)
    context_max_chars: int = Field(default=8000, ge=1)

    # === Ingestion ===
    max_fragments_per_document: int = Field(default=200, ge=1)
    max_document_chars: int = Field(default=200_000, ge=1)
    paragraph_fragment_chars: int = Field(default=1200, ge=1)
    fixed_fragment_chars: int = Field(default=900, ge=1)
    download_timeout_seconds: float = Field(default=30.0, gt=0)
    extract_timeout_seconds: float = Field(default=60.0, gt=0)
    # 1 keeps embedding strictly sequential; higher values fan out with a cap.
    embed_concurrency: int = Field(default=1, ge=1)

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_allowed_origins: str = "*"

    def get_cors_origins(self) -> list[str]:
        """Return the comma-separated CORS origins as a list."""
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]
