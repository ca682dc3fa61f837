"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/config.yaml  — static defaults checked into the repo
  2. .env file           — local developer overrides (not committed)
  3. Environment vars    — set at deploy time

:func:`load_config` reads the YAML file first, then deep-merges the
environment-based :class:`Settings` values on top.  :func:`build_settings`
goes the other way: it flattens the merged tree back into a ``Settings``
instance so YAML-only keys such as the segmentation profiles take effect.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from virtuai.config.settings import Settings
from virtuai.utils.errors import ConfigurationError

# Maps ``section.key`` in config.yaml onto Settings field names.
_YAML_FIELD_MAP: dict[tuple[str, str], str] = {
    ("provider", "embedding_model"): "embedding_model",
    ("provider", "chat_model"): "default_chat_model",
    ("provider", "system_prompt"): "default_system_prompt",
    ("provider", "temperature"): "chat_temperature",
    ("provider", "timeout_seconds"): "provider_timeout_seconds",
    ("retrieval", "top_k"): "retrieval_top_k",
    ("retrieval", "context_max_chars"): "context_max_chars",
    ("ingestion", "max_fragments"): "max_fragments_per_document",
    ("ingestion", "max_document_chars"): "max_document_chars",
    ("ingestion", "embed_concurrency"): "embed_concurrency",
    ("segmentation", "paragraph_chars"): "paragraph_fragment_chars",
    ("segmentation", "fixed_chars"): "fixed_fragment_chars",
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read when omitted.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the YAML file exists but is not a mapping.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
        if not isinstance(yaml_config, dict):
            raise ConfigurationError(message=f"{path} must contain a mapping at the top level")
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "storage": {
            "database_path": settings.database_path,
            "blob_root": settings.blob_root,
            "blob_base_url": settings.blob_base_url,
        },
        "logging": {
            "level": settings.log_level,
        },
    }
    # Only explicitly set env vars override tuned YAML values.
    for (section, key), field in _YAML_FIELD_MAP.items():
        if field in settings.model_fields_set:
            env_overrides.setdefault(section, {})[key] = getattr(settings, field)

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def build_settings(path: str = "config/config.yaml") -> Settings:
    """Return Settings with YAML-tuned values applied beneath env overrides."""
    base = Settings()
    merged = load_config(path, settings=base)
    updates: dict[str, Any] = {}
    for (section, key), field in _YAML_FIELD_MAP.items():
        value = merged.get(section, {}).get(key)
        if value is not None:
            updates[field] = value
    try:
        return Settings.model_validate({**base.model_dump(), **updates})
    except ValueError as exc:
        raise ConfigurationError(message=f"Invalid configuration in {path}: {exc}") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
