"""Configuration module — exports Settings, load_config, and a module-level singleton."""

from virtuai.config.loader import build_settings, load_config
from virtuai.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "build_settings", "load_config", "settings"]
