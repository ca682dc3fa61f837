"""Model provider adapters and upstream failure classification."""

from virtuai.providers.llm.classification import classify_provider_failure
from virtuai.providers.llm.openai_provider_client import OpenAIProviderClient

__all__ = ["OpenAIProviderClient", "classify_provider_failure"]
