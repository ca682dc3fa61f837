"""Utility modules for virtuai.

- **errors** -- Exception hierarchy rooted at VirtuAIError; each subclass
  carries a stable ErrorKind used at the caller-facing boundary.
- **concurrency** -- semaphore-bounded fan-out used for fragment embedding.
- **logging** -- structlog setup with a dual renderer and secret redaction.
"""

from virtuai.utils.concurrency import first_failure, throttled_gather
from virtuai.utils.errors import (
    ConfigurationError,
    EmptyContentError,
    ErrorKind,
    InvalidCredentialError,
    InvalidTransitionError,
    MissingCredentialError,
    NotFoundError,
    ProviderError,
    RateLimitedError,
    TooManyFragmentsError,
    VirtuAIError,
)
from virtuai.utils.logging import configure_logging, get_logger, mask_secret

__all__ = [
    "ConfigurationError",
    "EmptyContentError",
    "ErrorKind",
    "InvalidCredentialError",
    "InvalidTransitionError",
    "MissingCredentialError",
    "NotFoundError",
    "ProviderError",
    "RateLimitedError",
    "TooManyFragmentsError",
    "VirtuAIError",
    "configure_logging",
    "first_failure",
    "get_logger",
    "mask_secret",
    "throttled_gather",
]
