"""Custom exception hierarchy for virtuai.

All application exceptions inherit from :class:`VirtuAIError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "sqlite", "blob") caused the failure, and
a stable :class:`ErrorKind` that the caller-facing boundary turns into an
audience-appropriate message.

The hierarchy follows the failure taxonomy of the knowledge core:

    VirtuAIError  (base -- unexpected failure, kind ``internal``)
    +-- NotFoundError           (entity or tenant scope mismatch)
    +-- MissingCredentialError  (tenant has no provider key)
    +-- InvalidCredentialError  (provider rejected the key)
    +-- RateLimitedError        (quota / billing / rate limit)
    +-- ProviderError           (any other upstream failure, incl. timeouts)
    +-- TooManyFragmentsError   (segmentation exceeded the safety ceiling)
    +-- EmptyContentError       (no extractable text)
    +-- ConfigurationError      (startup / missing config)
    +-- InvalidTransitionError  (illegal document status change)
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Stable, serialisable identifiers for every failure class."""

    NOT_FOUND = "not_found"
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_CREDENTIAL = "invalid_credential"
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"
    TOO_MANY_FRAGMENTS = "too_many_fragments"
    EMPTY_CONTENT = "empty_content"
    INTERNAL = "internal"


class VirtuAIError(Exception):
    """Base exception for all virtuai errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.

    ``message`` is operator-facing detail and may contain upstream text;
    it is never shown to end users directly (see
    :mod:`virtuai.services.messages`).
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Lookup / tenant-scope errors
# ---------------------------------------------------------------------------

class NotFoundError(VirtuAIError):
    """Raised when an entity does not exist within the caller's tenant scope.

    A document owned by another tenant or agent is reported exactly like a
    missing one, so no cross-tenant existence information leaks.
    """

    kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str = "Not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MissingCredentialError(VirtuAIError):
    """Raised when a tenant has no provider API key stored."""

    kind = ErrorKind.MISSING_CREDENTIAL

    def __init__(
        self,
        message: str = "Tenant has no provider credential",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External provider errors
# ---------------------------------------------------------------------------

class InvalidCredentialError(VirtuAIError):
    """Raised when the provider rejects the tenant's API key."""

    kind = ErrorKind.INVALID_CREDENTIAL

    def __init__(
        self,
        message: str = "Provider rejected the credential",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitedError(VirtuAIError):
    """Raised when the provider reports exhausted quota, billing or rate limits.

    The client never retries; callers decide whether to try again later.
    """

    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str = "Rate limit or quota exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderError(VirtuAIError):
    """Raised for any other upstream failure.

    Covers 5xx responses, connection failures, timeouts, and otherwise
    successful responses with a missing vector or missing completion text.
    """

    kind = ErrorKind.PROVIDER_ERROR

    def __init__(
        self,
        message: str = "Provider call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class TooManyFragmentsError(VirtuAIError):
    """Raised when a document segments into more fragments than allowed."""

    kind = ErrorKind.TOO_MANY_FRAGMENTS

    def __init__(
        self,
        count: int,
        limit: int,
        provider_name: str | None = None,
    ) -> None:
        self._count = count
        self._limit = limit
        super().__init__(
            message=f"Too many chunks ({count}). Please upload a smaller document.",
            provider_name=provider_name,
        )

    @property
    def count(self) -> int:
        return self._count

    @property
    def limit(self) -> int:
        return self._limit


class EmptyContentError(VirtuAIError):
    """Raised when no text could be extracted from a document."""

    kind = ErrorKind.EMPTY_CONTENT

    def __init__(
        self,
        message: str = "No extractable text found in this document",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Infrastructure errors
# ---------------------------------------------------------------------------

class ConfigurationError(VirtuAIError):
    """Raised when required configuration is missing or invalid."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidTransitionError(VirtuAIError):
    """Raised when a document status change violates the lifecycle."""

    def __init__(
        self,
        message: str = "Invalid document status transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
