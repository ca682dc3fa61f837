"""Map opaque upstream failures onto the small, stable error taxonomy.

Classification prefers structured signals and only falls back to matching
substrings of the upstream message when nothing structured is available:

1. HTTP status code (401/403, 402/429, 5xx)
2. The provider's machine-readable error ``code`` / ``type``
3. Keywords in the error message.  Skipped for a 4xx that carries an
   unrecognised code, which is always a plain provider error

The resulting exception keeps the raw upstream text in ``message`` for
operators; user-facing wording is chosen later per audience in
:mod:`virtuai.services.messages`.
"""

from __future__ import annotations

from virtuai.utils.errors import (
    InvalidCredentialError,
    ProviderError,
    RateLimitedError,
    VirtuAIError,
)

_INVALID_CREDENTIAL_STATUS = frozenset({401, 403})
_RATE_LIMITED_STATUS = frozenset({402, 429})

_RATE_LIMITED_CODES = frozenset(
    {"insufficient_quota", "rate_limit_exceeded", "billing_hard_limit_reached", "billing_not_active"}
)
_INVALID_CREDENTIAL_CODES = frozenset({"invalid_api_key", "invalid_authentication", "account_deactivated"})

# Checked in order: quota wording wins over "invalid" wording because quota
# errors commonly mention the key as well.
_RATE_LIMITED_KEYWORDS = ("quota", "billing", "insufficient")
_INVALID_CREDENTIAL_KEYWORDS = ("api key", "api_key", "invalid", "unauthorized", "incorrect")


def classify_provider_failure(
    status_code: int | None,
    code: str | None,
    message: str,
    provider_name: str | None = None,
) -> VirtuAIError:
    """Return the classified exception for an upstream failure.

    Parameters
    ----------
    status_code:
        HTTP status, or ``None`` when the request never got a response.
    code:
        Structured error code or type from the response body, if any.
    message:
        Raw upstream error text.
    provider_name:
        Attached to the returned exception for log prefixes.

    Returns
    -------
    VirtuAIError
        One of :class:`RateLimitedError`, :class:`InvalidCredentialError`
        or :class:`ProviderError`.  The caller raises it.
    """
    detail = message or "Provider call failed"

    if status_code in _INVALID_CREDENTIAL_STATUS:
        return InvalidCredentialError(message=detail, provider_name=provider_name)
    if status_code in _RATE_LIMITED_STATUS:
        return RateLimitedError(message=detail, provider_name=provider_name)
    if status_code is not None and status_code >= 500:
        return ProviderError(message=detail, provider_name=provider_name)

    normalized_code = (code or "").lower()
    if normalized_code in _RATE_LIMITED_CODES or normalized_code.startswith("billing"):
        return RateLimitedError(message=detail, provider_name=provider_name)
    if normalized_code in _INVALID_CREDENTIAL_CODES:
        return InvalidCredentialError(message=detail, provider_name=provider_name)
    # e.g. invalid_request_error: the request was bad, not the key.
    if normalized_code and status_code is not None and 400 <= status_code < 500:
        return ProviderError(message=detail, provider_name=provider_name)

    lowered = detail.lower()
    if any(k in lowered for k in _RATE_LIMITED_KEYWORDS):
        return RateLimitedError(message=detail, provider_name=provider_name)
    if any(k in lowered for k in _INVALID_CREDENTIAL_KEYWORDS):
        return InvalidCredentialError(message=detail, provider_name=provider_name)

    return ProviderError(message=detail, provider_name=provider_name)
