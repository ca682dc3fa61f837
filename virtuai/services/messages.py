"""Audience-appropriate wording for classified failures.

The provider client only classifies failures.  This module decides what a
human is told, and the wording depends on who is asking:

* ``TENANT`` -- the workspace owner acting on their own credential gets
  actionable remediation ("update the key in Settings").
* ``PUBLIC`` -- an end user of an embedded agent gets a deflection that
  names no internal detail ("contact the website owner").

Raw upstream text (``VirtuAIError.message`` of provider errors) is never
returned from here.
"""

from __future__ import annotations

from enum import Enum

from virtuai.models.results import ErrorPayload
from virtuai.utils.errors import ErrorKind, VirtuAIError


class Audience(str, Enum):  # noqa: UP042
    TENANT = "tenant"
    PUBLIC = "public"


_FIXED_MESSAGES: dict[Audience, dict[ErrorKind, str]] = {
    Audience.TENANT: {
        ErrorKind.MISSING_CREDENTIAL: "Missing OpenAI key in Settings. Please save your OpenAI key first.",
        ErrorKind.RATE_LIMITED: (
            "This workspace OpenAI key has no quota/billing. Please update the key in Settings."
        ),
        ErrorKind.INVALID_CREDENTIAL: (
            "This workspace OpenAI key is invalid. Please update the key in Settings."
        ),
        ErrorKind.PROVIDER_ERROR: "The AI provider failed to respond. Please try again shortly.",
        ErrorKind.INTERNAL: "Something went wrong. Please try again.",
    },
    Audience.PUBLIC: {
        ErrorKind.MISSING_CREDENTIAL: "Bot owner has not added an OpenAI key.",
        ErrorKind.RATE_LIMITED: (
            "This bot owner's OpenAI account has no available quota/billing. "
            "Please contact the website owner."
        ),
        ErrorKind.INVALID_CREDENTIAL: (
            "This bot owner's OpenAI key is invalid. Please contact the website owner."
        ),
        ErrorKind.PROVIDER_ERROR: "The assistant is temporarily unavailable. Please try again later.",
        ErrorKind.NOT_FOUND: "Bot not found",
        ErrorKind.TOO_MANY_FRAGMENTS: "This assistant cannot answer right now. Please contact the website owner.",
        ErrorKind.EMPTY_CONTENT: "This assistant cannot answer right now. Please contact the website owner.",
        ErrorKind.INTERNAL: "Something went wrong. Please try again later.",
    },
}

# Kinds whose own message was written by this codebase (never by the
# provider) and is safe to show the tenant verbatim.
_SELF_DESCRIBING = frozenset({ErrorKind.NOT_FOUND, ErrorKind.TOO_MANY_FRAGMENTS, ErrorKind.EMPTY_CONTENT})


def error_kind(exc: BaseException) -> ErrorKind:
    """Return the taxonomy kind for any exception; unknown ones are ``INTERNAL``."""
    if isinstance(exc, VirtuAIError):
        return exc.kind
    return ErrorKind.INTERNAL


def friendly_message(exc: BaseException, audience: Audience) -> str:
    """Return the wording *audience* should see for *exc*."""
    kind = error_kind(exc)
    if audience is Audience.TENANT and kind in _SELF_DESCRIBING and isinstance(exc, VirtuAIError):
        return exc.message
    return _FIXED_MESSAGES[audience][kind]


def to_error_payload(exc: BaseException, audience: Audience) -> ErrorPayload:
    """Convert *exc* into the structured error returned across the boundary."""
    return ErrorPayload(kind=error_kind(exc), message=friendly_message(exc, audience))
