"""Deterministic text segmentation into bounded fragments.

Two policies coexist, one per ingestion entry point:

1. **Paragraph** -- split on blank lines, then greedily pack whole
   paragraphs (joined by a blank line) into a fragment until the next one
   would overflow the limit.  A paragraph that alone exceeds the limit is
   hard-sliced into fixed windows, with no attempt to respect sentences.

2. **Fixed width** -- collapse every whitespace run to a single space and
   slice the result every ``limit`` characters.

Both policies guarantee the same invariants: identical input and limit
always yield an identical sequence, no fragment is empty, and no fragment
is longer than the limit.  Segmentation is pure; there is no I/O here.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from virtuai.config.settings import Settings
from virtuai.utils.logging import get_logger

logger = get_logger(__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_WHITESPACE_RUN = re.compile(r"\s+")
_PARAGRAPH_JOINER = "\n\n"


class SegmentationPolicy(str, Enum):  # noqa: UP042
    PARAGRAPH = "paragraph"
    FIXED_WIDTH = "fixed_width"


class SegmentationProfile(BaseModel):
    """A named (policy, limit) pair selected per ingestion entry point."""

    model_config = ConfigDict(frozen=True)

    name: str
    policy: SegmentationPolicy
    max_fragment_chars: int = Field(ge=1)


# ---------------------------------------------------------------------------
# Pure segmentation functions
# ---------------------------------------------------------------------------


def segment(
    text: str,
    max_fragment_chars: int,
    policy: SegmentationPolicy = SegmentationPolicy.PARAGRAPH,
) -> list[str]:
    """Split *text* into ordered fragments of at most *max_fragment_chars*.

    Parameters
    ----------
    text:
        Extracted document text.  Empty or whitespace-only input yields an
        empty list.
    max_fragment_chars:
        Upper bound on every fragment's length.  Must be at least 1.
    policy:
        Paragraph-aware packing or whitespace-collapsing fixed width.

    Returns
    -------
    list[str]
        Non-empty fragments in document order.

    Raises
    ------
    ValueError
        If *max_fragment_chars* is below 1.
    """
    if max_fragment_chars < 1:
        raise ValueError(f"max_fragment_chars must be >= 1, got {max_fragment_chars}")
    if not text or not text.strip():
        return []

    if policy is SegmentationPolicy.FIXED_WIDTH:
        return _segment_fixed_width(text, max_fragment_chars)
    return _segment_paragraphs(text, max_fragment_chars)


def _segment_fixed_width(text: str, limit: int) -> list[str]:
    collapsed = _WHITESPACE_RUN.sub(" ", text).strip()
    return _hard_slice(collapsed, limit)


def _segment_paragraphs(text: str, limit: int) -> list[str]:
    fragments: list[str] = []
    current = ""

    for paragraph in _split_paragraphs(text):
        if len(paragraph) > limit:
            if current:
                fragments.append(current)
                current = ""
            fragments.extend(_hard_slice(paragraph, limit))
            continue

        if not current:
            current = paragraph
        elif len(current) + len(_PARAGRAPH_JOINER) + len(paragraph) <= limit:
            current = f"{current}{_PARAGRAPH_JOINER}{paragraph}"
        else:
            fragments.append(current)
            current = paragraph

    if current:
        fragments.append(current)
    return fragments


def _split_paragraphs(text: str) -> list[str]:
    """Split *text* on blank lines, discarding blanks."""
    parts = _PARAGRAPH_BREAK.split(text.replace("\r\n", "\n"))
    return [p.strip() for p in parts if p.strip()]


def _hard_slice(text: str, limit: int) -> list[str]:
    """Cut *text* into consecutive windows of *limit* chars, dropping blank ones."""
    windows = (text[i : i + limit].strip() for i in range(0, len(text), limit))
    return [w for w in windows if w]


# ---------------------------------------------------------------------------
# Configured segmenter
# ---------------------------------------------------------------------------


class Segmenter:
    """Segmenter holding the named profiles configured for this deployment.

    Parameters
    ----------
    profiles:
        Available profiles keyed by name.  :meth:`from_settings` builds the
        standard ``paragraph`` and ``fixed`` profiles.
    """

    PARAGRAPH_PROFILE = "paragraph"
    FIXED_PROFILE = "fixed"

    def __init__(self, profiles: dict[str, SegmentationProfile]) -> None:
        if not profiles:
            raise ValueError("Segmenter requires at least one profile")
        self._profiles = dict(profiles)

    @classmethod
    def from_settings(cls, settings: Settings) -> Segmenter:
        return cls(
            {
                cls.PARAGRAPH_PROFILE: SegmentationProfile(
                    name=cls.PARAGRAPH_PROFILE,
                    policy=SegmentationPolicy.PARAGRAPH,
                    max_fragment_chars=settings.paragraph_fragment_chars,
                ),
                cls.FIXED_PROFILE: SegmentationProfile(
                    name=cls.FIXED_PROFILE,
                    policy=SegmentationPolicy.FIXED_WIDTH,
                    max_fragment_chars=settings.fixed_fragment_chars,
                ),
            }
        )

    def profile(self, name: str) -> SegmentationProfile:
        try:
            return self._profiles[name]
        except KeyError:
            raise ValueError(
                f"Unknown segmentation profile {name!r}; "
                f"expected one of {sorted(self._profiles)}"
            ) from None

    @property
    def profile_names(self) -> list[str]:
        return sorted(self._profiles)

    def segment(self, text: str, profile_name: str) -> list[str]:
        """Segment *text* with the named profile."""
        profile = self.profile(profile_name)
        fragments = segment(text, profile.max_fragment_chars, profile.policy)
        logger.debug(
            "segmentation_complete",
            profile=profile.name,
            num_fragments=len(fragments),
            input_chars=len(text),
        )
        return fragments
