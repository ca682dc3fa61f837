"""Structured results returned across the caller-facing boundary."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from virtuai.models.document import DocumentStatus, IngestionMode
from virtuai.utils.errors import ErrorKind


class IngestionResult(BaseModel):
    """Summary of one successful ingestion run."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    title: str | None = None
    mode: IngestionMode
    fragment_count: int = Field(ge=0)
    status: DocumentStatus = DocumentStatus.PROCESSED
    truncated: bool = Field(default=False, description="Whether extracted text was cut to the bound.")
    superseded: bool = Field(
        default=False,
        description="A concurrent run committed first; counts describe that run's fragments.",
    )
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds.")


class ErrorPayload(BaseModel):
    """A classified failure with audience-appropriate wording.

    ``message`` never contains raw provider text.
    """

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
