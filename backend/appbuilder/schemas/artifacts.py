"""Pydantic schemas for generated app artifacts."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ArtifactStatus(StrEnum):
    """Artifact status within a generation cycle."""

    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerateAppRequest(BaseModel):
    """Request body for POST /apps/generate."""

    requirement_id: UUID


class RegenerateAppRequest(BaseModel):
    """Request body for POST /apps/regenerate.

    A non-blank warning_message is fed to the generator as feedback and keeps
    the app name unchanged; otherwise the name gets the next version suffix.
    """

    app_id: UUID
    warning_message: str | None = None


class GenerationMetadata(BaseModel):
    processing_time_ms: int
    tokens_used: int
    model_name: str | None = None
    generation_prompt: str | None = None


class ArtifactSummary(BaseModel):
    """List-view representation (no code payload)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str
    status: ArtifactStatus
    requirements_document_id: UUID
    color_code: str
    created_at: datetime
    updated_at: datetime


class ArtifactResponse(ArtifactSummary):
    """Full artifact including code and generation metadata."""

    generated_code: str
    error_message: str | None = None
    metadata: GenerationMetadata


class GenerationResponse(BaseModel):
    """Successful generate/regenerate response."""

    success: bool
    attempts: int
    app: ArtifactResponse
    message: str
