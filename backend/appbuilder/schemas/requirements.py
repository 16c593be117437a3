"""Pydantic schemas for requirements documents.

ExtractedRequirements is the typed boundary for the JSON the extraction call
returns: the AI speaks camelCase (``appName``, ``userRole``), Python code uses
snake_case, unknown keys are dropped and missing lists default to empty.
"""

import re
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")

MIN_PROMPT_LENGTH = 100
MAX_PROMPT_LENGTH = 1500
MAX_TITLE_LENGTH = 150


class RequirementsStatus(StrEnum):
    """Lifecycle of a requirements document."""

    PROCESSING = "processing"
    DRAFT = "draft"
    COMPLETED = "completed"
    FAILED = "failed"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Feature(_CamelModel):
    """One feature of the requested application."""

    title: str
    description: str
    category: str = ""
    user_role: str = ""
    hint: str = ""


class ExtractedRequirements(_CamelModel):
    """Structured requirements distilled from the user's description."""

    app_name: str = ""
    entities: list[str] = Field(default_factory=list)
    roles: list[str] = Field(default_factory=list)
    features: list[Feature] = Field(default_factory=list)
    technical_requirements: list[str] = Field(default_factory=list)
    business_rules: list[str] = Field(default_factory=list)

    @field_validator("entities", "roles", "technical_requirements", "business_rules", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def to_wire(self) -> dict:
        """camelCase dict, the shape stored in the database and shown to the AI."""
        return self.model_dump(by_alias=True)


def validate_color_code(value: str) -> str:
    if not HEX_COLOR_RE.match(value):
        raise ValueError("Color code must be a valid hex color (e.g., #1976d2)")
    return value


# ==================== REQUEST SCHEMAS ====================


class ExtractRequirementsRequest(BaseModel):
    """Request body for POST /requirements."""

    text: str
    color_code: str | None = None

    @field_validator("color_code")
    @classmethod
    def _check_color(cls, value: str | None) -> str | None:
        return validate_color_code(value) if value is not None else value


class UpdateRequirementsRequest(BaseModel):
    """Request body for PUT /requirements/{id}. Omitted fields are left untouched."""

    title: str | None = None
    prompt: str | None = None
    color_code: str | None = None
    extracted_requirements: ExtractedRequirements | None = None

    @field_validator("color_code")
    @classmethod
    def _check_color(cls, value: str | None) -> str | None:
        return validate_color_code(value) if value is not None else value


# ==================== RESPONSE SCHEMAS ====================


class RequirementsResponse(BaseModel):
    """A requirements document as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    prompt: str
    color_code: str
    extracted_requirements: dict
    status: RequirementsStatus
    processing_time_ms: int
    tokens_used: int
    model_name: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class RequirementsListResponse(BaseModel):
    data: list[RequirementsResponse]
    pagination: Pagination
