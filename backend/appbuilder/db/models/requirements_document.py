"""RequirementsDocument model — structured extraction of a user's app description."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid

from appbuilder.db.base import Base, JSONType

DEFAULT_COLOR_CODE = "#1976d2"


class RequirementsDocument(Base):
    """Requirements extracted from a natural-language prompt.

    Status lifecycle:
    - processing: extraction call in flight
    - draft: extraction done, no app generated yet
    - completed: the latest generation cycle produced verified code
    - failed: extraction failed, or the latest generation cycle exhausted its retries
    """

    __tablename__ = "requirements_documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)

    prompt = Column(String(1500), nullable=False)
    title = Column(String(150), nullable=False)
    color_code = Column(String(7), nullable=False, default=DEFAULT_COLOR_CODE)

    # Validated through ExtractedRequirements before use; {} while processing
    extracted_requirements = Column(JSONType, nullable=False, default=dict)

    status = Column(String(20), nullable=False, default="processing", index=True)

    # Extraction metadata
    processing_time_ms = Column(Integer, nullable=False, default=0)
    tokens_used = Column(Integer, nullable=False, default=0)
    model_name = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
