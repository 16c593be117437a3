"""Artifact model — generated application code and its generation metadata."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid

from appbuilder.db.base import Base


class Artifact(Base):
    """One generated application.

    A generation cycle mutates the same row in place (every retry overwrites
    code/status/metadata); regeneration reuses the row instead of duplicating it.
    ``status`` is "completed" only while ``generated_code`` is the code that last
    passed static verification.
    """

    __tablename__ = "artifacts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False)
    requirements_document_id = Column(
        Uuid,
        ForeignKey("requirements_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False, default="")
    color_code = Column(String(7), nullable=False)

    generated_code = Column(Text, nullable=False, default="")  # "" until first successful generation
    status = Column(String(20), nullable=False, default="generating", index=True)  # generating, completed, failed
    error_message = Column(Text, nullable=True)

    # Metadata of the most recent generation call
    processing_time_ms = Column(Integer, nullable=False, default=0)
    tokens_used = Column(Integer, nullable=False, default=0)
    model_name = Column(String(100), nullable=True)
    generation_prompt = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("ix_artifacts_user_created", "user_id", "created_at"),)
