"""RequirementsService: extract, list, read, update and delete requirements documents.

Extraction is one AI call with a fixed JSON schema. There is no
validation/retry loop here: a failed call marks the document "failed" and the
error is re-raised to the caller.
"""

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import structlog
from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from appbuilder.core.config import Settings, get_settings
from appbuilder.core.exceptions import GenerationServiceError, NotFoundError, RequirementsValidationError
from appbuilder.db.models.artifact import Artifact
from appbuilder.db.models.requirements_document import DEFAULT_COLOR_CODE, RequirementsDocument
from appbuilder.generation.client import GenerationClient, parse_json_object
from appbuilder.generation.prompts import EXTRACTION_SYSTEM_PROMPT
from appbuilder.schemas.requirements import (
    MAX_PROMPT_LENGTH,
    MAX_TITLE_LENGTH,
    MIN_PROMPT_LENGTH,
    ExtractedRequirements,
    RequirementsStatus,
    validate_color_code,
)

logger = structlog.get_logger(__name__)

MIN_UPDATED_PROMPT_LENGTH = 10


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


@dataclass(frozen=True)
class RequirementsPage:
    items: list[RequirementsDocument]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class RequirementsService:
    """Requirements document operations, all scoped by user_id.

    Args:
        client: GenerationClient used for the extraction call
        session_factory: SQLAlchemy async session factory
        settings: Extraction model and token limits
    """

    def __init__(
        self,
        client: GenerationClient,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ):
        self.client = client
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    async def extract(self, text: str, user_id: str, color_code: str | None = None) -> RequirementsDocument:
        """Turn a free-text app description into a requirements document.

        Raises:
            RequirementsValidationError: text or color code is invalid
            GenerationServiceError: the extraction call failed (document left "failed")
        """
        text = (text or "").strip()
        if len(text) < MIN_PROMPT_LENGTH:
            raise RequirementsValidationError(
                f"Please provide a requirement description of at least {MIN_PROMPT_LENGTH} characters."
            )
        if len(text) > MAX_PROMPT_LENGTH:
            raise RequirementsValidationError(
                f"Text input is too long. Please limit to {MAX_PROMPT_LENGTH} characters."
            )
        color_code = self._checked_color(color_code) if color_code is not None else DEFAULT_COLOR_CODE

        async with self.session_factory() as session:
            document = RequirementsDocument(
                user_id=user_id,
                prompt=text,
                title=f"Processing - {_today()}",
                color_code=color_code,
                extracted_requirements={},
                status=RequirementsStatus.PROCESSING.value,
                model_name=self.settings.extraction_model,
            )
            session.add(document)
            await session.commit()
            document_id = document.id

        logger.info("requirements_extraction_started", requirements_doc_id=str(document_id), user_id=user_id)
        start = time.monotonic()

        try:
            completion = await self.client.complete(
                EXTRACTION_SYSTEM_PROMPT,
                text,
                model=self.settings.extraction_model,
                max_tokens=self.settings.extraction_max_tokens,
            )
            try:
                requirements = ExtractedRequirements.model_validate(parse_json_object(completion.text))
            except (ValueError, ValidationError) as e:
                # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
                logger.warning("requirements_unparseable", requirements_doc_id=str(document_id), error=str(e))
                raise GenerationServiceError("Failed to parse requirements from AI response") from e
        except GenerationServiceError as e:
            await self._mark_failed(document_id, e.message, int((time.monotonic() - start) * 1000))
            raise

        elapsed_ms = int((time.monotonic() - start) * 1000)
        async with self.session_factory() as session:
            document = await self._select(session, document_id, user_id)
            document.title = (requirements.app_name or f"Requirements - {_today()}")[:MAX_TITLE_LENGTH]
            document.extracted_requirements = requirements.to_wire()
            document.status = RequirementsStatus.DRAFT.value
            document.processing_time_ms = elapsed_ms
            document.tokens_used = completion.tokens_used
            document.model_name = completion.model
            document.error_message = None
            await session.commit()

        logger.info(
            "requirements_extracted",
            requirements_doc_id=str(document_id),
            tokens_used=completion.tokens_used,
            processing_time_ms=elapsed_ms,
            feature_count=len(requirements.features),
        )
        return document

    async def list_documents(self, user_id: str, page: int = 1, limit: int = 10) -> RequirementsPage:
        """One page of the user's documents, newest first."""
        page = max(page, 1)
        limit = max(limit, 1)

        async with self.session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(RequirementsDocument).where(RequirementsDocument.user_id == user_id)
            )
            result = await session.execute(
                select(RequirementsDocument)
                .where(RequirementsDocument.user_id == user_id)
                .order_by(RequirementsDocument.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            return RequirementsPage(items=list(result.scalars().all()), page=page, limit=limit, total=total or 0)

    async def get_document(self, requirements_doc_id: UUID, user_id: str) -> RequirementsDocument:
        async with self.session_factory() as session:
            return await self._select(session, requirements_doc_id, user_id)

    async def update_document(
        self,
        requirements_doc_id: UUID,
        user_id: str,
        *,
        title: str | None = None,
        prompt: str | None = None,
        color_code: str | None = None,
        extracted_requirements: ExtractedRequirements | None = None,
    ) -> RequirementsDocument:
        """Update the given fields; omitted (None) fields are left untouched.

        Raises:
            NotFoundError: document missing or owned by another user
            RequirementsValidationError: a field fails validation
        """
        if title is not None:
            title = title.strip()
            if not title:
                raise RequirementsValidationError("Title is required and cannot be empty")
            if len(title) > MAX_TITLE_LENGTH:
                raise RequirementsValidationError(f"Title cannot be more than {MAX_TITLE_LENGTH} characters")
        if prompt is not None:
            prompt = prompt.strip()
            if len(prompt) < MIN_UPDATED_PROMPT_LENGTH:
                raise RequirementsValidationError(
                    f"Prompt must be at least {MIN_UPDATED_PROMPT_LENGTH} characters long"
                )
            if len(prompt) > MAX_PROMPT_LENGTH:
                raise RequirementsValidationError(f"Prompt cannot be more than {MAX_PROMPT_LENGTH} characters")
        if color_code is not None:
            color_code = self._checked_color(color_code)

        async with self.session_factory() as session:
            document = await self._select(session, requirements_doc_id, user_id)
            if title is not None:
                document.title = title
            if prompt is not None:
                document.prompt = prompt
            if color_code is not None:
                document.color_code = color_code
            if extracted_requirements is not None:
                document.extracted_requirements = extracted_requirements.to_wire()
            await session.commit()

        logger.info("requirements_updated", requirements_doc_id=str(requirements_doc_id), user_id=user_id)
        return document

    async def delete_document(self, requirements_doc_id: UUID, user_id: str) -> None:
        """Delete a document together with the apps generated from it."""
        async with self.session_factory() as session:
            document = await self._select(session, requirements_doc_id, user_id)
            result = await session.execute(
                delete(Artifact).where(
                    Artifact.requirements_document_id == requirements_doc_id,
                    Artifact.user_id == user_id,
                )
            )
            await session.delete(document)
            await session.commit()

        logger.info(
            "requirements_deleted",
            requirements_doc_id=str(requirements_doc_id),
            user_id=user_id,
            deleted_apps=result.rowcount,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _checked_color(color_code: str) -> str:
        try:
            return validate_color_code(color_code)
        except ValueError as e:
            raise RequirementsValidationError(str(e)) from e

    @staticmethod
    async def _select(session: AsyncSession, requirements_doc_id: UUID, user_id: str) -> RequirementsDocument:
        result = await session.execute(
            select(RequirementsDocument).where(
                RequirementsDocument.id == requirements_doc_id,
                RequirementsDocument.user_id == user_id,
            )
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise NotFoundError("Requirements document")
        return document

    async def _mark_failed(self, requirements_doc_id: UUID, error_message: str, elapsed_ms: int) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(RequirementsDocument).where(RequirementsDocument.id == requirements_doc_id)
            )
            document = result.scalar_one_or_none()
            if document is None:
                return
            document.status = RequirementsStatus.FAILED.value
            document.error_message = error_message
            document.processing_time_ms = elapsed_ms
            await session.commit()
        logger.warning("requirements_extraction_failed", requirements_doc_id=str(requirements_doc_id), error=error_message)
