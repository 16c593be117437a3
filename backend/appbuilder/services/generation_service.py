"""GenerationService: generate and regenerate apps from requirements documents.

Wires GenerationClient (AI code generation) + StaticVerifier (lint/compile)
through the RetryController, persisting every step on the Artifact row so a
crash or timeout always leaves an inspectable record.
"""

import re
import time
from dataclasses import dataclass
from uuid import UUID

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from appbuilder.core.config import Settings, get_settings
from appbuilder.core.exceptions import GenerationServiceError, NotFoundError, RequirementsValidationError
from appbuilder.db.models.artifact import Artifact
from appbuilder.db.models.requirements_document import RequirementsDocument
from appbuilder.generation.client import GenerationClient
from appbuilder.generation.prompts import build_prompt_for_document
from appbuilder.schemas.artifacts import ArtifactStatus
from appbuilder.schemas.requirements import ExtractedRequirements, RequirementsStatus
from appbuilder.services.retry_controller import RegenerationResult, RetryController
from appbuilder.services.status_propagator import StatusPropagator
from appbuilder.verification.verifier import StaticVerifier

logger = structlog.get_logger(__name__)

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

_VERSION_SUFFIX_RE = re.compile(r"^(?P<base>.*) - V(?P<version>\d+)$")


def next_version_name(name: str) -> str:
    """'Foo' -> 'Foo - V2' -> 'Foo - V3'. Result always fits MAX_NAME_LENGTH."""
    match = _VERSION_SUFFIX_RE.match(name)
    if match:
        base = match.group("base")
        version = int(match.group("version")) + 1
    else:
        base = name
        version = 2

    suffix = f" - V{version}"
    return base[: MAX_NAME_LENGTH - len(suffix)] + suffix


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of one generation cycle. ``artifact`` is always the persisted row."""

    artifact: Artifact
    success: bool
    attempts: int
    error_message: str | None = None


class GenerationService:
    """Generation orchestrator.

    Constructor uses dependency injection so tests can supply a scripted
    client and a verifier with fake toolchain passes.

    Args:
        client: GenerationClient (GenerationClientFake in tests)
        verifier: StaticVerifier
        session_factory: SQLAlchemy async session factory
        settings: Retry bound and other configuration
    """

    def __init__(
        self,
        client: GenerationClient,
        verifier: StaticVerifier,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ) -> None:
        self.client = client
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.status_propagator = StatusPropagator(session_factory)
        self.retry_controller = RetryController(
            verifier=verifier,
            session_factory=session_factory,
            status_propagator=self.status_propagator,
            settings=self.settings,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_artifact(self, requirements_doc_id: UUID, user_id: str) -> GenerationOutcome:
        """Create a new artifact for a requirements document and run one generation cycle.

        Raises:
            NotFoundError: document missing or owned by another user
            RequirementsValidationError: stored requirements do not match the schema
        """
        document = await self._load_document(requirements_doc_id, user_id)
        requirements = self._validated_requirements(document)

        async with self.session_factory() as session:
            artifact = Artifact(
                user_id=user_id,
                requirements_document_id=document.id,
                name=(requirements.app_name or document.title)[:MAX_NAME_LENGTH],
                description=document.prompt[:MAX_DESCRIPTION_LENGTH],
                color_code=document.color_code,
                generated_code="",
                status=ArtifactStatus.GENERATING.value,
            )
            session.add(artifact)
            await session.commit()
            artifact_id = artifact.id

        logger.info(
            "artifact_generation_started",
            artifact_id=str(artifact_id),
            requirements_doc_id=str(requirements_doc_id),
            user_id=user_id,
        )
        return await self._run_cycle(artifact_id, user_id, document, warning=None)

    async def regenerate_artifact(
        self,
        artifact_id: UUID,
        user_id: str,
        warning: str | None = None,
    ) -> GenerationOutcome:
        """Regenerate an existing artifact in place.

        A blank/absent warning bumps the version suffix of the name; a
        non-blank warning keeps the name and is fed to the first prompt.

        Raises:
            NotFoundError: artifact or its document missing or owned by another user
            RequirementsValidationError: stored requirements do not match the schema
        """
        warning = warning if warning is not None and warning.strip() else None

        async with self.session_factory() as session:
            artifact = await self._select_artifact(session, artifact_id, user_id)
            document = await self._load_document(artifact.requirements_document_id, user_id)
            self._validated_requirements(document)

            previous_name = artifact.name
            if warning is None:
                artifact.name = next_version_name(artifact.name)
            artifact.status = ArtifactStatus.GENERATING.value
            artifact.error_message = None
            await session.commit()

        logger.info(
            "artifact_regeneration_started",
            artifact_id=str(artifact_id),
            user_id=user_id,
            previous_name=previous_name,
            has_warning=warning is not None,
        )
        return await self._run_cycle(artifact_id, user_id, document, warning=warning)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _run_cycle(
        self,
        artifact_id: UUID,
        user_id: str,
        document: RequirementsDocument,
        warning: str | None,
    ) -> GenerationOutcome:
        # every log line of the cycle (verifier and toolchain included) carries both ids
        with structlog.contextvars.bound_contextvars(
            artifact_id=str(artifact_id),
            requirements_doc_id=str(document.id),
        ):
            first = await self._run_generation(artifact_id, user_id, document, warning)
            if not first.success:
                await self.status_propagator.propagate(document.id, user_id, RequirementsStatus.FAILED)
                artifact = await self._load_artifact(artifact_id, user_id)
                return GenerationOutcome(artifact=artifact, success=False, attempts=0, error_message=first.error_message)

            async def regenerate(warning: str | None, attempts: int) -> RegenerationResult:
                logger.info("artifact_retry_regeneration", attempts=attempts)
                return await self._run_generation(artifact_id, user_id, document, warning)

            outcome = await self.retry_controller.verify_and_retry(
                artifact_id=artifact_id,
                user_id=user_id,
                requirements_doc_id=document.id,
                regenerate_fn=regenerate,
            )

            artifact = await self._load_artifact(artifact_id, user_id)
            logger.info(
                "artifact_generation_finished",
                success=outcome.success,
                attempts=outcome.attempts,
                status=artifact.status,
            )
        return GenerationOutcome(
            artifact=artifact,
            success=outcome.success,
            attempts=outcome.attempts,
            error_message=outcome.error_message,
        )

    async def _run_generation(
        self,
        artifact_id: UUID,
        user_id: str,
        document: RequirementsDocument,
        warning: str | None,
    ) -> RegenerationResult:
        """Exactly one generation call; overwrites the artifact's code/status/metadata."""
        prompt = build_prompt_for_document(document, warning=warning)
        start = time.monotonic()

        try:
            generated = await self.client.generate(prompt)
        except GenerationServiceError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning(
                "artifact_generation_call_failed",
                artifact_id=str(artifact_id),
                error=e.message,
                processing_time_ms=elapsed_ms,
            )
            async with self.session_factory() as session:
                artifact = await self._select_artifact(session, artifact_id, user_id)
                artifact.status = ArtifactStatus.FAILED.value
                artifact.error_message = e.message
                artifact.processing_time_ms = elapsed_ms
                artifact.tokens_used = 0
                artifact.generation_prompt = prompt
                await session.commit()
            return RegenerationResult(success=False, error_message=e.message)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        async with self.session_factory() as session:
            artifact = await self._select_artifact(session, artifact_id, user_id)
            artifact.generated_code = generated.code
            # Provisional: the retry controller downgrades it if verification fails
            artifact.status = ArtifactStatus.COMPLETED.value
            artifact.error_message = None
            artifact.processing_time_ms = elapsed_ms
            artifact.tokens_used = generated.tokens_used
            artifact.model_name = generated.model
            artifact.generation_prompt = prompt
            await session.commit()

        logger.info(
            "artifact_code_generated",
            artifact_id=str(artifact_id),
            tokens_used=generated.tokens_used,
            processing_time_ms=elapsed_ms,
            code_length=len(generated.code),
        )
        return RegenerationResult(success=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validated_requirements(document: RequirementsDocument) -> ExtractedRequirements:
        try:
            return ExtractedRequirements.model_validate(document.extracted_requirements or {})
        except ValidationError as e:
            logger.warning("stored_requirements_invalid", requirements_doc_id=str(document.id), error=str(e))
            raise RequirementsValidationError("Stored requirements do not match the expected structure") from e

    async def _load_document(self, requirements_doc_id: UUID, user_id: str) -> RequirementsDocument:
        async with self.session_factory() as session:
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

    async def _load_artifact(self, artifact_id: UUID, user_id: str) -> Artifact:
        async with self.session_factory() as session:
            return await self._select_artifact(session, artifact_id, user_id)

    @staticmethod
    async def _select_artifact(session: AsyncSession, artifact_id: UUID, user_id: str) -> Artifact:
        result = await session.execute(
            select(Artifact).where(
                Artifact.id == artifact_id,
                Artifact.user_id == user_id,
            )
        )
        artifact = result.scalar_one_or_none()
        if artifact is None:
            raise NotFoundError("App")
        return artifact
