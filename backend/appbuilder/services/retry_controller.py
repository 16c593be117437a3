"""RetryController: verify an artifact and re-prompt on verification failure.

State machine per generation cycle:

    unverified -> verified-ok                          (terminal success)
    unverified -> retrying (x k) -> exhausted           (terminal failure)

Only static-verification failures are retried, and each retry feeds the
verifier's diagnostic back to the generator as the prompt warning. A failed
regeneration (AI service error) ends the cycle immediately, and so does any
unexpected exception from the verifier or the generator: both are persisted
as "failed" on the artifact and its document.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from appbuilder.core.config import Settings, get_settings
from appbuilder.core.exceptions import NotFoundError
from appbuilder.db.models.artifact import Artifact
from appbuilder.schemas.artifacts import ArtifactStatus
from appbuilder.schemas.requirements import RequirementsStatus
from appbuilder.services.status_propagator import StatusPropagator
from appbuilder.verification.verifier import StaticVerifier

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RegenerationResult:
    """Outcome of one regeneration call made on behalf of the retry loop."""

    success: bool
    error_message: str | None = None


@dataclass(frozen=True)
class ValidationOutcome:
    success: bool
    attempts: int
    artifact_id: UUID
    error_message: str | None = None


RegenerateFn = Callable[..., Awaitable[RegenerationResult]]


class RetryController:
    """Owns the verify -> regenerate loop for one artifact.

    Args:
        verifier: StaticVerifier (or any object with ``async verify(code)``)
        session_factory: SQLAlchemy async session factory
        status_propagator: Keeps the requirements document status in step
        settings: Source of the default retry bound
    """

    def __init__(
        self,
        verifier: StaticVerifier,
        session_factory: async_sessionmaker[AsyncSession],
        status_propagator: StatusPropagator | None = None,
        settings: Settings | None = None,
    ):
        self.verifier = verifier
        self.session_factory = session_factory
        self.status_propagator = status_propagator or StatusPropagator(session_factory)
        self.settings = settings or get_settings()

    async def verify_and_retry(
        self,
        artifact_id: UUID,
        user_id: str,
        requirements_doc_id: UUID,
        regenerate_fn: RegenerateFn,
        max_retries: int | None = None,
    ) -> ValidationOutcome:
        """Verify the artifact's code, regenerating with feedback until it passes.

        At most ``max_retries + 1`` verifications and ``max_retries``
        regenerations. Before returning, the artifact and its requirements
        document both carry the cycle's terminal status.

        Args:
            artifact_id: Artifact to verify (re-read before every verification)
            user_id: Owner, used to scope every read
            requirements_doc_id: Document that receives the propagated status
            regenerate_fn: ``await regenerate_fn(warning=..., attempts=...)``
                performs exactly one generation call and overwrites the artifact
            max_retries: Retry bound, defaults to settings.code_validation_max_retries

        Raises:
            ValueError: max_retries is negative
            NotFoundError: the artifact disappeared mid-cycle
        """
        if max_retries is None:
            max_retries = self.settings.code_validation_max_retries
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        attempts = 0
        last_error: str | None = None

        while attempts <= max_retries:
            artifact = await self._load_artifact(artifact_id, user_id)
            try:
                result = await self.verifier.verify(artifact.generated_code)
            except Exception as e:
                return await self._abort(
                    artifact_id, user_id, requirements_doc_id, attempts, f"Verification error: {e}", "verify"
                )

            if result.valid:
                await self._finish(artifact_id, user_id, ArtifactStatus.COMPLETED, None)
                await self.status_propagator.propagate(requirements_doc_id, user_id, RequirementsStatus.COMPLETED)
                logger.info("artifact_verified", artifact_id=str(artifact_id), attempts=attempts)
                return ValidationOutcome(success=True, attempts=attempts, artifact_id=artifact_id)

            last_error = result.diagnostic
            logger.info(
                "artifact_verification_failed",
                artifact_id=str(artifact_id),
                attempts=attempts,
                max_retries=max_retries,
                diagnostic=last_error,
            )

            if attempts == max_retries:
                await self._finish(artifact_id, user_id, ArtifactStatus.FAILED, last_error)
                await self.status_propagator.propagate(requirements_doc_id, user_id, RequirementsStatus.FAILED)
                logger.warning("artifact_retries_exhausted", artifact_id=str(artifact_id), attempts=attempts)
                return ValidationOutcome(
                    success=False,
                    attempts=attempts,
                    artifact_id=artifact_id,
                    error_message=last_error,
                )

            try:
                regeneration = await regenerate_fn(warning=last_error, attempts=attempts)
            except Exception as e:
                return await self._abort(
                    artifact_id, user_id, requirements_doc_id, attempts, f"Regeneration error: {e}", "regenerate"
                )
            if not regeneration.success:
                await self._finish(artifact_id, user_id, ArtifactStatus.FAILED, regeneration.error_message)
                await self.status_propagator.propagate(requirements_doc_id, user_id, RequirementsStatus.FAILED)
                logger.warning(
                    "artifact_regeneration_failed",
                    artifact_id=str(artifact_id),
                    attempts=attempts,
                    error=regeneration.error_message,
                )
                return ValidationOutcome(
                    success=False,
                    attempts=attempts,
                    artifact_id=artifact_id,
                    error_message=regeneration.error_message,
                )

            attempts += 1

        # Unreachable: the attempts == max_retries branch always returns
        raise RuntimeError("retry loop exited without a terminal outcome")

    async def _load_artifact(self, artifact_id: UUID, user_id: str) -> Artifact:
        async with self.session_factory() as session:
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

    async def _finish(self, artifact_id: UUID, user_id: str, status: str, error_message: str | None) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Artifact).where(
                    Artifact.id == artifact_id,
                    Artifact.user_id == user_id,
                )
            )
            artifact = result.scalar_one_or_none()
            if artifact is None:
                raise NotFoundError("App")

            artifact.status = str(status)
            artifact.error_message = error_message
            await session.commit()

    async def _abort(
        self,
        artifact_id: UUID,
        user_id: str,
        requirements_doc_id: UUID,
        attempts: int,
        error_message: str,
        stage: str,
    ) -> ValidationOutcome:
        """Persist a failed cycle after an unexpected verifier or generator error."""
        logger.error(
            "artifact_cycle_aborted",
            artifact_id=str(artifact_id),
            attempts=attempts,
            stage=stage,
            error=error_message,
            exc_info=True,
        )
        await self._finish(artifact_id, user_id, ArtifactStatus.FAILED, error_message)
        await self.status_propagator.propagate(requirements_doc_id, user_id, RequirementsStatus.FAILED)
        return ValidationOutcome(
            success=False,
            attempts=attempts,
            artifact_id=artifact_id,
            error_message=error_message,
        )
