"""ArtifactService: read and delete generated apps.

User isolation: every query filters on user_id, and a record owned by someone
else is reported exactly like a missing one (NotFoundError -> 404).
"""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from appbuilder.core.exceptions import NotFoundError
from appbuilder.db.models.artifact import Artifact
from appbuilder.db.models.requirements_document import RequirementsDocument

logger = structlog.get_logger(__name__)


class ArtifactService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_artifacts(self, user_id: str) -> list[Artifact]:
        """All of the user's apps, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Artifact).where(Artifact.user_id == user_id).order_by(Artifact.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_artifact(self, artifact_id: UUID, user_id: str) -> Artifact:
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

    async def list_for_requirement(self, requirements_doc_id: UUID, user_id: str) -> list[Artifact]:
        """Apps generated from one requirements document.

        Raises:
            NotFoundError: the document is missing or owned by another user
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(RequirementsDocument.id).where(
                    RequirementsDocument.id == requirements_doc_id,
                    RequirementsDocument.user_id == user_id,
                )
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError("Requirements document")

            result = await session.execute(
                select(Artifact)
                .where(
                    Artifact.requirements_document_id == requirements_doc_id,
                    Artifact.user_id == user_id,
                )
                .order_by(Artifact.created_at.desc())
            )
            return list(result.scalars().all())

    async def delete_artifact(self, artifact_id: UUID, user_id: str) -> None:
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

            await session.delete(artifact)
            await session.commit()

        logger.info("artifact_deleted", artifact_id=str(artifact_id), user_id=user_id)
