"""StatusPropagator: mirrors a generation cycle's outcome onto its requirements document."""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from appbuilder.core.exceptions import NotFoundError
from appbuilder.db.models.requirements_document import RequirementsDocument
from appbuilder.schemas.requirements import RequirementsStatus

logger = structlog.get_logger(__name__)

PROPAGATED_STATUSES = frozenset({RequirementsStatus.COMPLETED, RequirementsStatus.FAILED})


class StatusPropagator:
    """Single-field status update on a RequirementsDocument.

    Runs in its own transaction. Only the terminal pipeline outcomes
    ("completed"/"failed") are accepted; "processing"/"draft" belong to
    extraction. Setting the status it already has is a no-op.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def propagate(self, requirements_doc_id: UUID, user_id: str, status: str) -> None:
        """Set the status of one of the user's documents.

        Raises:
            ValueError: status is not "completed" or "failed"
            NotFoundError: document no longer exists or belongs to another user
        """
        if status not in PROPAGATED_STATUSES:
            raise ValueError(f"Cannot propagate status {status!r}: expected one of {sorted(PROPAGATED_STATUSES)}")

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

            if document.status == status:
                return

            previous = document.status
            document.status = str(status)
            await session.commit()

        logger.info(
            "requirements_status_propagated",
            requirements_doc_id=str(requirements_doc_id),
            previous_status=previous,
            status=str(status),
        )
