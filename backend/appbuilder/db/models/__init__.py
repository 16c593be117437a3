"""Re-export all models so Base.metadata sees them."""

from appbuilder.db.models.artifact import Artifact
from appbuilder.db.models.requirements_document import RequirementsDocument

__all__ = [
    "Artifact",
    "RequirementsDocument",
]
