"""Shared FastAPI dependencies.

Override these in tests via ``app.dependency_overrides``.
"""

from appbuilder.generation.client import GenerationClient
from appbuilder.verification.verifier import StaticVerifier


def get_generation_client() -> GenerationClient:
    """Dependency that provides the AI generation client."""
    return GenerationClient()


def get_static_verifier() -> StaticVerifier:
    """Dependency that provides the static verifier (ESLint + Babel)."""
    return StaticVerifier()
