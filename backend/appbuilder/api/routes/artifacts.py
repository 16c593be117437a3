"""App (artifact) API routes: generation, regeneration, retrieval and deletion."""

from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from appbuilder.api.dependencies import get_generation_client, get_static_verifier
from appbuilder.core.auth import AuthUser, require_auth
from appbuilder.db.base import get_session_factory
from appbuilder.db.models.artifact import Artifact
from appbuilder.generation.client import GenerationClient
from appbuilder.schemas.artifacts import (
    ArtifactResponse,
    ArtifactSummary,
    GenerateAppRequest,
    GenerationMetadata,
    GenerationResponse,
    RegenerateAppRequest,
)
from appbuilder.services.artifact_service import ArtifactService
from appbuilder.services.generation_service import GenerationOutcome, GenerationService
from appbuilder.verification.verifier import StaticVerifier

router = APIRouter()


def to_artifact_response(artifact: Artifact) -> ArtifactResponse:
    """ORM row -> API model (metadata is nested, so no from_attributes shortcut)."""
    return ArtifactResponse(
        id=artifact.id,
        name=artifact.name,
        description=artifact.description,
        status=artifact.status,
        requirements_document_id=artifact.requirements_document_id,
        color_code=artifact.color_code,
        created_at=artifact.created_at,
        updated_at=artifact.updated_at,
        generated_code=artifact.generated_code,
        error_message=artifact.error_message,
        metadata=GenerationMetadata(
            processing_time_ms=artifact.processing_time_ms,
            tokens_used=artifact.tokens_used,
            model_name=artifact.model_name,
            generation_prompt=artifact.generation_prompt,
        ),
    )


def _generation_response(outcome: GenerationOutcome, success_message: str, failure_error: str):
    """200 with the verified app, or 500 carrying the failed app's id and last error."""
    if not outcome.success:
        return JSONResponse(
            status_code=500,
            content={
                "error": failure_error,
                "details": outcome.error_message,
                "app_id": str(outcome.artifact.id),
            },
        )
    return GenerationResponse(
        success=True,
        attempts=outcome.attempts,
        app=to_artifact_response(outcome.artifact),
        message=success_message,
    )


def _generation_service(client: GenerationClient, verifier: StaticVerifier) -> GenerationService:
    return GenerationService(client=client, verifier=verifier, session_factory=get_session_factory())


@router.post("/generate", response_model=GenerationResponse)
async def generate_app(
    request: GenerateAppRequest,
    user: AuthUser = Depends(require_auth),
    client: GenerationClient = Depends(get_generation_client),
    verifier: StaticVerifier = Depends(get_static_verifier),
):
    """Generate a new app from a requirements document.

    Runs the whole generate -> verify -> retry cycle before responding.
    """
    outcome = await _generation_service(client, verifier).generate_artifact(request.requirement_id, user.user_id)
    return _generation_response(outcome, "App generated successfully", "Failed to generate app")


@router.post("/regenerate", response_model=GenerationResponse)
async def regenerate_app(
    request: RegenerateAppRequest,
    user: AuthUser = Depends(require_auth),
    client: GenerationClient = Depends(get_generation_client),
    verifier: StaticVerifier = Depends(get_static_verifier),
):
    """Regenerate an existing app in place, optionally with user feedback."""
    outcome = await _generation_service(client, verifier).regenerate_artifact(
        request.app_id,
        user.user_id,
        warning=request.warning_message,
    )
    return _generation_response(outcome, "App regenerated successfully", "Failed to regenerate app")


@router.get("", response_model=list[ArtifactSummary])
async def list_apps(user: AuthUser = Depends(require_auth)):
    artifacts = await ArtifactService(get_session_factory()).list_artifacts(user.user_id)
    return [ArtifactSummary.model_validate(artifact) for artifact in artifacts]


@router.get("/requirement/{requirement_id}", response_model=list[ArtifactSummary])
async def list_apps_for_requirement(requirement_id: UUID, user: AuthUser = Depends(require_auth)):
    artifacts = await ArtifactService(get_session_factory()).list_for_requirement(requirement_id, user.user_id)
    return [ArtifactSummary.model_validate(artifact) for artifact in artifacts]


@router.get("/{app_id}", response_model=ArtifactResponse)
async def get_app(app_id: UUID, user: AuthUser = Depends(require_auth)):
    artifact = await ArtifactService(get_session_factory()).get_artifact(app_id, user.user_id)
    return to_artifact_response(artifact)


@router.delete("/{app_id}")
async def delete_app(app_id: UUID, user: AuthUser = Depends(require_auth)):
    await ArtifactService(get_session_factory()).delete_artifact(app_id, user.user_id)
    return {"success": True, "message": "App deleted successfully"}
