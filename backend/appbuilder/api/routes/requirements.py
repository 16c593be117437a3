"""Requirements API routes: extraction from free text plus CRUD."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from appbuilder.api.dependencies import get_generation_client
from appbuilder.core.auth import AuthUser, require_auth
from appbuilder.db.base import get_session_factory
from appbuilder.generation.client import GenerationClient
from appbuilder.schemas.requirements import (
    ExtractRequirementsRequest,
    Pagination,
    RequirementsListResponse,
    RequirementsResponse,
    UpdateRequirementsRequest,
)
from appbuilder.services.requirements_service import RequirementsService

router = APIRouter()


def _service(client: GenerationClient | None = None) -> RequirementsService:
    return RequirementsService(client=client, session_factory=get_session_factory())


@router.post("", response_model=RequirementsResponse, status_code=status.HTTP_201_CREATED)
async def extract_requirements(
    request: ExtractRequirementsRequest,
    user: AuthUser = Depends(require_auth),
    client: GenerationClient = Depends(get_generation_client),
):
    """Extract structured requirements from a natural-language description.

    Returns 400 for text outside 100-1500 characters, 500 when the AI call fails.
    """
    document = await _service(client).extract(request.text, user.user_id, color_code=request.color_code)
    return RequirementsResponse.model_validate(document)


@router.get("", response_model=RequirementsListResponse)
async def list_requirements(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: AuthUser = Depends(require_auth),
):
    """Paginated list of the caller's requirements documents, newest first."""
    result = await _service().list_documents(user.user_id, page=page, limit=limit)
    return RequirementsListResponse(
        data=[RequirementsResponse.model_validate(document) for document in result.items],
        pagination=Pagination(page=result.page, limit=result.limit, total=result.total, pages=result.pages),
    )


@router.get("/{requirement_id}", response_model=RequirementsResponse)
async def get_requirement(requirement_id: UUID, user: AuthUser = Depends(require_auth)):
    document = await _service().get_document(requirement_id, user.user_id)
    return RequirementsResponse.model_validate(document)


@router.put("/{requirement_id}", response_model=RequirementsResponse)
async def update_requirement(
    requirement_id: UUID,
    request: UpdateRequirementsRequest,
    user: AuthUser = Depends(require_auth),
):
    document = await _service().update_document(
        requirement_id,
        user.user_id,
        title=request.title,
        prompt=request.prompt,
        color_code=request.color_code,
        extracted_requirements=request.extracted_requirements,
    )
    return RequirementsResponse.model_validate(document)


@router.delete("/{requirement_id}")
async def delete_requirement(requirement_id: UUID, user: AuthUser = Depends(require_auth)):
    """Delete a requirements document and every app generated from it."""
    await _service().delete_document(requirement_id, user.user_id)
    return {"success": True, "message": "Requirement deleted successfully"}
