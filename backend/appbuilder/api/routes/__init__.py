from fastapi import APIRouter

from appbuilder.api.routes import artifacts, health, requirements

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(requirements.router, prefix="/requirements", tags=["requirements"])
api_router.include_router(artifacts.router, prefix="/apps", tags=["apps"])
