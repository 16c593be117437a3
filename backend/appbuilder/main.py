"""Mini AI App Builder backend: FastAPI application entry point."""

import uuid
from contextlib import asynccontextmanager

# configure logging before the other appbuilder imports: structlog caches the
# processor chain on first use
from appbuilder.core.config import get_settings as _get_settings_early
from appbuilder.core.logging import configure_from_settings

configure_from_settings(_get_settings_early())

import structlog  # noqa: E402
from fastapi import FastAPI, HTTPException, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402

from appbuilder.api.routes import api_router  # noqa: E402
from appbuilder.core.config import get_settings  # noqa: E402
from appbuilder.core.exceptions import (  # noqa: E402
    AppBuilderError,
    NotFoundError,
    RequirementsValidationError,
)
from appbuilder.db import close_db, init_db  # noqa: E402
from appbuilder.middleware.correlation import get_correlation_id, setup_correlation_middleware  # noqa: E402

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db()
    logger.info("db_initialized")

    yield

    logger.info("shutdown_begin")
    await close_db()
    logger.info("shutdown_complete")


def _status_for(exc: AppBuilderError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, RequirementsValidationError):
        return 400
    # GenerationServiceError and anything else: the AI call failed upstream
    return 500


async def app_builder_exception_handler(request: Request, exc: AppBuilderError) -> JSONResponse:
    """Domain errors -> HTTP status with the same debug_id body as HTTPException."""
    debug_id = str(uuid.uuid4())
    status_code = _status_for(exc)

    logger.warning(
        "domain_exception",
        status_code=status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        error=str(exc),
        error_type=type(exc).__name__,
    )

    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "debug_id": debug_id},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking.

    Logs errors server-side with full context, returns sanitized response to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(AppBuilderError)(app_builder_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Turns natural-language app descriptions into verified React apps",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "appbuilder.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
