"""
Main FastAPI application entry point.

Run with ``uvicorn --factory assessment.main:create_app``.
"""
from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from prometheus_fastapi_instrumentator import Instrumentator

from assessment.api.assessments import router as assessments_router
from assessment.api.auth import router as auth_router
from assessment.api.learners import router as learners_router
from assessment.api.pools import router as pools_router
from assessment.core.config import Settings, get_settings
from assessment.core.errors import (
    AlreadySubmitted,
    AssessmentError,
    AssessmentExpired,
    AssessmentNotFound,
    ConfigurationError,
    NoQuestionsAvailable,
    PoolNotFound,
    QuestionNotFound,
    SandboxUnavailable,
)
from assessment.services.container import Services, build_services

logger = logging.getLogger(__name__)

ERROR_STATUS = [
    (ConfigurationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "configuration_error"),
    (PoolNotFound, status.HTTP_404_NOT_FOUND, "not_found"),
    (AssessmentNotFound, status.HTTP_404_NOT_FOUND, "not_found"),
    (QuestionNotFound, status.HTTP_404_NOT_FOUND, "not_found"),
    (AlreadySubmitted, status.HTTP_409_CONFLICT, "already_submitted"),
    (NoQuestionsAvailable, status.HTTP_409_CONFLICT, "no_questions"),
    (AssessmentExpired, status.HTTP_410_GONE, "expired"),
    (SandboxUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE, "sandbox_unavailable"),
]


def _error(status_code: int, message, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": error_type, "status_code": status_code}},
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def init_sentry(settings: Settings) -> None:
    if not settings.SENTRY_DSN:
        return
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AssessmentError)
    async def assessment_error_handler(request: Request, exc: AssessmentError):
        for error_cls, status_code, error_type in ERROR_STATUS:
            if isinstance(exc, error_cls):
                if isinstance(exc, SandboxUnavailable):
                    logger.error(f"Sandbox unavailable on {request.url.path}: {exc}")
                    return _error(status_code, "Code execution is temporarily unavailable", error_type)
                return _error(status_code, str(exc), error_type)
        logger.error(f"Unhandled engine error on {request.url.path}: {exc}", exc_info=True)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "An internal error occurred", "internal_error")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, exc.detail, "http_error")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "message": "Validation error",
                    "type": "validation_error",
                    "details": jsonable_encoder(exc.errors()),
                }
            },
        )


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the application; ``services`` is injected by tests, otherwise built at startup."""
    settings = settings or (services.settings if services else get_settings())
    configure_logging(settings)
    init_sentry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})...")
        app.state.services = services or build_services(settings)
        logger.info("Services initialized")
        yield
        logger.info(f"Shutting down {settings.APP_NAME}...")
        await app.state.services.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url=None if settings.is_production() else "/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.PROMETHEUS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    register_exception_handlers(app)

    prefix = settings.API_V1_PREFIX
    app.include_router(auth_router, prefix=f"{prefix}/auth", tags=["auth"])
    app.include_router(assessments_router, prefix=f"{prefix}/assessments", tags=["assessments"])
    app.include_router(pools_router, prefix=f"{prefix}/pools", tags=["pools"])
    app.include_router(learners_router, prefix=f"{prefix}/learners", tags=["learners"])

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "version": settings.APP_VERSION, "environment": settings.ENVIRONMENT}

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "assessment.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
    )
