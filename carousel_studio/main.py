"""FastAPI application entry point."""

from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from carousel_studio.api.v1.router import api_router
from carousel_studio.config import get_settings
from carousel_studio.core.errors import (
    AccessDeniedError,
    AssetError,
    ConcurrencyError,
    ConfigurationError,
    ContractViolation,
    InvalidBriefError,
    InvalidDocumentError,
    NotFoundError,
    StudioError,
    TransportError,
)
from carousel_studio.core.logging import get_logger, setup_logging
from carousel_studio.core.middleware import RequestContextMiddleware
from carousel_studio.database import engine

logger = get_logger(__name__)

_STATUS_BY_ERROR: list[tuple[type[StudioError], int]] = [
    (ConcurrencyError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AccessDeniedError, status.HTTP_403_FORBIDDEN),
    (InvalidBriefError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidDocumentError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (TransportError, status.HTTP_502_BAD_GATEWAY),
    (ContractViolation, status.HTTP_502_BAD_GATEWAY),
    (AssetError, status.HTTP_502_BAD_GATEWAY),
    (ConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: StudioError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging()
    app.state.redis = (
        aioredis.from_url(settings.redis_url, decode_responses=True)
        if settings.progress_events_enabled
        else None
    )
    logger.info("app_started", progress_events=settings.progress_events_enabled)
    try:
        yield
    finally:
        if app.state.redis is not None:
            await app.state.redis.aclose()
        await engine.dispose()
        logger.info("app_stopped")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Carousel Studio", debug=settings.debug, lifespan=lifespan)
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(StudioError)
    async def studio_error_handler(request: Request, exc: StudioError) -> JSONResponse:
        code = status_for(exc)
        log = logger.error if code >= 500 else logger.info
        log("request_failed", path=request.url.path, kind=exc.code, status_code=code, error=exc.message)
        return JSONResponse(status_code=code, content=exc.to_dict())

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
