"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, status
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from infrastructure.database.connection_manager import ConnectionManager
from infrastructure.database.dependencies import get_connection_manager
from infrastructure.database.exceptions import DatabaseConnectionError
from infrastructure.http import (
    BodySizeLimitMiddleware,
    CorsPolicy,
    RequestContextMiddleware,
    RequestTimeoutMiddleware,
    register_exception_handlers,
)
from infrastructure.logging import configure_logging
from infrastructure.observability import DefaultStartupProbe
from infrastructure.settings import AppSettings, get_settings

COMPRESSION_MINIMUM_BYTES = 1024
COMPRESSION_LEVEL = 6


def _resolve_connection_manager(app: FastAPI) -> ConnectionManager:
    """Resolve the manager the same way request handlers do (honours overrides)."""
    provider = app.dependency_overrides.get(
        get_connection_manager, get_connection_manager
    )
    return provider()


@asynccontextmanager
async def signet_lifespan(app: FastAPI):
    """Application lifespan context.

    Manages:
    - Configuration check (a missing DATABASE_URL aborts startup)
    - Connection warm-up (failure is logged; requests still initialize lazily)
    - Pool disposal on shutdown (SIGTERM/SIGINT via the ASGI server)
    """
    probe = DefaultStartupProbe()
    settings = get_settings()
    probe.application_starting(
        environment=settings.environment, version=settings.version
    )

    manager = _resolve_connection_manager(app)
    try:
        await manager.initialize()
    except DatabaseConnectionError as e:
        probe.database_warmup_failed(error=str(e))

    yield

    await manager.shutdown()
    probe.application_stopped()


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Build the application with the shared request lifecycle plumbing.

    Both the long-running server and the serverless function use this
    factory, so CORS, compression, limits and logging cannot drift apart.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Document e-signature backend",
        version=settings.version,
        lifespan=signet_lifespan,
    )

    cors_policy = CorsPolicy.from_settings(settings)
    DefaultStartupProbe().cors_configured(
        origins=list(cors_policy.origins),
        allow_any_origin=cors_policy.allow_any_origin,
    )

    # Added innermost first; CORS ends up outermost.
    # GZip stays innermost: behind BaseHTTPMiddleware it only sees streamed
    # bodies and minimum_size never applies.
    app.add_middleware(
        GZipMiddleware,
        minimum_size=COMPRESSION_MINIMUM_BYTES,
        compresslevel=COMPRESSION_LEVEL,
    )
    app.add_middleware(RequestTimeoutMiddleware, settings=settings)
    app.add_middleware(BodySizeLimitMiddleware, settings=settings)
    app.add_middleware(RequestContextMiddleware, cors_policy=cors_policy)
    app.add_middleware(CORSMiddleware, **cors_policy.middleware_options())

    register_exception_handlers(app)

    app.add_api_route("/health", health, methods=["GET"])
    app.add_api_route("/health/db", health_db, methods=["GET"])

    return app


def health() -> dict:
    """Basic health check endpoint."""
    return {"status": "ok"}


async def health_db(
    manager: Annotated[ConnectionManager, Depends(get_connection_manager)],
) -> JSONResponse:
    """Check database connection health.

    Returns ``{"healthy", "latency", "error"?}`` with 503 when unhealthy.
    """
    result = await manager.check_health()
    return JSONResponse(
        status_code=(
            status.HTTP_200_OK
            if result.healthy
            else status.HTTP_503_SERVICE_UNAVAILABLE
        ),
        content=result.as_dict(),
    )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run("main:app", host=_settings.host, port=_settings.port)
