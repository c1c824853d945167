"""FastAPI application factory and main entry point."""
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware

from modcompat import __version__
from modcompat.api import versions
from modcompat.core.cache import check_cache_connection, close_cache
from modcompat.core.config import settings
from modcompat.core.database import check_database_connection, close_database
from modcompat.core.logging import configure_logging, get_logger
from modcompat.core.middleware import RequestContextMiddleware
from modcompat.core.tracing import configure_tracing, instrument_fastapi_app

# Configure logging on module import
configure_logging()
logger = get_logger(__name__)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan context manager for startup/shutdown events."""
    logger.info("Starting modcompat API", version=__version__, environment=settings.environment)

    yield

    logger.info("Shutting down modcompat API")
    await close_database()
    await close_cache()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_tracing()

    app = FastAPI(
        title="modcompat API",
        description="Dependency and version compatibility resolution for a mod catalog",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    @app.get("/health", tags=["health"], status_code=200)
    async def health_check(response: Response) -> dict[str, Any]:
        """Health check with per-dependency status and response times.

        Returns 200 when the database and the lock store respond, 503 otherwise.
        """
        start_time = time.time()

        db_start = time.time()
        db_healthy = await check_database_connection()
        db_response_time = round((time.time() - db_start) * 1000, 2)
        db_timestamp = _timestamp()

        cache_start = time.time()
        cache_healthy = await check_cache_connection()
        cache_response_time = round((time.time() - cache_start) * 1000, 2)
        cache_timestamp = _timestamp()

        overall_healthy = db_healthy and cache_healthy
        overall_status = "healthy" if overall_healthy else "degraded"
        if not overall_healthy:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

        total_time = round((time.time() - start_time) * 1000, 2)
        logger.info(
            "Health check completed",
            status=overall_status,
            database="healthy" if db_healthy else "unhealthy",
            cache="healthy" if cache_healthy else "unhealthy",
            duration_ms=total_time,
        )

        return {
            "status": overall_status,
            "service": "modcompat-api",
            "version": __version__,
            "timestamp": _timestamp(),
            "checks": {
                "database": {
                    "status": "healthy" if db_healthy else "unhealthy",
                    "response_time_ms": db_response_time,
                    "timestamp": db_timestamp,
                },
                "cache": {
                    "status": "healthy" if cache_healthy else "unhealthy",
                    "response_time_ms": cache_response_time,
                    "timestamp": cache_timestamp,
                },
            },
        }

    app.include_router(versions.router)
    instrument_fastapi_app(app)

    logger.info("FastAPI application created", cors_origins=settings.cors_origins_list)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "modcompat.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=not settings.is_production,
        log_config=None,  # Use our structlog config
    )
