"""FastAPI application with lifespan management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from botocore.exceptions import ClientError
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from managed_files.api.deps import require_authentication
from managed_files.api.middleware import RequestLoggingMiddleware
from managed_files.api.routes.applications import router as applications_router
from managed_files.api.routes.attachments import router as attachments_router
from managed_files.api.routes.public import router as public_router
from managed_files.auth.capability import CapabilityCodec
from managed_files.config import Settings, settings
from managed_files.logging_config import configure_logging
from managed_files.storage.database import async_session, engine
from managed_files.storage.s3 import S3Client

logger = structlog.get_logger()


def build_capability_codec(config: Settings) -> CapabilityCodec:
    """Build the link codec from settings.

    Raises:
        ConfigurationError: the signing key is missing or too short,
            or the configured maximum lifetime is not positive.
    """
    secret = config.signed_url_secret_key
    return CapabilityCodec(
        secret.get_secret_value() if secret is not None else None,
        max_expiry_minutes=config.signed_url_max_expiry_minutes,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Build the CapabilityCodec; a bad signing key aborts startup.
        - Open the S3 client and make sure the bucket exists.
    Shutdown:
        - Close the S3 client.
        - Dispose database engine (close connection pool).
    """
    configure_logging(
        environment=str(settings.environment),
        log_level=settings.log_level,
    )
    app.state.capability_codec = build_capability_codec(settings)

    s3 = S3Client(
        endpoint_url=settings.s3_endpoint,
        access_key=settings.s3_access_key,
        secret_key=settings.s3_secret_key.get_secret_value(),
        bucket=settings.s3_bucket,
    )
    async with s3:
        await s3.ensure_bucket()
        app.state.s3_client = s3

        logger.info("app_started", environment=str(settings.environment))
        yield

    await engine.dispose()
    logger.info("app_stopped")


app = FastAPI(
    title="Managed Files",
    description="Multi-tenant file attachment service",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.is_dev,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)


HEALTH_CHECK_TIMEOUT = 5.0


@app.get("/health")
async def health() -> JSONResponse:
    """Deep health check: verifies DB and S3 connectivity."""
    checks: dict[str, str] = {}
    overall = "ok"

    try:
        async with async_session() as session:
            await asyncio.wait_for(
                session.execute(text("SELECT 1")),
                timeout=HEALTH_CHECK_TIMEOUT,
            )
        checks["db"] = "ok"
    except (TimeoutError, OperationalError, SQLAlchemyError) as e:
        logger.warning("health_check_db_error", error=type(e).__name__)
        checks["db"] = f"error: {type(e).__name__}"
        overall = "degraded"
    except Exception as e:
        logger.error("health_check_db_unexpected", error=str(e), exc_info=True)
        checks["db"] = f"error: {type(e).__name__}"
        overall = "degraded"

    try:
        s3_client = app.state.s3_client
        await asyncio.wait_for(
            s3_client.check_connectivity(),
            timeout=HEALTH_CHECK_TIMEOUT,
        )
        checks["s3"] = "ok"
    except (TimeoutError, ClientError) as e:
        logger.warning("health_check_s3_error", error=type(e).__name__)
        checks["s3"] = f"error: {type(e).__name__}"
        overall = "degraded"
    except Exception as e:
        logger.error("health_check_s3_unexpected", error=str(e), exc_info=True)
        checks["s3"] = f"error: {type(e).__name__}"
        overall = "degraded"

    status_code = 200 if overall == "ok" else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": overall,
            "checks": checks,
            "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all handler for unhandled exceptions."""
    logger.error("unhandled_exception", exc_info=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


_authenticated = [Depends(require_authentication)]

app.include_router(attachments_router, prefix="/api/v1", dependencies=_authenticated)
app.include_router(public_router, prefix="/api/v1", dependencies=_authenticated)
app.include_router(applications_router, prefix="/api/v1", dependencies=_authenticated)
