"""Tests for FastAPI bootstrap: health, CORS, error handling, startup."""

from collections.abc import Generator
from contextlib import contextmanager
from typing import NamedTuple
from unittest.mock import AsyncMock, patch

import pytest
from botocore.exceptions import ClientError
from fastapi import Request
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from managed_files.api.app import app, build_capability_codec
from managed_files.config import Settings
from managed_files.errors import ConfigurationError


class HealthMocks(NamedTuple):
    """Mocks returned by mock_health_deps context manager."""

    db_session: AsyncMock
    s3_client: AsyncMock


@contextmanager
def mock_health_deps(
    *,
    db_error: Exception | None = None,
    s3_error: Exception | None = None,
) -> Generator[HealthMocks]:
    """Mock DB and S3 dependencies for health check tests.

    Args:
        db_error: If set, async_session __aenter__ raises this exception.
        s3_error: If set, s3_client.check_connectivity raises this exception.
    """
    mock_s3 = AsyncMock()
    mock_s3.check_connectivity = AsyncMock(side_effect=s3_error)

    mock_db_session = AsyncMock()
    mock_db_session.execute = AsyncMock()

    with patch("managed_files.api.app.async_session") as mock_session_factory:
        if db_error:
            mock_session_factory.return_value.__aenter__ = AsyncMock(
                side_effect=db_error
            )
        else:
            mock_session_factory.return_value.__aenter__ = AsyncMock(
                return_value=mock_db_session
            )
        mock_session_factory.return_value.__aexit__ = AsyncMock(return_value=False)
        app.state.s3_client = mock_s3

        yield HealthMocks(db_session=mock_db_session, s3_client=mock_s3)


class TestHealth:
    @pytest.mark.asyncio
    async def test_all_ok(self, anon_client: AsyncClient) -> None:
        """Health needs no API key and reports each dependency."""
        with mock_health_deps() as mocks:
            response = await anon_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["checks"] == {"db": "ok", "s3": "ok"}
        assert "timestamp" in body
        mocks.s3_client.check_connectivity.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_db_down(self, anon_client: AsyncClient) -> None:
        with mock_health_deps(
            db_error=OperationalError("SELECT 1", {}, Exception("refused"))
        ):
            response = await anon_client.get("/health")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "degraded"
        assert body["checks"]["db"] == "error: OperationalError"
        assert body["checks"]["s3"] == "ok"

    @pytest.mark.asyncio
    async def test_s3_down(self, anon_client: AsyncClient) -> None:
        error = ClientError(
            error_response={"Error": {"Code": "503", "Message": "down"}},
            operation_name="HeadBucket",
        )
        with mock_health_deps(s3_error=error):
            response = await anon_client.get("/health")

        assert response.status_code == 503
        assert response.json()["checks"]["s3"] == "error: ClientError"


class TestCORSRestriction:
    @pytest.mark.asyncio
    async def test_cors_production_restricted(self, anon_client: AsyncClient) -> None:
        """Empty CORS origins (default) → preflight rejected."""
        response = await anon_client.options(
            "/health",
            headers={
                "Origin": "http://evil.com",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert "access-control-allow-origin" not in response.headers


class TestErrorNoStacktrace:
    @pytest.mark.asyncio
    async def test_error_no_stacktrace(self) -> None:
        """Unhandled exception returns generic message without stack trace."""
        from managed_files.api.app import unhandled_exception_handler

        mock_request = Request(
            scope={"type": "http", "method": "GET", "path": "/test", "headers": []}
        )
        response = await unhandled_exception_handler(
            mock_request, RuntimeError("sensitive db error")
        )
        assert response.status_code == 500
        body = response.body.decode()
        assert "Internal server error" in body
        assert "sensitive" not in body
        assert "Traceback" not in body


class TestStartupCodec:
    def test_missing_key_fails_fast(self) -> None:
        settings = Settings(signed_url_secret_key=None, _env_file=None)
        with pytest.raises(ConfigurationError):
            build_capability_codec(settings)

    def test_short_key_fails_fast(self) -> None:
        settings = Settings(
            signed_url_secret_key="too-short",  # type: ignore[arg-type]
            _env_file=None,
        )
        with pytest.raises(ConfigurationError):
            build_capability_codec(settings)

    def test_configured_codec(self) -> None:
        settings = Settings(
            signed_url_secret_key="k" * 32,  # type: ignore[arg-type]
            signed_url_max_expiry_minutes=60,
            _env_file=None,
        )
        codec = build_capability_codec(settings)
        assert codec.max_expiry_minutes == 60


class TestOpenApi:
    def test_operation_ids_match_anonymous_set(self) -> None:
        """Anonymous route names exist, so the bypass cannot silently drift."""
        from managed_files.api.deps import ANONYMOUS_OPERATIONS
        from managed_files.api.routes.applications import router as applications
        from managed_files.api.routes.attachments import router as attachments
        from managed_files.api.routes.public import router as public

        names = {
            getattr(route, "name", None)
            for router in (app.router, applications, attachments, public)
            for route in router.routes
        }
        assert ANONYMOUS_OPERATIONS <= names
        assert {getattr(r, "name", None) for r in public.routes} == {"download_public"}
