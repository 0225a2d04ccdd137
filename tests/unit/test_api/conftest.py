"""Shared fixtures for API tests.

The lifespan does not run under ``ASGITransport``, so the codec and S3
client that normally live on ``app.state`` are supplied through
dependency overrides.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from managed_files.api.app import app
from managed_files.api.deps import (
    get_capability_codec,
    get_s3_client,
    require_authentication,
)
from managed_files.auth.authenticator import AuthOutcome
from managed_files.auth.capability import CapabilityCodec
from managed_files.auth.context import Principal
from managed_files.storage.database import get_session

SIGNING_KEY = "test-signing-key-" + "0" * 32


@pytest.fixture()
def principal() -> Principal:
    """Non-admin application without limits."""
    return Principal(tenant_id=uuid.uuid4(), display_name="test-app")


@pytest.fixture()
def mock_session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture()
def mock_s3() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def codec() -> CapabilityCodec:
    return CapabilityCodec(SIGNING_KEY)


@pytest.fixture()
def authenticate_as() -> Callable[[Principal], None]:
    """Replace the request's Principal for the rest of the test."""

    def _set(principal: Principal) -> None:
        app.dependency_overrides[require_authentication] = (
            lambda: AuthOutcome.authenticated(principal)
        )

    return _set


@pytest.fixture()
async def anon_client(
    mock_session: AsyncMock,
    mock_s3: AsyncMock,
    codec: CapabilityCodec,
) -> AsyncGenerator[AsyncClient]:
    """AsyncClient with DB, S3 and codec overrides but real authentication."""
    app.dependency_overrides[get_session] = lambda: mock_session
    app.dependency_overrides[get_s3_client] = lambda: mock_s3
    app.dependency_overrides[get_capability_codec] = lambda: codec
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def client(
    anon_client: AsyncClient,
    authenticate_as: Callable[[Principal], None],
    principal: Principal,
) -> AsyncClient:
    """AsyncClient authenticated as ``principal``."""
    authenticate_as(principal)
    return anon_client
