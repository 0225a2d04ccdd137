"""Shared fixtures for integration tests requiring live PostgreSQL."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

from managed_files.config import get_settings
from managed_files.storage.orm import Tenant

# ── Engine ─────────────────────────────────────────────────────────


@pytest.fixture()
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an async engine from settings, one per test event loop."""
    engine = create_async_engine(
        get_settings().database_url,
        pool_size=5,
        max_overflow=0,
    )
    yield engine
    await engine.dispose()


# ── Session with rollback ──────────────────────────────────────────


@pytest.fixture()
async def db_session(
    async_engine: AsyncEngine,
) -> AsyncGenerator[AsyncSession]:
    """Provide a session wrapped in a transaction, rolled back after test.

    Repository methods only ``flush()``, so nothing outlives the test.
    """
    async with async_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)

        yield session

        await session.close()
        await trans.rollback()


# ── Seeds ──────────────────────────────────────────────────────────


async def _add_tenant(session: AsyncSession, **limits: int | None) -> Tenant:
    tenant = Tenant(
        name=f"test-app-{uuid.uuid4().hex[:8]}",
        api_key_hash="$2b$04$not-a-real-hash",
        key_prefix="mf_live_test",
        **limits,
    )
    session.add(tenant)
    await session.flush()
    return tenant


@pytest.fixture()
async def seed_tenant(db_session: AsyncSession) -> Tenant:
    """A tenant with a 10 MB storage limit."""
    return await _add_tenant(db_session, max_storage_bytes=10 * 1_048_576)


@pytest.fixture()
async def other_tenant(db_session: AsyncSession) -> Tenant:
    """A second, unlimited tenant."""
    return await _add_tenant(db_session)
