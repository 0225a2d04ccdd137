"""FastAPI dependency injection.

Authentication runs once per request as a router-level dependency.
FastAPI caches dependency results within a request, so handlers that
take ``PrincipalDep`` receive the Principal established by that single
run instead of re-reading headers.
"""

from __future__ import annotations

import uuid
from typing import Annotated, cast

import structlog
from fastapi import Depends, Header, HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from managed_files.auth.authenticator import (
    AuthOutcome,
    AuthState,
    RequestAuthenticator,
    anonymous_operations,
)
from managed_files.auth.capability import CapabilityCodec
from managed_files.auth.context import Principal
from managed_files.auth.verifier import CredentialVerifier, TenantLookup
from managed_files.storage.database import get_session
from managed_files.storage.repositories import TenantRepository
from managed_files.storage.s3 import S3Client

__all__ = [
    "get_capability_codec",
    "get_principal",
    "get_s3_client",
    "get_session",
    "get_tenant_lookup",
    "require_admin",
    "require_authentication",
]

logger = structlog.get_logger()

API_KEY_HEADER = "X-API-Key"
APPLICATION_ID_HEADER = "X-Application-Id"

# Route names (operation ids) reachable without an API key.
ANONYMOUS_OPERATIONS: frozenset[str] = frozenset({"download_public", "health"})

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)

UNAUTHORIZED_DETAIL = "Invalid or missing API key"

_get_session = Depends(get_session)


async def get_tenant_lookup(session: AsyncSession = _get_session) -> TenantLookup:
    return TenantRepository(session)


def _parse_tenant_hint(raw: str | None) -> uuid.UUID | None:
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


async def require_authentication(
    request: Request,
    api_key: Annotated[str | None, Security(api_key_header)],
    lookup: Annotated[TenantLookup, Depends(get_tenant_lookup)],
    app_id_header: Annotated[
        str | None, Header(alias=APPLICATION_ID_HEADER, include_in_schema=False)
    ] = None,
) -> AuthOutcome:
    """Authenticate the request for the matched route.

    Raises:
        HTTPException 401: missing or unknown API key. Both cases
            return the same body.
    """
    route = request.scope.get("route")
    operation_id = getattr(route, "name", "") or ""

    authenticator = RequestAuthenticator(
        CredentialVerifier(lookup),
        anonymous_operations(ANONYMOUS_OPERATIONS),
    )
    outcome = await authenticator.authenticate(
        operation_id,
        api_key,
        tenant_hint=_parse_tenant_hint(app_id_header),
    )
    if outcome.state is AuthState.REJECTED:
        raise HTTPException(
            status_code=401,
            detail=UNAUTHORIZED_DETAIL,
            headers={"WWW-Authenticate": "ApiKey"},
        )
    if outcome.principal is not None:
        structlog.contextvars.bind_contextvars(
            tenant_id=str(outcome.principal.tenant_id)
        )
    return outcome


async def get_principal(
    outcome: Annotated[AuthOutcome, Depends(require_authentication)],
) -> Principal:
    """Return the Principal established for this request.

    Raises:
        HTTPException 401: the route was reached without authentication.
    """
    if outcome.state is not AuthState.AUTHENTICATED or outcome.principal is None:
        raise HTTPException(
            status_code=401,
            detail=UNAUTHORIZED_DETAIL,
            headers={"WWW-Authenticate": "ApiKey"},
        )
    return outcome.principal


async def require_admin(
    principal: Annotated[Principal, Depends(get_principal)],
) -> Principal:
    """Allow only admin applications.

    Raises:
        HTTPException 403: the authenticated application is not an admin.
    """
    if not principal.is_admin:
        logger.warning("admin_required", tenant_id=str(principal.tenant_id))
        raise HTTPException(status_code=403, detail="Admin application required")
    return principal


async def get_capability_codec(request: Request) -> CapabilityCodec:
    """Retrieve CapabilityCodec from app state.

    Initialized during lifespan startup.
    """
    return cast(CapabilityCodec, request.app.state.capability_codec)


async def get_s3_client(request: Request) -> S3Client:
    """Retrieve S3Client from app state.

    Initialized during lifespan startup.
    """
    return cast(S3Client, request.app.state.s3_client)


SessionDep = Annotated[AsyncSession, Depends(get_session)]
PrincipalDep = Annotated[Principal, Depends(get_principal)]
AdminDep = Annotated[Principal, Depends(require_admin)]
CodecDep = Annotated[CapabilityCodec, Depends(get_capability_codec)]
S3Dep = Annotated[S3Client, Depends(get_s3_client)]
