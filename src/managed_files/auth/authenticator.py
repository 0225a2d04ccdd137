"""Per-request authentication state machine.

Every request starts unauthenticated and ends in exactly one of:

- ``BYPASSED``: the operation allows anonymous access;
- ``AUTHENTICATED``: the API key matched a tenant;
- ``REJECTED``: the key was missing or did not match.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Collection
from dataclasses import dataclass
from enum import StrEnum

import structlog

from managed_files.auth.context import Principal
from managed_files.auth.verifier import AuthFailure, CredentialVerifier

logger = structlog.get_logger()


class AuthState(StrEnum):
    BYPASSED = "bypassed"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


class AuthFailureReason(StrEnum):
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_CREDENTIAL = "invalid_credential"


@dataclass(frozen=True)
class AuthOutcome:
    state: AuthState
    principal: Principal | None = None
    reason: AuthFailureReason | None = None

    @classmethod
    def bypassed(cls) -> AuthOutcome:
        return cls(state=AuthState.BYPASSED)

    @classmethod
    def authenticated(cls, principal: Principal) -> AuthOutcome:
        return cls(state=AuthState.AUTHENTICATED, principal=principal)

    @classmethod
    def rejected(cls, reason: AuthFailureReason) -> AuthOutcome:
        return cls(state=AuthState.REJECTED, reason=reason)


AnonymousPredicate = Callable[[str], bool]


def anonymous_operations(operation_ids: Collection[str]) -> AnonymousPredicate:
    """Build a predicate that allows a fixed set of operations anonymously."""
    allowed = frozenset(operation_ids)
    return lambda operation_id: operation_id in allowed


class RequestAuthenticator:
    """Turn an operation id and raw credential into an AuthOutcome."""

    def __init__(
        self,
        verifier: CredentialVerifier,
        is_anonymous: AnonymousPredicate,
    ) -> None:
        self._verifier = verifier
        self._is_anonymous = is_anonymous

    async def authenticate(
        self,
        operation_id: str,
        raw_credential: str | None,
        tenant_hint: uuid.UUID | None = None,
    ) -> AuthOutcome:
        if self._is_anonymous(operation_id):
            return AuthOutcome.bypassed()

        if raw_credential is None or not raw_credential.strip():
            logger.info("auth_rejected", operation=operation_id, reason="missing")
            return AuthOutcome.rejected(AuthFailureReason.MISSING_CREDENTIAL)

        result = await self._verifier.verify(raw_credential, tenant_hint)
        if isinstance(result, AuthFailure):
            logger.info("auth_rejected", operation=operation_id, reason="invalid")
            return AuthOutcome.rejected(AuthFailureReason.INVALID_CREDENTIAL)

        return AuthOutcome.authenticated(result)
