"""API key verification against stored tenant hashes.

Hashes are salted and one-way, so a plaintext key cannot be turned into
a lookup index. Without a tenant hint every registered tenant is tried
in turn; with a hint only that tenant's record is checked.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

import structlog

from managed_files.auth.context import Principal, TenantRecord
from managed_files.auth.keys import verify_api_key
from managed_files.errors import MalformedKeyHashError

logger = structlog.get_logger()


class TenantLookup(Protocol):
    """Read-only source of tenant records for key verification."""

    async def scan_all_hashes(self) -> Sequence[TenantRecord]: ...

    async def get_record(self, tenant_id: uuid.UUID) -> TenantRecord | None: ...


class VerificationFailure(StrEnum):
    MISSING_CREDENTIAL = "missing_credential"
    NO_MATCH = "no_match"


@dataclass(frozen=True)
class AuthFailure:
    reason: VerificationFailure


class CredentialVerifier:
    """Resolve a plaintext API key to the Principal that owns it."""

    def __init__(self, lookup: TenantLookup) -> None:
        self._lookup = lookup

    async def verify(
        self,
        plaintext: str | None,
        tenant_hint: uuid.UUID | None = None,
    ) -> Principal | AuthFailure:
        """Verify ``plaintext`` and return the matching tenant's Principal.

        Args:
            plaintext: API key as presented by the client.
            tenant_hint: Optional tenant id supplied alongside the key.
                Narrows verification to that single record.

        Returns:
            Principal on the first matching record, otherwise an
            AuthFailure with MISSING_CREDENTIAL or NO_MATCH.
        """
        if plaintext is None or not plaintext.strip():
            return AuthFailure(VerificationFailure.MISSING_CREDENTIAL)

        if tenant_hint is not None:
            record = await self._lookup.get_record(tenant_hint)
            candidates: Sequence[TenantRecord] = [record] if record else []
        else:
            candidates = await self._lookup.scan_all_hashes()

        if not candidates:
            logger.warning("api_key_no_candidates", narrowed=tenant_hint is not None)
            return AuthFailure(VerificationFailure.NO_MATCH)

        # bcrypt is CPU-bound; keep it off the event loop.
        matched = await asyncio.to_thread(_first_match, plaintext, candidates)
        if matched is None:
            logger.warning("api_key_no_match", candidates=len(candidates))
            return AuthFailure(VerificationFailure.NO_MATCH)

        logger.info(
            "api_key_verified",
            tenant_id=str(matched.tenant_id),
            tenant_name=matched.display_name,
        )
        return Principal.from_record(matched)


def _first_match(
    plaintext: str,
    candidates: Iterable[TenantRecord],
) -> TenantRecord | None:
    for record in candidates:
        if not record.secret_hash:
            logger.warning("tenant_hash_missing", tenant_id=str(record.tenant_id))
            continue
        try:
            if verify_api_key(plaintext, record.secret_hash):
                return record
        except MalformedKeyHashError:
            logger.error("tenant_hash_malformed", tenant_id=str(record.tenant_id))
            continue
    return None
