"""Authenticated tenant identity for request processing."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field


@dataclass(frozen=True)
class TenantRecord:
    """Read-only view of a registered application, as stored.

    ``secret_hash`` is kept out of ``repr`` so the record can be logged
    or put in an exception message without exposing it.
    """

    tenant_id: uuid.UUID
    display_name: str
    secret_hash: str = field(repr=False)
    is_admin: bool = False
    max_object_size_bytes: int | None = None
    max_aggregate_storage_bytes: int | None = None


@dataclass(frozen=True)
class Principal:
    """Verified tenant identity and limits, attached to one request.

    Built once by the request authenticator and passed explicitly to
    every handler that needs it. Never persisted.
    """

    tenant_id: uuid.UUID
    display_name: str
    is_admin: bool = False
    max_object_size_bytes: int | None = None
    max_aggregate_storage_bytes: int | None = None

    @classmethod
    def from_record(cls, record: TenantRecord) -> Principal:
        return cls(
            tenant_id=record.tenant_id,
            display_name=record.display_name,
            is_admin=record.is_admin,
            max_object_size_bytes=record.max_object_size_bytes,
            max_aggregate_storage_bytes=record.max_aggregate_storage_bytes,
        )
