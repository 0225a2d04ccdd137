"""Upload admission against per-tenant storage limits."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from managed_files.auth.context import Principal

BYTES_PER_MEGABYTE = 1_048_576


def megabytes_to_bytes(megabytes: int) -> int:
    """Convert a whole number of binary megabytes to bytes."""
    return megabytes * BYTES_PER_MEGABYTE


def bytes_to_megabytes(size_bytes: int) -> float:
    """Convert bytes to binary megabytes, rounded for display."""
    return round(size_bytes / BYTES_PER_MEGABYTE, 2)


class QuotaRejection(StrEnum):
    FILE_TOO_LARGE = "file_too_large"
    STORAGE_LIMIT_EXCEEDED = "storage_limit_exceeded"


@dataclass(frozen=True)
class QuotaDecision:
    admitted: bool
    reason: QuotaRejection | None = None


ADMITTED = QuotaDecision(admitted=True)


def admit(
    principal: Principal,
    candidate_size_bytes: int,
    current_aggregate_usage_bytes: int,
) -> QuotaDecision:
    """Decide whether an upload of ``candidate_size_bytes`` may proceed.

    The per-file limit is checked before the aggregate limit. Current
    usage must be read fresh by the caller for every upload.

    Raises:
        ValueError: if either size is negative.
    """
    if candidate_size_bytes < 0 or current_aggregate_usage_bytes < 0:
        raise ValueError("Sizes must be non-negative")

    max_object = principal.max_object_size_bytes
    if max_object is not None and candidate_size_bytes > max_object:
        return QuotaDecision(admitted=False, reason=QuotaRejection.FILE_TOO_LARGE)

    max_storage = principal.max_aggregate_storage_bytes
    if (
        max_storage is not None
        and current_aggregate_usage_bytes + candidate_size_bytes > max_storage
    ):
        return QuotaDecision(
            admitted=False, reason=QuotaRejection.STORAGE_LIMIT_EXCEEDED
        )

    return ADMITTED


evaluate_upload_admission = admit


class UsageLookup(Protocol):
    """Source of a tenant's current stored bytes."""

    async def current_aggregate_bytes(self, tenant_id: uuid.UUID) -> int: ...


async def admit_upload(
    principal: Principal,
    candidate_size_bytes: int,
    usage: UsageLookup,
) -> tuple[QuotaDecision, int]:
    """Read the tenant's usage fresh and decide on the upload.

    Returns:
        The decision and the usage it was based on.
    """
    current = await usage.current_aggregate_bytes(principal.tenant_id)
    return admit(principal, candidate_size_bytes, current), current
