"""Signed, time-bounded download links.

A capability is three query parameters::

    id=<uuid>&expires=<unix seconds>&sig=<urlsafe base64 HMAC-SHA256>

where ``sig`` signs ``"{id}:{expires}"`` with the service secret key.
Nothing is stored: verification recomputes the signature from the
presented fields, so a link stays valid until it expires.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import re
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol
from urllib.parse import urlencode

import structlog

from managed_files.errors import CapabilityTTLError, ConfigurationError

logger = structlog.get_logger()

MIN_SECRET_KEY_BYTES = 32
# One year, used when neither the caller nor configuration bounds the TTL.
DEFAULT_TTL_MINUTES = 525_949
# Hard ceiling on any lifetime, so expiry timestamps stay representable.
MAX_TTL_MINUTES = 10 * DEFAULT_TTL_MINUTES

_EXPIRES_PATTERN = re.compile(r"-?(0|[1-9][0-9]*)")


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class CapabilityStatus(StrEnum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class IssuedCapability:
    resource_id: uuid.UUID
    expires: int
    sig: str

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.expires, UTC)

    def query_params(self) -> dict[str, str]:
        return {
            "id": str(self.resource_id),
            "expires": str(self.expires),
            "sig": self.sig,
        }

    def url(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}?{urlencode(self.query_params())}"


def _encode_signature(digest: bytes) -> str:
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class CapabilityCodec:
    """Issue and check signed download links.

    The secret key is read once at construction and never changes, so a
    single instance can serve any number of concurrent requests.
    """

    def __init__(
        self,
        secret_key: bytes | str | None,
        max_expiry_minutes: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        if isinstance(secret_key, str):
            secret_key = secret_key.encode()
        if not secret_key or not secret_key.strip():
            logger.critical("signed_url_secret_key_missing")
            raise ConfigurationError("Signed URL secret key is not configured")
        if len(secret_key) < MIN_SECRET_KEY_BYTES:
            logger.critical(
                "signed_url_secret_key_too_short",
                length=len(secret_key),
                required=MIN_SECRET_KEY_BYTES,
            )
            raise ConfigurationError(
                f"Signed URL secret key must be at least {MIN_SECRET_KEY_BYTES} bytes"
            )
        if max_expiry_minutes is not None and max_expiry_minutes <= 0:
            raise ConfigurationError("Signed URL max expiry must be positive")
        if max_expiry_minutes is not None and max_expiry_minutes > MAX_TTL_MINUTES:
            raise ConfigurationError(
                f"Signed URL max expiry cannot exceed {MAX_TTL_MINUTES} minutes"
            )

        self._secret_key = secret_key
        self._max_expiry_minutes = max_expiry_minutes
        self._clock = clock or SystemClock()
        logger.info(
            "capability_codec_initialized",
            max_expiry_minutes=max_expiry_minutes or "unlimited",
        )

    @property
    def max_expiry_minutes(self) -> int | None:
        return self._max_expiry_minutes

    def _sign(self, resource_id: uuid.UUID, expires: int) -> str:
        message = f"{resource_id}:{expires}".encode()
        digest = hmac.new(self._secret_key, message, hashlib.sha256).digest()
        return _encode_signature(digest)

    def effective_ttl_minutes(self, requested_ttl_minutes: int | None) -> int:
        """Apply defaulting and clamping to a requested lifetime.

        Raises:
            CapabilityTTLError: if ``requested_ttl_minutes`` is zero or
                negative, or exceeds ``MAX_TTL_MINUTES`` when no maximum
                is configured.
        """
        if requested_ttl_minutes is None:
            return self._max_expiry_minutes or DEFAULT_TTL_MINUTES
        if requested_ttl_minutes <= 0:
            raise CapabilityTTLError(requested_ttl_minutes)
        if (
            self._max_expiry_minutes is not None
            and requested_ttl_minutes > self._max_expiry_minutes
        ):
            logger.warning(
                "signed_url_ttl_clamped",
                requested_minutes=requested_ttl_minutes,
                max_minutes=self._max_expiry_minutes,
            )
            return self._max_expiry_minutes
        if requested_ttl_minutes > MAX_TTL_MINUTES:
            raise CapabilityTTLError(requested_ttl_minutes, MAX_TTL_MINUTES)
        return requested_ttl_minutes

    def generate(
        self,
        resource_id: uuid.UUID,
        requested_ttl_minutes: int | None = None,
        now: datetime | None = None,
    ) -> IssuedCapability:
        """Issue a signed link for ``resource_id``.

        Args:
            resource_id: Attachment the link grants access to.
            requested_ttl_minutes: Desired lifetime. ``None`` means the
                configured maximum, or one year when no maximum is set.
            now: Issue time; defaults to the injected clock.

        Raises:
            CapabilityTTLError: if ``requested_ttl_minutes`` is out of range.
        """
        ttl_minutes = self.effective_ttl_minutes(requested_ttl_minutes)
        issued_at = now or self._clock.now()
        expires = int(issued_at.timestamp()) + ttl_minutes * 60
        capability = IssuedCapability(
            resource_id=resource_id,
            expires=expires,
            sig=self._sign(resource_id, expires),
        )
        logger.info(
            "signed_url_generated",
            resource_id=str(resource_id),
            expires=expires,
            ttl_minutes=ttl_minutes,
        )
        return capability

    def check(
        self,
        resource_id: uuid.UUID,
        expires: int,
        sig: str,
        now: datetime | None = None,
    ) -> CapabilityStatus:
        """Classify a presented capability.

        Expiry is public, so it is checked before any HMAC work.
        Signatures are compared in constant time; both the padded and
        unpadded base64 forms are accepted.
        """
        current = (now or self._clock.now()).timestamp()
        if current > expires:
            return CapabilityStatus.EXPIRED

        try:
            expected = self._sign(resource_id, expires).encode("ascii")
            provided = sig.encode("ascii")
        except (UnicodeEncodeError, AttributeError):
            return CapabilityStatus.MALFORMED

        if provided.endswith(b"="):
            expected += b"=" * (-len(expected) % 4)

        if not hmac.compare_digest(provided, expected):
            return CapabilityStatus.INVALID_SIGNATURE
        return CapabilityStatus.VALID

    def verify(
        self,
        resource_id: uuid.UUID,
        expires: int,
        sig: str,
        now: datetime | None = None,
    ) -> bool:
        """Return True only for an unexpired link with a valid signature."""
        status = self.check(resource_id, expires, sig, now)
        if status is not CapabilityStatus.VALID:
            logger.warning(
                "signed_url_rejected",
                resource_id=str(resource_id),
                expires=expires,
                status=str(status),
            )
            return False
        return True

    def verify_query(
        self,
        raw_id: str | None,
        raw_expires: str | None,
        raw_sig: str | None,
        now: datetime | None = None,
    ) -> uuid.UUID | None:
        """Verify capability fields taken straight from a query string.

        Returns:
            The resource id when the link is valid, otherwise ``None``.
            Input that is not in the exact wire form (lowercase hyphenated
            UUID, plain decimal expiry) is treated like a bad signature.
        """
        resource_id: uuid.UUID | None
        try:
            resource_id = uuid.UUID(raw_id or "")
        except ValueError:
            resource_id = None
        if (
            resource_id is None
            or str(resource_id) != raw_id
            or raw_expires is None
            or not _EXPIRES_PATTERN.fullmatch(raw_expires)
            or not raw_sig
        ):
            logger.warning(
                "signed_url_rejected", status=str(CapabilityStatus.MALFORMED)
            )
            return None
        if not self.verify(resource_id, int(raw_expires), raw_sig, now):
            return None
        return resource_id
