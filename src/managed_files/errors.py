"""Domain-specific exceptions for managed-files.

Per-request failures inside the authorization core are returned as typed
outcomes (``AuthOutcome``, ``QuotaDecision``, ``CapabilityStatus``).
Exceptions are reserved for startup failures and for invalid input
supplied by trusted callers.
"""

from __future__ import annotations


class ConfigurationError(Exception):
    """Service configuration is unusable; the process must not start."""


class CapabilityTTLError(ValueError):
    """Requested signed-link lifetime is out of range."""

    def __init__(
        self, requested_minutes: int, limit_minutes: int | None = None
    ) -> None:
        self.requested_minutes = requested_minutes
        self.limit_minutes = limit_minutes
        if limit_minutes is None:
            message = f"Expiration minutes must be positive, got {requested_minutes}"
        else:
            message = (
                f"Expiration minutes cannot exceed {limit_minutes}, "
                f"got {requested_minutes}"
            )
        super().__init__(message)


class MalformedKeyHashError(Exception):
    """A stored API key hash cannot be parsed by the hashing backend."""
