"""Tenant authorization and signed-link core.

Nothing in this package performs HTTP or database I/O directly; tenant
records arrive through the ``TenantLookup`` protocol.
"""

from managed_files.auth.authenticator import (
    AuthFailureReason,
    AuthOutcome,
    AuthState,
    RequestAuthenticator,
    anonymous_operations,
)
from managed_files.auth.capability import (
    CapabilityCodec,
    CapabilityStatus,
    IssuedCapability,
    SystemClock,
)
from managed_files.auth.context import Principal, TenantRecord
from managed_files.auth.keys import generate_api_key, hash_api_key, verify_api_key
from managed_files.auth.ownership import can_manage_tenant, check_ownership
from managed_files.auth.quota import (
    QuotaDecision,
    QuotaRejection,
    UsageLookup,
    admit,
    admit_upload,
    evaluate_upload_admission,
)
from managed_files.auth.verifier import AuthFailure, CredentialVerifier, TenantLookup

__all__ = [
    "AuthFailure",
    "AuthFailureReason",
    "AuthOutcome",
    "AuthState",
    "CapabilityCodec",
    "CapabilityStatus",
    "CredentialVerifier",
    "IssuedCapability",
    "Principal",
    "QuotaDecision",
    "QuotaRejection",
    "RequestAuthenticator",
    "SystemClock",
    "TenantLookup",
    "TenantRecord",
    "UsageLookup",
    "admit",
    "admit_upload",
    "anonymous_operations",
    "can_manage_tenant",
    "check_ownership",
    "evaluate_upload_admission",
    "generate_api_key",
    "hash_api_key",
    "verify_api_key",
]
