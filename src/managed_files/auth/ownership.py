"""Tenant ownership checks for direct resource access."""

from __future__ import annotations

import uuid

from managed_files.auth.context import Principal


def check_ownership(principal: Principal, resource_owner_tenant_id: uuid.UUID) -> bool:
    """Return True only when the principal's tenant owns the resource.

    Admin status does not pass this check. Callers should answer a
    failed check exactly like a missing resource.
    """
    return principal.tenant_id == resource_owner_tenant_id


def can_manage_tenant(principal: Principal, tenant_id: uuid.UUID) -> bool:
    """Return True when the principal may read ``tenant_id``'s account data.

    Used by management endpoints such as usage statistics, where admins
    act on behalf of any tenant. Never used for attachments.
    """
    return principal.is_admin or principal.tenant_id == tenant_id
