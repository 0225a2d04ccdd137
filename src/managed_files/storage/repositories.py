"""CRUD repositories for database operations."""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from managed_files.auth.context import TenantRecord
from managed_files.storage.orm import Attachment, Tenant


def to_tenant_record(tenant: Tenant) -> TenantRecord:
    """Map a Tenant row to the read-only record used for key checks."""
    return TenantRecord(
        tenant_id=tenant.id,
        display_name=tenant.name,
        secret_hash=tenant.api_key_hash,
        is_admin=tenant.is_admin,
        max_object_size_bytes=tenant.max_file_size_bytes,
        max_aggregate_storage_bytes=tenant.max_storage_bytes,
    )


class TenantRepository:
    """Repository for registered applications.

    Implements the ``TenantLookup`` protocol used by the credential
    verifier. Lookups are read-only; writes are limited to creation,
    key rotation, admin limit updates and deletion.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def scan_all_hashes(self) -> Sequence[TenantRecord]:
        """Return every tenant with its stored key hash."""
        result = await self._session.execute(select(Tenant).order_by(Tenant.created_at))
        return [to_tenant_record(t) for t in result.scalars().all()]

    async def get_record(self, tenant_id: uuid.UUID) -> TenantRecord | None:
        tenant = await self.get_by_id(tenant_id)
        return to_tenant_record(tenant) if tenant is not None else None

    async def get_by_id(self, tenant_id: uuid.UUID) -> Tenant | None:
        return await self._session.get(Tenant, tenant_id)

    async def get_by_name(self, name: str) -> Tenant | None:
        result = await self._session.execute(select(Tenant).where(Tenant.name == name))
        return result.scalar_one_or_none()

    async def list_all(self, *, limit: int = 50, offset: int = 0) -> Sequence[Tenant]:
        stmt = select(Tenant).order_by(Tenant.name).limit(limit).offset(offset)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def count(self) -> int:
        result = await self._session.execute(select(func.count(Tenant.id)))
        return int(result.scalar_one())

    async def create(
        self,
        *,
        name: str,
        api_key_hash: str,
        key_prefix: str,
        is_admin: bool = False,
        max_file_size_bytes: int | None = None,
        max_storage_bytes: int | None = None,
    ) -> Tenant:
        """Create a new tenant. The caller passes the hash, never the key.

        Returns:
            The newly created Tenant ORM instance.
        """
        tenant = Tenant(
            name=name,
            api_key_hash=api_key_hash,
            key_prefix=key_prefix,
            is_admin=is_admin,
            max_file_size_bytes=max_file_size_bytes,
            max_storage_bytes=max_storage_bytes,
        )
        self._session.add(tenant)
        await self._session.flush()
        return tenant

    async def update_limits(
        self,
        tenant: Tenant,
        *,
        max_file_size_bytes: int | None = None,
        max_storage_bytes: int | None = None,
    ) -> Tenant:
        """Set the limits that are given; ``None`` leaves a limit unchanged."""
        if max_file_size_bytes is not None:
            tenant.max_file_size_bytes = max_file_size_bytes
        if max_storage_bytes is not None:
            tenant.max_storage_bytes = max_storage_bytes
        await self._session.flush()
        return tenant

    async def set_api_key(
        self,
        tenant: Tenant,
        *,
        api_key_hash: str,
        key_prefix: str,
    ) -> Tenant:
        """Replace the tenant's key. The previous key stops working at once."""
        tenant.api_key_hash = api_key_hash
        tenant.key_prefix = key_prefix
        await self._session.flush()
        return tenant

    async def delete(self, tenant: Tenant) -> None:
        """Delete a tenant. Its attachment rows go with it (ORM and FK cascade)."""
        await self._session.delete(tenant)
        await self._session.flush()


class AttachmentRepository:
    """Repository for attachment metadata.

    Reads are by primary key only; whether the caller may see the row
    is decided by the ownership gate, so "not yours" and "does not
    exist" can be logged separately yet answered the same way.
    Also serves as the ``UsageLookup`` for upload admission.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        tenant_id: uuid.UUID,
        original_filename: str,
        content_type: str,
        size_bytes: int,
        storage_key: str,
        user_id: str | None = None,
        attachment_id: uuid.UUID | None = None,
    ) -> Attachment:
        """Persist metadata for a blob that has already been stored."""
        attachment = Attachment(
            tenant_id=tenant_id,
            original_filename=original_filename,
            content_type=content_type,
            size_bytes=size_bytes,
            storage_key=storage_key,
            user_id=user_id,
        )
        if attachment_id is not None:
            attachment.id = attachment_id
        self._session.add(attachment)
        await self._session.flush()
        return attachment

    async def get_by_id(self, attachment_id: uuid.UUID) -> Attachment | None:
        return await self._session.get(Attachment, attachment_id)

    async def delete(self, attachment: Attachment) -> None:
        await self._session.delete(attachment)
        await self._session.flush()

    async def current_aggregate_bytes(self, tenant_id: uuid.UUID) -> int:
        """Total stored bytes for a tenant, read fresh from the database."""
        stmt = select(func.coalesce(func.sum(Attachment.size_bytes), 0)).where(
            Attachment.tenant_id == tenant_id
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def list_for_tenant(
        self, tenant_id: uuid.UUID, *, limit: int | None = None
    ) -> Sequence[Attachment]:
        """Tenant's attachments, newest first. ``None`` returns all of them."""
        stmt = (
            select(Attachment)
            .where(Attachment.tenant_id == tenant_id)
            .order_by(Attachment.uploaded_at.desc(), Attachment.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def count_for_tenant(self, tenant_id: uuid.UUID) -> int:
        stmt = select(func.count(Attachment.id)).where(
            Attachment.tenant_id == tenant_id
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())
