"""Application (tenant) management endpoints.

Routes
------
- ``GET    /applications``                - List applications (admin)
- ``POST   /applications``                - Register an application (admin)
- ``GET    /applications/{id}``           - Application detail (admin)
- ``DELETE /applications/{id}``           - Delete application and its files (admin)
- ``PUT    /applications/{id}/limits``    - Update size limits (admin)
- ``GET    /applications/{id}/usage``     - Storage usage (admin or self)
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, HTTPException, Query, Response

from managed_files.api.deps import AdminDep, PrincipalDep, S3Dep, SessionDep
from managed_files.api.schemas import (
    ApplicationCreateRequest,
    ApplicationCreateResponse,
    ApplicationDetailResponse,
    ApplicationListResponse,
    ApplicationLimitsRequest,
    ApplicationLimitsResponse,
    ApplicationResponse,
    ApplicationUsageResponse,
    AttachmentMetadataResponse,
)
from managed_files.auth.keys import generate_api_key
from managed_files.auth.ownership import can_manage_tenant
from managed_files.auth.quota import bytes_to_megabytes, megabytes_to_bytes
from managed_files.config import settings
from managed_files.storage.repositories import AttachmentRepository, TenantRepository

logger = structlog.get_logger()

router = APIRouter(tags=["applications"])

NOT_FOUND_DETAIL = "Application not found"
RECENT_ATTACHMENTS = 20


@router.post("/applications", status_code=201)
async def create_application(
    body: ApplicationCreateRequest,
    admin: AdminDep,
    session: SessionDep,
) -> ApplicationCreateResponse:
    """Register a new application and generate its API key.

    The plaintext key is returned in this response only; the service
    stores just its bcrypt hash. Limits default to the configured
    service defaults.
    """
    repo = TenantRepository(session)
    if await repo.get_by_name(body.name) is not None:
        raise HTTPException(status_code=409, detail="Application name already exists")

    full_key, key_hash, key_prefix = generate_api_key(
        rounds=settings.api_key_bcrypt_rounds
    )
    max_file_size_bytes = (
        megabytes_to_bytes(body.max_file_size_mb)
        if body.max_file_size_mb is not None
        else settings.default_max_file_size_bytes
    )
    max_storage_bytes = (
        megabytes_to_bytes(body.max_storage_mb)
        if body.max_storage_mb is not None
        else settings.default_max_storage_bytes
    )
    tenant = await repo.create(
        name=body.name,
        api_key_hash=key_hash,
        key_prefix=key_prefix,
        is_admin=body.is_admin,
        max_file_size_bytes=max_file_size_bytes,
        max_storage_bytes=max_storage_bytes,
    )
    await session.commit()

    logger.info(
        "application_created",
        application_id=str(tenant.id),
        name=tenant.name,
        key_prefix=key_prefix,
        is_admin=tenant.is_admin,
        created_by=str(admin.tenant_id),
    )
    return ApplicationCreateResponse(
        id=tenant.id,
        name=tenant.name,
        api_key=full_key,
        key_prefix=key_prefix,
        is_admin=tenant.is_admin,
    )


@router.put("/applications/{application_id}/limits")
async def update_application_limits(
    application_id: uuid.UUID,
    body: ApplicationLimitsRequest,
    admin: AdminDep,
    session: SessionDep,
) -> ApplicationLimitsResponse:
    """Update an application's limits, given in binary megabytes."""
    repo = TenantRepository(session)
    tenant = await repo.get_by_id(application_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND_DETAIL)

    await repo.update_limits(
        tenant,
        max_file_size_bytes=(
            megabytes_to_bytes(body.max_file_size_mb)
            if body.max_file_size_mb is not None
            else None
        ),
        max_storage_bytes=(
            megabytes_to_bytes(body.max_storage_mb)
            if body.max_storage_mb is not None
            else None
        ),
    )
    await session.commit()

    logger.info(
        "application_limits_updated",
        application_id=str(application_id),
        max_file_size_mb=body.max_file_size_mb,
        max_storage_mb=body.max_storage_mb,
        updated_by=str(admin.tenant_id),
    )
    return ApplicationLimitsResponse(
        id=tenant.id,
        max_file_size_bytes=tenant.max_file_size_bytes,
        max_storage_bytes=tenant.max_storage_bytes,
    )


@router.get("/applications/{application_id}/usage")
async def get_application_usage(
    application_id: uuid.UUID,
    principal: PrincipalDep,
    session: SessionDep,
) -> ApplicationUsageResponse:
    """Storage usage statistics.

    Applications may read their own usage; admins may read any.
    """
    if not can_manage_tenant(principal, application_id):
        raise HTTPException(
            status_code=403,
            detail="You can only view statistics for your own application",
        )

    tenant = await TenantRepository(session).get_by_id(application_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND_DETAIL)

    attachments = AttachmentRepository(session)
    current = await attachments.current_aggregate_bytes(application_id)
    total_files = await attachments.count_for_tenant(application_id)

    max_storage = tenant.max_storage_bytes
    percentage = round(current / max_storage * 100, 2) if max_storage else 0.0

    return ApplicationUsageResponse(
        application_id=tenant.id,
        application_name=tenant.name,
        current_storage_bytes=current,
        current_storage_mb=bytes_to_megabytes(current),
        max_file_size_bytes=tenant.max_file_size_bytes,
        max_file_size_mb=(
            bytes_to_megabytes(tenant.max_file_size_bytes)
            if tenant.max_file_size_bytes is not None
            else None
        ),
        max_storage_bytes=max_storage,
        max_storage_mb=(
            bytes_to_megabytes(max_storage) if max_storage is not None else None
        ),
        total_files=total_files,
        storage_usage_percentage=percentage,
    )


@router.get("/applications")
async def list_applications(
    admin: AdminDep,
    session: SessionDep,
    limit: int = Query(
        default=50,
        ge=1,
        le=200,
        description="Maximum number of applications to return (1-200).",
    ),
    offset: int = Query(
        default=0,
        ge=0,
        description="Number of applications to skip for pagination.",
    ),
) -> ApplicationListResponse:
    """List registered applications, ordered by name."""
    repo = TenantRepository(session)
    tenants = await repo.list_all(limit=limit, offset=offset)
    total = await repo.count()
    return ApplicationListResponse(
        items=[ApplicationResponse.model_validate(t) for t in tenants],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/applications/{application_id}")
async def get_application(
    application_id: uuid.UUID,
    admin: AdminDep,
    session: SessionDep,
) -> ApplicationDetailResponse:
    """Get one application with its storage use and latest uploads."""
    tenant = await TenantRepository(session).get_by_id(application_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND_DETAIL)

    attachments = AttachmentRepository(session)
    recent = await attachments.list_for_tenant(
        application_id, limit=RECENT_ATTACHMENTS
    )
    return ApplicationDetailResponse(
        **ApplicationResponse.model_validate(tenant).model_dump(),
        current_storage_bytes=await attachments.current_aggregate_bytes(
            application_id
        ),
        total_files=await attachments.count_for_tenant(application_id),
        recent_attachments=[
            AttachmentMetadataResponse.model_validate(a) for a in recent
        ],
    )


@router.delete("/applications/{application_id}", status_code=204)
async def delete_application(
    application_id: uuid.UUID,
    admin: AdminDep,
    session: SessionDep,
    s3: S3Dep,
) -> Response:
    """Delete an application together with all of its attachments.

    Blobs are deleted first; if one fails, nothing is removed from the
    database and the delete can be retried. Its API key stops working
    once the row is gone.
    """
    if application_id == admin.tenant_id:
        raise HTTPException(
            status_code=409,
            detail="Cannot delete the application you are authenticated as",
        )

    repo = TenantRepository(session)
    tenant = await repo.get_by_id(application_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND_DETAIL)

    attachments = await AttachmentRepository(session).list_for_tenant(application_id)
    for attachment in attachments:
        await s3.delete_file(attachment.storage_key)

    await repo.delete(tenant)
    await session.commit()

    logger.info(
        "application_deleted",
        application_id=str(application_id),
        name=tenant.name,
        attachments_deleted=len(attachments),
        deleted_by=str(admin.tenant_id),
    )
    return Response(status_code=204)
