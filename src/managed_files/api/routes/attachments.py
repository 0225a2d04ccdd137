"""Attachment API endpoints.

Every endpoint acts on the authenticated application's own attachments.
An attachment owned by another application is reported exactly like a
missing one (404), admins included.

Routes
------
- ``POST   /attachments``                   - Upload (quota-checked)
- ``GET    /attachments/{id}/metadata``     - Attachment metadata
- ``GET    /attachments/{id}``              - Download
- ``DELETE /attachments/{id}``              - Delete blob and metadata
- ``POST   /attachments/{id}/signed-url``   - Issue an anonymous download link
"""

from __future__ import annotations

import os
import uuid
from typing import Annotated
from urllib.parse import quote

import structlog
from fastapi import APIRouter, Form, HTTPException, Request, Response, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from managed_files.api.deps import CodecDep, PrincipalDep, S3Dep, SessionDep
from managed_files.api.schemas import (
    AttachmentCreateResponse,
    AttachmentMetadataResponse,
    SignedUrlRequest,
    SignedUrlResponse,
)
from managed_files.auth.context import Principal
from managed_files.auth.ownership import check_ownership
from managed_files.auth.quota import (
    QuotaDecision,
    QuotaRejection,
    admit_upload,
    bytes_to_megabytes,
)
from managed_files.config import settings
from managed_files.errors import CapabilityTTLError
from managed_files.storage.orm import Attachment
from managed_files.storage.repositories import AttachmentRepository
from managed_files.storage.s3 import S3Client

logger = structlog.get_logger()

router = APIRouter(tags=["attachments"])

NOT_FOUND_DETAIL = "Attachment not found"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


async def _require_owned_attachment(
    session: AsyncSession,
    principal: Principal,
    attachment_id: uuid.UUID,
) -> Attachment:
    """Load an attachment owned by the principal.

    Raises:
        HTTPException 404: if the attachment does not exist or belongs
            to another application.
    """
    attachment = await AttachmentRepository(session).get_by_id(attachment_id)
    if attachment is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND_DETAIL)
    if not check_ownership(principal, attachment.tenant_id):
        logger.warning(
            "attachment_access_denied",
            attachment_id=str(attachment_id),
            tenant_id=str(principal.tenant_id),
            owner_tenant_id=str(attachment.tenant_id),
        )
        raise HTTPException(status_code=404, detail=NOT_FOUND_DETAIL)
    return attachment


def _upload_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    return size


def _quota_detail(decision: QuotaDecision, principal: Principal, usage: int) -> str:
    if decision.reason is QuotaRejection.FILE_TOO_LARGE:
        limit = principal.max_object_size_bytes or 0
        return (
            "File size exceeds the allowed limit of "
            f"{bytes_to_megabytes(limit)} MB for this application."
        )
    limit = principal.max_aggregate_storage_bytes or 0
    return (
        "This upload would exceed your storage limit of "
        f"{bytes_to_megabytes(limit)} MB. "
        f"Current usage: {bytes_to_megabytes(usage)} MB."
    )


def _storage_key(tenant_id: uuid.UUID, filename: str | None) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    return f"{tenant_id}/{uuid.uuid4().hex}{ext}"


def _content_disposition(filename: str) -> str:
    return f"attachment; filename*=UTF-8''{quote(filename)}"


async def stream_attachment(s3: S3Client, attachment: Attachment) -> StreamingResponse:
    """Stream an attachment's blob with its original name and type.

    Raises:
        HTTPException 404: if metadata exists but the blob is gone.
    """
    body = await s3.open_stream(attachment.storage_key)
    if body is None:
        logger.error(
            "attachment_blob_missing",
            attachment_id=str(attachment.id),
            storage_key=attachment.storage_key,
        )
        raise HTTPException(status_code=404, detail="File data not found")
    return StreamingResponse(
        body,
        media_type=attachment.content_type,
        headers={
            "Content-Disposition": _content_disposition(attachment.original_filename),
            "Content-Length": str(attachment.size_bytes),
        },
    )


@router.post("/attachments", status_code=201)
async def upload_attachment(
    file: UploadFile,
    principal: PrincipalDep,
    session: SessionDep,
    s3: S3Dep,
    user_id: Annotated[
        str | None,
        Form(description="Optional identifier of the end user in the calling app."),
    ] = None,
) -> AttachmentCreateResponse:
    """Upload a file for the authenticated application.

    The upload is admitted against the application's per-file limit
    and, using freshly read usage, its total storage limit.

    Admission and the metadata write are not atomic: two concurrent
    uploads may both be admitted and jointly exceed the storage limit.
    """
    size = _upload_size(file)
    if size == 0:
        raise HTTPException(status_code=400, detail="No file uploaded.")

    repo = AttachmentRepository(session)
    decision, usage = await admit_upload(principal, size, repo)
    if not decision.admitted:
        logger.info(
            "upload_rejected",
            tenant_id=str(principal.tenant_id),
            size=size,
            usage=usage,
            reason=str(decision.reason),
        )
        raise HTTPException(
            status_code=413,
            detail=_quota_detail(decision, principal, usage),
        )

    filename = file.filename or "upload"
    content_type = file.content_type or DEFAULT_CONTENT_TYPE
    key = _storage_key(principal.tenant_id, filename)
    await s3.upload_fileobj(key, file.file, content_type, size)

    try:
        attachment = await repo.create(
            tenant_id=principal.tenant_id,
            original_filename=filename,
            content_type=content_type,
            size_bytes=size,
            storage_key=key,
            user_id=user_id,
        )
        await session.commit()
    except SQLAlchemyError:
        logger.error("attachment_metadata_write_failed", storage_key=key)
        await s3.delete_file(key)
        raise

    logger.info(
        "attachment_uploaded",
        attachment_id=str(attachment.id),
        tenant_id=str(principal.tenant_id),
        size=size,
    )
    return AttachmentCreateResponse(id=attachment.id)


@router.get("/attachments/{attachment_id}/metadata")
async def get_attachment_metadata(
    attachment_id: uuid.UUID,
    principal: PrincipalDep,
    session: SessionDep,
) -> AttachmentMetadataResponse:
    """Get metadata for one of the application's attachments."""
    attachment = await _require_owned_attachment(session, principal, attachment_id)
    return AttachmentMetadataResponse.model_validate(attachment)


@router.get("/attachments/{attachment_id}")
async def download_attachment(
    attachment_id: uuid.UUID,
    principal: PrincipalDep,
    session: SessionDep,
    s3: S3Dep,
) -> StreamingResponse:
    """Download one of the application's attachments."""
    attachment = await _require_owned_attachment(session, principal, attachment_id)
    return await stream_attachment(s3, attachment)


@router.delete("/attachments/{attachment_id}", status_code=204)
async def delete_attachment(
    attachment_id: uuid.UUID,
    principal: PrincipalDep,
    session: SessionDep,
    s3: S3Dep,
) -> Response:
    """Delete an attachment.

    The blob is deleted first; if that fails the metadata is kept so
    the delete can be retried.
    """
    attachment = await _require_owned_attachment(session, principal, attachment_id)
    await s3.delete_file(attachment.storage_key)
    await AttachmentRepository(session).delete(attachment)
    await session.commit()
    logger.info(
        "attachment_deleted",
        attachment_id=str(attachment_id),
        tenant_id=str(principal.tenant_id),
    )
    return Response(status_code=204)


@router.post("/attachments/{attachment_id}/signed-url")
async def create_signed_url(
    attachment_id: uuid.UUID,
    request: Request,
    principal: PrincipalDep,
    session: SessionDep,
    codec: CodecDep,
    body: SignedUrlRequest | None = None,
) -> SignedUrlResponse:
    """Issue a time-limited link that downloads the attachment without a key.

    The requested lifetime is clamped to the service maximum. Links
    cannot be revoked; they stop working when they expire.
    """
    await _require_owned_attachment(session, principal, attachment_id)
    requested = body.expires_in_minutes if body is not None else None
    try:
        capability = codec.generate(attachment_id, requested)
    except CapabilityTTLError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if settings.public_base_url:
        base_url = f"{settings.public_base_url.rstrip('/')}/api/v1/public/download"
    else:
        base_url = str(request.url_for("download_public"))

    return SignedUrlResponse(
        url=capability.url(base_url),
        expires_at=capability.expires_at,
        id=capability.resource_id,
        expires=capability.expires,
        sig=capability.sig,
    )
