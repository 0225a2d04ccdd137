"""Anonymous download through signed links.

The link's signature is the only authorization: no API key is read.
Expired, tampered and malformed links all get the same 401 answer.
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse

from managed_files.api.deps import CodecDep, S3Dep, SessionDep
from managed_files.api.routes.attachments import stream_attachment
from managed_files.storage.repositories import AttachmentRepository

logger = structlog.get_logger()

router = APIRouter(tags=["public"])

INVALID_LINK_DETAIL = "Invalid or expired download link"


@router.get("/public/download")
async def download_public(
    session: SessionDep,
    s3: S3Dep,
    codec: CodecDep,
    id: Annotated[str | None, Query(description="Attachment id.")] = None,  # noqa: A002
    expires: Annotated[
        str | None, Query(description="Expiry, Unix epoch seconds (UTC).")
    ] = None,
    sig: Annotated[str | None, Query(description="Link signature.")] = None,
) -> StreamingResponse:
    """Download an attachment using a signed link.

    Query parameters are taken as raw strings so that malformed values
    fail the same way as a bad signature instead of a validation error.
    """
    attachment_id = codec.verify_query(id, expires, sig)
    if attachment_id is None:
        raise HTTPException(status_code=401, detail=INVALID_LINK_DETAIL)

    attachment = await AttachmentRepository(session).get_by_id(attachment_id)
    if attachment is None:
        logger.warning("signed_url_target_missing", attachment_id=str(attachment_id))
        raise HTTPException(status_code=404, detail="Attachment not found")

    logger.info("public_download", attachment_id=str(attachment_id))
    return await stream_attachment(s3, attachment)
