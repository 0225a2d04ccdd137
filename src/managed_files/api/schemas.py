"""Request/response schemas for the API layer."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# --- Attachments ---


class AttachmentCreateResponse(BaseModel):
    """Response for ``POST /attachments``."""

    id: uuid.UUID


class AttachmentMetadataResponse(BaseModel):
    """Metadata of a stored attachment. Storage location is not exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    original_filename: str
    content_type: str
    size_bytes: int
    uploaded_at: datetime
    user_id: str | None


class SignedUrlRequest(BaseModel):
    """Request body for ``POST /attachments/{id}/signed-url``.

    Omit ``expires_in_minutes`` to use the service maximum.
    Zero or negative values are rejected, not defaulted.
    """

    expires_in_minutes: int | None = None


class SignedUrlResponse(BaseModel):
    """A ready-to-share download link and its parts.

    ``id``, ``expires`` and ``sig`` are the exact query parameters
    embedded in ``url``.
    """

    url: str
    expires_at: datetime
    id: uuid.UUID
    expires: int
    sig: str


# --- Applications ---


class ApplicationCreateRequest(BaseModel):
    """Request body for ``POST /applications``. Limits are in megabytes."""

    name: str = Field(..., min_length=1, max_length=200)
    max_file_size_mb: int | None = Field(default=None, gt=0)
    max_storage_mb: int | None = Field(default=None, gt=0)
    is_admin: bool = False


class ApplicationCreateResponse(BaseModel):
    """Creation result. ``api_key`` is returned here and never again."""

    id: uuid.UUID
    name: str
    api_key: str = Field(description="Plaintext API key. Store it now.")
    key_prefix: str
    is_admin: bool


class ApplicationLimitsRequest(BaseModel):
    """Request body for ``PUT /applications/{id}/limits``.

    Values are whole megabytes (1 MB = 1,048,576 bytes). Omitted
    fields leave the current limit unchanged.
    """

    max_file_size_mb: int | None = Field(default=None, gt=0)
    max_storage_mb: int | None = Field(default=None, gt=0)


class ApplicationLimitsResponse(BaseModel):
    id: uuid.UUID
    max_file_size_bytes: int | None
    max_storage_bytes: int | None


class ApplicationUsageResponse(BaseModel):
    """Storage usage for one application."""

    application_id: uuid.UUID
    application_name: str
    current_storage_bytes: int
    current_storage_mb: float
    max_file_size_bytes: int | None
    max_file_size_mb: float | None
    max_storage_bytes: int | None
    max_storage_mb: float | None
    total_files: int
    storage_usage_percentage: float


class ApplicationResponse(BaseModel):
    """An application as seen by admins. The key hash is never exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    key_prefix: str
    is_admin: bool
    max_file_size_bytes: int | None
    max_storage_bytes: int | None
    created_at: datetime


class ApplicationListResponse(BaseModel):
    """Paginated response for ``GET /applications``."""

    items: list[ApplicationResponse] = Field(
        description="Applications on the current page, ordered by name."
    )
    total: int = Field(description="Total number of registered applications.")
    limit: int = Field(description="Maximum items per page (as requested).")
    offset: int = Field(description="Number of items skipped (as requested).")


class ApplicationDetailResponse(ApplicationResponse):
    """One application with its storage use and latest uploads."""

    current_storage_bytes: int
    total_files: int
    recent_attachments: list[AttachmentMetadataResponse]
