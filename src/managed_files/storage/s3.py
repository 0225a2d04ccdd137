"""Async S3 client for MinIO/S3 blob storage."""

from __future__ import annotations

from collections.abc import AsyncIterator
from types import TracebackType
from typing import IO, Any

import structlog
from aiobotocore.session import get_session as get_aio_session
from botocore.exceptions import ClientError

logger = structlog.get_logger()

DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

_MISSING_KEY_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3Client:
    """Async S3 client wrapping aiobotocore.

    Blobs are addressed by opaque keys; the client knows nothing about
    tenants or attachments.

    Usage::

        async with S3Client(endpoint, access_key, secret_key, bucket) as s3:
            await s3.upload_fileobj("key.pdf", fh, "application/pdf", size)
    """

    def __init__(
        self,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        bucket: str,
    ) -> None:
        self._endpoint_url = endpoint_url.rstrip("/")
        self._access_key = access_key
        self._secret_key = secret_key
        self._bucket = bucket
        self._session = get_aio_session()
        self._client_ctx: Any = None
        self._client: Any = None

    async def open(self) -> None:
        """Create the underlying aiobotocore client (idempotent)."""
        if self._client is not None:
            return
        self._client_ctx = self._session.create_client(
            "s3",
            endpoint_url=self._endpoint_url,
            aws_access_key_id=self._access_key,
            aws_secret_access_key=self._secret_key,
        )
        self._client = await self._client_ctx.__aenter__()

    async def close(self) -> None:
        """Close the underlying aiobotocore client."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client_ctx = None
            self._client = None

    async def __aenter__(self) -> S3Client:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _require_client(self) -> Any:
        if self._client is None:
            msg = "S3Client not initialized. Use 'async with S3Client(...)'"
            raise RuntimeError(msg)
        return self._client

    async def upload_fileobj(
        self,
        key: str,
        fileobj: IO[bytes],
        content_type: str,
        size: int,
    ) -> str:
        """Store a blob read from a file object.

        Args:
            key: Object key in the bucket.
            fileobj: Readable binary file positioned at the start.
            content_type: MIME type of the blob.
            size: Exact byte length of the blob.

        Returns:
            The object key.
        """
        client = self._require_client()
        await client.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=fileobj,
            ContentType=content_type,
            ContentLength=size,
        )
        logger.info("s3_upload", key=key, content_type=content_type, size=size)
        return key

    async def open_stream(self, key: str) -> AsyncIterator[bytes] | None:
        """Open a blob for streaming.

        Returns:
            Async iterator over the blob's bytes, or ``None`` if the key
            does not exist.
        """
        client = self._require_client()
        try:
            response = await client.get_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code", "") in _MISSING_KEY_CODES:
                logger.warning("s3_key_missing", key=key)
                return None
            raise

        return _iter_body(response["Body"])

    async def delete_file(self, key: str) -> None:
        """Delete a blob. Deleting a missing key is not an error in S3."""
        client = self._require_client()
        await client.delete_object(Bucket=self._bucket, Key=key)
        logger.info("s3_delete", key=key)

    async def check_connectivity(self) -> None:
        """Verify S3 bucket is accessible."""
        client = self._require_client()
        await client.head_bucket(Bucket=self._bucket)

    async def ensure_bucket(self) -> None:
        """Verify that the bucket exists.

        In production the bucket must be pre-created; in dev it is
        created by the minio-init container.
        """
        client = self._require_client()
        try:
            await client.head_bucket(Bucket=self._bucket)
            logger.info("s3_bucket_verified", bucket=self._bucket)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in ("404", "NoSuchBucket"):
                logger.error("s3_bucket_not_found", bucket=self._bucket)
            raise


async def _iter_body(body: Any) -> AsyncIterator[bytes]:
    async with body as stream:
        while True:
            chunk = await stream.read(DOWNLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
