"""Tests for S3Client."""

import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from managed_files.storage.s3 import DOWNLOAD_CHUNK_SIZE, S3Client


def _make_client() -> S3Client:
    client = S3Client(
        endpoint_url="http://localhost:9000/",
        access_key="key",
        secret_key="secret",
        bucket="my-bucket",
    )
    client._client = AsyncMock()
    return client


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError(
        error_response={"Error": {"Code": code, "Message": "error"}},
        operation_name=operation,
    )


def _body(data: bytes) -> MagicMock:
    """Mimic aiobotocore's StreamingBody async context manager."""
    buffer = io.BytesIO(data)
    stream = MagicMock()
    stream.read = AsyncMock(side_effect=lambda size: buffer.read(size))
    body = MagicMock()
    body.__aenter__ = AsyncMock(return_value=stream)
    body.__aexit__ = AsyncMock(return_value=False)
    return body


class TestS3Client:
    def test_init_stores_config(self) -> None:
        """S3Client stores configuration parameters."""
        client = S3Client(
            endpoint_url="http://localhost:9000/",
            access_key="test-key",
            secret_key="test-secret",
            bucket="test-bucket",
        )
        assert client._endpoint_url == "http://localhost:9000"
        assert client._bucket == "test-bucket"

    @pytest.mark.asyncio
    async def test_upload_raises_without_init(self) -> None:
        """upload_fileobj() raises RuntimeError if not initialized."""
        client = S3Client(
            endpoint_url="http://localhost:9000",
            access_key="key",
            secret_key="secret",
            bucket="bucket",
        )
        with pytest.raises(RuntimeError, match="not initialized"):
            await client.upload_fileobj("k", io.BytesIO(b"data"), "text/plain", 4)

    @pytest.mark.asyncio
    async def test_upload_fileobj(self) -> None:
        """upload_fileobj() sends the exact length and content type."""
        client = _make_client()
        fileobj = io.BytesIO(b"content")

        key = await client.upload_fileobj(
            "tenant/abc.pdf", fileobj, "application/pdf", 7
        )

        assert key == "tenant/abc.pdf"
        client._client.put_object.assert_awaited_once_with(
            Bucket="my-bucket",
            Key="tenant/abc.pdf",
            Body=fileobj,
            ContentType="application/pdf",
            ContentLength=7,
        )

    @pytest.mark.asyncio
    async def test_open_stream_yields_chunks(self) -> None:
        client = _make_client()
        data = b"x" * (DOWNLOAD_CHUNK_SIZE + 10)
        client._client.get_object.return_value = {"Body": _body(data)}

        stream = await client.open_stream("tenant/abc.bin")

        assert stream is not None
        chunks = [chunk async for chunk in stream]
        assert [len(c) for c in chunks] == [DOWNLOAD_CHUNK_SIZE, 10]
        assert b"".join(chunks) == data

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["NoSuchKey", "404", "NotFound"])
    async def test_open_stream_missing_key(self, code: str) -> None:
        client = _make_client()
        client._client.get_object.side_effect = _client_error(code, "GetObject")

        assert await client.open_stream("tenant/gone.bin") is None

    @pytest.mark.asyncio
    async def test_open_stream_other_error_propagates(self) -> None:
        client = _make_client()
        client._client.get_object.side_effect = _client_error(
            "AccessDenied", "GetObject"
        )

        with pytest.raises(ClientError):
            await client.open_stream("tenant/abc.bin")

    @pytest.mark.asyncio
    async def test_delete_file(self) -> None:
        client = _make_client()
        await client.delete_file("tenant/abc.bin")
        client._client.delete_object.assert_awaited_once_with(
            Bucket="my-bucket", Key="tenant/abc.bin"
        )

    @pytest.mark.asyncio
    async def test_ensure_bucket_raises_if_missing(self) -> None:
        """ensure_bucket() raises ClientError when bucket not found."""
        client = _make_client()
        client._client.head_bucket.side_effect = _client_error("404", "HeadBucket")

        with pytest.raises(ClientError):
            await client.ensure_bucket()

    @pytest.mark.asyncio
    async def test_ensure_bucket_skips_if_exists(self) -> None:
        """ensure_bucket() does nothing when bucket exists."""
        client = _make_client()

        await client.ensure_bucket()

        client._client.head_bucket.assert_awaited_once_with(Bucket="my-bucket")
        client._client.create_bucket.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_resets_client(self) -> None:
        client = _make_client()
        ctx = AsyncMock()
        client._client_ctx = ctx

        await client.close()

        ctx.__aexit__.assert_awaited_once_with(None, None, None)
        assert client._client is None
