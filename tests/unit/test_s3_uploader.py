"""
Test suite for S3StreamingUploader.

Tests single-put and multipart paths, abort on failure or cancellation,
presigned URLs and client construction. boto3 is replaced by a MagicMock.

System role: Verification of the object storage boundary
"""

import asyncio
import threading
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from backup_pipeline.boundary.aws.s3_client import MIN_PART_SIZE, S3StreamingUploader
from backup_pipeline.core.exceptions import StreamAbortedError, UploadError
from backup_pipeline.models.backup import StorageTarget

MiB = 1024 * 1024


@pytest.fixture
def s3_client() -> MagicMock:
    """Provide a mocked boto3 S3 client."""
    client = MagicMock()
    client.create_multipart_upload.return_value = {"UploadId": "upload-1"}
    client.upload_part.side_effect = lambda **kwargs: {"ETag": f"etag-{kwargs['PartNumber']}"}
    client.generate_presigned_url.return_value = "https://s3.test/backups/orders.dump?sig=1"
    return client


@pytest.fixture
def uploader(s3_client: MagicMock) -> S3StreamingUploader:
    return S3StreamingUploader(bucket="backups", s3_client=s3_client, part_size=MIN_PART_SIZE)


async def chunks(*parts: bytes):
    for part in parts:
        yield part


def client_error(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "NoSuchBucket", "Message": "bucket missing"}}, operation)


class TestUploadSmallPayload:
    """Test suite for payloads under one part."""

    @pytest.mark.asyncio
    async def test_should_use_single_put(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        # Act
        url = await uploader.upload("orders.dump", chunks(b"abc", b"def"))

        # Assert
        s3_client.put_object.assert_called_once_with(
            Bucket="backups", Key="orders.dump", Body=b"abcdef"
        )
        s3_client.create_multipart_upload.assert_not_called()
        assert url == "https://s3.test/backups/orders.dump?sig=1"

    @pytest.mark.asyncio
    async def test_empty_stream_should_upload_empty_object(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        await uploader.upload("empty.dump", chunks())

        s3_client.put_object.assert_called_once_with(Bucket="backups", Key="empty.dump", Body=b"")


class TestUploadMultipart:
    """Test suite for payloads spanning several parts."""

    @pytest.mark.asyncio
    async def test_should_send_parts_in_order_and_complete(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        # Arrange
        block = b"x" * (4 * MiB)

        # Act
        await uploader.upload("big.dump", chunks(block, block, block))

        # Assert
        part_calls = s3_client.upload_part.call_args_list
        assert [call.kwargs["PartNumber"] for call in part_calls] == [1, 2, 3]
        assert [len(call.kwargs["Body"]) for call in part_calls] == [5 * MiB, 5 * MiB, 2 * MiB]
        s3_client.complete_multipart_upload.assert_called_once_with(
            Bucket="backups",
            Key="big.dump",
            UploadId="upload-1",
            MultipartUpload={
                "Parts": [
                    {"ETag": "etag-1", "PartNumber": 1},
                    {"ETag": "etag-2", "PartNumber": 2},
                    {"ETag": "etag-3", "PartNumber": 3},
                ]
            },
        )
        s3_client.put_object.assert_not_called()
        s3_client.abort_multipart_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_client_error_should_abort_and_raise(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        # Arrange
        s3_client.upload_part.side_effect = client_error("UploadPart")

        # Act / Assert
        with pytest.raises(UploadError) as exc_info:
            await uploader.upload("big.dump", chunks(b"x" * (6 * MiB)))

        assert "bucket missing" in exc_info.value.message
        s3_client.abort_multipart_upload.assert_called_once_with(
            Bucket="backups", Key="big.dump", UploadId="upload-1"
        )

    @pytest.mark.asyncio
    async def test_abandoned_source_should_abort_and_raise(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        async def aborted_source():
            yield b"x" * (6 * MiB)
            raise StreamAbortedError("dump process exited with code 1")

        with pytest.raises(UploadError) as exc_info:
            await uploader.upload("big.dump", aborted_source())

        assert exc_info.value.message.startswith("Upload abandoned")
        s3_client.abort_multipart_upload.assert_called_once()
        s3_client.complete_multipart_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancellation_should_abort_and_propagate(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        # Arrange
        stalled = asyncio.Event()

        async def stalled_source():
            yield b"x" * (6 * MiB)
            await stalled.wait()
            yield b"never"

        task = asyncio.create_task(uploader.upload("big.dump", stalled_source()))
        for _ in range(200):
            if s3_client.upload_part.called:
                break
            await asyncio.sleep(0.01)

        # Act
        task.cancel()

        # Assert
        with pytest.raises(asyncio.CancelledError):
            await task
        s3_client.abort_multipart_upload.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel_during_single_put_should_remove_written_object(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        # Arrange
        bucket: dict[str, bytes] = {}
        started = threading.Event()

        def slow_put(**kwargs):
            started.set()
            time.sleep(0.3)
            bucket[kwargs["Key"]] = kwargs["Body"]

        s3_client.put_object.side_effect = slow_put
        s3_client.delete_object.side_effect = lambda **kwargs: bucket.pop(kwargs["Key"])
        task = asyncio.create_task(uploader.upload("orders.dump", chunks(b"dump-bytes")))
        for _ in range(200):
            if started.is_set():
                break
            await asyncio.sleep(0.01)

        # Act
        task.cancel()

        # Assert
        with pytest.raises(asyncio.CancelledError):
            await task
        assert "orders.dump" not in bucket
        s3_client.delete_object.assert_called_once_with(Bucket="backups", Key="orders.dump")
        s3_client.abort_multipart_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_during_complete_should_remove_assembled_object(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        # Arrange
        started = threading.Event()

        def slow_complete(**kwargs):
            started.set()
            time.sleep(0.3)

        s3_client.complete_multipart_upload.side_effect = slow_complete
        task = asyncio.create_task(
            uploader.upload("big.dump", chunks(b"x" * (6 * MiB)))
        )
        for _ in range(200):
            if started.is_set():
                break
            await asyncio.sleep(0.01)

        # Act
        task.cancel()

        # Assert
        with pytest.raises(asyncio.CancelledError):
            await task
        s3_client.complete_multipart_upload.assert_called_once()
        s3_client.delete_object.assert_called_once_with(Bucket="backups", Key="big.dump")
        s3_client.abort_multipart_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_single_put_error_should_raise_without_abort(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        s3_client.put_object.side_effect = client_error("PutObject")

        with pytest.raises(UploadError):
            await uploader.upload("orders.dump", chunks(b"abc"))

        s3_client.abort_multipart_upload.assert_not_called()


class TestPresignedUrlAndDelete:
    """Test suite for download URLs and object removal."""

    def test_presigned_url_should_use_configured_expiry(self, s3_client: MagicMock) -> None:
        uploader = S3StreamingUploader(
            bucket="backups", s3_client=s3_client, presigned_url_expiry=600
        )

        url, expires_at = uploader.generate_presigned_download_url("orders.dump")

        s3_client.generate_presigned_url.assert_called_once_with(
            ClientMethod="get_object",
            Params={"Bucket": "backups", "Key": "orders.dump"},
            ExpiresIn=600,
        )
        assert url == "https://s3.test/backups/orders.dump?sig=1"
        expected = datetime.now(timezone.utc) + timedelta(seconds=600)
        assert abs((expires_at - expected).total_seconds()) < 5

    @pytest.mark.asyncio
    async def test_delete_should_remove_object(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        await uploader.delete("orders.dump")

        s3_client.delete_object.assert_called_once_with(Bucket="backups", Key="orders.dump")

    @pytest.mark.asyncio
    async def test_delete_failure_should_raise_upload_error(
        self, uploader: S3StreamingUploader, s3_client: MagicMock
    ) -> None:
        s3_client.delete_object.side_effect = client_error("DeleteObject")

        with pytest.raises(UploadError):
            await uploader.delete("orders.dump")


class TestConstruction:
    """Test suite for constructor validation and client wiring."""

    def test_should_reject_empty_bucket(self) -> None:
        with pytest.raises(ValueError):
            S3StreamingUploader(bucket="", s3_client=MagicMock())

    def test_should_reject_part_size_below_minimum(self) -> None:
        with pytest.raises(ValueError):
            S3StreamingUploader(bucket="backups", s3_client=MagicMock(), part_size=1024)

    def test_from_target_should_build_path_style_client(self) -> None:
        target = StorageTarget(
            endpoint="http://minio:9000",
            bucket="backups",
            region="us-east-1",
            access_key="AK",
            secret_key="SK",
        )

        with patch("backup_pipeline.boundary.aws.s3_client.boto3.client") as client_factory:
            uploader = S3StreamingUploader.from_target(target, presigned_url_expiry=120)

        kwargs = client_factory.call_args.kwargs
        assert client_factory.call_args.args == ("s3",)
        assert kwargs["endpoint_url"] == "http://minio:9000"
        assert kwargs["aws_access_key_id"] == "AK"
        assert kwargs["aws_secret_access_key"] == "SK"
        assert kwargs["region_name"] == "us-east-1"
        assert kwargs["config"].s3 == {"addressing_style": "path"}
        assert uploader._expires_in == 120
