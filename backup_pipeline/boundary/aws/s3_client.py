"""
S3 client for streaming backup uploads.

Uploads a live byte stream to an S3-compatible bucket with multipart
transfer, then hands back a time-limited presigned download URL.

Dependencies: boto3
System role: Object storage boundary for backup artifacts
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from backup_pipeline.core.exceptions import StreamAbortedError, UploadError
from backup_pipeline.models.backup import StorageTarget

logger = logging.getLogger(__name__)

MIN_PART_SIZE = 5 * 1024 * 1024


class S3StreamingUploader:
    """
    Streaming uploader bound to one bucket.

    Parts are sent as soon as enough bytes arrive, so memory use stays at
    about one part regardless of the dump size. Payloads smaller than one
    part go through a single put_object.
    """

    def __init__(
        self,
        bucket: str,
        s3_client: Any,
        part_size: int = 8 * 1024 * 1024,
        presigned_url_expiry: int = 3600,
    ) -> None:
        """
        Initialize S3 streaming uploader.

        Args:
            bucket: Destination bucket
            s3_client: Boto3 S3 client
            part_size: Multipart part size in bytes (minimum 5 MiB)
            presigned_url_expiry: Download URL lifetime in seconds

        Raises:
            ValueError: If bucket is empty or part_size is below the S3 minimum
        """
        if not bucket:
            raise ValueError("bucket is required")
        if part_size < MIN_PART_SIZE:
            raise ValueError(f"part_size must be at least {MIN_PART_SIZE} bytes")

        self._bucket = bucket
        self._s3_client = s3_client
        self._part_size = part_size
        self._expires_in = presigned_url_expiry

    @classmethod
    def from_target(
        cls,
        target: StorageTarget,
        part_size: int = 8 * 1024 * 1024,
        presigned_url_expiry: int = 3600,
    ) -> "S3StreamingUploader":
        """
        Build an uploader from request-supplied credentials.

        Uses path-style addressing so MinIO and other S3-compatible
        endpoints without virtual-host DNS work.
        """
        s3_client = boto3.client(
            "s3",
            endpoint_url=target.endpoint,
            region_name=target.region,
            aws_access_key_id=target.access_key,
            aws_secret_access_key=target.secret_key,
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )
        return cls(
            bucket=target.bucket,
            s3_client=s3_client,
            part_size=part_size,
            presigned_url_expiry=presigned_url_expiry,
        )

    async def upload(self, key: str, source: AsyncIterator[bytes]) -> str:
        """
        Upload a byte stream and return a presigned download URL.

        Args:
            key: Destination object key
            source: Chunks in order; raising StreamAbortedError abandons the upload

        Returns:
            str: Presigned GET URL valid for presigned_url_expiry seconds

        Raises:
            UploadError: On transport failure or abandoned source; any
                incomplete multipart upload is aborted first
            asyncio.CancelledError: Propagated after aborting the multipart upload
        """
        buffer = bytearray()
        upload_id: str | None = None
        parts: list[dict] = []
        total = 0
        committing = False

        try:
            async for chunk in source:
                buffer.extend(chunk)
                total += len(chunk)
                while len(buffer) >= self._part_size:
                    if upload_id is None:
                        upload_id = await self._create_multipart_upload(key)
                    part = bytes(buffer[: self._part_size])
                    del buffer[: self._part_size]
                    parts.append(await self._upload_part(key, upload_id, len(parts) + 1, part))

            if upload_id is None:
                committing = True
                await self._commit(
                    key,
                    None,
                    self._s3_client.put_object,
                    Bucket=self._bucket,
                    Key=key,
                    Body=bytes(buffer),
                )
            else:
                if buffer:
                    parts.append(
                        await self._upload_part(key, upload_id, len(parts) + 1, bytes(buffer))
                    )
                committing = True
                await self._commit(
                    key,
                    upload_id,
                    self._s3_client.complete_multipart_upload,
                    Bucket=self._bucket,
                    Key=key,
                    UploadId=upload_id,
                    MultipartUpload={"Parts": parts},
                )
        except asyncio.CancelledError:
            logger.warning("Upload cancelled", extra={"key": key, "bytes": total})
            if not committing:
                await self._abort_multipart_upload(key, upload_id)
            raise
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"{__name__}:upload - {type(e).__name__}: {e}",
                extra={"key": key, "bytes": total},
            )
            await self._abort_multipart_upload(key, upload_id)
            raise UploadError(str(e), key=key) from e
        except StreamAbortedError as e:
            logger.warning("Upload source abandoned", extra={"key": key, "reason": e.message})
            await self._abort_multipart_upload(key, upload_id)
            raise UploadError(f"Upload abandoned: {e.message}", key=key) from e

        logger.info(
            "Upload complete",
            extra={"key": key, "bytes": total, "parts": len(parts) or 1},
        )
        url, _ = self.generate_presigned_download_url(key)
        return url

    def generate_presigned_download_url(self, key: str) -> tuple[str, datetime]:
        """
        Generate presigned URL for downloading an uploaded artifact.

        Args:
            key: S3 object key

        Returns:
            tuple[str, datetime]: (presigned_url, expires_at)
        """
        presigned_url = self._s3_client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=self._expires_in,
        )
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self._expires_in)
        return presigned_url, expires_at

    async def delete(self, key: str) -> None:
        """
        Delete an uploaded object.

        Raises:
            UploadError: If the delete request fails
        """
        try:
            await asyncio.to_thread(self._s3_client.delete_object, Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise UploadError(str(e), key=key) from e

    async def _commit(self, key: str, upload_id: str | None, call, **kwargs) -> None:
        """
        Run the request that makes the object visible.

        The request runs in a worker thread that task cancellation cannot
        stop. If the task is cancelled meanwhile, wait for the request to
        settle, then remove what it wrote (or abort the multipart upload if
        it never completed) before re-raising.
        """
        commit = asyncio.ensure_future(asyncio.to_thread(call, **kwargs))
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            await asyncio.shield(self._discard_commit(key, upload_id, commit))
            raise

    async def _discard_commit(self, key: str, upload_id: str | None, commit: asyncio.Future) -> None:
        await asyncio.wait({commit})
        if commit.cancelled() or commit.exception() is not None:
            await self._abort_multipart_upload(key, upload_id)
            return
        try:
            await asyncio.to_thread(self._s3_client.delete_object, Bucket=self._bucket, Key=key)
            logger.info("Object written after cancellation removed", extra={"key": key})
        except (ClientError, BotoCoreError) as e:
            logger.warning(
                "Failed to remove object written after cancellation",
                extra={"key": key, "error_msg": str(e)},
            )

    async def _create_multipart_upload(self, key: str) -> str:
        response = await asyncio.to_thread(
            self._s3_client.create_multipart_upload,
            Bucket=self._bucket,
            Key=key,
            ContentType="application/octet-stream",
        )
        logger.debug("Multipart upload started", extra={"key": key})
        return response["UploadId"]

    async def _upload_part(self, key: str, upload_id: str, number: int, body: bytes) -> dict:
        response = await asyncio.to_thread(
            self._s3_client.upload_part,
            Bucket=self._bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=number,
            Body=body,
        )
        return {"ETag": response["ETag"], "PartNumber": number}

    async def _abort_multipart_upload(self, key: str, upload_id: str | None) -> None:
        if upload_id is None:
            return
        try:
            await asyncio.to_thread(
                self._s3_client.abort_multipart_upload,
                Bucket=self._bucket,
                Key=key,
                UploadId=upload_id,
            )
            logger.info("Multipart upload aborted", extra={"key": key})
        except (ClientError, BotoCoreError) as e:
            logger.warning(
                "Failed to abort multipart upload",
                extra={"key": key, "error_msg": str(e)},
            )
