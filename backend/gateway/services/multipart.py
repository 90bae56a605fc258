from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from botocore.client import BaseClient

from gateway.core.errors import (
    GatewayError,
    UploadTooLargeError,
    UploadValidationError,
    translate_storage_error,
)

logger = logging.getLogger(__name__)


class AsyncByteStream(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


class MultipartUploader:
    """Streams a body into one object through the S3 multipart protocol.

    Parts are read sequentially and uploaded with at most ``queue_size``
    transfers buffered at a time. Any failure aborts the upload so the
    backend discards parts already stored.
    """

    def __init__(
        self,
        client: BaseClient,
        bucket: str,
        *,
        part_size: int,
        queue_size: int,
        max_bytes: int | None = None,
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.part_size = part_size
        self.queue_size = max(1, queue_size)
        self.max_bytes = max_bytes

    async def _read_part(self, stream: AsyncByteStream) -> bytes:
        buffer = bytearray()
        while len(buffer) < self.part_size:
            chunk = await stream.read(self.part_size - len(buffer))
            if not chunk:
                break
            buffer.extend(chunk)
        return bytes(buffer)

    async def upload(self, stream: AsyncByteStream, key: str, content_type: str) -> None:
        first_part = await self._read_part(stream)
        if not first_part:
            raise UploadValidationError("File is required.")
        self._check_size(len(first_part))

        try:
            created = await asyncio.to_thread(
                self.client.create_multipart_upload,
                Bucket=self.bucket,
                Key=key,
                ContentType=content_type,
            )
        except Exception as exc:
            error = translate_storage_error(exc)
            logger.error("Could not start multipart upload for %s: %s", key, error.detail)
            raise error from exc

        upload_id = created["UploadId"]
        logger.info("Started multipart upload for %s", key)

        try:
            parts, total = await self._upload_parts(stream, first_part, key, upload_id)
            await asyncio.to_thread(
                self.client.complete_multipart_upload,
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except asyncio.CancelledError:
            logger.warning("Multipart upload for %s cancelled; aborting", key)
            await asyncio.shield(self._abort(key, upload_id))
            raise
        except GatewayError:
            await self._abort(key, upload_id)
            raise
        except Exception as exc:
            await self._abort(key, upload_id)
            error = translate_storage_error(exc)
            logger.error("Multipart upload for %s failed: %s", key, error.detail)
            raise error from exc

        logger.info("Completed multipart upload for %s (%d parts, %d bytes)", key, len(parts), total)

    def _check_size(self, total: int) -> None:
        if self.max_bytes is not None and total > self.max_bytes:
            raise UploadTooLargeError(f"File exceeds the maximum upload size of {self.max_bytes} bytes.")

    async def _upload_parts(
        self,
        stream: AsyncByteStream,
        first_part: bytes,
        key: str,
        upload_id: str,
    ) -> tuple[list[dict[str, Any]], int]:
        slots = asyncio.Semaphore(self.queue_size)
        failed = asyncio.Event()
        tasks: list[asyncio.Task] = []

        async def send(part_number: int, body: bytes) -> dict[str, Any]:
            try:
                response = await asyncio.to_thread(
                    self.client.upload_part,
                    Bucket=self.bucket,
                    Key=key,
                    UploadId=upload_id,
                    PartNumber=part_number,
                    Body=body,
                )
            except BaseException:
                failed.set()
                raise
            finally:
                slots.release()
            return {"PartNumber": part_number, "ETag": response["ETag"]}

        total = 0
        body = first_part
        try:
            while body and not failed.is_set():
                total += len(body)
                self._check_size(total)
                await slots.acquire()
                if failed.is_set():
                    slots.release()
                    break
                tasks.append(asyncio.create_task(send(len(tasks) + 1, body)))
                body = await self._read_part(stream)
            results = await asyncio.shield(asyncio.gather(*tasks, return_exceptions=True))
        except BaseException:
            # Part transfers run in threads and must settle before the session
            # is aborted.
            await asyncio.shield(asyncio.gather(*tasks, return_exceptions=True))
            raise

        for result in results:
            if isinstance(result, BaseException):
                raise result
        parts = sorted(results, key=lambda part: part["PartNumber"])
        return parts, total

    async def _abort(self, key: str, upload_id: str) -> None:
        try:
            await asyncio.to_thread(
                self.client.abort_multipart_upload,
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
            )
        except Exception:
            logger.exception("Failed to abort multipart upload %s for %s", upload_id, key)
        else:
            logger.info("Aborted multipart upload for %s", key)
