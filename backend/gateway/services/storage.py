import logging
import re
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import boto3
from botocore.client import BaseClient, Config

from gateway.core.config import Settings
from gateway.core.errors import ConfigurationError, UploadValidationError
from gateway.core.network import NoProxyRegistry, endpoint_hostname
from gateway.services.multipart import AsyncByteStream, MultipartUploader

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "video.mp4"
DEFAULT_CONTENT_TYPE = "video/mp4"
VIDEO_CONTENT_PREFIX = "video/"
OBJECT_KEY_PREFIX = "videos"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_CHARS.sub("_", filename)


def generate_object_key(safe_name: str) -> str:
    now_ms = time.time_ns() // 1_000_000
    return f"{OBJECT_KEY_PREFIX}/{now_ms}-{uuid4()}-{safe_name}"


def ensure_video_content_type(content_type: str) -> None:
    if not content_type.startswith(VIDEO_CONTENT_PREFIX):
        raise UploadValidationError("Only video files are allowed.")


@dataclass(frozen=True)
class StorageCredentials:
    endpoint: str
    region: str
    access_key: str
    secret_key: str = field(repr=False)
    bucket: str
    public_base_url: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageCredentials":
        return cls(
            endpoint=settings.minio_endpoint.strip(),
            region=settings.minio_region.strip(),
            access_key=settings.minio_access_key.strip(),
            secret_key=settings.minio_secret_key.get_secret_value().strip(),
            bucket=settings.minio_bucket.strip(),
            public_base_url=settings.minio_public_base_url.strip(),
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.endpoint and self.access_key and self.secret_key and self.bucket)

    def require_complete(self) -> "StorageCredentials":
        if not self.is_complete:
            raise ConfigurationError(
                "MinIO config is incomplete. "
                "Please set MINIO_ENDPOINT/MINIO_ACCESS_KEY/MINIO_SECRET_KEY/MINIO_BUCKET."
            )
        return self

    def object_url(self, key: str) -> str:
        base = (self.public_base_url or self.endpoint).rstrip("/")
        return f"{base}/{self.bucket}/{key}"


def create_storage_client(
    credentials: StorageCredentials,
    no_proxy_hosts: Iterable[str] = (),
) -> BaseClient:
    """Build an S3 client using path-style addressing and no automatic retries."""
    credentials.require_complete()

    config_kwargs: dict[str, Any] = {
        "signature_version": "s3v4",
        "s3": {"addressing_style": "path"},
        "retries": {"total_max_attempts": 1},
    }
    if endpoint_hostname(credentials.endpoint) in set(no_proxy_hosts):
        # An explicit empty mapping stops botocore from consulting HTTP(S)_PROXY.
        config_kwargs["proxies"] = {}

    session = boto3.session.Session()
    try:
        return session.client(
            "s3",
            endpoint_url=credentials.endpoint,
            aws_access_key_id=credentials.access_key,
            aws_secret_access_key=credentials.secret_key,
            region_name=credentials.region or None,
            config=Config(**config_kwargs),
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid MinIO endpoint: {credentials.endpoint}") from exc


StorageClientFactory = Callable[[StorageCredentials, Iterable[str]], BaseClient]


@dataclass(frozen=True)
class PresignedUrlGrant:
    signed_url: str
    object_url: str
    expires_in: int


class StorageService:
    """Video uploads against an S3-compatible bucket."""

    def __init__(self, credentials: StorageCredentials, client: BaseClient) -> None:
        self.credentials = credentials
        self.client = client
        self.bucket = credentials.bucket

    def create_presigned_put(self, key: str, content_type: str, expires_in: int) -> str:
        return self.client.generate_presigned_url(
            "put_object",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "ContentType": content_type,
            },
            ExpiresIn=expires_in,
            HttpMethod="PUT",
        )

    def issue_upload_url(self, file_name: str, content_type: str, expires_in: int) -> PresignedUrlGrant:
        ensure_video_content_type(content_type)
        key = generate_object_key(sanitize_filename(file_name))
        signed_url = self.create_presigned_put(key, content_type, expires_in)
        logger.info("Issued upload URL for %s (expires in %ss)", key, expires_in)
        return PresignedUrlGrant(
            signed_url=signed_url,
            object_url=self.credentials.object_url(key),
            expires_in=expires_in,
        )

    async def upload_video(
        self,
        stream: AsyncByteStream,
        file_name: str,
        content_type: str,
        *,
        part_size: int,
        queue_size: int,
        max_bytes: int | None = None,
    ) -> str:
        ensure_video_content_type(content_type)
        key = generate_object_key(sanitize_filename(file_name))
        uploader = MultipartUploader(
            self.client,
            self.bucket,
            part_size=part_size,
            queue_size=queue_size,
            max_bytes=max_bytes,
        )
        await uploader.upload(stream, key, content_type)
        return self.credentials.object_url(key)


class StorageConnector:
    """Builds a :class:`StorageService` bound to the proxy bypass registry."""

    def __init__(
        self,
        registry: NoProxyRegistry,
        client_factory: StorageClientFactory = create_storage_client,
    ) -> None:
        self.registry = registry
        self.client_factory = client_factory

    def connect(self, credentials: StorageCredentials) -> StorageService:
        self.registry.register(credentials.endpoint)
        client = self.client_factory(credentials, self.registry.hosts())
        return StorageService(credentials, client)
