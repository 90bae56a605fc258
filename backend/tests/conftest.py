import io
import sys
import threading
import time
from pathlib import Path

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
from httpx import ASGITransport, AsyncClient

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gateway.api.deps import get_storage_client_factory
from gateway.core.config import get_settings

STORAGE_ENV = {
    "MINIO_ENDPOINT": "http://minio.local:9000",
    "MINIO_REGION": "us-east-1",
    "MINIO_ACCESS_KEY": "test-access",
    "MINIO_SECRET_KEY": "test-secret",
    "MINIO_BUCKET": "videos-bucket",
    "MINIO_UPLOAD_URL_EXPIRES": "3600",
}

UNSET_ENV = (
    "NO_PROXY",
    "no_proxy",
    "MINIO_PUBLIC_BASE_URL",
    "MAX_UPLOAD_BYTES",
    "LOG_LEVEL",
    "PREVIEW_NOTIFY_TO",
    "PREVIEW_NOTIFY_FROM",
    "SMTP_HOST",
    "SMTP_USER",
    "SMTP_PASS",
    "APP_BASE_URL",
    "NUXT_PUBLIC_APP_BASE_URL",
)


class DummyS3Client:
    """In-memory stand-in for the boto3 S3 client's multipart calls."""

    def __init__(self, fail_part: int | None = None, part_delay: float = 0.0) -> None:
        self.fail_part = fail_part
        self.part_delay = part_delay
        self.calls: list[tuple[str, dict]] = []
        self.timeline: list[tuple[str, int | None]] = []
        self.parts: dict[str, dict[int, bytes]] = {}
        self.objects: dict[str, bytes] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()
        self._uploads = 0

    def _record(self, name: str, **kwargs) -> None:
        with self._lock:
            self.calls.append((name, kwargs))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def create_multipart_upload(self, **kwargs):
        self._record("create_multipart_upload", **kwargs)
        with self._lock:
            self._uploads += 1
            upload_id = f"upload-{self._uploads}"
            self.parts[upload_id] = {}
        return {"UploadId": upload_id}

    def upload_part(self, **kwargs):
        self._record("upload_part", PartNumber=kwargs["PartNumber"], size=len(kwargs["Body"]))
        with self._lock:
            self.timeline.append(("part_start", kwargs["PartNumber"]))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.part_delay:
                time.sleep(self.part_delay)
            if kwargs["PartNumber"] == self.fail_part:
                raise ClientError(
                    {
                        "Error": {"Code": "InternalError", "Message": "We encountered an internal error."},
                        "ResponseMetadata": {"HTTPStatusCode": 500, "RequestId": "req-123"},
                    },
                    "UploadPart",
                )
            with self._lock:
                self.parts[kwargs["UploadId"]][kwargs["PartNumber"]] = kwargs["Body"]
            return {"ETag": f'"etag-{kwargs["PartNumber"]}"'}
        finally:
            with self._lock:
                self.in_flight -= 1
                self.timeline.append(("part_done", kwargs["PartNumber"]))

    def complete_multipart_upload(self, **kwargs):
        self._record("complete_multipart_upload", **kwargs)
        stored = self.parts.pop(kwargs["UploadId"])
        numbers = [part["PartNumber"] for part in kwargs["MultipartUpload"]["Parts"]]
        self.objects[kwargs["Key"]] = b"".join(stored[number] for number in numbers)
        return {"ETag": '"final"'}

    def abort_multipart_upload(self, **kwargs):
        self._record("abort_multipart_upload", **kwargs)
        with self._lock:
            self.timeline.append(("abort", None))
        self.parts.pop(kwargs["UploadId"], None)
        return {}


class BytesStream:
    def __init__(self, data: bytes) -> None:
        self._buffer = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch):
    for name, value in STORAGE_ENV.items():
        monkeypatch.setenv(name, value)
    for name in UNSET_ENV:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def dummy_s3():
    return DummyS3Client()


@pytest.fixture
def factory_calls():
    return []


@pytest.fixture
def app_instance(configure_environment):
    from gateway.main import create_app

    return create_app()


@pytest.fixture
def storage_app(app_instance, dummy_s3, factory_calls):
    def factory(credentials, no_proxy_hosts):
        factory_calls.append((credentials, frozenset(no_proxy_hosts)))
        return dummy_s3

    app_instance.dependency_overrides[get_storage_client_factory] = lambda: factory
    return app_instance


@pytest_asyncio.fixture
async def client(app_instance):
    transport = ASGITransport(app=app_instance)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture
async def storage_client(storage_app):
    transport = ASGITransport(app=storage_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def make_stream():
    return BytesStream
