from __future__ import annotations

from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

UNKNOWN_MESSAGE = "unknown error"
UNKNOWN_CODE = "UNKNOWN"


class GatewayError(Exception):
    """Base class for errors that terminate an upload request."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class UploadValidationError(GatewayError):
    """Raised for client-caused problems, before storage is contacted."""

    status_code = 400


class UploadTooLargeError(UploadValidationError):
    status_code = 413


class ConfigurationError(GatewayError):
    """Raised when storage credentials are missing or unusable."""


class StorageError(GatewayError):
    """The storage backend rejected or failed an operation.

    ``status``, ``request_id`` and the backend-provided ``code`` are optional;
    ``code`` reads as ``UNKNOWN`` when the backend did not supply one.
    """

    def __init__(
        self,
        detail: str,
        *,
        message: str = UNKNOWN_MESSAGE,
        status: int | None = None,
        code: str | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(detail)
        self.message = message
        self.status = status
        self.backend_code = code
        self.request_id = request_id

    @property
    def code(self) -> str:
        return self.backend_code or UNKNOWN_CODE


def _client_error_fields(exc: ClientError) -> tuple[str | None, int | None, str | None, str | None]:
    response: dict[str, Any] = exc.response or {}
    error = response.get("Error") or {}
    metadata = response.get("ResponseMetadata") or {}
    headers = metadata.get("HTTPHeaders") or {}

    message = error.get("Message") or None
    code = error.get("Code") or None
    status = metadata.get("HTTPStatusCode")
    request_id = metadata.get("RequestId") or headers.get("x-amz-request-id") or None
    return message, status, code, request_id


def translate_storage_error(exc: BaseException, action: str = "Upload to MinIO failed") -> StorageError:
    """Flatten a raw backend failure into a :class:`StorageError`. Never raises."""
    if isinstance(exc, StorageError):
        return exc

    message: str | None = None
    status: int | None = None
    code: str | None = None
    request_id: str | None = None

    try:
        if isinstance(exc, ClientError):
            message, status, code, request_id = _client_error_fields(exc)
        elif isinstance(exc, BotoCoreError):
            code = type(exc).__name__
        message = message or str(exc) or None
    except Exception:  # pragma: no cover - malformed error payloads
        message = None

    if not isinstance(status, int):
        status = None

    extra = ", ".join(
        part
        for part in (
            f"status={status}" if status else "",
            f"code={code}" if code else "",
            f"requestId={request_id}" if request_id else "",
        )
        if part
    )
    text = message or UNKNOWN_MESSAGE
    detail = f"{action}: {text}" + (f" ({extra})" if extra else "")
    return StorageError(
        detail,
        message=text,
        status=status,
        code=code,
        request_id=request_id,
    )
