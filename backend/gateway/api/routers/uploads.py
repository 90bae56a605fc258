import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from gateway.api.deps import get_storage_connector, get_storage_credentials, to_http_exception
from gateway.api.forms import FORM_OVERHEAD_BYTES, MultipartFileReader
from gateway.core.config import Settings, get_settings
from gateway.core.errors import GatewayError, UploadTooLargeError, UploadValidationError
from gateway.schemas import UploadResponse, UploadUrlRequest, UploadUrlResponse
from gateway.services.storage import (
    DEFAULT_CONTENT_TYPE,
    DEFAULT_FILE_NAME,
    StorageConnector,
    StorageCredentials,
    ensure_video_content_type,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["uploads"])


async def _read_upload_url_request(request: Request) -> UploadUrlRequest:
    body = await request.body()
    if not body.strip():
        return UploadUrlRequest()
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body.") from exc
    if not isinstance(data, dict):
        return UploadUrlRequest()
    return UploadUrlRequest.model_validate(data)


def _resolve_content_type(value: object) -> str:
    if value is None or value == "":
        return DEFAULT_CONTENT_TYPE
    if not isinstance(value, str):
        raise UploadValidationError("Only video files are allowed.")
    ensure_video_content_type(value)
    return value


@router.post("/upload-url", response_model=UploadUrlResponse)
async def create_upload_url(
    request: Request,
    credentials: StorageCredentials = Depends(get_storage_credentials),
    connector: StorageConnector = Depends(get_storage_connector),
    settings: Settings = Depends(get_settings),
) -> UploadUrlResponse:
    payload = await _read_upload_url_request(request)
    file_name = payload.file_name if isinstance(payload.file_name, str) and payload.file_name else DEFAULT_FILE_NAME

    try:
        content_type = _resolve_content_type(payload.content_type)
        storage = connector.connect(credentials)
        grant = storage.issue_upload_url(file_name, content_type, settings.upload_url_expires)
    except GatewayError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        logger.exception("Failed to sign upload URL")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sign upload URL.",
        ) from exc

    return UploadUrlResponse(
        signed_url=grant.signed_url,
        object_url=grant.object_url,
        expires_in=grant.expires_in,
    )


@router.post("/upload", response_model=UploadResponse)
async def upload_video(
    request: Request,
    credentials: StorageCredentials = Depends(get_storage_credentials),
    connector: StorageConnector = Depends(get_storage_connector),
    settings: Settings = Depends(get_settings),
) -> UploadResponse:
    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > settings.max_upload_bytes + FORM_OVERHEAD_BYTES:
        raise to_http_exception(
            UploadTooLargeError(f"File exceeds the maximum upload size of {settings.max_upload_bytes} bytes.")
        )

    file_required = HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File is required.")
    reader = MultipartFileReader.from_content_type(
        request.stream(),
        request.headers.get("content-type"),
        max_bytes=settings.max_upload_bytes,
    )
    if reader is None:
        raise file_required

    try:
        if not await reader.open():
            raise file_required

        file_name = reader.filename or DEFAULT_FILE_NAME
        content_type = reader.content_type or DEFAULT_CONTENT_TYPE
        ensure_video_content_type(content_type)

        storage = connector.connect(credentials)
        object_url = await storage.upload_video(
            reader,
            file_name,
            content_type,
            part_size=settings.upload_part_size,
            queue_size=settings.upload_queue_size,
            max_bytes=settings.max_upload_bytes,
        )
    except GatewayError as exc:
        raise to_http_exception(exc) from exc

    return UploadResponse(object_url=object_url)
