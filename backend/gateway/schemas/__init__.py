from gateway.schemas.notify import PreviewNotifyRequest, PreviewNotifyResponse
from gateway.schemas.storage import UploadResponse, UploadUrlRequest, UploadUrlResponse

__all__ = [
    "UploadUrlRequest",
    "UploadUrlResponse",
    "UploadResponse",
    "PreviewNotifyRequest",
    "PreviewNotifyResponse",
]
