from typing import Any

from gateway.schemas.storage import CamelModel


class PreviewNotifyRequest(CamelModel):
    video_url: Any = None


class PreviewNotifyResponse(CamelModel):
    sent: bool
    reason: str | None = None
    code: str | None = None
    command: str | None = None
