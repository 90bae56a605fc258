from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status

from gateway.core.config import Settings, get_settings
from gateway.schemas import PreviewNotifyRequest, PreviewNotifyResponse
from gateway.services.notify import VisitInfo, parse_video_url, send_preview_notification

router = APIRouter(prefix="/api", tags=["notify"])


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


@router.post("/preview-notify", response_model=PreviewNotifyResponse, response_model_exclude_none=True)
async def preview_notify(
    request: Request,
    payload: PreviewNotifyRequest | None = Body(default=None),
    settings: Settings = Depends(get_settings),
) -> PreviewNotifyResponse:
    video_url = parse_video_url(payload.video_url if payload else None)
    if not video_url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid video url.")

    visit = VisitInfo(
        video_url=video_url,
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent") or "unknown",
        referer=request.headers.get("referer") or "unknown",
        visited_at=datetime.now(timezone.utc),
    )
    result = await send_preview_notification(visit, settings)
    return PreviewNotifyResponse(**asdict(result))
