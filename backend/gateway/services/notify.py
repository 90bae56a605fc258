import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from urllib.parse import urlsplit
from zoneinfo import ZoneInfo

import aiosmtplib

from gateway.core.config import Settings

logger = logging.getLogger(__name__)

LOCAL_TIMEZONE = ZoneInfo("Asia/Shanghai")
SMTP_TIMEOUT = 20.0

_FAILED_COMMANDS: tuple[tuple[type[Exception], str], ...] = (
    (aiosmtplib.SMTPConnectError, "CONN"),
    (aiosmtplib.SMTPConnectTimeoutError, "CONN"),
    (aiosmtplib.SMTPAuthenticationError, "AUTH"),
    (aiosmtplib.SMTPSenderRefused, "MAIL FROM"),
    (aiosmtplib.SMTPRecipientsRefused, "RCPT TO"),
    (aiosmtplib.SMTPDataError, "DATA"),
)


def parse_video_url(value: object) -> str:
    """Return the URL when it is an absolute http(s) URL, else an empty string."""
    if not isinstance(value, str) or not value:
        return ""
    try:
        parsed = urlsplit(value.strip())
    except ValueError:
        return ""
    if parsed.scheme not in ("http", "https") or not parsed.netloc or not parsed.hostname:
        return ""
    return parsed.geturl()


@dataclass(frozen=True)
class VisitInfo:
    video_url: str
    ip: str
    user_agent: str
    referer: str
    visited_at: datetime

    @property
    def local_time(self) -> str:
        return self.visited_at.astimezone(LOCAL_TIMEZONE).strftime("%Y-%m-%d %H:%M:%S")

    @property
    def utc_time(self) -> str:
        return self.visited_at.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class NotifyResult:
    sent: bool
    reason: str | None = None
    code: str | None = None
    command: str | None = None


def _text_body(visit: VisitInfo, app_base_url: str) -> str:
    lines = [
        "Video preview visit",
        "===================",
        "",
        "[Visit]",
        f"- Time (Asia/Shanghai): {visit.local_time}",
        f"- Time (UTC): {visit.utc_time}",
        f"- Video URL: {visit.video_url}",
        "",
        "[Visitor]",
        f"- IP: {visit.ip}",
        f"- User-Agent: {visit.user_agent}",
        "",
        "[Source]",
        f"- Referer: {visit.referer}",
        f"- Site: {app_base_url}",
    ]
    return "\n".join(lines)


def _html_section(title: str, rows: list[tuple[str, str]], last: bool = False) -> str:
    margin = "" if last else "margin-bottom:12px;"
    body = "".join(f"<div><strong>{html.escape(label)}:</strong> {value}</div>" for label, value in rows)
    return (
        f'<div style="border:1px solid #e5e7eb;border-radius:10px;padding:12px 14px;{margin}">'
        f'<div style="font-weight:600;margin-bottom:8px;">{html.escape(title)}</div>{body}</div>'
    )


def _html_body(visit: VisitInfo, app_base_url: str) -> str:
    url = html.escape(visit.video_url)
    sections = [
        _html_section(
            "Visit",
            [
                ("Time (Asia/Shanghai)", html.escape(visit.local_time)),
                ("Time (UTC)", html.escape(visit.utc_time)),
                ("Video URL", f'<a href="{url}">{url}</a>'),
            ],
        ),
        _html_section(
            "Visitor",
            [("IP", html.escape(visit.ip)), ("User-Agent", html.escape(visit.user_agent))],
        ),
        _html_section(
            "Source",
            [("Referer", html.escape(visit.referer)), ("Site", html.escape(app_base_url))],
            last=True,
        ),
    ]
    return (
        "<div style=\"font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;"
        'line-height:1.6;color:#1f2937;">'
        '<h2 style="margin:0 0 12px;">Video preview visit</h2>'
        '<p style="margin:0 0 16px;color:#4b5563;">Someone opened the video preview page.</p>'
        + "".join(sections)
        + "</div>"
    )


def build_message(visit: VisitInfo, settings: Settings) -> MIMEMultipart:
    app_base_url = settings.app_base_url or "unknown"
    message = MIMEMultipart("alternative")
    message["Subject"] = f"[Video preview] Someone opened the player ({visit.local_time})"
    message["From"] = settings.preview_notify_from or settings.smtp_user
    message["To"] = settings.preview_notify_to
    message.attach(MIMEText(_text_body(visit, app_base_url), "plain", "utf-8"))
    message.attach(MIMEText(_html_body(visit, app_base_url), "html", "utf-8"))
    return message


def _failed_command(exc: Exception) -> str:
    for error_type, command in _FAILED_COMMANDS:
        if isinstance(exc, error_type):
            return command
    return "SEND"


async def send_preview_notification(visit: VisitInfo, settings: Settings) -> NotifyResult:
    """Send the visit alert. Problems are reported in the result, never raised."""
    if not settings.preview_notify_to:
        logger.info("Preview notification skipped: no recipient configured")
        return NotifyResult(sent=False, reason="PREVIEW_NOTIFY_TO is not configured.")

    smtp_pass = settings.smtp_pass.get_secret_value()
    if not settings.smtp_host or not settings.smtp_port or not settings.smtp_user or not smtp_pass:
        logger.info("Preview notification skipped: SMTP config is incomplete")
        return NotifyResult(sent=False, reason="SMTP config is incomplete.")

    message = build_message(visit, settings)
    try:
        await aiosmtplib.send(
            message,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=smtp_pass,
            use_tls=settings.smtp_secure,
            timeout=SMTP_TIMEOUT,
        )
    except (aiosmtplib.SMTPException, OSError) as exc:
        code = getattr(exc, "code", None)
        reason = getattr(exc, "message", None) or str(exc) or "unknown error"
        command = _failed_command(exc)
        logger.warning("Preview notification failed at %s: %s", command, reason)
        return NotifyResult(
            sent=False,
            reason=f"SMTP send failed: {reason}",
            code=str(code) if code else "UNKNOWN",
            command=command,
        )

    logger.info("Preview notification sent for %s", visit.video_url)
    return NotifyResult(sent=True)
