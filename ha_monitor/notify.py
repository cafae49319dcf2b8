from __future__ import annotations

from typing import Any

import httpx
import structlog

from .config import NotifySettings
from .errors import NotificationError

logger = structlog.get_logger(__name__)

PLATFORM = "wechat"
DOWN_SUMMARY = "HomeAssistant服务异常"
UP_SUMMARY = "HomeAssistant服务已恢复"


def build_payload(settings: NotifySettings, *, summary: str, content: str) -> dict[str, Any]:
    return {
        "platform": PLATFORM,
        "summary": summary,
        "content": content,
        "extra": {"topic_id": settings.topic_id},
    }


def build_down_payload(settings: NotifySettings, *, retry_times: int) -> dict[str, Any]:
    return build_payload(
        settings,
        summary=DOWN_SUMMARY,
        content=f"HomeAssistant service is down after {retry_times} retries",
    )


def build_up_payload(settings: NotifySettings) -> dict[str, Any]:
    return build_payload(settings, summary=UP_SUMMARY, content="HomeAssistant service has recovered")


async def send_notification(client: httpx.AsyncClient, settings: NotifySettings, payload: dict[str, Any]) -> None:
    """POST one notification; raises NotificationError on transport failure or a non-2xx answer."""
    try:
        resp = await client.post(
            settings.api_url,
            headers={"X-API-Token": settings.api_token},
            json=payload,
        )
    except (httpx.RequestError, httpx.InvalidURL) as exc:
        msg = f"{type(exc).__name__}: {exc}"
        if settings.api_token:
            msg = msg.replace(settings.api_token, "<redacted>")
        raise NotificationError(f"notification request failed: {msg}") from exc

    if not 200 <= resp.status_code <= 299:
        raise NotificationError(f"notification API returned status code: {resp.status_code}")
    logger.info("Notification sent", summary=payload.get("summary"), status_code=resp.status_code)
