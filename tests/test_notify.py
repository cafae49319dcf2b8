from __future__ import annotations

import httpx
import pytest

from ha_monitor.config import NotifySettings
from ha_monitor.errors import NotificationError
from ha_monitor.notify import UP_SUMMARY, build_down_payload, build_up_payload, send_notification


def test_payload_shapes() -> None:
    settings = NotifySettings(api_url="http://x", api_token="t", topic_id=9)
    assert build_up_payload(settings) == {
        "platform": "wechat",
        "summary": UP_SUMMARY,
        "content": "HomeAssistant service has recovered",
        "extra": {"topic_id": 9},
    }
    assert build_down_payload(settings, retry_times=4)["content"] == "HomeAssistant service is down after 4 retries"


@pytest.mark.asyncio
async def test_unreachable_notification_api_raises() -> None:
    settings = NotifySettings(api_url="http://127.0.0.1:1/send", api_token="secret-token", topic_id=1)
    async with httpx.AsyncClient(timeout=2.0) as http:
        with pytest.raises(NotificationError) as excinfo:
            await send_notification(http, settings, build_up_payload(settings))
    assert "secret-token" not in str(excinfo.value)


@pytest.mark.asyncio
async def test_malformed_notification_url_raises_notification_error() -> None:
    settings = NotifySettings(api_url="http://n:bad/", api_token="secret-token", topic_id=1)
    async with httpx.AsyncClient(timeout=2.0) as http:
        with pytest.raises(NotificationError) as excinfo:
            await send_notification(http, settings, build_up_payload(settings))
    assert "secret-token" not in str(excinfo.value)
