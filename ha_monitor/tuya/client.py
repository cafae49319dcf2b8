from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable

import httpx
import structlog

from ..config import DeviceSettings
from ..errors import DecodeError, RemoteAPIError, TransportError
from .signing import SignatureEngine, get_string_to_sign, post_string_to_sign
from .token_cache import TokenCache, TokenRecord

logger = structlog.get_logger(__name__)

TOKEN_PATH = "/v1.0/token?grant_type=1"
SWITCH_CODE = "switch_1"


def openapi_base_url(region: str) -> str:
    return f"https://openapi.tuya{region}.com"


def switch_payload(on: bool) -> bytes:
    payload = {"commands": [{"code": SWITCH_CODE, "value": bool(on)}]}
    # Hashed into the signature: the bytes sent must be exactly these.
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def _parse_token_result(data: dict[str, Any], *, now: float) -> TokenRecord:
    result = data.get("result")
    if not isinstance(result, dict):
        raise DecodeError("token response has no result object")
    try:
        return TokenRecord.from_ttl(
            access_token=str(result["access_token"]),
            refresh_token=str(result.get("refresh_token") or ""),
            ttl_seconds=float(result["expire_time"]),
            now=now,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"malformed token result: {exc}") from exc


class TuyaClient:
    """Controls a Tuya smart plug through the cloud OpenAPI."""

    def __init__(
        self,
        settings: DeviceSettings,
        http_client: httpx.AsyncClient,
        *,
        base_url: str | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._settings = settings
        self._http = http_client
        self._base_url = (base_url or openapi_base_url(settings.region)).rstrip("/")
        self._clock = clock
        self._sleep = sleep
        self._signer = SignatureEngine(settings.access_id, settings.access_key)
        self.tokens = TokenCache(self._acquire_token, self._refresh_token, clock=clock)

    @property
    def settings(self) -> DeviceSettings:
        return self._settings

    def _timestamp(self) -> int:
        return int(self._clock() * 1000)

    async def restart_device(self) -> None:
        """Power-cycle the plug: off, wait, on. Does nothing when the integration is disabled.

        A failed off-call aborts before the on-call. A failed on-call may leave the
        device powered off.
        """
        if not self._settings.enabled:
            return

        try:
            await self.control_switch(False)
        except Exception:
            logger.error("Failed to turn off switch", device_id=self._settings.device_id)
            raise

        logger.info("Switch turned off, waiting", wait_seconds=self._settings.wait_seconds)
        await self._sleep(self._settings.wait_seconds)

        try:
            await self.control_switch(True)
        except Exception:
            logger.error("Failed to turn on switch", device_id=self._settings.device_id)
            raise

        logger.info("Device restarted", device_id=self._settings.device_id)

    async def control_switch(self, on: bool) -> None:
        token = await self.tokens.get_token()

        path = f"/v1.0/iot-03/devices/{self._settings.device_id}/commands"
        body = switch_payload(on)
        t = self._timestamp()
        sign = self._signer.sign(post_string_to_sign(path, body), t)
        headers = self._signer.headers(sign, t, access_token=token)
        headers["Content-Type"] = "application/json"

        data = await self._send("POST", path, headers=headers, content=body)
        if not data.get("success"):
            raise RemoteAPIError(data.get("code"), str(data.get("msg") or ""))
        logger.info("Switch set", device_id=self._settings.device_id, value=on)

    async def _acquire_token(self) -> TokenRecord:
        t = self._timestamp()
        sign = self._signer.sign_token_request(t)
        data = await self._send("GET", TOKEN_PATH, headers=self._signer.headers(sign, t))
        if not data.get("success"):
            raise RemoteAPIError(data.get("code"), str(data.get("msg") or "get new token failed"))
        return _parse_token_result(data, now=self._clock())

    async def _refresh_token(self, refresh_token: str) -> TokenRecord:
        path = f"/v1.0/token/{refresh_token}"
        t = self._timestamp()
        sign = self._signer.sign(get_string_to_sign(path), t)
        data = await self._send("GET", path, headers=self._signer.headers(sign, t))
        if not data.get("success"):
            raise RemoteAPIError(data.get("code"), str(data.get("msg") or "refresh token failed"))
        logger.info("Refreshed access token")
        return _parse_token_result(data, now=self._clock())

    async def _send(self, method: str, path: str, *, headers: dict[str, str], content: bytes | None = None) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            resp = await self._http.request(method, url, headers=headers, content=content)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            raise TransportError(f"{method} {path}: {type(exc).__name__}: {exc}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise DecodeError(f"{method} {path}: invalid JSON (status {resp.status_code})") from exc
        if not isinstance(data, dict):
            raise DecodeError(f"{method} {path}: response is not a JSON object")
        return data
