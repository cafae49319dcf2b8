"""Health-check / notify / remediate state machine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import httpx
import structlog

from .config import DeviceSettings, MonitorSettings
from .errors import MonitorError, NotificationError, TransportError, UnhealthyStatusError
from .notify import build_down_payload, build_up_payload, send_notification
from .tuya import TuyaClient

logger = structlog.get_logger(__name__)

DeviceFactory = Callable[[DeviceSettings, httpx.AsyncClient], Any]


def is_success_status(code: int) -> bool:
    return 200 <= code <= 299


@dataclass
class MonitorState:
    fail_count: int = 0
    has_notified_down: bool = False

    def phase(self, threshold: int) -> str:
        if self.has_notified_down:
            return "down"
        if self.fail_count == 0:
            return "healthy"
        return "degrading" if self.fail_count < threshold else "down"


@dataclass(frozen=True)
class CheckResult:
    ok: bool
    fail_count: int
    has_notified_down: bool
    status_code: int | None = None
    error: MonitorError | None = None
    restarted: bool = False
    notified: bool = False


class HealthMonitor:
    """Probes one HomeAssistant endpoint and reacts to state transitions.

    ``check`` must not be called concurrently; the scheduler serializes cycles.
    ``update_config`` may be called between or during cycles: a running cycle keeps
    using the snapshot it started with.
    """

    def __init__(
        self,
        settings: MonitorSettings,
        http_client: httpx.AsyncClient | None = None,
        *,
        device_factory: DeviceFactory | None = None,
    ):
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(settings.timeout))
        self._device_factory = device_factory or (lambda s, c: TuyaClient(s, c))
        self._settings = settings
        self._device = self._device_factory(settings.tuya, self._http)
        self.state = MonitorState()

    @property
    def settings(self) -> MonitorSettings:
        return self._settings

    @property
    def device(self) -> Any:
        return self._device

    def update_config(self, settings: MonitorSettings) -> None:
        """Install a new settings snapshot. Failure count and notified state are kept."""
        device = self._device
        if settings.tuya != self._settings.tuya:
            device = self._device_factory(settings.tuya, self._http)
            logger.info("Device settings changed, rebuilt device client", enabled=settings.tuya.enabled)
        self._http.timeout = httpx.Timeout(settings.timeout)
        self._device = device
        self._settings = settings

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def check(self) -> CheckResult:
        """Run one check cycle.

        Raises NotificationError when the down-notification fails; every other
        failure is folded into the returned CheckResult.
        """
        settings = self._settings
        device = self._device

        headers: dict[str, str] = {}
        if settings.ha_token:
            headers["Authorization"] = f"Bearer {settings.ha_token}"

        try:
            resp = await self._http.get(settings.ha_url, headers=headers, timeout=settings.timeout)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            error = TransportError(f"{type(exc).__name__}: {exc}")
            return await self._on_failure(settings, device, error, status_code=None)

        if not is_success_status(resp.status_code):
            return await self._on_failure(
                settings, device, UnhealthyStatusError(resp.status_code), status_code=resp.status_code
            )

        return await self._on_success(settings, resp.status_code)

    async def _on_failure(
        self,
        settings: MonitorSettings,
        device: Any,
        error: MonitorError,
        *,
        status_code: int | None,
    ) -> CheckResult:
        state = self.state
        state.fail_count += 1
        logger.warning(
            "HomeAssistant check failed",
            fail_count=state.fail_count,
            retry_times=settings.retry_times,
            phase=state.phase(settings.retry_times),
            error=str(error),
        )

        restarted = False
        notified = False
        if state.fail_count >= settings.retry_times and not state.has_notified_down:
            try:
                await device.restart_device()
                restarted = settings.tuya.enabled
            except Exception as exc:
                logger.error("Failed to restart server", error=str(exc))

            payload = build_down_payload(settings.notify, retry_times=settings.retry_times)
            try:
                await send_notification(self._http, settings.notify, payload)
            except NotificationError as exc:
                raise NotificationError(f"down notification failed: {exc}") from error
            state.has_notified_down = True
            notified = True
            logger.warning("HomeAssistant marked down", fail_count=state.fail_count, restarted=restarted)

        return CheckResult(
            ok=False,
            fail_count=state.fail_count,
            has_notified_down=state.has_notified_down,
            status_code=status_code,
            error=error,
            restarted=restarted,
            notified=notified,
        )

    async def _on_success(self, settings: MonitorSettings, status_code: int) -> CheckResult:
        state = self.state
        notified = False
        if state.has_notified_down:
            try:
                await send_notification(self._http, settings.notify, build_up_payload(settings.notify))
                notified = True
            except NotificationError as exc:
                logger.error("Failed to send recovery notification", error=str(exc))
            state.has_notified_down = False
            state.fail_count = 0
            logger.info("HomeAssistant recovered")

        logger.info(
            "HomeAssistant service is healthy", status_code=status_code, phase=state.phase(settings.retry_times)
        )
        return CheckResult(
            ok=True,
            fail_count=state.fail_count,
            has_notified_down=state.has_notified_down,
            status_code=status_code,
            notified=notified,
        )
