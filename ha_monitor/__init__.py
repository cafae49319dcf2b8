"""HomeAssistant health monitor with notifications and Tuya smart-plug remediation."""

from .config import DeviceSettings, MonitorSettings, NotifySettings
from .monitor import CheckResult, HealthMonitor, MonitorState

__all__ = [
    "CheckResult",
    "DeviceSettings",
    "HealthMonitor",
    "MonitorSettings",
    "MonitorState",
    "NotifySettings",
]
