"""Configuration management for the HomeAssistant monitor."""

import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError


logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"
DEFAULT_TIMEOUT_SECONDS = 10


class NotifySettings(BaseModel):
    """Notification API settings."""
    model_config = ConfigDict(frozen=True)

    api_url: str = Field(default="", description="Notification API endpoint")
    api_token: str = Field(default="", description="Value sent in the X-API-Token header")
    topic_id: int = Field(default=0, description="Topic the notification is published to")


class DeviceSettings(BaseModel):
    """Tuya smart-plug settings used for power-cycling the monitored host."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Power-cycle the device once the threshold is reached")
    access_id: str = Field(default="", description="Tuya cloud project access id")
    access_key: str = Field(default="", description="Tuya cloud project access secret")
    device_id: str = Field(default="", description="Smart-plug device id")
    region: str = Field(default="cn", description="OpenAPI region suffix, e.g. 'cn', 'eu', 'us'")
    wait_seconds: int = Field(default=10, description="Seconds to keep the plug off before switching it on")

    @field_validator("wait_seconds")
    @classmethod
    def _non_negative_wait(cls, value: int) -> int:
        return max(0, value)


class MonitorSettings(BaseModel):
    """One immutable snapshot of the monitor configuration."""
    model_config = ConfigDict(frozen=True)

    ha_url: str = Field(description="HomeAssistant URL probed on every cycle")
    ha_token: str = Field(default="", description="Long-lived access token sent as a bearer token")
    retry_times: int = Field(default=3, description="Consecutive failures before remediation and notification")
    timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, description="Per-request timeout in seconds")
    schedule: Optional[str] = Field(default=None, description="Cron expression, 5 fields or 6 with leading seconds")
    interval_seconds: int = Field(default=60, description="Check interval used when no schedule is set")
    notify: NotifySettings = Field(default_factory=NotifySettings)
    tuya: DeviceSettings = Field(default_factory=DeviceSettings)

    @field_validator("retry_times")
    @classmethod
    def _at_least_one_retry(cls, value: int) -> int:
        return max(1, value)

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: int) -> int:
        return value if value > 0 else DEFAULT_TIMEOUT_SECONDS

    @field_validator("interval_seconds")
    @classmethod
    def _positive_interval(cls, value: int) -> int:
        return max(1, value)


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"parse config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")
    return data


def load_settings(config_path: Optional[str] = None) -> MonitorSettings:
    """Load settings from the YAML file, then apply environment overrides."""
    if config_path is None:
        config_path = os.getenv("HA_MONITOR_CONFIG", DEFAULT_CONFIG_PATH)

    data = _read_yaml(Path(config_path))
    monitor_data = data.get("monitor")
    if not isinstance(monitor_data, dict):
        raise ConfigError("Config must contain a 'monitor' mapping")
    monitor_data = dict(monitor_data)

    env_overrides = {
        "ha_url": os.getenv("HA_URL"),
        "ha_token": os.getenv("HA_TOKEN"),
        "retry_times": os.getenv("HA_MONITOR_RETRY_TIMES"),
        "timeout": os.getenv("HA_MONITOR_TIMEOUT"),
    }
    for key, value in env_overrides.items():
        if value is not None:
            monitor_data[key] = value

    try:
        return MonitorSettings(**monitor_data)
    except ValidationError as exc:
        raise ConfigError(f"invalid config {config_path}: {exc}") from exc


class ConfigLoader:
    """Holds the current settings snapshot and reloads it when the file changes."""

    def __init__(self, config_path: str):
        self.path = Path(config_path)
        self._lock = threading.Lock()
        self._settings = load_settings(str(self.path))
        self._mtime = self._stat_mtime()

    def _stat_mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None

    def get(self) -> MonitorSettings:
        with self._lock:
            return self._settings

    def reload_if_changed(self) -> bool:
        """Reload the file if its mtime moved. Returns True when a new snapshot was installed.

        A broken file is logged and the previous snapshot stays in effect.
        """
        mtime = self._stat_mtime()
        with self._lock:
            if mtime is None or mtime == self._mtime:
                return False
            self._mtime = mtime

        logger.info("Config file changed", path=str(self.path))
        try:
            settings = load_settings(str(self.path))
        except ConfigError as exc:
            logger.error("Reload config failed", path=str(self.path), error=str(exc))
            return False

        with self._lock:
            self._settings = settings
        return True
