"""Exception types raised by the monitor and its clients."""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for all ha-monitor errors."""


class ConfigError(MonitorError):
    """The configuration file is missing, unreadable or invalid."""


class TransportError(MonitorError):
    """Network failure or timeout while talking to a remote service."""


class DecodeError(MonitorError):
    """A remote service answered with a body that could not be decoded."""


class RemoteAPIError(MonitorError):
    """A remote service returned a structured failure."""

    def __init__(self, code: int | str | None, message: str):
        self.code = code
        self.message = message
        super().__init__(f"code={code}, msg={message}")


class NotificationError(MonitorError):
    """The notification API call itself failed."""


class UnhealthyStatusError(MonitorError):
    """The probed endpoint answered outside the 2xx range."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"unexpected status code: {status_code}")
