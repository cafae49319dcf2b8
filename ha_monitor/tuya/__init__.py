"""Tuya cloud OpenAPI client used to power-cycle the monitored host."""

from .client import TuyaClient
from .signing import SignatureEngine
from .token_cache import TokenCache, TokenRecord

__all__ = ["SignatureEngine", "TokenCache", "TokenRecord", "TuyaClient"]
