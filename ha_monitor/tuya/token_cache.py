from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

from ..errors import MonitorError

logger = structlog.get_logger(__name__)

# Tokens are treated as expired this long before the server-reported TTL runs out.
EXPIRY_MARGIN_SECONDS = 5 * 60


@dataclass(frozen=True)
class TokenRecord:
    access_token: str
    refresh_token: str
    expires_at: float

    @classmethod
    def from_ttl(cls, *, access_token: str, refresh_token: str, ttl_seconds: float, now: float) -> TokenRecord:
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=now + float(ttl_seconds) - EXPIRY_MARGIN_SECONDS,
        )

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


AcquireFn = Callable[[], Awaitable[TokenRecord]]
RefreshFn = Callable[[str], Awaitable[TokenRecord]]


class TokenCache:
    """
    Caches one access/refresh token pair.

    Valid tokens are served without locking. On a miss, a single caller holds the
    lock and refreshes (or re-acquires); callers queued behind it re-check and reuse
    the new record instead of issuing their own request.
    """

    def __init__(self, acquire: AcquireFn, refresh: RefreshFn, *, clock: Callable[[], float] = time.time):
        self._acquire = acquire
        self._refresh = refresh
        self._clock = clock
        self._lock = asyncio.Lock()
        self._current: TokenRecord | None = None

    @property
    def current(self) -> TokenRecord | None:
        return self._current

    async def get_token(self) -> str:
        record = self._current
        if record is not None and record.is_valid(self._clock()):
            return record.access_token

        async with self._lock:
            record = self._current
            if record is not None and record.is_valid(self._clock()):
                return record.access_token

            if record is not None and record.refresh_token:
                try:
                    new_record = await self._refresh(record.refresh_token)
                except MonitorError as exc:
                    logger.warning("Token refresh failed, acquiring a new token", error=str(exc))
                else:
                    self._current = new_record
                    return new_record.access_token

            new_record = await self._acquire()
            self._current = new_record
            logger.info("Acquired new access token", expires_at=new_record.expires_at)
            return new_record.access_token
