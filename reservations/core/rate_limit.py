"""Sliding-window event counters for the cancellation throttle (in-memory and Redis).

Slots are reserved with ``acquire`` before the guarded operation runs, so
concurrent callers cannot both slip under the limit, and handed back with
``release`` when the operation fails.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import uuid4

from reservations.core.config import Settings, get_settings


@dataclass(frozen=True, slots=True)
class ThrottleReservation:
    """Result of ``acquire``; ``token`` identifies the reserved event when allowed."""

    allowed: bool
    recent: int
    token: str | None = None


class CancellationThrottle(Protocol):
    """Common contract for throttle backends."""

    async def count(self, key: str, *, window_seconds: int) -> int:
        """Return number of events recorded for key inside the window."""

    async def acquire(self, key: str, *, limit: int, window_seconds: int) -> ThrottleReservation:
        """Atomically record one event unless key already has limit events in the window."""

    async def release(self, key: str, token: str) -> None:
        """Drop a previously acquired event."""

    async def clear(self) -> None:
        """Drop tracked counters (used in tests)."""


_REDIS_COUNT_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
return redis.call('ZCARD', key)
"""

_REDIS_ACQUIRE_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count >= limit then
  return {0, count}
end

redis.call('ZADD', key, now, member)
redis.call('EXPIRE', key, math.ceil(window))
return {1, count + 1}
"""


class InMemoryCancellationThrottle:
    """Per-process sliding window over event timestamps."""

    def __init__(self, now_provider: Callable[[], float] | None = None) -> None:
        self._events: dict[str, deque[tuple[float, str]]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._now = now_provider

    def _current_time(self) -> float:
        if self._now is not None:
            return self._now()
        return time.time()

    def _prune(self, events: deque[tuple[float, str]], window_start: float) -> None:
        while events and events[0][0] <= window_start:
            events.popleft()

    async def count(self, key: str, *, window_seconds: int) -> int:
        now = self._current_time()
        async with self._lock:
            events = self._events[key]
            self._prune(events, now - window_seconds)
            return len(events)

    async def acquire(self, key: str, *, limit: int, window_seconds: int) -> ThrottleReservation:
        now = self._current_time()
        async with self._lock:
            events = self._events[key]
            self._prune(events, now - window_seconds)
            if len(events) >= limit:
                return ThrottleReservation(allowed=False, recent=len(events))
            token = uuid4().hex
            events.append((now, token))
            return ThrottleReservation(allowed=True, recent=len(events), token=token)

    async def release(self, key: str, token: str) -> None:
        async with self._lock:
            events = self._events.get(key)
            if not events:
                return
            self._events[key] = deque(item for item in events if item[1] != token)

    async def clear(self) -> None:
        """Drop all tracked counters (for tests)."""
        async with self._lock:
            self._events.clear()


class RedisCancellationThrottle:
    """Redis-backed sliding window shared across app instances and restarts."""

    def __init__(
        self,
        *,
        redis_url: str,
        namespace: str,
        now_provider: Callable[[], float] | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._namespace = namespace
        self._now = now_provider
        self._init_lock = asyncio.Lock()
        self._client: Any | None = None
        self._count_script: Any | None = None
        self._acquire_script: Any | None = None

    def _current_time(self) -> float:
        if self._now is not None:
            return self._now()
        return time.time()

    def _build_storage_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def _ensure_initialized(self) -> None:
        if self._client is not None and self._acquire_script is not None:
            return

        async with self._init_lock:
            if self._client is None:
                from redis.asyncio import from_url

                self._client = from_url(
                    self._redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )

            if self._acquire_script is None:
                self._count_script = self._client.register_script(_REDIS_COUNT_SCRIPT)
                self._acquire_script = self._client.register_script(_REDIS_ACQUIRE_SCRIPT)

    async def count(self, key: str, *, window_seconds: int) -> int:
        await self._ensure_initialized()
        result = await self._count_script(
            keys=[self._build_storage_key(key)],
            args=[self._current_time(), window_seconds],
        )
        return int(result)

    async def acquire(self, key: str, *, limit: int, window_seconds: int) -> ThrottleReservation:
        await self._ensure_initialized()
        now = self._current_time()
        token = f"{now}:{uuid4().hex}"
        allowed, recent = await self._acquire_script(
            keys=[self._build_storage_key(key)],
            args=[now, window_seconds, limit, token],
        )
        if int(allowed) != 1:
            return ThrottleReservation(allowed=False, recent=int(recent))
        return ThrottleReservation(allowed=True, recent=int(recent), token=token)

    async def release(self, key: str, token: str) -> None:
        await self._ensure_initialized()
        await self._client.zrem(self._build_storage_key(key), token)

    async def clear(self) -> None:
        """Delete throttle keys for this namespace."""
        await self._ensure_initialized()
        pattern = f"{self._namespace}:*"
        cursor: int = 0
        while True:
            cursor, keys = await self._client.scan(cursor=cursor, match=pattern, count=100)
            if keys:
                await self._client.delete(*keys)
            if int(cursor) == 0:
                break


_throttle: CancellationThrottle | None = None
_throttle_signature: tuple[str, str | None, str] | None = None


def _build_throttle(settings: Settings) -> CancellationThrottle:
    if settings.cancellation_throttle_backend == "redis":
        return RedisCancellationThrottle(
            redis_url=settings.redis_url or "",
            namespace=settings.cancellation_throttle_redis_namespace,
        )
    return InMemoryCancellationThrottle()


def get_cancellation_throttle() -> CancellationThrottle:
    """Return shared throttle instance for configured backend."""
    global _throttle, _throttle_signature
    settings = get_settings()
    signature = (
        settings.cancellation_throttle_backend,
        settings.redis_url,
        settings.cancellation_throttle_redis_namespace,
    )
    if _throttle is None or _throttle_signature != signature:
        _throttle = _build_throttle(settings)
        _throttle_signature = signature
    return _throttle
