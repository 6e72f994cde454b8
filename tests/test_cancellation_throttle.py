from __future__ import annotations

from types import SimpleNamespace

import pytest

from reservations.core import rate_limit as rate_limit_module
from reservations.core.rate_limit import InMemoryCancellationThrottle, ThrottleReservation


class FakeRedisThrottle:
    def __init__(self, *, redis_url: str, namespace: str) -> None:
        self.redis_url = redis_url
        self.namespace = namespace

    async def count(self, key: str, *, window_seconds: int) -> int:
        return 0

    async def acquire(self, key: str, *, limit: int, window_seconds: int) -> ThrottleReservation:
        return ThrottleReservation(allowed=True, recent=1, token="token")

    async def release(self, key: str, token: str) -> None:
        return None

    async def clear(self) -> None:
        return None


@pytest.mark.asyncio
async def test_sliding_window_counts_recent_events_and_forgets_old_ones() -> None:
    now_point = [100.0]
    throttle = InMemoryCancellationThrottle(now_provider=lambda: now_point[0])

    await throttle.acquire("user:1", limit=5, window_seconds=10)
    now_point[0] = 105.0
    await throttle.acquire("user:1", limit=5, window_seconds=10)

    assert await throttle.count("user:1", window_seconds=10) == 2
    assert await throttle.count("user:2", window_seconds=10) == 0

    now_point[0] = 110.01
    assert await throttle.count("user:1", window_seconds=10) == 1

    now_point[0] = 115.01
    assert await throttle.count("user:1", window_seconds=10) == 0


@pytest.mark.asyncio
async def test_acquire_refuses_once_limit_is_reached() -> None:
    throttle = InMemoryCancellationThrottle(now_provider=lambda: 100.0)

    granted = [await throttle.acquire("user:1", limit=2, window_seconds=60) for _ in range(2)]
    refused = await throttle.acquire("user:1", limit=2, window_seconds=60)

    assert [item.allowed for item in granted] == [True, True]
    assert [item.recent for item in granted] == [1, 2]
    assert refused.allowed is False
    assert refused.recent == 2
    assert refused.token is None
    assert await throttle.count("user:1", window_seconds=60) == 2


@pytest.mark.asyncio
async def test_release_returns_only_the_given_slot() -> None:
    throttle = InMemoryCancellationThrottle(now_provider=lambda: 100.0)
    first = await throttle.acquire("user:1", limit=2, window_seconds=60)
    await throttle.acquire("user:1", limit=2, window_seconds=60)

    await throttle.release("user:1", first.token)
    await throttle.release("user:9", "missing")

    assert await throttle.count("user:1", window_seconds=60) == 1
    assert (await throttle.acquire("user:1", limit=2, window_seconds=60)).allowed is True


@pytest.mark.asyncio
async def test_clear_drops_all_counters() -> None:
    throttle = InMemoryCancellationThrottle(now_provider=lambda: 200.0)

    await throttle.acquire("user:1", limit=5, window_seconds=60)
    assert await throttle.count("user:1", window_seconds=60) == 1

    await throttle.clear()
    assert await throttle.count("user:1", window_seconds=60) == 0


def test_get_cancellation_throttle_uses_redis_backend_when_configured(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    settings = SimpleNamespace(
        cancellation_throttle_backend="redis",
        redis_url="redis://redis:6379/0",
        cancellation_throttle_redis_namespace="cancel_throttle_test",
    )
    monkeypatch.setattr(rate_limit_module, "get_settings", lambda: settings)
    monkeypatch.setattr(rate_limit_module, "RedisCancellationThrottle", FakeRedisThrottle)
    monkeypatch.setattr(rate_limit_module, "_throttle", None)
    monkeypatch.setattr(rate_limit_module, "_throttle_signature", None)

    throttle = rate_limit_module.get_cancellation_throttle()
    assert isinstance(throttle, FakeRedisThrottle)
    assert throttle.redis_url == "redis://redis:6379/0"
    assert throttle.namespace == "cancel_throttle_test"


def test_get_cancellation_throttle_reuses_instance_for_same_signature(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    settings = SimpleNamespace(
        cancellation_throttle_backend="memory",
        redis_url=None,
        cancellation_throttle_redis_namespace="cancellation_throttle",
    )
    monkeypatch.setattr(rate_limit_module, "get_settings", lambda: settings)
    monkeypatch.setattr(rate_limit_module, "_throttle", None)
    monkeypatch.setattr(rate_limit_module, "_throttle_signature", None)

    first = rate_limit_module.get_cancellation_throttle()
    second = rate_limit_module.get_cancellation_throttle()

    assert first is second
    assert isinstance(first, InMemoryCancellationThrottle)


def test_get_cancellation_throttle_rebuilds_when_signature_changes(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    state = {
        "backend": "memory",
        "redis_url": None,
        "namespace": "cancellation_throttle",
    }

    def _settings() -> SimpleNamespace:
        return SimpleNamespace(
            cancellation_throttle_backend=state["backend"],
            redis_url=state["redis_url"],
            cancellation_throttle_redis_namespace=state["namespace"],
        )

    monkeypatch.setattr(rate_limit_module, "get_settings", _settings)
    monkeypatch.setattr(rate_limit_module, "RedisCancellationThrottle", FakeRedisThrottle)
    monkeypatch.setattr(rate_limit_module, "_throttle", None)
    monkeypatch.setattr(rate_limit_module, "_throttle_signature", None)

    first = rate_limit_module.get_cancellation_throttle()

    state["backend"] = "redis"
    state["redis_url"] = "redis://redis:6379/0"
    state["namespace"] = "cancel_throttle_v2"
    second = rate_limit_module.get_cancellation_throttle()

    assert first is not second
    assert isinstance(second, FakeRedisThrottle)
