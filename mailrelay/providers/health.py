from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import threading
import time

from mailrelay.providers.types import HealthStatus, ProviderHealth, now_ms

HEALTHY_SCORE_FLOOR = 70


def latency_penalty(latency_ms: int) -> int:
    if latency_ms > 2000:
        return 30
    if latency_ms > 1000:
        return 15
    if latency_ms > 500:
        return 5
    return 0


def quota_penalty(percent_used: float | None) -> int:
    if percent_used is None:
        return 0
    if percent_used > 90:
        return 30
    if percent_used > 75:
        return 15
    return 0


def score_health(latency_ms: int, quota_percent_used: float | None = None) -> int:
    score = 100 - latency_penalty(latency_ms) - quota_penalty(quota_percent_used)
    return max(0, min(100, score))


def status_for_score(score: int) -> HealthStatus:
    return HealthStatus.OK if score >= HEALTHY_SCORE_FLOOR else HealthStatus.DEGRADED


def scored_health(
    provider: str,
    *,
    latency_ms: int,
    message: str,
    quota_percent_used: float | None = None,
) -> ProviderHealth:
    score = score_health(latency_ms, quota_percent_used)
    return ProviderHealth(
        provider=provider,
        status=status_for_score(score),
        health_score=score,
        latency_ms=latency_ms,
        message=message,
        configured=True,
        last_checked=now_ms(),
    )


def error_health(provider: str, *, latency_ms: int, message: str) -> ProviderHealth:
    return ProviderHealth(
        provider=provider,
        status=HealthStatus.ERROR,
        health_score=0,
        latency_ms=latency_ms,
        message=message,
        configured=True,
        last_checked=now_ms(),
    )


def unconfigured_health(provider: str, *, missing: Iterable[str]) -> ProviderHealth:
    return ProviderHealth(
        provider=provider,
        status=HealthStatus.UNCONFIGURED,
        health_score=0,
        latency_ms=0,
        message=f"Missing env vars: {', '.join(missing)}",
        configured=False,
        last_checked=now_ms(),
    )


@dataclass(frozen=True)
class _CacheEntry:
    health: ProviderHealth
    expires_at: float


class HealthCache:
    """Last health probe per provider, kept for ``ttl_seconds``.

    Entries are replaced wholesale; a stale entry is never returned.
    """

    def __init__(self, *, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, provider: str) -> ProviderHealth | None:
        with self._lock:
            entry = self._entries.get(provider)
        if entry is None or self._clock() >= entry.expires_at:
            return None
        return entry.health

    def put(self, health: ProviderHealth) -> None:
        entry = _CacheEntry(health=health, expires_at=self._clock() + self.ttl_seconds)
        with self._lock:
            self._entries[health.provider] = entry

    def get_many(self, providers: Iterable[str]) -> list[ProviderHealth] | None:
        cached: list[ProviderHealth] = []
        for provider in providers:
            health = self.get(provider)
            if health is None:
                return None
            cached.append(health)
        return cached

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
