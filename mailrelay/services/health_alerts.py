from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
import json
import logging
import threading
import time

from mailrelay.providers.circuit_breaker import CircuitRecord
from mailrelay.providers.types import CircuitState, HealthStatus, ProviderHealth


logger = logging.getLogger("mailrelay.email.alerts")

HEALTH_CRITICAL = 30
HEALTH_WARNING = 50
LATENCY_WARNING_MS = 2000
ALERT_COOLDOWN_SECONDS = 3600.0


class HealthAlerter:
    """Turns health snapshots into alert lines, at most one per key per cooldown."""

    def __init__(
        self,
        *,
        cooldown_seconds: float = ALERT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._last_alert: dict[str, float] = {}
        self._lock = threading.Lock()

    def _should_alert(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            last = self._last_alert.get(key)
            if last is not None and now - last < self.cooldown_seconds:
                return False
            self._last_alert[key] = now
        return True

    def generate_alerts(
        self,
        health: Iterable[ProviderHealth],
        circuits: Mapping[str, CircuitRecord] | None = None,
    ) -> list[str]:
        alerts: list[str] = []
        for item in health:
            if not item.configured:
                continue
            if item.status == HealthStatus.ERROR and self._should_alert(f"error_{item.provider}"):
                alerts.append(f"ERROR: {item.provider} is down - {item.message}")
            if item.health_score <= HEALTH_CRITICAL:
                if self._should_alert(f"critical_{item.provider}"):
                    alerts.append(f"CRITICAL: {item.provider} health={item.health_score}/100")
            elif item.health_score <= HEALTH_WARNING and self._should_alert(f"warning_{item.provider}"):
                alerts.append(f"WARNING: {item.provider} health={item.health_score}/100")
            if item.latency_ms > LATENCY_WARNING_MS and self._should_alert(f"latency_{item.provider}"):
                alerts.append(f"WARNING: {item.provider} latency={item.latency_ms}ms")

        for name, record in (circuits or {}).items():
            if record.state == CircuitState.OPEN and self._should_alert(f"circuit_{name}"):
                alerts.append(f"ALERT: {name} circuit breaker OPEN")

        if alerts:
            logger.warning(json.dumps({"event": "email.health.alerts", "alerts": alerts}))
        return alerts

    def reset(self) -> None:
        with self._lock:
            self._last_alert.clear()

