from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, replace
import threading
import time
from typing import Protocol

from mailrelay.providers.types import CircuitState


@dataclass(frozen=True)
class CircuitRecord:
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    last_failure: float = 0.0
    last_success: float = 0.0

    def to_dict(self) -> dict[str, object]:
        return {
            "state": self.state.value,
            "failures": self.failures,
            "lastFailure": self.last_failure,
            "lastSuccess": self.last_success,
        }


class CircuitStore(Protocol):
    def load(self, name: str) -> CircuitRecord | None:
        ...

    def save(self, name: str, record: CircuitRecord) -> None:
        ...

    def names(self) -> list[str]:
        ...

    def clear(self) -> None:
        ...

    def locked(self, name: str) -> AbstractContextManager[None]:
        ...


class InMemoryCircuitStore:
    """Process-local circuit records with one lock per provider name."""

    def __init__(self) -> None:
        self._records: dict[str, CircuitRecord] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def load(self, name: str) -> CircuitRecord | None:
        return self._records.get(name)

    def save(self, name: str, record: CircuitRecord) -> None:
        self._records[name] = record

    def names(self) -> list[str]:
        return list(self._records)

    def clear(self) -> None:
        with self._registry_lock:
            self._records.clear()
            self._locks.clear()

    @contextmanager
    def locked(self, name: str) -> Iterator[None]:
        with self._registry_lock:
            lock = self._locks.setdefault(name, threading.Lock())
        with lock:
            yield


class CircuitBreaker:
    """Consecutive-failure breaker keyed by provider name.

    ``half-open`` is never stored: ``state()`` reports it while the stored
    state is ``open`` and the reset window has elapsed since the last failure.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        store: CircuitStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._store = store or InMemoryCircuitStore()
        self._clock = clock

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now

    def _effective_state(self, record: CircuitRecord, now: float) -> CircuitState:
        if record.state == CircuitState.OPEN and now - record.last_failure > self.reset_timeout:
            return CircuitState.HALF_OPEN
        return record.state

    def state(self, name: str, *, now: float | None = None) -> CircuitState:
        record = self._store.load(name)
        if record is None:
            return CircuitState.CLOSED
        return self._effective_state(record, self._now(now))

    def is_available(self, name: str, *, now: float | None = None) -> bool:
        return self.state(name, now=now) != CircuitState.OPEN

    def record_success(self, name: str, *, now: float | None = None) -> CircuitRecord:
        now_value = self._now(now)
        with self._store.locked(name):
            record = self._store.load(name) or CircuitRecord()
            updated = replace(record, state=CircuitState.CLOSED, failures=0, last_success=now_value)
            self._store.save(name, updated)
        return updated

    def record_failure(self, name: str, *, now: float | None = None) -> CircuitRecord:
        now_value = self._now(now)
        with self._store.locked(name):
            record = self._store.load(name) or CircuitRecord()
            failures = record.failures + 1
            state = CircuitState.OPEN if failures >= self.failure_threshold else record.state
            updated = replace(record, state=state, failures=failures, last_failure=now_value)
            self._store.save(name, updated)
        return updated

    def snapshot(self, *, now: float | None = None) -> dict[str, CircuitRecord]:
        now_value = self._now(now)
        snapshot: dict[str, CircuitRecord] = {}
        for name in self._store.names():
            record = self._store.load(name)
            if record is not None:
                snapshot[name] = replace(record, state=self._effective_state(record, now_value))
        return snapshot

    def reset(self) -> None:
        self._store.clear()
