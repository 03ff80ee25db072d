from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass
import json
import logging
import time
from typing import Any

import httpx

from mailrelay.providers.errors import (
    ProviderConfigurationError,
    ProviderConnectionError,
    ProviderResponseError,
    ProviderTimeoutError,
    classify_provider_error,
)
from mailrelay.providers.health import error_health, scored_health, unconfigured_health
from mailrelay.providers.quota import static_quota
from mailrelay.providers.types import ProviderHealth, ProviderName, ProviderQuota, SendParams, SendResult


logger = logging.getLogger("mailrelay.providers")

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class HealthProbe:
    message: str
    quota_percent_used: float | None = None
    error: str | None = None


def mask_secret(value: str, *, prefix: int = 8) -> str:
    return f"{value[:prefix]}..." if value else "not set"


def format_sender(from_name: str | None, from_email: str) -> str:
    return f"{from_name} <{from_email}>" if from_name else from_email


def safe_json(response: httpx.Response) -> dict[str, Any] | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


class EmailProvider(ABC):
    """Uniform capability set shared by every email vendor adapter.

    Public coroutines never raise for expected failure modes: missing
    credentials, transport errors and vendor rejections are all returned as
    data. Subclasses implement the ``_send``/``_probe_health``/``_fetch_quota``
    hooks and may raise ``ProviderError`` freely from them.
    """

    name: ProviderName

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_seconds = float(timeout_seconds or DEFAULT_TIMEOUT_SECONDS)
        self._transport = transport

    @abstractmethod
    def is_configured(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def missing_settings(self) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def get_debug_info(self) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def _send(self, params: SendParams) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def _probe_health(self) -> HealthProbe:
        raise NotImplementedError

    async def _fetch_quota(self) -> ProviderQuota:
        return static_quota(self.name.value)

    @property
    def unconfigured_message(self) -> str:
        return f"Provider {self.name.value} not configured"

    async def send_email(self, params: SendParams) -> SendResult:
        if not self.is_configured():
            return SendResult.failed(self.name.value, self.unconfigured_message)

        start = time.perf_counter()
        try:
            message_id = await self._send(params)
        except Exception as exc:  # noqa: BLE001
            provider_error = classify_provider_error(exc)
            latency_ms = _elapsed_ms(start)
            logger.warning(
                json.dumps(
                    {
                        "event": "email.send.failed",
                        "provider": self.name.value,
                        "error_code": provider_error.error_code,
                        "status_code": provider_error.status_code,
                        "latency_ms": latency_ms,
                    }
                )
            )
            return SendResult.failed(self.name.value, provider_error.message, latency_ms=latency_ms)
        return SendResult.ok(self.name.value, latency_ms=_elapsed_ms(start), message_id=message_id)

    async def check_health(self) -> ProviderHealth:
        if not self.is_configured():
            return unconfigured_health(self.name.value, missing=self.missing_settings())

        start = time.perf_counter()
        try:
            probe = await self._probe_health()
        except Exception as exc:  # noqa: BLE001
            provider_error = classify_provider_error(exc)
            message = provider_error.message
            if isinstance(provider_error, ProviderTimeoutError):
                message = f"Request timeout ({self.timeout_seconds:g}s)"
            return error_health(self.name.value, latency_ms=_elapsed_ms(start), message=message)

        latency_ms = _elapsed_ms(start)
        if probe.error is not None:
            return error_health(self.name.value, latency_ms=latency_ms, message=probe.error)
        return scored_health(
            self.name.value,
            latency_ms=latency_ms,
            message=probe.message,
            quota_percent_used=probe.quota_percent_used,
        )

    async def get_quota(self) -> ProviderQuota:
        if not self.is_configured():
            return static_quota(self.name.value)
        try:
            return await self._fetch_quota()
        except Exception:  # noqa: BLE001
            logger.info("quota lookup failed for %s, using static limits", self.name.value, exc_info=True)
            return static_quota(self.name.value)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        content: bytes | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        if not self.is_configured():
            raise ProviderConfigurationError(self.unconfigured_message)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                # httpx timeouts are per phase; wait_for bounds the whole exchange.
                return await asyncio.wait_for(
                    client.request(method, url, headers=headers, content=content, json=json_body),
                    timeout=self.timeout_seconds,
                )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise ProviderTimeoutError() from exc
        except httpx.TransportError as exc:
            raise ProviderConnectionError(str(exc) or f"{self.name.value} connection failed.") from exc


def raise_for_status(response: httpx.Response, message: str) -> None:
    if response.is_success:
        return
    raise ProviderResponseError(message, status_code=response.status_code, upstream_payload=safe_json(response))
