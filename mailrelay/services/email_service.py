from __future__ import annotations

import asyncio
from functools import cmp_to_key
import json
import logging
from typing import Any, Protocol

from mailrelay.core.config import Settings, get_settings
from mailrelay.core.metrics import email_circuit_open, observe_health, observe_send
from mailrelay.providers import build_providers
from mailrelay.providers.base import EmailProvider
from mailrelay.providers.circuit_breaker import CircuitBreaker, CircuitRecord
from mailrelay.providers.health import HealthCache
from mailrelay.providers.quota import static_quota, with_tracked_usage
from mailrelay.providers.types import (
    CircuitState,
    EmailType,
    HealthStatus,
    ProviderHealth,
    ProviderName,
    ProviderQuota,
    SendParams,
    SendResult,
)


logger = logging.getLogger("mailrelay.email")

DEFAULT_PRIORITY: list[str] = [
    ProviderName.RESEND.value,
    ProviderName.BREVO.value,
    ProviderName.MAILERSEND.value,
    ProviderName.AWS_SES.value,
]

# Notification has no entry and resolves to DEFAULT_PRIORITY.
EMAIL_TYPE_PRIORITY: dict[str, list[str]] = {
    EmailType.AUTH.value: ["resend", "brevo", "aws_ses"],
    EmailType.WELCOME.value: ["resend", "brevo", "mailersend"],
    EmailType.GOODBYE.value: ["brevo", "resend", "mailersend"],
    EmailType.CHAT.value: ["brevo", "mailersend", "resend"],
    EmailType.FOOD_LISTING.value: ["brevo", "mailersend", "aws_ses"],
    EmailType.FEEDBACK.value: ["brevo", "resend", "mailersend"],
    EmailType.REVIEW_REMINDER.value: ["brevo", "mailersend", "aws_ses"],
    EmailType.NEWSLETTER.value: ["aws_ses", "brevo", "mailersend"],
    EmailType.ANNOUNCEMENT.value: ["aws_ses", "brevo", "mailersend"],
}


class SendMetricsRecorder(Protocol):
    def record_send(
        self,
        *,
        provider: str,
        success: bool,
        latency_ms: int,
        message_id: str | None = None,
        error: str | None = None,
    ) -> None:
        ...

    def daily_usage(self, provider: str) -> int:
        ...


def _type_key(email_type: EmailType | str) -> str:
    return email_type.value if isinstance(email_type, EmailType) else str(email_type)


def _rank_comparator(priority: list[str]):
    def _rank(provider: str) -> int:
        return priority.index(provider) if provider in priority else len(priority)

    def _compare(left: ProviderHealth, right: ProviderHealth) -> int:
        left_rank, right_rank = _rank(left.provider), _rank(right.provider)
        # Neighbouring ranks are treated as one tier and ordered by health.
        if abs(left_rank - right_rank) <= 1:
            return right.health_score - left.health_score
        return left_rank - right_rank

    return cmp_to_key(_compare)


class EmailService:
    """Routes sends across the configured email vendors.

    ``send_email`` walks the priority list for the message type and uses the
    first configured provider whatever its breaker state; only
    ``get_best_provider`` excludes open circuits. Neither path retries.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        providers: dict[str, EmailProvider] | None = None,
        breaker: CircuitBreaker | None = None,
        health_cache: HealthCache | None = None,
        metrics_recorder: SendMetricsRecorder | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._providers = providers if providers is not None else build_providers(self.settings)
        self._breaker = breaker or CircuitBreaker(
            failure_threshold=self.settings.email_circuit_breaker_threshold,
            reset_timeout=self.settings.email_circuit_breaker_reset_seconds,
        )
        self._health_cache = health_cache or HealthCache(ttl_seconds=self.settings.email_health_cache_ttl_seconds)
        self._metrics_recorder = metrics_recorder
        self._priority = {**EMAIL_TYPE_PRIORITY, **self.settings.provider_priority_overrides()}
        self._pending_metrics: set[asyncio.Task[None]] = set()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def priority_for(self, email_type: EmailType | str) -> list[str]:
        return list(self._priority.get(_type_key(email_type)) or DEFAULT_PRIORITY)

    def get_provider(self, name: str) -> EmailProvider | None:
        return self._providers.get(name)

    def get_configured_providers(self) -> list[EmailProvider]:
        return [provider for provider in self._providers.values() if provider.is_configured()]

    def _with_defaults(self, params: SendParams) -> SendParams:
        return params.with_defaults(from_email=self.settings.email_from, from_name=self.settings.email_from_name)

    def _record_outcome(self, name: str, result: SendResult) -> CircuitRecord:
        if result.success:
            record = self._breaker.record_success(name)
        else:
            record = self._breaker.record_failure(name)
        email_circuit_open.labels(provider=name).set(1 if record.state == CircuitState.OPEN else 0)
        observe_send(name, success=result.success, latency_ms=result.latency_ms)
        return record

    async def send_email(
        self,
        params: SendParams,
        email_type: EmailType | str = EmailType.NOTIFICATION,
    ) -> SendResult:
        priority = self.priority_for(email_type)
        provider = next(
            (
                self._providers[name]
                for name in priority
                if name in self._providers and self._providers[name].is_configured()
            ),
            None,
        )
        if provider is None:
            logger.warning(
                json.dumps({"event": "email.send.no_provider", "email_type": _type_key(email_type), "priority": priority})
            )
            return SendResult.failed(priority[0], "No email provider configured")

        result = await provider.send_email(self._with_defaults(params))
        self._record_outcome(provider.name.value, result)
        logger.info(
            json.dumps(
                {
                    "event": "email.send",
                    "provider": result.provider,
                    "email_type": _type_key(email_type),
                    "success": result.success,
                    "latency_ms": result.latency_ms,
                }
            )
        )
        return result

    async def send_email_with_provider(self, params: SendParams, name: str) -> SendResult:
        provider = self._providers.get(name)
        if provider is None:
            return SendResult.failed(name, f"Provider {name} not found")
        if not provider.is_configured():
            return SendResult.failed(name, f"Provider {name} not configured")

        result = await provider.send_email(self._with_defaults(params))
        self._record_outcome(name, result)
        self._schedule_metric(name, result)
        return result

    def _schedule_metric(self, name: str, result: SendResult) -> None:
        if self._metrics_recorder is None:
            return
        task = asyncio.get_running_loop().create_task(self._persist_metric(name, result))
        self._pending_metrics.add(task)
        task.add_done_callback(self._pending_metrics.discard)

    async def _persist_metric(self, name: str, result: SendResult) -> None:
        recorder = self._metrics_recorder
        if recorder is None:
            return
        try:
            await asyncio.to_thread(
                recorder.record_send,
                provider=name,
                success=result.success,
                latency_ms=result.latency_ms,
                message_id=result.message_id,
                error=result.error,
            )
        except Exception:  # noqa: BLE001
            logger.warning("failed to record email send metric for %s", name, exc_info=True)

    async def check_all_health(self, force_refresh: bool = False) -> list[ProviderHealth]:
        names = list(self._providers)
        if not force_refresh:
            cached = self._health_cache.get_many(names)
            if cached is not None:
                return cached

        results = await asyncio.gather(*(self._providers[name].check_health() for name in names))
        for health in results:
            self._health_cache.put(health)
            observe_health(health.provider, status=health.status.value, health_score=health.health_score)
        return list(results)

    async def get_best_provider(
        self,
        email_type: EmailType | str = EmailType.NOTIFICATION,
        *,
        force_refresh: bool = False,
    ) -> str | None:
        ranked = await self.rank_providers(email_type, force_refresh=force_refresh)
        return ranked[0].provider if ranked else None

    async def rank_providers(
        self,
        email_type: EmailType | str = EmailType.NOTIFICATION,
        *,
        force_refresh: bool = False,
    ) -> list[ProviderHealth]:
        health = await self.check_all_health(force_refresh=force_refresh)
        candidates = [
            item
            for item in health
            if item.configured and item.status != HealthStatus.ERROR and self._breaker.is_available(item.provider)
        ]
        return sorted(candidates, key=_rank_comparator(self.priority_for(email_type)))

    async def get_quotas(self) -> list[ProviderQuota]:
        quotas = await asyncio.gather(*(provider.get_quota() for provider in self._providers.values()))
        if self._metrics_recorder is None:
            return list(quotas)
        return [await self._with_tracked_usage(quota) for quota in quotas]

    def get_static_quotas(self) -> list[ProviderQuota]:
        """Configured limits only, without calling any vendor."""
        return [static_quota(name) for name in self._providers]

    async def _with_tracked_usage(self, quota: ProviderQuota) -> ProviderQuota:
        if quota.source != "static" or self._metrics_recorder is None:
            return quota
        try:
            daily_sent = await asyncio.to_thread(self._metrics_recorder.daily_usage, quota.provider)
        except Exception:  # noqa: BLE001
            logger.info("tracked usage lookup failed for %s", quota.provider, exc_info=True)
            return quota
        return with_tracked_usage(quota, daily_sent=daily_sent)

    def config_summary(self) -> dict[str, Any]:
        return {
            "defaultFromEmail": self.settings.email_from,
            "defaultFromName": self.settings.email_from_name,
            "providerPriority": {key: list(value) for key, value in self._priority.items()},
            "defaultPriority": list(DEFAULT_PRIORITY),
            "circuitBreakerThreshold": self._breaker.failure_threshold,
            "circuitBreakerResetMs": int(self._breaker.reset_timeout * 1000),
            "requestTimeoutMs": int(self.settings.email_request_timeout_seconds * 1000),
        }

    async def get_status(self) -> dict[str, Any]:
        providers = await self.check_all_health()
        return {
            "providers": [health.to_dict() for health in providers],
            "circuits": {name: record.to_dict() for name, record in self._breaker.snapshot().items()},
            "config": self.config_summary(),
        }

    def get_debug_info(self) -> dict[str, dict[str, Any]]:
        return {name: provider.get_debug_info() for name, provider in self._providers.items()}

    async def aclose(self) -> None:
        if self._pending_metrics:
            await asyncio.gather(*list(self._pending_metrics), return_exceptions=True)


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        settings = get_settings()
        recorder = None
        if settings.email_metrics_enabled:
            from mailrelay.services.email_metrics_service import EmailMetricsService

            recorder = EmailMetricsService()
        _email_service = EmailService(settings, metrics_recorder=recorder)
    return _email_service


def reset_email_service() -> None:
    """Drop the process-wide service (used by tests)."""
    global _email_service
    _email_service = None
