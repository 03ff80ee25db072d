from __future__ import annotations

from dataclasses import dataclass

from mailrelay.providers.types import ProviderName, ProviderQuota, QuotaWindow


@dataclass(frozen=True)
class ProviderLimits:
    daily: int
    monthly: int


PROVIDER_LIMITS: dict[str, ProviderLimits] = {
    ProviderName.RESEND.value: ProviderLimits(daily=100, monthly=3000),
    ProviderName.BREVO.value: ProviderLimits(daily=300, monthly=9000),
    ProviderName.MAILERSEND.value: ProviderLimits(daily=400, monthly=12000),
    ProviderName.AWS_SES.value: ProviderLimits(daily=50000, monthly=62000),
}


def quota_window(*, sent: float, limit: float, remaining: float | None = None) -> QuotaWindow:
    sent_count = max(0, int(round(sent)))
    limit_count = max(0, int(round(limit)))
    remaining_count = limit_count - sent_count if remaining is None else int(round(remaining))
    percent_used = round(sent_count / limit_count * 100) if limit_count > 0 else 0
    return QuotaWindow(
        sent=sent_count,
        limit=limit_count,
        remaining=max(0, remaining_count),
        percent_used=percent_used,
    )


def static_quota(provider: str, *, include_monthly: bool = True) -> ProviderQuota:
    limits = PROVIDER_LIMITS[provider]
    return ProviderQuota(
        provider=provider,
        daily=quota_window(sent=0, limit=limits.daily),
        monthly=quota_window(sent=0, limit=limits.monthly) if include_monthly else None,
        source="static",
    )


def with_tracked_usage(quota: ProviderQuota, *, daily_sent: int) -> ProviderQuota:
    """Overlay locally tracked daily sends on a quota whose vendor reports no usage."""
    if quota.source == "api" or daily_sent <= 0:
        return quota
    return ProviderQuota(
        provider=quota.provider,
        daily=quota_window(sent=daily_sent, limit=quota.daily.limit),
        monthly=quota.monthly,
        source="tracked",
    )


def summarize_quotas(quotas: list[ProviderQuota], configured: set[str]) -> dict[str, dict[str, int]]:
    selected = [quota for quota in quotas if quota.provider in configured]

    def _totals(windows: list[QuotaWindow]) -> dict[str, int]:
        total_sent = sum(window.sent for window in windows)
        total_limit = sum(window.limit for window in windows)
        return {
            "totalSent": total_sent,
            "totalLimit": total_limit,
            "totalRemaining": sum(window.remaining for window in windows),
            "percentUsed": round(total_sent / total_limit * 100) if total_limit > 0 else 0,
        }

    return {
        "daily": _totals([quota.daily for quota in selected]),
        "monthly": _totals([quota.monthly for quota in selected if quota.monthly is not None]),
    }
