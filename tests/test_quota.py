from mailrelay.providers.quota import (
    PROVIDER_LIMITS,
    quota_window,
    static_quota,
    summarize_quotas,
    with_tracked_usage,
)


def test_static_limits_per_provider() -> None:
    assert (PROVIDER_LIMITS["resend"].daily, PROVIDER_LIMITS["resend"].monthly) == (100, 3000)
    assert (PROVIDER_LIMITS["brevo"].daily, PROVIDER_LIMITS["brevo"].monthly) == (300, 9000)
    assert (PROVIDER_LIMITS["mailersend"].daily, PROVIDER_LIMITS["mailersend"].monthly) == (400, 12000)
    assert (PROVIDER_LIMITS["aws_ses"].daily, PROVIDER_LIMITS["aws_ses"].monthly) == (50000, 62000)


def test_static_quota_has_zero_sent() -> None:
    quota = static_quota("resend")
    assert quota.source == "static"
    assert quota.daily.to_dict() == {"sent": 0, "limit": 100, "remaining": 100, "percentUsed": 0}
    assert quota.monthly is not None and quota.monthly.limit == 3000
    assert static_quota("aws_ses", include_monthly=False).monthly is None


def test_quota_window_rounds_and_clamps() -> None:
    window = quota_window(sent=33.4, limit=100)
    assert (window.sent, window.remaining, window.percent_used) == (33, 67, 33)
    assert quota_window(sent=150, limit=100).remaining == 0
    assert quota_window(sent=5, limit=0).percent_used == 0


def test_tracked_usage_only_overlays_static_quotas() -> None:
    tracked = with_tracked_usage(static_quota("brevo"), daily_sent=30)
    assert tracked.source == "tracked"
    assert tracked.daily.percent_used == 10
    assert with_tracked_usage(static_quota("brevo"), daily_sent=0).source == "static"


def test_summarize_quotas_counts_configured_providers_only() -> None:
    quotas = [
        with_tracked_usage(static_quota("resend"), daily_sent=50),
        static_quota("brevo"),
        static_quota("aws_ses", include_monthly=False),
    ]
    summary = summarize_quotas(quotas, {"resend", "aws_ses"})
    assert summary["daily"] == {"totalSent": 50, "totalLimit": 50100, "totalRemaining": 50050, "percentUsed": 0}
    assert summary["monthly"] == {"totalSent": 0, "totalLimit": 3000, "totalRemaining": 3000, "percentUsed": 0}
    assert summarize_quotas([], set())["daily"]["percentUsed"] == 0
