from __future__ import annotations

from datetime import UTC, datetime
import time

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from mailrelay.api.deps import email_service_dep, health_alerter_dep
from mailrelay.api.response import envelope
from mailrelay.providers.quota import summarize_quotas
from mailrelay.providers.types import HealthStatus, ProviderHealth, ProviderName, ProviderQuota
from mailrelay.schemas.email import HealthMode, RouteRequest, SendEmailRequest
from mailrelay.services.email_service import EmailService
from mailrelay.services.health_alerts import HealthAlerter


router = APIRouter(prefix="/email", tags=["email"])

VALID_PROVIDERS = [name.value for name in ProviderName]


def _duration_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


@router.post("/send")
async def send_email(
    request: Request,
    payload: SendEmailRequest,
    service: EmailService = Depends(email_service_dep),
) -> dict:
    start = time.perf_counter()
    if not payload.provider:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Provider is required", "validProviders": VALID_PROVIDERS},
        )
    if payload.provider not in VALID_PROVIDERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": f"Invalid provider: {payload.provider}", "validProviders": VALID_PROVIDERS},
        )
    try:
        params = payload.to_params()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    result = await service.send_email_with_provider(params, payload.provider)
    body = envelope(request, result.to_dict(), duration_ms=_duration_ms(start))
    if result.success:
        return body
    body["error"] = {"code": "email_send_failed", "message": result.error, "details": {"provider": result.provider}}
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=body)


@router.post("/route")
async def route_email(
    request: Request,
    payload: RouteRequest,
    service: EmailService = Depends(email_service_dep),
) -> dict:
    start = time.perf_counter()
    ranked = await service.rank_providers(payload.email_type, force_refresh=payload.force_refresh)
    if ranked:
        best = ranked[0]
        provider = best.provider
        reason = f"Health: {best.health_score}/100, Latency: {best.latency_ms}ms"
        alternates = [item.provider for item in ranked[1:]]
    else:
        provider = service.priority_for(payload.email_type)[0]
        reason = "Fallback - all providers degraded or unavailable"
        alternates = []
    return envelope(
        request,
        {
            "emailType": payload.email_type.value,
            "recommendation": {
                "provider": provider,
                "reason": reason,
                "alternates": alternates,
                "health": [item.to_dict() for item in ranked],
            },
        },
        duration_ms=_duration_ms(start),
    )


def _summary(providers: list[ProviderHealth], quotas: list[ProviderQuota]) -> dict:
    configured = {item.provider for item in providers if item.configured}
    reachable = [item for item in providers if item.configured and item.status != HealthStatus.ERROR]
    best = max(reachable, key=lambda item: item.health_score, default=None)
    return {
        "totalProviders": len(providers),
        "healthyProviders": sum(1 for item in providers if item.status in {HealthStatus.OK, HealthStatus.DEGRADED}),
        "configuredProviders": len(configured),
        **summarize_quotas(quotas, configured),
        "bestProvider": best.provider if best is not None else None,
    }


@router.get("/health")
async def email_health(
    request: Request,
    mode: HealthMode = Query(default="full"),
    service: EmailService = Depends(email_service_dep),
    alerter: HealthAlerter = Depends(health_alerter_dep),
) -> dict:
    start = time.perf_counter()
    providers = await service.check_all_health(force_refresh=True)
    # A ping stays off the vendors' quota endpoints.
    quotas = service.get_static_quotas() if mode == "ping" else await service.get_quotas()
    data: dict = {
        "mode": mode,
        "timestamp": datetime.now(UTC).isoformat(),
        "quotas": [quota.to_dict() for quota in quotas],
        "summary": _summary(providers, quotas),
    }

    if mode == "ping":
        data["providers"] = [
            {
                "provider": item.provider,
                "status": item.status.value,
                "healthScore": item.health_score,
                "latencyMs": item.latency_ms,
                "configured": item.configured,
            }
            for item in providers
        ]
        return envelope(request, data, duration_ms=_duration_ms(start))

    data["providers"] = [item.to_dict() for item in providers]
    if mode == "status":
        service_status = await service.get_status()
        data["circuits"] = service_status["circuits"]
        data["config"] = service_status["config"]
        data["debugInfo"] = service.get_debug_info()
        return envelope(request, data, duration_ms=_duration_ms(start))

    data["alerts"] = alerter.generate_alerts(providers, service.breaker.snapshot())
    return envelope(request, data, duration_ms=_duration_ms(start))
