from __future__ import annotations

import math
from typing import Any

import httpx

from mailrelay.core.config import Settings, get_settings
from mailrelay.providers.base import EmailProvider, HealthProbe, mask_secret, raise_for_status, safe_json
from mailrelay.providers.errors import ProviderResponseError, ProviderResponseFormatError
from mailrelay.providers.quota import quota_window
from mailrelay.providers.types import ProviderName, ProviderQuota, SendParams

BREVO_API_BASE = "https://api.brevo.com/v3"

FREE_PLAN_DAILY_LIMIT = 300
FREE_PLAN_MONTHLY_LIMIT = 9000


def quota_from_account(account: dict[str, Any]) -> ProviderQuota:
    """Derive daily/monthly windows from the ``/account`` plan credits.

    Free plans carry fixed limits; paid plans expose the monthly credit
    allowance, spread evenly over 30 days for the daily window.
    """
    plans = account.get("plan")
    if not isinstance(plans, list) or not plans or not isinstance(plans[0], dict):
        raise ProviderResponseFormatError("Brevo account response has no plan information.")
    plan = plans[0]
    plan_type = str(plan.get("type") or "free")
    credits = int(plan.get("credits") or 0)

    if plan_type == "free":
        daily_limit, monthly_limit = FREE_PLAN_DAILY_LIMIT, FREE_PLAN_MONTHLY_LIMIT
    else:
        daily_limit, monthly_limit = math.ceil(credits / 30), credits

    return ProviderQuota(
        provider=ProviderName.BREVO.value,
        daily=quota_window(sent=0, limit=daily_limit),
        monthly=quota_window(sent=0, limit=monthly_limit, remaining=credits),
        source="api",
    )


class BrevoProvider(EmailProvider):
    """Brevo (formerly Sendinblue): ``api-key`` header, high-volume and marketing mail."""

    name = ProviderName.BREVO

    def __init__(
        self,
        *,
        api_key: str | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
        settings: Settings | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        super().__init__(timeout_seconds=timeout_seconds or settings.email_request_timeout_seconds, transport=transport)
        self._api_key = (api_key or settings.brevo_api_key).strip()
        self.from_email = from_email or settings.email_from
        self.from_name = from_name or settings.email_from_name

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def missing_settings(self) -> list[str]:
        return [] if self._api_key else ["BREVO_API_KEY"]

    @property
    def unconfigured_message(self) -> str:
        return "Brevo API key not configured"

    def _headers(self) -> dict[str, str]:
        return {"api-key": self._api_key, "Accept": "application/json"}

    def build_payload(self, params: SendParams) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "sender": {
                "email": params.from_email or self.from_email,
                "name": params.from_name or self.from_name,
            },
            "to": [{"email": address} for address in params.recipients],
            "subject": params.subject,
            "htmlContent": params.html,
        }
        if params.text:
            payload["textContent"] = params.text
        if params.reply_to:
            payload["replyTo"] = {"email": params.reply_to}
        if params.tags:
            payload["tags"] = list(params.tags)
        return payload

    async def _send(self, params: SendParams) -> str | None:
        response = await self._request(
            "POST",
            f"{BREVO_API_BASE}/smtp/email",
            headers={**self._headers(), "Content-Type": "application/json"},
            json_body=self.build_payload(params),
        )
        body = safe_json(response) or {}
        if not response.is_success:
            message = body.get("message") or f"HTTP {response.status_code}"
            raise ProviderResponseError(str(message), status_code=response.status_code, upstream_payload=body)
        message_id = body.get("messageId")
        return str(message_id) if message_id else None

    async def _account(self) -> dict[str, Any]:
        response = await self._request("GET", f"{BREVO_API_BASE}/account", headers=self._headers())
        raise_for_status(response, f"HTTP {response.status_code}")
        body = safe_json(response)
        if body is None:
            raise ProviderResponseFormatError("Brevo account response is not a JSON object.")
        return body

    async def _probe_health(self) -> HealthProbe:
        response = await self._request("GET", f"{BREVO_API_BASE}/account", headers=self._headers())
        if not response.is_success:
            return HealthProbe(message="", error=f"API error: HTTP {response.status_code} - {response.text[:100]}")
        account = safe_json(response) or {}
        plans = account.get("plan")
        plan = plans[0] if isinstance(plans, list) and plans and isinstance(plans[0], dict) else {}
        plan_type = plan.get("type") or "unknown"
        credits = int(plan.get("credits") or 0)
        # /account exposes remaining credits only, never usage.
        return HealthProbe(message=f"Connected. Plan: {plan_type}, Credits: {credits:,}")

    async def _fetch_quota(self) -> ProviderQuota:
        return quota_from_account(await self._account())

    def get_debug_info(self) -> dict[str, Any]:
        return {
            "provider": self.name.value,
            "configured": self.is_configured(),
            "apiKeyPrefix": mask_secret(self._api_key),
            "fromEmail": self.from_email,
            "fromName": self.from_name,
            "apiBase": BREVO_API_BASE,
        }
