from __future__ import annotations

from typing import Any

import httpx

from mailrelay.core.config import Settings, get_settings
from mailrelay.providers.base import EmailProvider, HealthProbe, format_sender, mask_secret, safe_json
from mailrelay.providers.errors import ProviderResponseError, ProviderResponseFormatError
from mailrelay.providers.types import ProviderName, SendParams

RESEND_API_BASE = "https://api.resend.com"


class ResendProvider(EmailProvider):
    """Resend: bearer-token JSON API, preferred for auth and critical mail."""

    name = ProviderName.RESEND

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
        self._api_key = (api_key or settings.resend_api_key).strip()
        self.from_email = from_email or settings.email_from
        self.from_name = from_name or settings.email_from_name

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def missing_settings(self) -> list[str]:
        return [] if self._api_key else ["RESEND_API_KEY"]

    @property
    def unconfigured_message(self) -> str:
        return "Resend API key not configured"

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def build_payload(self, params: SendParams) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "from": format_sender(params.from_name or self.from_name, params.from_email or self.from_email),
            "to": params.recipients,
            "subject": params.subject,
            "html": params.html,
        }
        if params.text:
            payload["text"] = params.text
        if params.reply_to:
            payload["reply_to"] = params.reply_to
        if params.tags:
            payload["tags"] = [{"name": tag, "value": "true"} for tag in params.tags]
        return payload

    async def _send(self, params: SendParams) -> str | None:
        response = await self._request(
            "POST",
            f"{RESEND_API_BASE}/emails",
            headers={**self._auth_headers(), "Content-Type": "application/json"},
            json_body=self.build_payload(params),
        )
        body = safe_json(response) or {}
        error = body.get("error")
        if not response.is_success or error:
            message = error.get("message") if isinstance(error, dict) else None
            message = message or body.get("message") or f"HTTP {response.status_code}"
            raise ProviderResponseError(str(message), status_code=response.status_code, upstream_payload=body)
        message_id = body.get("id")
        if not message_id:
            raise ProviderResponseFormatError("Resend response did not include an email id.")
        return str(message_id)

    async def _probe_health(self) -> HealthProbe:
        response = await self._request("GET", f"{RESEND_API_BASE}/domains", headers=self._auth_headers())
        if not response.is_success:
            return HealthProbe(message="", error=f"API error: HTTP {response.status_code} - {response.text[:100]}")
        body = safe_json(response) or {}
        domains = body.get("data") or []
        names = [str(domain.get("name")) for domain in domains if isinstance(domain, dict)]
        return HealthProbe(message=f"Connected. {len(names)} domain(s): {', '.join(names) or 'none'}")

    def get_debug_info(self) -> dict[str, Any]:
        return {
            "provider": self.name.value,
            "configured": self.is_configured(),
            "apiKeyPrefix": mask_secret(self._api_key),
            "fromEmail": self.from_email,
            "fromName": self.from_name,
            "apiBase": RESEND_API_BASE,
        }
