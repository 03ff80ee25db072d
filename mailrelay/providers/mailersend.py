from __future__ import annotations

from typing import Any

import httpx

from mailrelay.core.config import Settings, get_settings
from mailrelay.providers.base import EmailProvider, HealthProbe, mask_secret, safe_json
from mailrelay.providers.errors import ProviderResponseError
from mailrelay.providers.types import ProviderName, SendParams

MAILERSEND_API_BASE = "https://api.mailersend.com/v1"


def error_message_from_body(body: dict[str, Any] | None, status_code: int) -> str:
    if not body:
        return f"HTTP {status_code}"
    errors = body.get("errors")
    if isinstance(errors, dict) and errors:
        details = "; ".join(
            f"{field}: {', '.join(str(item) for item in messages) if isinstance(messages, list) else messages}"
            for field, messages in errors.items()
        )
        return details
    message = body.get("message")
    return str(message) if message else f"HTTP {status_code}"


class MailerSendProvider(EmailProvider):
    name = ProviderName.MAILERSEND

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
        self._api_key = (api_key or settings.mailersend_api_key).strip()
        self.from_email = from_email or settings.mailersend_sender_email or settings.email_from
        self.from_name = from_name or settings.mailersend_sender_name or settings.email_from_name

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def missing_settings(self) -> list[str]:
        return [] if self._api_key else ["MAILERSEND_API_KEY"]

    @property
    def unconfigured_message(self) -> str:
        return "MailerSend API key not configured"

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def build_payload(self, params: SendParams) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "from": {
                "email": params.from_email or self.from_email,
                "name": params.from_name or self.from_name,
            },
            "to": [{"email": address} for address in params.recipients],
            "subject": params.subject,
            "html": params.html,
        }
        if params.text:
            payload["text"] = params.text
        if params.reply_to:
            payload["reply_to"] = {"email": params.reply_to}
        if params.tags:
            payload["tags"] = list(params.tags)
        return payload

    async def _send(self, params: SendParams) -> str | None:
        response = await self._request(
            "POST",
            f"{MAILERSEND_API_BASE}/email",
            headers={**self._auth_headers(), "Content-Type": "application/json"},
            json_body=self.build_payload(params),
        )
        # Accepted sends come back as 202 with an empty body.
        if response.status_code == 202:
            return response.headers.get("x-message-id") or None
        body = safe_json(response)
        raise ProviderResponseError(
            error_message_from_body(body, response.status_code),
            status_code=response.status_code,
            upstream_payload=body,
        )

    async def _probe_health(self) -> HealthProbe:
        response = await self._request("GET", f"{MAILERSEND_API_BASE}/token", headers=self._auth_headers())
        if not response.is_success:
            return HealthProbe(message="", error=f"API error: HTTP {response.status_code} - {response.text[:100]}")
        body = safe_json(response) or {}
        token = body.get("data") if isinstance(body.get("data"), dict) else body
        return HealthProbe(message=f"Connected. Token: {token.get('name') or 'active'}")

    def get_debug_info(self) -> dict[str, Any]:
        return {
            "provider": self.name.value,
            "configured": self.is_configured(),
            "apiKeyPrefix": mask_secret(self._api_key),
            "fromEmail": self.from_email,
            "fromName": self.from_name,
            "apiBase": MAILERSEND_API_BASE,
        }
