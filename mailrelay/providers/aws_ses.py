from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
import json
import re
from typing import Any

import httpx

from mailrelay.core.config import Settings, get_settings
from mailrelay.providers.base import EmailProvider, HealthProbe, format_sender, mask_secret, raise_for_status
from mailrelay.providers.errors import (
    ProviderConfigurationError,
    ProviderResponseError,
    ProviderResponseFormatError,
)
from mailrelay.providers.quota import PROVIDER_LIMITS, quota_window, static_quota
from mailrelay.providers.signing import SigV4Signer
from mailrelay.providers.types import ProviderName, ProviderQuota, SendParams

SES_SERVICE = "ses"
SEND_PATH = "/v2/email/outbound-emails"
SEND_QUOTA_QUERY = "/?Action=GetSendQuota&Version=2010-12-01"


@dataclass(frozen=True)
class SendQuota:
    max_24_hour_send: float
    max_send_rate: float
    sent_last_24_hours: float

    @property
    def percent_used(self) -> float:
        if self.max_24_hour_send <= 0:
            return 0.0
        return self.sent_last_24_hours / self.max_24_hour_send * 100


def _xml_value(document: str, tag: str) -> str | None:
    match = re.search(rf"<{tag}>([^<]+)</{tag}>", document)
    return match.group(1).strip() if match else None


def parse_send_quota(document: str) -> SendQuota:
    def _number(tag: str) -> float:
        raw = _xml_value(document, tag)
        if raw is None:
            return 0.0
        try:
            return float(raw)
        except ValueError as exc:
            raise ProviderResponseFormatError(f"AWS SES returned a non-numeric {tag}.") from exc

    return SendQuota(
        max_24_hour_send=_number("Max24HourSend"),
        max_send_rate=_number("MaxSendRate"),
        sent_last_24_hours=_number("SentLast24Hours"),
    )


def error_message_from_text(text: str, status_code: int) -> str:
    try:
        body = json.loads(text)
    except ValueError:
        return _xml_value(text, "Message") or text or f"AWS SES error: {status_code}"
    if isinstance(body, dict):
        message = body.get("message") or body.get("Message")
        if message:
            return str(message)
    return f"AWS SES error: {status_code}"


class AWSSESProvider(EmailProvider):
    """Amazon SES v2, authenticated with hand-rolled Signature V4."""

    name = ProviderName.AWS_SES

    def __init__(
        self,
        *,
        region: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
        settings: Settings | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        settings = settings or get_settings()
        super().__init__(timeout_seconds=timeout_seconds or settings.email_request_timeout_seconds, transport=transport)
        self.region = (region or settings.aws_region).strip()
        self._access_key_id = (access_key_id or settings.aws_access_key_id).strip()
        self._secret_access_key = (secret_access_key or settings.aws_secret_access_key).strip()
        self.from_email = from_email or settings.aws_ses_from_email or settings.email_from
        self.from_name = from_name or settings.aws_ses_from_name or settings.email_from_name
        self.endpoint = f"https://email.{self.region}.amazonaws.com"
        self._signer: SigV4Signer | None = None
        if self.is_configured():
            self._signer = SigV4Signer(
                region=self.region,
                service=SES_SERVICE,
                access_key_id=self._access_key_id,
                secret_access_key=self._secret_access_key,
                clock=clock,
            )

    def is_configured(self) -> bool:
        return bool(self.region and self._access_key_id and self._secret_access_key)

    def missing_settings(self) -> list[str]:
        missing: list[str] = []
        if not self.region:
            missing.append("AWS_REGION")
        if not self._access_key_id:
            missing.append("AWS_ACCESS_KEY_ID")
        if not self._secret_access_key:
            missing.append("AWS_SECRET_ACCESS_KEY")
        return missing

    @property
    def unconfigured_message(self) -> str:
        return "AWS SES not configured"

    @property
    def signer(self) -> SigV4Signer:
        if self._signer is None:
            raise ProviderConfigurationError(self.unconfigured_message)
        return self._signer

    def build_payload(self, params: SendParams) -> dict[str, Any]:
        body: dict[str, Any] = {"Html": {"Data": params.html, "Charset": "UTF-8"}}
        if params.text:
            body["Text"] = {"Data": params.text, "Charset": "UTF-8"}
        payload: dict[str, Any] = {
            "FromEmailAddress": format_sender(params.from_name or self.from_name, params.from_email or self.from_email),
            "Destination": {"ToAddresses": params.recipients},
            "Content": {
                "Simple": {
                    "Subject": {"Data": params.subject, "Charset": "UTF-8"},
                    "Body": body,
                }
            },
        }
        if params.reply_to:
            payload["ReplyToAddresses"] = [params.reply_to]
        return payload

    def signed_send_request(self, params: SendParams) -> tuple[str, dict[str, str], bytes]:
        """Return ``(url, headers, body)`` for a send; the signature covers these exact body bytes."""
        url = f"{self.endpoint}{SEND_PATH}"
        body = json.dumps(self.build_payload(params), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json", "Content-Length": str(len(body))}
        return url, self.signer.sign_request("POST", url, headers, body), body

    async def _send(self, params: SendParams) -> str | None:
        url, headers, body = self.signed_send_request(params)
        response = await self._request("POST", url, headers=headers, content=body)
        if not response.is_success:
            raise ProviderResponseError(
                error_message_from_text(response.text, response.status_code),
                status_code=response.status_code,
            )
        try:
            result = response.json()
        except ValueError as exc:
            raise ProviderResponseFormatError("AWS SES response is not valid JSON.") from exc
        message_id = result.get("MessageId") if isinstance(result, dict) else None
        return str(message_id) if message_id else None

    async def _get_send_quota(self) -> tuple[httpx.Response, str]:
        url = f"{self.endpoint}{SEND_QUOTA_QUERY}"
        headers = self.signer.sign_request("GET", url, {"Content-Type": "application/x-www-form-urlencoded"}, "")
        response = await self._request("GET", url, headers=headers)
        return response, response.text

    async def _probe_health(self) -> HealthProbe:
        response, text = await self._get_send_quota()
        if not response.is_success:
            reason = _xml_value(text, "Message") or f"HTTP {response.status_code}"
            return HealthProbe(message="", error=f"AWS SES API error: {reason}")

        quota = parse_send_quota(text)
        if quota.max_24_hour_send == 0 and quota.max_send_rate == 0:
            return HealthProbe(
                message="",
                error="AWS SES returned zero quota. May indicate sandbox mode or missing permissions.",
            )
        return HealthProbe(
            message=(
                f"Connected. Region: {self.region}. "
                f"Quota: {quota.sent_last_24_hours:.0f}/{quota.max_24_hour_send:.0f} (24h), "
                f"Rate: {quota.max_send_rate:g}/sec"
            ),
            quota_percent_used=quota.percent_used,
        )

    async def _fetch_quota(self) -> ProviderQuota:
        response, text = await self._get_send_quota()
        raise_for_status(response, f"HTTP {response.status_code}")
        quota = parse_send_quota(text)
        limit = quota.max_24_hour_send if _xml_value(text, "Max24HourSend") else PROVIDER_LIMITS[self.name.value].daily
        return ProviderQuota(
            provider=self.name.value,
            daily=quota_window(sent=quota.sent_last_24_hours, limit=limit),
            source="api",
        )

    async def get_quota(self) -> ProviderQuota:
        quota = await super().get_quota()
        if quota.source == "static":
            return static_quota(self.name.value, include_monthly=False)
        return quota

    def get_debug_info(self) -> dict[str, Any]:
        return {
            "provider": self.name.value,
            "configured": self.is_configured(),
            "region": self.region or "not set",
            "accessKeyIdPrefix": mask_secret(self._access_key_id),
            "fromEmail": self.from_email,
            "fromName": self.from_name,
            "endpoint": self.endpoint,
        }
