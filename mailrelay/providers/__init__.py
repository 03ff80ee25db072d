from __future__ import annotations

import httpx

from mailrelay.core.config import Settings, get_settings
from mailrelay.providers.aws_ses import AWSSESProvider
from mailrelay.providers.base import EmailProvider
from mailrelay.providers.brevo import BrevoProvider
from mailrelay.providers.circuit_breaker import CircuitBreaker
from mailrelay.providers.mailersend import MailerSendProvider
from mailrelay.providers.resend import ResendProvider
from mailrelay.providers.signing import SigV4Signer
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


def build_providers(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, EmailProvider]:
    settings = settings or get_settings()
    providers: list[EmailProvider] = [
        ResendProvider(settings=settings, transport=transport),
        BrevoProvider(settings=settings, transport=transport),
        AWSSESProvider(settings=settings, transport=transport),
        MailerSendProvider(settings=settings, transport=transport),
    ]
    return {provider.name.value: provider for provider in providers}


__all__ = [
    "EmailProvider",
    "ResendProvider",
    "BrevoProvider",
    "AWSSESProvider",
    "MailerSendProvider",
    "SigV4Signer",
    "CircuitBreaker",
    "CircuitState",
    "EmailType",
    "HealthStatus",
    "ProviderHealth",
    "ProviderName",
    "ProviderQuota",
    "SendParams",
    "SendResult",
    "build_providers",
]
