from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
import time
from typing import Any


class ProviderName(str, Enum):
    RESEND = "resend"
    BREVO = "brevo"
    AWS_SES = "aws_ses"
    MAILERSEND = "mailersend"


class EmailType(str, Enum):
    AUTH = "auth"
    CHAT = "chat"
    FOOD_LISTING = "food_listing"
    FEEDBACK = "feedback"
    REVIEW_REMINDER = "review_reminder"
    NEWSLETTER = "newsletter"
    ANNOUNCEMENT = "announcement"
    WELCOME = "welcome"
    GOODBYE = "goodbye"
    NOTIFICATION = "notification"


class HealthStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    ERROR = "error"
    UNCONFIGURED = "unconfigured"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SendParams:
    to: str | list[str]
    subject: str
    html: str
    text: str | None = None
    from_email: str | None = None
    from_name: str | None = None
    reply_to: str | None = None
    tags: list[str] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.recipients:
            raise ValueError("At least one recipient is required.")
        if not self.subject or not self.subject.strip():
            raise ValueError("Subject must not be empty.")

    @property
    def recipients(self) -> list[str]:
        if isinstance(self.to, str):
            return [self.to] if self.to.strip() else []
        return [address for address in self.to if address and address.strip()]

    def with_defaults(self, *, from_email: str, from_name: str) -> SendParams:
        return replace(
            self,
            from_email=self.from_email or from_email,
            from_name=self.from_name or from_name,
        )


@dataclass(frozen=True)
class SendResult:
    success: bool
    provider: str
    latency_ms: int
    timestamp: int
    message_id: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, provider: str, *, latency_ms: int, message_id: str | None = None) -> SendResult:
        return cls(success=True, provider=provider, latency_ms=latency_ms, timestamp=now_ms(), message_id=message_id)

    @classmethod
    def failed(cls, provider: str, error: str, *, latency_ms: int = 0) -> SendResult:
        return cls(success=False, provider=provider, latency_ms=latency_ms, timestamp=now_ms(), error=error)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "provider": self.provider,
            "latencyMs": self.latency_ms,
            "timestamp": self.timestamp,
        }
        if self.success:
            payload["messageId"] = self.message_id
        else:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class ProviderHealth:
    provider: str
    status: HealthStatus
    health_score: int
    latency_ms: int
    message: str
    configured: bool
    last_checked: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "status": self.status.value,
            "healthScore": self.health_score,
            "latencyMs": self.latency_ms,
            "message": self.message,
            "configured": self.configured,
            "lastChecked": self.last_checked,
        }


@dataclass(frozen=True)
class QuotaWindow:
    sent: int
    limit: int
    remaining: int
    percent_used: int

    def to_dict(self) -> dict[str, int]:
        return {
            "sent": self.sent,
            "limit": self.limit,
            "remaining": self.remaining,
            "percentUsed": self.percent_used,
        }


@dataclass(frozen=True)
class ProviderQuota:
    provider: str
    daily: QuotaWindow
    monthly: QuotaWindow | None = None
    source: str = "static"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "daily": self.daily.to_dict(),
            "monthly": self.monthly.to_dict() if self.monthly is not None else None,
            "source": self.source,
        }
