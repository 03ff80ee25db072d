from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx


@dataclass(frozen=True)
class ErrorClassification:
    error_code: str
    reason_code: str
    severity: str


class ProviderError(Exception):
    def __init__(
        self,
        message: str,
        *,
        error_code: str,
        reason_code: str,
        severity: str,
        status_code: int | None = None,
        upstream_payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.reason_code = reason_code
        self.severity = severity
        self.status_code = status_code
        self.upstream_payload = upstream_payload


class ProviderConfigurationError(ProviderError):
    def __init__(self, message: str = "Provider not configured.") -> None:
        super().__init__(
            message,
            error_code="provider_unconfigured",
            reason_code="missing_credentials",
            severity="warning",
        )


class ProviderTimeoutError(ProviderError):
    def __init__(self, message: str = "Request timeout") -> None:
        super().__init__(
            message,
            error_code="provider_timeout",
            reason_code="timeout",
            severity="error",
        )


class ProviderConnectionError(ProviderError):
    def __init__(self, message: str = "Provider connection failed.") -> None:
        super().__init__(
            message,
            error_code="provider_connection",
            reason_code="connection_error",
            severity="error",
        )


class ProviderResponseError(ProviderError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        upstream_payload: dict[str, Any] | None = None,
    ) -> None:
        classification = classification_for_status(status_code)
        super().__init__(
            message,
            error_code=classification.error_code,
            reason_code=classification.reason_code,
            severity=classification.severity,
            status_code=status_code,
            upstream_payload=upstream_payload,
        )


class ProviderResponseFormatError(ProviderError):
    def __init__(self, message: str = "Provider response format is invalid.") -> None:
        super().__init__(
            message,
            error_code="provider_response_invalid",
            reason_code="response_invalid",
            severity="error",
        )


def classification_for_status(status_code: int) -> ErrorClassification:
    if status_code in {401, 403}:
        return ErrorClassification("provider_auth", "auth_failed", "critical")
    if status_code == 429:
        return ErrorClassification("provider_rate_limited", "rate_limited", "warning")
    if status_code in {408, 504}:
        return ErrorClassification("provider_timeout", "timeout", "error")
    if 400 <= status_code < 500:
        return ErrorClassification("provider_bad_request", "bad_request", "error")
    return ErrorClassification("provider_dependency_unavailable", "dependency_unavailable", "error")


def classify_provider_error(exc: Exception) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, TimeoutError | httpx.TimeoutException):
        return ProviderTimeoutError()
    if isinstance(exc, ConnectionError | httpx.TransportError):
        return ProviderConnectionError(str(exc) or "Provider connection failed.")
    if isinstance(exc, ValueError):
        return ProviderResponseFormatError(str(exc) or "Provider response format is invalid.")
    return ProviderError(
        str(exc) or "Unknown error",
        error_code="provider_internal_error",
        reason_code="internal_error",
        severity="critical",
    )
