import os
os.environ["APP_ENV"] = "test"

# THEN import anything else
from collections.abc import Callable
import json

import httpx
import pytest

from mailrelay.core.config import Settings, get_settings
from mailrelay.services.email_service import reset_email_service

_EMAIL_ENV_VARS = (
    "RESEND_API_KEY",
    "BREVO_API_KEY",
    "MAILERSEND_API_KEY",
    "AWS_REGION",
    "AWS_SES_REGION",
    "AWS_ACCESS_KEY_ID",
    "AWS_SES_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SES_SECRET_ACCESS_KEY",
    "EMAIL_PROVIDER_PRIORITY_JSON",
)


@pytest.fixture(autouse=True)
def _isolated_email_state(monkeypatch) -> None:
    for name in _EMAIL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    reset_email_service()
    yield
    get_settings.cache_clear()
    reset_email_service()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _make(**overrides) -> Settings:
        values = {"app_env": "test", "database_dsn": "sqlite://", "email_metrics_enabled": False}
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def all_configured_settings(make_settings) -> Settings:
    return make_settings(
        resend_api_key="re_test_key_123456",
        brevo_api_key="xkeysib-test-123456",
        mailersend_api_key="mlsn.test_123456",
        aws_region="us-east-1",
        aws_access_key_id="AKIDEXAMPLE",
        aws_secret_access_key="wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY",
    )


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it answered."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_handler)

    def json_body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def recording_transport() -> Callable[[Callable[[httpx.Request], httpx.Response]], RecordingTransport]:
    return RecordingTransport
