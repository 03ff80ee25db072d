import asyncio

import httpx
import pytest

from mailrelay.providers.resend import ResendProvider
from mailrelay.providers.types import HealthStatus, SendParams


def _params(**overrides) -> SendParams:
    values = {"to": "user@example.com", "subject": "Welcome", "html": "<p>Hello</p>"}
    values.update(overrides)
    return SendParams(**values)


@pytest.mark.asyncio
async def test_send_posts_resend_wire_shape(make_settings, recording_transport) -> None:
    transport = recording_transport(lambda request: httpx.Response(200, json={"id": "re_123"}))
    provider = ResendProvider(settings=make_settings(resend_api_key="re_secret_key"), transport=transport)

    result = await provider.send_email(
        _params(text="Hello", reply_to="support@example.com", tags=["welcome"], from_name="FoodShare")
    )

    assert result.success is True
    assert result.provider == "resend"
    assert result.message_id == "re_123"
    request = transport.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.resend.com/emails"
    assert request.headers["Authorization"] == "Bearer re_secret_key"
    assert transport.json_body() == {
        "from": "FoodShare <contact@foodshare.club>",
        "to": ["user@example.com"],
        "subject": "Welcome",
        "html": "<p>Hello</p>",
        "text": "Hello",
        "reply_to": "support@example.com",
        "tags": [{"name": "welcome", "value": "true"}],
    }


@pytest.mark.asyncio
async def test_send_without_api_key_makes_no_request(make_settings, recording_transport) -> None:
    transport = recording_transport(lambda request: httpx.Response(200, json={"id": "never"}))
    provider = ResendProvider(settings=make_settings(), transport=transport)

    result = await provider.send_email(_params())

    assert result.success is False
    assert result.latency_ms == 0
    assert "not configured" in result.error
    assert transport.requests == []


@pytest.mark.asyncio
async def test_send_extracts_vendor_error_message(make_settings, recording_transport) -> None:
    transport = recording_transport(
        lambda request: httpx.Response(422, json={"error": {"message": "Invalid `to` field"}})
    )
    provider = ResendProvider(settings=make_settings(resend_api_key="re_key"), transport=transport)

    result = await provider.send_email(_params())

    assert result.success is False
    assert result.error == "Invalid `to` field"


@pytest.mark.asyncio
async def test_send_falls_back_to_http_status(make_settings, recording_transport) -> None:
    transport = recording_transport(lambda request: httpx.Response(500, text="upstream exploded"))
    provider = ResendProvider(settings=make_settings(resend_api_key="re_key"), transport=transport)

    result = await provider.send_email(_params())

    assert result.error == "HTTP 500"


@pytest.mark.asyncio
async def test_send_without_id_is_failure(make_settings, recording_transport) -> None:
    transport = recording_transport(lambda request: httpx.Response(200, json={}))
    provider = ResendProvider(settings=make_settings(resend_api_key="re_key"), transport=transport)

    result = await provider.send_email(_params())

    assert result.success is False


@pytest.mark.asyncio
async def test_send_timeout_is_reported_distinctly(make_settings) -> None:
    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    provider = ResendProvider(
        settings=make_settings(resend_api_key="re_key"),
        transport=httpx.MockTransport(_timeout),
    )

    result = await provider.send_email(_params())

    assert result.success is False
    assert result.error == "Request timeout"


class _StalledTransport(httpx.AsyncBaseTransport):
    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={"id": "late"})


@pytest.mark.asyncio
async def test_send_stalled_exchange_is_cut_off_at_timeout(make_settings) -> None:
    provider = ResendProvider(
        settings=make_settings(resend_api_key="re_key"),
        timeout_seconds=0.2,
        transport=_StalledTransport(),
    )

    result = await provider.send_email(_params())

    assert result.success is False
    assert result.error == "Request timeout"
    assert result.latency_ms < 5000


@pytest.mark.asyncio
async def test_health_lists_domains(make_settings, recording_transport) -> None:
    transport = recording_transport(
        lambda request: httpx.Response(200, json={"data": [{"name": "foodshare.club"}]})
    )
    provider = ResendProvider(settings=make_settings(resend_api_key="re_key"), transport=transport)

    health = await provider.check_health()

    assert str(transport.requests[0].url) == "https://api.resend.com/domains"
    assert health.status == HealthStatus.OK
    assert health.health_score == 100
    assert "foodshare.club" in health.message


@pytest.mark.asyncio
async def test_health_non_2xx_is_error(make_settings, recording_transport) -> None:
    transport = recording_transport(lambda request: httpx.Response(401, text="x" * 300))
    provider = ResendProvider(settings=make_settings(resend_api_key="re_key"), transport=transport)

    health = await provider.check_health()

    assert health.status == HealthStatus.ERROR
    assert health.health_score == 0
    assert health.message == "API error: HTTP 401 - " + "x" * 100


@pytest.mark.asyncio
async def test_health_timeout_message(make_settings) -> None:
    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    provider = ResendProvider(
        settings=make_settings(resend_api_key="re_key"),
        transport=httpx.MockTransport(_timeout),
    )

    health = await provider.check_health()

    assert health.status == HealthStatus.ERROR
    assert health.message == "Request timeout (10s)"


@pytest.mark.asyncio
async def test_unconfigured_health_and_static_quota(make_settings) -> None:
    provider = ResendProvider(settings=make_settings())

    health = await provider.check_health()
    quota = await provider.get_quota()

    assert health.status == HealthStatus.UNCONFIGURED
    assert health.message == "Missing env vars: RESEND_API_KEY"
    assert quota.daily.limit == 100
    assert quota.monthly.limit == 3000
    assert quota.source == "static"


def test_debug_info_masks_api_key(make_settings) -> None:
    info = ResendProvider(settings=make_settings(resend_api_key="re_1234567890abcdef")).get_debug_info()
    assert info["apiKeyPrefix"] == "re_12345..."
    assert "re_1234567890abcdef" not in str(info)
    assert ResendProvider(settings=make_settings()).get_debug_info()["apiKeyPrefix"] == "not set"
