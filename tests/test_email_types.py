import pytest

from mailrelay.providers.types import EmailType, SendParams, SendResult


def test_send_params_normalise_recipients() -> None:
    assert SendParams(to="a@example.com", subject="Hi", html="<p>x</p>").recipients == ["a@example.com"]
    params = SendParams(to=["a@example.com", " ", "b@example.com"], subject="Hi", html="<p>x</p>")
    assert params.recipients == ["a@example.com", "b@example.com"]


@pytest.mark.parametrize("to", ["", [], ["  "]])
def test_send_params_require_recipient(to) -> None:
    with pytest.raises(ValueError):
        SendParams(to=to, subject="Hi", html="<p>x</p>")


def test_send_params_require_subject() -> None:
    with pytest.raises(ValueError):
        SendParams(to="a@example.com", subject="  ", html="<p>x</p>")


def test_with_defaults_keeps_explicit_sender() -> None:
    params = SendParams(to="a@example.com", subject="Hi", html="x", from_name="Ops")
    filled = params.with_defaults(from_email="contact@foodshare.club", from_name="FoodShare")
    assert filled.from_email == "contact@foodshare.club"
    assert filled.from_name == "Ops"


def test_send_result_envelopes() -> None:
    ok = SendResult.ok("resend", latency_ms=120, message_id="msg-1").to_dict()
    assert ok["success"] is True
    assert ok["messageId"] == "msg-1"
    assert "error" not in ok

    failed = SendResult.failed("brevo", "Provider brevo not configured").to_dict()
    assert failed["latencyMs"] == 0
    assert failed["error"] == "Provider brevo not configured"
    assert "messageId" not in failed


def test_email_type_values() -> None:
    assert len(EmailType) == 10
    assert EmailType("review_reminder") is EmailType.REVIEW_REMINDER
