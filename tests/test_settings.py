from pydantic import ValidationError
import pytest

from mailrelay.core.config import Settings, get_settings


def test_get_settings_in_test_mode_ignores_dotenv(monkeypatch) -> None:
    monkeypatch.setenv("APP_ENV", "test")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.app_env == "test"
    assert settings.database_dsn == "sqlite://"
    assert settings.email_metrics_enabled is False
    assert settings.resend_api_key == ""


def test_ses_prefixed_aws_variables_are_accepted(monkeypatch) -> None:
    monkeypatch.setenv("AWS_SES_REGION", "eu-west-1")
    monkeypatch.setenv("AWS_SES_ACCESS_KEY_ID", "AKIDEXAMPLE")
    monkeypatch.setenv("AWS_SES_SECRET_ACCESS_KEY", "secret")

    settings = Settings(_env_file=None)

    assert settings.aws_region == "eu-west-1"
    assert settings.aws_access_key_id == "AKIDEXAMPLE"
    assert settings.aws_secret_access_key == "secret"


def test_standard_aws_variables_take_precedence(monkeypatch) -> None:
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.setenv("AWS_SES_REGION", "eu-west-1")

    assert Settings(_env_file=None).aws_region == "us-east-1"


def test_priority_overrides_parse_json(make_settings) -> None:
    settings = make_settings(email_provider_priority_json='{"chat": ["mailersend", "brevo"]}')

    assert settings.provider_priority_overrides() == {"chat": ["mailersend", "brevo"]}


@pytest.mark.parametrize(
    "raw",
    ["{not json", '["resend"]', '{"chat": "resend"}'],
)
def test_invalid_priority_overrides_are_rejected(make_settings, raw: str) -> None:
    with pytest.raises(ValidationError):
        make_settings(email_provider_priority_json=raw)


def test_guardrails_reject_non_positive_timeout(make_settings) -> None:
    with pytest.raises(ValidationError):
        make_settings(email_request_timeout_seconds=0)
