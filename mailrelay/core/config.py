import json
import os
import sys
from functools import lru_cache

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "Mailrelay"
    app_env: str = "local"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"

    email_from: str = "contact@foodshare.club"
    email_from_name: str = "FoodShare"

    resend_api_key: str = ""
    brevo_api_key: str = ""
    mailersend_api_key: str = ""
    mailersend_sender_email: str = ""
    mailersend_sender_name: str = ""

    aws_region: str = Field(default="", validation_alias=AliasChoices("AWS_REGION", "AWS_SES_REGION"))
    aws_access_key_id: str = Field(
        default="",
        validation_alias=AliasChoices("AWS_ACCESS_KEY_ID", "AWS_SES_ACCESS_KEY_ID"),
    )
    aws_secret_access_key: str = Field(
        default="",
        validation_alias=AliasChoices("AWS_SECRET_ACCESS_KEY", "AWS_SES_SECRET_ACCESS_KEY"),
    )
    aws_ses_from_email: str = ""
    aws_ses_from_name: str = ""

    email_request_timeout_seconds: float = 10.0
    email_circuit_breaker_threshold: int = 5
    email_circuit_breaker_reset_seconds: float = 60.0
    email_health_cache_ttl_seconds: float = 60.0
    email_provider_priority_json: str = ""

    database_dsn: str = "sqlite:///./mailrelay.db"
    email_metrics_enabled: bool = True
    metrics_enabled: bool = False

    @model_validator(mode="after")
    def validate_email_guardrails(self) -> "Settings":
        if self.email_request_timeout_seconds <= 0:
            raise ValueError("EMAIL_REQUEST_TIMEOUT_SECONDS must be greater than 0.")
        if self.email_circuit_breaker_threshold < 1:
            raise ValueError("EMAIL_CIRCUIT_BREAKER_THRESHOLD must be at least 1.")
        if self.email_circuit_breaker_reset_seconds < 0:
            raise ValueError("EMAIL_CIRCUIT_BREAKER_RESET_SECONDS must not be negative.")
        if self.email_provider_priority_json.strip():
            try:
                parsed = json.loads(self.email_provider_priority_json)
            except ValueError as exc:
                raise ValueError("EMAIL_PROVIDER_PRIORITY_JSON must be valid JSON.") from exc
            if not isinstance(parsed, dict) or not all(isinstance(value, list) for value in parsed.values()):
                raise ValueError("EMAIL_PROVIDER_PRIORITY_JSON must map email types to provider name lists.")
        return self

    def provider_priority_overrides(self) -> dict[str, list[str]]:
        if not self.email_provider_priority_json.strip():
            return {}
        parsed = json.loads(self.email_provider_priority_json)
        return {str(key): [str(name) for name in value] for key, value in parsed.items()}


@lru_cache
def get_settings() -> Settings:
    app_env = os.getenv("APP_ENV", "").lower()
    is_pytest_runtime = "pytest" in sys.modules
    if app_env == "test" or (not app_env and is_pytest_runtime):
        # Provider credentials only come from explicit env vars under test, never from a local .env.
        return Settings(_env_file=None, app_env="test", database_dsn="sqlite://", email_metrics_enabled=False)
    return Settings()
