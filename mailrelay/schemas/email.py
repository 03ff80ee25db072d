from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from mailrelay.providers.types import EmailType, SendParams


class SendEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider: str | None = None
    to: str | list[str]
    subject: str = Field(min_length=1)
    html: str
    text: str | None = None
    from_email: str | None = Field(default=None, alias="from")
    from_name: str | None = Field(default=None, alias="fromName")
    reply_to: str | None = Field(default=None, alias="replyTo")
    tags: list[str] | None = None

    def to_params(self) -> SendParams:
        return SendParams(
            to=self.to,
            subject=self.subject,
            html=self.html,
            text=self.text,
            from_email=self.from_email,
            from_name=self.from_name,
            reply_to=self.reply_to,
            tags=self.tags,
        )


class RouteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email_type: EmailType = Field(alias="emailType")
    force_refresh: bool = Field(default=False, alias="forceRefresh")


HealthMode = Literal["ping", "full", "status"]
