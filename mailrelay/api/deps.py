from fastapi import Request

from mailrelay.services.email_service import EmailService, get_email_service
from mailrelay.services.health_alerts import HealthAlerter


def email_service_dep(request: Request) -> EmailService:
    service = getattr(request.app.state, "email_service", None)
    if service is None:
        service = get_email_service()
        request.app.state.email_service = service
    return service


def health_alerter_dep(request: Request) -> HealthAlerter:
    alerter = getattr(request.app.state, "health_alerter", None)
    if alerter is None:
        alerter = HealthAlerter()
        request.app.state.health_alerter = alerter
    return alerter
