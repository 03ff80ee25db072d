from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import json
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from mailrelay.api.response import exception_envelope
from mailrelay.api.v1.router import api_router
from mailrelay.core.config import get_settings
from mailrelay.core.logging_config import configure_logging
from mailrelay.core.metrics import render_metrics
import mailrelay.db.session as db_session
from mailrelay.services.email_metrics_service import EmailMetricsService
from mailrelay.services.email_service import EmailService
from mailrelay.services.health_alerts import HealthAlerter

settings = get_settings()
configure_logging(log_level=settings.log_level, app_env=settings.app_env)
logger = logging.getLogger("mailrelay.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    recorder = None
    if settings.email_metrics_enabled:
        db_session.create_schema()
        recorder = EmailMetricsService()
    service = EmailService(settings, metrics_recorder=recorder)
    app.state.email_service = service
    app.state.health_alerter = HealthAlerter()
    logger.info(
        json.dumps(
            {
                "event": "email.service.started",
                "configured_providers": [provider.name.value for provider in service.get_configured_providers()],
                "metrics_persistence": recorder is not None,
            }
        )
    )
    try:
        yield
    finally:
        await service.aclose()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.include_router(api_router, prefix=settings.api_v1_prefix)

if settings.metrics_enabled:
    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        payload, content_type = render_metrics()
        return Response(content=payload, media_type=content_type)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    details: dict[str, object] = dict(exc.detail) if isinstance(exc.detail, dict) else {}
    if isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = str(details.pop("message", "Request failed"))
    payload = exception_envelope(
        request=request,
        status_code=exc.status_code,
        message=message,
        code=f"http_{exc.status_code}",
        details=details,
    )
    return JSONResponse(status_code=exc.status_code, content=payload)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    payload = exception_envelope(
        request=request,
        status_code=422,
        message="Validation failed",
        code="validation_error",
        details={"errors": json.loads(json.dumps(exc.errors(), default=str))},
    )
    return JSONResponse(status_code=422, content=payload)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled request error", exc_info=exc)
    payload = exception_envelope(
        request=request,
        status_code=500,
        message="Internal server error",
        code="internal_server_error",
    )
    return JSONResponse(status_code=500, content=payload)
