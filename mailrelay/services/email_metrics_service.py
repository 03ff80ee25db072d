from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mailrelay.core.metrics import email_metric_persist_failures_total
from mailrelay.db.session import SessionLocal
from mailrelay.models.email_send_metric import EmailSendMetric


logger = logging.getLogger("mailrelay.email.metrics")


class EmailMetricsService:
    """Persists one row per explicit-provider send and answers usage queries."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def record_send(
        self,
        *,
        provider: str,
        success: bool,
        latency_ms: int,
        message_id: str | None = None,
        error: str | None = None,
    ) -> None:
        db = self._session_factory()
        try:
            db.add(
                EmailSendMetric(
                    id=str(uuid.uuid4()),
                    provider=provider,
                    success=success,
                    latency_ms=latency_ms,
                    message_id=message_id,
                    error=error,
                    created_at=datetime.now(UTC),
                )
            )
            db.commit()
        except Exception:  # noqa: BLE001
            db.rollback()
            email_metric_persist_failures_total.labels(provider=provider).inc()
            logger.warning("email send metric persistence failed", exc_info=True)
        finally:
            db.close()

    def daily_usage(self, provider: str, *, now: datetime | None = None) -> int:
        current = now or datetime.now(UTC)
        day_start = current.replace(hour=0, minute=0, second=0, microsecond=0)
        db = self._session_factory()
        try:
            count = db.execute(
                select(func.count(EmailSendMetric.id)).where(
                    EmailSendMetric.provider == provider,
                    EmailSendMetric.success.is_(True),
                    EmailSendMetric.created_at >= day_start,
                )
            ).scalar_one()
        finally:
            db.close()
        return int(count or 0)
