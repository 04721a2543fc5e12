# crm_inventory/core/audit.py
"""Post-commit audit events.

Events are emitted after the database transaction has committed. Delivery
is best effort: a failing sink is logged and never undoes the committed
change.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

import requests

from crm_inventory.core.config import settings

logger = logging.getLogger("crm_inventory")


@dataclass
class AuditEvent:
    org_id: int
    action: str
    module: str
    record_id: str
    actor_id: str
    actor_type: str
    previous_state: dict[str, Any] | None = None
    new_state: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["occurred_at"] = self.occurred_at.isoformat()
        return payload


class AuditSink:
    def record(self, event: AuditEvent) -> None:
        raise NotImplementedError


class LoggingAuditSink(AuditSink):
    def record(self, event: AuditEvent) -> None:
        logger.info(
            f"AUDIT {event.module} {event.action} record={event.record_id} "
            f"org={event.org_id} actor={event.actor_type}:{event.actor_id}"
        )


class WebhookAuditSink(AuditSink):
    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def record(self, event: AuditEvent) -> None:
        response = requests.post(
            self.url,
            json=event.to_payload(),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )

        if response.status_code >= 400:
            raise Exception(f"Audit webhook failed: {response.status_code} {response.text}")


def get_audit_sink() -> AuditSink:
    if settings.AUDIT_WEBHOOK_URL:
        return WebhookAuditSink(
            settings.AUDIT_WEBHOOK_URL,
            timeout=settings.AUDIT_WEBHOOK_TIMEOUT_SECONDS,
        )
    return LoggingAuditSink()


def emit_audit_event(sink: AuditSink, event: AuditEvent) -> None:
    try:
        sink.record(event)
    except Exception:
        logger.exception(f"Failed to record audit event {event.module} {event.action} {event.record_id}")
