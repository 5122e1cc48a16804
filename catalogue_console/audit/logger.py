"""Audit trail for logins and catalogue/form changes.

Each event is written to the ``audit`` logger (so it lands in the JSON log
stream) and kept in a bounded buffer that ``/api/admin/audit-logs`` reads
back, newest first.
"""

import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request

log = logging.getLogger("audit")

REQUEST_ID_HEADERS = ("X-Request-ID", "X-Correlation-ID")


@dataclass(frozen=True)
class AuditEvent:
    """One audited action, e.g. ``furnisher.delete`` or ``session.login``."""

    action: str
    principal: str = "anonymous"
    resource: Optional[str] = None
    status: str = "success"  # success | denied | error
    details: Optional[dict[str, Any]] = None
    request_id: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def log_extra(self) -> dict[str, Any]:
        """Fields copied onto the log record for the JSON formatter."""
        return {
            k: v for k, v in asdict(self).items()
            if k != "timestamp" and v is not None
        }


def request_id(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    return next(
        (request.headers[h] for h in REQUEST_ID_HEADERS if h in request.headers),
        None,
    )


class AuditLogger:
    MAX_BUFFER_SIZE = 1000

    def __init__(self, enabled: bool = True, buffer_size: int = MAX_BUFFER_SIZE):
        self.enabled = enabled
        self._events: deque[AuditEvent] = deque(maxlen=buffer_size)

    def record(self, event: AuditEvent) -> None:
        if not self.enabled:
            return
        self._events.append(event)
        level = logging.INFO if event.status == "success" else logging.WARNING
        log.log(level, f"audit: {event.action} {event.status}", extra=event.log_extra())

    def log_access(
        self,
        action: str,
        principal_id: str,
        resource: Optional[str] = None,
        status: str = "success",
        details: Optional[dict[str, Any]] = None,
        request: Optional[Request] = None,
    ) -> None:
        self.record(AuditEvent(
            action=action,
            principal=principal_id,
            resource=resource,
            status=status,
            details=details,
            request_id=request_id(request),
        ))

    def log_login(self, principal_id: str, method: str, request: Optional[Request] = None) -> None:
        self.log_access("session.login", principal_id, details={"method": method}, request=request)

    def log_login_failure(self, reason: str, request: Optional[Request] = None) -> None:
        self.log_access(
            "session.login", "anonymous", status="denied", details={"reason": reason}, request=request
        )

    def get_recent_events(
        self,
        limit: int = 100,
        action_filter: Optional[str] = None,
        status_filter: Optional[str] = None,
    ) -> list[dict]:
        """Buffered events, newest first.

        Args:
            limit: Maximum number returned
            action_filter: Keep actions starting with this prefix
            status_filter: Keep this exact status
        """
        matched = []
        for event in reversed(self._events):
            if action_filter and not event.action.startswith(action_filter):
                continue
            if status_filter and event.status != status_filter:
                continue
            matched.append(asdict(event))
            if len(matched) == limit:
                break
        return matched

    def get_buffer_stats(self) -> dict:
        return {"buffer_size": len(self._events), "max_buffer_size": self._events.maxlen}


_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    global _audit_logger

    if _audit_logger is None:
        from catalogue_console.config import AUDIT_ENABLED

        _audit_logger = AuditLogger(enabled=AUDIT_ENABLED)
    return _audit_logger


def reset_audit_logger() -> None:
    global _audit_logger
    _audit_logger = None
