"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of who signed in, who was approved and by whom
2. Debugging capability when a store write fails
3. A record of deletes, restores and migrations

The audit logger:
- Writes structured JSON through structlog
- Never raises; a logging failure must not break the user's action
- Supports correlation IDs to trace related events (e.g. one restore)
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from family_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    One instance is shared by the session, the ledger service,
    the admin service and the backup flow.
    """

    def __init__(self, logger_name: str = "family_tracker.audit"):
        self._logger = structlog.get_logger(logger_name)
        self.events: list[AuditEvent] = []
        self._keep_events = False

    def keep_events(self) -> "AuditLogger":
        """Retain logged events in `events` (used by tests)."""
        self._keep_events = True
        return self

    def log(self, event: AuditEvent) -> None:
        """Log an audit event at the level matching its severity."""
        if self._keep_events:
            self.events.append(event)

        log_dict = event.to_log_dict()
        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Logging must never take the app down
            print(f"WARNING: Failed to write audit event: {e}")

    def log_signed_in(self, uid: str, email: Optional[str]) -> None:
        self.log(AuditEventBuilder.signed_in(uid, email))

    def log_signed_up(self, uid: str, email: Optional[str]) -> None:
        self.log(AuditEventBuilder.signed_up(uid, email))

    def log_signed_out(self, uid: Optional[str]) -> None:
        self.log(AuditEventBuilder.signed_out(uid))

    def log_auth_failed(self, email: str, error_message: str) -> None:
        self.log(AuditEventBuilder.auth_failed(email, error_message))

    def log_profile_creation_failed(self, uid: str, error_message: str) -> None:
        self.log(AuditEventBuilder.profile_creation_failed(uid, error_message))

    def log_access_state_changed(self, uid: Optional[str], old: str, new: str) -> None:
        self.log(AuditEventBuilder.access_state_changed(uid, old, new))

    def log_record_created(self, uid: str, entity_type: str, entity_id: str) -> None:
        self.log(AuditEventBuilder.record_created(uid, entity_type, entity_id))

    def log_record_updated(
        self,
        uid: str,
        entity_type: str,
        entity_id: str,
        fields: list[str],
    ) -> None:
        self.log(AuditEventBuilder.record_updated(uid, entity_type, entity_id, fields))

    def log_record_deleted(self, uid: str, entity_type: str, entity_id: str) -> None:
        self.log(AuditEventBuilder.record_deleted(uid, entity_type, entity_id))

    def log_delete_blocked(
        self,
        uid: str,
        entity_type: str,
        entity_id: str,
        reference_count: int,
    ) -> None:
        self.log(AuditEventBuilder.delete_blocked(uid, entity_type, entity_id, reference_count))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(
            AuditEventBuilder.system_error(
                error_type=error_type,
                error_message=error_message,
                details=details,
                correlation_id=correlation_id,
            )
        )

    def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(
            AuditEventBuilder.external_service_error(
                service=service,
                error_message=error_message,
                correlation_id=correlation_id,
            )
        )


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step action (e.g., a restore).
    Pass it through all subsequent operations.
    """
    return uuid4()
