"""
Audit Models for the Family Expense Tracker

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of sign-ins, access grants and data changes
2. Debugging information when things go wrong
3. Accountability for administrator decisions

DESIGN DECISION: Audit events go to the structured log only.
Ledger records themselves carry no history beyond their fields.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session
    SIGNED_IN = "signed_in"
    SIGNED_UP = "signed_up"
    SIGNED_OUT = "signed_out"
    AUTH_FAILED = "auth_failed"
    PROFILE_CREATION_FAILED = "profile_creation_failed"
    ACCESS_STATE_CHANGED = "access_state_changed"

    # Administration
    PROFILE_STATUS_CHANGED = "profile_status_changed"
    PROFILE_CREATED = "profile_created"

    # Ledger records
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    RECORDS_BATCH_CREATED = "records_batch_created"
    DELETE_BLOCKED = "delete_blocked"
    VALIDATION_FAILED = "validation_failed"

    # Backup
    BACKUP_EXPORTED = "backup_exported"
    RESTORE_COMPLETED = "restore_completed"
    RESTORE_FAILED = "restore_failed"
    LEGACY_DATA_MIGRATED = "legacy_data_migrated"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who acted
    actor_uid: Optional[str] = Field(
        default=None,
        description="UID of the identity that triggered the event"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'profile', 'backup')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Document id of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all batches of one restore)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "actor_uid": self.actor_uid,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.signed_in(uid, email)
        event = AuditEventBuilder.record_deleted(uid, "category", category_id)
    """

    @staticmethod
    def signed_in(uid: str, email: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_IN,
            actor_uid=uid,
            entity_type="session",
            description=f"Signed in: {email or uid}",
            is_user_action=True,
        )

    @staticmethod
    def signed_up(uid: str, email: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_UP,
            actor_uid=uid,
            entity_type="profile",
            entity_id=uid,
            description=f"Account created, awaiting approval: {email or uid}",
            is_user_action=True,
        )

    @staticmethod
    def signed_out(uid: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGNED_OUT,
            actor_uid=uid,
            entity_type="session",
            description="Signed out",
            is_user_action=True,
        )

    @staticmethod
    def auth_failed(email: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            description="Authentication failed",
            error_message=error_message,
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def profile_creation_failed(uid: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_CREATION_FAILED,
            severity=AuditSeverity.ERROR,
            actor_uid=uid,
            entity_type="profile",
            entity_id=uid,
            description="Sign-up succeeded but the profile could not be written",
            error_message=error_message,
        )

    @staticmethod
    def access_state_changed(uid: Optional[str], old: str, new: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_STATE_CHANGED,
            actor_uid=uid,
            entity_type="session",
            description=f"Access state changed: {old} -> {new}",
            details={"from": old, "to": new},
        )

    @staticmethod
    def profile_status_changed(
        admin_uid: Optional[str],
        profile_id: str,
        status: str,
        expires_at: Optional[datetime],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_STATUS_CHANGED,
            actor_uid=admin_uid,
            entity_type="profile",
            entity_id=profile_id,
            description=f"Profile status set to {status}",
            details={
                "status": status,
                "access_expires_at": expires_at.isoformat() if expires_at else None,
            },
            is_user_action=True,
        )

    @staticmethod
    def profile_created(actor_uid: Optional[str], profile_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_CREATED,
            actor_uid=actor_uid,
            entity_type="profile",
            entity_id=profile_id,
            description="Pending profile created",
        )

    @staticmethod
    def record_created(uid: str, entity_type: str, entity_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            actor_uid=uid,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} created",
            is_user_action=True,
        )

    @staticmethod
    def record_updated(
        uid: str,
        entity_type: str,
        entity_id: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            actor_uid=uid,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} updated",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(uid: str, entity_type: str, entity_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            actor_uid=uid,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} deleted",
            is_user_action=True,
        )

    @staticmethod
    def records_batch_created(
        uid: str,
        entity_type: str,
        count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORDS_BATCH_CREATED,
            actor_uid=uid,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"{count} {entity_type} records created in a batch",
            details={"count": count},
        )

    @staticmethod
    def delete_blocked(
        uid: str,
        entity_type: str,
        entity_id: str,
        reference_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DELETE_BLOCKED,
            severity=AuditSeverity.WARNING,
            actor_uid=uid,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Delete blocked: {reference_count} transactions still reference this {entity_type}",
            details={"reference_count": reference_count},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        uid: Optional[str],
        entity_type: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            actor_uid=uid,
            entity_type=entity_type,
            description=f"{entity_type.capitalize()} validation failed with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def backup_exported(uid: str, fmt: str, transaction_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_EXPORTED,
            actor_uid=uid,
            entity_type="backup",
            description=f"Backup exported as {fmt.upper()}",
            details={"format": fmt, "transactions": transaction_count},
            is_user_action=True,
        )

    @staticmethod
    def restore_completed(
        uid: str,
        counts: dict[str, int],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_COMPLETED,
            actor_uid=uid,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Backup restored",
            details=counts,
            is_user_action=True,
        )

    @staticmethod
    def restore_failed(
        uid: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_FAILED,
            severity=AuditSeverity.ERROR,
            actor_uid=uid,
            entity_type="backup",
            correlation_id=correlation_id,
            description="Backup restore failed",
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def legacy_data_migrated(uid: str, counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEGACY_DATA_MIGRATED,
            actor_uid=uid,
            entity_type="backup",
            description="Local data imported into the account",
            details=counts,
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
