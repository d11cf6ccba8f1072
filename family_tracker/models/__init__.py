"""
Data Models Package

This package contains all Pydantic models used in the Family Expense Tracker.
All data flowing through the system must conform to these schemas.
"""

from family_tracker.models.records import (
    DEFAULT_CATEGORIES,
    HOME_BALANCE,
    ICONS,
    UNCATEGORIZED,
    Category,
    FamilyMember,
    LedgerSnapshot,
    StoredRecord,
    Transaction,
    TransactionType,
    icon_for_name,
)
from family_tracker.models.profile import (
    AccessState,
    Identity,
    UserProfile,
    UserStatus,
)
from family_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_CATEGORIES",
    "HOME_BALANCE",
    "ICONS",
    "UNCATEGORIZED",
    "Category",
    "FamilyMember",
    "LedgerSnapshot",
    "StoredRecord",
    "Transaction",
    "TransactionType",
    "icon_for_name",
    # Access models
    "AccessState",
    "Identity",
    "UserProfile",
    "UserStatus",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
