"""Form validation package."""

from family_tracker.validation.validator import (
    LedgerValidator,
    ValidationError,
    ValidationIssue,
    count_references,
    is_reserved_member_name,
)

__all__ = [
    "LedgerValidator",
    "ValidationError",
    "ValidationIssue",
    "count_references",
    "is_reserved_member_name",
]
