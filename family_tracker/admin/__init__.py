"""Administrator panel package."""

from family_tracker.admin.panel import (
    LOAD_FAILED_MESSAGE,
    PERMISSION_DENIED_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    AdminService,
    GrantDuration,
    admin_error_message,
    end_of_day,
    grant_expiry,
    group_by_status,
    sort_profiles,
)

__all__ = [
    "LOAD_FAILED_MESSAGE",
    "PERMISSION_DENIED_MESSAGE",
    "UNEXPECTED_ERROR_MESSAGE",
    "AdminService",
    "GrantDuration",
    "admin_error_message",
    "end_of_day",
    "grant_expiry",
    "group_by_status",
    "sort_profiles",
]
