"""Access state package."""

from family_tracker.access.resolver import (
    UserStatusWatcher,
    is_admin,
    resolve_access_state,
)

__all__ = [
    "UserStatusWatcher",
    "is_admin",
    "resolve_access_state",
]
