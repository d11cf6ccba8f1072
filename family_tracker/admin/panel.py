"""
Administrator Panel

The administrator sees every profile in the global users collection and
moves profiles between statuses:
- approve: for 30 days, 1 year, without limit, or until the end of a
  chosen day (23:59:59.999 local time)
- reject / revoke: both set REJECTED and clear the expiry
- re-approve: approve again after a reject or revoke

Profiles are never deleted.

CRITICAL: Only the administrator identity should reach this module. The
store's access rules are the real guard; when they reject the admin, the
panel explains which rule is missing instead of showing a raw error.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Callable, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from family_tracker.audit import AuditLogger
from family_tracker.models.audit import AuditEventBuilder
from family_tracker.models.profile import UserProfile, UserStatus, to_epoch_millis
from family_tracker.services.storage.interface import (
    USERS,
    DocumentStore,
    PermissionDeniedError,
    StoredDocument,
    Unsubscribe,
    profile_path,
)


PERMISSION_DENIED_MESSAGE = (
    "Permission Denied: Ensure your Firestore security rules grant the admin "
    "full read/write access to the 'users' collection."
)
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again."
LOAD_FAILED_MESSAGE = "Failed to load user data."

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

logger = structlog.get_logger(__name__)


class GrantDuration(str, Enum):
    """Preset approval lengths."""
    THIRTY_DAYS = "30d"
    ONE_YEAR = "1y"
    LIFETIME = "life"


_DURATIONS = {
    GrantDuration.THIRTY_DAYS: timedelta(days=30),
    GrantDuration.ONE_YEAR: timedelta(days=365),
    GrantDuration.LIFETIME: None,
}


def grant_expiry(duration: GrantDuration, now: datetime) -> Optional[datetime]:
    """Expiry for a preset duration; None for lifetime."""
    delta = _DURATIONS[GrantDuration(duration)]
    return now + delta if delta is not None else None


def end_of_day(day: date, tz: Optional[tzinfo] = None) -> datetime:
    """The last millisecond of `day` in `tz` (the local zone by default)."""
    moment = datetime.combine(day, time(23, 59, 59, 999000))
    if tz is not None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone()


def admin_error_message(error: Exception) -> str:
    """Text the panel shows for a failed admin action."""
    if isinstance(error, PermissionDeniedError):
        return PERMISSION_DENIED_MESSAGE
    return UNEXPECTED_ERROR_MESSAGE


def sort_profiles(profiles: list[UserProfile]) -> list[UserProfile]:
    """Newest first; profiles without a creation time go last."""
    return sorted(profiles, key=lambda p: p.created_at or _EPOCH, reverse=True)


def group_by_status(profiles: list[UserProfile]) -> dict[UserStatus, list[UserProfile]]:
    groups: dict[UserStatus, list[UserProfile]] = {status: [] for status in UserStatus}
    for profile in profiles:
        groups[profile.status].append(profile)
    return groups


def _parse_profiles(docs: list[StoredDocument]) -> list[UserProfile]:
    profiles = []
    for doc in docs:
        try:
            profiles.append(UserProfile.from_document(doc.id, doc.data))
        except PydanticValidationError as e:
            logger.warning("skipped_invalid_profile", uid=doc.id, error=str(e))
    return sort_profiles(profiles)


class AdminService:
    """
    Profile listing and status changes for the administrator.

    Use `start()` for a live list (kept in `profiles`) or
    `load_profiles()` for a one-off read.
    """

    def __init__(
        self,
        store: DocumentStore,
        admin_uid: Optional[str] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._admin_uid = admin_uid
        self._audit = audit_logger or AuditLogger()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.profiles: list[UserProfile] = []
        self.loading = False
        self.error: Optional[str] = None
        self._unsubscribe: Optional[Unsubscribe] = None

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def start(self) -> "AdminService":
        if self._unsubscribe is not None:
            return self
        self.loading = True
        self._unsubscribe = self._store.watch_collection(USERS).subscribe(
            self._on_snapshot,
            self._on_error,
        )
        return self

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.loading = False

    def _on_snapshot(self, docs: list[StoredDocument]) -> None:
        self.profiles = _parse_profiles(docs)
        self.loading = False
        self.error = None

    def _on_error(self, error: Exception) -> None:
        logger.error("profile_listing_failed", error=str(error))
        self.error = (
            PERMISSION_DENIED_MESSAGE
            if isinstance(error, PermissionDeniedError)
            else LOAD_FAILED_MESSAGE
        )
        self.loading = False

    async def load_profiles(self) -> list[UserProfile]:
        """Read every profile once, newest first."""
        self.profiles = _parse_profiles(await self._store.list_documents(USERS))
        return self.profiles

    def grouped(self) -> dict[UserStatus, list[UserProfile]]:
        return group_by_status(self.profiles)

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    async def _set_status(
        self,
        profile_id: str,
        status: UserStatus,
        expires_at: Optional[datetime] = None,
    ) -> None:
        await self._store.update(
            profile_path(profile_id),
            {
                "status": status.value,
                "accessExpiresAt": to_epoch_millis(expires_at) if expires_at else None,
            },
        )
        self._audit.log(AuditEventBuilder.profile_status_changed(
            self._admin_uid, profile_id, status.value, expires_at
        ))

    async def approve(
        self,
        profile_id: str,
        duration: GrantDuration = GrantDuration.LIFETIME,
    ) -> Optional[datetime]:
        """
        Approve for a preset duration.

        Returns:
            The new expiry, or None for lifetime access
        """
        expires_at = grant_expiry(duration, self._clock())
        await self._set_status(profile_id, UserStatus.APPROVED, expires_at)
        return expires_at

    async def approve_until(
        self,
        profile_id: str,
        day: Optional[date],
        tz: Optional[tzinfo] = None,
    ) -> datetime:
        """
        Approve until the end of `day`.

        Raises:
            ValueError: If no day was chosen
        """
        if day is None:
            raise ValueError("Please select a valid date.")
        expires_at = end_of_day(day, tz)
        await self._set_status(profile_id, UserStatus.APPROVED, expires_at)
        return expires_at

    async def reject(self, profile_id: str) -> None:
        await self._set_status(profile_id, UserStatus.REJECTED)

    async def revoke(self, profile_id: str) -> None:
        """Withdraw access from an approved profile."""
        await self._set_status(profile_id, UserStatus.REJECTED)

    async def ensure_profile(self, uid: str, email: Optional[str] = None) -> UserProfile:
        """Return the profile, creating a PENDING one if it is missing."""
        existing = await self._store.get(profile_path(uid))
        if existing is not None:
            return UserProfile.from_document(existing.id, existing.data)

        profile = UserProfile(id=uid, email=email, status=UserStatus.PENDING)
        await self._store.set(profile_path(uid), profile.to_document(), timestamp_field="createdAt")
        self._audit.log(AuditEventBuilder.profile_created(self._admin_uid, uid))
        return profile
