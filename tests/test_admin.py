"""
Tests for the administrator panel.
"""

import asyncio
import pytest
from datetime import date, datetime, timedelta, timezone

from family_tracker.admin import (
    LOAD_FAILED_MESSAGE,
    PERMISSION_DENIED_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    AdminService,
    GrantDuration,
    admin_error_message,
    end_of_day,
    grant_expiry,
)
from family_tracker.audit import AuditLogger
from family_tracker.models import AuditEventType, UserProfile, UserStatus
from family_tracker.services.storage import (
    InMemoryDocumentStore,
    PermissionDeniedError,
    StoreConnectionError,
    profile_path,
)


NOW = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


def run(coro):
    return asyncio.run(coro)


class TestGrants:
    """Tests for expiry calculation."""

    def test_preset_durations(self):
        assert grant_expiry(GrantDuration.THIRTY_DAYS, NOW) == NOW + timedelta(days=30)
        assert grant_expiry(GrantDuration.ONE_YEAR, NOW) == NOW + timedelta(days=365)
        assert grant_expiry(GrantDuration.LIFETIME, NOW) is None

    def test_duration_from_string(self):
        assert grant_expiry("30d", NOW) == NOW + timedelta(days=30)

    def test_end_of_day(self):
        moment = end_of_day(date(2024, 12, 31), timezone.utc)
        assert moment == datetime(2024, 12, 31, 23, 59, 59, 999000, tzinfo=timezone.utc)

    def test_end_of_day_local_is_aware(self):
        assert end_of_day(date(2024, 12, 31)).tzinfo is not None

    def test_error_messages(self):
        assert admin_error_message(PermissionDeniedError("no")) == PERMISSION_DENIED_MESSAGE
        assert admin_error_message(StoreConnectionError("down")) == UNEXPECTED_ERROR_MESSAGE


class TestAdminService:
    """Tests for listing and changing profiles."""

    def setup_method(self):
        self.store = InMemoryDocumentStore()
        self.audit = AuditLogger().keep_events()
        self.admin = AdminService(
            self.store,
            admin_uid="admin-uid",
            audit_logger=self.audit,
            clock=lambda: NOW,
        )
        for uid, status, created in (
            ("u1", "pending", 1_700_000_000_000),
            ("u2", "approved", 1_710_000_000_000),
            ("u3", "rejected", None),
        ):
            document = {"email": f"{uid}@example.com", "status": status}
            if created:
                document["createdAt"] = created
            run(self.store.set(profile_path(uid), document))

    def profile(self, uid):
        doc = run(self.store.get(profile_path(uid)))
        return UserProfile.from_document(doc.id, doc.data)

    def test_load_profiles_newest_first(self):
        profiles = run(self.admin.load_profiles())
        assert [p.id for p in profiles] == ["u2", "u1", "u3"]

    def test_grouped(self):
        run(self.admin.load_profiles())
        groups = self.admin.grouped()
        assert [p.id for p in groups[UserStatus.PENDING]] == ["u1"]
        assert [p.id for p in groups[UserStatus.APPROVED]] == ["u2"]
        assert [p.id for p in groups[UserStatus.REJECTED]] == ["u3"]

    def test_approve_for_thirty_days(self):
        expires_at = run(self.admin.approve("u1", GrantDuration.THIRTY_DAYS))
        profile = self.profile("u1")
        assert profile.status == UserStatus.APPROVED
        assert profile.access_expires_at == expires_at == NOW + timedelta(days=30)

    def test_lifetime_clears_expiry(self):
        run(self.admin.approve("u1", GrantDuration.ONE_YEAR))
        run(self.admin.approve("u1", GrantDuration.LIFETIME))
        assert self.profile("u1").access_expires_at is None

    def test_approve_until_date(self):
        run(self.admin.approve_until("u1", date(2024, 12, 31), timezone.utc))
        expected = datetime(2024, 12, 31, 23, 59, 59, 999000, tzinfo=timezone.utc)
        assert self.profile("u1").access_expires_at == expected

    def test_approve_until_requires_date(self):
        with pytest.raises(ValueError, match="Please select a valid date."):
            run(self.admin.approve_until("u1", None))
        assert self.profile("u1").status == UserStatus.PENDING

    def test_revoke_clears_expiry(self):
        run(self.admin.approve("u2", GrantDuration.ONE_YEAR))
        run(self.admin.revoke("u2"))
        profile = self.profile("u2")
        assert profile.status == UserStatus.REJECTED
        assert profile.access_expires_at is None

    def test_reapprove_after_reject(self):
        run(self.admin.reject("u1"))
        run(self.admin.approve("u1"))
        assert self.profile("u1").status == UserStatus.APPROVED

    def test_status_changes_are_audited(self):
        run(self.admin.reject("u1"))
        event = self.audit.events[-1]
        assert event.event_type == AuditEventType.PROFILE_STATUS_CHANGED
        assert event.actor_uid == "admin-uid"
        assert event.entity_id == "u1"

    def test_live_listing(self):
        self.admin.start()
        assert len(self.admin.profiles) == 3
        run(self.store.set(profile_path("u4"), {"status": "pending", "createdAt": 1_720_000_000_000}))
        assert self.admin.profiles[0].id == "u4"
        self.admin.close()
        assert self.store.listener_count("users") == 0

    def test_live_listing_permission_denied(self):
        self.store.deny_access("users")
        self.admin.start()
        assert self.admin.error == PERMISSION_DENIED_MESSAGE
        assert self.admin.loading is False

    def test_live_listing_other_failure(self):
        self.admin._on_error(StoreConnectionError("down"))
        assert self.admin.error == LOAD_FAILED_MESSAGE

    def test_denied_status_change_propagates(self):
        self.store.deny_access("users/")
        with pytest.raises(PermissionDeniedError):
            run(self.admin.approve("u1"))

    def test_ensure_profile_is_idempotent(self):
        created = run(self.admin.ensure_profile("u9", "new@example.com"))
        assert created.status == UserStatus.PENDING
        run(self.admin.approve("u9"))

        existing = run(self.admin.ensure_profile("u9", "new@example.com"))
        assert existing.status == UserStatus.APPROVED


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
