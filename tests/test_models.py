"""
Tests for the Family Expense Tracker

Test strategy:
1. Unit tests for individual components (models, validators, aggregation)
2. Integration tests for flows against the in-memory store
3. No real API calls in tests (use mocks)
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from pydantic import ValidationError as PydanticValidationError

from family_tracker.models import (
    DEFAULT_CATEGORIES,
    AccessState,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    Category,
    FamilyMember,
    Identity,
    LedgerSnapshot,
    Transaction,
    TransactionType,
    UserProfile,
    UserStatus,
    icon_for_name,
)
from family_tracker.models.profile import to_epoch_millis


class TestLedgerModels:
    """Tests for transaction, category and member models."""

    def test_transaction_document_uses_camel_case(self):
        """Test that documents use the stored field names and omit the id."""
        transaction = Transaction(
            id="t1",
            type=TransactionType.EXPENSE,
            amount=Decimal("12.50"),
            category_id="c1",
            date=date(2024, 3, 5),
            description="Bus",
            member_id="m1",
        )
        document = transaction.to_document()
        assert document == {
            "type": "expense",
            "amount": 12.5,
            "categoryId": "c1",
            "date": "2024-03-05",
            "description": "Bus",
            "memberId": "m1",
        }

    def test_transaction_from_document(self):
        """Test building a transaction from a stored document."""
        transaction = Transaction.from_document("t9", {
            "type": "income",
            "amount": 100,
            "categoryId": "c1",
            "date": "2024-01-31",
        })
        assert transaction.id == "t9"
        assert transaction.amount == Decimal("100")
        assert transaction.member_id is None
        assert transaction.description == ""

    def test_transaction_accepts_iso_timestamp_date(self):
        """Test that a full timestamp keeps only its calendar date."""
        transaction = Transaction(
            type="expense", amount=1, category_id="c", date="2024-02-10T18:30:00.000Z"
        )
        assert transaction.date == date(2024, 2, 10)

    def test_blank_member_means_home_balance(self):
        """Test that an empty member id is stored as no member."""
        transaction = Transaction(
            type="expense", amount=1, category_id="c", date="2024-02-10", member_id="  "
        )
        assert transaction.member_id is None

    def test_transaction_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(PydanticValidationError):
            Transaction(type="expense", amount=-1, category_id="c", date="2024-02-10")

    def test_signed_amount(self):
        income = Transaction(type="income", amount=10, category_id="c", date="2024-01-01")
        expense = Transaction(type="expense", amount=4, category_id="c", date="2024-01-01")
        assert income.signed_amount == Decimal("10")
        assert expense.signed_amount == Decimal("-4")

    def test_legacy_category_gets_type_from_name(self):
        """Test that categories without a type are classified by name."""
        salary = Category.from_document("c1", {"name": "Salary", "color": "#fff"})
        food = Category.from_document("c2", {"name": "Food", "color": "#fff"})
        assert salary.type == TransactionType.INCOME
        assert food.type == TransactionType.EXPENSE

    def test_legacy_category_icon_replaced(self):
        """Test that a non-string icon is replaced with the name's icon."""
        category = Category.from_document("c1", {"name": "Groceries", "icon": {"type": "svg"}})
        assert category.icon == "GROCERIES"

    def test_icon_for_name(self):
        assert icon_for_name("transport") == "TRANSPORT"
        assert icon_for_name("Pets") == "OTHER"
        assert icon_for_name("") == "OTHER"

    def test_default_categories(self):
        """Test the seeded category set."""
        assert len(DEFAULT_CATEGORIES) == 11
        income = [c.name for c in DEFAULT_CATEGORIES if c.type == TransactionType.INCOME]
        assert income == ["Salary", "Gifts"]

    def test_member_name_required(self):
        with pytest.raises(PydanticValidationError):
            FamilyMember(name="")

    def test_snapshot_name_maps(self):
        snapshot = LedgerSnapshot(
            categories=[Category(id="c1", name="Food")],
            members=[FamilyMember(id="m1", name="Asha"), FamilyMember(name="Unsaved")],
        )
        assert snapshot.category_names() == {"c1": "Food"}
        assert snapshot.member_names() == {"m1": "Asha"}


class TestProfileModels:
    """Tests for identity and profile models."""

    def test_expiry_round_trips_as_epoch_millis(self):
        """Test that accessExpiresAt is stored as epoch milliseconds."""
        expiry = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        profile = UserProfile(id="u1", status=UserStatus.APPROVED, access_expires_at=expiry)
        document = profile.to_document()
        assert document["accessExpiresAt"] == to_epoch_millis(expiry)

        restored = UserProfile.from_document("u1", document)
        assert restored.access_expires_at == expiry

    def test_missing_expiry_is_unlimited(self):
        profile = UserProfile.from_document("u1", {"status": "approved"})
        assert profile.access_expires_at is None

    def test_naive_expiry_assumed_utc(self):
        profile = UserProfile(id="u1", access_expires_at=datetime(2025, 1, 1))
        assert profile.access_expires_at.tzinfo == timezone.utc

    def test_new_profile_is_pending(self):
        assert UserProfile(id="u1").status == UserStatus.PENDING

    def test_identity_is_frozen(self):
        identity = Identity(uid="u1", email="a@b.c")
        with pytest.raises(PydanticValidationError):
            identity.uid = "u2"

    def test_only_admin_and_approved_have_access(self):
        allowed = {s for s in AccessState if s.has_access}
        assert allowed == {AccessState.ADMIN, AccessState.APPROVED}


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            description="Test event",
        )
        assert event.event_type == AuditEventType.RECORD_CREATED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.record_deleted("u1", "category", "c1")
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "record_deleted"
        assert log_dict["actor_uid"] == "u1"
        assert log_dict["entity_id"] == "c1"
        assert "event_id" in log_dict
        assert "timestamp" in log_dict

    def test_builder_auth_failed_is_warning(self):
        event = AuditEventBuilder.auth_failed("a@b.c", "Invalid email or password.")
        assert event.severity == AuditSeverity.WARNING
        assert event.details == {"email": "a@b.c"}

    def test_builder_profile_status_changed(self):
        expiry = datetime(2025, 1, 1, tzinfo=timezone.utc)
        event = AuditEventBuilder.profile_status_changed("admin", "u1", "approved", expiry)
        assert event.entity_id == "u1"
        assert event.details["access_expires_at"] == expiry.isoformat()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
