"""
Tests for backup export, import parsing and restore.
"""

import asyncio
import json
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from family_tracker.audit import AuditLogger
from family_tracker.backup import (
    CSV_FILENAME,
    CSV_HEADER,
    INVALID_FORMAT_MESSAGE,
    PARSE_FAILED_MESSAGE,
    BackupBundle,
    ImportFormatError,
    export_csv,
    export_json,
    parse_backup,
    quote_csv_text,
    restore_backup,
)
from family_tracker.models import (
    AuditEventType,
    Category,
    FamilyMember,
    LedgerSnapshot,
    Transaction,
    TransactionType,
)
from family_tracker.services.storage import (
    InMemoryDocumentStore,
    PermissionDeniedError,
    owned_collection_path,
)
from family_tracker.sync import LedgerSynchronizers, NotAuthenticatedError


def sample_snapshot() -> LedgerSnapshot:
    return LedgerSnapshot(
        categories=[
            Category(id="c-food", name="Food", color="#f97316", icon="FOOD"),
            Category(id="c-pay", name="Salary", icon="SALARY", type=TransactionType.INCOME),
        ],
        members=[FamilyMember(id="m-asha", name="Asha")],
        transactions=[
            Transaction(
                id="t1",
                type=TransactionType.EXPENSE,
                amount=Decimal("30"),
                category_id="c-food",
                date=date(2024, 1, 15),
                description='He said "hi"',
            ),
            Transaction(
                id="t2",
                type=TransactionType.INCOME,
                amount=Decimal("1200.5"),
                category_id="c-pay",
                date=date(2024, 1, 1),
                description="January pay",
                member_id="m-asha",
            ),
        ],
    )


class TestJsonExport:
    """Tests for the JSON backup file."""

    def test_backup_layout(self):
        exported_at = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        export = export_json(sample_snapshot(), exported_at)

        assert export.filename == "expense_tracker_backup_2024-05-01.json"
        assert export.mime_type == "text/json"

        data = json.loads(export.content)
        assert set(data) == {"transactions", "categories", "members", "timestamp"}
        assert data["timestamp"] == "2024-05-01T10:00:00.000Z"
        assert data["transactions"][1] == {
            "id": "t2",
            "type": "income",
            "amount": 1200.5,
            "categoryId": "c-pay",
            "date": "2024-01-01",
            "description": "January pay",
            "memberId": "m-asha",
        }
        assert "createdAt" not in data["categories"][0]

    def test_indented(self):
        export = export_json(LedgerSnapshot(), datetime(2024, 5, 1, tzinfo=timezone.utc))
        assert export.content.startswith('{\n  "transactions": []')


class TestCsvExport:
    """Tests for the flat CSV export."""

    def test_rows(self):
        export = export_csv(sample_snapshot())
        assert export.filename == CSV_FILENAME
        assert export.mime_type == "text/csv"
        assert export.content == (
            CSV_HEADER + "\n"
            + '2024-01-15,expense,"He said ""hi""",Food,Home Balance,30.00\r\n'
            + '2024-01-01,income,"January pay",Salary,Asha,1200.50\r\n'
        )

    def test_missing_category_is_uncategorized(self):
        snapshot = LedgerSnapshot(transactions=[
            Transaction(type="expense", amount=1, category_id="gone", date="2024-01-01"),
        ])
        row = export_csv(snapshot).content.splitlines()[1]
        assert row == '2024-01-01,expense,"",Uncategorized,Home Balance,1.00'

    def test_name_with_comma_is_quoted(self):
        snapshot = LedgerSnapshot(
            categories=[Category(id="c1", name="Food, drinks")],
            transactions=[
                Transaction(type="expense", amount=1, category_id="c1", date="2024-01-01"),
            ],
        )
        assert '"Food, drinks"' in export_csv(snapshot).content

    def test_quote_csv_text(self):
        assert quote_csv_text('a "b"') == '"a ""b"""'
        assert quote_csv_text("") == '""'


class TestParseBackup:
    """Tests for reading an uploaded backup."""

    def test_not_json(self):
        with pytest.raises(ImportFormatError, match=PARSE_FAILED_MESSAGE):
            parse_backup("{not json")

    def test_missing_categories_key(self):
        with pytest.raises(ImportFormatError) as exc_info:
            parse_backup(json.dumps({"transactions": []}))
        assert str(exc_info.value) == INVALID_FORMAT_MESSAGE

    def test_top_level_array_rejected(self):
        with pytest.raises(ImportFormatError):
            parse_backup("[]")

    def test_members_optional(self):
        bundle = parse_backup(json.dumps({"transactions": [], "categories": []}))
        assert bundle.members == []

    def test_non_list_section_rejected(self):
        with pytest.raises(ImportFormatError, match="'categories' must be a list"):
            parse_backup(json.dumps({"transactions": [], "categories": {}}))

    def test_invalid_record_reports_location(self):
        text = json.dumps({
            "transactions": [{"type": "expense", "amount": -5, "categoryId": "c", "date": "2024-01-01"}],
            "categories": [],
        })
        with pytest.raises(ImportFormatError, match="transactions.0"):
            parse_backup(text)

    def test_server_timestamps_dropped(self):
        text = json.dumps({
            "transactions": [],
            "categories": [{"id": "c1", "name": "Food", "createdAt": {"seconds": 1}}],
        })
        bundle = parse_backup(text)
        assert bundle.categories[0].created_at is None

    def test_export_parses_back(self):
        exported = export_json(sample_snapshot(), datetime(2024, 5, 1, tzinfo=timezone.utc))
        bundle = parse_backup(exported.content)
        assert bundle.as_snapshot() == sample_snapshot()
        assert bundle.timestamp == "2024-05-01T00:00:00.000Z"


class TestRestore:
    """Tests for adding a backup to the signed-in ledger."""

    def setup_method(self):
        self.store = InMemoryDocumentStore()
        self.sync = LedgerSynchronizers(self.store)
        self.sync.bind("u1")
        self.audit = AuditLogger().keep_events()

    def restore(self, bundle):
        return asyncio.run(restore_backup(bundle, self.sync, audit_logger=self.audit))

    def test_references_follow_new_ids(self):
        snapshot = sample_snapshot()
        report = self.restore(BackupBundle(
            transactions=snapshot.transactions,
            categories=snapshot.categories,
            members=snapshot.members,
        ))
        assert report.counts() == {"categories": 2, "members": 1, "transactions": 2}

        restored = self.sync.snapshot()
        category_names = restored.category_names()
        member_names = restored.member_names()
        by_description = {t.description: t for t in restored.transactions}
        pay = by_description["January pay"]
        assert category_names[pay.category_id] == "Salary"
        assert member_names[pay.member_id] == "Asha"
        assert "c-pay" not in category_names

    def test_restore_is_additive(self):
        asyncio.run(self.sync.categories.create(Category(name="Existing")))
        self.restore(BackupBundle(categories=[Category(id="x", name="Food")]))
        assert {c.name for c in self.sync.categories.items} == {"Existing", "Food"}

    def test_one_commit_per_collection(self):
        before = self.store.commit_count
        snapshot = sample_snapshot()
        self.restore(BackupBundle(
            transactions=snapshot.transactions,
            categories=snapshot.categories,
            members=snapshot.members,
        ))
        assert self.store.commit_count == before + 3

    def test_empty_bundle_writes_nothing(self):
        before = self.store.commit_count
        report = self.restore(BackupBundle())
        assert report.total == 0
        assert self.store.commit_count == before

    def test_needs_signed_in_user(self):
        self.sync.bind(None)
        with pytest.raises(NotAuthenticatedError):
            self.restore(BackupBundle())

    def test_failed_batch_keeps_earlier_batches(self):
        self.store.deny_access(owned_collection_path("u1", "transactions"))
        snapshot = sample_snapshot()
        with pytest.raises(PermissionDeniedError):
            self.restore(BackupBundle(
                transactions=snapshot.transactions,
                categories=snapshot.categories,
            ))
        assert len(self.sync.categories.items) == 2
        assert self.audit.events[-1].event_type == AuditEventType.RESTORE_FAILED

    def test_restore_is_audited(self):
        self.restore(BackupBundle(categories=[Category(name="Food")]))
        types = [e.event_type for e in self.audit.events]
        assert types == [
            AuditEventType.RECORDS_BATCH_CREATED,
            AuditEventType.RESTORE_COMPLETED,
        ]
        assert len({e.correlation_id for e in self.audit.events}) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
