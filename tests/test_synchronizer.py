"""
Tests for the collection synchronizers.

All tests run against InMemoryDocumentStore, which notifies listeners
synchronously, so assertions can follow writes directly.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from family_tracker.models import Category, FamilyMember, Transaction, TransactionType
from family_tracker.services.storage import (
    InMemoryDocumentStore,
    NotFoundError,
    PermissionDeniedError,
    owned_collection_path,
)
from family_tracker.sync import (
    CollectionSynchronizer,
    LedgerSynchronizers,
    NotAuthenticatedError,
    to_document_fields,
)


def make_transaction(day: int, amount="10", category_id="c1", **kwargs):
    return Transaction(
        type=kwargs.pop("type", TransactionType.EXPENSE),
        amount=Decimal(amount),
        category_id=category_id,
        date=date(2024, 1, day),
        **kwargs,
    )


class TestCollectionSynchronizer:
    """Tests for a single collection mirror."""

    def setup_method(self):
        self.store = InMemoryDocumentStore()
        self.sync = CollectionSynchronizer(self.store, "categories", Category)

    def test_unbound_is_empty_and_idle(self):
        assert self.sync.items == []
        assert self.sync.loading is False
        assert self.sync.owner_id is None

    def test_bind_delivers_existing_documents(self):
        path = owned_collection_path("u1", "categories")
        asyncio.run(self.store.add(path, {"name": "Food", "type": "expense"}))

        self.sync.bind("u1")
        assert self.sync.loading is False
        assert [c.name for c in self.sync.items] == ["Food"]

    def test_create_shows_up_in_items(self):
        self.sync.bind("u1")
        category_id = asyncio.run(self.sync.create(Category(name="Bills")))
        assert self.sync.get(category_id).name == "Bills"

    def test_create_stamps_created_at(self):
        self.sync.bind("u1")
        category_id = asyncio.run(self.sync.create(Category(name="Bills")))
        assert self.sync.get(category_id).created_at is not None

    def test_update_merges_fields(self):
        self.sync.bind("u1")
        category_id = asyncio.run(self.sync.create(Category(name="Bills", color="#000")))
        asyncio.run(self.sync.update(category_id, {"name": "Utilities"}))

        category = self.sync.get(category_id)
        assert category.name == "Utilities"
        assert category.color == "#000"

    def test_update_missing_record_raises(self):
        self.sync.bind("u1")
        with pytest.raises(NotFoundError):
            asyncio.run(self.sync.update("nope", {"name": "X"}))

    def test_delete(self):
        self.sync.bind("u1")
        category_id = asyncio.run(self.sync.create(Category(name="Bills")))
        asyncio.run(self.sync.delete(category_id))
        assert self.sync.items == []

    def test_writes_need_an_owner(self):
        with pytest.raises(NotAuthenticatedError):
            asyncio.run(self.sync.create(Category(name="Bills")))
        with pytest.raises(NotAuthenticatedError):
            asyncio.run(self.sync.create_batch([]))

    def test_empty_batch_writes_nothing(self):
        self.sync.bind("u1")
        before = self.store.commit_count
        assert asyncio.run(self.sync.create_batch([])) == []
        assert self.store.commit_count == before

    def test_batch_is_one_commit(self):
        self.sync.bind("u1")
        before = self.store.commit_count
        ids = asyncio.run(self.sync.create_batch([
            Category(name="A"), Category(name="B"), Category(name="C"),
        ]))
        assert len(ids) == 3
        assert self.store.commit_count == before + 1
        assert {c.name for c in self.sync.items} == {"A", "B", "C"}

    def test_owners_are_isolated(self):
        self.sync.bind("u1")
        asyncio.run(self.sync.create(Category(name="Mine")))

        self.sync.bind("u2")
        assert self.sync.items == []
        assert self.store.listener_count(owned_collection_path("u1", "categories")) == 0

    def test_unbind_clears_items(self):
        self.sync.bind("u1")
        asyncio.run(self.sync.create(Category(name="Mine")))
        self.sync.bind(None)
        assert self.sync.items == []
        assert self.sync.loading is False

    def test_invalid_documents_are_skipped(self):
        path = owned_collection_path("u1", "categories")
        asyncio.run(self.store.add(path, {"name": ""}))
        asyncio.run(self.store.add(path, {"name": "Good"}))

        self.sync.bind("u1")
        assert [c.name for c in self.sync.items] == ["Good"]

    def test_denied_subscription_sets_error(self):
        self.store.deny_access("userData/u1")
        self.sync.bind("u1")
        assert isinstance(self.sync.error, PermissionDeniedError)
        assert self.sync.loading is False


class TestTransactionOrdering:
    """Tests for the transactions mirror ordering."""

    def test_newest_first(self):
        store = InMemoryDocumentStore()
        sync = CollectionSynchronizer(
            store, "transactions", Transaction, order_by="date", descending=True
        )
        sync.bind("u1")
        for day in (3, 10, 1):
            asyncio.run(sync.create(make_transaction(day)))
        assert [t.date.day for t in sync.items] == [10, 3, 1]


class TestToDocumentFields:
    """Tests for translating attribute updates into document fields."""

    def test_aliases_and_values(self):
        fields = to_document_fields(Transaction, {
            "category_id": "c2",
            "amount": Decimal("5.25"),
            "date": date(2024, 2, 1),
            "type": TransactionType.INCOME,
        })
        assert fields == {
            "categoryId": "c2",
            "amount": 5.25,
            "date": "2024-02-01",
            "type": "income",
        }

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            to_document_fields(Category, {"colour": "#fff"})

    def test_server_fields_rejected(self):
        with pytest.raises(ValueError):
            to_document_fields(Category, {"id": "x"})


class TestLedgerSynchronizers:
    """Tests for the three synchronizers bound together."""

    def test_bind_and_snapshot(self):
        store = InMemoryDocumentStore()
        ledger = LedgerSynchronizers(store)
        ledger.bind("u1")
        assert ledger.owner_id == "u1"
        assert ledger.loading is False

        category_id = asyncio.run(ledger.categories.create(Category(name="Food")))
        member_id = asyncio.run(ledger.members.create(FamilyMember(name="Ravi")))
        asyncio.run(ledger.transactions.create(
            make_transaction(5, category_id=category_id, member_id=member_id)
        ))

        snapshot = ledger.snapshot()
        assert len(snapshot.transactions) == 1
        assert snapshot.category_names() == {category_id: "Food"}
        assert snapshot.member_names() == {member_id: "Ravi"}

    def test_close_releases_every_listener(self):
        store = InMemoryDocumentStore()
        ledger = LedgerSynchronizers(store)
        ledger.bind("u1")
        ledger.close()
        for name in ("transactions", "categories", "members"):
            assert store.listener_count(owned_collection_path("u1", name)) == 0
        assert ledger.owner_id is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
