"""
Tests for the Firestore document store with a mocked SDK client.
"""

import asyncio
import pytest
from itertools import count
from unittest.mock import MagicMock

from google.api_core import exceptions as google_exceptions

from family_tracker.services.storage import (
    FirestoreDocumentStore,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    StoreConnectionError,
    translate_error,
)


def make_store():
    db = MagicMock()
    db.created_refs = []
    ids = count(1)

    def new_ref():
        ref = MagicMock()
        ref.id = f"auto{next(ids)}"
        db.created_refs.append(ref)
        return ref

    db.collection.return_value.document.side_effect = new_ref
    client = MagicMock()
    client.connect.return_value = db
    return FirestoreDocumentStore(client=client), db


class TestTranslateError:
    """Tests for mapping Google API errors."""

    def test_permission_denied(self):
        error = translate_error(google_exceptions.PermissionDenied("rules"))
        assert isinstance(error, PermissionDeniedError)

    def test_not_found(self):
        assert isinstance(translate_error(google_exceptions.NotFound("gone")), NotFoundError)

    def test_unavailable(self):
        error = translate_error(google_exceptions.ServiceUnavailable("down"))
        assert isinstance(error, StoreConnectionError)

    def test_other(self):
        error = translate_error(RuntimeError("boom"))
        assert type(error) is StorageError


class TestFirestoreDocumentStore:
    """Tests for reads, writes and batching."""

    def test_get_missing_document(self):
        store, db = make_store()
        db.document.return_value.get.return_value.exists = False
        assert asyncio.run(store.get("users/u1")) is None

    def test_add_returns_generated_id(self):
        store, db = make_store()
        doc_id = asyncio.run(store.add("userData/u1/categories", {"name": "Food"}))
        assert doc_id == "auto1"
        db.collection.assert_called_with("userData/u1/categories")

    def test_update_translates_errors(self):
        store, db = make_store()
        db.document.return_value.update.side_effect = google_exceptions.PermissionDenied("no")
        with pytest.raises(PermissionDeniedError):
            asyncio.run(store.update("users/u1", {"status": "approved"}))

    def test_empty_batch_skips_commit(self):
        store, db = make_store()
        assert asyncio.run(store.batch_create("userData/u1/categories", [])) == []
        db.batch.assert_not_called()

    def test_large_batch_is_one_commit(self):
        store, db = make_store()
        items = [{"name": f"c{i}"} for i in range(600)]
        ids = asyncio.run(store.batch_create("userData/u1/categories", items, "createdAt"))

        assert len(ids) == len(items)
        assert db.batch.call_count == 1
        assert db.batch.return_value.set.call_count == 600
        db.batch.return_value.commit.assert_called_once()

    def test_failed_commit_writes_nothing(self):
        store, db = make_store()
        batch = db.batch.return_value
        batch.commit.side_effect = google_exceptions.ServiceUnavailable("down")
        items = [{"name": f"c{i}"} for i in range(600)]

        with pytest.raises(StoreConnectionError):
            asyncio.run(store.batch_create("userData/u1/categories", items))

        # Writes are staged on the batch only; nothing reaches a document directly
        batch.commit.assert_called_once()
        assert len(db.created_refs) == 600
        assert all(not ref.set.called for ref in db.created_refs)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
