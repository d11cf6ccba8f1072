"""
In-Memory Document Store

A complete DocumentStore kept in process memory. Used by the test suite
and by `storage_backend=memory` for running the app without Firebase.

Listeners are notified synchronously after every write, so a test can
mutate the store and immediately assert on a synchronizer's snapshot.
Access rules can be emulated with `deny_access(prefix)`, which makes every
operation on matching paths fail with PermissionDeniedError.
"""

from datetime import datetime, timezone
from itertools import count
from typing import Any, Callable, Optional

from family_tracker.services.storage.interface import (
    CallbackEventSource,
    DocumentStore,
    EventSource,
    NotFoundError,
    PermissionDeniedError,
    StoredDocument,
    Unsubscribe,
)


def _split(document_path: str) -> tuple[str, str]:
    collection_path, _, doc_id = document_path.rpartition("/")
    if not collection_path or not doc_id:
        raise ValueError(f"Not a document path: {document_path}")
    return collection_path, doc_id


class _CollectionWatch:
    def __init__(self, order_by, descending, on_next, on_error):
        self.order_by = order_by
        self.descending = descending
        self.on_next = on_next
        self.on_error = on_error


class InMemoryDocumentStore(DocumentStore):
    """DocumentStore backed by nested dicts."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._collection_watches: dict[str, list[_CollectionWatch]] = {}
        self._document_watches: dict[str, list[tuple[Callable, Optional[Callable]]]] = {}
        self._denied_prefixes: set[str] = set()
        self._ids = count(1)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.commit_count = 0

    # ------------------------------------------------------------------
    # Access rule emulation
    # ------------------------------------------------------------------

    def deny_access(self, path_prefix: str) -> None:
        """Reject every operation on paths starting with the prefix."""
        self._denied_prefixes.add(path_prefix)

    def allow_access(self, path_prefix: str) -> None:
        self._denied_prefixes.discard(path_prefix)

    def _check_access(self, path: str) -> None:
        for prefix in self._denied_prefixes:
            if path.startswith(prefix):
                raise PermissionDeniedError(f"Missing or insufficient permissions: {path}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_id(self) -> str:
        return f"doc{next(self._ids):06d}"

    def _stamp(self, data: dict[str, Any], timestamp_field: Optional[str]) -> dict[str, Any]:
        body = dict(data)
        if timestamp_field:
            body[timestamp_field] = self._clock()
        return body

    def _snapshot(self, collection_path: str, watch: _CollectionWatch) -> list[StoredDocument]:
        docs = [
            StoredDocument(doc_id, dict(data))
            for doc_id, data in self._collections.get(collection_path, {}).items()
        ]
        if watch.order_by:
            # Like Firestore, documents without the field are left out of ordered queries
            docs = [d for d in docs if d.data.get(watch.order_by) is not None]
            docs.sort(key=lambda d: d.data[watch.order_by], reverse=watch.descending)
        return docs

    def _notify(self, collection_path: str, doc_ids: list[str]) -> None:
        for watch in list(self._collection_watches.get(collection_path, [])):
            watch.on_next(self._snapshot(collection_path, watch))
        for doc_id in doc_ids:
            path = f"{collection_path}/{doc_id}"
            for on_next, _ in list(self._document_watches.get(path, [])):
                on_next(self._document(path))

    def _document(self, document_path: str) -> Optional[StoredDocument]:
        collection_path, doc_id = _split(document_path)
        data = self._collections.get(collection_path, {}).get(doc_id)
        return StoredDocument(doc_id, dict(data)) if data is not None else None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def watch_collection(
        self,
        collection_path: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> EventSource[list[StoredDocument]]:
        def subscribe(on_next, on_error) -> Unsubscribe:
            try:
                self._check_access(collection_path)
            except PermissionDeniedError as e:
                if on_error:
                    on_error(e)
                return lambda: None

            watch = _CollectionWatch(order_by, descending, on_next, on_error)
            self._collection_watches.setdefault(collection_path, []).append(watch)
            on_next(self._snapshot(collection_path, watch))

            def unsubscribe() -> None:
                watches = self._collection_watches.get(collection_path, [])
                if watch in watches:
                    watches.remove(watch)

            return unsubscribe

        return CallbackEventSource(subscribe)

    def watch_document(
        self,
        document_path: str,
    ) -> EventSource[Optional[StoredDocument]]:
        def subscribe(on_next, on_error) -> Unsubscribe:
            try:
                self._check_access(document_path)
            except PermissionDeniedError as e:
                if on_error:
                    on_error(e)
                return lambda: None

            entry = (on_next, on_error)
            self._document_watches.setdefault(document_path, []).append(entry)
            on_next(self._document(document_path))

            def unsubscribe() -> None:
                entries = self._document_watches.get(document_path, [])
                if entry in entries:
                    entries.remove(entry)

            return unsubscribe

        return CallbackEventSource(subscribe)

    def listener_count(self, path: str) -> int:
        """Number of live subscriptions on a collection or document path."""
        return len(self._collection_watches.get(path, [])) + len(
            self._document_watches.get(path, [])
        )

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    async def get(self, document_path: str) -> Optional[StoredDocument]:
        self._check_access(document_path)
        return self._document(document_path)

    async def list_documents(self, collection_path: str) -> list[StoredDocument]:
        self._check_access(collection_path)
        return [
            StoredDocument(doc_id, dict(data))
            for doc_id, data in self._collections.get(collection_path, {}).items()
        ]

    async def set(
        self,
        document_path: str,
        data: dict[str, Any],
        timestamp_field: Optional[str] = None,
    ) -> None:
        self._check_access(document_path)
        collection_path, doc_id = _split(document_path)
        self._collections.setdefault(collection_path, {})[doc_id] = self._stamp(
            data, timestamp_field
        )
        self.commit_count += 1
        self._notify(collection_path, [doc_id])

    async def add(
        self,
        collection_path: str,
        data: dict[str, Any],
        timestamp_field: Optional[str] = None,
    ) -> str:
        self._check_access(collection_path)
        doc_id = self._new_id()
        self._collections.setdefault(collection_path, {})[doc_id] = self._stamp(
            data, timestamp_field
        )
        self.commit_count += 1
        self._notify(collection_path, [doc_id])
        return doc_id

    async def update(self, document_path: str, fields: dict[str, Any]) -> None:
        self._check_access(document_path)
        collection_path, doc_id = _split(document_path)
        docs = self._collections.get(collection_path, {})
        if doc_id not in docs:
            raise NotFoundError(f"No document to update: {document_path}")
        docs[doc_id] = {**docs[doc_id], **fields}
        self.commit_count += 1
        self._notify(collection_path, [doc_id])

    async def delete(self, document_path: str) -> None:
        self._check_access(document_path)
        collection_path, doc_id = _split(document_path)
        docs = self._collections.get(collection_path, {})
        if docs.pop(doc_id, None) is not None:
            self.commit_count += 1
            self._notify(collection_path, [doc_id])

    async def batch_create(
        self,
        collection_path: str,
        items: list[dict[str, Any]],
        timestamp_field: Optional[str] = None,
    ) -> list[str]:
        if not items:
            return []
        self._check_access(collection_path)
        # Build the whole batch first so a bad item leaves nothing behind
        staged = {self._new_id(): self._stamp(item, timestamp_field) for item in items}
        self._collections.setdefault(collection_path, {}).update(staged)
        self.commit_count += 1
        self._notify(collection_path, list(staged))
        return list(staged)
