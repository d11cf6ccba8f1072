"""
Collection Synchronizer

Keeps an in-memory mirror of one of a user's ledger collections, current
through a live store subscription, and writes through to the store.

IMPORTANT BOUNDARIES:
1. Writes do not wait for the subscription echo; `items` catches up on the
   next snapshot
2. Store errors reach the caller unchanged; nothing here retries
3. Every write needs a bound owner, otherwise NotAuthenticatedError

CRITICAL: Snapshots for an owner that is no longer bound are dropped.
Without that, a late snapshot from the previous user could appear in the
next user's session.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

import structlog
from pydantic import ValidationError as PydanticValidationError

from family_tracker.models.records import (
    Category,
    FamilyMember,
    LedgerSnapshot,
    StoredRecord,
    Transaction,
)
from family_tracker.services.storage.interface import (
    CATEGORIES,
    MEMBERS,
    TRANSACTIONS,
    DocumentStore,
    StoredDocument,
    Unsubscribe,
    owned_collection_path,
)


RecordT = TypeVar("RecordT", bound=StoredRecord)

CREATED_AT_FIELD = "createdAt"

logger = structlog.get_logger(__name__)


class NotAuthenticatedError(Exception):
    """A write was attempted with no signed-in owner."""
    pass


def _document_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def to_document_fields(model: type[StoredRecord], fields: dict[str, Any]) -> dict[str, Any]:
    """
    Translate attribute names and values into document fields.

    Raises:
        ValueError: For a name the model does not define, or a
            server-managed field
    """
    document = {}
    for name, value in fields.items():
        if name in ("id", "created_at"):
            raise ValueError(f"{name} is managed by the store")
        field = model.model_fields.get(name)
        if field is None:
            raise ValueError(f"{model.__name__} has no field {name!r}")
        document[field.alias or name] = _document_value(value)
    return document


class CollectionSynchronizer(Generic[RecordT]):
    """
    Live mirror of userData/{ownerId}/{collection_name}.

    Call `bind(owner_id)` when the signed-in user changes and
    `bind(None)` on sign-out.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection_name: str,
        model: type[RecordT],
        order_by: Optional[str] = None,
        descending: bool = False,
    ):
        self._store = store
        self._collection_name = collection_name
        self._model = model
        self._order_by = order_by
        self._descending = descending

        self._owner_id: Optional[str] = None
        self._items: list[RecordT] = []
        self._loading = False
        self._error: Optional[Exception] = None
        self._generation = 0
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def items(self) -> list[RecordT]:
        """Latest snapshot. Treat as read-only."""
        return self._items

    @property
    def loading(self) -> bool:
        """True until the first snapshot for the bound owner arrives."""
        return self._loading

    @property
    def error(self) -> Optional[Exception]:
        """Last subscription error, if the store rejected the listener."""
        return self._error

    def get(self, record_id: str) -> Optional[RecordT]:
        for item in self._items:
            if item.id == record_id:
                return item
        return None

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def bind(self, owner_id: Optional[str]) -> None:
        """
        Follow a different owner's collection.

        The previous subscription is always torn down first. Binding None
        empties the mirror and clears `loading`.
        """
        if owner_id == self._owner_id and (owner_id is None or self._unsubscribe):
            return

        self._teardown()
        self._owner_id = owner_id
        self._items = []
        self._error = None

        if owner_id is None:
            self._loading = False
            return

        self._loading = True
        generation = self._generation

        def on_next(docs: list[StoredDocument]) -> None:
            if generation != self._generation:
                return
            self._on_snapshot(docs)

        def on_error(error: Exception) -> None:
            if generation != self._generation:
                return
            logger.error(
                "collection_subscription_failed",
                collection=self._collection_name,
                owner_id=owner_id,
                error=str(error),
            )
            self._error = error
            self._loading = False

        self._unsubscribe = self._store.watch_collection(
            self._path(owner_id),
            order_by=self._order_by,
            descending=self._descending,
        ).subscribe(on_next, on_error)

    def close(self) -> None:
        self.bind(None)

    def _teardown(self) -> None:
        self._generation += 1
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_snapshot(self, docs: list[StoredDocument]) -> None:
        items = []
        for doc in docs:
            try:
                items.append(self._model.from_document(doc.id, doc.data))
            except PydanticValidationError as e:
                logger.warning(
                    "skipped_invalid_document",
                    collection=self._collection_name,
                    doc_id=doc.id,
                    error=str(e),
                )
        # Replace, never mutate: readers on another thread keep a consistent list
        self._items = items
        self._loading = False
        self._error = None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _path(self, owner_id: str) -> str:
        return owned_collection_path(owner_id, self._collection_name)

    def _require_path(self) -> str:
        if self._owner_id is None:
            raise NotAuthenticatedError(
                f"Cannot write {self._collection_name}: no user is signed in"
            )
        return self._path(self._owner_id)

    async def create(self, item: RecordT) -> str:
        """Create a record; returns the server-assigned id."""
        path = self._require_path()
        return await self._store.add(
            path,
            item.to_document(),
            timestamp_field=CREATED_AT_FIELD,
        )

    async def update(self, record_id: str, fields: dict[str, Any]) -> None:
        """
        Merge attribute values into an existing record.

        Raises:
            NotFoundError: If the record does not exist
        """
        path = self._require_path()
        await self._store.update(
            f"{path}/{record_id}",
            to_document_fields(self._model, fields),
        )

    async def delete(self, record_id: str) -> None:
        path = self._require_path()
        await self._store.delete(f"{path}/{record_id}")

    async def create_batch(self, items: list[RecordT]) -> list[str]:
        """Create all records in one atomic write. Empty input is a no-op."""
        path = self._require_path()
        if not items:
            return []
        return await self._store.batch_create(
            path,
            [item.to_document() for item in items],
            timestamp_field=CREATED_AT_FIELD,
        )


class LedgerSynchronizers:
    """The three synchronizers of one user's ledger, bound together."""

    def __init__(self, store: DocumentStore):
        self.transactions: CollectionSynchronizer[Transaction] = CollectionSynchronizer(
            store, TRANSACTIONS, Transaction, order_by="date", descending=True
        )
        self.categories: CollectionSynchronizer[Category] = CollectionSynchronizer(
            store, CATEGORIES, Category
        )
        self.members: CollectionSynchronizer[FamilyMember] = CollectionSynchronizer(
            store, MEMBERS, FamilyMember
        )

    def all(self) -> tuple[CollectionSynchronizer, ...]:
        return (self.transactions, self.categories, self.members)

    def bind(self, owner_id: Optional[str]) -> None:
        for synchronizer in self.all():
            synchronizer.bind(owner_id)

    def close(self) -> None:
        self.bind(None)

    @property
    def owner_id(self) -> Optional[str]:
        return self.transactions.owner_id

    @property
    def loading(self) -> bool:
        return any(s.loading for s in self.all())

    @property
    def errors(self) -> list[Exception]:
        return [s.error for s in self.all() if s.error is not None]

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            transactions=list(self.transactions.items),
            categories=list(self.categories.items),
            members=list(self.members.items),
        )
