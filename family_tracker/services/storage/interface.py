"""
Abstract Document Store Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against Cloud Firestore in production
2. Use in-memory storage for testing and local development
3. Keep synchronization and access logic decoupled from the vendor SDK

The interface is intentionally small - we're not building an ORM.
Documents are plain dicts addressed by slash-separated paths:
- userData/{ownerId}/{collection}/{docId} for a user's ledger
- users/{uid} for access profiles

Live updates are modelled as an EventSource: subscribe with a callback,
get back a function that cancels the subscription.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, NamedTuple, Optional, TypeVar


T = TypeVar("T")

Unsubscribe = Callable[[], None]

TRANSACTIONS = "transactions"
CATEGORIES = "categories"
MEMBERS = "members"
USERS = "users"

OWNED_COLLECTIONS = (TRANSACTIONS, CATEGORIES, MEMBERS)


def owned_collection_path(owner_id: str, collection: str) -> str:
    """Path of one of a user's ledger collections."""
    return f"userData/{owner_id}/{collection}"


def profile_path(uid: str) -> str:
    """Path of a user's access profile."""
    return f"{USERS}/{uid}"


class StoredDocument(NamedTuple):
    """A document id together with its body."""
    id: str
    data: dict[str, Any]


class EventSource(ABC, Generic[T]):
    """
    A stream of values pushed by the store.

    Implementations deliver the current value right after subscribing and
    then the latest value after every change. Intermediate values may be
    skipped; the last delivered value always reflects the server state.
    """

    @abstractmethod
    def subscribe(
        self,
        on_next: Callable[[T], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Unsubscribe:
        """
        Start listening.

        Returns:
            A callable that cancels the subscription. Calling it twice is safe.
        """
        pass


class CallbackEventSource(EventSource[T]):
    """EventSource backed by a plain subscribe function."""

    def __init__(
        self,
        subscribe_fn: Callable[
            [Callable[[T], None], Optional[Callable[[Exception], None]]],
            Unsubscribe,
        ],
    ):
        self._subscribe_fn = subscribe_fn

    def subscribe(
        self,
        on_next: Callable[[T], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Unsubscribe:
        return self._subscribe_fn(on_next, on_error)


class DocumentStore(ABC):
    """
    Abstract interface for the remote document store.

    Any storage implementation (Firestore, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    def watch_collection(
        self,
        collection_path: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> EventSource[list[StoredDocument]]:
        """
        Live view of every document in a collection.

        Args:
            collection_path: Path of the collection
            order_by: Field to order by (unordered if None)
            descending: Reverse the ordering
        """
        pass

    @abstractmethod
    def watch_document(
        self,
        document_path: str,
    ) -> EventSource[Optional[StoredDocument]]:
        """Live view of one document. Delivers None while it does not exist."""
        pass

    @abstractmethod
    async def get(self, document_path: str) -> Optional[StoredDocument]:
        """
        Read one document.

        Returns:
            The document if it exists, None otherwise
        """
        pass

    @abstractmethod
    async def list_documents(self, collection_path: str) -> list[StoredDocument]:
        """Read every document in a collection once."""
        pass

    @abstractmethod
    async def set(
        self,
        document_path: str,
        data: dict[str, Any],
        timestamp_field: Optional[str] = None,
    ) -> None:
        """
        Create or replace a document.

        Args:
            document_path: Path of the document
            data: Full document body
            timestamp_field: If given, set to the server time on write
        """
        pass

    @abstractmethod
    async def add(
        self,
        collection_path: str,
        data: dict[str, Any],
        timestamp_field: Optional[str] = None,
    ) -> str:
        """
        Create a document with a server-generated id.

        Returns:
            The new document id
        """
        pass

    @abstractmethod
    async def update(self, document_path: str, fields: dict[str, Any]) -> None:
        """
        Merge fields into an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, document_path: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        pass

    @abstractmethod
    async def batch_create(
        self,
        collection_path: str,
        items: list[dict[str, Any]],
        timestamp_field: Optional[str] = None,
    ) -> list[str]:
        """
        Create several documents in one atomic write.

        Returns:
            New document ids, in the order of `items`
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class PermissionDeniedError(StorageError):
    """The store's access rules rejected the operation."""
    pass


class StoreConnectionError(StorageError):
    """Could not reach the storage backend."""
    pass
