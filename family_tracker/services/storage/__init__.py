"""
Storage Services Package

Provides the abstract document store interface and its implementations.
Cloud Firestore is the production backend; the in-memory store backs tests
and offline development.
"""

from family_tracker.services.storage.interface import (
    CATEGORIES,
    MEMBERS,
    OWNED_COLLECTIONS,
    TRANSACTIONS,
    USERS,
    CallbackEventSource,
    DocumentStore,
    EventSource,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    StoreConnectionError,
    StoredDocument,
    Unsubscribe,
    owned_collection_path,
    profile_path,
)
from family_tracker.services.storage.memory import InMemoryDocumentStore
from family_tracker.services.storage.firestore import (
    FirestoreClient,
    FirestoreDocumentStore,
    translate_error,
)

__all__ = [
    # Paths
    "CATEGORIES",
    "MEMBERS",
    "OWNED_COLLECTIONS",
    "TRANSACTIONS",
    "USERS",
    "owned_collection_path",
    "profile_path",
    # Interfaces
    "CallbackEventSource",
    "DocumentStore",
    "EventSource",
    "StoredDocument",
    "Unsubscribe",
    # Exceptions
    "NotFoundError",
    "PermissionDeniedError",
    "StorageError",
    "StoreConnectionError",
    # Implementations
    "FirestoreClient",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "translate_error",
]
