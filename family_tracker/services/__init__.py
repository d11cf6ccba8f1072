"""Services package."""

from family_tracker.services.storage import (
    DocumentStore,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    StoreConnectionError,
)
from family_tracker.services.auth import (
    AuthError,
    AuthSession,
    FirebaseIdentityProvider,
    IdentityProvider,
    InMemoryIdentityProvider,
    ProfileCreationError,
)

__all__ = [
    # Storage services
    "DocumentStore",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageError",
    "StoreConnectionError",
    # Auth services
    "AuthError",
    "AuthSession",
    "FirebaseIdentityProvider",
    "IdentityProvider",
    "InMemoryIdentityProvider",
    "ProfileCreationError",
]
