"""Live collection synchronization package."""

from family_tracker.sync.collection import (
    CollectionSynchronizer,
    LedgerSynchronizers,
    NotAuthenticatedError,
    to_document_fields,
)

__all__ = [
    "CollectionSynchronizer",
    "LedgerSynchronizers",
    "NotAuthenticatedError",
    "to_document_fields",
]
