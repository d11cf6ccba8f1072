"""
Cloud Firestore Storage Implementation

DESIGN DECISION: Firestore is the production backend because:
1. Live listeners push every change to open sessions
2. Per-user subcollections map directly onto the ledger layout
3. Batched writes give us atomic bulk inserts for seeding and restore

TRADEOFFS:
- A bulk insert is one batch; oversized requests fail without writing anything
- The Python SDK delivers snapshots on a background thread
- Listener errors close the watch; they are not reported back to us

The implementation follows the abstract interface, so tests and local
development run on the in-memory store without changing any logic.
"""

from typing import Any, Optional

import firebase_admin
import structlog
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from tenacity import retry, stop_after_attempt, wait_exponential

from family_tracker.config import FirebaseSettings, get_settings
from family_tracker.services.storage.interface import (
    CallbackEventSource,
    DocumentStore,
    EventSource,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    StoreConnectionError,
    StoredDocument,
    Unsubscribe,
)


APP_NAME = "family-tracker"

logger = structlog.get_logger(__name__)


def translate_error(error: Exception) -> StorageError:
    """Map a Google API error onto the storage error hierarchy."""
    if isinstance(error, StorageError):
        return error
    if isinstance(error, google_exceptions.PermissionDenied):
        return PermissionDeniedError(str(error))
    if isinstance(error, google_exceptions.NotFound):
        return NotFoundError(str(error))
    if isinstance(
        error,
        (
            google_exceptions.ServiceUnavailable,
            google_exceptions.DeadlineExceeded,
            google_exceptions.RetryError,
        ),
    ):
        return StoreConnectionError(str(error))
    return StorageError(str(error))


class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles authentication and provides retry logic for establishing
    the connection.
    """

    def __init__(self, settings: Optional[FirebaseSettings] = None):
        self._client = None
        self._settings = settings or get_settings().firebase

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self):
        """
        Establish connection to Firestore.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                try:
                    app = firebase_admin.get_app(APP_NAME)
                except ValueError:
                    cred = credentials.Certificate(self._settings.credentials_path)
                    options = {}
                    if self._settings.project_id:
                        options["projectId"] = self._settings.project_id
                    app = firebase_admin.initialize_app(cred, options, name=APP_NAME)
                self._client = firestore.client(app)
            except FileNotFoundError:
                raise StoreConnectionError(
                    f"Firebase credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Firestore: {e}")

        return self._client


class FirestoreDocumentStore(DocumentStore):
    """
    Firestore implementation of the document store.

    Paths are passed straight to the SDK, so the interface's
    userData/{ownerId}/{collection} layout is the Firestore layout.
    """

    def __init__(self, client: Optional[FirestoreClient] = None):
        self._client = client or FirestoreClient()

    @property
    def _db(self):
        return self._client.connect()

    def watch_collection(
        self,
        collection_path: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> EventSource[list[StoredDocument]]:
        def subscribe(on_next, on_error) -> Unsubscribe:
            query = self._db.collection(collection_path)
            if order_by:
                direction = (
                    firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
                )
                query = query.order_by(order_by, direction=direction)

            def on_snapshot(docs, changes, read_time):
                on_next([StoredDocument(doc.id, doc.to_dict() or {}) for doc in docs])

            try:
                watch = query.on_snapshot(on_snapshot)
            except Exception as e:
                logger.error("collection_watch_failed", path=collection_path, error=str(e))
                if on_error:
                    on_error(translate_error(e))
                return lambda: None

            return watch.unsubscribe

        return CallbackEventSource(subscribe)

    def watch_document(
        self,
        document_path: str,
    ) -> EventSource[Optional[StoredDocument]]:
        def subscribe(on_next, on_error) -> Unsubscribe:
            def on_snapshot(docs, changes, read_time):
                doc = docs[0] if docs else None
                if doc is not None and doc.exists:
                    on_next(StoredDocument(doc.id, doc.to_dict() or {}))
                else:
                    on_next(None)

            try:
                watch = self._db.document(document_path).on_snapshot(on_snapshot)
            except Exception as e:
                logger.error("document_watch_failed", path=document_path, error=str(e))
                if on_error:
                    on_error(translate_error(e))
                return lambda: None

            return watch.unsubscribe

        return CallbackEventSource(subscribe)

    async def get(self, document_path: str) -> Optional[StoredDocument]:
        try:
            doc = self._db.document(document_path).get()
        except Exception as e:
            raise translate_error(e) from e
        if not doc.exists:
            return None
        return StoredDocument(doc.id, doc.to_dict() or {})

    async def list_documents(self, collection_path: str) -> list[StoredDocument]:
        try:
            docs = self._db.collection(collection_path).stream()
            return [StoredDocument(doc.id, doc.to_dict() or {}) for doc in docs]
        except Exception as e:
            raise translate_error(e) from e

    @staticmethod
    def _with_timestamp(data: dict[str, Any], timestamp_field: Optional[str]) -> dict[str, Any]:
        if not timestamp_field:
            return dict(data)
        return {**data, timestamp_field: firestore.SERVER_TIMESTAMP}

    async def set(
        self,
        document_path: str,
        data: dict[str, Any],
        timestamp_field: Optional[str] = None,
    ) -> None:
        try:
            self._db.document(document_path).set(self._with_timestamp(data, timestamp_field))
        except Exception as e:
            raise translate_error(e) from e

    async def add(
        self,
        collection_path: str,
        data: dict[str, Any],
        timestamp_field: Optional[str] = None,
    ) -> str:
        try:
            ref = self._db.collection(collection_path).document()
            ref.set(self._with_timestamp(data, timestamp_field))
            return ref.id
        except Exception as e:
            raise translate_error(e) from e

    async def update(self, document_path: str, fields: dict[str, Any]) -> None:
        try:
            self._db.document(document_path).update(fields)
        except Exception as e:
            raise translate_error(e) from e

    async def delete(self, document_path: str) -> None:
        try:
            self._db.document(document_path).delete()
        except Exception as e:
            raise translate_error(e) from e

    async def batch_create(
        self,
        collection_path: str,
        items: list[dict[str, Any]],
        timestamp_field: Optional[str] = None,
    ) -> list[str]:
        if not items:
            return []

        ids: list[str] = []
        try:
            collection = self._db.collection(collection_path)
            batch = self._db.batch()
            for item in items:
                ref = collection.document()
                batch.set(ref, self._with_timestamp(item, timestamp_field))
                ids.append(ref.id)
            batch.commit()
        except Exception as e:
            logger.error(
                "batch_create_failed",
                path=collection_path,
                requested=len(items),
                error=str(e),
            )
            raise translate_error(e) from e

        return ids
