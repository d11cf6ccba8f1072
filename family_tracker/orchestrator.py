"""
Main Orchestrator for the Family Expense Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Ledger edits (form → validate → write → audit)
2. First-run setup (seed default categories or migrate local data)
3. Backup (export, parse, restore)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written before validation passes
- Categories and members in use by a transaction are never deleted
- Every write is audited

This is the "glue" between the Streamlit pages and the synchronizers.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from family_tracker.access import UserStatusWatcher
from family_tracker.admin import AdminService
from family_tracker.agents import FinancialAssistant
from family_tracker.audit import AuditLogger, create_correlation_id
from family_tracker.backup import (
    BackupBundle,
    ExportFile,
    RestoreReport,
    export_csv,
    export_json,
    restore_backup,
)
from family_tracker.config import (
    JsonFileKeyValueStore,
    KeyValueStore,
    PreferencesStore,
    get_settings,
)
from family_tracker.models.audit import AuditEventBuilder
from family_tracker.models.records import (
    DEFAULT_CATEGORIES,
    Category,
    LedgerSnapshot,
    Transaction,
    icon_for_name,
)
from family_tracker.services.auth import (
    AuthSession,
    FirebaseIdentityProvider,
    IdentityProvider,
    InMemoryIdentityProvider,
)
from family_tracker.services.storage import (
    DocumentStore,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
)
from family_tracker.sync import LedgerSynchronizers, NotAuthenticatedError
from family_tracker.validation import (
    LedgerValidator,
    ValidationError,
    ValidationIssue,
    count_references,
)


# Keys written by the local-only version of the app
LEGACY_TRANSACTIONS_KEY = "transactions"
LEGACY_CATEGORIES_KEY = "categories"

_TRANSACTION_FIELDS = ("type", "amount", "category_id", "date", "description", "member_id")


class LedgerService:
    """
    Orchestrates edits to the signed-in user's ledger.

    Forms hand raw values in; the service validates them against the
    current snapshot, writes through the synchronizers and audits.
    """

    def __init__(
        self,
        synchronizers: LedgerSynchronizers,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._sync = synchronizers
        self._validator = validator or LedgerValidator()
        self._audit = audit_logger or AuditLogger()
        self._seeded_owner: Optional[str] = None

    @property
    def synchronizers(self) -> LedgerSynchronizers:
        return self._sync

    def _uid(self) -> str:
        owner_id = self._sync.owner_id
        if owner_id is None:
            raise NotAuthenticatedError("No user is signed in")
        return owner_id

    def snapshot(self) -> LedgerSnapshot:
        return self._sync.snapshot()

    def _validated(self, entity_type: str, validate: Callable[[], Any]) -> Any:
        try:
            return validate()
        except ValidationError as e:
            self._audit.log(AuditEventBuilder.validation_failed(
                self._sync.owner_id,
                entity_type,
                [issue.model_dump() for issue in e.issues],
            ))
            raise

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _validate_transaction(self, form: dict[str, Any]) -> Transaction:
        return self._validated("transaction", lambda: self._validator.validate_transaction(
            categories=self._sync.categories.items,
            members=self._sync.members.items,
            **form,
        ))

    async def add_transaction(self, **form: Any) -> str:
        """
        Validate and create a transaction.

        Raises:
            ValidationError: If the form is invalid; nothing is written
        """
        uid = self._uid()
        transaction = self._validate_transaction(form)
        transaction_id = await self._sync.transactions.create(transaction)
        self._audit.log_record_created(uid, "transaction", transaction_id)
        return transaction_id

    async def update_transaction(self, transaction_id: str, **form: Any) -> None:
        uid = self._uid()
        transaction = self._validate_transaction(form)
        fields = {name: getattr(transaction, name) for name in _TRANSACTION_FIELDS}
        await self._sync.transactions.update(transaction_id, fields)
        self._audit.log_record_updated(uid, "transaction", transaction_id, list(fields))

    async def delete_transaction(self, transaction_id: str) -> None:
        uid = self._uid()
        await self._sync.transactions.delete(transaction_id)
        self._audit.log_record_deleted(uid, "transaction", transaction_id)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def add_category(self, **form: Any) -> str:
        uid = self._uid()
        category = self._validated("category", lambda: self._validator.validate_category(**form))
        category_id = await self._sync.categories.create(category)
        self._audit.log_record_created(uid, "category", category_id)
        return category_id

    async def update_category(self, category_id: str, **form: Any) -> None:
        uid = self._uid()
        category = self._validated("category", lambda: self._validator.validate_category(**form))
        fields = {
            "name": category.name,
            "type": category.type,
            "color": category.color,
            "icon": category.icon,
        }
        await self._sync.categories.update(category_id, fields)
        self._audit.log_record_updated(uid, "category", category_id, list(fields))

    async def delete_category(self, category_id: str) -> None:
        """
        Delete a category nobody uses.

        Raises:
            ValidationError: If any transaction still uses it
        """
        uid = self._uid()
        transactions = self._sync.transactions.items
        try:
            self._validator.check_category_delete(category_id, transactions)
        except ValidationError:
            self._audit.log_delete_blocked(
                uid,
                "category",
                category_id,
                count_references(transactions, category_id=category_id),
            )
            raise
        await self._sync.categories.delete(category_id)
        self._audit.log_record_deleted(uid, "category", category_id)

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def add_member(self, name: str) -> str:
        uid = self._uid()
        member = self._validated("member", lambda: self._validator.validate_member(name=name))
        member_id = await self._sync.members.create(member)
        self._audit.log_record_created(uid, "member", member_id)
        return member_id

    async def update_member(self, member_id: str, name: str) -> None:
        uid = self._uid()
        member = self._validated("member", lambda: self._validator.validate_member(name=name))
        await self._sync.members.update(member_id, {"name": member.name})
        self._audit.log_record_updated(uid, "member", member_id, ["name"])

    async def delete_member(self, member_id: str) -> None:
        """
        Delete a member no transaction is attributed to.

        Raises:
            ValidationError: If any transaction is attributed to the member
        """
        uid = self._uid()
        transactions = self._sync.transactions.items
        try:
            self._validator.check_member_delete(member_id, transactions)
        except ValidationError:
            self._audit.log_delete_blocked(
                uid,
                "member",
                member_id,
                count_references(transactions, member_id=member_id),
            )
            raise
        await self._sync.members.delete(member_id)
        self._audit.log_record_deleted(uid, "member", member_id)

    # ------------------------------------------------------------------
    # First run
    # ------------------------------------------------------------------

    @staticmethod
    def has_legacy_data(kv: Optional[KeyValueStore]) -> bool:
        """True when the local store holds data from the local-only app."""
        if kv is None:
            return False
        return bool(kv.get(LEGACY_TRANSACTIONS_KEY)) and bool(kv.get(LEGACY_CATEGORIES_KEY))

    async def seed_default_categories(self, kv: Optional[KeyValueStore] = None) -> int:
        """
        Give a new account the default categories.

        Only runs once the categories snapshot has loaded empty, no legacy
        local data is waiting to be migrated, and this owner has not been
        seeded in this session.

        Returns:
            Number of categories created
        """
        uid = self._uid()
        categories = self._sync.categories
        if categories.loading or categories.error or categories.items:
            return 0
        if self._seeded_owner == uid or self.has_legacy_data(kv):
            return 0

        self._seeded_owner = uid
        defaults = [c.model_copy() for c in DEFAULT_CATEGORIES]
        ids = await categories.create_batch(defaults)
        self._audit.log(AuditEventBuilder.records_batch_created(uid, "categories", len(ids)))
        return len(ids)

    async def migrate_legacy_data(self, kv: KeyValueStore) -> dict[str, int]:
        """
        Import transactions and categories from the local-only app.

        Category icons are derived from the category names. The local copies
        are removed only after both batches were written.

        Raises:
            ValidationError: If the local data cannot be read as records
        """
        uid = self._uid()
        raw_categories = kv.get(LEGACY_CATEGORIES_KEY) or []
        raw_transactions = kv.get(LEGACY_TRANSACTIONS_KEY) or []

        try:
            categories = [Category.model_validate(c) for c in raw_categories]
            categories = [
                c.model_copy(update={"icon": icon_for_name(c.name)}) for c in categories
            ]
            transactions = [Transaction.model_validate(t) for t in raw_transactions]
        except PydanticValidationError as e:
            raise ValidationError([self._legacy_issue(str(e))]) from e

        category_ids = await self._sync.categories.create_batch(
            [c.model_copy(update={"id": None}) for c in categories]
        )
        id_map = {old.id: new for old, new in zip(categories, category_ids) if old.id}
        transaction_ids = await self._sync.transactions.create_batch([
            t.model_copy(update={
                "id": None,
                "category_id": id_map.get(t.category_id, t.category_id),
            })
            for t in transactions
        ])

        kv.delete(LEGACY_TRANSACTIONS_KEY)
        kv.delete(LEGACY_CATEGORIES_KEY)

        counts = {"categories": len(category_ids), "transactions": len(transaction_ids)}
        self._audit.log(AuditEventBuilder.legacy_data_migrated(uid, counts))
        return counts

    @staticmethod
    def _legacy_issue(message: str) -> ValidationIssue:
        return ValidationIssue(
            field="legacy_data",
            issue_type="invalid_format",
            message=f"Local data could not be read: {message}",
        )

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def build_export(self, fmt: str, exported_at: Optional[datetime] = None) -> ExportFile:
        """Render the current snapshot as "json" or "csv" without auditing."""
        snapshot = self.snapshot()
        if fmt == "json":
            return export_json(snapshot, exported_at or datetime.now(timezone.utc))
        if fmt == "csv":
            return export_csv(snapshot)
        raise ValueError(f"Unknown export format: {fmt}")

    def record_export(self, fmt: str) -> None:
        """Audit a download of the current snapshot."""
        count = len(self.snapshot().transactions)
        self._audit.log(AuditEventBuilder.backup_exported(self._uid(), fmt, count))

    def export(self, fmt: str, exported_at: Optional[datetime] = None) -> ExportFile:
        """Export the current snapshot as "json" or "csv"."""
        export = self.build_export(fmt, exported_at)
        self.record_export(fmt)
        return export

    async def restore(self, bundle: BackupBundle) -> RestoreReport:
        """Add a parsed backup to the ledger."""
        return await restore_backup(
            bundle,
            self._sync,
            audit_logger=self._audit,
            correlation_id=create_correlation_id(),
        )


class AppComponents:
    """Everything one Streamlit session needs, wired together."""

    def __init__(
        self,
        store: DocumentStore,
        identity_provider: IdentityProvider,
        preferences: PreferencesStore,
        audit_logger: AuditLogger,
        admin_uid: Optional[str] = None,
        admin_email: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.audit_logger = audit_logger
        self.preferences = preferences
        self.admin_uid = admin_uid
        self.admin_email = admin_email
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.session = AuthSession(identity_provider, store, audit_logger)
        self.watcher = UserStatusWatcher(
            self.session.identity_changes(),
            store,
            admin_uid=admin_uid,
            admin_email=admin_email,
            clock=self.clock,
            audit_logger=audit_logger,
        ).start()
        self.synchronizers = LedgerSynchronizers(store)
        self.ledger = LedgerService(self.synchronizers, audit_logger=audit_logger)
        self._assistant: Optional[FinancialAssistant] = None

    def admin_service(self) -> AdminService:
        identity = self.session.identity
        return AdminService(
            self.store,
            admin_uid=identity.uid if identity else self.admin_uid,
            audit_logger=self.audit_logger,
            clock=self.clock,
        )

    def assistant(self) -> FinancialAssistant:
        """Created on first use; needs GEMINI_API_KEY."""
        if self._assistant is None:
            self._assistant = FinancialAssistant(audit_logger=self.audit_logger)
        return self._assistant

    def sync_owner(self) -> None:
        """Bind the ledger to the current user while they have access."""
        identity = self.session.identity
        if identity is not None and self.watcher.state.has_access:
            self.synchronizers.bind(identity.uid)
        else:
            self.synchronizers.bind(None)

    def close(self) -> None:
        self.synchronizers.close()
        self.watcher.close()


def create_backend(
    use_firestore: Optional[bool] = None,
) -> tuple[DocumentStore, IdentityProvider]:
    """
    Create the document store and identity provider.

    Args:
        use_firestore: Force the backend. By default APP settings decide;
                      the memory backend needs no Firebase configuration.

    Returns:
        (store, identity_provider), shared by every session
    """
    if use_firestore is None:
        use_firestore = not get_settings().app.uses_memory_store

    if use_firestore:
        return FirestoreDocumentStore(), FirebaseIdentityProvider()
    return InMemoryDocumentStore(), InMemoryIdentityProvider()


def create_app_components(
    store: Optional[DocumentStore] = None,
    identity_provider: Optional[IdentityProvider] = None,
) -> AppComponents:
    """
    Factory function to create the components of one session.

    Args:
        store: Shared document store (created from settings if None)
        identity_provider: Shared identity provider (created if None)

    Returns:
        AppComponents bound to no user yet
    """
    if store is None or identity_provider is None:
        default_store, default_provider = create_backend()
        store = store or default_store
        identity_provider = identity_provider or default_provider

    settings = get_settings()
    return AppComponents(
        store=store,
        identity_provider=identity_provider,
        preferences=PreferencesStore(JsonFileKeyValueStore(settings.app.preferences_path)),
        audit_logger=AuditLogger(),
        admin_uid=settings.access.admin_uid,
        admin_email=settings.access.admin_email,
    )
