"""
Backup Import and Restore

DESIGN DECISION: Import is all-or-nothing at the parsing stage.
The whole file is parsed and every record validated before the first
write. A malformed file raises ImportFormatError and nothing is written.

Restore is ADDITIVE:
1. Categories, then members, then transactions, each as a batch create
2. Transactions are re-pointed at the ids the new categories and members
   received, so they keep their category and member names
3. Nothing existing is deleted or overwritten

Older backups have no members array; it defaults to empty.
"""

import json
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from family_tracker.audit import AuditLogger, create_correlation_id
from family_tracker.models.audit import AuditEventBuilder
from family_tracker.models.records import (
    Category,
    FamilyMember,
    LedgerSnapshot,
    StoredRecord,
    Transaction,
)
from family_tracker.services.storage.interface import StorageError
from family_tracker.sync.collection import LedgerSynchronizers, NotAuthenticatedError


INVALID_FORMAT_MESSAGE = (
    'Invalid JSON format. Make sure it contains "transactions" and "categories" keys.'
)
PARSE_FAILED_MESSAGE = "Error parsing JSON file."

REQUIRED_KEYS = ("transactions", "categories")

# Server-managed fields that may appear in exported documents
_SERVER_FIELDS = ("createdAt", "created_at")


class ImportFormatError(Exception):
    """The uploaded backup is malformed or incomplete."""
    pass


class BackupBundle(BaseModel):
    """A parsed, validated backup file."""
    transactions: list[Transaction] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    members: list[FamilyMember] = Field(default_factory=list)
    timestamp: Optional[str] = None

    def as_snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            transactions=self.transactions,
            categories=self.categories,
            members=self.members,
        )


class RestoreReport(BaseModel):
    """What a restore created."""
    categories: int = 0
    members: int = 0
    transactions: int = 0
    correlation_id: Optional[UUID] = None

    @property
    def total(self) -> int:
        return self.categories + self.members + self.transactions

    def counts(self) -> dict[str, int]:
        return {
            "categories": self.categories,
            "members": self.members,
            "transactions": self.transactions,
        }


def _strip_server_fields(records: list[Any]) -> list[Any]:
    cleaned = []
    for record in records:
        if isinstance(record, dict):
            record = {k: v for k, v in record.items() if k not in _SERVER_FIELDS}
        cleaned.append(record)
    return cleaned


def parse_backup(text: str) -> BackupBundle:
    """
    Parse and validate a JSON backup.

    Raises:
        ImportFormatError: If the text is not JSON, lacks the transactions
            or categories arrays, or holds a record that fails validation
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ImportFormatError(PARSE_FAILED_MESSAGE) from e

    if not isinstance(data, dict) or any(key not in data for key in REQUIRED_KEYS):
        raise ImportFormatError(INVALID_FORMAT_MESSAGE)

    members = data.get("members") or []
    for key, value in (
        ("transactions", data["transactions"]),
        ("categories", data["categories"]),
        ("members", members),
    ):
        if not isinstance(value, list):
            raise ImportFormatError(f"Invalid JSON format: '{key}' must be a list.")

    timestamp = data.get("timestamp")
    try:
        return BackupBundle(
            transactions=_strip_server_fields(data["transactions"]),
            categories=_strip_server_fields(data["categories"]),
            members=_strip_server_fields(members),
            timestamp=str(timestamp) if timestamp is not None else None,
        )
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ImportFormatError(
            f"Invalid record in backup at {location}: {first['msg']}"
        ) from e


def _without_identity(record: StoredRecord, **changes: Any) -> StoredRecord:
    return record.model_copy(update={"id": None, "created_at": None, **changes})


async def restore_backup(
    bundle: BackupBundle,
    synchronizers: LedgerSynchronizers,
    audit_logger: Optional[AuditLogger] = None,
    correlation_id: Optional[UUID] = None,
) -> RestoreReport:
    """
    Add every record of the bundle to the signed-in user's ledger.

    Raises:
        NotAuthenticatedError: If no user is bound
        StorageError: If a batch fails; earlier batches stay committed
    """
    audit = audit_logger or AuditLogger()
    correlation_id = correlation_id or create_correlation_id()
    owner_id = synchronizers.owner_id
    if owner_id is None:
        raise NotAuthenticatedError("Cannot restore a backup: no user is signed in")

    report = RestoreReport(correlation_id=correlation_id)
    try:
        category_ids = await synchronizers.categories.create_batch(
            [_without_identity(c) for c in bundle.categories]
        )
        category_map = {
            old.id: new_id
            for old, new_id in zip(bundle.categories, category_ids)
            if old.id
        }
        report.categories = len(category_ids)

        member_ids = await synchronizers.members.create_batch(
            [_without_identity(m) for m in bundle.members]
        )
        member_map = {
            old.id: new_id
            for old, new_id in zip(bundle.members, member_ids)
            if old.id
        }
        report.members = len(member_ids)

        transactions = [
            _without_identity(
                t,
                category_id=category_map.get(t.category_id, t.category_id),
                member_id=member_map.get(t.member_id, t.member_id) if t.member_id else None,
            )
            for t in bundle.transactions
        ]
        transaction_ids = await synchronizers.transactions.create_batch(transactions)
        report.transactions = len(transaction_ids)
    except StorageError as e:
        audit.log(AuditEventBuilder.restore_failed(owner_id, str(e), correlation_id))
        raise

    for entity_type, count in report.counts().items():
        if count:
            audit.log(AuditEventBuilder.records_batch_created(
                owner_id, entity_type, count, correlation_id
            ))
    audit.log(AuditEventBuilder.restore_completed(owner_id, report.counts(), correlation_id))
    return report
