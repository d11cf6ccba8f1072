"""
Backup export.

JSON backups hold the three collections plus an export timestamp and can
be restored later. CSV exports are a flat table of transactions for
spreadsheets and cannot be imported.
"""

import json
from datetime import datetime, timezone
from typing import Any, NamedTuple, Optional

from family_tracker.models.records import (
    HOME_BALANCE,
    UNCATEGORIZED,
    LedgerSnapshot,
    StoredRecord,
)


JSON_MIME_TYPE = "text/json"
CSV_MIME_TYPE = "text/csv"
CSV_FILENAME = "expenses.csv"

CSV_HEADER = "Date,Type,Description,Category,Member,Amount"


class ExportFile(NamedTuple):
    """A ready-to-download export."""
    filename: str
    mime_type: str
    content: str


def _record_dict(record: StoredRecord) -> dict[str, Any]:
    data = record.model_dump(mode="json", by_alias=True, exclude={"created_at"})
    if data.get("id") is None:
        data.pop("id", None)
    return data


def _iso_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def json_filename(exported_at: datetime) -> str:
    return f"expense_tracker_backup_{exported_at.date().isoformat()}.json"


def export_json(snapshot: LedgerSnapshot, exported_at: Optional[datetime] = None) -> ExportFile:
    """Serialize the whole ledger to an indented JSON backup."""
    exported_at = exported_at or datetime.now(timezone.utc)
    document = {
        "transactions": [_record_dict(t) for t in snapshot.transactions],
        "categories": [_record_dict(c) for c in snapshot.categories],
        "members": [_record_dict(m) for m in snapshot.members],
        "timestamp": _iso_timestamp(exported_at),
    }
    return ExportFile(
        filename=json_filename(exported_at),
        mime_type=JSON_MIME_TYPE,
        content=json.dumps(document, indent=2, ensure_ascii=False),
    )


def quote_csv_text(value: str) -> str:
    """Wrap in double quotes, doubling any quote inside."""
    return '"' + (value or "").replace('"', '""') + '"'


def _csv_name(value: str) -> str:
    # Names are written bare unless they would break the row
    if any(ch in value for ch in (",", '"', "\n", "\r")):
        return quote_csv_text(value)
    return value


def export_csv(snapshot: LedgerSnapshot) -> ExportFile:
    """
    Flatten transactions into a CSV table.

    Categories and members are written by name. A missing category becomes
    Uncategorized and an unattributed transaction becomes Home Balance.
    """
    category_names = snapshot.category_names()
    member_names = snapshot.member_names()

    lines = [CSV_HEADER + "\n"]
    for t in snapshot.transactions:
        category = category_names.get(t.category_id) or UNCATEGORIZED
        member = member_names.get(t.member_id) if t.member_id else None
        row = ",".join([
            t.date.isoformat(),
            t.type.value,
            quote_csv_text(t.description),
            _csv_name(category),
            _csv_name(member or HOME_BALANCE),
            f"{t.amount:.2f}",
        ])
        lines.append(row + "\r\n")

    return ExportFile(
        filename=CSV_FILENAME,
        mime_type=CSV_MIME_TYPE,
        content="".join(lines),
    )
