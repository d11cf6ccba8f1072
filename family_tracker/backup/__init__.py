"""Backup export, import and restore."""

from family_tracker.backup.export import (
    CSV_FILENAME,
    CSV_HEADER,
    CSV_MIME_TYPE,
    JSON_MIME_TYPE,
    ExportFile,
    export_csv,
    export_json,
    json_filename,
    quote_csv_text,
)
from family_tracker.backup.restore import (
    INVALID_FORMAT_MESSAGE,
    PARSE_FAILED_MESSAGE,
    BackupBundle,
    ImportFormatError,
    RestoreReport,
    parse_backup,
    restore_backup,
)

__all__ = [
    "CSV_FILENAME",
    "CSV_HEADER",
    "CSV_MIME_TYPE",
    "JSON_MIME_TYPE",
    "ExportFile",
    "export_csv",
    "export_json",
    "json_filename",
    "quote_csv_text",
    "INVALID_FORMAT_MESSAGE",
    "PARSE_FAILED_MESSAGE",
    "BackupBundle",
    "ImportFormatError",
    "RestoreReport",
    "parse_backup",
    "restore_backup",
]
