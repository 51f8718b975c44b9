"""Exceptions and error kinds for the backup subsystem."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Error kinds reported on backup/restore results."""

    NOT_CONFIGURED = "not_configured"
    SNAPSHOT_FAILED = "snapshot_failed"
    UPLOAD_FAILED = "upload_failed"
    METADATA_FAILED = "metadata_failed"
    LEASE_HELD = "lease_held"
    UNEXPECTED = "unexpected"

    ARCHIVE_NOT_FOUND = "archive_not_found"
    ARCHIVE_FILE_MISSING = "archive_file_missing"
    CORRUPT_ARCHIVE = "corrupt_archive"
    STORAGE_ERROR = "storage_error"
    SAFETY_BACKUP_FAILED = "safety_backup_failed"
    PARTIAL_RESTORE = "partial_restore"
    RESTORE_FAILED = "restore_failed"


class BackupError(Exception):
    """Base class for backup subsystem errors."""


class StorageError(BackupError):
    """An object storage operation failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientStorageError(StorageError):
    """Network failure, rate limit or provider-side error; safe to retry."""


class StorageAuthError(StorageError):
    """The provider rejected the credential (after any refresh attempt)."""


class StorageNotFoundError(StorageError):
    """The requested object does not exist."""


class CorruptArchiveError(BackupError):
    """Archive bytes could not be parsed into a valid archive."""
