"""Replace a tenant's live data with the contents of one archive.

Order matters: look up metadata, locate the blob, download, parse and
validate, and only then touch any collection. Each collection is replaced
in its own transaction; there is no rollback across collections.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from sqlalchemy.exc import SQLAlchemyError

from storefront.config.logging import get_logger
from storefront.services.backup.archive import Archive, parse
from storefront.services.backup.collection_spec import DEFAULT_COLLECTIONS, CollectionSpec, index_collections
from storefront.services.backup.config import BackupConfig
from storefront.services.backup.credentials import CredentialStore, TenantCredential
from storefront.services.backup.document_store import DocumentStore
from storefront.services.backup.errors import (
    CorruptArchiveError,
    ErrorKind,
    StorageError,
    StorageNotFoundError,
)
from storefront.services.backup.repository import ArchiveEntry, ArchiveRepository
from storefront.services.backup.storage import ObjectStorage, StoredObject, create_storage

if TYPE_CHECKING:
    from storefront.services.backup.service import BackupService, StorageFactory

logger = get_logger("backup.restore")

RESTORE_COMPLETED = "completed"
RESTORE_PARTIAL = "partial"
RESTORE_FAILED = "failed"


@dataclass
class RestoreResult:
    tenant_id: str
    archive_id: str
    success: bool
    restored_record_count: int = 0
    restored_collections: list[str] = field(default_factory=list)
    failed_collections: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def partial(self) -> bool:
        return bool(self.restored_collections) and bool(self.failed_collections)


class RestoreService:
    def __init__(
        self,
        config: BackupConfig,
        *,
        documents: DocumentStore,
        credentials: CredentialStore,
        archives: ArchiveRepository,
        storage_factory: StorageFactory | None = None,
        collections: Iterable[CollectionSpec] = DEFAULT_COLLECTIONS,
        backup_service: BackupService | None = None,
    ) -> None:
        self.config = config
        self.documents = documents
        self.credentials = credentials
        self.archives = archives
        self.collections = index_collections(collections)
        self._storage_factory = storage_factory
        self._backup_service = backup_service

    def _open_storage(self, credential: TenantCredential) -> ObjectStorage:
        if self._storage_factory is not None:
            return self._storage_factory(credential)
        return create_storage(self.config, credential, self.credentials)

    def _fail(self, tenant_id: str, archive_id: str, kind: ErrorKind, message: str) -> RestoreResult:
        logger.error(f"Restore failed: {message}", extra={"tenant_id": tenant_id, "archive_id": archive_id})
        self._log(tenant_id, archive_id, RESTORE_FAILED, error_message=message)
        return RestoreResult(tenant_id, archive_id, False, error=message, error_kind=kind)

    def _log(self, tenant_id: str, archive_id: str, status: str, **kwargs) -> None:
        try:
            self.archives.log_restore(tenant_id, archive_id, status, **kwargs)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to write restore log: {e}", extra={"tenant_id": tenant_id})

    @staticmethod
    def _pick(matches: list[StoredObject], entry: ArchiveEntry) -> StoredObject:
        for obj in matches:
            if obj.id == entry.storage_object_id:
                return obj
        return matches[0]

    def _validate(self, archive: Archive, tenant_id: str, archive_id: str) -> None:
        """Reject archives that belong to another tenant or archive id."""
        if archive.archive_id != archive_id:
            raise CorruptArchiveError(f"Archive id mismatch: blob holds {archive.archive_id}")
        if archive.tenant_id and archive.tenant_id != tenant_id:
            raise CorruptArchiveError("Archive belongs to a different tenant")
        for name, records in archive.collections.items():
            spec = self.collections.get(name)
            if spec is None:
                continue
            if not all(spec.owns(record, tenant_id) for record in records):
                raise CorruptArchiveError(f"Collection {name!r} contains records of another tenant")

    def fetch(self, tenant_id: str, archive_id: str) -> tuple[Archive | None, RestoreResult | None]:
        """Locate, download and parse an archive without mutating anything."""
        entry = self.archives.get_completed(tenant_id, archive_id)
        if entry is None:
            return None, self._fail(tenant_id, archive_id, ErrorKind.ARCHIVE_NOT_FOUND, "archive not found")

        credential = self.credentials.get_usable(tenant_id)
        if credential is None:
            return None, self._fail(tenant_id, archive_id, ErrorKind.NOT_CONFIGURED, "not configured")

        storage = self._open_storage(credential)
        try:
            matches = storage.find(entry.storage_object_name) if entry.storage_object_name else []
            if not matches:
                return None, self._fail(tenant_id, archive_id, ErrorKind.ARCHIVE_FILE_MISSING, "archive file missing")
            data = storage.download(self._pick(matches, entry).id)
        except StorageNotFoundError:
            return None, self._fail(tenant_id, archive_id, ErrorKind.ARCHIVE_FILE_MISSING, "archive file missing")
        except StorageError as e:
            return None, self._fail(tenant_id, archive_id, ErrorKind.STORAGE_ERROR, f"storage error: {e}")
        finally:
            storage.close()

        try:
            archive = parse(data)
            self._validate(archive, tenant_id, archive_id)
        except CorruptArchiveError as e:
            logger.error(f"Corrupt archive: {e}", extra={"tenant_id": tenant_id, "archive_id": archive_id})
            return None, self._fail(tenant_id, archive_id, ErrorKind.CORRUPT_ARCHIVE, "corrupt archive")
        return archive, None

    def restore(self, tenant_id: str, archive_id: str) -> RestoreResult:
        log_extra = {"tenant_id": tenant_id, "archive_id": archive_id}
        archive, failure = self.fetch(tenant_id, archive_id)
        if failure is not None:
            return failure

        if self.config.safety_backup_before_restore and self._backup_service is not None:
            safety = self._backup_service.create_backup(tenant_id, backup_type="manual")
            if not safety.success:
                return self._fail(
                    tenant_id, archive_id, ErrorKind.SAFETY_BACKUP_FAILED, f"safety backup failed: {safety.error}"
                )
            logger.info(f"Safety backup {safety.archive_id} taken before restore", extra=log_extra)

        result = RestoreResult(tenant_id, archive_id, True)
        for name, records in archive.collections.items():
            spec = self.collections.get(name)
            if spec is None:
                logger.warning(f"Ignoring collection {name!r}: not in backup allow-list", extra=log_extra)
                continue
            try:
                deleted = self.documents.replace(name, spec.filter_for(tenant_id), records)
            except (SQLAlchemyError, ValueError) as e:
                logger.exception(f"Failed to restore collection {name}: {e}", extra=log_extra)
                result.failed_collections[name] = str(e)
                continue
            result.restored_collections.append(name)
            result.restored_record_count += len(records)
            logger.info(f"[{name}] cleared {deleted}, restored {len(records)} record(s)", extra=log_extra)

        if result.failed_collections:
            result.success = False
            if result.restored_collections:
                result.error_kind = ErrorKind.PARTIAL_RESTORE
                result.error = (
                    f"restored {len(result.restored_collections)} of "
                    f"{len(result.restored_collections) + len(result.failed_collections)} collections"
                )
                status = RESTORE_PARTIAL
            else:
                result.error_kind = ErrorKind.RESTORE_FAILED
                result.error = "no collections restored"
                status = RESTORE_FAILED
        else:
            status = RESTORE_COMPLETED

        self._log(
            tenant_id,
            archive_id,
            status,
            restored_record_count=result.restored_record_count,
            restored_collections=result.restored_collections,
            error_message=result.error,
        )
        if result.success:
            logger.info(
                f"Restore completed: {result.restored_record_count} records "
                f"in {len(result.restored_collections)} collections",
                extra=log_extra,
            )
        else:
            logger.error(f"Restore incomplete: {result.error}", extra=log_extra)
        return result
