"""Per-tenant backup: snapshot, upload, record, prune."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from storefront.config.logging import get_logger
from storefront.db.models import gen_uuid, utcnow
from storefront.services.backup.archive import Archive, new_archive_id, object_name, serialize
from storefront.services.backup.collection_spec import DEFAULT_COLLECTIONS, CollectionSpec
from storefront.services.backup.config import BackupConfig
from storefront.services.backup.credentials import CredentialStore, TenantCredential
from storefront.services.backup.document_store import DocumentStore
from storefront.services.backup.errors import ErrorKind, StorageError, StorageNotFoundError
from storefront.services.backup.repository import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    ArchiveEntry,
    ArchiveRepository,
)
from storefront.services.backup.storage import ObjectStorage, create_storage

logger = get_logger("backup")

AUTOMATIC = "automatic"
MANUAL = "manual"

StorageFactory = Callable[[TenantCredential], ObjectStorage]


@dataclass
class BackupResult:
    """Outcome of one create_backup call."""

    tenant_id: str
    success: bool
    archive_id: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    total_records: int = 0
    size_bytes: int = 0
    web_link: str | None = None
    pruned: int = 0

    @property
    def skipped(self) -> bool:
        """Soft skip (no usable credential), not a failure worth alerting on."""
        return self.error_kind == ErrorKind.NOT_CONFIGURED


@dataclass
class BackupStats:
    total_backups: int
    automatic_backups: int
    manual_backups: int
    failed_backups: int
    last_backup_at: datetime | None


class BackupService:
    """Builds one archive per call and keeps at most retention_count per tenant."""

    def __init__(
        self,
        config: BackupConfig,
        *,
        documents: DocumentStore,
        credentials: CredentialStore,
        archives: ArchiveRepository,
        storage_factory: StorageFactory | None = None,
        collections: Iterable[CollectionSpec] = DEFAULT_COLLECTIONS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.documents = documents
        self.credentials = credentials
        self.archives = archives
        self.collections = tuple(collections)
        self._storage_factory = storage_factory
        self._clock = clock
        self._upload_policy = config.upload_retry_policy()

    def open_storage(self, credential: TenantCredential) -> ObjectStorage:
        if self._storage_factory is not None:
            return self._storage_factory(credential)
        return create_storage(self.config, credential, self.credentials)

    def list_tenants(self) -> list[str]:
        """Tenants with a usable storage credential."""
        return [c.tenant_id for c in self.credentials.list_usable()]

    # ── create ──────────────────────────────────────────────────────────

    def snapshot(self, tenant_id: str, archive_id: str, created_at: datetime, backup_type: str = AUTOMATIC) -> Archive:
        """Read every allow-listed collection for the tenant into an Archive.

        Empty collections are kept as empty lists so the archive records
        exactly which collections were covered.
        """
        collections = {}
        for spec in self.collections:
            collections[spec.name] = self.documents.find(spec.name, spec.filter_for(tenant_id))
        return Archive(
            archive_id=archive_id,
            tenant_id=tenant_id,
            created_at=created_at.replace(tzinfo=UTC).isoformat(),
            collections=collections,
            backup_type=backup_type,
        )

    def create_backup(self, tenant_id: str, backup_type: str = AUTOMATIC) -> BackupResult:
        credential = self.credentials.get_usable(tenant_id)
        if credential is None:
            logger.info("Skipping backup: storage not configured or token expired", extra={"tenant_id": tenant_id})
            return BackupResult(tenant_id, False, error="not configured", error_kind=ErrorKind.NOT_CONFIGURED)

        now = self._clock()
        archive_id = new_archive_id(now)
        log_extra = {"tenant_id": tenant_id, "archive_id": archive_id}

        try:
            archive = self.snapshot(tenant_id, archive_id, now, backup_type)
            payload = serialize(archive, compress=self.config.compress, compression_level=self.config.compression_level)
        except (SQLAlchemyError, ValueError, TypeError) as e:
            logger.exception(f"Snapshot failed: {e}", extra=log_extra)
            self._record_failure(tenant_id, archive_id, now, backup_type, f"snapshot failed: {e}")
            return BackupResult(tenant_id, False, archive_id, error=str(e), error_kind=ErrorKind.SNAPSHOT_FAILED)

        name = object_name(self.config.object_prefix, tenant_id, archive_id, compressed=self.config.compress)
        storage = self.open_storage(credential)
        try:
            try:
                stored = self._upload_policy.call(
                    storage.upload, name, payload, self.config.content_type, description=f"Upload {name}"
                )
            except StorageError as e:
                logger.error(f"Upload failed: {e}", extra=log_extra)
                self._record_failure(tenant_id, archive_id, now, backup_type, f"upload failed: {e}")
                return BackupResult(tenant_id, False, archive_id, error=str(e), error_kind=ErrorKind.UPLOAD_FAILED)

            entry = ArchiveEntry(
                id=gen_uuid(),
                tenant_id=tenant_id,
                archive_id=archive_id,
                created_at=now,
                status=STATUS_COMPLETED,
                backup_type=backup_type,
                storage_object_name=stored.name or name,
                storage_object_id=stored.id,
                total_record_count=archive.total_record_count,
                collection_names=archive.collection_names,
                size_bytes=len(payload),
                web_link=stored.web_link,
            )
            try:
                self.archives.add(entry)
            except SQLAlchemyError as e:
                logger.exception(f"Failed to record archive metadata: {e}", extra=log_extra)
                self._discard_blob(storage, stored.id, log_extra)
                return BackupResult(tenant_id, False, archive_id, error=str(e), error_kind=ErrorKind.METADATA_FAILED)

            logger.info(
                f"{backup_type.capitalize()} backup created: {archive.total_record_count} records "
                f"in {len(archive.collections)} collections ({len(payload)} bytes)",
                extra=log_extra,
            )
            try:
                pruned = self.enforce_retention(tenant_id, storage=storage)
            except SQLAlchemyError as e:
                logger.warning(f"Retention skipped, will retry next backup: {e}", extra=log_extra)
                pruned = 0
        finally:
            storage.close()

        return BackupResult(
            tenant_id,
            True,
            archive_id,
            total_records=archive.total_record_count,
            size_bytes=len(payload),
            web_link=stored.web_link,
            pruned=pruned,
        )

    def _record_failure(
        self, tenant_id: str, archive_id: str, created_at: datetime, backup_type: str, message: str
    ) -> None:
        """Write a failed metadata row for observability; never fatal."""
        try:
            self.archives.add(
                ArchiveEntry(
                    id=gen_uuid(),
                    tenant_id=tenant_id,
                    archive_id=archive_id,
                    created_at=created_at,
                    status=STATUS_FAILED,
                    backup_type=backup_type,
                    error_message=message[:2000],
                )
            )
        except SQLAlchemyError as e:
            logger.warning(f"Failed to store failed-backup metadata: {e}", extra={"tenant_id": tenant_id})

    @staticmethod
    def _discard_blob(storage: ObjectStorage, object_id: str, log_extra: dict) -> None:
        try:
            storage.delete(object_id)
        except StorageError as e:
            logger.warning(f"Could not remove unrecorded upload {object_id}: {e}", extra=log_extra)

    # ── retention ───────────────────────────────────────────────────────

    def enforce_retention(self, tenant_id: str, storage: ObjectStorage | None = None) -> int:
        """Delete completed archives beyond the newest retention_count.

        Storage blob first, metadata row second. Errors on one archive are
        logged and the rest are still processed. Returns the number pruned.
        """
        stale = self.archives.list_archives(tenant_id)[self.config.retention_count :]
        if not stale:
            return 0

        owns_storage = storage is None
        if storage is None:
            credential = self.credentials.get_usable(tenant_id)
            if credential is None:
                logger.warning("Retention skipped: storage not configured", extra={"tenant_id": tenant_id})
                return 0
            storage = self.open_storage(credential)

        pruned = 0
        try:
            for entry in stale:
                log_extra = {"tenant_id": tenant_id, "archive_id": entry.archive_id}
                try:
                    self._delete_blob(storage, entry)
                except StorageError as e:
                    logger.warning(f"Failed to delete old archive from storage: {e}", extra=log_extra)
                    continue
                try:
                    self.archives.delete(entry.id)
                except SQLAlchemyError as e:
                    logger.warning(f"Failed to delete old archive metadata: {e}", extra=log_extra)
                    continue
                pruned += 1
                logger.info("Deleted old backup", extra=log_extra)
        finally:
            if owns_storage:
                storage.close()
        return pruned

    @staticmethod
    def _delete_blob(storage: ObjectStorage, entry: ArchiveEntry) -> None:
        """Delete the archive's blob; an already missing blob counts as deleted."""
        if entry.storage_object_id:
            object_ids = [entry.storage_object_id]
        elif entry.storage_object_name:
            object_ids = [obj.id for obj in storage.find(entry.storage_object_name)]
        else:
            object_ids = []

        for object_id in object_ids:
            try:
                storage.delete(object_id)
            except StorageNotFoundError:
                logger.debug(f"Blob {object_id} already gone")

    # ── management ──────────────────────────────────────────────────────

    def list_archives(self, tenant_id: str, include_failed: bool = False) -> list[ArchiveEntry]:
        return self.archives.list_archives(tenant_id, include_failed=include_failed)

    def get_archive(self, tenant_id: str, archive_id: str) -> ArchiveEntry | None:
        return self.archives.get(tenant_id, archive_id)

    def delete_archive(self, tenant_id: str, archive_id: str) -> bool:
        """Delete one archive (any status). Storage deletion is best effort.

        Returns False when no such archive exists.
        """
        entry = self.archives.get(tenant_id, archive_id)
        if entry is None:
            return False

        log_extra = {"tenant_id": tenant_id, "archive_id": archive_id}
        if entry.status == STATUS_COMPLETED:
            credential = self.credentials.get_usable(tenant_id)
            if credential is None:
                logger.warning("Storage not configured, removing metadata only", extra=log_extra)
            else:
                storage = self.open_storage(credential)
                try:
                    self._delete_blob(storage, entry)
                except StorageError as e:
                    logger.warning(f"Failed to delete archive from storage: {e}", extra=log_extra)
                finally:
                    storage.close()

        self.archives.delete(entry.id)
        logger.info("Backup deleted", extra=log_extra)
        return True

    def get_stats(self, tenant_id: str) -> BackupStats:
        counts = self.archives.count_by_status(tenant_id)
        automatic = counts.get(f"{STATUS_COMPLETED}:{AUTOMATIC}", 0)
        manual = counts.get(f"{STATUS_COMPLETED}:{MANUAL}", 0)
        failed = sum(v for k, v in counts.items() if k.startswith(f"{STATUS_FAILED}:"))
        return BackupStats(
            total_backups=automatic + manual,
            automatic_backups=automatic,
            manual_backups=manual,
            failed_backups=failed,
            last_backup_at=self.archives.last_backup_time(tenant_id),
        )
