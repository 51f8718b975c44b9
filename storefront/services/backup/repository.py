"""Persistence for archive metadata and the restore audit log."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.db.models import ArchiveMetadata, RestoreLogEntry, utcnow

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


@dataclass
class ArchiveEntry:
    """Detached view of an ArchiveMetadata row."""

    id: str
    tenant_id: str
    archive_id: str
    created_at: datetime
    status: str
    backup_type: str = "automatic"
    storage_object_name: str | None = None
    storage_object_id: str | None = None
    total_record_count: int = 0
    collection_names: list[str] = field(default_factory=list)
    size_bytes: int | None = None
    web_link: str | None = None
    error_message: str | None = None

    @classmethod
    def from_row(cls, row: ArchiveMetadata) -> ArchiveEntry:
        return cls(
            id=row.id,
            tenant_id=row.user_id,
            archive_id=row.archive_id,
            created_at=row.created_at,
            status=row.status,
            backup_type=row.backup_type,
            storage_object_name=row.storage_object_name,
            storage_object_id=row.storage_object_id,
            total_record_count=row.total_record_count or 0,
            collection_names=json.loads(row.collection_names) if row.collection_names else [],
            size_bytes=row.size_bytes,
            web_link=row.web_link,
            error_message=row.error_message,
        )


class ArchiveRepository:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def last_backup_time(self, tenant_id: str) -> datetime | None:
        """created_at of the newest completed archive for the tenant."""
        with self._session_factory() as session:
            return (
                session.query(func.max(ArchiveMetadata.created_at))
                .filter(ArchiveMetadata.user_id == tenant_id, ArchiveMetadata.status == STATUS_COMPLETED)
                .scalar()
            )

    def list_archives(self, tenant_id: str, include_failed: bool = False) -> list[ArchiveEntry]:
        """Archives for tenant, newest first."""
        with self._session_factory() as session:
            query = session.query(ArchiveMetadata).filter(ArchiveMetadata.user_id == tenant_id)
            if not include_failed:
                query = query.filter(ArchiveMetadata.status == STATUS_COMPLETED)
            rows = query.order_by(ArchiveMetadata.created_at.desc(), ArchiveMetadata.archive_id.desc()).all()
            return [ArchiveEntry.from_row(row) for row in rows]

    def get_completed(self, tenant_id: str, archive_id: str) -> ArchiveEntry | None:
        with self._session_factory() as session:
            row = (
                session.query(ArchiveMetadata)
                .filter(
                    ArchiveMetadata.user_id == tenant_id,
                    ArchiveMetadata.archive_id == archive_id,
                    ArchiveMetadata.status == STATUS_COMPLETED,
                )
                .first()
            )
            return ArchiveEntry.from_row(row) if row else None

    def get(self, tenant_id: str, archive_id: str) -> ArchiveEntry | None:
        with self._session_factory() as session:
            row = (
                session.query(ArchiveMetadata)
                .filter(ArchiveMetadata.user_id == tenant_id, ArchiveMetadata.archive_id == archive_id)
                .first()
            )
            return ArchiveEntry.from_row(row) if row else None

    def add(self, entry: ArchiveEntry) -> None:
        with self._session_factory() as session:
            session.add(
                ArchiveMetadata(
                    id=entry.id,
                    user_id=entry.tenant_id,
                    archive_id=entry.archive_id,
                    storage_object_name=entry.storage_object_name,
                    storage_object_id=entry.storage_object_id,
                    created_at=entry.created_at,
                    total_record_count=entry.total_record_count,
                    collection_names=json.dumps(entry.collection_names),
                    status=entry.status,
                    backup_type=entry.backup_type,
                    size_bytes=entry.size_bytes,
                    web_link=entry.web_link,
                    error_message=entry.error_message,
                )
            )
            session.commit()

    def delete(self, entry_id: str) -> bool:
        with self._session_factory() as session:
            deleted = session.query(ArchiveMetadata).filter(ArchiveMetadata.id == entry_id).delete()
            session.commit()
            return bool(deleted)

    def count_by_status(self, tenant_id: str) -> dict[str, int]:
        with self._session_factory() as session:
            rows = (
                session.query(ArchiveMetadata.status, ArchiveMetadata.backup_type, func.count(ArchiveMetadata.id))
                .filter(ArchiveMetadata.user_id == tenant_id)
                .group_by(ArchiveMetadata.status, ArchiveMetadata.backup_type)
                .all()
            )
        counts: dict[str, int] = {}
        for status, backup_type, count in rows:
            counts[f"{status}:{backup_type}"] = count
        return counts

    def log_restore(
        self,
        tenant_id: str,
        archive_id: str,
        status: str,
        restored_record_count: int = 0,
        restored_collections: list[str] | None = None,
        error_message: str | None = None,
    ) -> None:
        with self._session_factory() as session:
            session.add(
                RestoreLogEntry(
                    user_id=tenant_id,
                    archive_id=archive_id,
                    restored_at=utcnow(),
                    restored_record_count=restored_record_count,
                    restored_collections=json.dumps(restored_collections or []),
                    status=status,
                    error_message=error_message,
                )
            )
            session.commit()

    def restore_history(self, tenant_id: str, limit: int = 20) -> list[RestoreLogEntry]:
        with self._session_factory() as session:
            rows = (
                session.query(RestoreLogEntry)
                .filter(RestoreLogEntry.user_id == tenant_id)
                .order_by(RestoreLogEntry.id.desc())
                .limit(limit)
                .all()
            )
            return rows
