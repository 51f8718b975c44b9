"""Assemble the backup services from configuration."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from storefront.db.connection import get_engine, init_db
from storefront.db.models import Base
from storefront.services.backup.config import BackupConfig
from storefront.services.backup.credentials import CredentialStore
from storefront.services.backup.document_store import SqlDocumentStore
from storefront.services.backup.lease import LeaseManager
from storefront.services.backup.repository import ArchiveRepository
from storefront.services.backup.restore import RestoreService
from storefront.services.backup.scheduler import BackupScheduler
from storefront.services.backup.service import BackupService


@dataclass
class BackupServices:
    config: BackupConfig
    backup: BackupService
    restore: RestoreService
    credentials: CredentialStore
    archives: ArchiveRepository
    lease: LeaseManager | None = None

    def scheduler(self, **kwargs) -> BackupScheduler:
        return BackupScheduler(self.backup, lease=self.lease, **kwargs)


def build_services(
    config: BackupConfig | None = None,
    engine: Engine | None = None,
    storage_factory=None,
) -> BackupServices:
    config = config or BackupConfig.from_settings()
    engine = engine or get_engine()
    init_db(engine)
    session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    credentials = CredentialStore(session_factory, encryption_key=config.credential_key)
    archives = ArchiveRepository(session_factory)
    documents = SqlDocumentStore(engine, metadata=Base.metadata)

    backup = BackupService(
        config,
        documents=documents,
        credentials=credentials,
        archives=archives,
        storage_factory=storage_factory,
    )
    restore = RestoreService(
        config,
        documents=documents,
        credentials=credentials,
        archives=archives,
        storage_factory=storage_factory,
        backup_service=backup,
    )
    lease = LeaseManager(session_factory, ttl_seconds=config.lease_ttl_seconds) if config.lease_enabled else None
    return BackupServices(config, backup, restore, credentials, archives, lease)


def build_scheduler() -> BackupScheduler:
    return build_services().scheduler()
