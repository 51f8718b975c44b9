"""Pytest configuration and fixtures for storefront backup tests."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.db.models import Base, InvoiceSettings, Store, UniversalInvoice, User
from storefront.services.backup.config import BackupConfig
from storefront.services.backup.credentials import CredentialStore, TenantCredential
from storefront.services.backup.document_store import SqlDocumentStore
from storefront.services.backup.errors import StorageNotFoundError
from storefront.services.backup.repository import ArchiveRepository
from storefront.services.backup.restore import RestoreService
from storefront.services.backup.service import BackupService
from storefront.services.backup.storage import StoredObject


class FakeObjectStorage:
    """In-memory ObjectStorage with failure injection.

    ``upload_errors`` / ``download_errors`` are consumed one per call; a
    ``delete_errors`` entry keyed by object id is raised on every delete of
    that id.
    """

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.names: dict[str, str] = {}
        self.upload_errors: list[Exception] = []
        self.download_errors: list[Exception] = []
        self.delete_errors: dict[str, Exception] = {}
        self.upload_calls = 0
        self.deleted: list[str] = []
        self.closed = 0
        self._counter = 0

    def upload(self, name: str, data: bytes, content_type: str) -> StoredObject:
        self.upload_calls += 1
        if self.upload_errors:
            raise self.upload_errors.pop(0)
        self._counter += 1
        object_id = f"obj-{self._counter}"
        self.blobs[object_id] = data
        self.names[object_id] = name
        return StoredObject(id=object_id, name=name, size=len(data), web_link=f"https://example.test/{object_id}")

    def find(self, name: str) -> list[StoredObject]:
        return [
            StoredObject(id=object_id, name=n, size=len(self.blobs[object_id]))
            for object_id, n in self.names.items()
            if n == name
        ]

    def download(self, object_id: str) -> bytes:
        if self.download_errors:
            raise self.download_errors.pop(0)
        if object_id not in self.blobs:
            raise StorageNotFoundError(f"missing {object_id}", 404)
        return self.blobs[object_id]

    def delete(self, object_id: str) -> None:
        if object_id in self.delete_errors:
            raise self.delete_errors[object_id]
        if object_id not in self.blobs:
            raise StorageNotFoundError(f"missing {object_id}", 404)
        del self.blobs[object_id]
        del self.names[object_id]
        self.deleted.append(object_id)

    def close(self) -> None:
        self.closed += 1

    def put(self, name: str, data: bytes) -> str:
        """Place a blob directly, bypassing upload counters and failures."""
        self._counter += 1
        object_id = f"obj-{self._counter}"
        self.blobs[object_id] = data
        self.names[object_id] = name
        return object_id


@pytest.fixture
def engine(tmp_path):
    # File-based so worker threads (asyncio.to_thread) share the same database
    engine = create_engine(f"sqlite:///{tmp_path}/test.db")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def config(tmp_path):
    return BackupConfig(
        storage_type="local",
        local_backup_dir=tmp_path / "backups",
        interval_minutes=30,
        tenant_delay_seconds=0,
        retry_delay_seconds=0,
        upload_attempts=3,
        upload_backoff_seconds=0,
        retention_count=5,
    )


@pytest.fixture
def credentials(session_factory):
    store = CredentialStore(session_factory)
    for tenant_id in ("tenant-a", "tenant-b"):
        store.save(
            TenantCredential(
                tenant_id=tenant_id,
                access_token=f"token-{tenant_id}",
                refresh_token=f"refresh-{tenant_id}",
                expires_at=datetime.now() + timedelta(hours=1),
                folder_id=f"folder-{tenant_id}",
            )
        )
    return store


@pytest.fixture
def archives(session_factory):
    return ArchiveRepository(session_factory)


@pytest.fixture
def documents(engine):
    return SqlDocumentStore(engine, metadata=Base.metadata)


@pytest.fixture
def storage():
    return FakeObjectStorage()


@pytest.fixture
def backup_service(config, documents, credentials, archives, storage):
    return BackupService(
        config,
        documents=documents,
        credentials=credentials,
        archives=archives,
        storage_factory=lambda credential: storage,
    )


@pytest.fixture
def restore_service(config, documents, credentials, archives, storage, backup_service):
    return RestoreService(
        config,
        documents=documents,
        credentials=credentials,
        archives=archives,
        storage_factory=lambda credential: storage,
        backup_service=backup_service,
    )


def seed_tenant(session_factory, tenant_id: str, stores: int = 2, invoices: int = 3) -> None:
    """Insert a user, some stores, invoices and one settings row for tenant_id."""
    with session_factory() as session:
        session.add(User(id=tenant_id, email=f"{tenant_id}@example.test", name=tenant_id.title()))
        for i in range(stores):
            session.add(Store(id=f"{tenant_id}-store-{i}", user_id=tenant_id, name=f"Store {i}", url=f"https://s{i}.test"))
        for i in range(invoices):
            session.add(
                UniversalInvoice(
                    id=f"{tenant_id}-inv-{i}",
                    user_id=tenant_id,
                    invoice_number=f"INV-{i:04d}",
                    total_cents=1000 + i,
                    line_items='[{"sku": "A", "qty": 1}]',
                    issued_at=datetime(2026, 1, 1 + i, 12, 0, 0),
                )
            )
        session.add(InvoiceSettings(id=f"{tenant_id}-settings", user_id=tenant_id, auto_generate=True))
        session.commit()


@pytest.fixture
def seeded(session_factory):
    seed_tenant(session_factory, "tenant-a")
    seed_tenant(session_factory, "tenant-b", stores=1, invoices=1)
    return session_factory
