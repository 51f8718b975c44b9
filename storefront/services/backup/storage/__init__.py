"""Object storage backends for tenant archives."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from storefront.services.backup.config import BackupConfig
    from storefront.services.backup.credentials import CredentialStore, TenantCredential


@dataclass
class StoredObject:
    """Locator for a blob in object storage."""

    id: str  # Provider id / key used for download and delete
    name: str  # Object name as uploaded
    size: int | None = None
    created_at: datetime | None = None
    web_link: str | None = None


class ObjectStorage(Protocol):
    """Protocol for archive storage backends.

    Backends surface provider failures as StorageError subclasses and never
    retry on their own (apart from a single token refresh on auth failure);
    callers own the retry policy.
    """

    def upload(self, name: str, data: bytes, content_type: str) -> StoredObject: ...

    def find(self, name: str) -> list[StoredObject]: ...

    def download(self, object_id: str) -> bytes: ...

    def delete(self, object_id: str) -> None: ...

    def close(self) -> None: ...


def create_storage(
    config: BackupConfig,
    credential: TenantCredential,
    credential_store: CredentialStore | None = None,
) -> ObjectStorage:
    """Create a storage backend for one tenant based on configuration."""
    if config.storage_type == "s3":
        from storefront.services.backup.storage.s3 import S3Storage

        return S3Storage(config, credential.tenant_id)

    if config.storage_type == "local":
        from storefront.services.backup.storage.local import LocalStorage

        return LocalStorage(config.local_backup_dir, credential.tenant_id)

    if config.storage_type == "gdrive":
        from storefront.services.backup.storage.google_drive import GoogleDriveStorage

        return GoogleDriveStorage(
            credential,
            client_id=config.google_client_id,
            client_secret=config.google_client_secret,
            token_url=config.google_token_url,
            api_url=config.drive_api_url,
            upload_url=config.drive_upload_url,
            timeout=config.request_timeout,
            on_token_refresh=credential_store.update_access_token if credential_store else None,
        )

    raise ValueError(f"Unknown storage type: {config.storage_type}")
