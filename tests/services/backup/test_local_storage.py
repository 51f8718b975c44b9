"""Tests for LocalStorage and S3Storage backends."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from storefront.services.backup.config import BackupConfig
from storefront.services.backup.credentials import TenantCredential
from storefront.services.backup.errors import (
    StorageAuthError,
    StorageError,
    StorageNotFoundError,
    TransientStorageError,
)
from storefront.services.backup.storage import create_storage
from storefront.services.backup.storage.google_drive import GoogleDriveStorage
from storefront.services.backup.storage.local import LocalStorage
from storefront.services.backup.storage.s3 import S3Storage


def client_error(code, status=400, op="PutObject"):
    return ClientError({"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}}, op)


class TestLocalStorage:
    def test_upload_find_download_delete(self, tmp_path):
        storage = LocalStorage(tmp_path, "tenant-a")
        stored = storage.upload("a.json.gz", b"abc", "application/gzip")

        assert stored.id == "tenant-a/a.json.gz"
        assert stored.size == 3
        assert (tmp_path / "tenant-a" / "a.json.gz").read_bytes() == b"abc"
        assert not list((tmp_path / "tenant-a").glob("*.part"))

        assert [o.id for o in storage.find("a.json.gz")] == ["tenant-a/a.json.gz"]
        assert storage.download(stored.id) == b"abc"

        storage.delete(stored.id)
        assert storage.find("a.json.gz") == []

    def test_missing_object(self, tmp_path):
        storage = LocalStorage(tmp_path, "tenant-a")
        with pytest.raises(StorageNotFoundError):
            storage.download("tenant-a/missing.json.gz")
        with pytest.raises(StorageNotFoundError):
            storage.delete("tenant-a/missing.json.gz")

    def test_tenants_are_isolated(self, tmp_path):
        LocalStorage(tmp_path, "tenant-b").upload("b.json.gz", b"secret", "application/gzip")
        storage = LocalStorage(tmp_path, "tenant-a")
        assert storage.find("b.json.gz") == []
        with pytest.raises(StorageError):
            storage.download("tenant-b/b.json.gz")
        with pytest.raises(StorageError):
            storage.download("tenant-a/../tenant-b/b.json.gz")


class TestS3Storage:
    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def storage(self, client):
        config = BackupConfig(storage_type="s3", s3_bucket="bucket", s3_prefix="backups/")
        return S3Storage(config, "tenant-a", client=client)

    def test_upload_uses_tenant_prefix(self, storage, client):
        stored = storage.upload("a.json.gz", b"abc", "application/gzip")
        assert stored.id == "backups/tenant-a/a.json.gz"
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "bucket"
        assert kwargs["Key"] == "backups/tenant-a/a.json.gz"
        assert kwargs["ContentType"] == "application/gzip"

    def test_find_missing_returns_empty(self, storage, client):
        client.head_object.side_effect = client_error("404", 404, "HeadObject")
        assert storage.find("a.json.gz") == []

    def test_find(self, storage, client):
        client.head_object.return_value = {"ContentLength": 3}
        (found,) = storage.find("a.json.gz")
        assert found.id == "backups/tenant-a/a.json.gz"
        assert found.size == 3

    def test_download(self, storage, client):
        body = MagicMock()
        body.read.return_value = b"abc"
        client.get_object.return_value = {"Body": body}
        assert storage.download("backups/tenant-a/a.json.gz") == b"abc"

    @pytest.mark.parametrize(
        "error, expected",
        [
            (client_error("NoSuchKey", 404), StorageNotFoundError),
            (client_error("AccessDenied", 403), StorageAuthError),
            (client_error("SlowDown", 503), TransientStorageError),
            (client_error("InvalidRequest", 400), StorageError),
        ],
    )
    def test_error_translation(self, storage, client, error, expected):
        client.get_object.side_effect = error
        with pytest.raises(expected):
            storage.download("k")

    def test_connection_error_is_transient(self, storage, client):
        client.delete_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.test")
        with pytest.raises(TransientStorageError):
            storage.delete("k")


class TestCreateStorage:
    def credential(self):
        return TenantCredential(tenant_id="tenant-a", access_token="tok", folder_id="folder")

    def test_local(self, tmp_path):
        config = BackupConfig(storage_type="local", local_backup_dir=tmp_path)
        assert isinstance(create_storage(config, self.credential()), LocalStorage)

    def test_gdrive(self):
        storage = create_storage(BackupConfig(storage_type="gdrive"), self.credential())
        try:
            assert isinstance(storage, GoogleDriveStorage)
            assert storage.folder_id == "folder"
        finally:
            storage.close()

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_storage(BackupConfig(storage_type="ftp"), self.credential())
