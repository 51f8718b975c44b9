"""Local filesystem storage backend."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from storefront.config.logging import get_logger
from storefront.services.backup.errors import StorageError, StorageNotFoundError
from storefront.services.backup.storage import StoredObject

logger = get_logger("backup.storage")


class LocalStorage:
    """Store archives on the local filesystem, one directory per tenant.

    Object ids are paths relative to the base directory ("<tenant>/<name>").
    """

    def __init__(self, base_dir: Path | str, tenant_id: str) -> None:
        self.base_dir = Path(base_dir).resolve()
        self.tenant_id = tenant_id
        self.tenant_dir = self.base_dir / tenant_id
        self.tenant_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, object_id: str) -> Path:
        path = (self.base_dir / object_id).resolve()
        if self.tenant_dir not in path.parents:
            raise StorageError(f"Object id outside tenant directory: {object_id}")
        return path

    def _to_object(self, path: Path) -> StoredObject:
        stat = path.stat()
        return StoredObject(
            id=f"{self.tenant_id}/{path.name}",
            name=path.name,
            size=stat.st_size,
            created_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
            web_link=path.as_uri(),
        )

    def upload(self, name: str, data: bytes, content_type: str) -> StoredObject:
        path = self._path(f"{self.tenant_id}/{name}")
        try:
            tmp = path.with_suffix(path.suffix + ".part")
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.info(f"Saved to {path}", extra={"tenant_id": self.tenant_id})
        return self._to_object(path)

    def find(self, name: str) -> list[StoredObject]:
        path = self.tenant_dir / name
        if not path.is_file():
            return []
        return [self._to_object(path)]

    def download(self, object_id: str) -> bytes:
        path = self._path(object_id)
        if not path.is_file():
            raise StorageNotFoundError(f"Backup not found: {object_id}")
        return path.read_bytes()

    def delete(self, object_id: str) -> None:
        path = self._path(object_id)
        if not path.exists():
            raise StorageNotFoundError(f"Backup not found: {object_id}")
        path.unlink()
        logger.info(f"Deleted {path}", extra={"tenant_id": self.tenant_id})

    def close(self) -> None:
        pass
