"""Archive structure, serialization and object naming.

Wire format (JSON, optionally gzip-compressed):

    {
      "metadata": {
        "version": 1,
        "archiveId": "20261019T101500123456-3f9a1c",
        "tenantId": "user-123",
        "createdAt": "2026-10-19T10:15:00.123456+00:00",
        "backupType": "automatic",
        "totalDocuments": 42,
        "collections": ["users", "stores", ...]
      },
      "collections": {"users": [{...}], "stores": [{...}, ...]}
    }
"""

from __future__ import annotations

import gzip
import json
import secrets
import zlib
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from storefront.services.backup.errors import CorruptArchiveError

ARCHIVE_VERSION = 1
GZIP_MAGIC = b"\x1f\x8b"
JSON_CONTENT_TYPE = "application/json"
GZIP_CONTENT_TYPE = "application/gzip"


@dataclass
class Archive:
    """One point-in-time snapshot of a tenant's allow-listed collections."""

    archive_id: str
    tenant_id: str
    created_at: str
    collections: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    backup_type: str = "automatic"

    @property
    def total_record_count(self) -> int:
        return sum(len(records) for records in self.collections.values())

    @property
    def collection_names(self) -> list[str]:
        return list(self.collections)


def new_archive_id(now: datetime | None = None) -> str:
    """Time-ordered, collision-resistant archive id (no underscores)."""
    now = now or datetime.now(UTC)
    return f"{now:%Y%m%dT%H%M%S%f}-{secrets.token_hex(3)}"


def object_name(prefix: str, tenant_id: str, archive_id: str, compressed: bool = True) -> str:
    """Storage object name: <prefix>_<tenant_id>_<archive_id>.json[.gz]"""
    suffix = ".json.gz" if compressed else ".json"
    return f"{prefix}_{tenant_id}_{archive_id}{suffix}"


def parse_object_name(name: str, prefix: str) -> tuple[str, str] | None:
    """Recover (tenant_id, archive_id) from an object name, or None."""
    stem = name
    for suffix in (".json.gz", ".json"):
        if stem.endswith(suffix):
            stem = stem[: -len(suffix)]
            break
    if not stem.startswith(f"{prefix}_"):
        return None
    tenant_id, sep, archive_id = stem[len(prefix) + 1 :].rpartition("_")
    if not sep or not tenant_id or not archive_id:
        return None
    return tenant_id, archive_id


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize(archive: Archive, compress: bool = True, compression_level: int = 9) -> bytes:
    document = {
        "metadata": {
            "version": ARCHIVE_VERSION,
            "archiveId": archive.archive_id,
            "tenantId": archive.tenant_id,
            "createdAt": archive.created_at,
            "backupType": archive.backup_type,
            "totalDocuments": archive.total_record_count,
            "collections": archive.collection_names,
        },
        "collections": archive.collections,
    }
    raw = json.dumps(document, default=_json_default, separators=(",", ":")).encode("utf-8")
    if compress:
        return gzip.compress(raw, compresslevel=compression_level)
    return raw


def parse(data: bytes) -> Archive:
    """Parse archive bytes. Raises CorruptArchiveError on any malformation."""
    if data[:2] == GZIP_MAGIC:
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise CorruptArchiveError(f"Invalid gzip stream: {e}") from e

    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptArchiveError(f"Invalid JSON: {e}") from e

    if not isinstance(document, dict):
        raise CorruptArchiveError("Archive root is not an object")
    metadata = document.get("metadata")
    collections = document.get("collections")
    if not isinstance(metadata, dict) or not isinstance(collections, dict):
        raise CorruptArchiveError("Archive is missing 'metadata' or 'collections'")

    archive_id = metadata.get("archiveId")
    created_at = metadata.get("createdAt")
    if not isinstance(archive_id, str) or not archive_id:
        raise CorruptArchiveError("Archive metadata has no archiveId")
    if not isinstance(created_at, str):
        raise CorruptArchiveError("Archive metadata has no createdAt")

    for name, records in collections.items():
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise CorruptArchiveError(f"Collection {name!r} is not a list of records")

    archive = Archive(
        archive_id=archive_id,
        tenant_id=metadata.get("tenantId") or "",
        created_at=created_at,
        collections=collections,
        backup_type=metadata.get("backupType") or "automatic",
    )

    total = metadata.get("totalDocuments")
    if total is not None and total != archive.total_record_count:
        raise CorruptArchiveError(
            f"Record count mismatch: metadata says {total}, archive holds {archive.total_record_count}"
        )
    names = metadata.get("collections")
    if names is not None and (not isinstance(names, list) or sorted(map(str, names)) != sorted(collections)):
        raise CorruptArchiveError("Collection list in metadata does not match archive contents")

    return archive
