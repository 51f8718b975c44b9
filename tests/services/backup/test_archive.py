"""Tests for archive serialization, parsing and object naming."""

import gzip
import json
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from storefront.services.backup.archive import (
    GZIP_MAGIC,
    Archive,
    new_archive_id,
    object_name,
    parse,
    parse_object_name,
    serialize,
)
from storefront.services.backup.errors import CorruptArchiveError


def make_archive(collections=None):
    return Archive(
        archive_id="20261019T101500000000-abc123",
        tenant_id="tenant-a",
        created_at="2026-10-19T10:15:00+00:00",
        collections=collections if collections is not None else {},
    )


class TestArchiveRoundTrip:
    def test_empty_archive(self):
        archive = make_archive()
        parsed = parse(serialize(archive))
        assert parsed.collections == {}
        assert parsed.total_record_count == 0

    def test_empty_collections_are_kept(self):
        archive = make_archive({"users": [{"id": "tenant-a"}], "stores": [], "invoice_blacklist": []})
        parsed = parse(serialize(archive))
        assert parsed.collection_names == ["users", "stores", "invoice_blacklist"]
        assert parsed.collections["stores"] == []
        assert parsed.total_record_count == 1

    def test_metadata_fields(self):
        archive = make_archive({"stores": [{"id": "s1", "user_id": "tenant-a"}]})
        archive.backup_type = "manual"
        document = json.loads(gzip.decompress(serialize(archive)))
        meta = document["metadata"]
        assert meta["archiveId"] == archive.archive_id
        assert meta["tenantId"] == "tenant-a"
        assert meta["backupType"] == "manual"
        assert meta["totalDocuments"] == 1
        assert meta["collections"] == ["stores"]

    def test_uncompressed(self):
        data = serialize(make_archive({"stores": []}), compress=False)
        assert data[:2] != GZIP_MAGIC
        assert parse(data).collection_names == ["stores"]

    def test_compressed_has_gzip_magic(self):
        assert serialize(make_archive())[:2] == GZIP_MAGIC

    def test_non_json_values_are_stringified(self):
        archive = make_archive(
            {"stores": [{"id": "s1", "created_at": datetime(2026, 1, 2, 3, 4, 5), "amount": Decimal("1.50")}]}
        )
        record = parse(serialize(archive)).collections["stores"][0]
        assert record["created_at"] == "2026-01-02T03:04:05"
        assert record["amount"] == "1.50"


class TestArchiveParseErrors:
    def test_garbage_bytes(self):
        with pytest.raises(CorruptArchiveError):
            parse(b"not an archive")

    def test_truncated_gzip(self):
        data = serialize(make_archive({"stores": [{"id": "s1"}]}))
        with pytest.raises(CorruptArchiveError):
            parse(data[: len(data) // 2])

    def test_root_not_object(self):
        with pytest.raises(CorruptArchiveError):
            parse(b"[1, 2, 3]")

    def test_missing_sections(self):
        with pytest.raises(CorruptArchiveError):
            parse(json.dumps({"metadata": {"archiveId": "x", "createdAt": "y"}}).encode())

    def test_missing_archive_id(self):
        with pytest.raises(CorruptArchiveError):
            parse(json.dumps({"metadata": {"createdAt": "y"}, "collections": {}}).encode())

    def test_collection_not_a_list(self):
        doc = {"metadata": {"archiveId": "x", "createdAt": "y"}, "collections": {"stores": {"id": 1}}}
        with pytest.raises(CorruptArchiveError):
            parse(json.dumps(doc).encode())

    def test_count_mismatch(self):
        doc = {
            "metadata": {"archiveId": "x", "createdAt": "y", "totalDocuments": 5},
            "collections": {"stores": [{"id": 1}]},
        }
        with pytest.raises(CorruptArchiveError, match="count mismatch"):
            parse(json.dumps(doc).encode())

    def test_collection_names_mismatch(self):
        doc = {
            "metadata": {"archiveId": "x", "createdAt": "y", "collections": ["users"]},
            "collections": {"stores": []},
        }
        with pytest.raises(CorruptArchiveError):
            parse(json.dumps(doc).encode())


class TestNaming:
    def test_archive_id_is_time_ordered(self):
        earlier = new_archive_id(datetime(2026, 1, 1, tzinfo=UTC))
        later = new_archive_id(datetime(2026, 1, 2, tzinfo=UTC))
        assert earlier < later
        assert "_" not in earlier

    def test_archive_ids_are_unique(self):
        now = datetime(2026, 1, 1, tzinfo=UTC)
        assert len({new_archive_id(now) for _ in range(50)}) == 50

    def test_object_name(self):
        assert object_name("StorefrontBackup", "t1", "a1") == "StorefrontBackup_t1_a1.json.gz"
        assert object_name("StorefrontBackup", "t1", "a1", compressed=False) == "StorefrontBackup_t1_a1.json"

    def test_parse_object_name(self):
        name = object_name("StorefrontBackup", "user_with_underscores", "20261019T101500000000-abc123")
        assert parse_object_name(name, "StorefrontBackup") == (
            "user_with_underscores",
            "20261019T101500000000-abc123",
        )

    def test_parse_object_name_wrong_prefix(self):
        assert parse_object_name("Other_t1_a1.json.gz", "StorefrontBackup") is None
