"""Tests for engine configuration."""

import os
from unittest.mock import patch

import pytest
from sqlalchemy import inspect

from storefront.config import reset_settings
from storefront.db import connection


@pytest.fixture(autouse=True)
def isolated(tmp_path):
    env = {"STOREFRONT_CONFIG": str(tmp_path / "absent.yaml"), "DATABASE__DATA_DIR": str(tmp_path / "data")}
    with patch.dict(os.environ, env):
        os.environ.pop("DATABASE__URL", None)
        reset_settings()
        connection.reset_engine()
        yield
        connection.reset_engine()
    reset_settings()


class TestConnection:
    def test_defaults_to_sqlite_in_data_dir(self, tmp_path):
        assert connection._resolve_url() == f"sqlite:///{tmp_path / 'data'}/storefront.db"
        assert (tmp_path / "data").is_dir()

    def test_postgres_scheme_is_normalized(self):
        assert connection._resolve_url("postgres://u:p@host/db") == "postgresql://u:p@host/db"

    def test_init_db_creates_tables(self, tmp_path):
        engine = connection.configure(f"sqlite:///{tmp_path}/x.db")
        connection.init_db()
        tables = set(inspect(engine).get_table_names())
        assert {"stores", "archive_metadata", "restore_log", "storage_credentials", "backup_leases"} <= tables
        assert connection.get_engine() is engine
        with connection.get_session() as session:
            assert session.bind is engine
