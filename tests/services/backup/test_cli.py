"""Tests for the storefront-backup CLI."""

import pytest
from rich.console import Console
from typer.testing import CliRunner

from storefront.services.backup import cli
from storefront.services.backup.wiring import BackupServices

runner = CliRunner()


@pytest.fixture
def services(config, backup_service, restore_service, credentials, archives, seeded, monkeypatch):
    bundle = BackupServices(config, backup_service, restore_service, credentials, archives)
    monkeypatch.setattr(cli, "_load_config", lambda: config)
    monkeypatch.setattr(cli, "_build_services", lambda _config: bundle)
    monkeypatch.setattr(cli, "console", Console(width=200))
    return bundle


class TestCli:
    def test_run(self, services, archives):
        result = runner.invoke(cli.app, ["run", "--tenant", "tenant-a"])
        assert result.exit_code == 0, result.output
        assert "Backup Complete" in result.output
        assert archives.list_archives("tenant-a")[0].backup_type == "manual"

    def test_run_not_configured(self, services):
        result = runner.invoke(cli.app, ["run", "--tenant", "nobody"])
        assert result.exit_code == 1
        assert "Skipped" in result.output

    def test_list(self, services, backup_service):
        archive_id = backup_service.create_backup("tenant-a").archive_id
        result = runner.invoke(cli.app, ["list", "--tenant", "tenant-a"])
        assert result.exit_code == 0
        assert archive_id in result.output

    def test_list_empty(self, services):
        result = runner.invoke(cli.app, ["list", "--tenant", "tenant-b"])
        assert "No backups found" in result.output

    def test_stats(self, services, backup_service):
        backup_service.create_backup("tenant-a")
        result = runner.invoke(cli.app, ["stats", "--tenant", "tenant-a"])
        assert result.exit_code == 0
        assert "Total Backups:" in result.output

    def test_restore(self, services, backup_service):
        archive_id = backup_service.create_backup("tenant-a").archive_id
        result = runner.invoke(cli.app, ["restore", "--tenant", "tenant-a", "--archive", archive_id, "--yes"])
        assert result.exit_code == 0, result.output
        assert "Restore completed" in result.output

    def test_restore_aborted(self, services, backup_service, archives):
        archive_id = backup_service.create_backup("tenant-a").archive_id
        result = runner.invoke(cli.app, ["restore", "--tenant", "tenant-a", "--archive", archive_id], input="n\n")
        assert "Aborted" in result.output
        assert archives.restore_history("tenant-a") == []

    def test_restore_unknown(self, services):
        result = runner.invoke(cli.app, ["restore", "--tenant", "tenant-a", "--archive", "nope", "--yes"])
        assert result.exit_code == 1
        assert "archive not found" in result.output

    def test_delete(self, services, backup_service, archives):
        archive_id = backup_service.create_backup("tenant-a").archive_id
        result = runner.invoke(cli.app, ["delete", "--tenant", "tenant-a", "--archive", archive_id, "--yes"])
        assert result.exit_code == 0
        assert archives.list_archives("tenant-a") == []

    def test_sweep(self, services):
        result = runner.invoke(cli.app, ["sweep"])
        assert result.exit_code == 0, result.output
        assert "tenant-a" in result.output
        assert "tenant-b" in result.output

    def test_status(self, services, backup_service):
        backup_service.create_backup("tenant-a")
        result = runner.invoke(cli.app, ["status"])
        assert result.exit_code == 0, result.output
        assert "tenant-b: never backed up" in result.output
        assert "next in" in result.output
