"""Per-tenant database backup and restore.

Main entry points:
    BackupService.create_backup / enforce_retention
    RestoreService.restore
    BackupScheduler.start / stop / status / run_due_backups
"""

from storefront.services.backup.config import BackupConfig
from storefront.services.backup.restore import RestoreResult, RestoreService
from storefront.services.backup.scheduler import BackupScheduler, SweepReport, get_scheduler, reset_scheduler
from storefront.services.backup.service import BackupResult, BackupService

__all__ = [
    "BackupConfig",
    "BackupResult",
    "BackupScheduler",
    "BackupService",
    "RestoreResult",
    "RestoreService",
    "SweepReport",
    "get_scheduler",
    "reset_scheduler",
]
