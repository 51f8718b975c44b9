"""Backup service configuration (built from StorefrontSettings)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from storefront.services.backup.archive import GZIP_CONTENT_TYPE, JSON_CONTENT_TYPE
from storefront.services.backup.retry import RetryPolicy

if TYPE_CHECKING:
    from storefront.config import StorefrontSettings


@dataclass
class BackupConfig:
    """Configuration consumed by the backup, restore and scheduler services."""

    # Storage
    storage_type: str = "gdrive"  # "gdrive", "local" or "s3"
    local_backup_dir: Path = field(default_factory=lambda: Path("./backups"))

    # S3 settings (only when storage_type=s3)
    s3_bucket: str = ""
    s3_endpoint_url: str = "https://s3.wasabisys.com"
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_region: str = "us-east-1"
    s3_prefix: str = "storefront-backups"

    # Google Drive / OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    google_token_url: str = "https://oauth2.googleapis.com/token"
    drive_api_url: str = "https://www.googleapis.com/drive/v3"
    drive_upload_url: str = "https://www.googleapis.com/upload/drive/v3"
    request_timeout: float = 60.0

    # Cadence
    interval_minutes: int = 30
    poll_seconds: float = 30.0
    tenant_delay_seconds: float = 2.0
    retry_delay_seconds: float = 300.0

    # Retention / upload
    retention_count: int = 5
    upload_attempts: int = 3
    upload_backoff_seconds: float = 2.0
    object_prefix: str = "StorefrontBackup"
    compress: bool = True
    compression_level: int = 9

    # Hardening
    lease_enabled: bool = False
    lease_ttl_seconds: int = 900
    safety_backup_before_restore: bool = False
    credential_key: str = ""

    health_port: int = 8080

    @classmethod
    def from_settings(cls, settings: StorefrontSettings | None = None) -> BackupConfig:
        """Load configuration from the unified settings (env + YAML)."""
        if settings is None:
            from storefront.config import get_settings

            settings = get_settings()

        b = settings.backup
        g = settings.google
        return cls(
            storage_type=b.storage,
            local_backup_dir=Path(b.local_dir),
            s3_bucket=b.s3.bucket,
            s3_endpoint_url=b.s3.endpoint_url,
            s3_access_key=b.s3.access_key,
            s3_secret_key=b.s3.secret_key,
            s3_region=b.s3.region,
            s3_prefix=b.s3.prefix,
            google_client_id=g.client_id,
            google_client_secret=g.client_secret,
            google_token_url=g.token_url,
            drive_api_url=g.drive_api_url,
            drive_upload_url=g.upload_api_url,
            request_timeout=g.timeout,
            interval_minutes=b.interval_minutes,
            poll_seconds=b.poll_seconds,
            tenant_delay_seconds=b.tenant_delay_seconds,
            retry_delay_seconds=b.retry_delay_seconds,
            retention_count=b.retention_count,
            upload_attempts=b.upload_attempts,
            upload_backoff_seconds=b.upload_backoff_seconds,
            object_prefix=b.object_prefix,
            compress=b.compress,
            compression_level=b.compression_level,
            lease_enabled=b.lease_enabled,
            lease_ttl_seconds=b.lease_ttl_seconds,
            safety_backup_before_restore=b.safety_backup_before_restore,
            credential_key=b.credential_key,
            health_port=b.health_port,
        )

    @property
    def interval(self) -> timedelta:
        return timedelta(minutes=self.interval_minutes)

    @property
    def content_type(self) -> str:
        return GZIP_CONTENT_TYPE if self.compress else JSON_CONTENT_TYPE

    def upload_retry_policy(self) -> RetryPolicy:
        """Exponential backoff for uploads: 2s, 4s, ... over upload_attempts tries."""
        return RetryPolicy(
            max_attempts=self.upload_attempts,
            base_delay=self.upload_backoff_seconds,
            factor=2.0,
        )

    def scheduler_retry_policy(self) -> RetryPolicy:
        """A single delayed retry after retry_delay_seconds."""
        return RetryPolicy(
            max_attempts=2,
            base_delay=self.retry_delay_seconds,
            factor=1.0,
            max_delay=self.retry_delay_seconds,
        )
