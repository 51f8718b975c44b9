"""Backup configuration models."""

from pydantic import BaseModel, Field


class S3Settings(BaseModel):
    bucket: str = ""
    endpoint_url: str = "https://s3.wasabisys.com"
    access_key: str = ""
    secret_key: str = ""
    region: str = "us-east-1"
    prefix: str = "storefront-backups"


class BackupSettings(BaseModel):
    storage: str = "gdrive"
    local_dir: str = "./backups"
    s3: S3Settings = Field(default_factory=S3Settings)

    # Cadence
    interval_minutes: int = Field(default=30, ge=1)
    poll_seconds: float = Field(default=30.0, gt=0)
    tenant_delay_seconds: float = Field(default=2.0, ge=0)
    retry_delay_seconds: float = Field(default=300.0, ge=0)

    # Retention / upload
    retention_count: int = Field(default=5, ge=1)
    upload_attempts: int = Field(default=3, ge=1)
    upload_backoff_seconds: float = Field(default=2.0, ge=0)
    object_prefix: str = "StorefrontBackup"
    compress: bool = True
    compression_level: int = Field(default=9, ge=0, le=9)

    # Hardening
    lease_enabled: bool = False
    lease_ttl_seconds: int = Field(default=900, ge=1)
    safety_backup_before_restore: bool = False
    credential_key: str = ""

    health_port: int = 8080
