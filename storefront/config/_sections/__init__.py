"""Config section models."""

from storefront.config._sections.backup import BackupSettings, S3Settings
from storefront.config._sections.database import DatabaseSettings
from storefront.config._sections.google import GoogleSettings
from storefront.config._sections.logging import LoggingSettings

__all__ = [
    "BackupSettings",
    "DatabaseSettings",
    "GoogleSettings",
    "LoggingSettings",
    "S3Settings",
]
