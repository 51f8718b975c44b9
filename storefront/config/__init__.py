"""Unified configuration for the storefront backup service.

Usage:
    from storefront.config import get_settings

    s = get_settings()
    s.backup.interval_minutes   # 30
    s.database.url              # "postgresql://..."
"""

from __future__ import annotations

from storefront.config._settings import StorefrontSettings

_settings: StorefrontSettings | None = None


def get_settings() -> StorefrontSettings:
    """Return the singleton StorefrontSettings instance (created on first call)."""
    global _settings
    if _settings is None:
        _settings = StorefrontSettings()
    return _settings


def reset_settings() -> None:
    """Force re-creation of the settings singleton (useful for tests)."""
    global _settings
    _settings = None


__all__ = ["StorefrontSettings", "get_settings", "reset_settings"]
