"""Storefront dashboard: per-tenant database backup and restore."""

__version__ = "0.4.0"
