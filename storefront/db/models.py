from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow():
    """Return current UTC time (naive, for SQLite compatibility)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def gen_uuid() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Storefront data (tenant collections)
# =============================================================================


class User(Base):
    """Dashboard account. Its id is the tenant id."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=gen_uuid)
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    password_hash = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Store(Base):
    """A connected WooCommerce store."""

    __tablename__ = "stores"

    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    consumer_key = Column(Text, nullable=True)
    consumer_secret = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class UniversalInvoice(Base):
    __tablename__ = "universal_invoices"

    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, index=True)
    store_id = Column(String, nullable=True)
    order_id = Column(String, nullable=True)
    invoice_number = Column(String, nullable=False)
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    total_cents = Column(Integer, default=0, nullable=False)
    currency = Column(String, default="EUR", nullable=False)
    status = Column(String, default="issued", nullable=False)
    line_items = Column(Text, nullable=True)  # JSON array of line items
    issued_at = Column(DateTime, default=utcnow, nullable=False)


class UniversalInvoiceSettings(Base):
    __tablename__ = "universal_invoice_settings"

    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, index=True)
    company_name = Column(String, nullable=True)
    company_address = Column(Text, nullable=True)
    vat_number = Column(String, nullable=True)
    footer_text = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class InvoiceBlacklist(Base):
    """Customers/emails excluded from invoice generation."""

    __tablename__ = "invoice_blacklist"

    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    customer_name = Column(String, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class UniversalNumber(Base):
    """Per-tenant invoice number counters."""

    __tablename__ = "universal_numbers"

    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, index=True)
    counter_name = Column(String, nullable=False, default="invoice")
    prefix = Column(String, nullable=True)
    next_value = Column(Integer, nullable=False, default=1)


class InvoiceSettings(Base):
    """Per-store invoice settings."""

    __tablename__ = "invoice_settings"

    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, index=True)
    store_id = Column(String, nullable=True)
    auto_generate = Column(Boolean, default=False, nullable=False)
    settings = Column(Text, nullable=True)  # JSON: template options


class WooInvoiceMapping(Base):
    """Maps WooCommerce orders to generated invoices."""

    __tablename__ = "woo_invoice_mappings"

    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, index=True)
    store_id = Column(String, nullable=True)
    order_id = Column(String, nullable=False)
    invoice_id = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


# =============================================================================
# Backup subsystem
# =============================================================================


class StorageCredential(Base):
    """OAuth tokens and placement hints for a tenant's backup storage."""

    __tablename__ = "storage_credentials"

    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, unique=True, index=True)
    provider = Column(String, default="gdrive", nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    folder_id = Column(String, nullable=True)
    spreadsheet_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ArchiveMetadata(Base):
    """Index of uploaded archives, used for listing, retention and restore lookup."""

    __tablename__ = "archive_metadata"
    __table_args__ = (UniqueConstraint("user_id", "archive_id", name="uq_archive_metadata_tenant_archive"),)

    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, index=True)
    archive_id = Column(String, nullable=False)
    storage_object_name = Column(String, nullable=True)
    storage_object_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    total_record_count = Column(Integer, default=0, nullable=False)
    collection_names = Column(Text, nullable=True)  # JSON array of collection names
    status = Column(String, nullable=False)  # "completed" or "failed"
    backup_type = Column(String, default="automatic", nullable=False)  # "automatic" or "manual"
    size_bytes = Column(Integer, nullable=True)
    web_link = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)


class RestoreLogEntry(Base):
    """Append-only audit trail of restore attempts."""

    __tablename__ = "restore_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    archive_id = Column(String, nullable=False)
    restored_at = Column(DateTime, default=utcnow, nullable=False)
    restored_record_count = Column(Integer, default=0, nullable=False)
    restored_collections = Column(Text, nullable=True)  # JSON array
    status = Column(String, nullable=False)  # "completed", "partial" or "failed"
    error_message = Column(Text, nullable=True)


class BackupLease(Base):
    """Short-lived claim on a tenant's backup slot across scheduler processes."""

    __tablename__ = "backup_leases"

    id = Column(String, primary_key=True, default=gen_uuid)
    user_id = Column(String, nullable=False, unique=True, index=True)
    owner = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    claimed_at = Column(DateTime, default=utcnow, nullable=False)
