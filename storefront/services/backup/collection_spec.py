"""Allow-list of collections that make up a tenant's backup set.

Anything not listed here is never read, written or deleted by backup or
restore. Credentials, archive metadata and the restore log are deliberately
absent.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable


class Scope(str, Enum):
    TENANT = "tenant"  # records carry the tenant id in a field
    IDENTITY = "identity"  # single record whose own id is the tenant id


@dataclass(frozen=True)
class CollectionSpec:
    name: str
    scope: Scope = Scope.TENANT
    field: str = "user_id"

    def filter_for(self, tenant_id: str) -> dict[str, Any]:
        """Filter selecting this tenant's records."""
        return {self.field: tenant_id}

    def owns(self, record: dict[str, Any], tenant_id: str) -> bool:
        return record.get(self.field) == tenant_id


DEFAULT_COLLECTIONS: tuple[CollectionSpec, ...] = (
    CollectionSpec("users", Scope.IDENTITY, "id"),
    CollectionSpec("stores"),
    CollectionSpec("universal_invoices"),
    CollectionSpec("universal_invoice_settings"),
    CollectionSpec("invoice_blacklist"),
    CollectionSpec("universal_numbers"),
    CollectionSpec("invoice_settings"),
    CollectionSpec("woo_invoice_mappings"),
)


def index_collections(specs: Iterable[CollectionSpec]) -> dict[str, CollectionSpec]:
    """Map collection name to spec, rejecting duplicates."""
    indexed: dict[str, CollectionSpec] = {}
    for spec in specs:
        if spec.name in indexed:
            raise ValueError(f"Duplicate collection in allow-list: {spec.name}")
        indexed[spec.name] = spec
    return indexed
