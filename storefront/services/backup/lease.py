"""Optional cross-process claim on a tenant's backup slot.

Two scheduler processes sharing one database each claim the tenant before
running its backup; the second one sees an unexpired lease held by someone
else and skips the tenant for that sweep.
"""

from __future__ import annotations

import os
import socket
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.config.logging import get_logger
from storefront.db.models import BackupLease, utcnow

logger = get_logger("backup.lease")


def default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class LeaseManager:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        ttl_seconds: int = 900,
        owner: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.ttl = timedelta(seconds=ttl_seconds)
        self.owner = owner or default_owner()

    def claim(self, tenant_id: str, now: datetime | None = None) -> bool:
        """Take or renew the lease. False if another owner holds a live one."""
        now = now or utcnow()
        expires_at = now + self.ttl

        with self._session_factory() as session:
            result = session.execute(
                update(BackupLease)
                .where(
                    BackupLease.user_id == tenant_id,
                    or_(BackupLease.expires_at <= now, BackupLease.owner == self.owner),
                )
                .values(owner=self.owner, expires_at=expires_at, claimed_at=now)
            )
            if result.rowcount:
                session.commit()
                return True

            session.add(BackupLease(user_id=tenant_id, owner=self.owner, expires_at=expires_at, claimed_at=now))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.info(f"Lease for tenant {tenant_id} held by another scheduler")
                return False
        return True

    def release(self, tenant_id: str) -> None:
        with self._session_factory() as session:
            session.execute(delete(BackupLease).where(BackupLease.user_id == tenant_id, BackupLease.owner == self.owner))
            session.commit()
