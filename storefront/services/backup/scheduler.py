"""Global backup scheduler.

One long-lived object per process. A cheap poll (every ``poll_seconds``)
re-evaluates which tenants are due; due-ness comes from the newest completed
archive's persisted ``created_at``, so restarts neither duplicate nor skip
backups beyond the configured interval. Tenants are processed one after
another with a short pause in between.

Usage:
    scheduler = get_scheduler()
    await scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from storefront.config.logging import get_logger
from storefront.db.models import utcnow
from storefront.services.backup.errors import ErrorKind
from storefront.services.backup.lease import LeaseManager
from storefront.services.backup.service import AUTOMATIC, MANUAL, BackupResult, BackupService

logger = get_logger("backup.scheduler")


@dataclass
class SweepReport:
    """Aggregate outcome of one run_due_backups pass."""

    started_at: datetime
    finished_at: datetime | None = None
    attempted: list[str] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    not_due: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "attempted": len(self.attempted),
            "succeeded": len(self.succeeded),
            "failed": dict(self.failed),
            "not_due": len(self.not_due),
            "deferred": list(self.deferred),
        }


class BackupScheduler:
    """Periodic due-ness poll plus one delayed retry per failed tenant."""

    def __init__(
        self,
        service: BackupService,
        *,
        lease: LeaseManager | None = None,
        clock: Callable[[], datetime] = utcnow,
        on_sweep: Callable[[SweepReport], None] | None = None,
    ) -> None:
        self.service = service
        self.config = service.config
        self.lease = lease
        self._clock = clock
        self._on_sweep = on_sweep
        self._retry_policy = self.config.scheduler_retry_policy()

        self._running = False
        self._poll_task: asyncio.Task | None = None
        self._retry_tasks: dict[str, asyncio.Task] = {}
        self._pending_retries: tuple[str, ...] = ()
        self._sweep_lock = asyncio.Lock()
        self._last_sweep: SweepReport | None = None

    # ── lifecycle ───────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run overdue backups now, then start polling. No-op if running."""
        if self._running:
            return

        self._running = True
        logger.info(
            f"Backup scheduler started (interval {self.config.interval_minutes}m, "
            f"poll {self.config.poll_seconds:.0f}s)"
        )

        try:
            await self.run_due_backups()
        except Exception as e:
            logger.exception(f"Initial backup sweep failed: {e}")

        # stop() may have been called during the initial sweep
        if self._running and self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Stop polling and drop pending retries. In-flight work finishes."""
        if not self._running and self._poll_task is None:
            return
        self._running = False

        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        for task in list(self._retry_tasks.values()):
            task.cancel()
        self._retry_tasks.clear()
        self._publish_retries()

        logger.info("Backup scheduler stopped")

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "has_active_timer": self._poll_task is not None and not self._poll_task.done(),
            "pending_retries": list(self._pending_retries),
            "last_sweep": self._last_sweep.to_dict() if self._last_sweep else None,
        }

    async def health_check(self) -> dict[str, Any]:
        """Restart the scheduler if it is not running."""
        restarted = False
        if not self._running:
            logger.warning("Backup scheduler not running, restarting")
            await self.start()
            restarted = True
        return {"restarted": restarted, **self.status()}

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.config.poll_seconds)
                await self.run_due_backups()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Backup poll error: {e}")

    # ── due-ness ────────────────────────────────────────────────────────

    def is_backup_due(self, tenant_id: str, now: datetime | None = None) -> bool:
        """True when the tenant has no completed archive or the newest is at least one interval old."""
        last = self.service.archives.last_backup_time(tenant_id)
        if last is None:
            return True
        now = now or self._clock()
        return now - last >= self.config.interval

    def backup_status(self, tenant_id: str, now: datetime | None = None) -> dict[str, Any]:
        """Last/next backup times for one tenant."""
        now = now or self._clock()
        last = self.service.archives.last_backup_time(tenant_id)
        if last is None:
            return {
                "last_backup_time": None,
                "next_backup_time": now,
                "minutes_until_next": 0,
                "is_overdue": True,
                "interval_minutes": self.config.interval_minutes,
            }
        next_time = last + self.config.interval
        remaining = next_time - now
        return {
            "last_backup_time": last,
            "next_backup_time": next_time,
            "minutes_until_next": max(0, int(remaining.total_seconds() // 60)),
            "is_overdue": remaining <= timedelta(0),
            "interval_minutes": self.config.interval_minutes,
        }

    # ── sweeps ──────────────────────────────────────────────────────────

    async def run_due_backups(self) -> SweepReport:
        """Back up every due tenant, sequentially. Failures don't stop the sweep."""
        async with self._sweep_lock:
            report = SweepReport(started_at=self._clock())
            tenants = await asyncio.to_thread(self.service.list_tenants)

            for tenant_id in tenants:
                if tenant_id in self._retry_tasks:
                    report.deferred.append(tenant_id)
                    continue
                try:
                    due = await asyncio.to_thread(self.is_backup_due, tenant_id)
                except Exception as e:
                    logger.exception(f"Due check failed: {e}", extra={"tenant_id": tenant_id})
                    report.failed[tenant_id] = f"due check failed: {e}"
                    continue
                if not due:
                    report.not_due.append(tenant_id)
                    continue

                if report.attempted and self.config.tenant_delay_seconds:
                    await asyncio.sleep(self.config.tenant_delay_seconds)
                report.attempted.append(tenant_id)

                result = await self._run_backup(tenant_id)
                if result.success:
                    report.succeeded.append(tenant_id)
                elif result.error_kind in (ErrorKind.NOT_CONFIGURED, ErrorKind.LEASE_HELD):
                    report.deferred.append(tenant_id)
                else:
                    report.failed[tenant_id] = result.error or "unknown error"
                    self._schedule_retry(tenant_id)

            report.finished_at = self._clock()
            self._last_sweep = report

        if report.attempted or report.failed:
            logger.info(
                f"Backup sweep: {len(report.succeeded)} succeeded, {len(report.failed)} failed, "
                f"{len(report.not_due)} not due, {len(report.deferred)} deferred"
            )
        if report.failed:
            logger.warning(f"Backup failures this sweep: {', '.join(sorted(report.failed))}")
        if self._on_sweep:
            try:
                self._on_sweep(report)
            except Exception as e:
                logger.warning(f"on_sweep callback failed: {e}")
        return report

    async def trigger_backup(self, tenant_id: str) -> BackupResult:
        """Run a manual backup now, regardless of due-ness."""
        async with self._sweep_lock:
            return await self._run_backup(tenant_id, MANUAL)

    async def _run_backup(self, tenant_id: str, backup_type: str = AUTOMATIC) -> BackupResult:
        claimed = False
        try:
            if self.lease is not None:
                claimed = await asyncio.to_thread(self.lease.claim, tenant_id)
                if not claimed:
                    return BackupResult(
                        tenant_id, False, error="lease held by another scheduler", error_kind=ErrorKind.LEASE_HELD
                    )
            return await asyncio.to_thread(self.service.create_backup, tenant_id, backup_type)
        except Exception as e:
            logger.exception(f"Backup crashed: {e}", extra={"tenant_id": tenant_id})
            return BackupResult(tenant_id, False, error=str(e), error_kind=ErrorKind.UNEXPECTED)
        finally:
            if claimed:
                await self._release_lease(tenant_id)

    async def _release_lease(self, tenant_id: str) -> None:
        """Release a claimed lease. On error the lease lapses after its TTL."""
        try:
            await asyncio.to_thread(self.lease.release, tenant_id)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to release backup lease: {e}", extra={"tenant_id": tenant_id})

    # ── retries ─────────────────────────────────────────────────────────

    def _schedule_retry(self, tenant_id: str) -> None:
        if tenant_id in self._retry_tasks or self._retry_policy.retries < 1 or not self._running:
            return
        delay = self._retry_policy.delay_for(1)
        logger.info(f"Retrying backup in {delay:.0f}s", extra={"tenant_id": tenant_id})
        self._retry_tasks[tenant_id] = asyncio.create_task(self._retry_later(tenant_id, delay))
        self._publish_retries()

    async def _retry_later(self, tenant_id: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            async with self._sweep_lock:
                if not await asyncio.to_thread(self.is_backup_due, tenant_id):
                    logger.info("Retry not needed, backup already current", extra={"tenant_id": tenant_id})
                    return
                result = await self._run_backup(tenant_id)
            if result.success:
                logger.info("Retry succeeded", extra={"tenant_id": tenant_id})
            else:
                logger.warning(
                    f"Retry failed ({result.error}); waiting for next regular check", extra={"tenant_id": tenant_id}
                )
        except Exception as e:
            logger.exception(f"Retry crashed: {e}", extra={"tenant_id": tenant_id})
        finally:
            self._retry_tasks.pop(tenant_id, None)
            self._publish_retries()

    def _publish_retries(self) -> None:
        # status() is read from the health server thread
        self._pending_retries = tuple(sorted(self._retry_tasks))


# Global scheduler singleton
_scheduler: BackupScheduler | None = None


def get_scheduler(factory: Callable[[], BackupScheduler] | None = None) -> BackupScheduler:
    """Get the global scheduler instance (built from settings on first call)."""
    global _scheduler
    if _scheduler is None:
        if factory is None:
            from storefront.services.backup.wiring import build_scheduler

            factory = build_scheduler
        _scheduler = factory()
    return _scheduler


def reset_scheduler() -> None:
    """Reset the global scheduler (for testing)."""
    global _scheduler
    _scheduler = None
