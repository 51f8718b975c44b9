"""CLI for the storefront backup service (Typer + Rich)."""

from __future__ import annotations

import asyncio
import signal
from datetime import UTC, datetime
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from storefront.config.logging import get_logger
from storefront.services.backup.config import BackupConfig
from storefront.services.backup.health import backup_state, record_sweep, start_health_server
from storefront.services.backup.service import MANUAL
from storefront.services.backup.wiring import BackupServices, build_services

app = typer.Typer(
    name="storefront-backup",
    help="Per-tenant storefront database backups.",
    no_args_is_help=True,
)
console = Console()
logger = get_logger("backup.cli")

TenantOption = Annotated[str, typer.Option("--tenant", "-t", help="Tenant (user) id")]
ArchiveOption = Annotated[str, typer.Option("--archive", "-a", help="Archive id")]


def _load_config() -> BackupConfig:
    """Load config, calling dotenv first for local runs."""
    load_dotenv()
    return BackupConfig.from_settings()


def _build_services(config: BackupConfig) -> BackupServices:
    return build_services(config)


def _format_size(size_bytes: int | None) -> str:
    """Human-readable file size."""
    if size_bytes is None:
        return "-"
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    else:
        return f"{size_bytes / (1024 * 1024):.2f} MB"


def _format_age(dt: datetime) -> str:
    """Human-readable age from a naive-UTC datetime."""
    now = datetime.now(UTC).replace(tzinfo=None)
    delta = now - dt
    hours = delta.total_seconds() / 3600
    if hours < 1:
        return f"{int(delta.total_seconds() / 60)}m ago"
    elif hours < 24:
        return f"{hours:.1f}h ago"
    else:
        return f"{delta.days}d ago"


# ── backup run ──────────────────────────────────────────────────────────


@app.command()
def run(tenant: TenantOption) -> None:
    """Create a manual backup for one tenant now."""
    services = _build_services(_load_config())

    with console.status(f"Backing up {tenant}..."):
        result = services.backup.create_backup(tenant, backup_type=MANUAL)

    if result.skipped:
        console.print(f"[yellow]Skipped:[/] storage not configured for {tenant}")
        raise typer.Exit(1)
    if not result.success:
        console.print(f"[red]Failed:[/] {result.error} ({result.error_kind.value})")
        raise typer.Exit(1)

    lines = [
        f"[bold]Archive:[/]  {result.archive_id}",
        f"[bold]Records:[/]  {result.total_records}",
        f"[bold]Size:[/]     {_format_size(result.size_bytes)}",
    ]
    if result.web_link:
        lines.append(f"[bold]Link:[/]     {result.web_link}")
    if result.pruned:
        lines.append(f"Cleaned up {result.pruned} old backup(s)")
    console.print(Panel("\n".join(lines), title="[green]Backup Complete[/]"))


@app.command()
def sweep() -> None:
    """Back up every tenant that is due, once."""
    services = _build_services(_load_config())
    scheduler = services.scheduler()
    report = asyncio.run(scheduler.run_due_backups())

    table = Table(title="Backup Sweep")
    table.add_column("Tenant", style="cyan")
    table.add_column("Result")
    for tenant_id in report.succeeded:
        table.add_row(tenant_id, "[green]OK[/]")
    for tenant_id, error in report.failed.items():
        table.add_row(tenant_id, f"[red]FAIL[/] {error}")
    for tenant_id in report.deferred:
        table.add_row(tenant_id, "[yellow]deferred[/]")
    for tenant_id in report.not_due:
        table.add_row(tenant_id, "[dim]not due[/]")

    if not table.row_count:
        console.print("[yellow]No tenants with configured storage.[/]")
        return
    console.print(table)

    if report.failed:
        raise typer.Exit(1)


# ── backup list ─────────────────────────────────────────────────────────


@app.command("list")
def list_backups(
    tenant: TenantOption,
    all_: Annotated[bool, typer.Option("--all", help="Include failed backups")] = False,
) -> None:
    """List archives for a tenant."""
    services = _build_services(_load_config())
    entries = services.backup.list_archives(tenant, include_failed=all_)

    if not entries:
        console.print("[yellow]No backups found.[/]")
        return

    table = Table(title=f"Backups for {tenant}")
    table.add_column("#", style="dim", width=4)
    table.add_column("Archive", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Records", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Date")
    table.add_column("Age", style="dim")

    for i, entry in enumerate(entries, 1):
        status_str = "[green]completed[/]" if entry.status == "completed" else f"[red]{entry.status}[/]"
        table.add_row(
            str(i),
            entry.archive_id,
            entry.backup_type,
            status_str,
            str(entry.total_record_count),
            _format_size(entry.size_bytes),
            entry.created_at.strftime("%Y-%m-%d %H:%M UTC"),
            _format_age(entry.created_at),
        )

    console.print(table)


@app.command()
def stats(tenant: TenantOption) -> None:
    """Show backup counts for a tenant."""
    services = _build_services(_load_config())
    s = services.backup.get_stats(tenant)
    last = f"{s.last_backup_at:%Y-%m-%d %H:%M UTC} ({_format_age(s.last_backup_at)})" if s.last_backup_at else "never"
    lines = [
        f"[bold]Total Backups:[/]  {s.total_backups}",
        f"[bold]Automatic:[/]      {s.automatic_backups}",
        f"[bold]Manual:[/]         {s.manual_backups}",
        f"[bold]Failed:[/]         {s.failed_backups}",
        f"[bold]Last Backup:[/]    {last}",
    ]
    console.print(Panel("\n".join(lines), title=f"Backup Stats: {tenant}"))


# ── backup restore ──────────────────────────────────────────────────────


@app.command()
def restore(
    tenant: TenantOption,
    archive: ArchiveOption,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Replace a tenant's data with the contents of an archive."""
    services = _build_services(_load_config())

    entry = services.backup.get_archive(tenant, archive)
    if entry is not None:
        console.print(
            f"Backup:   [bold]{entry.archive_id}[/] ({entry.total_record_count} records, "
            f"{entry.created_at.strftime('%Y-%m-%d %H:%M UTC')})"
        )
    console.print(f"Tenant:   [bold]{tenant}[/]")

    if not yes and not Confirm.ask("\n[yellow]This will overwrite the tenant's data. Continue?[/]"):
        console.print("Aborted.")
        raise typer.Exit(0)

    with console.status("Restoring..."):
        result = services.restore.restore(tenant, archive)

    if result.success:
        console.print(
            f"[green]Restore completed:[/] {result.restored_record_count} records in "
            f"{len(result.restored_collections)} collections."
        )
        return

    if result.partial:
        console.print(f"[yellow]Restore partial:[/] {result.error}")
        for name, error in result.failed_collections.items():
            console.print(f"  [red]FAIL[/] {name}: {error}")
    else:
        console.print(f"[red]Restore failed:[/] {result.error}")
    raise typer.Exit(1)


@app.command()
def delete(
    tenant: TenantOption,
    archive: ArchiveOption,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Delete one archive (storage object and metadata)."""
    services = _build_services(_load_config())

    if not yes and not Confirm.ask(f"\n[yellow]Delete backup {archive}?[/]"):
        console.print("Aborted.")
        raise typer.Exit(0)

    if not services.backup.delete_archive(tenant, archive):
        console.print(f"[red]Error:[/] Backup not found: {archive}")
        raise typer.Exit(1)
    console.print("[green]Backup deleted.[/]")


# ── backup status ───────────────────────────────────────────────────────


@app.command()
def status(
    tenant: Annotated[Optional[str], typer.Option("--tenant", "-t", help="Show timing for one tenant")] = None,
) -> None:
    """Show backup configuration and per-tenant timing."""
    config = _load_config()
    services = _build_services(config)
    scheduler = services.scheduler()

    lines = []
    lines.append(f"[bold]Storage:[/]        {config.storage_type}")
    if config.storage_type == "s3":
        lines.append(f"[bold]S3 Bucket:[/]      {config.s3_bucket}")
        lines.append(f"[bold]S3 Endpoint:[/]    {config.s3_endpoint_url}")
    elif config.storage_type == "local":
        lines.append(f"[bold]Backup Dir:[/]     {config.local_backup_dir.resolve()}")
    lines.append(f"[bold]Interval:[/]       {config.interval_minutes} min (poll {config.poll_seconds:.0f}s)")
    lines.append(f"[bold]Retention:[/]      {config.retention_count} backups per tenant")
    lines.append(f"[bold]Lease:[/]          {'enabled' if config.lease_enabled else 'disabled'}")

    tenants = [tenant] if tenant else services.backup.list_tenants()
    lines.append("")
    lines.append(f"[bold]Tenants:[/]        {len(tenants)}")
    for tenant_id in tenants:
        info = scheduler.backup_status(tenant_id)
        last = info["last_backup_time"]
        if last is None:
            lines.append(f"  {tenant_id}: [yellow]never backed up (due)[/]")
        elif info["is_overdue"]:
            lines.append(f"  {tenant_id}: last {_format_age(last)}, [yellow]due now[/]")
        else:
            lines.append(f"  {tenant_id}: last {_format_age(last)}, next in {info['minutes_until_next']}m")

    console.print(Panel("\n".join(lines), title="Backup Service Status"))


# ── backup serve ────────────────────────────────────────────────────────


@app.command()
def serve(
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Health server port")] = None,
) -> None:
    """Run as long-lived daemon with the backup scheduler + health server."""
    config = _load_config()
    services = _build_services(config)
    scheduler = services.scheduler(on_sweep=record_sweep)

    health_port = port if port is not None else config.health_port
    backup_state["status"] = "ready"
    start_health_server(health_port, status_provider=scheduler.status)
    console.print(f"Health server on port {health_port}")
    console.print(f"Backup interval: {config.interval_minutes} min, poll every {config.poll_seconds:.0f}s")

    async def _serve() -> None:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                pass  # Windows

        await scheduler.start()
        try:
            while not stop_event.is_set():
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=config.poll_seconds * 10)
                except asyncio.TimeoutError:
                    await scheduler.health_check()
        finally:
            await scheduler.stop()

    asyncio.run(_serve())
    console.print("Backup service stopped.")
