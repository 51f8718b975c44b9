"""Health check HTTP server for container orchestration."""

from __future__ import annotations

import json
import threading
from datetime import UTC, datetime
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import TYPE_CHECKING, Any, Callable

from storefront.config.logging import get_logger

if TYPE_CHECKING:
    from storefront.services.backup.scheduler import SweepReport

logger = get_logger("backup.health")

# Global state for health checks
backup_state: dict = {
    "status": "starting",
    "last_sweep": None,
    "last_error": None,
    "backups_completed": 0,
    "backups_failed": 0,
}

# Supplies the scheduler's status() when serving
_status_provider: Callable[[], dict[str, Any]] | None = None


def record_sweep(report: SweepReport) -> None:
    """Fold a sweep report into backup_state (used as scheduler on_sweep)."""
    backup_state["last_sweep"] = datetime.now(UTC).isoformat()
    backup_state["backups_completed"] += len(report.succeeded)
    backup_state["backups_failed"] += len(report.failed)
    if report.failed:
        backup_state["status"] = "degraded"
        backup_state["last_error"] = "; ".join(f"{t}: {e}" for t, e in sorted(report.failed.items()))
    else:
        backup_state["status"] = "ready"


class HealthHandler(BaseHTTPRequestHandler):
    """HTTP handler for health check endpoints."""

    def log_message(self, format, *args):
        pass  # Suppress default request logging

    def do_GET(self):
        scheduler = _status_provider() if _status_provider else None
        running = bool(scheduler and scheduler.get("running"))

        if self.path in ("/health", "/"):
            self._respond(200, {"status": "healthy", **backup_state, "scheduler": scheduler})
        elif self.path == "/ready":
            if running and backup_state["status"] in ("ready", "degraded", "running"):
                self._respond(200, {"ready": True})
            else:
                self._respond(503, {"ready": False, "status": backup_state["status"], "scheduler_running": running})
        elif self.path == "/live":
            self._respond(200, {"alive": True})
        else:
            self._respond(404, {"error": "not found"})

    def _respond(self, code: int, data: dict):
        body = json.dumps(data, default=str).encode()
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def start_health_server(
    port: int,
    status_provider: Callable[[], dict[str, Any]] | None = None,
    host: str = "0.0.0.0",
) -> HTTPServer:
    """Start health check HTTP server in a daemon thread."""
    global _status_provider
    _status_provider = status_provider
    server = HTTPServer((host, port), HealthHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info(f"Health server started on port {server.server_address[1]}")
    return server
