"""Tests for the health check server."""

from datetime import datetime

import httpx
import pytest

from storefront.services.backup import health
from storefront.services.backup.health import backup_state, record_sweep, start_health_server
from storefront.services.backup.scheduler import SweepReport


@pytest.fixture(autouse=True)
def clean_state():
    saved = dict(backup_state)
    yield
    backup_state.clear()
    backup_state.update(saved)
    health._status_provider = None


@pytest.fixture
def http():
    with httpx.Client(trust_env=False, timeout=5.0) as client:
        yield client


@pytest.fixture
def serve():
    servers = []

    def _serve(status_provider=None):
        server = start_health_server(0, status_provider=status_provider, host="127.0.0.1")
        servers.append(server)
        return f"http://127.0.0.1:{server.server_address[1]}"

    yield _serve
    for server in servers:
        server.shutdown()
        server.server_close()


class TestRecordSweep:
    def test_success(self):
        record_sweep(SweepReport(started_at=datetime(2026, 1, 1), succeeded=["a", "b"]))
        assert backup_state["status"] == "ready"
        assert backup_state["backups_completed"] >= 2

    def test_failure(self):
        record_sweep(SweepReport(started_at=datetime(2026, 1, 1), failed={"a": "upload failed"}))
        assert backup_state["status"] == "degraded"
        assert backup_state["last_error"] == "a: upload failed"


class TestHealthServer:
    def test_health_and_live(self, serve, http):
        url = serve(lambda: {"running": True, "pending_retries": []})
        response = http.get(f"{url}/health")
        assert response.status_code == 200
        assert response.json()["scheduler"]["running"] is True
        assert http.get(f"{url}/live").json() == {"alive": True}
        assert http.get(f"{url}/nope").status_code == 404

    def test_ready_requires_running_scheduler(self, serve, http):
        running = {"running": False}
        url = serve(lambda: dict(running))
        backup_state["status"] = "ready"

        assert http.get(f"{url}/ready").status_code == 503
        running["running"] = True
        assert http.get(f"{url}/ready").status_code == 200

    def test_not_ready_while_starting(self, serve, http):
        url = serve(lambda: {"running": True})
        backup_state["status"] = "starting"
        assert http.get(f"{url}/ready").status_code == 503
