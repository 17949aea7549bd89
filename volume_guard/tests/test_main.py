from __future__ import annotations

import pytest

from volume_guard import main as daemon_main
from volume_guard import poller
from volume_guard.app.enforcement import EnforcementWorkflow
from volume_guard.config import load_daemon_config
from volume_guard.notify import DisabledNotifier


class FakeClient:
    def __init__(self) -> None:
        self.list_calls = 0

    def list_servers(self):
        self.list_calls += 1
        return []

    def kill_server(self, identifier: str) -> int:
        return 204

    def suspend_server(self, internal_id: int) -> int:
        return 204


@pytest.fixture(autouse=True)
def reset_metrics():
    poller._reset_metrics_for_testing()
    yield
    poller._reset_metrics_for_testing()


@pytest.fixture
def daemon_env(monkeypatch, tmp_path):
    for name in ("VOLUME_GUARD_CONFIG_FILE", "WEBHOOK_URL", "CLIENT_API_KEY", "DRY_RUN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PANEL_URL", "panel.example.com")
    monkeypatch.setenv("ADMIN_API_KEY", "admin-key")
    monkeypatch.setenv("VOLUMES_DIRECTORY", str(tmp_path))
    monkeypatch.setattr(daemon_main, "load_dotenv", lambda: False)
    return tmp_path


def test_build_context_wires_components():
    config = load_daemon_config(
        {
            "PANEL_URL": "panel.example.com",
            "ADMIN_API_KEY": "admin-key",
            "SUDDEN_GROWTH_THRESHOLD_GB": "3",
            "DRY_RUN": "true",
        }
    )

    context = daemon_main.build_context(config, client=FakeClient())

    assert isinstance(context.workflow, EnforcementWorkflow)
    assert context.workflow.options.dry_run is True
    assert isinstance(context.workflow._notifier, DisabledNotifier)
    assert context.thresholds.sudden_growth_gb == 3.0
    assert context.thresholds.quota_headroom_factor == pytest.approx(1.10)
    assert context.volumes_root == "/var/lib/pterodactyl/volumes"


def test_once_with_empty_volumes_root_exits_cleanly(daemon_env):
    assert daemon_main.main(["--once", "--dry-run"]) == 0
    assert poller.get_poll_metrics()["cycles"] == 1


def test_invalid_configuration_exits_with_code_two(daemon_env, monkeypatch):
    monkeypatch.delenv("ADMIN_API_KEY")

    assert daemon_main.main(["--once"]) == 2


def test_once_returns_nonzero_when_cycle_crashes(daemon_env, monkeypatch):
    def crashing_job(context):
        raise RuntimeError("walk exploded")

    monkeypatch.setattr(daemon_main, "run_poll_job", crashing_job)

    assert daemon_main.main(["--once"]) == 1
