# tests/conftest.py
import logging
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from pm2panel.config import Config
from pm2panel.exceptions import SupervisorCallError
from pm2panel.main import create_app

ADMIN_USER = "admin"
ADMIN_PASSWORD = "correct horse"


# ------------------------------------------------------------------------------
# 1. Global Configuration
# ------------------------------------------------------------------------------

@pytest.fixture(scope="session")
def anyio_backend():
    """Run anyio-marked tests on asyncio only."""
    return "asyncio"


@pytest.fixture(autouse=True)
def setup_test_logging(caplog):
    caplog.set_level(logging.DEBUG)


# ------------------------------------------------------------------------------
# 2. Fake PM2
# ------------------------------------------------------------------------------

class FakePm2Client:
    """
    In-memory stand-in for Pm2Client.

    Keeps a process table shaped like `pm2 jlist` output and records every
    call so tests can assert what reached PM2.
    """

    def __init__(self, log_dir: Path):
        self.log_dir = log_dir
        self.processes: list[dict] = []
        self.calls: list[tuple] = []
        self.fail_ping = False
        self.fail_actions: dict[str, str] = {}
        self._next_id = 0
        self._next_pid = 4000

    def add(self, name: str, script: str = "/srv/app.js", status: str = "online") -> dict:
        pm_id = self._next_id
        self._next_id += 1
        self._next_pid += 1
        entry = {
            "pm_id": pm_id,
            "name": name,
            "pid": self._next_pid if status == "online" else 0,
            "monit": {"cpu": 1.5, "memory": 2048},
            "pm2_env": {
                "pm_id": pm_id,
                "status": status,
                "pm_exec_path": script,
                "pm_uptime": 1700000000000,
                "pm_out_log_path": str(self.log_dir / f"{name}-out.log"),
                "pm_err_log_path": str(self.log_dir / f"{name}-error.log"),
                "exec_mode": "fork_mode",
                "restart_time": 0,
            },
        }
        self.processes.append(entry)
        return entry

    def _targets(self, target: str) -> list[dict]:
        if target == "all":
            return list(self.processes)
        return [p for p in self.processes if str(p["pm_id"]) == target or p["name"] == target]

    async def ping(self):
        self.calls.append(("ping",))
        if self.fail_ping:
            raise SupervisorCallError("connect ECONNREFUSED")

    async def jlist(self):
        self.calls.append(("jlist",))
        return [dict(p) for p in self.processes]

    async def describe(self, target):
        self.calls.append(("describe", target))
        return self._targets(target)

    async def start(self, app, env=None):
        self.calls.append(("start", app, env))
        entries = [self.add(app["name"], script=app["script"]) for _ in range(app.get("instances", 1))]
        for entry in entries:
            entry["pm2_env"]["status"] = "launching"
        return entries

    async def _action(self, action, target, status):
        self.calls.append((action, target))
        if action in self.fail_actions:
            raise SupervisorCallError(self.fail_actions[action])
        matched = self._targets(target)
        if not matched:
            raise SupervisorCallError(f"Process or Namespace {target} not found")
        for entry in matched:
            if status is None:
                self.processes.remove(entry)
            else:
                entry["pm2_env"]["status"] = status
                entry["pid"] = 0 if status == "stopped" else entry["pid"]

    async def restart(self, target):
        await self._action("restart", target, "online")

    async def stop(self, target):
        await self._action("stop", target, "stopped")

    async def delete(self, target):
        await self._action("delete", target, None)

    def called(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


# ------------------------------------------------------------------------------
# 3. Filesystem and app fixtures
# ------------------------------------------------------------------------------

@pytest.fixture
def base_dir(tmp_path) -> Path:
    """
    A sandbox base with a few scripts, plus a sibling "base-evil" directory
    that shares the base's name as a string prefix.
    """
    base = tmp_path / "base"
    (base / "app").mkdir(parents=True)
    (base / "app" / "server.js").write_text("console.log('hi')\n")
    (base / "tool.js").write_text("console.log('tool')\n")
    (base / "notes.txt").write_text("not a script\n")
    (base / "empty").mkdir()

    evil = tmp_path / "base-evil"
    evil.mkdir()
    (evil / "evil.js").write_text("process.exit(1)\n")
    return base


@pytest.fixture
def fake_pm2(tmp_path) -> FakePm2Client:
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return FakePm2Client(log_dir)


@pytest.fixture
def config(base_dir) -> Config:
    return Config(
        admin_user=ADMIN_USER,
        admin_password=ADMIN_PASSWORD,
        session_secret="test-session-secret",
        base_dir=base_dir,
        rate_limit="",
        log_file=None,
    )


@pytest.fixture
def app(config, fake_pm2):
    return create_app(config, client=fake_pm2)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def logged_in(client):
    response = client.post("/login", json={"username": ADMIN_USER, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client
