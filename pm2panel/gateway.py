"""
Gateway between the HTTP layer and PM2.

Owns the connection state to the PM2 daemon and translates control intents
(list, start, restart, stop, delete, describe) into PM2 client calls. The
connection is established once at startup; until it succeeds every operation
fails fast with SupervisorNotReady. There is no automatic reconnection.
"""

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol

from .exceptions import (
    ProcessNotFound,
    SandboxViolation,
    StartValidationError,
    SupervisorCallError,
    SupervisorConnectionError,
    SupervisorNotReady,
)
from .models import ActionResult, ProcessDescriptor, ProcessDetail, StartRequest, StartResult
from .sandbox import PathSandbox, SandboxRejection

logger = logging.getLogger(__name__)

ALL = "all"


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class SupervisorClient(Protocol):
    """The subset of the PM2 control API the gateway uses."""

    async def ping(self) -> None: ...

    async def jlist(self) -> list[dict[str, Any]]: ...

    async def describe(self, target: str) -> list[dict[str, Any]]: ...

    async def start(self, app: dict[str, Any], env: Optional[dict[str, str]] = None) -> list[dict[str, Any]]: ...

    async def restart(self, target: str) -> None: ...

    async def stop(self, target: str) -> None: ...

    async def delete(self, target: str) -> None: ...


class SupervisorGateway:
    """Connection-state-aware adapter over a PM2 client."""

    def __init__(self, client: SupervisorClient, sandbox: PathSandbox):
        self.client = client
        self.sandbox = sandbox
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def status(self) -> dict:
        return {"state": self._state.value, "ready": self.ready}

    def ensure_ready(self):
        if not self.ready:
            raise SupervisorNotReady()

    async def connect(self):
        """Connect to PM2 once. Raises SupervisorConnectionError on failure."""
        if self.ready:
            return
        self._state = ConnectionState.CONNECTING
        try:
            await self.client.ping()
        except SupervisorCallError as e:
            self._state = ConnectionState.FAILED
            logger.error(f"Error connecting to PM2: {e}")
            raise SupervisorConnectionError(str(e))
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to PM2 successfully.")

    def disconnect(self):
        if self._state is not ConnectionState.DISCONNECTED:
            logger.info("Disconnected from PM2")
        self._state = ConnectionState.DISCONNECTED

    async def list(self) -> list[ProcessDescriptor]:
        """Query PM2 for the current process list."""
        self.ensure_ready()
        return [ProcessDescriptor.from_pm2(entry) for entry in await self.client.jlist()]

    async def describe(self, process_id: str) -> ProcessDetail:
        """Return details (including log paths) for one process."""
        self.ensure_ready()
        try:
            entries = await self.client.describe(str(process_id))
        except SupervisorCallError as e:
            logger.error(f"Error describing process {process_id}: {e}")
            raise ProcessNotFound()
        if not entries:
            raise ProcessNotFound()
        return ProcessDetail.from_pm2(entries[0])

    async def start(self, request: StartRequest) -> StartResult:
        """
        Start a script from the sandbox under PM2.

        The script must resolve inside the base directory and exist. It runs
        with its parent directory as working directory and inherits this
        process's environment.
        """
        self.ensure_ready()
        if not request.script or not request.name:
            raise StartValidationError("script and name are required")

        script_path = await asyncio.to_thread(self._resolve_script, request.script, request.name)

        app = {
            "script": str(script_path),
            "name": request.name,
            "args": list(request.args),
            "instances": request.instances,
            "exec_mode": request.exec_mode,
            "cwd": str(script_path.parent),
        }
        entries = await self.client.start(app, env=dict(os.environ))
        if not entries:
            raise SupervisorCallError(f"PM2 did not report a process named {request.name!r}")

        first = entries[0]
        logger.info(f"Started {request.name} ({script_path}) as pm_id {first.get('pm_id')}")
        return StartResult(pid=first.get("pid"), id=first.get("pm_id"))

    def _resolve_script(self, script: str, name: str) -> Path:
        """Sandbox-resolve a script path; it must be an existing file."""
        script_path = self.sandbox.resolve(script)
        if isinstance(script_path, SandboxRejection):
            logger.warning(f"Sandbox violation for script {script!r}: {script_path.reason}")
            raise SandboxViolation("Script path not allowed or does not exist")
        if not script_path.is_file():
            logger.warning(f"Rejected start of {name!r}: script {script!r} does not exist")
            raise SandboxViolation("Script path not allowed or does not exist")
        return script_path

    async def _action(self, action: str, target: str) -> ActionResult:
        self.ensure_ready()
        try:
            await getattr(self.client, action)(str(target))
        except SupervisorCallError as e:
            logger.error(f"PM2 {action} {target} failed: {e}")
            return ActionResult(ok=False, error=str(e))
        logger.info(f"PM2 {action} {target}")
        return ActionResult(ok=True)

    async def restart(self, process_id: str) -> ActionResult:
        return await self._action("restart", process_id)

    async def stop(self, process_id: str) -> ActionResult:
        return await self._action("stop", process_id)

    async def delete(self, process_id: str) -> ActionResult:
        return await self._action("delete", process_id)

    async def restart_all(self) -> ActionResult:
        return await self._action("restart", ALL)

    async def stop_all(self) -> ActionResult:
        return await self._action("stop", ALL)
