"""
Thin async wrapper around the pm2 command-line client.

Each call runs one `pm2` command in a worker thread and returns parsed output.
The PM2 daemon serializes conflicting mutations itself, so nothing here takes
a lock. Failures (nonzero exit, timeout, missing executable) raise
SupervisorCallError.
"""

import asyncio
import json
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Optional

from .exceptions import SupervisorCallError

logger = logging.getLogger(__name__)


class Pm2Client:
    """Runs pm2 CLI commands."""

    def __init__(self, binary: str = "pm2", timeout: float = 60.0):
        self.binary = binary
        self.timeout = timeout

    async def _run(self, *args: str, env: Optional[dict[str, str]] = None) -> str:
        cmd = [self.binary, *args]
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except FileNotFoundError:
            raise SupervisorCallError(f"pm2 executable not found: {self.binary}")
        except subprocess.TimeoutExpired:
            raise SupervisorCallError(f"pm2 {args[0]} timed out after {self.timeout}s")

        if result.returncode != 0:
            message = (result.stderr or result.stdout).strip() or f"exit status {result.returncode}"
            raise SupervisorCallError(f"pm2 {args[0]} failed: {message}")
        return result.stdout

    async def ping(self) -> None:
        """Make sure the PM2 daemon is up (the CLI spawns it if needed)."""
        await self._run("ping")

    async def jlist(self) -> list[dict[str, Any]]:
        """Return the raw JSON process list."""
        output = await self._run("jlist")
        # The CLI may print "[PM2] ..." notices before the JSON payload
        decoder = json.JSONDecoder()
        error = "no process list"
        offset = 0
        for line in output.splitlines(keepends=True):
            start = offset + len(line) - len(line.lstrip())
            offset += len(line)
            if not line.lstrip().startswith("["):
                continue
            try:
                data, _ = decoder.raw_decode(output, start)
            except json.JSONDecodeError as e:
                error = f"invalid JSON: {e}"
                continue
            if isinstance(data, list):
                return data
            error = "an unexpected payload"
        raise SupervisorCallError(f"pm2 jlist returned {error}")

    async def describe(self, target: str) -> list[dict[str, Any]]:
        """Return all entries whose pm_id or name equals `target`."""
        target = str(target)
        return [
            entry
            for entry in await self.jlist()
            if str(entry.get("pm_id")) == target or entry.get("name") == target
        ]

    async def start(self, app: dict[str, Any], env: Optional[dict[str, str]] = None) -> list[dict[str, Any]]:
        """
        Start an app from a declaration dict and return its new PM2 entries.

        The declaration is written to a temporary JSON file and passed to
        `pm2 start`, which accepts every option of an ecosystem file
        (args, instances, exec_mode, cwd). The new process inherits `env`.
        """
        before = {entry.get("pm_id") for entry in await self.jlist()}

        fd, path = tempfile.mkstemp(prefix="pm2panel-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump({"apps": [app]}, f)
            await self._run("start", path, env=env)
        finally:
            Path(path).unlink(missing_ok=True)

        entries = [entry for entry in await self.jlist() if entry.get("name") == app["name"]]
        created = [entry for entry in entries if entry.get("pm_id") not in before]
        return sorted(created or entries, key=lambda entry: entry.get("pm_id", 0))

    async def restart(self, target: str) -> None:
        await self._run("restart", str(target))

    async def stop(self, target: str) -> None:
        await self._run("stop", str(target))

    async def delete(self, target: str) -> None:
        await self._run("delete", str(target))
