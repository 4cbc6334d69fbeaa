"""
Data models for pm2panel.

Pydantic models for request bodies and for the read projections of PM2
processes. Nothing here is persisted; process data is queried live from PM2
on every request.
"""

import shlex
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class ProcessDescriptor(BaseModel):
    """A PM2 process as shown in the process list."""

    id: int
    name: str
    pid: Optional[int] = None
    status: str = "unknown"  # online, stopping, stopped, errored, launching, ...
    script: Optional[str] = None
    cpu: float = 0
    memory: int = 0
    uptime: Optional[int] = None  # epoch milliseconds

    @classmethod
    def from_pm2(cls, entry: dict[str, Any]) -> "ProcessDescriptor":
        env = entry.get("pm2_env") or {}
        monit = entry.get("monit") or {}
        return cls(
            id=entry.get("pm_id", env.get("pm_id")),
            name=entry.get("name", env.get("name", "")),
            pid=entry.get("pid"),
            status=env.get("status", "unknown"),
            script=env.get("pm_exec_path"),
            cpu=monit.get("cpu") or 0,
            memory=monit.get("memory") or 0,
            uptime=env.get("pm_uptime"),
        )


class ProcessDetail(ProcessDescriptor):
    """Process descriptor plus the paths of its log files."""

    out_log_path: Optional[str] = None
    err_log_path: Optional[str] = None
    cwd: Optional[str] = None
    exec_mode: Optional[str] = None
    restart_time: int = 0

    @classmethod
    def from_pm2(cls, entry: dict[str, Any]) -> "ProcessDetail":
        env = entry.get("pm2_env") or {}
        base = ProcessDescriptor.from_pm2(entry)
        return cls(
            **base.model_dump(),
            out_log_path=env.get("pm_out_log_path"),
            err_log_path=env.get("pm_err_log_path"),
            cwd=env.get("pm_cwd"),
            exec_mode=env.get("exec_mode"),
            restart_time=env.get("restart_time") or 0,
        )

    def log_path(self, kind: str) -> Optional[str]:
        return self.err_log_path if kind == "err" else self.out_log_path


class StartRequest(BaseModel):
    """Body of POST /api/start."""

    # Optional here so the route can answer 400 with a specific message
    script: Optional[str] = None
    name: Optional[str] = None
    args: list[str] = Field(default_factory=list)
    instances: int = Field(1, ge=1)
    exec_mode: Literal["fork", "cluster"] = "fork"

    @field_validator("args", mode="before")
    @classmethod
    def split_args(cls, value):
        """Accept a single command-line string as well as a list."""
        if value is None:
            return []
        if isinstance(value, str):
            return shlex.split(value)
        return value

    @field_validator("script", "name", mode="before")
    @classmethod
    def strip_blank(cls, value):
        if isinstance(value, str):
            value = value.strip()
        return value or None


class StartResult(BaseModel):
    ok: bool = True
    pid: Optional[int] = None
    id: int


class ActionResult(BaseModel):
    """Outcome of a restart/stop/delete call."""

    ok: bool
    error: Optional[str] = None


class BrowseResult(BaseModel):
    """A directory listing under the sandbox base."""

    path: str
    dirs: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""
