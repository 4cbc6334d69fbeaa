"""
Configuration for the pm2panel service.

Loads settings from environment variables (and a .env file, if present).
The admin password and session secret have no defaults and must be set.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigError

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """pm2panel configuration."""

    # Credentials
    admin_password: Optional[str] = None
    session_secret: Optional[str] = None
    admin_user: str = "admin"

    # Server
    host: str = "0.0.0.0"
    port: int = 4747
    cors_origin: Optional[str] = None
    rate_limit: str = "600 per 15 minutes"

    # Sandbox
    base_dir: Path = field(default_factory=Path.home)
    script_extension: str = ".js"

    # Sessions
    session_ttl: int = 24 * 60 * 60
    cookie_secure: bool = False

    # PM2
    pm2_binary: str = "pm2"
    pm2_timeout: float = 60.0

    # Logging
    log_file: Optional[Path] = None
    log_max_bytes: int = 10 * 1024 * 1024  # 10MB
    log_backup_count: int = 5
    log_level: str = "INFO"

    def __post_init__(self):
        self.base_dir = Path(self.base_dir).expanduser()
        if self.cors_origin is None:
            self.cors_origin = f"http://localhost:{self.port}"

    @classmethod
    def from_env(cls) -> "Config":
        """Build a config from the process environment."""
        log_file = os.environ.get("PANEL_LOG_FILE", str(Path.home() / ".pm2panel" / "panel.log"))
        return cls(
            admin_password=os.environ.get("ADMIN_PASSWORD") or None,
            session_secret=os.environ.get("SESSION_SECRET") or None,
            admin_user=os.environ.get("ADMIN_USER", "admin"),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "4747")),
            cors_origin=os.environ.get("CORS_ORIGIN") or None,
            rate_limit=os.environ.get("RATE_LIMIT", "600 per 15 minutes"),
            base_dir=Path(os.environ.get("PM2_BASE_DIR", str(Path.home()))),
            script_extension=os.environ.get("SCRIPT_EXTENSION", ".js"),
            session_ttl=int(os.environ.get("SESSION_TTL", str(24 * 60 * 60))),
            cookie_secure=_env_bool("COOKIE_SECURE"),
            pm2_binary=os.environ.get("PM2_BINARY", "pm2"),
            pm2_timeout=float(os.environ.get("PM2_TIMEOUT", "60")),
            log_file=Path(log_file).expanduser() if log_file else None,
            log_max_bytes=int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024))),
            log_backup_count=int(os.environ.get("LOG_BACKUP_COUNT", "5")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> "Config":
        """Raise ConfigError if a required setting is missing."""
        missing = []
        if not self.admin_password:
            missing.append("ADMIN_PASSWORD")
        if not self.session_secret:
            missing.append("SESSION_SECRET")
        if missing:
            raise ConfigError(f"{' and '.join(missing)} must be defined in the environment or .env file")
        if self.session_ttl <= 0:
            raise ConfigError("SESSION_TTL must be a positive number of seconds")
        return self
