"""
Exception types for pm2panel.

Each error maps to one client-facing HTTP status in main.py.
"""


class PanelError(Exception):
    """Base class for all pm2panel errors."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or ""


class ConfigError(PanelError):
    """Missing or invalid configuration."""


class SupervisorNotReady(PanelError):
    """PM2 is not ready"""

    status_code = 503


class SupervisorConnectionError(PanelError):
    """Could not connect to PM2."""

    status_code = 503


class SupervisorCallError(PanelError):
    """A PM2 command failed."""


class StartValidationError(PanelError):
    """script and name are required"""

    status_code = 400


class ProcessNotFound(PanelError):
    """Process not found"""

    status_code = 404


class SandboxViolation(PanelError):
    """Access denied"""

    status_code = 403


class DirectoryReadError(PanelError):
    """Could not read directory. Verify it exists and you have permissions."""


class LogReadError(PanelError):
    """Could not read log file"""



class InvalidCredentials(PanelError):
    """Invalid credentials"""

    status_code = 401


class SessionError(PanelError):
    """Could not log out"""
