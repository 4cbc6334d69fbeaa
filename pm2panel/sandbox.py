"""
Path confinement for user-supplied paths.

Every path that comes from a request (script to start, directory to browse)
is resolved here against the configured base directory. The check is done on
canonical paths and on path-segment boundaries, so "../" sequences, absolute
overrides, symlinks pointing outside and sibling directories that merely share
a string prefix with the base (e.g. "/srv/apps-evil" for "/srv/apps") are all
rejected.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .exceptions import SandboxViolation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SandboxRejection:
    """A path that failed confinement."""

    requested: str
    reason: str

    def __bool__(self) -> bool:
        return False


class PathSandbox:
    """Resolves relative paths inside a fixed base directory."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir).expanduser().resolve()

    def resolve(self, relative: str = "") -> Union[Path, SandboxRejection]:
        """Resolve `relative` against the base, or return a SandboxRejection."""
        relative = relative or ""
        if "\x00" in relative:
            return SandboxRejection(relative, "invalid path: embedded null byte")
        if relative.startswith(("/", "\\")) or Path(relative).is_absolute():
            return SandboxRejection(relative, "absolute paths are not allowed")
        try:
            candidate = (self.base_dir / relative).resolve()
        except (ValueError, OSError, RuntimeError) as e:
            # symlink loops
            return SandboxRejection(relative, f"invalid path: {e}")

        if candidate != self.base_dir and self.base_dir not in candidate.parents:
            return SandboxRejection(relative, "path escapes base directory")
        return candidate

    def require(self, relative: str = "") -> Path:
        """Like resolve(), but raise SandboxViolation on rejection."""
        result = self.resolve(relative)
        if isinstance(result, SandboxRejection):
            logger.warning(f"Sandbox violation for {result.requested!r}: {result.reason}")
            raise SandboxViolation()
        return result

    def relative_to_base(self, path: Path) -> str:
        """Render a resolved path relative to the base ("" for the base itself)."""
        rel = path.relative_to(self.base_dir)
        return "" if rel == Path(".") else rel.as_posix()
