"""
Directory browser used by the UI to pick scripts to start.

Lists subdirectories and script files of a directory inside the sandbox base.
"""

import logging
import os

from .exceptions import DirectoryReadError
from .models import BrowseResult
from .sandbox import PathSandbox

logger = logging.getLogger(__name__)


class FileBrowser:
    """Lists directories under a PathSandbox."""

    def __init__(self, sandbox: PathSandbox, extension: str = ".js"):
        self.sandbox = sandbox
        self.extension = extension

    def browse(self, relative: str = "") -> BrowseResult:
        """
        List `relative` (relative to the base directory).

        Raises SandboxViolation if the path escapes the base and
        DirectoryReadError if it cannot be listed (missing, not a directory,
        permission denied, removed while reading).
        """
        directory = self.sandbox.require(relative)

        dirs, files = [], []
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    if entry.is_dir():
                        dirs.append(entry.name)
                    elif entry.is_file() and entry.name.endswith(self.extension):
                        files.append(entry.name)
        except OSError as e:
            logger.error(f"Error reading directory {relative!r}: {e}")
            raise DirectoryReadError()

        return BrowseResult(path=self.sandbox.relative_to_base(directory), dirs=sorted(dirs), files=sorted(files))
