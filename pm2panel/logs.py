"""
Log file streaming for PM2 processes.

PM2 writes each process's stdout and stderr to its own file; the paths come
from `pm2 jlist`. Files are streamed in chunks so arbitrarily large logs never
sit in memory. The file is opened before the response starts, so a read
failure still becomes an error response instead of an empty 200.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Literal, Optional

import anyio

from .exceptions import LogReadError
from .gateway import SupervisorGateway

logger = logging.getLogger(__name__)

LogKind = Literal["out", "err"]

CHUNK_SIZE = 64 * 1024


@dataclass
class LogStream:
    """Either an open log file to stream or a placeholder message."""

    kind: str
    path: Optional[Path] = None
    file: Optional[anyio.AsyncFile] = None
    placeholder: Optional[str] = None

    async def aclose(self):
        if self.file is not None:
            await self.file.aclose()


async def read_chunks(f: anyio.AsyncFile, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield an open file's bytes and close it, even if the consumer goes away."""
    async with f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


class LogStreamer:
    """Resolves and opens a process's log file via the gateway."""

    def __init__(self, gateway: SupervisorGateway, chunk_size: int = CHUNK_SIZE):
        self.gateway = gateway
        self.chunk_size = chunk_size

    async def open(self, process_id: str, kind: LogKind = "out") -> LogStream:
        """
        Raises ProcessNotFound if PM2 does not know `process_id` and
        LogReadError if the log file exists but cannot be opened.
        """
        detail = await self.gateway.describe(process_id)
        log_path = detail.log_path(kind)
        placeholder = LogStream(kind=kind, placeholder=f"Log for '{kind}' not found.")
        if not log_path or not await anyio.Path(log_path).is_file():
            return placeholder

        try:
            f = await anyio.open_file(log_path, "rb")
        except FileNotFoundError:
            # removed between the check and the open
            return placeholder
        except OSError as e:
            logger.error(f"Error reading {kind} log of process {process_id} ({log_path}): {e}")
            raise LogReadError()
        return LogStream(kind=kind, path=Path(log_path), file=f)

    def iter_bytes(self, stream: LogStream) -> AsyncIterator[bytes]:
        """Stream an opened LogStream; the file is closed when iteration ends."""
        return read_chunks(stream.file, self.chunk_size)
