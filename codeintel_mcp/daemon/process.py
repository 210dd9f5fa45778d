"""Ownership wrapper around one spawned daemon subprocess."""

import asyncio
from typing import AsyncIterator, List, Optional

from codeintel_mcp.daemon.errors import DaemonSpawnError
from codeintel_mcp.utils.logging_utils import Logger

# longest stderr line kept; longer ones are dropped
STDERR_LINE_LIMIT = 1024 * 1024


class ProcessHandle:
    """Owns one asyncio subprocess and its diagnostic (stderr) stream."""

    def __init__(self, process: asyncio.subprocess.Process, args: List[str]):
        self.process = process
        self.args = args

    @classmethod
    async def spawn(
        cls, args: List[str], cwd: Optional[str] = None, limit: int = STDERR_LINE_LIMIT,
    ) -> "ProcessHandle":
        """Start the daemon process.

        Args:
            args: executable and arguments
            cwd: working directory (defaults to the current one)
            limit: longest diagnostic line, in bytes

        Raises:
            DaemonSpawnError: the executable could not be launched
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                limit=limit,
            )
        except OSError as e:
            raise DaemonSpawnError(f"Could not start codeintel daemon ({args[0]}): {e}")
        return cls(process, args)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    @property
    def is_alive(self) -> bool:
        return self.process.returncode is None

    async def lines(self) -> AsyncIterator[str]:
        """Yield diagnostic lines until the stream closes."""
        stream = self.process.stderr
        if stream is None:
            return
        while True:
            try:
                data = await stream.readline()
            except ValueError as e:
                # the reader has already discarded the oversized line
                Logger.instance().warning(f"dropped oversized codeintel diagnostic line: {e}")
                continue
            if not data:
                break
            yield data.decode("utf-8", errors="replace").rstrip("\r\n")

    def terminate(self):
        """Ask the process to exit; no-op once it has exited."""
        if not self.is_alive:
            return
        try:
            self.process.terminate()
        except ProcessLookupError:
            pass  # exited between the check and the signal

    async def wait(self) -> int:
        return await self.process.wait()

    async def close(self, timeout: float = 5.0) -> int:
        """Terminate and reap the process, killing it after ``timeout``."""
        self.terminate()
        try:
            return await asyncio.wait_for(self.process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            self.process.kill()
            return await self.process.wait()
