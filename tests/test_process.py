"""ProcessHandle tests with real python subprocesses"""

import sys

import pytest

from codeintel_mcp.daemon.errors import DaemonSpawnError
from codeintel_mcp.daemon.process import ProcessHandle


def python_args(code: str):
    return [sys.executable, "-c", code]


class TestProcessHandle:
    """spawn, stream, terminate"""

    async def test_streams_stderr_lines(self):
        handle = await ProcessHandle.spawn(python_args(
            "import sys\n"
            "sys.stderr.write('first\\n')\n"
            "sys.stderr.write('!!Daemon listening\\n')\n"
            "sys.exit(3)\n"
        ))

        lines = [line async for line in handle.lines()]

        assert lines == ["first", "!!Daemon listening"]
        assert await handle.wait() == 3
        assert handle.returncode == 3
        assert handle.is_alive is False

    async def test_undecodable_bytes_replaced(self):
        handle = await ProcessHandle.spawn(python_args(
            "import sys; sys.stderr.buffer.write(b'bad \\xff byte\\n')"
        ))
        lines = [line async for line in handle.lines()]
        assert lines == ["bad \ufffd byte"]

    async def test_oversized_line_dropped(self):
        handle = await ProcessHandle.spawn(python_args(
            "import sys\n"
            "sys.stderr.write('x' * 5000 + '\\n')\n"
            "sys.stderr.write('!!Daemon listening\\n')\n"
        ), limit=1024)

        lines = [line async for line in handle.lines()]

        assert lines[-1] == "!!Daemon listening"
        assert all(len(line) <= 1024 for line in lines)
        assert await handle.wait() == 0

    async def test_long_line_within_default_limit(self):
        handle = await ProcessHandle.spawn(python_args(
            "import sys; sys.stderr.write('x' * 200000 + '\\n')"
        ))
        lines = [line async for line in handle.lines()]
        assert lines == ["x" * 200000]

    async def test_terminate_running_process(self):
        handle = await ProcessHandle.spawn(python_args("import time; time.sleep(30)"))
        assert handle.is_alive
        assert handle.pid > 0

        handle.terminate()
        returncode = await handle.wait()

        assert returncode != 0
        assert handle.is_alive is False

    async def test_terminate_after_exit_is_noop(self):
        handle = await ProcessHandle.spawn(python_args("pass"))
        await handle.wait()
        handle.terminate()
        assert handle.returncode == 0

    async def test_close_reaps_process(self):
        handle = await ProcessHandle.spawn(python_args("import time; time.sleep(30)"))
        await handle.close(timeout=5)
        assert handle.is_alive is False

    async def test_spawn_missing_executable(self):
        with pytest.raises(DaemonSpawnError) as exc_info:
            await ProcessHandle.spawn(["/nonexistent/codeintel-daemon"])
        assert exc_info.value.dont_retry is True
