"""shared fixtures and fakes for codeintel tests"""

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import unused_port

from codeintel_mcp.utils.logging_utils import Logger


# ═══════════════════════════════════════════════════════════════════════════
# fakes
# ═══════════════════════════════════════════════════════════════════════════


class FakeProcessHandle:
    """scripted stand-in for ProcessHandle"""

    def __init__(self, pid: int):
        self.pid = pid
        self.terminated = False
        self._lines = asyncio.Queue()
        self._exit = asyncio.get_running_loop().create_future()

    @property
    def is_alive(self) -> bool:
        return not self._exit.done()

    def emit(self, line: str):
        self._lines.put_nowait(line)

    def break_output(self, error: Exception):
        """make the diagnostic stream raise ``error``"""
        self._lines.put_nowait(error)

    def exit(self, code: int):
        if self._exit.done():
            return
        self._lines.put_nowait(None)
        self._exit.set_result(code)

    async def lines(self):
        while True:
            line = await self._lines.get()
            if line is None:
                return
            if isinstance(line, Exception):
                raise line
            yield line

    async def wait(self) -> int:
        return await self._exit

    def terminate(self):
        self.terminated = True
        self.exit(-15)


class FakeSpawner:
    """spawner that hands out FakeProcessHandles

    ``script`` is called with each new handle before it is returned.
    """

    def __init__(self, script=None, fail=None):
        self.script = script
        self.fail = fail
        self.calls = []
        self.handles = []

    async def __call__(self, args, cwd=None):
        self.calls.append(args)
        if self.fail is not None:
            raise self.fail
        handle = FakeProcessHandle(1000 + len(self.handles))
        self.handles.append(handle)
        if self.script is not None:
            self.script(handle)
        return handle


class RecordingPopup:
    def __init__(self, message):
        self.message = message
        self.hidden = False

    def hide(self):
        self.hidden = True


class RecordingNotifier:
    def __init__(self):
        self.popups = []
        self.errors = []

    @property
    def infos(self):
        return [p.message for p in self.popups]

    def show_info(self, message):
        popup = RecordingPopup(message)
        self.popups.append(popup)
        return popup

    def show_error(self, message):
        self.errors.append(message)


async def wait_until(predicate, timeout: float = 2.0):
    """poll until predicate() is true"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def listening(handle):
    handle.emit("!!Daemon listening")


# ═══════════════════════════════════════════════════════════════════════════
# fixtures
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture(autouse=True)
def isolated_logger(tmp_path):
    """route log output into the test's temp directory"""
    Logger.reset_instance()
    Logger.instance(prefix="codeintel-test", log_dir=str(tmp_path / "logs"))
    yield
    Logger.reset_instance()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def daemon_server():
    """local HTTP server answering like the codeintel daemon

    set ``server.responder`` to change the answer; received requests are
    collected in ``server.received`` as (query dict, body) pairs.
    """

    class Server:
        host = "127.0.0.1"
        port = unused_port()
        received = []

        @staticmethod
        def responder(request):
            return web.json_response(
                [{"name": "strlen", "icon": "method"}],
                headers={"X-Server-Time": "12"},
            )

    async def handler(request):
        Server.received.append((dict(request.query), await request.text()))
        return Server.responder(request)

    app = web.Application()
    app.router.add_post("/", handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, Server.host, Server.port)
    await site.start()
    yield Server
    await runner.cleanup()
