"""Supervisor for the single codeintel daemon process.

The supervisor owns exactly one DaemonRecord at a time. A record is never
turned into a different daemon: when the daemon must be respawned the
record is dropped and the next ``ensure_ready`` creates a new one.

Lifecycle:

  ABSENT --ensure_ready--> STARTING --"!!Daemon listening"--> LISTENING
  STARTING --exit 98--> ALREADY_SERVING   (another instance owns the port)
  any --exit 0, or exit after listening--> ABSENT  (respawned lazily)
  STARTING --exit != 0, never listened--> DEAD_FATAL (until reset())

Each record is driven by one ordered event queue (Spawned, DiagnosticLine,
Exited, TimerFired), consumed by a single task.
"""

import asyncio
import shlex
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from codeintel_mcp.daemon.errors import (
    DaemonCrashedError,
    DaemonError,
    DaemonExitedError,
    DaemonSpawnError,
    DaemonStartingError,
)
from codeintel_mcp.daemon.health import (
    INDEXING_NOTICE_DELAY,
    HealthMonitor,
    SignalKind,
)
from codeintel_mcp.daemon.notify import LoggerNotifier, Notifier
from codeintel_mcp.daemon.process import ProcessHandle
from codeintel_mcp.utils.config_utils import get_config_float, get_config_int, get_config_value
from codeintel_mcp.utils.logging_utils import Logger

DAEMON_PORT = 10881
ERROR_PORT_IN_USE = 98
# the daemon is recycled after this long to bound its memory growth
IDLE_KILL_SECONDS = 30 * 60
DEFAULT_LAUNCH_COMMAND = "{python} -m codeintel daemon --port {port}"

SPAWN_FAILED_MESSAGE = "Could not start codeintel completion daemon. Please reload to try again."
MISSING_PACKAGE_HINT = (
    "CodeIntel package not found. Please run 'pip install codeintel' "
    "or 'sudo pip install codeintel' to enable code completion."
)

Spawner = Callable[..., Awaitable[Any]]


class DaemonState(Enum):
    ABSENT = "absent"
    STARTING = "starting"
    LISTENING = "listening"
    ALREADY_SERVING = "already_serving"
    DEAD_FATAL = "dead_fatal"


# ═══════════════════════════════════════════════════════════════════════════
# events
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class Spawned:
    handle: Any


@dataclass
class DiagnosticLine:
    text: str


@dataclass
class Exited:
    returncode: int


@dataclass
class TimerFired:
    pass


# ═══════════════════════════════════════════════════════════════════════════
# DaemonRecord
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class DaemonRecord:
    """State of one daemon incarnation."""

    last_error: Optional[DaemonError]
    monitor: HealthMonitor
    handle: Optional[Any] = None
    listening: bool = False
    already_serving: bool = False
    stop_requested: bool = False
    idle_timer: Optional[asyncio.TimerHandle] = None
    output: List[str] = field(default_factory=list)
    events: asyncio.Queue = field(default_factory=asyncio.Queue)
    # resolved once with (error, dont_retry) for the caller that spawned
    ready: Optional[asyncio.Future] = None
    task: Optional[asyncio.Task] = None

    @property
    def output_text(self) -> str:
        return "\n".join(self.output)

    def cancel_idle_timer(self):
        if self.idle_timer is not None:
            self.idle_timer.cancel()
            self.idle_timer = None


# ═══════════════════════════════════════════════════════════════════════════
# DaemonSupervisor
# ═══════════════════════════════════════════════════════════════════════════


class DaemonSupervisor:
    """Starts, monitors and recycles the codeintel daemon."""

    def __init__(
        self,
        launch_command: str = DEFAULT_LAUNCH_COMMAND,
        port: int = DAEMON_PORT,
        idle_timeout: float = IDLE_KILL_SECONDS,
        notice_delay: float = INDEXING_NOTICE_DELAY,
        notifier: Optional[Notifier] = None,
        spawner: Optional[Spawner] = None,
        cwd: Optional[str] = None,
    ):
        """initialize supervisor

        Args:
            launch_command: shell-style command line; "{python}" and "{port}"
                            are substituted before it is split
            port: fixed local port the daemon listens on
            idle_timeout: seconds after which a listening daemon is recycled
            notice_delay: debounce for "Updating indexes" notices
            notifier: receives user-facing notices (defaults to the log)
            spawner: coroutine (args, cwd=None) -> process handle
            cwd: working directory for the daemon
        """
        self.launch_command = launch_command
        self.port = port
        self.idle_timeout = idle_timeout
        self.notice_delay = notice_delay
        self.notifier = notifier or LoggerNotifier()
        self.spawner = spawner or ProcessHandle.spawn
        self.cwd = cwd
        self.spawn_count = 0
        self._record: Optional[DaemonRecord] = None
        self._showed_missing_package = False

    @classmethod
    def from_config(cls, **kwargs) -> "DaemonSupervisor":
        """Build a supervisor from the [daemon] section of config.ini."""
        kwargs.setdefault(
            "launch_command",
            get_config_value("daemon", "launch_command", DEFAULT_LAUNCH_COMMAND),
        )
        kwargs.setdefault("port", get_config_int("daemon", "port", DAEMON_PORT))
        kwargs.setdefault(
            "idle_timeout",
            get_config_float("daemon", "idle_kill_minutes", IDLE_KILL_SECONDS / 60) * 60,
        )
        kwargs.setdefault(
            "notice_delay",
            get_config_float("daemon", "indexing_notice_delay", INDEXING_NOTICE_DELAY),
        )
        return cls(**kwargs)

    # ═══════════════════════════════════════════════════════════════════
    # public API
    # ═══════════════════════════════════════════════════════════════════

    @property
    def record(self) -> Optional[DaemonRecord]:
        return self._record

    @property
    def state(self) -> DaemonState:
        record = self._record
        if record is None:
            return DaemonState.ABSENT
        if record.already_serving:
            return DaemonState.ALREADY_SERVING
        if record.listening:
            return DaemonState.LISTENING
        if isinstance(record.last_error, DaemonStartingError):
            return DaemonState.STARTING
        return DaemonState.DEAD_FATAL

    def launch_args(self) -> List[str]:
        command = self.launch_command.format(python=sys.executable, port=self.port)
        args = shlex.split(command)
        if not args:
            raise ValueError("empty launch command")
        return args

    async def ensure_ready(self) -> bool:
        """Make sure the daemon is reachable on its port.

        The first caller to find no daemon spawns one and waits for the
        outcome. Callers arriving while it starts are not queued: they get
        the still-starting error right away and should retry later.

        Returns:
            dont_retry: True when the caller must not try to recover from a
            failed exchange by respawning (another instance owns the port)

        Raises:
            DaemonError: not ready; ``dont_retry`` tells whether a respawn
            could help
        """
        record = self._record
        if record is None:
            record = self._start()
            error, dont_retry = await asyncio.shield(record.ready)
        else:
            error, dont_retry = record.last_error, False

        if error is not None:
            self._report(error)
            raise error
        return dont_retry

    def discard(self):
        """Drop the current record so the next ensure_ready spawns afresh.

        An owned process is asked to terminate; its exit is still
        processed but no longer affects the supervisor.
        """
        record = self._record
        if record is None:
            return
        self._record = None
        record.stop_requested = True
        record.cancel_idle_timer()
        if record.handle is not None:
            record.handle.terminate()
        Logger.instance().info("codeintel daemon record discarded")

    def reset(self):
        """External reset, e.g. after a fatal crash has been fixed."""
        self.discard()

    async def shutdown(self):
        """Terminate the owned daemon and wait for its task to finish."""
        record = self._record
        self.discard()
        if record is not None and record.task is not None:
            await record.task

    def status(self) -> Dict[str, Any]:
        record = self._record
        handle = record.handle if record is not None else None
        return {
            "state": self.state.value,
            "port": self.port,
            "pid": getattr(handle, "pid", None) if handle is not None else None,
            "spawn_count": self.spawn_count,
            "last_error": str(record.last_error) if record and record.last_error else None,
        }

    # ═══════════════════════════════════════════════════════════════════
    # internal: lifecycle
    # ═══════════════════════════════════════════════════════════════════

    def _start(self) -> DaemonRecord:
        loop = asyncio.get_running_loop()
        record = DaemonRecord(
            last_error=DaemonStartingError(),
            monitor=HealthMonitor(self.notifier, self.notice_delay),
        )
        record.ready = loop.create_future()
        self._record = record
        record.task = loop.create_task(self._run(record))
        return record

    async def _run(self, record: DaemonRecord):
        self.spawn_count += 1
        try:
            args = self.launch_args()
            Logger.instance().info(f"starting codeintel daemon: {' '.join(args)}")
            handle = await self.spawner(args, cwd=self.cwd)
        except DaemonSpawnError as e:
            self._spawn_failed(record, e)
            return
        except (ValueError, KeyError, IndexError, TypeError) as e:
            self._spawn_failed(
                record,
                DaemonSpawnError(f"Invalid codeintel launch command {self.launch_command!r}: {e!r}"),
            )
            return

        record.events.put_nowait(Spawned(handle))
        pump = asyncio.create_task(self._pump(record, handle))
        try:
            while True:
                event = await record.events.get()
                if self._dispatch(record, event):
                    break
        finally:
            if not pump.done():
                pump.cancel()

    def _spawn_failed(self, record: DaemonRecord, error: DaemonSpawnError):
        record.last_error = error
        Logger.instance().error(str(error))
        self.notifier.show_error(SPAWN_FAILED_MESSAGE)
        self._resolve(record, error, True)

    async def _pump(self, record: DaemonRecord, handle):
        """Feed stderr lines, then the exit code, into the record's queue."""
        try:
            async for line in handle.lines():
                record.events.put_nowait(DiagnosticLine(line))
        except Exception as e:
            # without its diagnostics the daemon cannot be supervised
            Logger.instance().error(f"lost codeintel daemon output: {e!r}")
            record.stop_requested = True
            handle.terminate()
        returncode = await handle.wait()
        record.events.put_nowait(Exited(returncode))

    def _dispatch(self, record: DaemonRecord, event) -> bool:
        """Apply one event. Returns True once the daemon has exited."""
        if isinstance(event, Spawned):
            record.handle = event.handle
            Logger.instance().info(f"codeintel daemon spawned (pid {getattr(event.handle, 'pid', '?')})")
            if record.stop_requested:
                event.handle.terminate()
        elif isinstance(event, DiagnosticLine):
            self._on_line(record, event.text)
        elif isinstance(event, TimerFired):
            if record.handle is not None and record.handle.is_alive:
                Logger.instance().info("recycling idle codeintel daemon")
                record.stop_requested = True
                record.handle.terminate()
        elif isinstance(event, Exited):
            self._on_exit(record, event.returncode)
            return True
        return False

    def _on_line(self, record: DaemonRecord, text: str):
        record.output.append(text)
        signal = record.monitor.feed(text)
        if signal is None:
            Logger.instance().debug(f"daemon: {text}")
        elif signal.kind is SignalKind.LISTENING and not record.listening:
            self._on_listening(record)

    def _on_listening(self, record: DaemonRecord):
        record.last_error = None
        record.listening = True
        loop = asyncio.get_running_loop()
        record.idle_timer = loop.call_later(
            self.idle_timeout, record.events.put_nowait, TimerFired()
        )
        Logger.instance().info(f"codeintel daemon listening on port {self.port}")
        self._resolve(record, None, False)

    def _on_exit(self, record: DaemonRecord, returncode: int):
        record.cancel_idle_timer()
        record.monitor.close()
        record.listening = False
        listened = record.monitor.listening_seen

        if returncode == ERROR_PORT_IN_USE and not listened and not record.stop_requested:
            # someone else is already serving on our port
            Logger.instance().info(f"codeintel daemon already running on port {self.port}")
            record.last_error = None
            record.already_serving = True
            self._resolve(record, None, True)
            return

        if returncode == 0 or listened or record.stop_requested:
            Logger.instance().info(f"codeintel daemon exited (code {returncode})")
            record.last_error = DaemonExitedError(
                f"codeintel daemon exited before listening (code {returncode})"
            )
            if self._record is record:
                self._record = None
            self._resolve(record, record.last_error, False)
            return

        error = DaemonCrashedError(record.output_text, returncode)
        Logger.instance().error(f"codeintel daemon crashed (code {returncode})")
        record.last_error = error
        self._resolve(record, error, True)

    def _resolve(self, record: DaemonRecord, error: Optional[DaemonError], dont_retry: bool):
        if record.ready is not None and not record.ready.done():
            record.ready.set_result((error, dont_retry))

    def _report(self, error: DaemonError):
        if error.is_missing_package and not self._showed_missing_package:
            self._showed_missing_package = True
            self.notifier.show_error(MISSING_PACKAGE_HINT)
