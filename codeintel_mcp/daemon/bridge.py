"""Request bridge between code-intelligence callers and the daemon.

The daemon is an HTTP server on localhost. A request is a POST whose body
is the full document text; everything else travels as query parameters:

  mode    command name ("completions", "goto_definitions")
  row     one-based line
  column  zero-based column
  path    document path without its leading slash

The answer is a JSON body. Refused connections mean no daemon is
listening; the bridge then discards the daemon and retries, at most once
per request.
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import aiohttp

from codeintel_mcp.daemon.errors import (
    DaemonNoServerError,
    DaemonNotRespondingError,
    DaemonParseError,
)
from codeintel_mcp.daemon.supervisor import DaemonSupervisor
from codeintel_mcp.utils.logging_utils import Logger

SERVER_TIME_HEADER = "X-Server-Time"


class Command(Enum):
    COMPLETIONS = "completions"
    GOTO_DEFINITIONS = "goto_definitions"


@dataclass(frozen=True)
class Position:
    """Zero-based cursor position."""

    row: int
    column: int


@dataclass
class PendingRequest:
    command: Command
    path: str
    document: str
    position: Position
    options: Dict[str, Any] = field(default_factory=dict)
    retried: bool = False

    def query(self) -> Dict[str, str]:
        """Query parameters for the daemon."""
        path = self.path[1:] if self.path.startswith("/") else self.path
        return {
            "mode": self.command.value,
            "row": str(self.position.row + 1),
            "column": str(self.position.column),
            "path": path,
        }

    def line_prefix(self) -> str:
        """Text of the cursor line up to the cursor."""
        # rows count "\n" only, as the daemon does
        lines = self.document.split("\n")
        if self.position.row >= len(lines):
            return ""
        return lines[self.position.row].rstrip("\r")[: self.position.column]


@dataclass
class RequestTiming:
    round_trip_ms: float
    server_time_ms: Optional[float] = None


@dataclass
class BridgeResult:
    payload: Any
    timing: RequestTiming


class RequestBridge:
    """Forwards requests to the daemon managed by ``supervisor``."""

    def __init__(self, supervisor: DaemonSupervisor, host: str = "localhost"):
        self.supervisor = supervisor
        self.host = host
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.supervisor.port}/"

    async def invoke(
        self,
        command: Command,
        path: str,
        document: str,
        position: Position,
        options: Optional[Dict[str, Any]] = None,
    ) -> BridgeResult:
        """Run one command against the daemon.

        Args:
            command: what to ask for
            path: document path
            document: full document text
            position: zero-based cursor position
            options: caller options, passed through untouched

        Returns:
            parsed payload with timing metadata

        Raises:
            DaemonError: readiness failed, the daemon did not answer, or
            its answer was not JSON
        """
        request = PendingRequest(command, path, document, position, options or {})
        return await self._invoke(request)

    async def complete(self, path: str, document: str, position: Position, options=None) -> BridgeResult:
        return await self.invoke(Command.COMPLETIONS, path, document, position, options)

    async def goto_definition(self, path: str, document: str, position: Position, options=None) -> BridgeResult:
        return await self.invoke(Command.GOTO_DEFINITIONS, path, document, position, options)

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    # ═══════════════════════════════════════════════════════════════════
    # internal
    # ═══════════════════════════════════════════════════════════════════

    async def _invoke(self, request: PendingRequest) -> BridgeResult:
        dont_retry = await self.supervisor.ensure_ready()

        start = time.monotonic()
        try:
            body, server_time = await self._exchange(request)
        except DaemonNoServerError:
            # retried lives on the request, so recursion can respawn only once
            if dont_retry or request.retried:
                raise DaemonNotRespondingError()
            request.retried = True
            Logger.instance().warning(
                f"no codeintel daemon on port {self.supervisor.port}, respawning"
            )
            self.supervisor.discard()
            return await self._invoke(request)
        round_trip_ms = (time.monotonic() - start) * 1000

        payload = self._parse(body)
        timing = RequestTiming(round_trip_ms, server_time)
        server_text = f"{server_time:.0f}ms" if server_time is not None else "?"
        Logger.instance().info(
            f"{request.command.value} in {round_trip_ms:.0f}ms (server: {server_text}): "
            f"{request.line_prefix()}"
        )
        return BridgeResult(payload, timing)

    async def _exchange(self, request: PendingRequest) -> Tuple[str, Optional[float]]:
        session = self._get_session()
        try:
            async with session.post(
                self.url,
                params=request.query(),
                data=request.document.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"},
            ) as response:
                # the daemon answers in utf-8 whatever its headers say
                body = (await response.read()).decode("utf-8", errors="replace")
                server_time = self._server_time(response.headers.get(SERVER_TIME_HEADER))
        except aiohttp.ClientConnectorError as e:
            raise DaemonNoServerError(str(e))
        except aiohttp.ClientError as e:
            Logger.instance().error(f"codeintel exchange failed: {e}")
            raise DaemonNotRespondingError() from e
        return body, server_time

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # no timeout: a slow analysis is still a valid answer
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None))
        return self._session

    @staticmethod
    def _server_time(value: Optional[str]) -> Optional[float]:
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    @staticmethod
    def _parse(body: str) -> Any:
        try:
            payload = json.loads(body)
        except ValueError:
            raise DaemonParseError(body)
        if not isinstance(payload, (dict, list)):
            raise DaemonParseError(body)
        return payload
