"""codeintel MCP tools: completion and definition lookup.

All tools go through one shared CodeIntelService, so a single daemon
serves every agent.

Tools (4 total):
- complete, goToDefinition
- daemon_status, restart_daemon
"""

import json
from pathlib import Path
from typing import Any, List, Optional

from mcp.server.fastmcp import FastMCP

from codeintel_mcp.daemon.bridge import Command, Position, RequestBridge
from codeintel_mcp.daemon.errors import DaemonError
from codeintel_mcp.daemon.supervisor import DaemonSupervisor
from codeintel_mcp.utils.logging_utils import logging_func
from codeintel_mcp.utils.singleton_utils import SingletonInstance


class CodeIntelService(SingletonInstance):
    """one supervisor and the bridge that uses it"""

    def __init__(self, supervisor: Optional[DaemonSupervisor] = None):
        self.supervisor = supervisor or DaemonSupervisor.from_config()
        self.bridge = RequestBridge(self.supervisor)

    @logging_func("codeintel request")
    async def run(self, command: Command, file_path: str, line: int, character: int) -> Any:
        """read the document and run ``command`` at a 1-based position"""
        document = Path(file_path).read_text(encoding="utf-8", errors="replace")
        position = Position(line - 1, character - 1)
        result = await self.bridge.invoke(command, file_path, document, position)
        return result.payload

    async def close(self):
        await self.bridge.close()
        await self.supervisor.shutdown()


def get_codeintel_service() -> CodeIntelService:
    """get the shared CodeIntelService"""
    return CodeIntelService.instance()


def format_completions(results: List[Any], limit: int = 50) -> str:
    if not results:
        return "No completions found"
    lines = [f"Completions ({len(results)} found):"]
    for entry in results[:limit]:
        if isinstance(entry, dict):
            name = entry.get("replaceText") or entry.get("name", "")
            meta = entry.get("meta") or entry.get("icon") or ""
            lines.append(f"  {name}  {meta}".rstrip())
        else:
            lines.append(f"  {entry}")
    if len(results) > limit:
        lines.append(f"  ... and {len(results) - limit} more")
    return "\n".join(lines)


def format_definitions(results: Any) -> str:
    if isinstance(results, dict):
        results = [results]
    if not results:
        return "No definition found"
    lines = ["Definition location(s):"]
    for entry in results:
        if isinstance(entry, dict) and "path" in entry:
            row = entry.get("row")
            location = entry["path"] if row is None else f"{entry['path']}:{row}"
            if entry.get("column") is not None:
                location += f":{entry['column']}"
            lines.append(f"  {location}")
        else:
            lines.append(f"  {json.dumps(entry)}")
    return "\n".join(lines)


def register_codeintel_tools(mcp: FastMCP):
    """Register codeintel MCP tools (4 tools total)."""

    @mcp.tool()
    async def complete(file_path: str, line: int, character: int) -> str:
        """Get code completions at a position.

        Args:
            file_path: Absolute path to the source file
            line: Line number (1-based, as shown in editors)
            character: Character offset (1-based, as shown in editors)

        Returns:
            Completion candidates as formatted string
        """
        service = get_codeintel_service()
        try:
            results = await service.run(Command.COMPLETIONS, file_path, line, character)
        except (DaemonError, OSError) as e:
            return f"⚠️ {e}"
        return format_completions(results)

    @mcp.tool()
    async def goToDefinition(file_path: str, line: int, character: int) -> str:
        """Find where a symbol is defined.

        Args:
            file_path: Absolute path to the source file
            line: Line number (1-based)
            character: Character offset (1-based)

        Returns:
            Definition location(s) as formatted string
        """
        service = get_codeintel_service()
        try:
            results = await service.run(Command.GOTO_DEFINITIONS, file_path, line, character)
        except (DaemonError, OSError) as e:
            return f"⚠️ {e}"
        return format_definitions(results)

    @mcp.tool()
    async def daemon_status() -> str:
        """Check the codeintel daemon state.

        Returns:
            State, port, pid and last error of the daemon
        """
        status = get_codeintel_service().supervisor.status()
        status_lines = [
            f"📊 codeintel daemon: {status['state'].upper()}",
            f"  Port: {status['port']}",
            f"  PID: {status['pid'] or '-'}",
            f"  Spawns: {status['spawn_count']}",
        ]
        if status["last_error"]:
            status_lines.append(f"  ⚠️ Last error: {status['last_error']}")
        return "\n".join(status_lines)

    @mcp.tool()
    async def restart_daemon() -> str:
        """Forget the current daemon (including a crashed one).

        The next request starts a fresh daemon.
        """
        get_codeintel_service().supervisor.reset()
        return "✅ codeintel daemon reset; it will restart on the next request"
