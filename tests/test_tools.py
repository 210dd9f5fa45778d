"""codeintel MCP tool tests"""

import pytest
from mcp.server.fastmcp import FastMCP

from codeintel_mcp.daemon.bridge import Command
from codeintel_mcp.daemon.supervisor import DaemonSupervisor
from codeintel_mcp.tools.codeintel_tools import (
    CodeIntelService,
    format_completions,
    format_definitions,
    get_codeintel_service,
    register_codeintel_tools,
)

from conftest import FakeSpawner, listening


@pytest.fixture
def reset_service():
    """reset CodeIntelService before and after test"""
    CodeIntelService.reset_instance()
    yield
    CodeIntelService.reset_instance()


class TestFormatting:
    """tool output formatting"""

    def test_completions(self):
        text = format_completions([
            {"name": "strlen", "icon": "method"},
            {"name": "_private", "replaceText": "_private()"},
        ])
        assert text.splitlines() == [
            "Completions (2 found):",
            "  strlen  method",
            "  _private()",
        ]

    def test_completions_truncated(self):
        text = format_completions([{"name": f"f{i}"} for i in range(5)], limit=2)
        assert text.endswith("... and 3 more")

    def test_no_completions(self):
        assert format_completions([]) == "No completions found"

    def test_definitions(self):
        text = format_definitions([{"path": "/src/lib.php", "row": 3, "column": 9}])
        assert text == "Definition location(s):\n  /src/lib.php:3:9"

    def test_single_definition_dict(self):
        assert "/src/lib.php:3" in format_definitions({"path": "/src/lib.php", "row": 3})

    def test_no_definition(self):
        assert format_definitions([]) == "No definition found"


class TestService:
    """shared service"""

    def test_singleton(self, reset_service):
        assert get_codeintel_service() is get_codeintel_service()

    async def test_run_reads_document(self, reset_service, daemon_server, notifier, tmp_path):
        source = tmp_path / "a.php"
        source.write_text("<?php\n$len = str\n", encoding="utf-8")
        supervisor = DaemonSupervisor(
            port=daemon_server.port, spawner=FakeSpawner(script=listening), notifier=notifier,
        )
        service = CodeIntelService.instance(supervisor)
        service.bridge.host = daemon_server.host

        payload = await service.run(Command.COMPLETIONS, str(source), 2, 11)
        await service.close()

        assert payload == [{"name": "strlen", "icon": "method"}]
        query, body = daemon_server.received[0]
        assert query["row"] == "2"
        assert query["column"] == "10"
        assert body == "<?php\n$len = str\n"

        log_text = (tmp_path / "logs" / "codeintel.log").read_text(encoding="utf-8")
        assert "[start] run - codeintel request" in log_text
        assert "[end] run" in log_text


class TestRegistration:
    """tool registration with FastMCP"""

    async def test_tools_registered(self):
        mcp = FastMCP("codeintel-test")
        register_codeintel_tools(mcp)

        names = {tool.name for tool in await mcp.list_tools()}

        assert names == {"complete", "goToDefinition", "daemon_status", "restart_daemon"}
