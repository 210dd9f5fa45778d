"""MCP server entry point for codeintel completion tools."""

from mcp.server.fastmcp import FastMCP

from codeintel_mcp.tools.codeintel_tools import register_codeintel_tools

mcp = FastMCP("codeintel")


def main():
    """Main entry point for the MCP server."""
    register_codeintel_tools(mcp)
    mcp.run()


if __name__ == "__main__":
    main()
