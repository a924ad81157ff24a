#!/usr/bin/env python3
"""Small MCP server used by mcp_agent.py, served over stdio.

Run standalone:
    python examples/mcp_server.py
"""

from mcp.server.fastmcp import FastMCP

server = FastMCP("text-tools")


@server.tool()
def word_count(text: str) -> str:
    """Count the words in a piece of text."""
    return f"{len(text.split())} words"


@server.tool()
def shout(text: str, times: int = 1) -> str:
    """Upper-case the text and add exclamation marks."""
    return text.upper() + "!" * times


if __name__ == "__main__":
    server.run(transport="stdio")
