#!/usr/bin/env python3
"""Agent driving tools served by an MCP server.

Starts mcp_server.py over stdio, registers its tools next to the built-in
``terminate`` tool and runs a scripted model, so no API key is needed.

Requirements:
    pip install react-loop[mcp]

Run:
    python examples/mcp_agent.py
"""

import asyncio
import logging
import os
import sys

from mcp.client.stdio import StdioServerParameters

from react_loop import Agent, ModelAdaptor, ModelResponse, ToolCall, ToolRegistry
from react_loop.mcp import MCPConnection


class ScriptedModel(ModelAdaptor):
    """Counts words, shouts the result, then terminates."""

    def __init__(self):
        self.call_count = 0

    async def call(self, messages, tools, **kwargs):
        self.call_count += 1
        if self.call_count == 1:
            return ModelResponse(
                content="Counting and shouting in one go.",
                tool_calls=[
                    ToolCall(id="call_1", tool_name="word_count", arguments='{"text": "react loop over mcp"}'),
                    ToolCall(id="call_2", tool_name="shout", arguments='{"text": "done", "times": 3}'),
                ],
            )
        return ModelResponse(
            content="Reported both results.",
            tool_calls=[ToolCall(id="call_3", tool_name="terminate", arguments={})],
        )


async def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s %(levelname)s %(message)s")

    server_params = StdioServerParameters(
        command=sys.executable,
        args=[os.path.join(os.path.dirname(__file__), "mcp_server.py")],
    )

    connection = MCPConnection(server_params)
    await connection.connect()
    try:
        registry = connection.register_into(ToolRegistry())
        print(f"Discovered MCP tools: {registry.names}")

        agent = Agent(model=ScriptedModel(), registry=registry)
        print(await agent.run_async("Count the words and shout when done"))
        print(agent.status())
    finally:
        await connection.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
