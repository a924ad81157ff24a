"""MCP (Model Context Protocol) integration for react-loop.

Exposes the tools of an MCP server as native Tool instances, so they are
registered, described to the model and dispatched like any local tool.

Requires: pip install react-loop[mcp]
"""

import asyncio
import json
import logging
from contextlib import AsyncExitStack
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, create_model

from react_loop.registry import ToolRegistry
from react_loop.schema import ToolResult
from react_loop.tools import Tool

from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp.client.streamable_http import streamablehttp_client

logger = logging.getLogger(__name__)

_JSON_TYPE_MAP: dict[str, type] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
}

DEFAULT_TIMEOUT = 30.0


def _property_type(prop_schema: dict, prop_name: str, parent_name: str) -> type:
    """Map one JSON Schema property onto a Python annotation.

    Anything without a plain ``type`` ($ref, anyOf, oneOf) becomes Any.
    """
    if "enum" in prop_schema:
        return Literal[tuple(prop_schema["enum"])]  # type: ignore[valid-type]

    schema_type = prop_schema.get("type")
    if schema_type in _JSON_TYPE_MAP:
        return _JSON_TYPE_MAP[schema_type]

    if schema_type == "array":
        item_type = (prop_schema.get("items") or {}).get("type")
        if item_type in _JSON_TYPE_MAP:
            return list[_JSON_TYPE_MAP[item_type]]
        return list

    if schema_type == "object":
        if "properties" in prop_schema:
            return _schema_to_pydantic(f"{parent_name}_{prop_name}", prop_schema)
        return dict

    return Any


def _schema_to_pydantic(tool_name: str, schema: dict) -> type[BaseModel]:
    """Build an input model from an MCP ``inputSchema``.

    Optional properties without a default become ``Optional[...] = None``;
    descriptions are carried into the field so they survive the round trip
    back to JSON schema for the model.
    """
    required = set(schema.get("required", []))
    fields: dict[str, Any] = {}

    for prop_name, prop_schema in schema.get("properties", {}).items():
        python_type = _property_type(prop_schema, prop_name, tool_name)
        if prop_name in required:
            default = ...
        else:
            default = prop_schema.get("default")
            if default is None:
                python_type = Optional[python_type]
        fields[prop_name] = (
            python_type,
            Field(default=default, description=prop_schema.get("description", "")),
        )

    return create_model(f"{tool_name}_Input", **fields)


def _render_content(content: list) -> str:
    texts = [c.text for c in content if hasattr(c, "text")]
    skipped = len(content) - len(texts)
    if skipped:
        texts.append(f"[{skipped} non-text content block(s) omitted]")
    if len(texts) == 1:
        return texts[0]
    return json.dumps(texts) if texts else ""


class MCPTool(Tool):
    """One remote MCP tool behind the local Tool interface.

    Server-side errors and timeouts come back as failed ToolResults so the
    model can observe them.
    """

    def __init__(
        self,
        name: str,
        description: str,
        input_schema: dict,
        session: ClientSession,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.name = name
        self.description = description
        self.input_model = _schema_to_pydantic(name, input_schema)
        self._session = session
        self._timeout = timeout

    async def execute(self, **kwargs) -> ToolResult:
        # Optional fields the model left out are not forwarded
        arguments = {k: v for k, v in kwargs.items() if v is not None}
        try:
            result = await asyncio.wait_for(
                self._session.call_tool(self.name, arguments=arguments),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            return ToolResult.failure(f"MCP tool '{self.name}' timed out after {self._timeout}s")

        if result.isError:
            return ToolResult.failure(
                f"MCP tool '{self.name}' returned error: {_render_content(result.content)}"
            )
        return ToolResult.success(_render_content(result.content))


class MCPConnection:
    """Lifecycle of one MCP server connection.

    Two transports are supported:
    - stdio: MCPConnection(StdioServerParameters(command="python", args=["server.py"]))
    - streamable HTTP: MCPConnection("http://localhost:8000/mcp")

    Args:
        server_params: StdioServerParameters for stdio, or a URL string for HTTP.
        timeout: Seconds allowed for initialize, list_tools and each tool call.

    Usage:
        async with MCPConnection(server_params) as tools:
            agent = Agent(model=model, tools=tools)
            transcript = await agent.run_async("query")
    """

    def __init__(
        self,
        server_params: Union[StdioServerParameters, str],
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._server_params = server_params
        self._timeout = timeout
        self._exit_stack: Optional[AsyncExitStack] = None
        self._session: Optional[ClientSession] = None
        self.tools: list[MCPTool] = []

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> list[MCPTool]:
        """Open the transport, initialize the session and wrap the server's tools."""
        if self._exit_stack is not None:
            await self.disconnect()

        self._exit_stack = AsyncExitStack()
        try:
            if isinstance(self._server_params, str):
                transport = await self._exit_stack.enter_async_context(
                    streamablehttp_client(self._server_params)
                )
            else:
                transport = await self._exit_stack.enter_async_context(
                    stdio_client(self._server_params)
                )

            read_stream, write_stream, *_ = transport
            self._session = await self._exit_stack.enter_async_context(
                ClientSession(read_stream, write_stream)
            )
            await asyncio.wait_for(self._session.initialize(), timeout=self._timeout)
            listing = await asyncio.wait_for(self._session.list_tools(), timeout=self._timeout)
        except BaseException:
            await self.disconnect()
            raise

        self.tools = [
            MCPTool(
                name=t.name,
                description=t.description or "",
                input_schema=t.inputSchema,
                session=self._session,
                timeout=self._timeout,
            )
            for t in listing.tools
        ]
        logger.info(f"Connected to MCP server with {len(self.tools)} tools")
        return self.tools

    def register_into(self, registry: ToolRegistry) -> ToolRegistry:
        """Add every tool of the connected server to ``registry``."""
        return registry.register_many(*self.tools)

    async def disconnect(self) -> None:
        if self._exit_stack:
            await self._exit_stack.aclose()
            self._exit_stack = None
            self._session = None
            self.tools = []

    async def __aenter__(self) -> list[MCPTool]:
        return await self.connect()

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()
