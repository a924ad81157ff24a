"""Tool registry and dispatcher.

The registry is the single place where the three tool failure classes
(unknown tool, malformed arguments, tool-internal fault) plus cancellation
are normalized into a ToolResult. ``execute`` and ``execute_call`` never
raise for those; the agent loop only inspects ``ToolResult.error``.
"""

import asyncio
import inspect
import logging
from typing import Any, Iterator, Mapping, Optional

from pydantic import ValidationError

from react_loop.arguments import parse_arguments
from react_loop.exceptions import (
    ArgumentParseError,
    InvalidArgument,
    ToolCancelled,
    ToolExecutionError,
    ToolNotFound,
)
from react_loop.schema import ToolCall, ToolErrorKind, ToolResult
from react_loop.tools import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Name-keyed catalog of tools.

    Registering a name that already exists replaces the previous tool (last
    write wins). Registries are meant to be populated once at startup and can
    then be shared read-only by several agents.

    Usage:
        registry = ToolRegistry([EchoTool()])
        result = await registry.execute("echo", {"text": "hi"})
    """

    def __init__(self, tools: Optional[list[Tool]] = None, default_timeout: Optional[float] = None):
        self._tools: dict[str, Tool] = {}
        self.default_timeout = default_timeout
        for tool in tools or []:
            self.register(tool)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def register(self, tool: Tool) -> "ToolRegistry":
        if tool is None:
            raise InvalidArgument("tool cannot be None")
        name = getattr(tool, "name", None)
        if not name or not isinstance(name, str) or not name.strip():
            raise InvalidArgument("tool name cannot be empty")

        if name in self._tools:
            logger.warning(f"Tool '{name}' already registered, replacing it")
        self._tools[name] = tool
        logger.debug(f"Registered tool '{name}'")
        return self

    def register_many(self, *tools: Tool) -> "ToolRegistry":
        for tool in tools:
            self.register(tool)
        return self

    def unregister(self, name: str) -> bool:
        removed = self._tools.pop(name, None)
        if removed is not None:
            logger.debug(f"Unregistered tool '{name}'")
        return removed is not None

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict]:
        """Export the catalog in function-calling format for the model."""
        return [tool.to_definition() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def execute(
        self,
        name: str,
        arguments: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ToolResult:
        """Run a tool by name. Never raises for tool-level failures.

        Args:
            name: Registered tool name.
            arguments: Decoded arguments mapping.
            timeout: Seconds before the call is abandoned. Falls back to
                ``default_timeout``.
            cancel_event: When set while the tool runs, the call is abandoned.

        Returns:
            The tool's result, or a failed ToolResult tagged with the
            failure class.
        """
        try:
            tool = self._resolve(name)
        except ToolNotFound as e:
            logger.error(str(e))
            return ToolResult.failure(str(e), ToolErrorKind.NOT_FOUND)

        try:
            validated = tool.input_model(**dict(arguments or {}))
        except (ValidationError, TypeError) as e:
            logger.error(f"Invalid arguments for tool '{name}': {e}")
            return ToolResult.failure(
                f"invalid arguments for tool '{name}': {e}",
                ToolErrorKind.INVALID_ARGUMENTS,
            )

        effective_timeout = timeout if timeout is not None else self.default_timeout
        try:
            logger.debug(f"Executing tool '{name}'")
            raw = await _await_cancellable(
                tool.execute(**validated.model_dump()),
                name=name,
                timeout=effective_timeout,
                cancel_event=cancel_event,
            )
        except ToolCancelled as e:
            logger.warning(str(e))
            return ToolResult.failure(str(e), ToolErrorKind.CANCELLED)
        except ToolExecutionError as e:
            logger.error(f"Tool '{name}' failed: {e}")
            return ToolResult.failure(f"Tool '{name}' failed: {e}")
        except Exception as e:
            logger.exception(f"Error executing tool '{name}'")
            return ToolResult.failure(f"Error executing tool '{name}': {e}")

        return _as_result(raw)

    async def execute_call(
        self,
        call: ToolCall,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ToolResult:
        """Decode a model-proposed call's arguments, then execute it."""
        if not call.tool_name:
            return ToolResult.failure("tool not found: <empty name>", ToolErrorKind.NOT_FOUND)

        try:
            arguments = parse_arguments(call.arguments)
        except ArgumentParseError as e:
            logger.error(
                f"Invalid JSON arguments for '{call.tool_name}', arguments: {call.arguments!r}"
            )
            return ToolResult.failure(
                f"failed to parse arguments for tool '{call.tool_name}': {e}",
                ToolErrorKind.INVALID_ARGUMENTS,
            )

        return await self.execute(
            call.tool_name, arguments, timeout=timeout, cancel_event=cancel_event
        )

    def _resolve(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFound(f"tool not found: {name}")
        return tool

    # Defined last: the name shadows the builtin for annotations in the class body
    def list(self) -> list[Tool]:
        return list(self._tools.values())


def _as_result(raw: Any) -> ToolResult:
    if isinstance(raw, ToolResult):
        return raw
    return ToolResult.success(raw)


async def _await_cancellable(
    coro,
    name: str,
    timeout: Optional[float],
    cancel_event: Optional[asyncio.Event],
) -> Any:
    """Await a tool body, abandoning it on timeout or when cancel_event is set."""
    if not inspect.isawaitable(coro):
        return coro
    if timeout is None and cancel_event is None:
        return await coro

    task = asyncio.ensure_future(coro)
    waiters = {task}
    stopper = None
    if cancel_event is not None:
        stopper = asyncio.ensure_future(cancel_event.wait())
        waiters.add(stopper)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        pending = [w for w in waiters if not w.done()]
        for waiter in pending:
            waiter.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    if task in done:
        return task.result()
    if stopper is not None and stopper in done:
        raise ToolCancelled(f"cancelled: tool '{name}' was cancelled")
    raise ToolCancelled(f"cancelled: tool '{name}' timed out after {timeout}s")
