"""Hook system for react-loop.

Enables extensibility without modifying core Agent code.
Follows Flask's before_request/after_request pattern.

Architecture:
- HookRegistry is the CORE implementation
- Decorator (@hooks.on, @agent.hook) and Middleware are convenience wrappers
- Everything goes through HookRegistry
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class HookEvent(str, Enum):
    """Available hook points in agent execution."""

    BEFORE_RUN = "before_run"
    AFTER_RUN = "after_run"

    BEFORE_STEP = "before_step"
    AFTER_STEP = "after_step"

    BEFORE_THINK = "before_think"
    AFTER_THINK = "after_think"

    BEFORE_TOOL_CALL = "before_tool_call"
    AFTER_TOOL_CALL = "after_tool_call"
    ON_TOOL_ERROR = "on_tool_error"

    ON_STUCK = "on_stuck"


# ============================================================================
# Hook Event Data Classes
# ============================================================================


@dataclass
class BeforeRunEventData:
    """Called before the step loop starts."""

    agent: Any  # Agent instance
    input: Optional[str]
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class AfterRunEventData:
    """Called once the run ends, whatever the outcome."""

    agent: Any
    state: Any  # AgentState
    transcript: str
    total_time_ms: float
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class BeforeStepEventData:
    agent: Any
    step: int


@dataclass
class AfterStepEventData:
    agent: Any
    step: int
    result: str
    elapsed_time_ms: float


@dataclass
class BeforeThinkEventData:
    """Called before the think strategy runs."""

    agent: Any
    context: Any  # ThinkContext


@dataclass
class AfterThinkEventData:
    """Called after the strategy returned a response."""

    agent: Any
    response: Any  # ModelResponse
    response_time_ms: float


@dataclass
class BeforeToolCallEventData:
    """Called before executing a tool call."""

    agent: Any
    tool_call: Any  # ToolCall
    tool_name: str
    tool_index: int
    step: int


@dataclass
class AfterToolCallEventData:
    """Called after a tool call produced its observation."""

    agent: Any
    tool_call: Any
    tool_name: str
    result: Any  # ToolResult
    observation: str
    execution_time_ms: float


@dataclass
class OnToolErrorEventData:
    """Called when a tool call returned a failed result."""

    agent: Any
    tool_call: Any
    tool_name: str
    error_message: str
    error_kind: Any  # ToolErrorKind


@dataclass
class OnStuckEventData:
    """Called when repeated assistant output is detected."""

    agent: Any
    step: int
    duplicate_content: str
    duplicate_count: int


# ============================================================================
# Hook Response
# ============================================================================


@dataclass
class HookResponse:
    """What a hook can return to influence execution."""

    action: Optional[str] = None  # 'skip'
    cached_result: Optional[str] = None  # Observation used instead of running the tool

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["HookResponse"]:
        """Convert dict to HookResponse."""
        if data is None:
            return None
        if isinstance(data, HookResponse):
            return data
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# ============================================================================
# Hook Registry
# ============================================================================


class HookRegistry:
    """Central registry for all hooks.

    Supports both decorator-style and direct registration.

    Usage:
        hooks = HookRegistry()

        @hooks.on('after_tool_call')
        async def log_tool(event):
            print(f"Tool: {event.tool_name}")

        # Or direct registration
        async def my_hook(event):
            pass
        hooks.register_handler('after_tool_call', my_hook)
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {
            event.value: [] for event in HookEvent
        }

    def on(self, hook_name: str):
        """Decorator for registering hook handlers.

        Args:
            hook_name: Name of the hook (e.g., 'after_tool_call')

        Returns:
            Decorator function
        """

        def decorator(func: Callable) -> Callable:
            self.register_handler(hook_name, func)
            return func

        return decorator

    def register_handler(self, hook_name: str, handler: Callable) -> None:
        """Register a hook handler.

        Args:
            hook_name: Name of the hook
            handler: Async function to call

        Raises:
            ValueError: If hook_name is not valid
        """
        if hook_name not in self._handlers:
            valid_hooks = [e.value for e in HookEvent]
            raise ValueError(
                f"Invalid hook name '{hook_name}'. Valid hooks: {valid_hooks}"
            )
        self._handlers[hook_name].append(handler)

    async def trigger(
        self,
        hook_name: str,
        event_data: Any,
    ) -> Optional[HookResponse]:
        """Execute all handlers for a hook.

        Args:
            hook_name: Name of the hook
            event_data: Event data to pass to handlers

        Returns:
            First non-None response from any handler, or None
        """
        handlers = self._handlers.get(hook_name, [])

        for handler in handlers:
            try:
                result = await handler(event_data)
                if result is not None:
                    return HookResponse.from_dict(result)
            except Exception as e:
                # Log but don't fail execution
                logger.warning(f"Hook '{hook_name}' raised exception: {e}")

        return None

    def has_handlers(self, hook_name: str) -> bool:
        """Check if hook has any registered handlers."""
        return len(self._handlers.get(hook_name, [])) > 0

    def clear(self) -> None:
        """Clear all handlers (useful for testing)."""
        for hook_name in self._handlers:
            self._handlers[hook_name] = []


# ============================================================================
# Middleware Base Class (Optional, for stateful handlers)
# ============================================================================


class Middleware:
    """Base class for middleware (stateful hook handlers).

    Override methods for hooks you want to handle.

    Usage:
        class StepLogger(Middleware):
            async def after_step(self, event):
                print(f"Step {event.step}: {event.result}")

        agent = Agent(model=model, registry=registry, middlewares=[StepLogger()])
    """

    async def before_run(self, event: BeforeRunEventData) -> Optional[Dict]:
        pass

    async def after_run(self, event: AfterRunEventData) -> Optional[Dict]:
        pass

    async def before_step(self, event: BeforeStepEventData) -> Optional[Dict]:
        pass

    async def after_step(self, event: AfterStepEventData) -> Optional[Dict]:
        pass

    async def before_think(self, event: BeforeThinkEventData) -> Optional[Dict]:
        pass

    async def after_think(self, event: AfterThinkEventData) -> Optional[Dict]:
        pass

    async def before_tool_call(self, event: BeforeToolCallEventData) -> Optional[Dict]:
        pass

    async def after_tool_call(self, event: AfterToolCallEventData) -> Optional[Dict]:
        pass

    async def on_tool_error(self, event: OnToolErrorEventData) -> Optional[Dict]:
        pass

    async def on_stuck(self, event: OnStuckEventData) -> Optional[Dict]:
        pass
