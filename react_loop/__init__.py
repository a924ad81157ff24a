from react_loop.adaptors.openai import OpenAIAdaptor

# Conditional imports for optional SDK-based adaptors
try:
    from react_loop.adaptors.anthropic import AnthropicAdaptor
except ImportError:
    pass

from react_loop.agent import STUCK_PROMPT, Agent
from react_loop.arguments import Arguments, dump_arguments, parse_arguments
from react_loop.builtin import AskHuman, Terminate
from react_loop.config import AgentConfig
from react_loop.exceptions import (
    ArgumentParseError,
    InvalidArgument,
    InvalidState,
    ReactLoopError,
    ToolCancelled,
    ToolExecutionError,
    ToolNotFound,
    ToolResultConflict,
    UnrecoverableFault,
)
from react_loop.hooks import (
    AfterRunEventData,
    AfterStepEventData,
    AfterThinkEventData,
    AfterToolCallEventData,
    BeforeRunEventData,
    BeforeStepEventData,
    BeforeThinkEventData,
    BeforeToolCallEventData,
    HookEvent,
    HookRegistry,
    HookResponse,
    Middleware,
    OnStuckEventData,
    OnToolErrorEventData,
)
from react_loop.memory import Memory
from react_loop.model import ModelAdaptor, ModelResponse
from react_loop.registry import ToolRegistry
from react_loop.schema import (
    AgentState,
    AgentStatus,
    Message,
    Role,
    ToolCall,
    ToolChoice,
    ToolErrorKind,
    ToolResult,
)
from react_loop.strategy import ModelThinkStrategy, ThinkContext, ThinkStrategy
from react_loop.tools import Tool, ToolInput

__all__ = [
    # Core
    "Agent",
    "AgentConfig",
    "AgentState",
    "AgentStatus",
    "Memory",
    "Message",
    "Role",
    "ToolCall",
    "ToolChoice",
    "ToolErrorKind",
    "ToolResult",
    "STUCK_PROMPT",
    # Tools
    "Tool",
    "ToolInput",
    "ToolRegistry",
    "Terminate",
    "AskHuman",
    "Arguments",
    "parse_arguments",
    "dump_arguments",
    # Reasoning
    "ModelAdaptor",
    "ModelResponse",
    "ModelThinkStrategy",
    "ThinkContext",
    "ThinkStrategy",
    "OpenAIAdaptor",
    "AnthropicAdaptor",
    # Hooks
    "HookRegistry",
    "HookEvent",
    "HookResponse",
    "Middleware",
    # Hook Event Data
    "BeforeRunEventData",
    "AfterRunEventData",
    "BeforeStepEventData",
    "AfterStepEventData",
    "BeforeThinkEventData",
    "AfterThinkEventData",
    "BeforeToolCallEventData",
    "AfterToolCallEventData",
    "OnToolErrorEventData",
    "OnStuckEventData",
    # Exceptions
    "ReactLoopError",
    "InvalidArgument",
    "InvalidState",
    "ToolNotFound",
    "ArgumentParseError",
    "ToolExecutionError",
    "ToolCancelled",
    "ToolResultConflict",
    "UnrecoverableFault",
]
