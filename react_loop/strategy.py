"""Pluggable reasoning phase.

The agent hands a ThinkContext to its strategy and gets back the proposed
text and tool calls. Swapping the strategy changes how an agent reasons
without subclassing Agent.
"""

from dataclasses import dataclass, field
from typing import Optional

from react_loop.model import ModelAdaptor, ModelResponse
from react_loop.schema import Message, ToolChoice


@dataclass
class ThinkContext:
    messages: tuple[Message, ...]
    tools: list[dict] = field(default_factory=list)
    system_prompt: Optional[str] = None
    next_step_prompt: Optional[str] = None
    tool_choice: ToolChoice = ToolChoice.AUTO
    step: int = 0


class ThinkStrategy:
    async def think(self, context: ThinkContext) -> ModelResponse:
        """Decide the next move from the current context."""
        raise NotImplementedError


class ModelThinkStrategy(ThinkStrategy):
    """Default strategy: one model call per step.

    The next-step guidance goes to the model as a trailing user turn; it is
    not written to memory.
    """

    def __init__(self, model: ModelAdaptor, **call_kwargs):
        self.model = model
        self.call_kwargs = call_kwargs

    def build_messages(self, context: ThinkContext) -> list[Message]:
        messages = list(context.messages)
        if context.next_step_prompt:
            messages.append(Message.user(context.next_step_prompt))
        return messages

    async def think(self, context: ThinkContext) -> ModelResponse:
        tools = context.tools if context.tool_choice is not ToolChoice.NONE else []
        return await self.model.call(
            self.build_messages(context),
            tools,
            system_prompt=context.system_prompt,
            tool_choice=context.tool_choice,
            **self.call_kwargs,
        )
