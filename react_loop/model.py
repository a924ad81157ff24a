from dataclasses import dataclass, field
from typing import Literal, Optional, Sequence

from react_loop.schema import Message, ToolCall, ToolChoice


@dataclass
class ModelResponse:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def type(self) -> Literal["final_response", "tool_call"]:
        return "tool_call" if self.tool_calls else "final_response"

    @property
    def tool_call(self) -> Optional[ToolCall]:
        return self.tool_calls[0] if self.tool_calls else None


class ModelAdaptor:
    async def call(
        self,
        messages: Sequence[Message],
        tools: list[dict],
        *,
        system_prompt: Optional[str] = None,
        tool_choice: ToolChoice = ToolChoice.AUTO,
        **kwargs,
    ) -> ModelResponse:
        """Call the model with the conversation and available tool definitions.

        ``tools`` is the function-calling catalog from ToolRegistry.definitions().
        Implementations return the text plus zero or more proposed calls.
        """
        raise NotImplementedError
