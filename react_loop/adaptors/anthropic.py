"""Anthropic API adaptor for react-loop."""

import os
from typing import Optional, Sequence

from anthropic import AsyncAnthropic

from react_loop.arguments import try_parse_arguments
from react_loop.model import ModelAdaptor, ModelResponse
from react_loop.schema import Message, Role, ToolCall, ToolChoice

_TOOL_CHOICE = {
    ToolChoice.AUTO: {"type": "auto"},
    ToolChoice.REQUIRED: {"type": "any"},
    ToolChoice.NONE: {"type": "none"},
}


class AnthropicAdaptor(ModelAdaptor):
    """Anthropic model adaptor using the official SDK.

    Args:
        api_key: Anthropic API key. Falls back to ANTHROPIC_API_KEY environment variable.
        model: Model name (default: claude-sonnet-4-5-20250929).
        max_tokens: Maximum tokens in the response (default: 1024).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 1024,
    ):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Anthropic API key not provided. "
                "Pass api_key argument or set ANTHROPIC_API_KEY environment variable."
            )

        self.model = model
        self.max_tokens = max_tokens
        self.client = AsyncAnthropic(api_key=self.api_key)

    async def call(
        self,
        messages: Sequence[Message],
        tools: list[dict],
        *,
        system_prompt: Optional[str] = None,
        tool_choice: ToolChoice = ToolChoice.AUTO,
        **kwargs,
    ) -> ModelResponse:
        system_parts = [system_prompt] if system_prompt else []
        system_parts.extend(m.content for m in messages if m.role is Role.SYSTEM and m.content)

        create_kwargs = {
            "model": self.model,
            "max_tokens": kwargs.pop("max_tokens", self.max_tokens),
            "messages": self._convert_messages(messages),
            **kwargs,
        }
        if system_parts:
            create_kwargs["system"] = "\n\n".join(system_parts)
        if tools:
            create_kwargs["tools"] = [self._convert_tool(t) for t in tools]
            create_kwargs["tool_choice"] = _TOOL_CHOICE[ToolChoice(tool_choice)]

        response = await self.client.messages.create(**create_kwargs)
        return self._parse_response(response)

    def _convert_messages(self, messages: Sequence[Message]) -> list[dict]:
        """Convert to Anthropic turns. System messages go to the system parameter."""
        anthropic_messages = []
        for msg in messages:
            if msg.role is Role.USER:
                anthropic_messages.append({"role": "user", "content": msg.content or ""})
            elif msg.role is Role.ASSISTANT:
                content_blocks = []
                if msg.content:
                    content_blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls or ():
                    content_blocks.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.tool_name,
                        "input": try_parse_arguments(tc.arguments) or {},
                    })
                anthropic_messages.append({
                    "role": "assistant",
                    "content": content_blocks or msg.content or "",
                })
            elif msg.role is Role.TOOL:
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content or "",
                }
                # Consecutive tool results belong in one user turn
                previous = anthropic_messages[-1] if anthropic_messages else None
                if (
                    previous
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    anthropic_messages.append({"role": "user", "content": [block]})
        return anthropic_messages

    def _convert_tool(self, definition: dict) -> dict:
        function = definition.get("function", definition)
        return {
            "name": function["name"],
            "description": function.get("description", ""),
            "input_schema": function.get("parameters") or {"type": "object", "properties": {}},
        }

    def _parse_response(self, response) -> ModelResponse:
        text = ""
        tool_calls = []
        for block in response.content:
            if block.type == "text" and not text:
                text = block.text
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall(id=block.id, tool_name=block.name, arguments=block.input)
                )
        return ModelResponse(content=text, tool_calls=tool_calls)
