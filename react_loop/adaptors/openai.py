"""OpenAI API adaptor for react-loop."""

import os
import uuid
from typing import Optional, Sequence

import httpx

from react_loop.arguments import dump_arguments
from react_loop.model import ModelAdaptor, ModelResponse
from react_loop.schema import Message, Role, ToolCall, ToolChoice


class OpenAIAdaptor(ModelAdaptor):
    """OpenAI-compatible model adaptor.

    Supports OpenAI API and compatible endpoints (local models, proxies, etc.).

    Args:
        api_key: OpenAI API key. Falls back to OPENAI_API_KEY environment variable.
        model: Model name (default: gpt-5-mini).
        base_url: Base URL for the API (default: https://api.openai.com/v1).
        timeout: Request timeout in seconds (default: 60).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-5-mini",
        base_url: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OpenAI API key not provided. "
                "Pass api_key argument or set OPENAI_API_KEY environment variable."
            )

        self.model = model
        self.base_url = (base_url or "https://api.openai.com/v1").rstrip("/")
        self.timeout = timeout

    async def call(
        self,
        messages: Sequence[Message],
        tools: list[dict],
        *,
        system_prompt: Optional[str] = None,
        tool_choice: ToolChoice = ToolChoice.AUTO,
        **kwargs,
    ) -> ModelResponse:
        """Call the chat completions endpoint.

        Args:
            messages: Conversation so far.
            tools: Function definitions from ToolRegistry.definitions().
            system_prompt: Prepended as a system message when given.
            tool_choice: auto, none or required.
            **kwargs: Extra payload fields (temperature, max_tokens, ...).
                ``timeout`` overrides the request timeout.

        Returns:
            ModelResponse with the text and every proposed tool call.

        Raises:
            ValueError: If API response is malformed or unexpected.
            httpx.HTTPError: If the API request fails.
        """
        timeout = kwargs.pop("timeout", self.timeout)

        openai_messages = self._convert_messages(messages)
        if system_prompt:
            openai_messages.insert(0, {"role": "system", "content": system_prompt})

        payload = {
            "model": self.model,
            "messages": openai_messages,
            **kwargs,
        }

        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = ToolChoice(tool_choice).value

        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=timeout,
            )

        if response.status_code != 200:
            try:
                error_msg = response.json().get("error", {}).get("message", "Unknown error")
            except ValueError:
                error_msg = response.text or "Unknown error"
            raise ValueError(f"OpenAI API error ({response.status_code}): {error_msg}")

        return self._parse_response(response.json())

    def _convert_messages(self, messages: Sequence[Message]) -> list[dict]:
        """Convert react-loop messages to OpenAI format."""
        openai_messages = []
        for msg in messages:
            openai_msg = {"role": msg.role.value, "content": msg.content or ""}

            if msg.role is Role.TOOL:
                openai_msg["tool_call_id"] = msg.tool_call_id
                if msg.name:
                    openai_msg["name"] = msg.name

            if msg.role is Role.ASSISTANT and msg.tool_calls:
                openai_msg["tool_calls"] = self._format_tool_calls(msg.tool_calls)
                if not msg.content:
                    openai_msg["content"] = None

            openai_messages.append(openai_msg)
        return openai_messages

    def _format_tool_calls(self, tool_calls: Sequence[ToolCall]) -> list[dict]:
        return [
            {
                "id": tool_call.id,
                "type": "function",
                "function": {
                    "name": tool_call.tool_name,
                    "arguments": dump_arguments(tool_call.arguments),
                },
            }
            for tool_call in tool_calls
        ]

    def _parse_response(self, data: dict) -> ModelResponse:
        """Parse OpenAI API response into ModelResponse.

        Arguments are kept in their raw JSON form; the registry decodes them
        so malformed output surfaces as an argument error for that call.

        Raises:
            ValueError: If response format is unexpected.
        """
        if not data.get("choices"):
            raise ValueError("OpenAI response missing 'choices' field")

        message = data["choices"][0].get("message") or {}
        content = message.get("content") or ""

        tool_calls = []
        for raw_call in message.get("tool_calls") or []:
            function = raw_call.get("function") or {}
            tool_calls.append(
                ToolCall(
                    id=raw_call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                    tool_name=function.get("name", ""),
                    arguments=function.get("arguments"),
                )
            )

        return ModelResponse(content=content, tool_calls=tool_calls)
