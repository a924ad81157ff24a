"""Tools every agent can rely on."""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from pydantic import Field

from react_loop.schema import ToolResult
from react_loop.tools import Tool, ToolInput

logger = logging.getLogger(__name__)

Responder = Callable[[str], Union[str, Awaitable[str]]]


class TerminateInput(ToolInput):
    reason: str = Field(
        default="Task completed successfully",
        description="Reason for termination",
    )


class Terminate(Tool):
    """Ends the run. Registered as a special tool by default."""

    name = "terminate"
    description = "Terminates the agent execution when the task is complete."
    input_model = TerminateInput

    async def execute(self, reason: str) -> ToolResult:
        logger.info(f"Agent execution terminated. Reason: {reason}")
        return ToolResult.success(f"Execution terminated: {reason}")


class AskHumanInput(ToolInput):
    question: str = Field(description="The question to ask the human user")


def _console_responder(question: str) -> str:
    print(f"\nAgent question: {question}")
    return input("Your response: ")


class AskHuman(Tool):
    """Human-in-the-loop question.

    Args:
        responder: Callable receiving the question and returning the answer,
            sync or async. Defaults to prompting on the console.
    """

    name = "ask_human"
    description = (
        "Ask a question to the human user and wait for their response. Use this "
        "when you need clarification, confirmation, or additional information "
        "from the user."
    )
    input_model = AskHumanInput

    def __init__(self, responder: Optional[Responder] = None):
        self._responder = responder or _console_responder

    async def execute(self, question: str) -> ToolResult:
        if not question.strip():
            return ToolResult.failure("Question parameter is required and cannot be empty")

        logger.info(f"Agent is asking human: {question}")
        if inspect.iscoroutinefunction(self._responder):
            answer = await self._responder(question)
        else:
            answer = await asyncio.to_thread(self._responder, question)

        if not answer or not answer.strip():
            answer = "(No response provided)"
        logger.info(f"Human responded: {answer}")
        return ToolResult.success(f"Human response: {answer}")
