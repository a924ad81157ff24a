#!/usr/bin/env python3
"""react-loop with scripted model responses.

Runs the full Think/Act loop without an API key: a mock ModelAdaptor replays
a fixed conversation that calls two tools, one of them twice in the same
step, and then ends the run through the ``terminate`` tool.

Run:
    python examples/mock_agent.py
"""

import ast
import logging
import operator
import sys

from pydantic import Field

from react_loop import (
    Agent,
    AgentState,
    Middleware,
    ModelAdaptor,
    ModelResponse,
    Tool,
    ToolCall,
    ToolInput,
    ToolResult,
)

_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}


class CalculatorInput(ToolInput):
    expression: str = Field(description="Arithmetic expression, e.g. '25 + 17'")


class CalculatorTool(Tool):
    name = "calculator"
    description = "Evaluates a basic arithmetic expression"
    input_model = CalculatorInput

    async def execute(self, expression: str) -> ToolResult:
        try:
            value = self._evaluate(ast.parse(expression, mode="eval").body)
        except (SyntaxError, ValueError, ZeroDivisionError) as e:
            return ToolResult.failure(f"cannot evaluate {expression!r}: {e}")
        return ToolResult.success(f"{expression} = {value:g}")

    def _evaluate(self, node):
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
            return node.value
        if isinstance(node, ast.BinOp) and type(node.op) in _OPERATORS:
            return _OPERATORS[type(node.op)](self._evaluate(node.left), self._evaluate(node.right))
        raise ValueError("unsupported expression")


class WeatherInput(ToolInput):
    city: str = Field(description="City name")


class WeatherTool(Tool):
    name = "weather"
    description = "Returns the current weather for a city"
    input_model = WeatherInput

    async def execute(self, city: str) -> str:
        return f"{city}: partly cloudy, 28°C"


class MockModelAdaptor(ModelAdaptor):
    """Replays a fixed sequence of responses."""

    def __init__(self):
        self.call_count = 0
        self.responses = [
            ModelResponse(
                content="I'll do both calculations first.",
                tool_calls=[
                    ToolCall(id="call-001", tool_name="calculator", arguments='{"expression": "25 + 17"}'),
                    ToolCall(id="call-002", tool_name="calculator", arguments='{"expression": "100 * 2"}'),
                ],
            ),
            ModelResponse(
                content="Now the weather.",
                tool_calls=[ToolCall(id="call-003", tool_name="weather", arguments={"city": "São Paulo"})],
            ),
            ModelResponse(
                content="I have everything I need.",
                tool_calls=[
                    ToolCall(
                        id="call-004",
                        tool_name="terminate",
                        arguments={"reason": "calculations and weather reported"},
                    )
                ],
            ),
        ]

    async def call(self, messages, tools, **kwargs) -> ModelResponse:
        if self.call_count >= len(self.responses):
            return ModelResponse(content="(Mock adaptor ran out of predefined responses)")
        response = self.responses[self.call_count]
        self.call_count += 1
        return response


class PrintSteps(Middleware):
    async def after_step(self, event):
        print(f"  step {event.step} took {event.elapsed_time_ms:.1f} ms")


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(name)s %(levelname)s %(message)s")

    agent = Agent(
        model=MockModelAdaptor(),
        tools=[CalculatorTool(), WeatherTool()],
        middlewares=[PrintSteps()],
        name="MockAgent",
        max_steps=5,
    )

    transcript = agent.run(
        "What is 25 + 17? And 100 * 2? And what's the weather in São Paulo?"
    )

    print("\nTranscript:")
    print(transcript)
    print("\nMemory:")
    for message in agent.memory:
        print(f"  {message.role.value:>9}: {message.content}")
    print(f"\n{agent.status()}")

    return 0 if agent.state is AgentState.FINISHED else 1


if __name__ == "__main__":
    sys.exit(main())
