"""Agent configuration.

Values come from constructor arguments or, through ``AgentConfig.from_env``,
from ``REACT_LOOP_*`` environment variables. Provider API keys are read by
the adaptors themselves.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from react_loop.exceptions import InvalidArgument
from react_loop.memory import DEFAULT_MAX_MESSAGES
from react_loop.schema import ToolChoice

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant that can use tools to accomplish tasks.\n"
    "When you need to use tools, think carefully about which tools are "
    "appropriate and how to use them effectively.\n"
    "Always provide clear explanations of your actions and reasoning.\n"
    "Call the `terminate` tool once the task is complete."
)

DEFAULT_NEXT_STEP_PROMPT = (
    "Based on the current conversation and available tools, what should be the next step?"
)

ENV_PREFIX = "REACT_LOOP_"


@dataclass
class AgentConfig:
    name: str = "Agent"
    max_steps: int = 10
    duplicate_threshold: int = 2
    max_messages: int = DEFAULT_MAX_MESSAGES
    max_observe: Optional[int] = None  # Truncate observations to this many chars
    tool_timeout: Optional[float] = None  # Seconds per tool call
    tool_choice: ToolChoice = ToolChoice.AUTO
    system_prompt: Optional[str] = DEFAULT_SYSTEM_PROMPT
    next_step_prompt: Optional[str] = DEFAULT_NEXT_STEP_PROMPT
    special_tool_names: tuple[str, ...] = field(default_factory=lambda: ("terminate",))
    finish_on_answer: bool = True  # A reply without tool calls ends the run

    def __post_init__(self):
        try:
            self.tool_choice = ToolChoice(self.tool_choice)
        except ValueError:
            raise InvalidArgument(f"Unknown tool_choice: {self.tool_choice!r}")
        self.special_tool_names = tuple(self.special_tool_names)

        if self.max_steps < 1:
            raise InvalidArgument(f"max_steps must be positive, got {self.max_steps}")
        if self.duplicate_threshold < 1:
            raise InvalidArgument(
                f"duplicate_threshold must be positive, got {self.duplicate_threshold}"
            )
        if self.max_messages < 1:
            raise InvalidArgument(f"max_messages must be positive, got {self.max_messages}")
        if self.max_observe is not None and self.max_observe < 0:
            raise InvalidArgument(f"max_observe cannot be negative, got {self.max_observe}")
        if self.tool_timeout is not None and self.tool_timeout <= 0:
            raise InvalidArgument(f"tool_timeout must be positive, got {self.tool_timeout}")

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, **overrides) -> "AgentConfig":
        """Load configuration from environment variables.

        Explicit keyword arguments win over the environment.
        """

        def env(key: str) -> Optional[str]:
            value = os.getenv(prefix + key)
            return value if value not in (None, "") else None

        values: dict = {}
        for key, attr in (
            ("NAME", "name"),
            ("SYSTEM_PROMPT", "system_prompt"),
            ("NEXT_STEP_PROMPT", "next_step_prompt"),
        ):
            raw = env(key)
            if raw is not None:
                values[attr] = raw
        for key, attr in (
            ("MAX_STEPS", "max_steps"),
            ("DUPLICATE_THRESHOLD", "duplicate_threshold"),
            ("MAX_MESSAGES", "max_messages"),
            ("MAX_OBSERVE", "max_observe"),
        ):
            raw = env(key)
            if raw is not None:
                values[attr] = _parse_number(prefix + key, raw, int)
        raw = env("TOOL_TIMEOUT")
        if raw is not None:
            values["tool_timeout"] = _parse_number(prefix + "TOOL_TIMEOUT", raw, float)
        raw = env("TOOL_CHOICE")
        if raw is not None:
            values["tool_choice"] = raw.lower()
        raw = env("FINISH_ON_ANSWER")
        if raw is not None:
            values["finish_on_answer"] = raw.strip().lower() in ("1", "true", "yes", "on")
        raw = env("SPECIAL_TOOLS")
        if raw is not None:
            values["special_tool_names"] = tuple(
                part.strip() for part in raw.split(",") if part.strip()
            )

        values.update(overrides)
        return cls(**values)


def _parse_number(key: str, raw: str, kind: type):
    try:
        return kind(raw)
    except ValueError:
        raise InvalidArgument(f"{key} must be a number, got {raw!r}")
