from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Union

from react_loop.exceptions import InvalidArgument, ToolResultConflict


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class AgentState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"


class ToolChoice(str, Enum):
    """How the model is allowed to use tools during Think."""

    AUTO = "auto"
    NONE = "none"
    REQUIRED = "required"


class ToolErrorKind(str, Enum):
    """Failure classes the dispatcher normalizes into a ToolResult."""

    NOT_FOUND = "not_found"
    INVALID_ARGUMENTS = "invalid_arguments"
    EXECUTION = "execution"
    CANCELLED = "cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ToolCall:
    id: str
    tool_name: str
    # Raw JSON string as sent by the provider, or an already-decoded mapping
    arguments: Union[str, Mapping[str, Any], None] = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class Message:
    role: Role
    content: Optional[str] = None
    tool_calls: Optional[tuple[ToolCall, ...]] = None  # assistant only
    tool_call_id: Optional[str] = None  # tool only
    name: Optional[str] = None  # tool only
    base64_image: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        try:
            role = Role(self.role)
        except ValueError:
            raise InvalidArgument(f"Unsupported message role: {self.role!r}")
        object.__setattr__(self, "role", role)

        if self.tool_calls is not None:
            if role is not Role.ASSISTANT:
                raise InvalidArgument("Only assistant messages can carry tool calls")
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

        if role is Role.TOOL and not self.tool_call_id:
            raise InvalidArgument("Tool messages require a tool_call_id")

    @classmethod
    def user(cls, content: str, base64_image: Optional[str] = None) -> "Message":
        return cls(role=Role.USER, content=content, base64_image=base64_image)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def assistant(
        cls,
        content: Optional[str] = None,
        tool_calls: Optional[list[ToolCall]] = None,
        base64_image: Optional[str] = None,
    ) -> "Message":
        return cls(
            role=Role.ASSISTANT,
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
            base64_image=base64_image,
        )

    @classmethod
    def tool(
        cls,
        content: str,
        tool_call_id: str,
        name: Optional[str] = None,
        base64_image: Optional[str] = None,
    ) -> "Message":
        return cls(
            role=Role.TOOL,
            content=content,
            tool_call_id=tool_call_id,
            name=name,
            base64_image=base64_image,
        )

    def to_dict(self) -> dict:
        """Provider-neutral dict form; empty fields are omitted."""
        data: dict[str, Any] = {"role": self.role.value}
        if self.content:
            data["content"] = self.content
        if self.tool_calls:
            data["tool_calls"] = [
                {"id": tc.id, "name": tc.tool_name, "arguments": tc.arguments}
                for tc in self.tool_calls
            ]
        if self.name:
            data["name"] = self.name
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        if self.base64_image:
            data["base64_image"] = self.base64_image
        return data


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool execution.

    A result with a non-empty ``error`` is failed even when ``output`` carries
    partial diagnostic data.
    """

    output: Any = None
    error: Optional[str] = None
    base64_image: Optional[str] = None
    system: Optional[str] = None
    error_kind: Optional[ToolErrorKind] = None

    @classmethod
    def success(
        cls,
        output: Any = None,
        base64_image: Optional[str] = None,
        system: Optional[str] = None,
    ) -> "ToolResult":
        return cls(output=output, base64_image=base64_image, system=system)

    @classmethod
    def failure(
        cls,
        error: str,
        kind: ToolErrorKind = ToolErrorKind.EXECUTION,
        output: Any = None,
    ) -> "ToolResult":
        return cls(output=output, error=error, error_kind=kind)

    @property
    def failed(self) -> bool:
        return bool(self.error)

    @property
    def has_content(self) -> bool:
        return (
            self.output is not None
            or bool(self.error)
            or bool(self.base64_image)
            or bool(self.system)
        )

    def combine(self, other: Optional["ToolResult"]) -> "ToolResult":
        """Merge two results into one.

        Text fields concatenate. Two images can't be merged and raise
        ToolResultConflict.
        """
        if other is None:
            return self

        def merge(first, second, concatenate=True):
            if first and second:
                if concatenate:
                    return first + second
                raise ToolResultConflict(
                    "Cannot combine tool results with conflicting non-concatenable fields"
                )
            return first or second

        if self.output is not None and other.output is not None:
            output = f"{self.output}{other.output}"
        else:
            output = self.output if self.output is not None else other.output

        return ToolResult(
            output=output,
            error=merge(self.error, other.error),
            base64_image=merge(self.base64_image, other.base64_image, concatenate=False),
            system=merge(self.system, other.system),
            error_kind=self.error_kind or other.error_kind,
        )

    def __add__(self, other: "ToolResult") -> "ToolResult":
        if not isinstance(other, ToolResult):
            return NotImplemented
        return self.combine(other)

    def __str__(self) -> str:
        if self.error:
            return f"Error: {self.error}"
        return "" if self.output is None else str(self.output)


@dataclass
class AgentStatus:
    name: str
    state: AgentState
    current_step: int
    max_steps: int
    message_count: int

    def __str__(self) -> str:
        return (
            f"Agent: {self.name}, State: {self.state.value}, "
            f"Step: {self.current_step}/{self.max_steps}, "
            f"Messages: {self.message_count}"
        )
