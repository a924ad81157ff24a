class ReactLoopError(Exception):
    """Base exception for react-loop errors."""


class InvalidArgument(ReactLoopError, ValueError):
    """Raised when a caller passes bad input (null message, empty tool name)."""


class InvalidState(ReactLoopError):
    """Raised when an operation is not allowed in the agent's current state."""


class ToolNotFound(ReactLoopError):
    """Raised when the model calls a tool that isn't registered."""


class ArgumentParseError(ReactLoopError):
    """Raised when tool-call arguments can't be decoded into a JSON object."""


class ToolExecutionError(ReactLoopError):
    """Raised by tool bodies when execution fails."""


class ToolCancelled(ReactLoopError):
    """Raised when a tool call is abandoned by timeout or cancellation."""


class ToolResultConflict(ReactLoopError):
    """Raised when two tool results carry conflicting non-mergeable fields."""


class UnrecoverableFault(ReactLoopError):
    """Raised for unexpected faults inside the step loop itself."""
