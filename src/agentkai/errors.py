"""Error types raised out of a conversation call.

Only failures that make continuing impossible surface as exceptions.
Tool failures never do; they come back in-band as a
:class:`~agentkai.tools.ToolResult`.
"""


class AgentError(Exception):
    """Base class for errors raised by agentkai.

    Args:
        message: Human-readable description.
        code: Stable machine-readable error code.
    """

    code = "UNKNOWN_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ModelError(AgentError):
    """The model backend failed or could not be reached."""

    code = "MODEL_ERROR"


class DeadlineExceeded(ModelError):
    """An external round-trip did not finish within its deadline.

    Args:
        operation: Name of the operation that timed out.
        timeout: The deadline in seconds.
    """

    code = "DEADLINE_EXCEEDED"

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:g}s")
        self.operation = operation
        self.timeout = timeout


def wrap_error(error: BaseException, default_message: str = "Unknown error") -> AgentError:
    """Return *error* as an :class:`AgentError`, wrapping foreign exceptions."""
    if isinstance(error, AgentError):
        return error
    if str(error):
        return ModelError(f"{default_message}: {error}")
    return ModelError(default_message)
