"""
AgentBase Errors - Error taxonomy for runs and utility dispatch

Two families:
- Tool-level errors (ToolError) are returned by the dispatcher as data and
  folded back into the conversation as an observation. They never abort a run.
- Run-level errors (RunError subclasses) terminate a run and are surfaced to
  the caller.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ToolErrorCode(str, Enum):
    """Recoverable tool-level error codes"""
    TOOL_NOT_FOUND = "ToolNotFound"
    INVALID_ARGUMENTS = "InvalidArguments"
    EXECUTION_FAILED = "ExecutionFailed"


@dataclass
class ToolError:
    """
    Structured error returned by the dispatcher

    Attributes:
        code: Error category
        message: Human-readable description (shown to the model)
        details: Optional extra data (schema path, validator, exception type)
    """
    code: ToolErrorCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class UtilityExecutionError(Exception):
    """Raised by executors to report a downstream failure with a clean message."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class RunError(Exception):
    """Base class for errors that terminate a run."""

    error_type: str = "RunError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "error_type": self.error_type}


class ModelCallFailed(RunError):
    """The language model call failed (timeout, transport error, malformed response)."""

    error_type = "ModelCallFailed"


class MaxIterationsExceeded(RunError):
    """The think/act loop did not produce an answer within the turn budget."""

    error_type = "MaxIterationsExceeded"

    def __init__(self, max_turns: int):
        super().__init__(f"Run exceeded the maximum of {max_turns} iterations")
        self.max_turns = max_turns


class ThreadNotFound(RunError):
    """The requested conversation thread does not exist."""

    error_type = "ThreadNotFound"

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation thread '{conversation_id}' not found")
        self.conversation_id = conversation_id
