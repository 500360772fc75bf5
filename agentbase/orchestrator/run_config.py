"""Run configuration and result dataclasses.

Centralizes all tunable parameters for the agent run loop, along with
structured types for tracking tool calls, token usage, and run results.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from ..messages import Message


@dataclass
class RunConfig:
    """All run loop configuration centralized in one place."""

    # Loop control
    max_turns: int = 10
    """Maximum model turns per run before MaxIterationsExceeded."""

    # Tool execution
    tool_execution_timeout: float = 30.0
    """Per-utility timeout in seconds."""
    max_tool_result_chars: int = 400_000
    """Single tool result hard character limit."""
    disable_parallel_tool_calls: bool = True
    """Ask the model for at most one tool call per turn."""
    parallel_tool_dispatch: bool = False
    """Run a turn's tool calls concurrently. Results are still appended in call order."""
    enabled_utilities: Optional[List[str]] = None
    """Utilities advertised to the model; None means every registered utility."""

    # Context management
    history_token_budget: int = 100_000
    """Token budget for the history sent to the model (system prompt included)."""

    # LLM calls
    llm_max_retries: int = 2
    """Max LLM call retries on transient errors."""
    llm_retry_base_delay: float = 1.0
    """Retry base delay in seconds (used for exponential back-off)."""

    # Threads
    auto_create_thread: bool = True
    """Create the conversation thread on first message instead of raising ThreadNotFound."""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RunConfig":
        """Build from a config mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


@dataclass
class TokenUsage:
    """Accumulated token usage counters."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> Dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


@dataclass
class ToolCallRecord:
    """Per-call telemetry for a single dispatch."""

    name: str
    """Utility id requested by the model."""
    call_id: str
    """Tool call id the result is linked to."""
    node_id: str
    """Execution node minted for this call."""
    args_summary: Dict
    """Truncated argument snapshot for observability."""
    duration_ms: int = 0
    success: bool = True
    error_code: Optional[str] = None
    result_chars: int = 0
    """Result size in characters before any truncation."""


@dataclass
class RunResult:
    """Structured result of a run (invoke mode)."""

    response: str
    """Final answer; empty when the run ended in error."""
    messages: List[Message] = field(default_factory=list)
    """Final message state of the thread."""
    state: str = "done"
    turns: int = 0
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    duration_ms: int = 0
    root_node_id: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    """``{"error": ..., "error_type": ...}`` for run-level failures."""

    @property
    def ok(self) -> bool:
        return self.error is None
