"""
AgentBase - A tool-calling agent run engine

AgentBase runs a think/act loop: the model either answers or asks for
utilities, the utilities run under a provenance node tree, their results
are folded back into the conversation, and the thread is persisted when
the run completes.

Key Features:
- Decorator-based utility registration (@utility) with JSON-schema validation
- Invoke and streaming modes over the same run state machine
- Caller identity forwarded to utilities as request headers
- Per-utility execution log in PostgreSQL, provisioned on first use
- Built-in LLM client (powered by litellm)

Quick Start:
    from agentbase import AgentBase, IdentityContext, utility

    @utility(id="calc")
    async def calc(expr: str, *, context) -> dict:
        '''Evaluate an arithmetic expression.'''
        ...

    app = AgentBase("config.yaml")
    app.register_utility(calc)

    identity = IdentityContext(
        user_id="user_1",
        organization_id="org_1",
        platform_user_id="platform_1",
        platform_credential="key_...",
    )
    result = await app.run("conv_1", "what is 2+2?", identity)
    print(result.response)

Streaming:
    async for event in app.stream("conv_1", "and 3+3?", identity):
        if event.type == EventType.MESSAGE_CHUNK:
            print(event.data["chunk"], end="")
"""

__version__ = "0.1.0"

# Errors
from .errors import (
    ToolError,
    ToolErrorCode,
    UtilityExecutionError,
    RunError,
    ModelCallFailed,
    MaxIterationsExceeded,
    ThreadNotFound,
)

# Messages
from .messages import Message, MessageToolCall

# Identity and provenance
from .orchestrator.provenance import IdentityContext, ExecutionNode, NodeType, ProvenanceGraph

# Utilities
from .tools import (
    UtilityDescriptor,
    UtilityInfo,
    ExecutionContext,
    ExecuteResult,
    UtilityRegistry,
    UtilityDispatcher,
    utility,
)

# Run controller
from .orchestrator.run_config import RunConfig, RunResult, TokenUsage, ToolCallRecord
from .orchestrator.run_controller import AgentRunController, RunState

# Streaming
from .streaming import EventType, AgentEvent

# LLM Clients
from .llm import LLMConfig, LLMResponse, LiteLLMClient

# Application Entry Point
from .app import AgentBase, load_config

__all__ = [
    "__version__",
    # Errors
    "ToolError", "ToolErrorCode", "UtilityExecutionError",
    "RunError", "ModelCallFailed", "MaxIterationsExceeded", "ThreadNotFound",
    # Messages
    "Message", "MessageToolCall",
    # Provenance
    "IdentityContext", "ExecutionNode", "NodeType", "ProvenanceGraph",
    # Utilities
    "UtilityDescriptor", "UtilityInfo", "ExecutionContext", "ExecuteResult",
    "UtilityRegistry", "UtilityDispatcher", "utility",
    # Run
    "AgentRunController", "RunState", "RunConfig", "RunResult",
    "TokenUsage", "ToolCallRecord",
    # Streaming
    "EventType", "AgentEvent",
    # LLM
    "LiteLLMClient", "LLMConfig", "LLMResponse",
    # App
    "AgentBase", "load_config",
]
