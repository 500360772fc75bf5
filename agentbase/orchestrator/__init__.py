"""
AgentBase Orchestrator Module

Run-loop building blocks:
- message_state: merge / sanitize / tool-result pairing repair
- provenance: identity context and the per-run execution node tree
- history: model-view history window and tool result capping
- run_config: RunConfig, RunResult and telemetry records
- audit_logger: structured JSON audit trail

The controller itself lives in ``agentbase.orchestrator.run_controller``
(it depends on the utility layer, which depends on this package):

    from agentbase.orchestrator.run_controller import AgentRunController

    controller = AgentRunController(llm_client=llm_client, registry=registry)
    result = await controller.invoke(conversation_id, "hello", identity)
"""

from .audit_logger import AuditLogger
from .history import cap_tool_result, estimate_tokens, truncate_history
from .message_state import merge, repair_tool_result_pairing, sanitize
from .prompts import DEFAULT_SYSTEM_PROMPT, build_system_prompt
from .provenance import ExecutionNode, IdentityContext, NodeType, ProvenanceGraph
from .run_config import RunConfig, RunResult, TokenUsage, ToolCallRecord

__all__ = [
    "AuditLogger",
    "cap_tool_result",
    "estimate_tokens",
    "truncate_history",
    "merge",
    "repair_tool_result_pairing",
    "sanitize",
    "DEFAULT_SYSTEM_PROMPT",
    "build_system_prompt",
    "ExecutionNode",
    "IdentityContext",
    "NodeType",
    "ProvenanceGraph",
    "RunConfig",
    "RunResult",
    "TokenUsage",
    "ToolCallRecord",
]
