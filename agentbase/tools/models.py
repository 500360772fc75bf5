"""
AgentBase Utility Models - Data structures for the utility system
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from ..errors import ToolError
from ..orchestrator.provenance import ExecutionNode, IdentityContext, NodeType, ProvenanceGraph


@dataclass
class UtilityDescriptor:
    """
    Definition of a utility the model can call

    Attributes:
        id: Stable utility identifier (e.g., "utility_get_current_datetime")
        description: What the utility does (shown to the model)
        parameters: JSON Schema for the argument object
        executor: Async function ``(args: dict, context: ExecutionContext) -> Any``

    Example:
        async def calc(args: dict, context: ExecutionContext) -> dict:
            return {"result": eval_expression(args["expr"])}

        descriptor = UtilityDescriptor(
            id="calc",
            description="Evaluate an arithmetic expression",
            parameters={
                "type": "object",
                "properties": {"expr": {"type": "string"}},
                "required": ["expr"],
            },
            executor=calc,
        )
    """
    id: str
    description: str
    parameters: Dict[str, Any]
    executor: Callable

    def to_openai_schema(self) -> Dict[str, Any]:
        """Convert to OpenAI function calling format"""
        return {
            "type": "function",
            "function": {
                "name": self.id,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def info(self) -> "UtilityInfo":
        return UtilityInfo(id=self.id, description=self.description)


@dataclass(frozen=True)
class UtilityInfo:
    """Advertised view of a utility (id + description only)"""
    id: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "description": self.description}


@dataclass
class ExecutionContext:
    """
    Context passed to utility executors

    Carries the identity of the node the call runs under so executors can
    authenticate against downstream services. ``graph`` and ``dispatcher``
    are set for calls made inside a run and allow nested dispatch.
    """
    identity: IdentityContext
    conversation_id: str
    node: Optional[ExecutionNode] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    graph: Optional[ProvenanceGraph] = None
    dispatcher: Optional[Any] = None

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def organization_id(self) -> str:
        return self.identity.organization_id

    @property
    def platform_user_id(self) -> str:
        return self.identity.platform_user_id

    @property
    def platform_credential(self) -> str:
        return self.identity.platform_credential

    def headers(self) -> Dict[str, str]:
        """Identity headers for outbound calls made by the executor."""
        return self.identity.to_headers()

    def spawn_child(self, node_type: NodeType, label: str = "") -> "ExecutionContext":
        """
        Context for a nested call running under a new child of this node.

        Raises:
            ValueError: If the context is not attached to a provenance graph
        """
        if self.graph is None or self.node is None:
            raise ValueError("Execution context has no provenance node to nest under")
        child = self.graph.spawn_child(self.node.node_id, node_type, label=label)
        return ExecutionContext(
            identity=child.identity,
            conversation_id=self.conversation_id,
            node=child,
            metadata=dict(self.metadata),
            graph=self.graph,
            dispatcher=self.dispatcher,
        )


@dataclass
class ExecuteResult:
    """
    Outcome of a single dispatch

    Attributes:
        utility_id: Utility that was requested
        success: True when the executor returned normally
        data: Executor return value on success
        error: Structured error on failure
        duration_ms: Wall-clock time spent in dispatch
    """
    utility_id: str
    success: bool
    data: Any = None
    error: Optional[ToolError] = None
    duration_ms: int = 0

    @property
    def content(self) -> str:
        """Observation text handed back to the model."""
        if not self.success:
            if self.error is None:
                return f"Error executing {self.utility_id}"
            return f"{self.error.code.value}: {self.error.message}"
        if self.data is None:
            return ""
        if isinstance(self.data, str):
            return self.data
        try:
            return json.dumps(self.data, ensure_ascii=False, indent=2, default=str)
        except (TypeError, ValueError):
            return str(self.data)

    def to_log_payload(self) -> Dict[str, Any]:
        """Serializable payload stored in the execution log."""
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error.to_dict() if self.error else None}
