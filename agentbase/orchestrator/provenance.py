"""
Node Provenance - Identity and lineage of every execution node in a run

A run owns one ProvenanceGraph. The root is the agent node that drives the
run; every tool invocation spawns exactly one child of the agent node that
requested it. Nodes are kept in a flat dict keyed by node id and refer to
their parent by id, so the graph is a tree by construction.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

HEADER_CLIENT_USER_ID = "x-client-user-id"
HEADER_CLIENT_ORGANIZATION_ID = "x-client-organization-id"
HEADER_PLATFORM_USER_ID = "x-platform-user-id"
HEADER_PLATFORM_API_KEY = "x-platform-api-key"
HEADER_AGENT_ID = "x-agent-id"


class NodeType(str, Enum):
    """Kinds of execution nodes"""
    AGENT = "agent"
    TOOL = "tool"
    UTILITY = "utility"


@dataclass(frozen=True)
class IdentityContext:
    """
    Identity and credentials a node executes under.

    Attributes:
        user_id: End user the run acts for
        organization_id: Organization of that user
        platform_user_id: Platform account that owns the agent
        platform_credential: Platform API key forwarded to downstream services
        agent_id: Optional agent the run belongs to
    """
    user_id: str
    organization_id: str
    platform_user_id: str
    platform_credential: str
    agent_id: Optional[str] = None

    def to_headers(self) -> Dict[str, str]:
        """Render as the header bundle downstream services expect."""
        headers = {
            HEADER_CLIENT_USER_ID: self.user_id,
            HEADER_CLIENT_ORGANIZATION_ID: self.organization_id,
            HEADER_PLATFORM_USER_ID: self.platform_user_id,
            HEADER_PLATFORM_API_KEY: self.platform_credential,
        }
        if self.agent_id:
            headers[HEADER_AGENT_ID] = self.agent_id
        return headers

    def redacted(self) -> Dict[str, Any]:
        """Log-safe view (credential masked)."""
        credential = self.platform_credential or ""
        return {
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "platform_user_id": self.platform_user_id,
            "platform_credential": (credential[:4] + "...") if credential else "",
            "agent_id": self.agent_id,
        }


@dataclass(frozen=True)
class ExecutionNode:
    """A node in the run's provenance tree"""
    node_id: str
    node_type: NodeType
    identity: IdentityContext
    parent_node_id: Optional[str] = None
    parent_node_type: Optional[NodeType] = None
    label: str = ""

    @property
    def is_root(self) -> bool:
        return self.parent_node_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_type": self.node_type.value,
            "parent_node_id": self.parent_node_id,
            "parent_node_type": self.parent_node_type.value if self.parent_node_type else None,
            "label": self.label,
        }


def _new_node_id(node_type: NodeType) -> str:
    return f"{node_type.value}_{uuid.uuid4().hex[:12]}"


@dataclass
class ProvenanceGraph:
    """
    Arena of execution nodes for one run.

    Usage:
        graph = ProvenanceGraph()
        root = graph.create_root(identity, label="agent")
        child = graph.spawn_child(root.node_id, NodeType.UTILITY, label="calc")
        graph.lineage(child.node_id)  # [child, root]
    """
    _nodes: Dict[str, ExecutionNode] = field(default_factory=dict)
    _children: Dict[str, List[str]] = field(default_factory=dict)
    root_id: Optional[str] = None

    def create_root(self, identity: IdentityContext, label: str = "") -> ExecutionNode:
        """Create the run's top-level agent node. Only one root per graph."""
        if self.root_id is not None:
            raise ValueError("Provenance graph already has a root node")
        node = ExecutionNode(
            node_id=_new_node_id(NodeType.AGENT),
            node_type=NodeType.AGENT,
            identity=identity,
            label=label,
        )
        self._nodes[node.node_id] = node
        self._children[node.node_id] = []
        self.root_id = node.node_id
        return node

    def spawn_child(
        self,
        parent_node_id: str,
        node_type: NodeType,
        label: str = "",
    ) -> ExecutionNode:
        """
        Mint a child of an existing node.

        The child inherits the parent's identity context verbatim.

        Raises:
            KeyError: If the parent is not part of this graph
        """
        parent = self._nodes.get(parent_node_id)
        if parent is None:
            raise KeyError(f"Unknown parent node: {parent_node_id}")

        node_id = _new_node_id(node_type)
        while node_id in self._nodes:
            node_id = _new_node_id(node_type)

        node = ExecutionNode(
            node_id=node_id,
            node_type=node_type,
            identity=parent.identity,
            parent_node_id=parent.node_id,
            parent_node_type=parent.node_type,
            label=label,
        )
        self._nodes[node_id] = node
        self._children[node_id] = []
        self._children[parent.node_id].append(node_id)
        return node

    def get(self, node_id: str) -> Optional[ExecutionNode]:
        return self._nodes.get(node_id)

    @property
    def root(self) -> Optional[ExecutionNode]:
        return self._nodes.get(self.root_id) if self.root_id else None

    def children(self, node_id: str) -> List[ExecutionNode]:
        return [self._nodes[cid] for cid in self._children.get(node_id, [])]

    def lineage(self, node_id: str) -> List[ExecutionNode]:
        """Return the node followed by its ancestors up to the root."""
        chain: List[ExecutionNode] = []
        current = self._nodes.get(node_id)
        while current is not None:
            chain.append(current)
            current = self._nodes.get(current.parent_node_id) if current.parent_node_id else None
        return chain

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes
