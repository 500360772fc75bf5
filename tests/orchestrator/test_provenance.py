"""Tests for agentbase.orchestrator.provenance"""

import pytest

from agentbase.orchestrator.provenance import (
    HEADER_AGENT_ID,
    HEADER_CLIENT_ORGANIZATION_ID,
    HEADER_CLIENT_USER_ID,
    HEADER_PLATFORM_API_KEY,
    HEADER_PLATFORM_USER_ID,
    IdentityContext,
    NodeType,
    ProvenanceGraph,
)


class TestIdentityContext:

    def test_to_headers(self, identity):
        headers = identity.to_headers()
        assert headers == {
            HEADER_CLIENT_USER_ID: "user_1",
            HEADER_CLIENT_ORGANIZATION_ID: "org_1",
            HEADER_PLATFORM_USER_ID: "platform_1",
            HEADER_PLATFORM_API_KEY: "key_secret",
        }

    def test_agent_id_header_only_when_set(self):
        identity = IdentityContext("u", "o", "p", "k", agent_id="agent_9")
        assert identity.to_headers()[HEADER_AGENT_ID] == "agent_9"

    def test_redacted_masks_credential(self, identity):
        redacted = identity.redacted()
        assert redacted["platform_credential"] == "key_..."
        assert "key_secret" not in str(redacted)


class TestProvenanceGraph:

    def test_root(self, identity):
        graph = ProvenanceGraph()
        root = graph.create_root(identity, label="agent")

        assert root.is_root
        assert root.node_type == NodeType.AGENT
        assert root.node_id.startswith("agent_")
        assert graph.root is root
        assert root.node_id in graph

    def test_single_root(self, identity):
        graph = ProvenanceGraph()
        graph.create_root(identity)
        with pytest.raises(ValueError):
            graph.create_root(identity)

    def test_child_inherits_identity(self, identity):
        graph = ProvenanceGraph()
        root = graph.create_root(identity)

        child = graph.spawn_child(root.node_id, NodeType.UTILITY, label="calc")

        assert child.identity == root.identity
        assert child.parent_node_id == root.node_id
        assert child.parent_node_type == NodeType.AGENT
        assert child.node_id.startswith("utility_")
        assert child.node_id != root.node_id

    def test_unknown_parent(self, identity):
        graph = ProvenanceGraph()
        graph.create_root(identity)
        with pytest.raises(KeyError):
            graph.spawn_child("agent_missing", NodeType.TOOL)

    def test_children_and_lineage(self, identity):
        graph = ProvenanceGraph()
        root = graph.create_root(identity)
        a = graph.spawn_child(root.node_id, NodeType.TOOL, label="a")
        b = graph.spawn_child(root.node_id, NodeType.UTILITY, label="b")
        nested = graph.spawn_child(a.node_id, NodeType.UTILITY, label="nested")

        assert [n.label for n in graph.children(root.node_id)] == ["a", "b"]
        assert graph.lineage(nested.node_id) == [nested, a, root]
        assert len(graph) == 4
        assert b.node_id in graph

    def test_node_ids_unique(self, identity):
        graph = ProvenanceGraph()
        root = graph.create_root(identity)
        ids = {graph.spawn_child(root.node_id, NodeType.TOOL).node_id for _ in range(50)}
        assert len(ids) == 50

    def test_to_dict(self, identity):
        graph = ProvenanceGraph()
        root = graph.create_root(identity)
        child = graph.spawn_child(root.node_id, NodeType.TOOL, label="x")

        data = child.to_dict()

        assert data["node_type"] == "tool"
        assert data["parent_node_type"] == "agent"
        assert data["parent_node_id"] == root.node_id
        assert "identity" not in data
