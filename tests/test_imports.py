"""
Test that the public AgentBase imports resolve.
"""

import importlib

import pytest


def test_core_imports():
    """Test top-level exports"""
    from agentbase import (
        AgentBase,
        AgentRunController,
        Message,
        RunConfig,
        RunResult,
        RunState,
        UtilityRegistry,
        utility,
    )

    assert AgentBase is not None
    assert AgentRunController is not None
    assert Message is not None
    assert RunConfig is not None
    assert RunResult is not None
    assert RunState is not None
    assert UtilityRegistry is not None
    assert utility is not None


def test_all_is_consistent():
    import agentbase

    missing = [name for name in agentbase.__all__ if not hasattr(agentbase, name)]
    assert missing == []


@pytest.mark.parametrize("module", [
    "agentbase.db",
    "agentbase.llm",
    "agentbase.orchestrator",
    "agentbase.streaming",
    "agentbase.tools",
    "agentbase.utilities",
    "agentbase.server.app",
    "agentbase.server.main",
])
def test_subpackages_import(module):
    assert importlib.import_module(module) is not None


def test_error_hierarchy():
    from agentbase import MaxIterationsExceeded, ModelCallFailed, RunError, ThreadNotFound

    assert issubclass(ModelCallFailed, RunError)
    assert issubclass(MaxIterationsExceeded, RunError)
    assert issubclass(ThreadNotFound, RunError)
