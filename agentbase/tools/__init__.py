"""
AgentBase Utilities - Registry, dispatcher and descriptor types

Usage:
    from agentbase.tools import UtilityRegistry, UtilityDispatcher, utility

    @utility(id="calc")
    async def calc(expr: str, *, context) -> dict:
        \"\"\"Evaluate an arithmetic expression.\"\"\"
        ...

    registry = UtilityRegistry.get_instance()
    registry.register(calc)
    dispatcher = UtilityDispatcher(registry)
"""

from .models import UtilityDescriptor, UtilityInfo, ExecutionContext, ExecuteResult
from .registry import UtilityRegistry
from .dispatcher import UtilityDispatcher
from .decorator import utility

__all__ = [
    "UtilityDescriptor",
    "UtilityInfo",
    "ExecutionContext",
    "ExecuteResult",
    "UtilityRegistry",
    "UtilityDispatcher",
    "utility",
]
