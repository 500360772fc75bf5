"""
AgentBase Built-in Utilities

Provides:
- utility_get_current_datetime: current date/time in several formats
- utility_list_utilities / utility_get_utility_info: registry introspection
- utility_call_utility: nested dispatch of another utility
- utility_curl_command: raw HTTP request
- utility_read_webpage: readable page text via BeautifulSoup

Usage:
    from agentbase.utilities import register_builtin_utilities

    register_builtin_utilities(registry)
"""

import logging
from typing import List, Optional

from ..tools import UtilityDescriptor, UtilityRegistry
from .datetime_utility import get_current_datetime
from .introspection import build_introspection_utilities
from .web import curl_command, read_webpage

logger = logging.getLogger(__name__)


def builtin_utilities(registry: UtilityRegistry) -> List[UtilityDescriptor]:
    return [
        get_current_datetime,
        *build_introspection_utilities(registry),
        curl_command,
        read_webpage,
    ]


def register_builtin_utilities(
    registry: Optional[UtilityRegistry] = None,
    enabled: Optional[List[str]] = None,
) -> List[str]:
    """
    Register built-in utilities with a registry.

    Args:
        registry: Target registry (defaults to the singleton)
        enabled: Ids to register; None registers all

    Returns:
        Ids that were registered (already-registered ids are skipped)
    """
    registry = registry or UtilityRegistry.get_instance()
    registered = []
    for descriptor in builtin_utilities(registry):
        if enabled is not None and descriptor.id not in enabled:
            continue
        if registry.has(descriptor.id):
            continue
        registry.register(descriptor)
        registered.append(descriptor.id)
    logger.info(f"Built-in utilities registered: {registered}")
    return registered


__all__ = ["register_builtin_utilities", "builtin_utilities"]
