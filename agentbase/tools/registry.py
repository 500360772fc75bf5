"""
AgentBase Utility Registry - Process-wide catalog of callable utilities

Registration happens once at startup. The registry is append-only (there is
no unregister), so concurrent runs read it without locking.
"""

import logging
import threading
from typing import Dict, List, Optional

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from .models import UtilityDescriptor, UtilityInfo

logger = logging.getLogger(__name__)


class UtilityRegistry:
    """
    Singleton registry for all available utilities

    Usage:
        registry = UtilityRegistry.get_instance()
        registry.register(descriptor)
        schemas = registry.get_tools_schema(["utility_get_current_datetime"])
    """

    _instance: Optional["UtilityRegistry"] = None
    _lock: threading.Lock = threading.Lock()

    def __init__(self) -> None:
        self._utilities: Dict[str, UtilityDescriptor] = {}

    @classmethod
    def get_instance(cls) -> "UtilityRegistry":
        """Get singleton instance"""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset registry (for testing)"""
        with cls._lock:
            cls._instance = None

    def register(self, descriptor: UtilityDescriptor) -> None:
        """
        Register a utility descriptor

        Args:
            descriptor: UtilityDescriptor to register

        Raises:
            ValueError: If the id is empty or already registered, or the
                parameter schema is not a valid JSON Schema
        """
        if not descriptor.id:
            raise ValueError("Utility id must be non-empty")
        if descriptor.id in self._utilities:
            raise ValueError(f"Utility '{descriptor.id}' is already registered")

        schema = descriptor.parameters or {"type": "object"}
        try:
            validator_for(schema, default=Draft7Validator).check_schema(schema)
        except SchemaError as e:
            raise ValueError(
                f"Utility '{descriptor.id}' has an invalid parameter schema: {e.message}"
            ) from e

        self._utilities[descriptor.id] = descriptor
        logger.info(f"Registered utility: {descriptor.id}")

    def get(self, utility_id: str) -> Optional[UtilityDescriptor]:
        """Return the descriptor, or None when not registered."""
        return self._utilities.get(utility_id)

    def list(self) -> List[UtilityInfo]:
        """All registered utilities (id + description) in registration order."""
        return [d.info() for d in self._utilities.values()]

    def get_tools_schema(self, utility_ids: Optional[List[str]] = None) -> List[Dict]:
        """
        Get OpenAI-format tool schemas

        Args:
            utility_ids: Utilities to include; None means all registered

        Returns:
            List of tool schemas in OpenAI format (unknown ids are skipped)
        """
        if utility_ids is None:
            return [d.to_openai_schema() for d in self._utilities.values()]

        schemas = []
        for utility_id in utility_ids:
            descriptor = self._utilities.get(utility_id)
            if descriptor:
                schemas.append(descriptor.to_openai_schema())
            else:
                logger.warning(f"Unknown utility requested for schema: {utility_id}")
        return schemas

    def has(self, utility_id: str) -> bool:
        return utility_id in self._utilities

    def __len__(self) -> int:
        return len(self._utilities)

    def __repr__(self) -> str:
        return f"<UtilityRegistry utilities={len(self._utilities)}>"
