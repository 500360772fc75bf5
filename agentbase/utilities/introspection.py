"""
Registry introspection utilities.

Let the model discover and reach what it can call:
- utility_list_utilities: ids and descriptions, with an optional search filter
- utility_get_utility_info: full descriptor (description + parameter schema)
- utility_call_utility: dispatch another registered utility by id
"""

import json
import logging
from typing import List

from ..errors import UtilityExecutionError
from ..orchestrator.provenance import NodeType
from ..tools import ExecutionContext, UtilityDescriptor, UtilityRegistry

logger = logging.getLogger(__name__)

CALL_UTILITY_ID = "utility_call_utility"


def build_introspection_utilities(registry: UtilityRegistry) -> List[UtilityDescriptor]:
    """Descriptors bound to ``registry``."""

    async def list_utilities_executor(args: dict, context: ExecutionContext) -> list:
        search = (args.get("search") or "").strip().lower()
        infos = registry.list()
        if search:
            infos = [
                i for i in infos
                if search in i.id.lower() or search in i.description.lower()
            ]
        logger.debug(f"[Utility] list_utilities search={search or 'none'} -> {len(infos)}")
        return [i.to_dict() for i in infos]

    async def get_utility_info_executor(args: dict, context: ExecutionContext) -> dict:
        utility_id = args["utility_id"]
        descriptor = registry.get(utility_id)
        if descriptor is None:
            raise UtilityExecutionError(
                f"Utility not found: {utility_id}",
                details={"utility_id": utility_id},
            )
        return {
            "id": descriptor.id,
            "description": descriptor.description,
            "schema": descriptor.parameters,
        }

    async def call_utility_executor(args: dict, context: ExecutionContext):
        utility_id = args["utility_id"]
        parameters = args.get("parameters") or {}
        if isinstance(parameters, str):
            try:
                parameters = json.loads(parameters)
            except json.JSONDecodeError as e:
                raise UtilityExecutionError(
                    f"parameters is not valid JSON: {e.msg}",
                    details={"utility_id": utility_id},
                ) from e
        if not isinstance(parameters, dict):
            raise UtilityExecutionError(
                "parameters must be an object",
                details={"utility_id": utility_id},
            )
        if utility_id == CALL_UTILITY_ID:
            raise UtilityExecutionError(f"{CALL_UTILITY_ID} cannot call itself")
        if context.dispatcher is None or context.graph is None or context.node is None:
            raise UtilityExecutionError(
                "Nested utility calls are only available inside a run",
                details={"utility_id": utility_id},
            )

        nested = context.spawn_child(NodeType.UTILITY, label=utility_id)
        logger.info(
            f"[Utility] call_utility {utility_id} node={nested.node.node_id} "
            f"parent={context.node.node_id}"
        )
        result = await context.dispatcher.dispatch(utility_id, parameters, nested)
        if not result.success:
            raise UtilityExecutionError(
                result.content,
                details={"utility_id": utility_id, "node_id": nested.node.node_id},
            )
        return result.data

    return [
        UtilityDescriptor(
            id="utility_list_utilities",
            description="Get a list of all available utilities, optionally filtered by a search term.",
            parameters={
                "type": "object",
                "properties": {
                    "search": {
                        "type": "string",
                        "description": "Optional search term to filter utilities by id or description",
                    },
                },
            },
            executor=list_utilities_executor,
        ),
        UtilityDescriptor(
            id="utility_get_utility_info",
            description="Get detailed information about a specific utility, including its parameter schema.",
            parameters={
                "type": "object",
                "properties": {
                    "utility_id": {
                        "type": "string",
                        "description": "The ID of the utility to get information about",
                    },
                },
                "required": ["utility_id"],
            },
            executor=get_utility_info_executor,
        ),
        UtilityDescriptor(
            id=CALL_UTILITY_ID,
            description=(
                "Call another utility by id with an object of parameters. "
                "Use utility_list_utilities and utility_get_utility_info to find "
                "utilities and their parameters."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "utility_id": {
                        "type": "string",
                        "description": "The ID of the utility to call (e.g., utility_get_current_datetime)",
                    },
                    "parameters": {
                        "type": ["object", "string"],
                        "description": "Parameters passed to the utility, as an object or a JSON string",
                    },
                },
                "required": ["utility_id"],
            },
            executor=call_utility_executor,
        ),
    ]
