"""
AgentBase Utility Dispatcher - Validate, execute and log a single utility call

dispatch() never raises for tool-level problems. Every outcome is an
ExecuteResult, so a failing utility becomes an observation for the model
instead of aborting the run:

- unknown id                 -> ToolNotFound
- arguments violate schema   -> InvalidArguments (executor is not invoked)
- executor raises / times out,
  returns success=False, or
  the schema is unusable     -> ExecutionFailed

Each dispatch of a registered utility schedules a background write to the
execution log. Log failures are only reported through logging.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Dict, Optional, Set

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, UnknownType
from jsonschema.validators import validator_for

from ..errors import ToolError, ToolErrorCode, UtilityExecutionError
from ..orchestrator.audit_logger import AuditLogger
from .models import ExecuteResult, ExecutionContext, UtilityDescriptor
from .registry import UtilityRegistry

logger = logging.getLogger(__name__)


class UtilityDispatcher:
    """
    Executes utilities from a registry on behalf of a run

    Usage:
        dispatcher = UtilityDispatcher(registry, execution_log=log_store)
        result = await dispatcher.dispatch("calc", {"expr": "2+2"}, context)
        if result.success:
            print(result.data)
        await dispatcher.drain()  # wait for pending log writes
    """

    def __init__(
        self,
        registry: Optional[UtilityRegistry] = None,
        execution_log: Optional[Any] = None,
        timeout: Optional[float] = None,
        audit: Optional[AuditLogger] = None,
    ):
        """
        Args:
            registry: UtilityRegistry instance (defaults to singleton)
            execution_log: Store with ``record(tool_id, schema, params, result, node)``;
                None disables execution logging
            timeout: Per-call executor timeout in seconds (None = no limit)
            audit: AuditLogger for structured dispatch records
        """
        self.registry = registry or UtilityRegistry.get_instance()
        self.execution_log = execution_log
        self.timeout = timeout
        self._audit = audit or AuditLogger()
        self._validators: Dict[str, Any] = {}
        self._pending_logs: Set[asyncio.Task] = set()

    async def dispatch(
        self,
        utility_id: str,
        args: Optional[Dict[str, Any]],
        context: ExecutionContext,
    ) -> ExecuteResult:
        """
        Dispatch one utility call.

        Args:
            utility_id: Registered utility id
            args: Argument object produced by the model
            context: Identity, conversation and node the call runs under

        Returns:
            ExecuteResult (never raises for tool-level errors)
        """
        start = time.monotonic()
        descriptor = self.registry.get(utility_id)

        if descriptor is None:
            result = ExecuteResult(
                utility_id=utility_id,
                success=False,
                error=ToolError(
                    code=ToolErrorCode.TOOL_NOT_FOUND,
                    message=f"Utility '{utility_id}' is not registered",
                ),
            )
            logger.warning(f"[Dispatch] unknown utility '{utility_id}'")
            return self._finish(result, start, context, args or {}, descriptor=None)

        args = dict(args or {})
        violation = self._validate(descriptor, args)
        if violation is not None:
            result = ExecuteResult(utility_id=utility_id, success=False, error=violation)
            logger.info(f"[Dispatch] {utility_id} rejected before execution: {violation.message}")
            return self._finish(result, start, context, args, descriptor)

        result = await self._execute(descriptor, args, context)
        return self._finish(result, start, context, args, descriptor)

    async def drain(self) -> None:
        """Wait until all scheduled execution-log writes have completed."""
        while self._pending_logs:
            await asyncio.gather(*list(self._pending_logs), return_exceptions=True)

    @property
    def pending_log_writes(self) -> int:
        return len(self._pending_logs)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validator_for(self, descriptor: UtilityDescriptor) -> Any:
        validator = self._validators.get(descriptor.id)
        if validator is None:
            schema = descriptor.parameters or {"type": "object"}
            cls = validator_for(schema, default=Draft7Validator)
            validator = cls(schema)
            self._validators[descriptor.id] = validator
        return validator

    def _validate(self, descriptor: UtilityDescriptor, args: Dict[str, Any]) -> Optional[ToolError]:
        try:
            validator = self._validator_for(descriptor)
            errors = sorted(validator.iter_errors(args), key=lambda e: [str(p) for p in e.path])
        except (SchemaError, UnknownType) as e:
            self._validators.pop(descriptor.id, None)
            logger.warning(f"[Dispatch] {descriptor.id} has an unusable parameter schema: {e}")
            return ToolError(
                code=ToolErrorCode.EXECUTION_FAILED,
                message=f"Utility '{descriptor.id}' has an invalid parameter schema",
                details={"schema_error": getattr(e, "message", str(e))},
            )
        if not errors:
            return None
        first = errors[0]
        path = "/".join(str(p) for p in first.path)
        message = f"{path}: {first.message}" if path else first.message
        return ToolError(
            code=ToolErrorCode.INVALID_ARGUMENTS,
            message=message,
            details={
                "path": list(first.path),
                "validator": first.validator,
                "violations": [e.message for e in errors],
            },
        )

    async def _invoke(
        self,
        descriptor: UtilityDescriptor,
        args: Dict[str, Any],
        context: ExecutionContext,
    ) -> Any:
        value = descriptor.executor(args, context)
        if inspect.isawaitable(value):
            value = await value
        return value

    async def _execute(
        self,
        descriptor: UtilityDescriptor,
        args: Dict[str, Any],
        context: ExecutionContext,
    ) -> ExecuteResult:
        utility_id = descriptor.id
        try:
            if self.timeout:
                value = await asyncio.wait_for(
                    self._invoke(descriptor, args, context),
                    timeout=self.timeout,
                )
            else:
                value = await self._invoke(descriptor, args, context)
        except asyncio.TimeoutError:
            logger.warning(f"[Dispatch] {utility_id} timed out after {self.timeout}s")
            return ExecuteResult(
                utility_id=utility_id,
                success=False,
                error=ToolError(
                    code=ToolErrorCode.EXECUTION_FAILED,
                    message=f"Utility '{utility_id}' timed out after {self.timeout}s",
                    details={"timeout": self.timeout},
                ),
            )
        except UtilityExecutionError as e:
            logger.warning(f"[Dispatch] {utility_id} failed: {e}")
            return ExecuteResult(
                utility_id=utility_id,
                success=False,
                error=ToolError(
                    code=ToolErrorCode.EXECUTION_FAILED,
                    message=str(e),
                    details=e.details,
                ),
            )
        except Exception as e:
            logger.error(f"[Dispatch] {utility_id} raised: {e}", exc_info=True)
            return ExecuteResult(
                utility_id=utility_id,
                success=False,
                error=ToolError(
                    code=ToolErrorCode.EXECUTION_FAILED,
                    message=f"Error executing {utility_id}: {e}",
                    details={"exception": type(e).__name__},
                ),
            )

        # Service-style responses: {"success": False, "error": "..."}
        if isinstance(value, dict) and value.get("success") is False:
            error_text = value.get("error") or value.get("message") or "Utility reported failure"
            return ExecuteResult(
                utility_id=utility_id,
                success=False,
                data=value,
                error=ToolError(
                    code=ToolErrorCode.EXECUTION_FAILED,
                    message=str(error_text),
                    details={k: v for k, v in value.items() if k not in ("success", "error")},
                ),
            )

        return ExecuteResult(utility_id=utility_id, success=True, data=value)

    def _finish(
        self,
        result: ExecuteResult,
        start: float,
        context: ExecutionContext,
        args: Dict[str, Any],
        descriptor: Optional[UtilityDescriptor],
    ) -> ExecuteResult:
        result.duration_ms = int((time.monotonic() - start) * 1000)
        node = context.node
        self._audit.log_tool_dispatch(
            utility_id=result.utility_id,
            node_id=node.node_id if node else None,
            parent_node_id=node.parent_node_id if node else None,
            user_id=context.user_id,
            conversation_id=context.conversation_id,
            success=result.success,
            duration_ms=result.duration_ms,
            error_code=result.error.code.value if result.error else None,
        )
        # No schema to provision a log for an unknown utility.
        if descriptor is not None and self.execution_log is not None:
            self._schedule_log(descriptor, args, result, context)
        return result

    def _schedule_log(
        self,
        descriptor: UtilityDescriptor,
        args: Dict[str, Any],
        result: ExecuteResult,
        context: ExecutionContext,
    ) -> None:
        task = asyncio.ensure_future(self._write_log(descriptor, args, result, context))
        self._pending_logs.add(task)
        task.add_done_callback(self._pending_logs.discard)

    async def _write_log(
        self,
        descriptor: UtilityDescriptor,
        args: Dict[str, Any],
        result: ExecuteResult,
        context: ExecutionContext,
    ) -> None:
        try:
            await self.execution_log.record(
                tool_id=descriptor.id,
                schema=descriptor.parameters,
                params=args,
                result=result.to_log_payload(),
                node=context.node,
            )
        except Exception as e:
            logger.warning(f"[ExecutionLog] failed to log {descriptor.id}: {e}")
