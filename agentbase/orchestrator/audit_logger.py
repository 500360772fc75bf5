"""
Structured audit logging for run and dispatch decisions.

Produces JSON log entries via Python's standard logging module under
the ``agentbase.audit`` logger name. Each entry includes a timestamp,
event_type, and event-specific fields.

Usage::

    audit = AuditLogger()
    audit.log_tool_dispatch(
        utility_id="utility_get_current_datetime",
        node_id="utility_3f2a9c1b7d4e",
        parent_node_id="agent_0c9d8e7f6a5b",
        user_id="user_1",
        conversation_id="conv_1",
        success=True,
        duration_ms=12,
    )
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

_audit_logger = logging.getLogger("agentbase.audit")


class AuditLogger:
    """Structured audit logger for dispatches and run outcomes."""

    def _emit(self, event_type: str, fields: Dict[str, Any]) -> None:
        if not _audit_logger.isEnabledFor(logging.INFO):
            return
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
        }
        entry.update(fields)
        _audit_logger.info(json.dumps(entry, default=str))

    def log_tool_dispatch(
        self,
        utility_id: str,
        node_id: Optional[str],
        parent_node_id: Optional[str],
        user_id: str,
        conversation_id: str,
        success: bool,
        duration_ms: int,
        error_code: Optional[str] = None,
    ) -> None:
        """Log one utility dispatch with its provenance."""
        fields: Dict[str, Any] = {
            "utility_id": utility_id,
            "node_id": node_id,
            "parent_node_id": parent_node_id,
            "user_id": user_id,
            "conversation_id": conversation_id,
            "success": success,
            "duration_ms": duration_ms,
        }
        if error_code is not None:
            fields["error_code"] = error_code
        self._emit("tool_dispatch", fields)

    def log_run_turn(
        self,
        conversation_id: str,
        turn: int,
        tool_calls: List[str],
        final_answer: bool,
    ) -> None:
        """Log a think/act turn summary."""
        self._emit("run_turn", {
            "conversation_id": conversation_id,
            "turn": turn,
            "tool_calls": tool_calls,
            "tool_calls_count": len(tool_calls),
            "final_answer": final_answer,
        })

    def log_run_end(
        self,
        conversation_id: str,
        root_node_id: Optional[str],
        state: str,
        turns: int,
        duration_ms: int,
        error_type: Optional[str] = None,
    ) -> None:
        """Log the terminal state of a run."""
        fields: Dict[str, Any] = {
            "conversation_id": conversation_id,
            "root_node_id": root_node_id,
            "state": state,
            "turns": turns,
            "duration_ms": duration_ms,
        }
        if error_type is not None:
            fields["error_type"] = error_type
        self._emit("run_end", fields)
