"""
AgentBase Streaming Models - Data structures for streaming events

A stream is an ordered, single-pass sequence of AgentEvents produced by one
run. Sequence numbers are assigned by the run in emission order.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class EventType(str, Enum):
    """Types of events that can be streamed"""
    # State events
    STATE_CHANGE = "state_change"

    # Message events
    MESSAGE_START = "message_start"
    MESSAGE_CHUNK = "message_chunk"
    MESSAGE_END = "message_end"

    # Tool events
    TOOL_CALL_START = "tool_call_start"
    TOOL_RESULT = "tool_result"

    # Execution events
    EXECUTION_START = "execution_start"
    EXECUTION_END = "execution_end"

    # Error events
    ERROR = "error"
    WARNING = "warning"


@dataclass
class AgentEvent:
    """
    Base event structure for streaming.

    All events have:
    - type: The type of event
    - data: Event-specific data
    - timestamp: When the event occurred
    - conversation_id: Which conversation the run belongs to
    - node_id: Execution node that produced the event
    - sequence: Sequence number for ordering
    """
    type: EventType
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)
    conversation_id: Optional[str] = None
    node_id: Optional[str] = None
    sequence: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.type in (EventType.EXECUTION_END, EventType.ERROR)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization"""
        return {
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "conversation_id": self.conversation_id,
            "node_id": self.node_id,
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentEvent":
        """Create event from dictionary"""
        return cls(
            type=EventType(data["type"]),
            data=data["data"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            conversation_id=data.get("conversation_id"),
            node_id=data.get("node_id"),
            sequence=data.get("sequence", 0),
        )
