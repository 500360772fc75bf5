"""
AgentBase Message - Conversation message model

Messages are stored and exchanged in the OpenAI chat format:
- Assistant: {"role": "assistant", "content": "...", "tool_calls": [{"id": "...", "type": "function", "function": {"name": "...", "arguments": "..."}}]}
- Tool result: {"role": "tool", "tool_call_id": "...", "content": "..."}
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"
ROLE_TOOL = "tool"

ROLES = (ROLE_USER, ROLE_ASSISTANT, ROLE_SYSTEM, ROLE_TOOL)


@dataclass
class MessageToolCall:
    """
    A tool call carried by an assistant message

    Attributes:
        id: Call ID assigned by the model (may be empty when truncated)
        name: Utility id the model wants to call (may be empty when truncated)
        arguments: Parsed argument payload
    """
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return bool(self.id) and bool(self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments, ensure_ascii=False),
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessageToolCall":
        func = data.get("function") or {}
        name = func.get("name", data.get("name")) or ""
        raw_args = func.get("arguments", data.get("arguments"))
        if isinstance(raw_args, str):
            try:
                arguments = json.loads(raw_args) if raw_args else {}
            except json.JSONDecodeError:
                logger.warning(f"Unparseable tool call arguments for '{name}'")
                arguments = {}
        elif isinstance(raw_args, dict):
            arguments = raw_args
        else:
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        return cls(id=data.get("id") or "", name=name, arguments=arguments)


@dataclass
class Message:
    """
    A single conversation message

    Attributes:
        role: One of user, assistant, system, tool
        content: Text content (None for assistant messages with only tool calls)
        tool_calls: Tool calls requested by an assistant message
        tool_call_id: For tool messages, the call this result answers
    """
    role: str
    content: Optional[str] = None
    tool_calls: List[MessageToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to OpenAI chat format"""
        msg: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            msg["tool_call_id"] = self.tool_call_id
        return msg

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=data.get("role", ROLE_USER),
            content=data.get("content"),
            tool_calls=[MessageToolCall.from_dict(tc) for tc in data.get("tool_calls") or []],
            tool_call_id=data.get("tool_call_id"),
        )

    # -- Convenience constructors --

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=ROLE_USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: Optional[str],
        tool_calls: Optional[List[MessageToolCall]] = None,
    ) -> "Message":
        return cls(role=ROLE_ASSISTANT, content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> "Message":
        return cls(role=ROLE_TOOL, content=content, tool_call_id=tool_call_id)
