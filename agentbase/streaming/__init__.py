"""
AgentBase Streaming - Event types emitted by streaming runs

Usage:
    async for event in controller.stream(conversation_id, message, identity):
        if event.type == EventType.MESSAGE_CHUNK:
            print(event.data["chunk"], end="")
"""

from .models import AgentEvent, EventType

__all__ = ["AgentEvent", "EventType"]
