"""Pydantic request/response models for the AgentBase API."""

from typing import List, Optional

from pydantic import BaseModel


class RunRequest(BaseModel):
    conversation_id: str
    message: str
    history: Optional[List[dict]] = None
    system_prompt: Optional[str] = None


class RunResponse(BaseModel):
    conversation_id: str
    response: str
    state: str
    turns: int = 0
    tool_calls: List[dict] = []
    token_usage: dict = {}
    duration_ms: int = 0
    root_node_id: Optional[str] = None
    error: Optional[dict] = None


class UtilityInfoResponse(BaseModel):
    id: str
    description: str


class ThreadResponse(BaseModel):
    conversation_id: str
    messages: List[dict]
