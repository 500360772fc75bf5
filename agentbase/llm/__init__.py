"""
AgentBase LLM Client - Unified LLM client via litellm

Usage:
    from agentbase.llm import LiteLLMClient, LLMConfig

    config = LLMConfig(model="gpt-4o", api_key="sk-xxx")
    client = LiteLLMClient(config=config, provider_name="openai")
    response = await client.chat_completion(messages=[...])

    # With streaming
    async for chunk in client.stream_completion(messages=[...]):
        print(chunk.content)
"""

from .base import BaseLLMClient, LLMConfig, LLMResponse, StreamChunk, StopReason, ToolCall, Usage
from .litellm_client import LiteLLMClient

__all__ = [
    "BaseLLMClient",
    "LLMConfig",
    "LLMResponse",
    "StreamChunk",
    "StopReason",
    "ToolCall",
    "Usage",
    "LiteLLMClient",
]
