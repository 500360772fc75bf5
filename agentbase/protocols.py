"""
AgentBase Protocols - Abstract interfaces for dependency injection

The run controller depends only on these contracts, so any LLM provider
(or a scripted fake in tests) can drive a run.
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class LLMClientProtocol(Protocol):
    """
    Abstract interface for LLM clients

    Example:
        class MyLLMClient:
            async def chat_completion(self, messages, tools=None, config=None, **kwargs):
                ...  # return an LLMResponse

            async def stream_completion(self, messages, tools=None, config=None, **kwargs):
                yield StreamChunk(content="Hello")
                yield StreamChunk(is_final=True, stop_reason=StopReason.END_TURN)
    """

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict]] = None,
        config: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Call LLM for chat completion

        Args:
            messages: List of message dicts in OpenAI chat format
            tools: Optional list of tool schemas (OpenAI format)
            config: Optional configuration (model, temperature, etc.)
            **kwargs: Provider options such as ``parallel_tool_calls``

        Returns:
            LLMResponse with content and tool_calls
        """
        ...

    def stream_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict]] = None,
        config: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> AsyncIterator[Any]:
        """
        Stream a chat completion

        Yields:
            StreamChunk objects; tool calls arrive on the final chunk
        """
        ...
