"""
AgentBase LLM types and the client base class

The run controller only sees LLMResponse and StreamChunk. Provider clients
subclass BaseLLMClient and translate their wire format into these types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from ..tools.models import UtilityDescriptor


class StopReason(str, Enum):
    """Why the model stopped producing output"""
    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"


@dataclass
class LLMConfig:
    """
    Model and sampling settings for one client.

    ``extra`` is passed to the provider call unchanged (e.g. ``api_version``
    for Azure).
    """
    model: str = "gpt-4o"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 4096
    top_p: float = 1.0
    timeout: int = 60
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolCall:
    """A function call requested by the model"""
    id: str
    name: str
    arguments: Dict[str, Any]


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class LLMResponse:
    """A complete (non-streamed) model reply: text, tool calls, or both."""
    content: str
    tool_calls: Optional[List[ToolCall]] = None
    stop_reason: StopReason = StopReason.END_TURN
    usage: Optional[Usage] = None
    model: Optional[str] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class StreamChunk:
    """
    One piece of a streamed reply.

    Text arrives as deltas in ``content``. Tool calls, usage and the stop
    reason are only set on the final chunk (``is_final``).
    """
    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    is_final: bool = False
    stop_reason: Optional[StopReason] = None
    usage: Optional[Usage] = None


ToolSpec = Union[Dict[str, Any], UtilityDescriptor]


class BaseLLMClient(ABC):
    """
    Shared plumbing for provider clients.

    Subclasses implement ``_call_api`` and ``_stream_api``. Callers use
    ``chat_completion`` / ``stream_completion``, which accept descriptors or
    raw OpenAI tool schemas and fold per-call ``config`` overrides into the
    provider kwargs.
    """

    provider: str = "unknown"

    def __init__(self, config: Optional[LLMConfig] = None, **overrides):
        self.config = config or LLMConfig()
        for key, value in overrides.items():
            if not hasattr(self.config, key):
                raise TypeError(f"Unknown LLM config field: {key}")
            setattr(self.config, key, value)

    @abstractmethod
    async def _call_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ) -> LLMResponse:
        ...

    @abstractmethod
    def _stream_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ) -> AsyncIterator[StreamChunk]:
        ...

    @staticmethod
    def _format_tools(tools: Optional[List[ToolSpec]]) -> Optional[List[Dict[str, Any]]]:
        if not tools:
            return None
        return [t.to_openai_schema() if isinstance(t, UtilityDescriptor) else t for t in tools]

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[ToolSpec]] = None,
        config: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Request one complete reply.

        Args:
            messages: Chat messages in OpenAI format
            tools: Descriptors or OpenAI tool schemas the model may call
            config: Per-call overrides (temperature, model, ...)
        """
        return await self._call_api(messages, self._format_tools(tools), **{**kwargs, **(config or {})})

    async def stream_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[ToolSpec]] = None,
        config: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a reply.

        Example:
            async for chunk in client.stream_completion(messages):
                print(chunk.content, end="", flush=True)
        """
        async for chunk in self._stream_api(messages, self._format_tools(tools), **{**kwargs, **(config or {})}):
            yield chunk
