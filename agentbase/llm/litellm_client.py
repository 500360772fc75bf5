"""
AgentBase LiteLLM Client - Unified LLM client powered by litellm

Supports all providers through a single client:
- OpenAI (GPT-4o, o1, etc.)
- Anthropic (Claude 3.5, Claude 4)
- Azure OpenAI
- Google Gemini
- Ollama (local models)
"""

import json
import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional

import litellm

from .base import (
    BaseLLMClient,
    LLMConfig,
    LLMResponse,
    StreamChunk,
    ToolCall,
    Usage,
    StopReason,
)

logger = logging.getLogger(__name__)

# Provider -> default environment variable for API key
_PROVIDER_ENV_VARS: Dict[str, Optional[str]] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_OPENAI_API_KEY",
    "gemini": "GOOGLE_API_KEY",
    "ollama": None,
}


def build_litellm_model_string(provider: str, model: str) -> str:
    """Map provider + model to the litellm model string.

    See https://docs.litellm.ai/docs/providers
    """
    provider = provider.lower()
    if provider == "openai":
        return model
    if provider in ("anthropic", "azure", "gemini", "ollama"):
        return f"{provider}/{model}"
    return model


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("[LiteLLM] tool call arguments are not valid JSON")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class LiteLLMClient(BaseLLMClient):
    """
    Unified LLM client powered by litellm.

    Example:
        from agentbase.llm import LiteLLMClient, LLMConfig

        config = LLMConfig(model="gpt-4o", api_key="sk-xxx")
        client = LiteLLMClient(config=config, provider_name="openai")
        response = await client.chat_completion([
            {"role": "user", "content": "Hello!"}
        ])
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        provider_name: str = "openai",
        **kwargs,
    ):
        if config is None:
            if "model" not in kwargs:
                raise ValueError("model is required")
            config = LLMConfig(model=kwargs.pop("model"), **kwargs)
            kwargs = {}

        super().__init__(config, **kwargs)

        self.provider = provider_name.lower()
        self._litellm_model = build_litellm_model_string(self.provider, self.config.model)

        # Resolve API key: explicit config > env var
        api_key = self.config.api_key
        if not api_key:
            env_var = _PROVIDER_ENV_VARS.get(self.provider)
            if env_var:
                api_key = os.environ.get(env_var)

        self._base_kwargs: Dict[str, Any] = {"timeout": self.config.timeout}
        if self.config.base_url:
            self._base_kwargs["api_base"] = self.config.base_url
        if api_key:
            self._base_kwargs["api_key"] = api_key
        self._base_kwargs.update(self.config.extra)

        logger.info(
            f"LiteLLMClient initialized: provider={self.provider}, "
            f"litellm_model={self._litellm_model}"
        )

    def _model_params(self, **kwargs) -> Dict[str, Any]:
        """Sampling parameters, with per-call overrides."""
        return {
            "temperature": kwargs.get("temperature", self.config.temperature),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "top_p": kwargs.get("top_p", self.config.top_p),
        }

    def _build_params(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        **kwargs,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": kwargs.get("model") or self._litellm_model,
            "messages": messages,
            **self._model_params(**kwargs),
            **self._base_kwargs,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = kwargs.get("tool_choice") or "auto"
            if "parallel_tool_calls" in kwargs:
                params["parallel_tool_calls"] = kwargs["parallel_tool_calls"]
        if "stop" in kwargs:
            params["stop"] = kwargs["stop"]
        return params

    # ------------------------------------------------------------------
    # Core API methods
    # ------------------------------------------------------------------

    async def _call_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs,
    ) -> LLMResponse:
        """Make a non-streaming call via litellm.acompletion."""
        params = self._build_params(messages, tools, **kwargs)
        logger.info(
            f"[LiteLLM] model={params['model']}, tools={len(tools) if tools else 0}, "
            f"messages={len(messages)}"
        )

        response = await litellm.acompletion(**params)

        choice = response.choices[0]
        message = choice.message

        tool_calls = None
        if message.tool_calls:
            tool_calls = [
                ToolCall(
                    id=tc.id or "",
                    name=tc.function.name or "",
                    arguments=_parse_arguments(tc.function.arguments),
                )
                for tc in message.tool_calls
            ]

        usage = None
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        return LLMResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            stop_reason=self._parse_stop_reason(choice.finish_reason),
            usage=usage,
            model=getattr(response, "model", self.config.model),
        )

    async def _stream_api(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs,
    ) -> AsyncIterator[StreamChunk]:
        """Make a streaming call via litellm.acompletion(stream=True)."""
        params = self._build_params(messages, tools, **kwargs)
        params["stream"] = True
        params["stream_options"] = {"include_usage": True}

        response = await litellm.acompletion(**params)

        # Track tool call deltas across chunks
        tool_call_deltas: Dict[int, Dict[str, Any]] = {}
        usage: Optional[Usage] = None
        stop_reason: Optional[StopReason] = None

        async for chunk in response:
            chunk_usage = getattr(chunk, "usage", None)
            if chunk_usage:
                usage = Usage(
                    prompt_tokens=chunk_usage.prompt_tokens,
                    completion_tokens=chunk_usage.completion_tokens,
                    total_tokens=chunk_usage.total_tokens,
                )
            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            delta = choice.delta

            if delta.tool_calls:
                for tc_delta in delta.tool_calls:
                    idx = tc_delta.index
                    entry = tool_call_deltas.setdefault(idx, {"id": "", "name": "", "arguments": ""})
                    if tc_delta.id:
                        entry["id"] = tc_delta.id
                    if tc_delta.function:
                        if tc_delta.function.name:
                            entry["name"] = tc_delta.function.name
                        if tc_delta.function.arguments:
                            entry["arguments"] += tc_delta.function.arguments

            if choice.finish_reason is not None:
                stop_reason = self._parse_stop_reason(choice.finish_reason)

            if delta.content:
                yield StreamChunk(content=delta.content)

        tool_calls = None
        if tool_call_deltas:
            tool_calls = [
                ToolCall(
                    id=tool_call_deltas[idx]["id"],
                    name=tool_call_deltas[idx]["name"],
                    arguments=_parse_arguments(tool_call_deltas[idx]["arguments"]),
                )
                for idx in sorted(tool_call_deltas)
            ]

        yield StreamChunk(
            content="",
            tool_calls=tool_calls,
            is_final=True,
            stop_reason=stop_reason or StopReason.END_TURN,
            usage=usage,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_stop_reason(finish_reason: Optional[str]) -> StopReason:
        """Map litellm/OpenAI finish_reason to StopReason enum."""
        if finish_reason is None:
            return StopReason.END_TURN
        mapping = {
            "stop": StopReason.END_TURN,
            "end_turn": StopReason.END_TURN,
            "length": StopReason.MAX_TOKENS,
            "max_tokens": StopReason.MAX_TOKENS,
            "tool_calls": StopReason.TOOL_USE,
            "tool_use": StopReason.TOOL_USE,
            "function_call": StopReason.TOOL_USE,
            "stop_sequence": StopReason.STOP_SEQUENCE,
        }
        return mapping.get(finish_reason, StopReason.END_TURN)
