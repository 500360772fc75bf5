"""Shared fixtures: identity, registries and a scripted LLM client.

No network or database access. The scripted client replays canned turns in
order and records the kwargs of every call.
"""

import re
from types import SimpleNamespace
from typing import Any, Dict, List, Union

import pytest

from agentbase.llm.base import LLMResponse, StreamChunk, ToolCall, Usage
from agentbase.orchestrator.provenance import IdentityContext
from agentbase.tools import UtilityRegistry, utility


class ScriptedLLM:
    """
    Fake LLM client.

    Each entry of ``turns`` is consumed by one call:
    - LLMResponse: returned (invoke) or split into word chunks (stream)
    - Exception: raised
    - list of StreamChunk / Exception: streamed verbatim (stream mode only)
    """

    def __init__(self, turns: List[Any]):
        self.turns = list(turns)
        self.calls: List[Dict[str, Any]] = []

    def _next(self, messages, tools, kwargs):
        self.calls.append({"messages": messages, "tools": tools, **kwargs})
        if not self.turns:
            raise AssertionError("ScriptedLLM ran out of turns")
        return self.turns.pop(0)

    async def chat_completion(self, messages, tools=None, config=None, **kwargs):
        item = self._next(messages, tools, kwargs)
        if isinstance(item, Exception):
            raise item
        return item

    async def stream_completion(self, messages, tools=None, config=None, **kwargs):
        item = self._next(messages, tools, kwargs)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, list):
            for chunk in item:
                if isinstance(chunk, Exception):
                    raise chunk
                yield chunk
            return
        for piece in re.findall(r"\S+\s*", item.content or ""):
            yield StreamChunk(content=piece)
        yield StreamChunk(tool_calls=item.tool_calls, is_final=True, usage=item.usage)


def answer(text: str) -> LLMResponse:
    return LLMResponse(content=text, usage=Usage(prompt_tokens=10, completion_tokens=5, total_tokens=15))


def calls(*tool_calls: Union[ToolCall, tuple]) -> LLMResponse:
    """LLMResponse requesting tools; tuples are (id, name, arguments)."""
    built = [tc if isinstance(tc, ToolCall) else ToolCall(*tc) for tc in tool_calls]
    return LLMResponse(
        content="",
        tool_calls=built,
        usage=Usage(prompt_tokens=20, completion_tokens=3, total_tokens=23),
    )


@utility(id="calc")
async def calc_utility(expr: str, *, context) -> str:
    """Add two integers written as 'a+b'."""
    left, right = expr.split("+")
    return str(int(left) + int(right))


@pytest.fixture
def identity():
    return IdentityContext(
        user_id="user_1",
        organization_id="org_1",
        platform_user_id="platform_1",
        platform_credential="key_secret",
    )


@pytest.fixture
def registry():
    reg = UtilityRegistry()
    reg.register(calc_utility)
    return reg


@pytest.fixture
def scripted_llm():
    """Factory: ``scripted_llm(turn, turn, ...)``."""
    return lambda *turns: ScriptedLLM(list(turns))


@pytest.fixture
def script():
    """Turn builders: ``script.answer(text)``, ``script.calls((id, name, args), ...)``."""
    return SimpleNamespace(answer=answer, calls=calls)
