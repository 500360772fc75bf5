"""Tests for agentbase.orchestrator.history and prompts"""

from datetime import datetime, timezone

from agentbase.messages import Message, MessageToolCall
from agentbase.orchestrator.history import (
    TRUNCATION_MARKER,
    cap_tool_result,
    estimate_message_tokens,
    estimate_tokens,
    truncate_history,
)
from agentbase.orchestrator.prompts import DEFAULT_SYSTEM_PROMPT, build_system_prompt


class TestEstimates:

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens(None) == 0
        assert estimate_tokens("a" * 40) == 10

    def test_message_tokens_include_tool_calls(self):
        plain = Message.assistant("a" * 40)
        with_call = Message.assistant("a" * 40, [MessageToolCall("c1", "calc_tool", {"expr": "1+1"})])
        assert estimate_message_tokens(with_call) > estimate_message_tokens(plain)


class TestCapToolResult:

    def test_short_result_unchanged(self):
        assert cap_tool_result("short", 100) == "short"

    def test_long_result_capped_with_marker(self):
        capped = cap_tool_result("x" * 500, 100)
        assert capped == "x" * 100 + TRUNCATION_MARKER

    def test_prefers_newline_boundary(self):
        text = "a" * 90 + "\n" + "b" * 100
        capped = cap_tool_result(text, 100)
        assert capped == "a" * 90 + TRUNCATION_MARKER


class TestTruncateHistory:

    def test_fits_returns_original(self):
        msgs = [Message.user("hi"), Message.assistant("hello")]
        assert truncate_history("system", msgs, 1000) is msgs

    def test_keeps_newest(self):
        msgs = [Message.user("a" * 400), Message.assistant("b" * 400), Message.user("c" * 40)]

        kept = truncate_history("", msgs, 120)

        assert [m.content[0] for m in kept] == ["b", "c"]

    def test_system_prompt_reserved(self):
        msgs = [Message.user("a" * 40), Message.user("b" * 40)]

        kept = truncate_history("s" * 40, msgs, 20)

        assert [m.content[0] for m in kept] == ["b"]

    def test_newest_kept_even_when_over_budget(self):
        msgs = [Message.user("a" * 40), Message.user("b" * 4000)]

        kept = truncate_history("", msgs, 10)

        assert len(kept) == 1
        assert kept[0].content.startswith("b")


class TestSystemPrompt:

    def test_default_with_time(self):
        now = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        prompt = build_system_prompt(now=now)
        assert prompt.startswith(DEFAULT_SYSTEM_PROMPT)
        assert prompt.endswith("Current time (UTC): 2024-05-01 12:30")

    def test_override(self):
        prompt = build_system_prompt("  You are a calculator.  ")
        assert prompt.startswith("You are a calculator.\n\nCurrent time (UTC): ")

    def test_blank_override_uses_default(self):
        assert build_system_prompt("   ").startswith(DEFAULT_SYSTEM_PROMPT)
