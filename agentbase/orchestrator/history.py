"""History window for model calls.

The thread is append-only and may grow without bound; the model only ever
sees a window of it. Two limits apply:

- Tool result truncation: a single observation is capped at a character limit.
- History truncation: the most recent messages that fit in the token budget
  left after the system prompt are kept, newest first.
"""

import logging
from typing import List, Optional

from ..messages import Message

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[truncated - result exceeded size limit]"


def estimate_tokens(text: Optional[str]) -> int:
    """Estimate token count using ~4 chars per token."""
    if not text:
        return 0
    return len(text) // 4


def estimate_message_tokens(message: Message) -> int:
    tokens = estimate_tokens(message.content)
    for tc in message.tool_calls:
        tokens += estimate_tokens(tc.name) + estimate_tokens(str(tc.arguments))
    return tokens


def cap_tool_result(result_text: str, max_chars: int) -> str:
    """Hard cap on a tool result, preferring a newline boundary near the limit."""
    if len(result_text) <= max_chars:
        return result_text
    cut = max_chars
    newline_pos = result_text.rfind("\n", int(cut * 0.8), cut)
    if newline_pos > 0:
        cut = newline_pos
    logger.warning(f"[Run] Tool result truncated: {len(result_text)} -> {cut} chars")
    return result_text[:cut] + TRUNCATION_MARKER


def truncate_history(
    system_prompt: str,
    messages: List[Message],
    token_budget: int,
) -> List[Message]:
    """
    Keep the most recent messages that fit the budget.

    Args:
        system_prompt: Prompt sent alongside the history (its tokens are reserved first)
        messages: Full history, oldest first
        token_budget: Total input budget in tokens

    Returns:
        Chronologically ordered suffix of ``messages``. The original list is
        returned when everything fits.
    """
    history_budget = max(0, token_budget - estimate_tokens(system_prompt))

    used = 0
    start = len(messages)
    for i in range(len(messages) - 1, -1, -1):
        cost = estimate_message_tokens(messages[i])
        if used + cost > history_budget:
            break
        used += cost
        start = i

    if start == 0:
        return messages

    # Never drop the newest message, even when it alone exceeds the budget.
    if start == len(messages) and messages:
        start = len(messages) - 1

    logger.info(
        f"[Run] History truncated: kept {len(messages) - start}/{len(messages)} "
        f"messages (~{used} tokens, budget {history_budget})"
    )
    return messages[start:]
