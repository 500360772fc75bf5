"""
Message State - Merge, sanitize and repair conversation message sequences

Three operations, all pure (inputs are never mutated):

1. merge: combine a persisted thread with caller-supplied history, dropping
   incoming messages whose (role, content) already appears in the base.
2. sanitize: prune tool calls with a missing id or name from the trailing
   assistant message (a model cut off mid-stream can emit these).
3. repair_tool_result_pairing: ensure every tool call in the sequence is
   answered by a tool result right after its assistant message. Used to build
   the model's view of a thread; the thread itself is never rewritten.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from ..messages import ROLE_ASSISTANT, ROLE_TOOL, Message

logger = logging.getLogger(__name__)

SYNTHETIC_TOOL_RESULT = "[synthetic] missing tool result - inserted for transcript repair"


def _dedup_key(message: Message) -> Tuple[str, Optional[str]]:
    # Tool-call ids and payloads are deliberately not part of the key.
    return (message.role, message.content)


def merge(base: List[Message], incoming: List[Message]) -> List[Message]:
    """
    Merge two message sequences.

    All of ``base`` is kept in its original order. Each message of
    ``incoming`` is appended, in ``incoming`` order, unless a message with the
    same (role, content) pair is already present in ``base``.

    Args:
        base: Authoritative sequence (usually the persisted thread).
        incoming: Sequence to fold in (usually caller-supplied history).

    Returns:
        A new list. Returns a copy of ``base`` when nothing is added.
    """
    seen = {_dedup_key(m) for m in base}
    merged = list(base)
    skipped = 0
    for message in incoming:
        if _dedup_key(message) in seen:
            skipped += 1
            continue
        merged.append(message)

    if skipped:
        logger.debug(f"merge: skipped {skipped} duplicate message(s)")
    return merged


def sanitize(messages: List[Message]) -> List[Message]:
    """
    Drop invalid tool calls from the last message.

    Only the last message is inspected. If it is an assistant message with
    tool calls, calls missing an id or a name are removed. When at least one
    call is removed the last message is replaced by a new assistant message
    carrying the filtered list; otherwise the original list is returned as is.
    """
    if not messages:
        return messages

    last = messages[-1]
    if last.role != ROLE_ASSISTANT or not last.tool_calls:
        return messages

    valid = [tc for tc in last.tool_calls if tc.is_complete]
    if len(valid) == len(last.tool_calls):
        return messages

    logger.warning(
        f"sanitize: dropped {len(last.tool_calls) - len(valid)} incomplete "
        f"tool call(s) from trailing assistant message"
    )
    replacement = Message(
        role=last.role,
        content=last.content,
        tool_calls=valid,
        tool_call_id=last.tool_call_id,
    )
    return messages[:-1] + [replacement]


def repair_tool_result_pairing(messages: List[Message]) -> List[Message]:
    """
    Ensure every tool call has a matching tool result immediately after it.

    Handles:
    - Displaced tool results: moved right after their assistant message
    - Missing tool results: synthetic result inserted
    - Duplicate tool results: only the first is kept
    - Orphaned tool results: results with no matching tool call are dropped

    Returns the original list reference if no changes were needed.
    """
    results_by_id: Dict[str, List[int]] = {}
    expected_ids: Set[str] = set()
    for i, msg in enumerate(messages):
        if msg.role == ROLE_TOOL and msg.tool_call_id:
            results_by_id.setdefault(msg.tool_call_id, []).append(i)
        elif msg.role == ROLE_ASSISTANT:
            expected_ids.update(tc.id for tc in msg.tool_calls if tc.id)

    repaired: List[Message] = []
    consumed: Set[int] = set()
    changed = False

    for i, msg in enumerate(messages):
        if msg.role == ROLE_ASSISTANT and msg.tool_calls:
            repaired.append(msg)
            placed: Set[str] = set()
            for offset, tc in enumerate(msg.tool_calls):
                if not tc.id or tc.id in placed:
                    continue
                placed.add(tc.id)
                indices = [idx for idx in results_by_id.get(tc.id, []) if idx not in consumed]
                if not indices:
                    repaired.append(Message.tool(tc.id, SYNTHETIC_TOOL_RESULT))
                    changed = True
                    logger.warning(f"transcript_repair: inserted synthetic result for tool_call {tc.id}")
                    continue
                first = indices[0]
                repaired.append(messages[first])
                consumed.update(indices)
                if first != i + 1 + offset or len(indices) > 1:
                    changed = True
        elif msg.role == ROLE_TOOL:
            if i in consumed:
                continue
            if msg.tool_call_id in expected_ids:
                # Placed (or about to be placed) after its assistant message.
                changed = True
                continue
            changed = True
            logger.warning(
                f"transcript_repair: dropped orphaned tool result for "
                f"tool_call_id {msg.tool_call_id} at index {i}"
            )
        else:
            repaired.append(msg)

    if not changed:
        return messages
    return repaired
