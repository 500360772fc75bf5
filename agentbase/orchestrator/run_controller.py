"""
Agent Run Controller - the think/act loop over a persisted conversation thread

    Idle -> ModelThinking -> (ToolDispatch -> ModelThinking)* -> Responding -> Done
                         \\______________ any failure ______________/-> Error

A single async generator (``_run_events``) implements the state machine.
``stream()`` exposes its events as they happen; ``invoke()`` drains the same
generator and returns a RunResult. The two modes differ only in whether model
output is requested token by token.

Tool-level failures come back from the dispatcher as observations and never
leave the loop. Run-level failures (ModelCallFailed, MaxIterationsExceeded,
ThreadNotFound) end the run with a terminal ERROR event.
"""

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, Union

from ..db.thread_store import MemoryThreadStore, ThreadStore
from ..errors import MaxIterationsExceeded, ModelCallFailed, RunError, ThreadNotFound
from ..messages import Message, MessageToolCall
from ..protocols import LLMClientProtocol
from ..streaming.models import AgentEvent, EventType
from ..tools.dispatcher import UtilityDispatcher
from ..tools.models import ExecuteResult, ExecutionContext
from ..tools.registry import UtilityRegistry
from .audit_logger import AuditLogger
from .history import cap_tool_result, truncate_history
from .message_state import merge, repair_tool_result_pairing, sanitize
from .prompts import build_system_prompt
from .provenance import ExecutionNode, IdentityContext, NodeType, ProvenanceGraph
from .run_config import RunConfig, RunResult, TokenUsage, ToolCallRecord

logger = logging.getLogger(__name__)

ERROR_PREFIX = "[ERROR] "


class RunState(str, Enum):
    """States of a single run"""
    IDLE = "idle"
    MODEL_THINKING = "model_thinking"
    TOOL_DISPATCH = "tool_dispatch"
    RESPONDING = "responding"
    DONE = "done"
    ERROR = "error"


@dataclass
class ModelReply:
    """One complete model turn."""
    content: str = ""
    tool_calls: List[MessageToolCall] = field(default_factory=list)
    usage: Any = None


@dataclass
class _Run:
    """Mutable bookkeeping for one run, shared by stream() and invoke()."""
    conversation_id: str
    identity: IdentityContext
    graph: ProvenanceGraph = field(default_factory=ProvenanceGraph)
    root: Optional[ExecutionNode] = None
    state: Optional[RunState] = None
    messages: List[Message] = field(default_factory=list)
    persisted_count: int = 0
    turns: int = 0
    tool_records: List[ToolCallRecord] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    final_response: str = ""
    error: Optional[Dict[str, Any]] = None
    start: float = field(default_factory=time.monotonic)
    sequence: int = 0

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.start) * 1000)

    @property
    def root_node_id(self) -> Optional[str]:
        return self.root.node_id if self.root else None


def _is_auth_error(error: Exception) -> bool:
    name = type(error).__name__.lower()
    return "auth" in name or "permission" in name


def _args_summary(arguments: Dict[str, Any]) -> Dict[str, str]:
    return {k: str(v)[:100] for k, v in arguments.items()}


class AgentRunController:
    """
    Drives runs for conversation threads.

    Usage:
        controller = AgentRunController(
            llm_client=LiteLLMClient(config=LLMConfig(model="gpt-4o")),
            registry=registry,
            thread_store=PostgresThreadStore(db),
        )

        # Invoke mode
        result = await controller.invoke("conv_1", "what's 2+2", identity)
        print(result.response)

        # Stream mode
        async for event in controller.stream("conv_1", "and 3+3?", identity):
            if event.type == EventType.MESSAGE_CHUNK:
                print(event.data["chunk"], end="")
    """

    def __init__(
        self,
        llm_client: LLMClientProtocol,
        registry: Optional[UtilityRegistry] = None,
        dispatcher: Optional[UtilityDispatcher] = None,
        thread_store: Optional[ThreadStore] = None,
        config: Optional[RunConfig] = None,
        system_prompt: Optional[str] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.llm_client = llm_client
        self.config = config or RunConfig()
        self.registry = registry or UtilityRegistry.get_instance()
        self._audit = audit or AuditLogger()
        self.dispatcher = dispatcher or UtilityDispatcher(
            registry=self.registry,
            timeout=self.config.tool_execution_timeout,
            audit=self._audit,
        )
        self.thread_store = thread_store or MemoryThreadStore()
        self.system_prompt = system_prompt

    # ==========================================================================
    # ENTRY POINTS
    # ==========================================================================

    def run_agent(
        self,
        conversation_id: str,
        new_message: str,
        identity: IdentityContext,
        mode: str = "invoke",
        history: Optional[List[Message]] = None,
        system_prompt: Optional[str] = None,
    ) -> Union[AsyncIterator[AgentEvent], Awaitable[RunResult]]:
        """
        Run one user turn.

        Returns an async iterator of events for ``mode="stream"`` and an
        awaitable RunResult for ``mode="invoke"``.
        """
        if mode == "stream":
            return self.stream(conversation_id, new_message, identity, history, system_prompt)
        if mode == "invoke":
            return self.invoke(conversation_id, new_message, identity, history, system_prompt)
        raise ValueError(f"Unknown run mode: {mode!r} (expected 'stream' or 'invoke')")

    async def stream(
        self,
        conversation_id: str,
        new_message: str,
        identity: IdentityContext,
        history: Optional[List[Message]] = None,
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[AgentEvent]:
        """
        Stream events for one run.

        The sequence is single-pass and ends with EXECUTION_END or ERROR.
        Closing it early abandons the run; a dispatch already in flight still
        completes and is logged, but its result is discarded.
        """
        run = _Run(conversation_id=conversation_id, identity=identity)
        async for event in self._run_events(run, new_message, history, system_prompt, stream_tokens=True):
            yield event

    async def invoke(
        self,
        conversation_id: str,
        new_message: str,
        identity: IdentityContext,
        history: Optional[List[Message]] = None,
        system_prompt: Optional[str] = None,
    ) -> RunResult:
        """
        Run to completion and return the final answer plus final message state.

        Run-level failures are reported in ``RunResult.error``; this does not raise.
        """
        run = _Run(conversation_id=conversation_id, identity=identity)
        async for _ in self._run_events(run, new_message, history, system_prompt, stream_tokens=False):
            pass

        return RunResult(
            response=run.final_response if run.error is None else "",
            messages=list(run.messages),
            state=run.state.value,
            turns=run.turns,
            tool_calls=list(run.tool_records),
            token_usage=run.usage,
            duration_ms=run.duration_ms,
            root_node_id=run.root_node_id,
            error=run.error,
        )

    # ==========================================================================
    # STATE MACHINE
    # ==========================================================================

    def _event(
        self,
        run: _Run,
        event_type: EventType,
        data: Dict[str, Any],
        node_id: Optional[str] = None,
    ) -> AgentEvent:
        run.sequence += 1
        return AgentEvent(
            type=event_type,
            data=data,
            conversation_id=run.conversation_id,
            node_id=node_id or run.root_node_id,
            sequence=run.sequence,
        )

    def _transition(self, run: _Run, state: RunState, **data: Any) -> AgentEvent:
        previous = run.state
        run.state = state
        logger.debug(f"[Run] {run.conversation_id}: {previous.value if previous else None} -> {state.value}")
        return self._event(run, EventType.STATE_CHANGE, {
            "from": previous.value if previous else None,
            "to": state.value,
            **data,
        })

    async def _run_events(
        self,
        run: _Run,
        new_message: str,
        history: Optional[List[Message]],
        system_prompt: Optional[str],
        stream_tokens: bool,
    ) -> AsyncIterator[AgentEvent]:
        run.root = run.graph.create_root(run.identity, label="agent")
        logger.info(
            f"[Run] start conversation={run.conversation_id} root={run.root_node_id} "
            f"user={run.identity.user_id}"
        )
        yield self._event(run, EventType.EXECUTION_START, {
            "conversation_id": run.conversation_id,
            "root_node_id": run.root_node_id,
        })
        yield self._transition(run, RunState.IDLE)

        try:
            await self._load_state(run, new_message, history)

            system = build_system_prompt(system_prompt or self.system_prompt)
            tools = self.registry.get_tools_schema(self.config.enabled_utilities)
            logger.info(f"[Run] {len(tools)} utilities available")

            for turn in range(1, self.config.max_turns + 1):
                run.turns = turn
                yield self._transition(run, RunState.MODEL_THINKING, turn=turn)

                reply: Optional[ModelReply] = None
                message_open = False
                async for item in self._call_model(run, system, tools, stream_tokens):
                    if isinstance(item, ModelReply):
                        reply = item
                        continue
                    if not message_open:
                        message_open = True
                        yield self._event(run, EventType.MESSAGE_START, {"turn": turn})
                    yield self._event(run, EventType.MESSAGE_CHUNK, {"chunk": item})

                if not stream_tokens and reply.content:
                    message_open = True
                    yield self._event(run, EventType.MESSAGE_START, {"turn": turn})
                    yield self._event(run, EventType.MESSAGE_CHUNK, {"chunk": reply.content})

                self._add_usage(run, reply.usage)

                run.messages.append(Message.assistant(reply.content or None, reply.tool_calls))
                before = len(reply.tool_calls)
                run.messages = sanitize(run.messages)
                assistant = run.messages[-1]
                if len(assistant.tool_calls) != before:
                    yield self._event(run, EventType.WARNING, {
                        "message": f"Discarded {before - len(assistant.tool_calls)} incomplete tool call(s)",
                        "turn": turn,
                    })

                if message_open:
                    yield self._event(run, EventType.MESSAGE_END, {
                        "turn": turn,
                        "final": not assistant.has_tool_calls,
                    })

                if not assistant.has_tool_calls:
                    yield self._transition(run, RunState.RESPONDING, turn=turn)
                    run.final_response = reply.content or ""
                    self._audit.log_run_turn(run.conversation_id, turn, [], final_answer=True)
                    break

                yield self._transition(run, RunState.TOOL_DISPATCH, turn=turn)
                async for event in self._dispatch_turn(run, assistant.tool_calls):
                    yield event
                self._audit.log_run_turn(
                    run.conversation_id, turn,
                    [tc.name for tc in assistant.tool_calls],
                    final_answer=False,
                )
            else:
                raise MaxIterationsExceeded(self.config.max_turns)

            new_messages = run.messages[run.persisted_count:]
            await self.thread_store.append_messages(run.conversation_id, new_messages)
            yield self._transition(run, RunState.DONE)

        except RunError as e:
            logger.warning(f"[Run] {run.conversation_id} failed: {e.error_type}: {e.message}")
            run.error = e.to_dict()
        except Exception as e:
            logger.error(f"[Run] {run.conversation_id} unexpected failure: {e}", exc_info=True)
            run.error = {"error": str(e), "error_type": type(e).__name__}

        if run.error is not None:
            yield self._transition(run, RunState.ERROR)
            self._audit.log_run_end(
                run.conversation_id, run.root_node_id, run.state.value,
                run.turns, run.duration_ms, error_type=run.error["error_type"],
            )
            yield self._event(run, EventType.ERROR, dict(run.error))
            return

        self._audit.log_run_end(
            run.conversation_id, run.root_node_id, run.state.value, run.turns, run.duration_ms,
        )
        logger.info(
            f"[Run] done conversation={run.conversation_id} turns={run.turns} "
            f"tool_calls={len(run.tool_records)} duration={run.duration_ms}ms"
        )
        yield self._event(run, EventType.EXECUTION_END, {
            "final_response": run.final_response,
            "turns": run.turns,
            "tool_calls": [dataclasses.asdict(r) for r in run.tool_records],
            "token_usage": run.usage.to_dict(),
            "duration_ms": run.duration_ms,
            "root_node_id": run.root_node_id,
        })

    async def _load_state(
        self,
        run: _Run,
        new_message: str,
        history: Optional[List[Message]],
    ) -> None:
        """Idle: load the thread, fold in caller history, sanitize, add the new message."""
        store = self.thread_store
        if not await store.exists(run.conversation_id):
            if not self.config.auto_create_thread:
                raise ThreadNotFound(run.conversation_id)
            await store.create_thread(
                run.conversation_id,
                user_id=run.identity.user_id,
                organization_id=run.identity.organization_id,
            )
            logger.info(f"[Run] created thread {run.conversation_id}")

        persisted = await store.load_thread(run.conversation_id)
        run.persisted_count = len(persisted)
        messages = sanitize(merge(persisted, history or []))
        # The new message is always appended; a repeated "yes" is still a new turn.
        messages.append(Message.user(new_message))
        run.messages = messages

    # ==========================================================================
    # MODEL CALLS
    # ==========================================================================

    def _model_view(self, run: _Run, system: str) -> List[Dict[str, Any]]:
        window = truncate_history(system, run.messages, self.config.history_token_budget)
        window = repair_tool_result_pairing(window)
        return [{"role": "system", "content": system}] + [m.to_dict() for m in window]

    def _model_kwargs(self, tools: List[Dict[str, Any]]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools
            if self.config.disable_parallel_tool_calls:
                kwargs["parallel_tool_calls"] = False
        return kwargs

    async def _call_model(
        self,
        run: _Run,
        system: str,
        tools: List[Dict[str, Any]],
        stream_tokens: bool,
    ) -> AsyncIterator[Union[str, ModelReply]]:
        """
        One model turn with retry.

        Yields text deltas (stream mode only) followed by exactly one
        ModelReply. Transient failures are retried with exponential back-off
        only until the first delta has been yielded; auth errors are not
        retried. Exhaustion raises ModelCallFailed.
        """
        messages = self._model_view(run, system)
        kwargs = self._model_kwargs(tools)
        max_attempts = self.config.llm_max_retries + 1

        for attempt in range(max_attempts):
            emitted = False
            try:
                logger.info(
                    f"[LLM] turn={run.turns} attempt={attempt + 1} messages={len(messages)} "
                    f"tools={len(tools)}"
                )
                if not stream_tokens:
                    response = await self.llm_client.chat_completion(messages=messages, **kwargs)
                    yield ModelReply(
                        content=getattr(response, "content", "") or "",
                        tool_calls=self._tool_calls_from(getattr(response, "tool_calls", None)),
                        usage=getattr(response, "usage", None),
                    )
                    return

                content_parts: List[str] = []
                reply = ModelReply()
                async for chunk in self.llm_client.stream_completion(messages=messages, **kwargs):
                    if chunk.content:
                        emitted = True
                        content_parts.append(chunk.content)
                        yield chunk.content
                    if chunk.tool_calls:
                        reply.tool_calls = self._tool_calls_from(chunk.tool_calls)
                    if chunk.usage:
                        reply.usage = chunk.usage
                reply.content = "".join(content_parts)
                yield reply
                return

            except Exception as e:
                if emitted:
                    raise ModelCallFailed(f"Model stream failed after output started: {e}") from e
                if _is_auth_error(e):
                    raise ModelCallFailed(f"Model call rejected: {e}") from e
                if attempt + 1 >= max_attempts:
                    raise ModelCallFailed(
                        f"Model call failed after {max_attempts} attempt(s): {e}"
                    ) from e
                delay = self.config.llm_retry_base_delay * (2 ** attempt)
                logger.warning(f"[LLM] call failed ({e}), retrying in {delay}s")
                await asyncio.sleep(delay)

    @staticmethod
    def _tool_calls_from(raw_calls: Optional[List[Any]]) -> List[MessageToolCall]:
        if not raw_calls:
            return []
        return [
            MessageToolCall.from_dict({
                "id": getattr(tc, "id", None),
                "name": getattr(tc, "name", None),
                "arguments": getattr(tc, "arguments", None),
            })
            for tc in raw_calls
        ]

    @staticmethod
    def _add_usage(run: _Run, usage: Any) -> None:
        if usage:
            run.usage.input_tokens += getattr(usage, "prompt_tokens", 0) or 0
            run.usage.output_tokens += getattr(usage, "completion_tokens", 0) or 0

    # ==========================================================================
    # TOOL DISPATCH
    # ==========================================================================

    def _mint_node(self, run: _Run, tool_call: MessageToolCall) -> ExecutionNode:
        node_type = NodeType.UTILITY if self.registry.has(tool_call.name) else NodeType.TOOL
        return run.graph.spawn_child(run.root_node_id, node_type, label=tool_call.name)

    def _start_dispatch(
        self,
        run: _Run,
        node: ExecutionNode,
        tool_call: MessageToolCall,
    ) -> "asyncio.Future":
        context = ExecutionContext(
            identity=node.identity,
            conversation_id=run.conversation_id,
            node=node,
            graph=run.graph,
            dispatcher=self.dispatcher,
        )
        return asyncio.ensure_future(
            self.dispatcher.dispatch(tool_call.name, tool_call.arguments, context)
        )

    async def _dispatch_turn(
        self,
        run: _Run,
        tool_calls: List[MessageToolCall],
    ) -> AsyncIterator[AgentEvent]:
        """
        Dispatch every call of one assistant message.

        Results are appended in call order whether calls run one at a time or
        concurrently. Dispatches are shielded: if the run is abandoned while a
        call is in flight, the call still finishes.
        """
        logger.info(f"[Run] turn={run.turns} calling: {', '.join(tc.name for tc in tool_calls)}")
        nodes = [self._mint_node(run, tc) for tc in tool_calls]

        for tc, node in zip(tool_calls, nodes):
            yield self._event(run, EventType.TOOL_CALL_START, {
                "tool_name": tc.name,
                "call_id": tc.id,
                "arguments": tc.arguments,
                "parent_node_id": node.parent_node_id,
            }, node_id=node.node_id)

        if self.config.parallel_tool_dispatch and len(tool_calls) > 1:
            futures = [self._start_dispatch(run, node, tc) for tc, node in zip(tool_calls, nodes)]
            results = await asyncio.shield(asyncio.gather(*futures))
            for tc, node, result in zip(tool_calls, nodes, results):
                yield self._record_result(run, tc, node, result)
            return

        for tc, node in zip(tool_calls, nodes):
            result = await asyncio.shield(self._start_dispatch(run, node, tc))
            yield self._record_result(run, tc, node, result)

    def _record_result(
        self,
        run: _Run,
        tool_call: MessageToolCall,
        node: ExecutionNode,
        result: ExecuteResult,
    ) -> AgentEvent:
        text = result.content
        if not result.success:
            text = ERROR_PREFIX + text
        raw_chars = len(text)
        text = cap_tool_result(text, self.config.max_tool_result_chars)

        run.messages.append(Message.tool(tool_call.id, text))
        run.tool_records.append(ToolCallRecord(
            name=tool_call.name,
            call_id=tool_call.id,
            node_id=node.node_id,
            args_summary=_args_summary(tool_call.arguments),
            duration_ms=result.duration_ms,
            success=result.success,
            error_code=result.error.code.value if result.error else None,
            result_chars=raw_chars,
        ))

        status = "OK" if result.success else result.error.code.value if result.error else "ERROR"
        logger.info(f"[Run]   {tool_call.name} -> {status} ({result.duration_ms}ms, {raw_chars} chars)")

        data: Dict[str, Any] = {
            "tool_name": tool_call.name,
            "call_id": tool_call.id,
            "success": result.success,
            "duration_ms": result.duration_ms,
            "result_preview": text[:240],
        }
        if result.error is not None:
            data["error"] = result.error.to_dict()
        return self._event(run, EventType.TOOL_RESULT, data, node_id=node.node_id)
