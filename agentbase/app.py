"""
AgentBase Application - Single entry point for the agent run engine.

Usage:
    from agentbase import AgentBase, IdentityContext

    app = AgentBase("config.yaml")

    identity = IdentityContext(
        user_id="user_1",
        organization_id="org_1",
        platform_user_id="platform_1",
        platform_credential="key_...",
    )
    result = await app.run("conv_1", "What time is it?", identity)

    async for event in app.stream("conv_1", "And in Tokyo?", identity):
        ...

Config file (YAML, ``${VAR}`` is replaced from the environment):

    llm:
      provider: openai
      model: gpt-4o
      api_key: ${OPENAI_API_KEY}
    database: ${DATABASE_URL}     # optional; in-memory threads without it
    system_prompt: "You are ..."  # optional
    run:
      max_turns: 10
    utilities:
      enabled: [utility_get_current_datetime, utility_read_webpage]
"""

import asyncio
import logging
import os
import re
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import yaml

from .db import Database, ExecutionLogStore, MemoryThreadStore, PostgresThreadStore, ensure_schema
from .llm.base import LLMConfig
from .llm.litellm_client import LiteLLMClient
from .messages import Message
from .orchestrator.provenance import IdentityContext
from .orchestrator.run_config import RunConfig, RunResult
from .orchestrator.run_controller import AgentRunController
from .streaming.models import AgentEvent
from .tools import UtilityDescriptor, UtilityDispatcher, UtilityInfo, UtilityRegistry
from .utilities import register_builtin_utilities

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


def load_config(path: str) -> dict:
    """Read YAML config file with ${VAR} environment variable substitution."""
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()

    def _replace_env(match):
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ValueError(
                f"Environment variable '{var_name}' not set "
                f"(referenced in config file '{path}')"
            )
        return value

    resolved = _ENV_PATTERN.sub(_replace_env, raw)
    return yaml.safe_load(resolved) or {}


class AgentBase:
    """
    AgentBase application entry point.

    Sync constructor reads config; async initialization (database pool,
    schema, registry) is deferred to the first run.

    Args:
        config: Path to a YAML config file, or an already-parsed dict
        llm_client: Optional pre-built LLM client (skips ``llm`` config)
        registry: Optional utility registry (a fresh one is created otherwise)
    """

    def __init__(
        self,
        config: Union[str, Dict[str, Any]],
        llm_client: Optional[Any] = None,
        registry: Optional[UtilityRegistry] = None,
    ):
        self._config: Dict[str, Any] = load_config(config) if isinstance(config, str) else dict(config)
        self._initialized = False
        self._init_lock: Optional[asyncio.Lock] = None

        llm_cfg = self._config.get("llm") or {}
        if llm_client is None and (not llm_cfg.get("provider") or not llm_cfg.get("model")):
            raise ValueError("Missing required config fields: 'llm.provider' and 'llm.model'")

        self.run_config = RunConfig.from_dict(self._config.get("run"))
        self.registry = registry or UtilityRegistry()

        # Set during lazy initialization
        self._llm_client = llm_client
        self._database: Optional[Database] = None
        self._thread_store = None
        self._execution_log: Optional[ExecutionLogStore] = None
        self._dispatcher: Optional[UtilityDispatcher] = None
        self._controller: Optional[AgentRunController] = None

    async def _ensure_initialized(self) -> None:
        """Lazy initialization - runs once on first run()/stream() call."""
        if self._initialized:
            return
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        async with self._init_lock:
            if not self._initialized:
                await self._initialize()

    async def _initialize(self) -> None:
        cfg = self._config

        # 1. LLM client
        if self._llm_client is None:
            llm_cfg = cfg["llm"]
            llm_config = LLMConfig(
                model=llm_cfg["model"],
                api_key=llm_cfg.get("api_key"),
                base_url=llm_cfg.get("base_url"),
            )
            self._llm_client = LiteLLMClient(config=llm_config, provider_name=llm_cfg["provider"])
            logger.info(f"LLM client: provider={llm_cfg['provider']}, model={llm_cfg['model']}")

        # 2. Persistence
        db_cfg = cfg.get("database")
        if db_cfg:
            self._database = Database.from_config(db_cfg)
            await self._database.initialize()
            await ensure_schema(self._database)
            self._thread_store = PostgresThreadStore(self._database)
            self._execution_log = ExecutionLogStore(self._database)
        else:
            logger.info("No database configured: in-memory threads, execution log disabled")
            self._thread_store = MemoryThreadStore()

        # 3. Utilities
        enabled = (cfg.get("utilities") or {}).get("enabled")
        register_builtin_utilities(self.registry, enabled=enabled)
        logger.info(f"{len(self.registry)} utilities registered")

        # 4. Dispatcher + run controller
        self._dispatcher = UtilityDispatcher(
            registry=self.registry,
            execution_log=self._execution_log,
            timeout=self.run_config.tool_execution_timeout,
        )
        self._controller = AgentRunController(
            llm_client=self._llm_client,
            registry=self.registry,
            dispatcher=self._dispatcher,
            thread_store=self._thread_store,
            config=self.run_config,
            system_prompt=cfg.get("system_prompt"),
        )

        self._initialized = True
        logger.info("AgentBase initialized")

    # ── Public API ──

    def register_utility(self, descriptor: UtilityDescriptor) -> None:
        """Register a custom utility. Call before the first run."""
        self.registry.register(descriptor)

    def list_utilities(self) -> List[UtilityInfo]:
        return self.registry.list()

    @property
    def controller(self) -> Optional[AgentRunController]:
        return self._controller

    async def run(
        self,
        conversation_id: str,
        message: str,
        identity: IdentityContext,
        history: Optional[List[Union[Message, Dict[str, Any]]]] = None,
        system_prompt: Optional[str] = None,
    ) -> RunResult:
        """Run one turn to completion (invoke mode)."""
        await self._ensure_initialized()
        return await self._controller.invoke(
            conversation_id, message, identity,
            history=self._coerce_history(history),
            system_prompt=system_prompt,
        )

    async def stream(
        self,
        conversation_id: str,
        message: str,
        identity: IdentityContext,
        history: Optional[List[Union[Message, Dict[str, Any]]]] = None,
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[AgentEvent]:
        """Run one turn and stream its events."""
        await self._ensure_initialized()
        async for event in self._controller.stream(
            conversation_id, message, identity,
            history=self._coerce_history(history),
            system_prompt=system_prompt,
        ):
            yield event

    async def load_thread(self, conversation_id: str) -> List[Message]:
        await self._ensure_initialized()
        return await self._thread_store.load_thread(conversation_id)

    async def delete_thread(self, conversation_id: str) -> bool:
        await self._ensure_initialized()
        return await self._thread_store.delete_thread(conversation_id)

    async def get_config(self) -> dict:
        """Return a copy of the raw configuration dict."""
        return dict(self._config)

    async def shutdown(self) -> None:
        """Wait for pending log writes, then close connections."""
        if not self._initialized:
            return
        try:
            if self._dispatcher:
                await self._dispatcher.drain()
            if self._database:
                await self._database.close()
        finally:
            self._initialized = False
            self._database = None
            self._thread_store = None
            self._execution_log = None
            self._dispatcher = None
            self._controller = None
            logger.info("AgentBase shut down")

    @staticmethod
    def _coerce_history(
        history: Optional[List[Union[Message, Dict[str, Any]]]],
    ) -> Optional[List[Message]]:
        if not history:
            return None
        return [m if isinstance(m, Message) else Message.from_dict(m) for m in history]
