"""Ekpa agent service — the tool-calling orchestration loop.

Responsibilities:
1. Session management — session_id → Session (history, title, timestamps)
2. Lane Queue — serialize turns per session so histories never interleave
3. Prompt assembly — agent instructions + workspace tree + relevant memories
4. Iterate model ⇄ tools until a terminal turn or the iteration budget runs out
5. Report final text plus every workspace path edited during the turn
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ekpa.agents import ASSISTANT, AgentProfile, get_profile
from ekpa.conversation import ToolCall, ToolResult
from ekpa.errors import TooManyIterationsError, TurnTimeoutError
from ekpa.memory.store import MemoryStore
from ekpa.providers import available_providers, create_provider
from ekpa.sessions import DEFAULT_TITLE, Session, SessionManager, title_from_message
from ekpa.tools.declarations import declarations_for
from ekpa.tools.executor import ToolExecutor, ToolOutcome, describe_call
from ekpa.workspace import Workspace

if TYPE_CHECKING:
    from ekpa.config import EkpaConfig
    from ekpa.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

# Status callback: best effort, may be sync or async.
StatusCallback = Callable[[str], Any]

DEFAULT_MAX_ITERATIONS = 10
NO_RESPONSE = "(No response)"
THINKING = "Thinking..."

TREE_HEADER = "Current workspace file tree:"
REFRESH_DIRECTIVE = (
    "Use read_file to read specific file contents when needed. "
    "Use get_file_tree to refresh the tree if it may have changed."
)


def _record_edits(outcomes: Sequence[ToolOutcome], edited_files: list[str]) -> None:
    for outcome in outcomes:
        path = outcome.edited_path
        if path is not None and path not in edited_files:
            edited_files.append(path)


@dataclass
class ChatResult:
    """Outcome of one submitted user message."""

    text: str
    edited_files: list[str] = field(default_factory=list)


class AgentService:
    """Core orchestrator. Drives one provider against the workspace tools."""

    def __init__(
        self,
        provider: ProviderAdapter,
        workspace: Workspace,
        *,
        memory: MemoryStore | None = None,
        sessions: SessionManager | None = None,
        profile: AgentProfile = ASSISTANT,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        turn_timeout: float | None = None,
        memory_results: int = 5,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.provider = provider
        self.workspace = workspace
        self.memory = memory
        self.sessions = sessions or SessionManager()
        self.profile = profile
        self.max_iterations = max_iterations
        self.turn_timeout = turn_timeout
        self.memory_results = memory_results
        self.executor = ToolExecutor(workspace, memory)
        self._lane_locks: dict[str, asyncio.Lock] = {}
        self._status_tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        config: EkpaConfig,
        *,
        workspace: Workspace | None = None,
        memory: MemoryStore | None = None,
        client: Any = None,
    ) -> AgentService:
        provider = create_provider(config.provider, client=client)
        if memory is None:
            memory = MemoryStore(config.memory_dir, weights=config.memory.weights)
        return cls(
            provider,
            workspace if workspace is not None else Workspace(seed=True),
            memory=memory,
            profile=get_profile(config.agent.profile),
            max_iterations=config.agent.max_iterations,
            turn_timeout=config.agent.turn_timeout,
            memory_results=config.agent.memory_results,
        )

    # ── Session management ───────────────────────────────────

    def create_session(self, title: str | None = None) -> Session:
        return self.sessions.create(title)

    def get_session(self, session_id: str) -> Session | None:
        return self.sessions.get(session_id)

    def list_sessions(self) -> list[Session]:
        return self.sessions.list()

    def update_session(self, session_id: str, title: str | None) -> Session | None:
        return self.sessions.rename(session_id, title)

    def delete_session(self, session_id: str) -> bool:
        """Drop the session and its history; a later chat starts fresh."""
        lock = self._lane_locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._lane_locks[session_id]
        return self.sessions.delete(session_id)

    def clear_history(self, session_id: str) -> None:
        self.sessions.clear_history(session_id)

    def provider_info(self) -> dict[str, Any]:
        return {
            "name": self.provider.name,
            "model": self.provider.model,
            "availableProviders": available_providers(),
            "profile": self.profile.id,
        }

    # ── Lane Queue (per-session serialization) ───────────────

    def _get_lane_lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self._lane_locks:
            self._lane_locks[session_id] = asyncio.Lock()
        return self._lane_locks[session_id]

    # ── Message handling (the core loop) ─────────────────────

    async def chat(
        self,
        session_id: str,
        message: str,
        on_status: StatusCallback | None = None,
    ) -> ChatResult:
        """Submit a user message and run the model/tool loop to completion.

        A second message for a busy session waits for the first to finish.
        Raises TooManyIterationsError once the budget is spent, TurnTimeoutError
        when the deadline expires, and lets UpstreamError through untouched.
        """
        lock = self._get_lane_lock(session_id)
        async with lock:
            return await self._process(session_id, message, on_status)

    async def _process(
        self, session_id: str, message: str, on_status: StatusCallback | None
    ) -> ChatResult:
        # 1. Session + user turn
        session = self.sessions.ensure(session_id)
        session.touch()
        history = session.history
        history.append(self.provider.encode_user_message(message))

        # 2. Prompt + tools for this turn
        system_prompt = self.build_system_prompt(message)
        tools = self.provider.declare_tools(declarations_for(self.profile.tools))
        allowed = frozenset(self.profile.tools)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.turn_timeout if self.turn_timeout else None
        edited_files: list[str] = []

        # 3. Model ⇄ tools until terminal
        for iteration in range(1, self.max_iterations + 1):
            self._notify(on_status, THINKING)
            turn = await self._bounded(
                self.provider.generate(system_prompt, history, tools), deadline, edited_files
            )
            turn.terminal = self.provider.is_terminal(turn)
            history.append(self.provider.encode_model_turn(turn))

            if turn.terminal:
                if session.title == DEFAULT_TITLE and session.user_turn_count() == 1:
                    session.title = title_from_message(message)
                session.touch()
                logger.info(
                    "Session %s finished after %d iteration(s), edited %d file(s)",
                    session_id,
                    iteration,
                    len(edited_files),
                )
                return ChatResult(text=turn.text or NO_RESPONSE, edited_files=edited_files)

            calls = turn.tool_calls
            for call in calls:
                self._notify(on_status, describe_call(call.name, call.args))

            outcomes: list[ToolOutcome] = []
            try:
                await self._bounded(self._dispatch(calls, allowed, outcomes), deadline, edited_files)
            except TurnTimeoutError as e:
                # Finished calls keep their results; the rest are answered with an error
                # so the next message can continue.
                _record_edits(outcomes, edited_files)
                e.edited_files = list(edited_files)
                results = [o.result for o in outcomes] + [
                    ToolResult(call.id, call.name, {"error": "Tool call timed out"})
                    for call in calls[len(outcomes) :]
                ]
                history.append(self.provider.encode_tool_results(results))
                raise

            _record_edits(outcomes, edited_files)
            history.append(self.provider.encode_tool_results([o.result for o in outcomes]))

        logger.warning(
            "Session %s hit the iteration budget (%d)", session_id, self.max_iterations
        )
        raise TooManyIterationsError(self.max_iterations, edited_files)

    async def _dispatch(
        self, calls: Sequence[ToolCall], allowed: frozenset[str], outcomes: list[ToolOutcome]
    ) -> None:
        """Run calls one after another in model order, appending each outcome as it finishes.

        A later call sees every write made by an earlier one in the same turn.
        """
        for call in calls:
            try:
                outcome = await asyncio.to_thread(self.executor.execute, call, allowed)
            except Exception as e:
                logger.error("Tool %s failed: %s", call.name, e)
                outcome = ToolOutcome(ToolResult(call.id, call.name, {"error": f"Tool error: {e}"}))
            outcomes.append(outcome)

    async def _bounded(self, awaitable, deadline: float | None, edited_files: list[str]):
        if deadline is None:
            return await awaitable
        remaining = deadline - asyncio.get_running_loop().time()
        try:
            return await asyncio.wait_for(awaitable, timeout=max(remaining, 0))
        except asyncio.TimeoutError:
            logger.warning("Turn deadline of %ss expired", self.turn_timeout)
            raise TurnTimeoutError(self.turn_timeout, edited_files) from None

    # ── Prompt assembly ──────────────────────────────────────

    def build_system_prompt(self, message: str) -> str:
        """Role instructions + fresh workspace tree (+ relevant memories)."""
        tree = self.workspace.render_tree()
        prompt = f"{self.profile.system_prompt}\n\n{TREE_HEADER}\n{tree}\n\n{REFRESH_DIRECTIVE}"

        if self.memory is not None and self.memory_results > 0:
            ranked = self.memory.retrieve(
                message,
                active_ideas=self.workspace.ideas(),
                max_results=self.memory_results,
            )
            if ranked:
                lines = [f"- [Memory #{r.id}] ({r.type}) {r.summary}" for r in ranked]
                prompt += "\n\nRelevant memories:\n" + "\n".join(lines)
        return prompt

    # ── Status side channel ──────────────────────────────────

    def _notify(self, on_status: StatusCallback | None, status: str) -> None:
        if on_status is None:
            return
        try:
            result = on_status(status)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._status_tasks.add(task)
                task.add_done_callback(self._status_done)
        except Exception as e:
            logger.warning("Status callback failed: %s", e)

    def _status_done(self, task: asyncio.Task) -> None:
        self._status_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Status callback failed: %s", task.exception())

    # ── Lifecycle ─────────────────────────────────────────────

    async def close(self) -> None:
        """Cancel pending status deliveries and close the provider if it supports it."""
        for task in list(self._status_tasks):
            task.cancel()
        close = getattr(self.provider, "close", None)
        if close and callable(close):
            result = close()
            if inspect.isawaitable(result):
                await result
