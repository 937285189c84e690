"""Tests for the agent orchestration loop."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import pytest

from ekpa.agents import DEVILS_ADVOCATE
from ekpa.conversation import ModelTurn, Text, ToolCall, ToolResult
from ekpa.core import AgentService
from ekpa.errors import TooManyIterationsError, TurnTimeoutError, UpstreamError
from ekpa.memory.store import MemoryStore
from ekpa.providers.base import (
    ProviderAdapter,
    has_no_tool_calls,
    model_turn,
    tool_result_turn,
    user_turn,
)
from ekpa.tools.executor import ToolExecutor
from ekpa.workspace import Workspace


# ── Helpers ───────────────────────────────────────────────────


def text_turn(text: str) -> ModelTurn:
    return ModelTurn(blocks=[Text(text)])


def call_turn(*calls: ToolCall, text: str | None = None) -> ModelTurn:
    blocks = [Text(text)] if text else []
    return ModelTurn(blocks=blocks + list(calls))


class ScriptedProvider:
    """Returns scripted turns, then falls back to `repeat(call_number)`."""

    def __init__(self, turns=None, *, repeat=None):
        self._turns = list(turns or [])
        self._repeat = repeat
        self.calls = 0
        self.prompts: list[str] = []
        self.histories: list[list] = []
        self.tools = None

    @property
    def name(self) -> str:
        return "mock"

    @property
    def model(self) -> str:
        return "mock-1"

    def declare_tools(self, declarations):
        return [{"name": d.name} for d in declarations]

    async def generate(self, system_prompt, history, tools):
        self.calls += 1
        self.prompts.append(system_prompt)
        self.histories.append(list(history))
        self.tools = tools
        if self._turns:
            return self._turns.pop(0)
        if self._repeat is None:
            raise AssertionError("script exhausted")
        return self._repeat(self.calls)

    def encode_user_message(self, text):
        return user_turn(text)

    def encode_model_turn(self, turn):
        return model_turn(turn)

    def encode_tool_results(self, results):
        return tool_result_turn(results)

    def is_terminal(self, turn):
        return has_no_tool_calls(turn)

    async def health_check(self) -> bool:
        return True


class StopSignalProvider(ScriptedProvider):
    """A backend whose explicit stop reason overrides pending tool calls."""

    def is_terminal(self, turn):
        return turn.stop_reason == "end_turn" or has_no_tool_calls(turn)


class FailingProvider(ScriptedProvider):
    async def generate(self, system_prompt, history, tools):
        self.calls += 1
        raise UpstreamError("No response from backend")


@pytest.fixture
def workspace() -> Workspace:
    return Workspace(seed=True)


def make_service(provider, workspace, **kwargs) -> AgentService:
    return AgentService(provider, workspace, **kwargs)


# ── Basic turns ───────────────────────────────────────────────


class TestChat:
    def test_mock_satisfies_protocol(self):
        assert isinstance(ScriptedProvider(), ProviderAdapter)

    @pytest.mark.asyncio
    async def test_plain_reply(self, workspace: Workspace):
        provider = ScriptedProvider([text_turn("Hello founder")])
        service = make_service(provider, workspace)

        result = await service.chat("s1", "Hi")

        assert result.text == "Hello founder"
        assert result.edited_files == []
        history = service.get_session("s1").history
        assert [t.role for t in history] == ["user", "model"]

    @pytest.mark.asyncio
    async def test_text_blocks_joined_by_newline(self, workspace: Workspace):
        provider = ScriptedProvider([ModelTurn(blocks=[Text("one"), Text("two")])])
        result = await make_service(provider, workspace).chat("s1", "Hi")
        assert result.text == "one\ntwo"

    @pytest.mark.asyncio
    async def test_empty_reply_placeholder(self, workspace: Workspace):
        provider = ScriptedProvider([ModelTurn(blocks=[])])
        result = await make_service(provider, workspace).chat("s1", "Hi")
        assert result.text == "(No response)"

    @pytest.mark.asyncio
    async def test_unknown_session_created_on_first_message(self, workspace: Workspace):
        service = make_service(ScriptedProvider([text_turn("ok")]), workspace)
        assert service.get_session("fresh") is None
        await service.chat("fresh", "hello")
        assert service.get_session("fresh") is not None

    @pytest.mark.asyncio
    async def test_system_prompt_has_tree_and_refresh_directive(self, workspace: Workspace):
        provider = ScriptedProvider([text_turn("ok")])
        await make_service(provider, workspace).chat("s1", "Hi")

        prompt = provider.prompts[0]
        assert prompt.startswith("You are an AI assistant for Ekpa")
        assert "Current workspace file tree:\nWorkspace/" in prompt
        assert "features.md" in prompt
        assert "Use get_file_tree to refresh the tree" in prompt

    @pytest.mark.asyncio
    async def test_prompt_sees_edits_from_previous_turn(self, workspace: Workspace):
        provider = ScriptedProvider(
            [
                call_turn(ToolCall("c1", "edit_file", {"path": "Idea 1/notes.md", "content": "x"})),
                text_turn("done"),
                text_turn("again"),
            ]
        )
        service = make_service(provider, workspace)
        await service.chat("s1", "write notes")
        await service.chat("s1", "what changed?")
        assert "notes.md" not in provider.prompts[0]
        assert "notes.md" in provider.prompts[2]

    @pytest.mark.asyncio
    async def test_tools_declared_from_profile(self, workspace: Workspace):
        provider = ScriptedProvider([text_turn("ok")])
        await make_service(provider, workspace).chat("s1", "Hi")
        assert [t["name"] for t in provider.tools] == ["edit_file", "read_file", "get_file_tree"]


# ── Tool rounds ───────────────────────────────────────────────


class TestToolDispatch:
    @pytest.mark.asyncio
    async def test_edit_then_read_round_trip(self, workspace: Workspace):
        path = "Idea 1/MVP/features.md"
        provider = ScriptedProvider(
            [
                call_turn(ToolCall("c1", "edit_file", {"path": path, "content": "# Features\n- A"})),
                call_turn(ToolCall("c2", "read_file", {"path": path})),
                text_turn("Updated your feature list."),
            ]
        )
        service = make_service(provider, workspace)

        result = await service.chat("s1", "add feature A")

        assert result.text == "Updated your feature list."
        assert result.edited_files == [path]
        assert workspace.read(path) == "# Features\n- A"

        history = service.get_session("s1").history
        assert [t.role for t in history] == [
            "user", "model", "tool_result", "model", "tool_result", "model",
        ]
        assert history[2].tool_results[0].call_id == "c1"
        assert history[2].tool_results[0].payload["success"] is True
        assert history[4].tool_results[0].payload == {"path": path, "content": "# Features\n- A"}

    @pytest.mark.asyncio
    async def test_result_count_matches_call_count(self, workspace: Workspace):
        calls = [ToolCall(f"c{i}", "get_file_tree", {}) for i in range(4)]
        provider = ScriptedProvider([call_turn(*calls), text_turn("ok")])
        service = make_service(provider, workspace)
        await service.chat("s1", "scan")

        history = service.get_session("s1").history
        assert len(history[2].content) == len(history[1].tool_calls) == 4

    @pytest.mark.asyncio
    async def test_calls_run_in_model_order(self, workspace: Workspace):
        finished: list[str] = []

        class SlowFirstExecutor(ToolExecutor):
            def execute(self, call, allowed=None):
                if call.id == "slow":
                    time.sleep(0.1)
                outcome = super().execute(call, allowed)
                finished.append(call.id)
                return outcome

        provider = ScriptedProvider(
            [
                call_turn(
                    ToolCall("slow", "read_file", {"path": "Idea 1/MVP/features.md"}),
                    ToolCall("fast", "get_file_tree", {}),
                ),
                text_turn("ok"),
            ]
        )
        service = make_service(provider, workspace)
        service.executor = SlowFirstExecutor(workspace)

        await service.chat("s1", "read")

        assert finished == ["slow", "fast"]
        results = service.get_session("s1").history[2].tool_results
        assert [r.call_id for r in results] == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_read_sees_slow_write_from_same_turn(self):
        class SlowWriteWorkspace(Workspace):
            def write(self, path, content):
                time.sleep(0.1)
                super().write(path, content)

        workspace = SlowWriteWorkspace(seed=True)
        path = "Idea 1/MVP/features.md"
        provider = ScriptedProvider(
            [
                call_turn(
                    ToolCall("c1", "edit_file", {"path": path, "content": "NEW"}),
                    ToolCall("c2", "read_file", {"path": path}),
                    ToolCall("c3", "edit_file", {"path": path, "content": "NEWER"}),
                ),
                text_turn("ok"),
            ]
        )
        service = make_service(provider, workspace)

        result = await service.chat("s1", "rewrite features")

        results = service.get_session("s1").history[2].tool_results
        assert results[1].payload == {"path": path, "content": "NEW"}
        assert workspace.read(path) == "NEWER"
        assert result.edited_files == [path]

    @pytest.mark.asyncio
    async def test_tool_level_errors_do_not_stop_the_loop(self, workspace: Workspace):
        provider = ScriptedProvider(
            [
                call_turn(
                    ToolCall("c1", "read_file", {"path": "missing.md"}),
                    ToolCall("c2", "delete_everything", {}),
                ),
                text_turn("Recovered"),
            ]
        )
        service = make_service(provider, workspace)
        result = await service.chat("s1", "go")

        assert result.text == "Recovered"
        payloads = [r.payload for r in service.get_session("s1").history[2].tool_results]
        assert payloads == [
            {"error": "File not found: missing.md"},
            {"error": "Unknown function: delete_everything"},
        ]

    @pytest.mark.asyncio
    async def test_executor_crash_becomes_tool_error(self, workspace: Workspace):
        class BrokenExecutor(ToolExecutor):
            def execute(self, call, allowed=None):
                raise RuntimeError("disk on fire")

        provider = ScriptedProvider(
            [call_turn(ToolCall("c1", "get_file_tree", {})), text_turn("ok")]
        )
        service = make_service(provider, workspace)
        service.executor = BrokenExecutor(workspace)

        await service.chat("s1", "scan")
        payload = service.get_session("s1").history[2].tool_results[0].payload
        assert payload == {"error": "Tool error: disk on fire"}

    @pytest.mark.asyncio
    async def test_edited_files_deduplicated_in_order(self, workspace: Workspace):
        provider = ScriptedProvider(
            [
                call_turn(
                    ToolCall("c1", "edit_file", {"path": "b.md", "content": "1"}),
                    ToolCall("c2", "edit_file", {"path": "a.md", "content": "2"}),
                ),
                call_turn(ToolCall("c3", "edit_file", {"path": "b.md", "content": "3"})),
                text_turn("ok"),
            ]
        )
        result = await make_service(provider, workspace).chat("s1", "edit")
        assert result.edited_files == ["b.md", "a.md"]
        assert workspace.read("b.md") == "3"

    @pytest.mark.asyncio
    async def test_stop_signal_overrides_tool_calls(self, workspace: Workspace):
        turn = call_turn(
            ToolCall("c1", "edit_file", {"path": "x.md", "content": "nope"}), text="All done"
        )
        turn.stop_reason = "end_turn"
        provider = StopSignalProvider([turn])
        service = make_service(provider, workspace)

        result = await service.chat("s1", "finish")

        assert result.text == "All done"
        assert result.edited_files == []
        assert workspace.read("x.md") is None
        last = service.get_session("s1").history[-1]
        assert last.role == "model"
        assert last.tool_calls == []

    @pytest.mark.asyncio
    async def test_profile_blocks_undeclared_tools(self, workspace: Workspace):
        provider = ScriptedProvider(
            [
                call_turn(ToolCall("c1", "edit_file", {"path": "x.md", "content": "y"})),
                text_turn("ok"),
            ]
        )
        service = make_service(provider, workspace, profile=DEVILS_ADVOCATE)
        result = await service.chat("s1", "edit it")

        assert result.edited_files == []
        assert workspace.read("x.md") is None
        payload = service.get_session("s1").history[2].tool_results[0].payload
        assert payload == {"error": "Tool not available: edit_file"}


# ── Failure modes ─────────────────────────────────────────────


class TestFailures:
    @pytest.mark.asyncio
    async def test_budget_exceeded_after_exactly_ten_iterations(self, workspace: Workspace):
        provider = ScriptedProvider(
            repeat=lambda n: call_turn(
                ToolCall(f"c{n}", "edit_file", {"path": f"Idea 1/file{n}.md", "content": str(n)})
            )
        )
        service = make_service(provider, workspace)

        with pytest.raises(TooManyIterationsError) as exc_info:
            await service.chat("s1", "rename file X")

        assert provider.calls == 10
        assert exc_info.value.iterations == 10
        assert exc_info.value.edited_files == [f"Idea 1/file{n}.md" for n in range(1, 11)]
        # History is kept up to the failure: user + 10 × (model, tool_result)
        history = service.get_session("s1").history
        assert len(history) == 21
        assert history[-1].role == "tool_result"

    @pytest.mark.asyncio
    async def test_custom_budget(self, workspace: Workspace):
        provider = ScriptedProvider(
            repeat=lambda n: call_turn(ToolCall(f"c{n}", "get_file_tree", {}))
        )
        service = make_service(provider, workspace, max_iterations=3)
        with pytest.raises(TooManyIterationsError):
            await service.chat("s1", "loop")
        assert provider.calls == 3

    @pytest.mark.asyncio
    async def test_conversation_continues_after_budget_failure(self, workspace: Workspace):
        turns = [call_turn(ToolCall("c1", "get_file_tree", {})), text_turn("finally")]
        provider = ScriptedProvider(turns)
        service = make_service(provider, workspace, max_iterations=1)

        with pytest.raises(TooManyIterationsError):
            await service.chat("s1", "first")
        result = await service.chat("s1", "continue")

        assert result.text == "finally"
        roles = [t.role for t in service.get_session("s1").history]
        assert roles == ["user", "model", "tool_result", "user", "model"]

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self, workspace: Workspace):
        provider = FailingProvider()
        service = make_service(provider, workspace)

        with pytest.raises(UpstreamError, match="No response"):
            await service.chat("s1", "Hi")
        assert provider.calls == 1
        assert [t.role for t in service.get_session("s1").history] == ["user"]

    @pytest.mark.asyncio
    async def test_deadline_expires_during_model_call(self, workspace: Workspace):
        class HangingProvider(ScriptedProvider):
            async def generate(self, system_prompt, history, tools):
                await asyncio.sleep(5)

        service = make_service(HangingProvider(), workspace, turn_timeout=0.05)
        with pytest.raises(TurnTimeoutError):
            await service.chat("s1", "Hi")

    @pytest.mark.asyncio
    async def test_deadline_during_tools_answers_every_call(self, workspace: Workspace):
        class SlowExecutor(ToolExecutor):
            def execute(self, call, allowed=None):
                time.sleep(0.3)
                return super().execute(call, allowed)

        provider = ScriptedProvider(
            [call_turn(ToolCall("c1", "get_file_tree", {}), ToolCall("c2", "get_file_tree", {}))]
        )
        service = make_service(provider, workspace, turn_timeout=0.1)
        service.executor = SlowExecutor(workspace)

        with pytest.raises(TurnTimeoutError):
            await service.chat("s1", "scan")

        last = service.get_session("s1").history[-1]
        assert last.role == "tool_result"
        assert [r.call_id for r in last.tool_results] == ["c1", "c2"]
        assert all("error" in r.payload for r in last.tool_results)

    @pytest.mark.asyncio
    async def test_deadline_keeps_finished_edits(self, workspace: Workspace):
        class SlowTreeExecutor(ToolExecutor):
            def execute(self, call, allowed=None):
                if call.name == "get_file_tree":
                    time.sleep(0.5)
                return super().execute(call, allowed)

        path = "Idea 1/MVP/features.md"
        provider = ScriptedProvider(
            [
                call_turn(
                    ToolCall("c1", "edit_file", {"path": path, "content": "NEW"}),
                    ToolCall("c2", "get_file_tree", {}),
                )
            ]
        )
        service = make_service(provider, workspace, turn_timeout=0.2)
        service.executor = SlowTreeExecutor(workspace)

        with pytest.raises(TurnTimeoutError) as exc_info:
            await service.chat("s1", "edit then scan")

        assert workspace.read(path) == "NEW"
        assert exc_info.value.edited_files == [path]
        results = service.get_session("s1").history[-1].tool_results
        assert results[0].payload["success"] is True
        assert results[1].payload == {"error": "Tool call timed out"}


# ── Status notifications ──────────────────────────────────────


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_sequence(self, workspace: Workspace):
        provider = ScriptedProvider(
            [
                call_turn(
                    ToolCall("c1", "edit_file", {"path": "Idea 1/MVP/features.md", "content": ""}),
                    ToolCall("c2", "get_file_tree", {}),
                ),
                text_turn("ok"),
            ]
        )
        statuses: list[str] = []
        await make_service(provider, workspace).chat("s1", "go", on_status=statuses.append)
        assert statuses == [
            "Thinking...",
            "Editing features.md...",
            "Scanning workspace...",
            "Thinking...",
        ]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_turn(self, workspace: Workspace):
        def broken(status: str) -> None:
            raise RuntimeError("listener gone")

        provider = ScriptedProvider([text_turn("still fine")])
        result = await make_service(provider, workspace).chat("s1", "Hi", on_status=broken)
        assert result.text == "still fine"

    @pytest.mark.asyncio
    async def test_async_callback_is_not_awaited_inline(self, workspace: Workspace):
        received: list[str] = []
        release = asyncio.Event()

        async def slow_listener(status: str) -> None:
            await release.wait()
            received.append(status)

        provider = ScriptedProvider([text_turn("done")])
        service = make_service(provider, workspace)
        result = await asyncio.wait_for(
            service.chat("s1", "Hi", on_status=slow_listener), timeout=1
        )
        assert result.text == "done"
        release.set()
        await asyncio.sleep(0.01)
        assert received == ["Thinking..."]


# ── Sessions ──────────────────────────────────────────────────


class TestSessions:
    @pytest.mark.asyncio
    async def test_auto_title_truncates_long_message(self, workspace: Workspace):
        message = "Help me plan customer interviews for the logistics idea next week please"
        service = make_service(ScriptedProvider([text_turn("ok")]), workspace)
        await service.chat("s1", message)
        assert service.get_session("s1").title == message[:50] + "..."

    @pytest.mark.asyncio
    async def test_auto_title_after_tool_rounds(self, workspace: Workspace):
        provider = ScriptedProvider(
            [call_turn(ToolCall("c1", "get_file_tree", {})), text_turn("ok")]
        )
        service = make_service(provider, workspace)
        await service.chat("s1", "Short question")
        assert service.get_session("s1").title == "Short question"

    @pytest.mark.asyncio
    async def test_title_set_only_once(self, workspace: Workspace):
        provider = ScriptedProvider([text_turn("a"), text_turn("b")])
        service = make_service(provider, workspace)
        await service.chat("s1", "First topic")
        await service.chat("s1", "Second topic")
        assert service.get_session("s1").title == "First topic"

    @pytest.mark.asyncio
    async def test_explicit_title_kept(self, workspace: Workspace):
        service = make_service(ScriptedProvider([text_turn("ok")]), workspace)
        session = service.create_session("Pricing")
        await service.chat(session.id, "What should we charge?")
        assert service.get_session(session.id).title == "Pricing"

    def test_rename_with_empty_title_keeps_existing(self, workspace: Workspace):
        service = make_service(ScriptedProvider(), workspace)
        session = service.create_session("Roadmap")
        assert service.update_session(session.id, "").title == "Roadmap"
        assert service.update_session(session.id, None).title == "Roadmap"
        assert service.update_session(session.id, "Q3 roadmap").title == "Q3 roadmap"

    def test_rename_unknown_session(self, workspace: Workspace):
        service = make_service(ScriptedProvider(), workspace)
        assert service.update_session("nope", "Title") is None

    def test_create_session_defaults(self, workspace: Workspace):
        service = make_service(ScriptedProvider(), workspace)
        a = service.create_session()
        b = service.create_session()
        assert a.title == "New Chat"
        assert a.id != b.id

    @pytest.mark.asyncio
    async def test_delete_session_starts_fresh_history(self, workspace: Workspace):
        provider = ScriptedProvider([text_turn("one"), text_turn("two")])
        service = make_service(provider, workspace)
        await service.chat("s1", "hello")
        assert service.delete_session("s1") is True

        await service.chat("s1", "again")

        assert len(provider.histories[1]) == 1
        session = service.get_session("s1")
        assert [t.role for t in session.history] == ["user", "model"]
        assert session.title == "again"

    @pytest.mark.asyncio
    async def test_clear_history(self, workspace: Workspace):
        service = make_service(ScriptedProvider([text_turn("ok")]), workspace)
        await service.chat("s1", "hello")
        service.clear_history("s1")
        assert service.get_session("s1").history == []

    @pytest.mark.asyncio
    async def test_list_sessions_newest_first(self, workspace: Workspace):
        service = make_service(ScriptedProvider(repeat=lambda n: text_turn("ok")), workspace)
        older = service.create_session("older")
        newer = service.create_session("newer")
        await asyncio.sleep(0.01)
        await service.chat(older.id, "bump")
        assert [s.id for s in service.list_sessions()] == [older.id, newer.id]

    def test_provider_info(self, workspace: Workspace):
        info = make_service(ScriptedProvider(), workspace).provider_info()
        assert info["name"] == "mock"
        assert info["model"] == "mock-1"
        assert set(info["availableProviders"]) == {"claude", "gemini"}


# ── Concurrency ───────────────────────────────────────────────


class OverlapTrackingProvider(ScriptedProvider):
    def __init__(self):
        super().__init__(repeat=lambda n: text_turn(f"reply {n}"))
        self.active = 0
        self.max_active = 0

    async def generate(self, system_prompt, history, tools):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0.02)
        self.active -= 1
        return await super().generate(system_prompt, history, tools)


class TestLaneQueue:
    @pytest.mark.asyncio
    async def test_same_session_is_serialized(self, workspace: Workspace):
        provider = OverlapTrackingProvider()
        service = make_service(provider, workspace)

        await asyncio.gather(service.chat("s1", "First"), service.chat("s1", "Second"))

        assert provider.max_active == 1
        history = service.get_session("s1").history
        assert [t.role for t in history] == ["user", "model", "user", "model"]
        assert history[0].text == "First"
        assert history[2].text == "Second"

    @pytest.mark.asyncio
    async def test_different_sessions_run_in_parallel(self, workspace: Workspace):
        provider = OverlapTrackingProvider()
        service = make_service(provider, workspace)

        await asyncio.gather(service.chat("a", "hi"), service.chat("b", "hi"))

        assert provider.max_active == 2


# ── Memory context ────────────────────────────────────────────


class TestMemoryContext:
    @pytest.mark.asyncio
    async def test_relevant_memories_in_prompt(self, workspace: Workspace, tmp_path: Path):
        memory = MemoryStore(tmp_path / "memory")
        item = memory.create_memory(
            {
                "type": "CUSTOMER_CONVO",
                "summary": "Pricing objections from three SMB customers",
                "entities": {"ideas": ["Idea 1"]},
            }
        )
        provider = ScriptedProvider([text_turn("ok")])
        service = make_service(provider, workspace, memory=memory)

        await service.chat("s1", "How do we handle pricing objections?")

        assert "Relevant memories:" in provider.prompts[0]
        assert f"[Memory #{item.id}] (CUSTOMER_CONVO)" in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_no_memory_section_without_store(self, workspace: Workspace):
        provider = ScriptedProvider([text_turn("ok")])
        await make_service(provider, workspace).chat("s1", "Hi")
        assert "Relevant memories" not in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_search_memory_tool(self, workspace: Workspace, tmp_path: Path):
        memory = MemoryStore(tmp_path / "memory")
        memory.create_memory({"type": "LESSON", "summary": "Cold email outreach failed twice"})
        provider = ScriptedProvider(
            [
                call_turn(ToolCall("c1", "search_memory", {"query": "cold email outreach"})),
                text_turn("Past failure found"),
            ]
        )
        service = make_service(provider, workspace, memory=memory, profile=DEVILS_ADVOCATE)

        await service.chat("s1", "Challenge my outreach plan")

        payload = service.get_session("s1").history[2].tool_results[0].payload
        assert payload["memories"][0]["summary"] == "Cold email outreach failed twice"
        assert "score" in payload["memories"][0]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_calls_provider_close(self, workspace: Workspace):
        class ClosingProvider(ScriptedProvider):
            closed = False

            async def close(self):
                self.closed = True

        provider = ClosingProvider()
        await make_service(provider, workspace).close()
        assert provider.closed is True

    @pytest.mark.asyncio
    async def test_close_without_provider_close(self, workspace: Workspace):
        await make_service(ScriptedProvider(), workspace).close()

    def test_rejects_zero_budget(self, workspace: Workspace):
        with pytest.raises(ValueError):
            make_service(ScriptedProvider(), workspace, max_iterations=0)
