"""Provider adapter protocol and helpers shared by the backends.

An adapter hides one backend's request/response shapes behind a single
contract. The orchestration loop never sees wire formats: history is kept
in canonical form (ekpa.conversation) and translated on every call.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from ekpa.conversation import ConversationTurn, ModelTurn, Text, ToolCall, ToolResult
from ekpa.tools.declarations import ToolDeclaration


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol that all model backends must implement."""

    @property
    def name(self) -> str: ...

    @property
    def model(self) -> str: ...

    def declare_tools(self, declarations: Sequence[ToolDeclaration]) -> list[dict[str, Any]]:
        """Render tool declarations in the backend's native schema."""
        ...

    async def generate(
        self,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        tools: list[dict[str, Any]],
    ) -> ModelTurn:
        """Call the backend once. Raises UpstreamError if nothing usable comes back."""
        ...

    def encode_user_message(self, text: str) -> ConversationTurn: ...

    def encode_model_turn(self, turn: ModelTurn) -> ConversationTurn: ...

    def encode_tool_results(self, results: Sequence[ToolResult]) -> ConversationTurn: ...

    def is_terminal(self, turn: ModelTurn) -> bool:
        """True when the loop should stop and answer the user."""
        ...

    async def health_check(self) -> bool:
        """Check if the backend is reachable. Returns True if healthy."""
        ...


# ── Shared defaults ───────────────────────────────────────────


def has_no_tool_calls(turn: ModelTurn) -> bool:
    """Default terminal policy."""
    return not turn.tool_calls


def user_turn(text: str) -> ConversationTurn:
    return ConversationTurn(role="user", content=[Text(text)])


def model_turn(turn: ModelTurn) -> ConversationTurn:
    """History entry for a model response.

    A terminal turn is stored without tool calls: they will never be
    answered, and an unanswered call would break the next request.
    """
    blocks = list(turn.blocks)
    if turn.terminal:
        blocks = [b for b in blocks if not isinstance(b, ToolCall)]
    return ConversationTurn(role="model", content=blocks)


def tool_result_turn(results: Sequence[ToolResult]) -> ConversationTurn:
    return ConversationTurn(role="tool_result", content=list(results))
