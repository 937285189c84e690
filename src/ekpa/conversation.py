"""Canonical, provider-agnostic conversation model.

The orchestration loop only ever sees these types. Provider adapters
translate them to and from their wire format at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["user", "model", "tool_result"]


# ── Content blocks ────────────────────────────────────────────


@dataclass(frozen=True)
class Text:
    """Plain text produced by the user or the model."""

    value: str


@dataclass(frozen=True)
class ToolCall:
    """The model asking for a tool to be run."""

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    # Opaque provider token that must be sent back with the call (Gemini thought_signature).
    signature: bytes | None = field(default=None, repr=False)


@dataclass(frozen=True)
class ToolResult:
    """The answer to a ToolCall, correlated by call id or position."""

    call_id: str
    name: str
    payload: dict[str, Any] = field(default_factory=dict)


ContentBlock = Text | ToolCall | ToolResult


# ── Turns ─────────────────────────────────────────────────────


@dataclass
class ConversationTurn:
    """One entry in a session's canonical history."""

    role: Role
    content: list[ContentBlock] = field(default_factory=list)

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [b for b in self.content if isinstance(b, ToolCall)]

    @property
    def tool_results(self) -> list[ToolResult]:
        return [b for b in self.content if isinstance(b, ToolResult)]

    @property
    def text(self) -> str:
        return "\n".join(b.value for b in self.content if isinstance(b, Text))


@dataclass
class ModelTurn:
    """A single response from the model, before it enters the history."""

    blocks: list[ContentBlock] = field(default_factory=list)
    terminal: bool = False
    stop_reason: str | None = None

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [b for b in self.blocks if isinstance(b, ToolCall)]

    @property
    def text(self) -> str:
        """All text blocks in order, joined by newline."""
        return "\n".join(b.value for b in self.blocks if isinstance(b, Text) and b.value)
