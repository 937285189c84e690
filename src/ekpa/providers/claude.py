"""Claude adapter — Anthropic Messages API with tool use.

Tool results are correlated to their calls by explicit tool_use_id.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ekpa.conversation import ConversationTurn, ModelTurn, Text, ToolCall, ToolResult
from ekpa.errors import UpstreamError
from ekpa.providers.base import has_no_tool_calls, model_turn, tool_result_turn, user_turn
from ekpa.tools.declarations import ToolDeclaration

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


@dataclass
class ClaudeAdapter:
    """Anthropic backend via the `anthropic` SDK."""

    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    timeout: int = 120
    api_key: str | None = None
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.client is not None:
            return
        try:
            import anthropic
        except ImportError:
            raise ImportError("anthropic package required. Install with: pip install anthropic")
        self.client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout)

    @property
    def name(self) -> str:
        return "claude"

    # ── Tools ─────────────────────────────────────────────────

    def declare_tools(self, declarations: Sequence[ToolDeclaration]) -> list[dict[str, Any]]:
        return [
            {
                "name": d.name,
                "description": d.description,
                "input_schema": d.json_schema(),
            }
            for d in declarations
        ]

    # ── Generation ────────────────────────────────────────────

    async def generate(
        self,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        tools: list[dict[str, Any]],
    ) -> ModelTurn:
        kwargs: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": self.to_messages(history),
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = tools

        try:
            response = await asyncio.to_thread(self.client.messages.create, **kwargs)
        except Exception as e:
            logger.error("Anthropic API error: %s", e)
            raise UpstreamError(f"Anthropic API error: {e}") from e

        if response is None or response.content is None:
            raise UpstreamError("No response from Claude")

        blocks: list = []
        for block in response.content:
            if block.type == "text":
                blocks.append(Text(block.text))
            elif block.type == "tool_use":
                blocks.append(ToolCall(id=block.id, name=block.name, args=dict(block.input or {})))

        turn = ModelTurn(blocks=blocks, stop_reason=response.stop_reason)
        turn.terminal = self.is_terminal(turn)
        logger.debug(
            "Claude turn: stop_reason=%s tool_calls=%d", turn.stop_reason, len(turn.tool_calls)
        )
        return turn

    def is_terminal(self, turn: ModelTurn) -> bool:
        # end_turn wins even if tool_use blocks slipped into the same response.
        return turn.stop_reason == "end_turn" or has_no_tool_calls(turn)

    # ── Canonical history ─────────────────────────────────────

    def encode_user_message(self, text: str) -> ConversationTurn:
        return user_turn(text)

    def encode_model_turn(self, turn: ModelTurn) -> ConversationTurn:
        return model_turn(turn)

    def encode_tool_results(self, results: Sequence[ToolResult]) -> ConversationTurn:
        missing = [r.name for r in results if not r.call_id]
        if missing:
            raise ValueError(f"Claude tool results need a tool_use_id: {missing}")
        return tool_result_turn(results)

    def to_messages(self, history: Sequence[ConversationTurn]) -> list[dict[str, Any]]:
        """Canonical history -> Messages API list. Adjacent same-role turns are merged."""
        messages: list[dict[str, Any]] = []
        for turn in history:
            role = "assistant" if turn.role == "model" else "user"
            content: list[dict[str, Any]] = []
            for block in turn.content:
                if isinstance(block, Text):
                    if block.value:
                        content.append({"type": "text", "text": block.value})
                elif isinstance(block, ToolCall):
                    content.append(
                        {"type": "tool_use", "id": block.id, "name": block.name, "input": block.args}
                    )
                elif isinstance(block, ToolResult):
                    content.append(
                        {
                            "type": "tool_result",
                            "tool_use_id": block.call_id,
                            "content": json.dumps(block.payload, ensure_ascii=False),
                            "is_error": "error" in block.payload,
                        }
                    )
            if not content:
                continue
            if messages and messages[-1]["role"] == role:
                messages[-1]["content"].extend(content)
            else:
                messages.append({"role": role, "content": content})
        return messages

    async def health_check(self) -> bool:
        try:
            response = await asyncio.to_thread(
                self.client.messages.create,
                model=self.model,
                max_tokens=10,
                messages=[{"role": "user", "content": "ping"}],
            )
            return bool(response.content)
        except Exception:
            return False
