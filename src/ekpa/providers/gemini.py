"""Gemini adapter — google-genai generate_content with function calling.

Function responses are matched to calls by position and name; Gemini does
not require call ids, so ids are synthesized when the response omits them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ekpa.conversation import ConversationTurn, ModelTurn, Text, ToolCall, ToolResult
from ekpa.errors import UpstreamError
from ekpa.providers.base import has_no_tool_calls, model_turn, tool_result_turn, user_turn
from ekpa.tools.declarations import ToolDeclaration

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"


@dataclass
class GeminiAdapter:
    """Gemini backend via the `google-genai` SDK."""

    model: str = DEFAULT_MODEL
    timeout: int = 120
    api_key: str | None = None
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.client is not None:
            return
        try:
            from google import genai
        except ImportError:
            raise ImportError("google-genai package required. Install with: pip install google-genai")
        self.client = genai.Client(
            api_key=self.api_key, http_options={"timeout": self.timeout * 1000}
        )

    @property
    def name(self) -> str:
        return "gemini"

    # ── Tools ─────────────────────────────────────────────────

    def declare_tools(self, declarations: Sequence[ToolDeclaration]) -> list[dict[str, Any]]:
        functions = []
        for d in declarations:
            fn: dict[str, Any] = {"name": d.name, "description": d.description}
            if d.parameters:
                schema = d.json_schema()
                fn["parameters"] = {
                    "type": "OBJECT",
                    "properties": {
                        k: {"type": v["type"].upper(), "description": v["description"]}
                        for k, v in schema["properties"].items()
                    },
                    "required": schema["required"],
                }
            functions.append(fn)
        return [{"function_declarations": functions}] if functions else []

    # ── Generation ────────────────────────────────────────────

    async def generate(
        self,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        tools: list[dict[str, Any]],
    ) -> ModelTurn:
        config: dict[str, Any] = {}
        if system_prompt:
            config["system_instruction"] = system_prompt
        if tools:
            config["tools"] = tools

        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model,
                contents=self.to_contents(history),
                config=config or None,
            )
        except Exception as e:
            logger.error("Gemini API error: %s", e)
            raise UpstreamError(f"Gemini API error: {e}") from e

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            raise UpstreamError("No response from Gemini")
        candidate = candidates[0]
        parts = (candidate.content.parts if candidate.content else None) or []

        blocks: list = []
        for index, part in enumerate(parts):
            if getattr(part, "thought", None):
                continue
            call = getattr(part, "function_call", None)
            if call is not None:
                call_id = getattr(call, "id", None) or f"{call.name}_{index}"
                blocks.append(
                    ToolCall(
                        id=call_id,
                        name=call.name,
                        args=dict(call.args or {}),
                        signature=getattr(part, "thought_signature", None),
                    )
                )
            elif getattr(part, "text", None):
                blocks.append(Text(part.text))

        reason = getattr(candidate, "finish_reason", None)
        turn = ModelTurn(blocks=blocks, stop_reason=getattr(reason, "value", reason))
        turn.terminal = self.is_terminal(turn)
        return turn

    def is_terminal(self, turn: ModelTurn) -> bool:
        return has_no_tool_calls(turn)

    # ── Canonical history ─────────────────────────────────────

    def encode_user_message(self, text: str) -> ConversationTurn:
        return user_turn(text)

    def encode_model_turn(self, turn: ModelTurn) -> ConversationTurn:
        return model_turn(turn)

    def encode_tool_results(self, results: Sequence[ToolResult]) -> ConversationTurn:
        return tool_result_turn(results)

    def to_contents(self, history: Sequence[ConversationTurn]) -> list[dict[str, Any]]:
        """Canonical history -> `contents` list. Adjacent same-role turns are merged."""
        contents: list[dict[str, Any]] = []
        for turn in history:
            role = "model" if turn.role == "model" else "user"
            parts: list[dict[str, Any]] = []
            for block in turn.content:
                if isinstance(block, Text):
                    if block.value:
                        parts.append({"text": block.value})
                elif isinstance(block, ToolCall):
                    part: dict[str, Any] = {"function_call": {"name": block.name, "args": block.args}}
                    if block.signature is not None:
                        part["thought_signature"] = block.signature
                    parts.append(part)
                elif isinstance(block, ToolResult):
                    parts.append(
                        {"function_response": {"name": block.name, "response": block.payload}}
                    )
            if not parts:
                continue
            if contents and contents[-1]["role"] == role:
                contents[-1]["parts"].extend(parts)
            else:
                contents.append({"role": role, "parts": parts})
        return contents

    async def health_check(self) -> bool:
        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model,
                contents="ping",
            )
            return bool(getattr(response, "candidates", None))
        except Exception:
            return False
