"""Tool executor: resolves (name, args) against the workspace and memory bank.

Failures the model can recover from (missing file, unknown tool, bad
arguments) come back as {"error": ...} payloads, never as exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ekpa.conversation import ToolCall, ToolResult
from ekpa.errors import ToolArgumentError
from ekpa.tools.declarations import TOOL_CATALOG

if TYPE_CHECKING:
    from ekpa.memory.store import MemoryStore
    from ekpa.workspace import Workspace

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_RESULTS = 5


# ── Argument variants (one per declared tool) ─────────────────


@dataclass(frozen=True)
class EditFileArgs:
    path: str
    content: str


@dataclass(frozen=True)
class ReadFileArgs:
    path: str


@dataclass(frozen=True)
class GetFileTreeArgs:
    pass


@dataclass(frozen=True)
class SearchMemoryArgs:
    query: str
    max_results: int = DEFAULT_SEARCH_RESULTS


ToolArgs = EditFileArgs | ReadFileArgs | GetFileTreeArgs | SearchMemoryArgs


def _require_str(name: str, args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str):
        raise ToolArgumentError(f"'{key}' must be a string")
    return value


def parse_args(name: str, args: dict[str, Any] | None) -> ToolArgs:
    """Validate raw arguments into the tool's variant.

    Raises KeyError for an unknown tool name and ToolArgumentError for a bad shape.
    """
    args = args or {}
    if not isinstance(args, dict):
        raise ToolArgumentError("arguments must be an object")

    if name == "edit_file":
        path = _require_str(name, args, "path")
        if not path.strip():
            raise ToolArgumentError("'path' must not be empty")
        return EditFileArgs(path=path, content=_require_str(name, args, "content"))
    if name == "read_file":
        return ReadFileArgs(path=_require_str(name, args, "path"))
    if name == "get_file_tree":
        return GetFileTreeArgs()
    if name == "search_memory":
        max_results = args.get("max_results", DEFAULT_SEARCH_RESULTS)
        # Some backends send integers as floats.
        if isinstance(max_results, float) and max_results.is_integer():
            max_results = int(max_results)
        if isinstance(max_results, bool) or not isinstance(max_results, int) or max_results < 1:
            raise ToolArgumentError("'max_results' must be a positive integer")
        return SearchMemoryArgs(query=_require_str(name, args, "query"), max_results=max_results)
    raise KeyError(name)


def describe_call(name: str, args: dict[str, Any] | None) -> str:
    """Human-readable status line for an in-flight tool call."""
    args = args or {}
    path = args.get("path") if isinstance(args.get("path"), str) else None
    file_name = path.split("/")[-1] if path else "file"
    if name == "edit_file":
        return f"Editing {file_name}..."
    if name == "read_file":
        return f"Reading {file_name}..."
    if name == "get_file_tree":
        return "Scanning workspace..."
    if name == "search_memory":
        return "Searching memory..."
    return f"Running {name}..."


# ── Executor ──────────────────────────────────────────────────


@dataclass
class ToolOutcome:
    """Result of one tool call plus the path it mutated, if any."""

    result: ToolResult
    edited_path: str | None = None


class ToolExecutor:
    """Runs tool calls. Independent of which provider produced them."""

    def __init__(self, workspace: Workspace, memory: MemoryStore | None = None) -> None:
        self.workspace = workspace
        self.memory = memory

    def execute(self, call: ToolCall, allowed: frozenset[str] | None = None) -> ToolOutcome:
        """Run a single call. Blocking; the loop runs it in a worker thread."""
        if call.name not in TOOL_CATALOG:
            logger.warning("Model requested unknown tool: %s", call.name)
            return self._outcome(call, {"error": f"Unknown function: {call.name}"})
        if allowed is not None and call.name not in allowed:
            return self._outcome(call, {"error": f"Tool not available: {call.name}"})

        try:
            args = parse_args(call.name, call.args)
        except ToolArgumentError as e:
            logger.warning("Invalid arguments for %s: %s", call.name, e)
            return self._outcome(call, {"error": f"Invalid arguments for {call.name}: {e}"})

        if isinstance(args, EditFileArgs):
            self.workspace.write(args.path, args.content)
            logger.info("Agent edited %s", args.path)
            payload = {
                "success": True,
                "path": args.path,
                "message": f'File "{args.path}" updated successfully.',
            }
            return self._outcome(call, payload, edited_path=args.path)

        if isinstance(args, ReadFileArgs):
            content = self.workspace.read(args.path)
            if content is None:
                return self._outcome(call, {"error": f"File not found: {args.path}"})
            return self._outcome(call, {"path": args.path, "content": content})

        if isinstance(args, GetFileTreeArgs):
            return self._outcome(call, {"tree": self.workspace.render_tree()})

        return self._search_memory(call, args)

    def _search_memory(self, call: ToolCall, args: SearchMemoryArgs) -> ToolOutcome:
        if self.memory is None:
            return self._outcome(call, {"error": "Memory bank unavailable"})
        ranked = self.memory.retrieve(
            args.query,
            active_ideas=self.workspace.ideas(),
            max_results=args.max_results,
        )
        return self._outcome(call, {"memories": [r.to_dict() for r in ranked]})

    @staticmethod
    def _outcome(call: ToolCall, payload: dict[str, Any], edited_path: str | None = None) -> ToolOutcome:
        return ToolOutcome(
            result=ToolResult(call_id=call.id, name=call.name, payload=payload),
            edited_path=edited_path,
        )
