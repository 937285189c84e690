"""Provider-independent tool declarations.

Adapters render these into their own wire schema; the executor parses calls
against the same parameter definitions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

_PATH_EXAMPLE = 'The file path relative to the workspace root, e.g. "Idea 1/MVP/features.md"'


@dataclass(frozen=True)
class ToolParameter:
    type: str
    description: str
    required: bool = True


@dataclass(frozen=True)
class ToolDeclaration:
    """A tool the model may call: name, description and parameter schema."""

    name: str
    description: str
    parameters: dict[str, ToolParameter] = field(default_factory=dict)

    def json_schema(self) -> dict[str, Any]:
        """JSON-Schema object for the parameters (shared by all backends)."""
        return {
            "type": "object",
            "properties": {
                name: {"type": p.type, "description": p.description}
                for name, p in self.parameters.items()
            },
            "required": [name for name, p in self.parameters.items() if p.required],
        }


EDIT_FILE = ToolDeclaration(
    name="edit_file",
    description=(
        "Edit or create a file in the startup workspace. "
        "Use this to write or update markdown documents."
    ),
    parameters={
        "path": ToolParameter("string", _PATH_EXAMPLE),
        "content": ToolParameter("string", "The full new content for the file (markdown)"),
    },
)

READ_FILE = ToolDeclaration(
    name="read_file",
    description=(
        "Read the content of a file in the startup workspace. "
        "Use this to check what a file currently contains before editing."
    ),
    parameters={
        "path": ToolParameter(
            "string",
            'The file path relative to the workspace root, e.g. "Idea 1/research/research.md"',
        ),
    },
)

GET_FILE_TREE = ToolDeclaration(
    name="get_file_tree",
    description=(
        "Get the full workspace file tree structure as plain text. "
        "Use this to see all available ideas, folders, and files."
    ),
)

SEARCH_MEMORY = ToolDeclaration(
    name="search_memory",
    description=(
        "Search the memory bank for past assumptions, decisions, customer conversations, "
        "evidence and lessons relevant to a query. Results include memory IDs to cite."
    ),
    parameters={
        "query": ToolParameter("string", "Free-text description of what to look for"),
        "max_results": ToolParameter(
            "integer", "Maximum number of memories to return (default 5)", required=False
        ),
    },
)

TOOL_CATALOG: dict[str, ToolDeclaration] = {
    t.name: t for t in (EDIT_FILE, READ_FILE, GET_FILE_TREE, SEARCH_MEMORY)
}

WORKSPACE_TOOLS = ("edit_file", "read_file", "get_file_tree")


def declarations_for(names: tuple[str, ...] | list[str]) -> list[ToolDeclaration]:
    """Look up declarations by name, preserving the given order."""
    return [TOOL_CATALOG[name] for name in names]
