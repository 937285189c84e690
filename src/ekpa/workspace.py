"""In-memory startup workspace. Markdown documents grouped by idea folder.

Every path is relative to the workspace root, e.g. "Idea 1/MVP/features.md".
Top-level folders are ideas; nested folders are topic categories whose
display order is configurable.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping

logger = logging.getLogger(__name__)

DEFAULT_FOLDER_ORDER: dict[str, int] = {
    "research": 1,
    "MVP": 2,
    "product": 3,
    "customers": 4,
}

_UNRANKED = 100

IDEA_TEMPLATE: dict[str, str] = {
    "research/research.md": (
        "# Research\n\n"
        "## Market Research\n- (Add your market research here)\n\n"
        "## Competitor Analysis\n- (Analyze your competitors)\n\n"
        "## Key Insights\n- (Record key findings)\n"
    ),
    "MVP/features.md": (
        "# Feature List\n\n"
        "## Core Features\n- (Add your features here)\n\n"
        "## Nice-to-Have\n- (Future features)\n"
    ),
    "customers/outreach.md": (
        "# Customer Outreach\n\n"
        "## Target Contacts\n"
        "| Name | Company | Role | Status |\n"
        "|------|---------|------|--------|\n"
        "| (Add contacts here) | | | |\n\n"
        "## Outreach Log\n"
        "| Date | Contact | Channel | Notes |\n"
        "|------|---------|---------|-------|\n"
        "| (Log your outreach here) | | | |\n"
    ),
    "customers/feedback.md": (
        "# Customer Feedback\n\n"
        "## Feedback Entries\n- (Record customer feedback here)\n\n"
        "## Common Themes\n- (Identify patterns in feedback)\n\n"
        "## Interview Notes\n### (Interview Subject - Date)\n"
        "- Key takeaways:\n- Pain points:\n- Feature requests:\n"
    ),
    "product/current_product.md": (
        "# Current Product\n\n"
        "## Overview\n- (Describe your current product)\n\n"
        "## Tech Stack\n- (Define your tech stack)\n\n"
        "## Architecture\n- (Describe your system architecture)\n\n"
        "## Development Specs\n- (Define technical requirements)\n"
    ),
}


class Workspace:
    """Shared mutable document store. Last write wins."""

    def __init__(
        self,
        files: Mapping[str, str] | None = None,
        *,
        seed: bool = False,
        folder_order: Mapping[str, int] | None = None,
        root_name: str = "Workspace",
    ) -> None:
        self.root_name = root_name
        self.folder_order = dict(DEFAULT_FOLDER_ORDER if folder_order is None else folder_order)
        self._files: dict[str, str] = dict(files or {})
        self._lock = threading.RLock()
        self._idea_counter = 0
        if seed:
            self.create_idea()

    # ── Collaborator contract ─────────────────────────────────

    def read(self, path: str) -> str | None:
        """Return file content, or None if the path was never written."""
        with self._lock:
            return self._files.get(path)

    def write(self, path: str, content: str) -> None:
        """Create or overwrite a file."""
        with self._lock:
            self._files[path] = content
        logger.debug("Wrote %s (%d chars)", path, len(content))

    def render_tree(self) -> str:
        """Plain-text tree: two-space indent, folders suffixed with '/'."""
        lines: list[str] = []

        def walk(node: dict, indent: str) -> None:
            for child in node["children"]:
                if child["type"] == "file":
                    lines.append(f"{indent}{child['name']}")
                else:
                    lines.append(f"{indent}{child['name']}/")
                    walk(child, indent + "  ")

        tree = self.tree()
        lines.append(f"{tree['name']}/")
        walk(tree, "  ")
        return "\n".join(lines)

    # ── Structure ─────────────────────────────────────────────

    def tree(self) -> dict:
        """Nested {name, type, children|path} structure, sorted for display."""
        root: dict = {"name": self.root_name, "type": "root", "children": []}
        with self._lock:
            paths = sorted(self._files)

        for file_path in paths:
            parts = file_path.split("/")
            current = root
            for depth, part in enumerate(parts):
                if depth == len(parts) - 1:
                    current["children"].append({"name": part, "type": "file", "path": file_path})
                    continue
                folder = next(
                    (c for c in current["children"] if c["type"] != "file" and c["name"] == part),
                    None,
                )
                if folder is None:
                    folder = {
                        "name": part,
                        "type": "idea" if depth == 0 else "folder",
                        "children": [],
                    }
                    current["children"].append(folder)
                current = folder

        self._sort(root)
        return root

    def _sort(self, node: dict) -> None:
        # Folders before files; folders by configured priority; then by name.
        def key(child: dict) -> tuple:
            is_file = child["type"] == "file"
            priority = 0 if is_file else self.folder_order.get(child["name"], _UNRANKED)
            return (is_file, priority, child["name"].casefold(), child["name"])

        node["children"].sort(key=key)
        for child in node["children"]:
            if child["type"] != "file":
                self._sort(child)

    def ideas(self) -> list[str]:
        """Top-level idea folder names, sorted. Shared category folders are not ideas."""
        with self._lock:
            tops = {p.split("/", 1)[0] for p in self._files if "/" in p}
        return sorted(t for t in tops if t not in self.folder_order)

    def all_files(self) -> dict[str, str]:
        with self._lock:
            return dict(self._files)

    # ── Ideas ─────────────────────────────────────────────────

    def create_idea(self) -> str:
        """Add the next "Idea N" folder with template documents."""
        with self._lock:
            existing = set(self.ideas())
            self._idea_counter += 1
            name = f"Idea {self._idea_counter}"
            while name in existing:
                self._idea_counter += 1
                name = f"Idea {self._idea_counter}"
            for rel, content in IDEA_TEMPLATE.items():
                self._files[f"{name}/{rel}"] = content
        logger.info("Created idea: %s", name)
        return name
