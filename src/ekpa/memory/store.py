"""Memory bank — JSON source of truth plus a human-readable markdown digest.

memory_bank.json holds every MemoryItem (camelCase keys). memory_bank.md is
regenerated on each write: YAML front matter with counts, then one section
per memory type. An in-memory map (loaded once at startup, updated on
writes) serves reads and retrieval snapshots.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

import frontmatter

from ekpa.errors import MemoryValidationError
from ekpa.memory.models import (
    DEFAULT_IMPORTANCE,
    MemoryItem,
    dedupe_entities,
    now_ms,
    validate_fields,
)
from ekpa.memory.relevance import DEFAULT_MAX_RESULTS, RankedMemory, RelevanceWeights, retrieve

logger = logging.getLogger(__name__)

MEMORY_JSON = "memory_bank.json"
MEMORY_MD = "memory_bank.md"

# Fields an update may never touch.
_PROTECTED = ("id", "createdAt", "created_at", "type")


def atomic_write(path: Path, text: str) -> None:
    """Write via a temp file, fsync, then rename over the target."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


class MemoryStore:
    """Read/write access to the memory bank."""

    def __init__(self, root: Path, weights: RelevanceWeights | None = None) -> None:
        self.root = root
        self.weights = weights or RelevanceWeights()
        self._memories: dict[str, MemoryItem] = {}
        self._lock = threading.RLock()
        self.root.mkdir(parents=True, exist_ok=True)
        self.load()

    @property
    def json_path(self) -> Path:
        return self.root / MEMORY_JSON

    @property
    def digest_path(self) -> Path:
        return self.root / MEMORY_MD

    # ── Persistence ───────────────────────────────────────────

    def load(self) -> None:
        """(Re)load memories from disk. A corrupt file leaves the bank empty."""
        with self._lock:
            self._memories.clear()
            if not self.json_path.exists():
                return
            try:
                records = json.loads(self.json_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.error("Could not load %s: %s", self.json_path, e)
                return
            for record in records:
                try:
                    item = MemoryItem.from_dict(record)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Skipping malformed memory record: %s", e)
                    continue
                self._memories[item.id] = item
        logger.info("Loaded %d memories from %s", len(self._memories), self.json_path)

    def save(self) -> None:
        """Write JSON and digest atomically. Durable before returning."""
        with self._lock:
            items = list(self._memories.values())
            payload = json.dumps([m.to_dict() for m in items], indent=2, ensure_ascii=False)
            atomic_write(self.json_path, payload)
            atomic_write(self.digest_path, self.render_digest(items))
        logger.debug("Saved %d memories", len(items))

    def render_digest(self, items: list[MemoryItem] | None = None) -> str:
        """Markdown digest grouped by type, importance desc then newest first."""
        if items is None:
            with self._lock:
                items = list(self._memories.values())

        by_type: dict[str, list[MemoryItem]] = {}
        for item in items:
            by_type.setdefault(item.type, []).append(item)

        body = "# Memory Bank\n\n"
        for mem_type, group in by_type.items():
            body += f"## {mem_type} ({len(group)})\n\n"
            for m in sorted(group, key=lambda m: (-m.importance, -m.created_at)):
                created = datetime.fromtimestamp(m.created_at / 1000).strftime("%Y-%m-%d")
                body += f"### {m.summary}\n"
                body += f"**ID:** {m.id} | **Importance:** {m.importance} | **Created:** {created}\n\n"
                if m.details:
                    body += f"{m.details}\n\n"
                if m.entities.get("ideas"):
                    body += f"**Ideas:** {', '.join(m.entities['ideas'])}\n\n"
                if m.entities.get("customers"):
                    body += f"**Customers:** {', '.join(m.entities['customers'])}\n\n"
                signals = []
                if m.signals.get("evidenceQuality"):
                    signals.append(f"Evidence: {m.signals['evidenceQuality']}")
                if m.signals.get("confidence") is not None:
                    signals.append(f"Confidence: {m.signals['confidence']}")
                if m.signals.get("moneySignal"):
                    signals.append(f"Money Signal: {m.signals['moneySignal']}")
                if signals:
                    body += f"**Signals:** {', '.join(signals)}\n\n"
                body += "---\n\n"

        post = frontmatter.Post(
            body,
            updated=datetime.now().isoformat(timespec="seconds"),
            total=len(items),
            types={t: len(g) for t, g in by_type.items()},
        )
        return frontmatter.dumps(post) + "\n"

    # ── CRUD ──────────────────────────────────────────────────

    def create_memory(self, data: dict[str, Any]) -> MemoryItem:
        """Validate and persist a new memory."""
        validate_fields(data)
        ts = now_ms()
        importance = data.get("importance")
        item = MemoryItem(
            id=self._new_id(),
            type=data["type"],
            summary=data["summary"].strip(),
            created_at=ts,
            updated_at=ts,
            details=data.get("details") or "",
            entities=dedupe_entities(data.get("entities") or {}),
            signals=dict(data.get("signals") or {}),
            importance=DEFAULT_IMPORTANCE if importance is None else float(importance),
            source=dict(data.get("source") or {"kind": "USER_ACTION"}),
        )
        with self._lock:
            self._memories[item.id] = item
            self.save()
        logger.info("Created memory %s (%s): %s", item.id, item.type, item.summary[:80])
        return item

    def get_memory(self, memory_id: str) -> MemoryItem | None:
        with self._lock:
            return self._memories.get(memory_id)

    def update_memory(self, memory_id: str, updates: dict[str, Any]) -> MemoryItem:
        """Apply updates; id, createdAt and type are never changed."""
        with self._lock:
            current = self._memories.get(memory_id)
            if current is None:
                raise KeyError(f"Memory {memory_id} not found")

            changes = {k: v for k, v in updates.items() if k not in _PROTECTED}
            ignored = sorted(set(updates) & set(_PROTECTED))
            if ignored:
                logger.warning("Ignoring immutable memory fields on update: %s", ignored)
            validate_fields(changes, partial=True)

            record = current.to_dict()
            record.update(changes)
            if "entities" in changes:
                record["entities"] = dedupe_entities(changes["entities"] or {})
            record["updatedAt"] = max(now_ms(), current.updated_at + 1)
            updated = MemoryItem.from_dict(record)
            updated.created_at = current.created_at
            self._memories[memory_id] = updated
            self.save()
        logger.info("Updated memory %s", memory_id)
        return updated

    def list_memories(
        self,
        *,
        type: str | None = None,
        idea: str | None = None,
        customer: str | None = None,
        search: str | None = None,
    ) -> list[MemoryItem]:
        """Filtered view, newest first."""
        result = self.snapshot()
        if type:
            result = [m for m in result if m.type == type]
        if idea:
            result = [m for m in result if idea in (m.entities.get("ideas") or [])]
        if customer:
            result = [m for m in result if customer in (m.entities.get("customers") or [])]
        if search:
            q = search.lower()
            result = [m for m in result if q in m.summary.lower() or q in m.details.lower()]
        return sorted(result, key=lambda m: m.created_at, reverse=True)

    def snapshot(self) -> list[MemoryItem]:
        with self._lock:
            return list(self._memories.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._memories)

    # ── Retrieval ─────────────────────────────────────────────

    def retrieve(
        self,
        query: str,
        *,
        active_ideas: list[str] | None = None,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> list[RankedMemory]:
        """Top-ranked memories for a query. Scores a point-in-time snapshot."""
        if max_results < 0:
            raise MemoryValidationError("max_results must be >= 0")
        return retrieve(
            self.snapshot(),
            query,
            active_ideas=active_ideas,
            max_results=max_results,
            weights=self.weights,
        )

    def _new_id(self) -> str:
        while True:
            candidate = secrets.token_urlsafe(15)
            if candidate not in self._memories:
                return candidate
