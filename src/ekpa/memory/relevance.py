"""Memory relevance ranking: cheap, deterministic, lexical + metadata.

Each memory gets a weighted sum of four signals, each in [0, 1]:

- importance: the stored value as-is
- recency:    exp(-age_days / recency_scale_days)
- lexical:    fraction of query tokens present in summary + details
- entity:     0.5 per linked idea in the active context, capped at 1.0

This is not semantic search. Ties keep the collection's order.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from ekpa.memory.models import MemoryItem, now_ms

DEFAULT_MAX_RESULTS = 15

_MS_PER_DAY = 1000 * 60 * 60 * 24
_NON_WORD = re.compile(r"[^\w\s]")


@dataclass(frozen=True)
class RelevanceWeights:
    """Calibration constants for the composite score."""

    importance: float = 0.3
    recency: float = 0.2
    lexical: float = 0.3
    entity: float = 0.2
    recency_scale_days: float = 30.0
    entity_boost: float = 0.5


@dataclass
class RankedMemory:
    """A retrieved memory with its score (for debugging, not a stable contract)."""

    id: str
    type: str
    summary: str
    importance: float
    entities: dict[str, list[str]]
    signals: dict[str, Any]
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "summary": self.summary,
            "importance": self.importance,
            "entities": self.entities,
            "signals": self.signals,
            "score": self.score,
        }


def tokenize(text: str) -> list[str]:
    """Lower-case, strip punctuation, split on whitespace, drop tokens of length <= 2."""
    return [t for t in _NON_WORD.sub(" ", text.lower()).split() if len(t) > 2]


# ── Individual signals ────────────────────────────────────────


def recency_signal(created_at: int, now: int, scale_days: float) -> float:
    age_days = max(now - created_at, 0) / _MS_PER_DAY
    return math.exp(-age_days / scale_days)


def lexical_signal(query_tokens: Sequence[str], memory_text: str) -> float:
    if not query_tokens:
        return 0.0
    memory_tokens = set(tokenize(memory_text))
    overlap = sum(1 for token in query_tokens if token in memory_tokens)
    return overlap / len(query_tokens)


def entity_signal(ideas: Iterable[str], active_ideas: Iterable[str], boost: float) -> float:
    active = set(active_ideas)
    matches = sum(1 for idea in ideas if idea in active)
    return min(matches * boost, 1.0)


def score_memory(
    memory: MemoryItem,
    query_tokens: Sequence[str],
    active_ideas: Iterable[str] = (),
    *,
    now: int | None = None,
    weights: RelevanceWeights | None = None,
) -> float:
    w = weights or RelevanceWeights()
    now = now_ms() if now is None else now

    score = memory.importance * w.importance
    score += recency_signal(memory.created_at, now, w.recency_scale_days) * w.recency
    score += lexical_signal(query_tokens, f"{memory.summary} {memory.details or ''}") * w.lexical
    score += entity_signal(memory.ideas, active_ideas, w.entity_boost) * w.entity
    return score


def retrieve(
    memories: Iterable[MemoryItem],
    query: str,
    *,
    active_ideas: Iterable[str] | None = None,
    max_results: int = DEFAULT_MAX_RESULTS,
    now: int | None = None,
    weights: RelevanceWeights | None = None,
) -> list[RankedMemory]:
    """Rank memories against a free-text query and return the top max_results."""
    query_tokens = tokenize(query)
    active = list(active_ideas or [])
    now = now_ms() if now is None else now

    scored = [
        (score_memory(m, query_tokens, active, now=now, weights=weights), m) for m in memories
    ]
    # sorted() is stable, so equal scores keep collection order.
    scored = sorted(scored, key=lambda pair: pair[0], reverse=True)

    return [
        RankedMemory(
            id=m.id,
            type=m.type,
            summary=m.summary,
            importance=m.importance,
            entities=m.entities,
            signals=m.signals,
            score=score,
        )
        for score, m in scored[: max(max_results, 0)]
    ]
