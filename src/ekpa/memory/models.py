"""Memory item schema, validation and JSON (camelCase) conversion."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Literal

from ekpa.errors import MemoryValidationError

MEMORY_TYPES = (
    "ASSUMPTION",
    "DECISION",
    "CUSTOMER_CONVO",
    "EVIDENCE",
    "CONTRADICTION",
    "LESSON",
    "MILESTONE",
)
EVIDENCE_QUALITIES = ("none", "weak", "moderate", "strong")
MONEY_SIGNALS = ("no", "maybe", "yes")
SOURCE_KINDS = ("USER_ACTION", "SYSTEM_RULE", "AGENT_OUTPUT")
ENTITY_CATEGORIES = ("ideas", "customers", "artifacts", "tags")

MemoryType = Literal[
    "ASSUMPTION", "DECISION", "CUSTOMER_CONVO", "EVIDENCE", "CONTRADICTION", "LESSON", "MILESTONE"
]

DEFAULT_IMPORTANCE = 0.5


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class MemoryItem:
    """A durable fact scored for relevance rather than fetched by key."""

    id: str
    type: MemoryType
    summary: str
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)
    details: str = ""
    entities: dict[str, list[str]] = field(default_factory=dict)
    signals: dict[str, Any] = field(default_factory=dict)
    importance: float = DEFAULT_IMPORTANCE
    source: dict[str, str] = field(default_factory=lambda: {"kind": "USER_ACTION"})

    @property
    def ideas(self) -> list[str]:
        return list(self.entities.get("ideas") or [])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "type": self.type,
            "summary": self.summary,
            "details": self.details,
            "entities": self.entities,
            "signals": self.signals,
            "importance": self.importance,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryItem:
        return cls(
            id=data["id"],
            type=data["type"],
            summary=data["summary"],
            created_at=int(data.get("createdAt") or now_ms()),
            updated_at=int(data.get("updatedAt") or data.get("createdAt") or now_ms()),
            details=data.get("details") or "",
            entities=dict(data.get("entities") or {}),
            signals=dict(data.get("signals") or {}),
            importance=float(data.get("importance", DEFAULT_IMPORTANCE)),
            source=dict(data.get("source") or {"kind": "USER_ACTION"}),
        )


# ── Validation ────────────────────────────────────────────────


def validate_fields(data: dict[str, Any], *, partial: bool = False) -> None:
    """Reject malformed memory data before it reaches the store.

    With partial=True only the keys present are checked (updates).
    """
    if not partial or "type" in data:
        if not data.get("type"):
            raise MemoryValidationError("Memory type is required")
        if data["type"] not in MEMORY_TYPES:
            raise MemoryValidationError(
                f"Unknown memory type: {data['type']!r} (expected one of {', '.join(MEMORY_TYPES)})"
            )
    if not partial or "summary" in data:
        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise MemoryValidationError("Memory summary is required")

    importance = data.get("importance")
    if importance is not None or (partial and "importance" in data):
        _check_unit_interval("importance", importance)

    details = data.get("details")
    if details is not None and not isinstance(details, str):
        raise MemoryValidationError("details must be a string")

    entities = data.get("entities")
    if entities is not None:
        if not isinstance(entities, dict):
            raise MemoryValidationError("entities must be a mapping")
        for key, values in entities.items():
            if key not in ENTITY_CATEGORIES:
                raise MemoryValidationError(f"Unknown entity category: {key!r}")
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                raise MemoryValidationError(f"entities.{key} must be a list of strings")

    signals = data.get("signals")
    if signals is not None:
        if not isinstance(signals, dict):
            raise MemoryValidationError("signals must be a mapping")
        quality = signals.get("evidenceQuality")
        if quality is not None and quality not in EVIDENCE_QUALITIES:
            raise MemoryValidationError(f"Unknown evidenceQuality: {quality!r}")
        money = signals.get("moneySignal")
        if money is not None and money not in MONEY_SIGNALS:
            raise MemoryValidationError(f"Unknown moneySignal: {money!r}")
        if signals.get("confidence") is not None:
            _check_unit_interval("confidence", signals["confidence"])

    source = data.get("source")
    if source is not None:
        if not isinstance(source, dict):
            raise MemoryValidationError("source must be a mapping")
        if source.get("kind") not in SOURCE_KINDS:
            raise MemoryValidationError(f"Unknown source kind: {source.get('kind')!r}")


def _check_unit_interval(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MemoryValidationError(f"{name} must be a number")
    if not 0.0 <= value <= 1.0:
        raise MemoryValidationError(f"{name} must be within [0, 1], got {value}")


def dedupe_entities(entities: dict[str, list[str]]) -> dict[str, list[str]]:
    """Entity lists are set-like; keep first occurrence order."""
    return {key: list(dict.fromkeys(values)) for key, values in entities.items()}
