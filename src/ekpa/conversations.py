"""Customer conversation log.

Conversations start as drafts and are completed once every field is filled
in. Completing one records a CUSTOMER_CONVO memory and appends an entry to
the workspace's customer feedback document.
"""

from __future__ import annotations

import json
import logging
import secrets
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from ekpa.errors import ConversationStateError, ConversationValidationError
from ekpa.memory.models import now_ms
from ekpa.memory.store import MemoryStore, atomic_write
from ekpa.workspace import Workspace

logger = logging.getLogger(__name__)

CONVERSATIONS_JSON = "conversations.json"
FEEDBACK_DOC = "customers/customer_feedback.md"
FEEDBACK_HEADER = "# Customer Feedback\n\n"

YesNo = Literal["yes", "no"]

_PROTECTED = ("id", "created_at", "completed")


@dataclass
class CustomerConversation:
    id: str
    customer_name: str = ""
    date: str = ""
    time: str = ""
    notes: str = ""
    potential_customer: YesNo | None = None
    put_money_down: YesNo | None = None
    linked_ideas: list[str] = field(default_factory=list)
    completed: bool = False
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def sort_key(self) -> datetime:
        try:
            return datetime.fromisoformat(f"{self.date} {self.time}".strip())
        except ValueError:
            return datetime.min

    def validate(self) -> list[str]:
        """Every problem blocking completion, in form order."""
        errors = []
        if not self.customer_name.strip():
            errors.append("Customer name is required")
        if not self.date.strip():
            errors.append("Date is required")
        if not self.time.strip():
            errors.append("Time is required")
        if not self.notes.strip():
            errors.append("Notes are required")
        if self.potential_customer not in ("yes", "no"):
            errors.append("Must answer: Is this a potential customer?")
        if self.put_money_down not in ("yes", "no"):
            errors.append("Must answer: Did they put money down?")
        return errors


class ConversationLog:
    """Draft/complete customer conversations, persisted to conversations.json."""

    def __init__(self, root: Path, workspace: Workspace, memory: MemoryStore) -> None:
        self.root = root
        self.workspace = workspace
        self.memory = memory
        self._conversations: dict[str, CustomerConversation] = {}
        self._lock = threading.RLock()
        self.root.mkdir(parents=True, exist_ok=True)
        if self.workspace.read(FEEDBACK_DOC) is None:
            self.workspace.write(FEEDBACK_DOC, FEEDBACK_HEADER)
        self.load()

    @property
    def json_path(self) -> Path:
        return self.root / CONVERSATIONS_JSON

    # ── Persistence ───────────────────────────────────────────

    def load(self) -> None:
        with self._lock:
            self._conversations.clear()
            if not self.json_path.exists():
                return
            try:
                records = json.loads(self.json_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.error("Could not load %s: %s", self.json_path, e)
                return
            for record in records:
                conv = CustomerConversation(**record)
                self._conversations[conv.id] = conv
        logger.info("Loaded %d conversations", len(self._conversations))

    def save(self) -> None:
        with self._lock:
            payload = json.dumps(
                [asdict(c) for c in self._conversations.values()], indent=2, ensure_ascii=False
            )
            atomic_write(self.json_path, payload)

    # ── CRUD ──────────────────────────────────────────────────

    def create(self, **fields: Any) -> CustomerConversation:
        """Start a draft. Unknown fields raise TypeError."""
        for key in _PROTECTED:
            fields.pop(key, None)
        conv = CustomerConversation(id=secrets.token_urlsafe(15), **fields)
        with self._lock:
            self._conversations[conv.id] = conv
            self.save()
        return conv

    def get(self, conversation_id: str) -> CustomerConversation | None:
        with self._lock:
            return self._conversations.get(conversation_id)

    def list(
        self,
        *,
        completed: bool | None = None,
        potential_customer: str | None = None,
        put_money_down: str | None = None,
        idea: str | None = None,
    ) -> list[CustomerConversation]:
        """Filtered view, newest conversation date first."""
        with self._lock:
            result = list(self._conversations.values())
        if completed is not None:
            result = [c for c in result if c.completed == completed]
        if potential_customer:
            result = [c for c in result if c.potential_customer == potential_customer]
        if put_money_down:
            result = [c for c in result if c.put_money_down == put_money_down]
        if idea:
            result = [c for c in result if idea in c.linked_ideas]
        return sorted(result, key=CustomerConversation.sort_key, reverse=True)

    def update(self, conversation_id: str, **updates: Any) -> CustomerConversation:
        """Edit a draft. id, created_at and completed cannot be set here."""
        with self._lock:
            conv = self._require(conversation_id)
            for key, value in updates.items():
                if key in _PROTECTED:
                    continue
                if not hasattr(conv, key):
                    raise TypeError(f"Unknown conversation field: {key}")
                setattr(conv, key, value)
            conv.updated_at = now_ms()
            self.save()
        return conv

    def complete(self, conversation_id: str) -> CustomerConversation:
        """Validate, mark completed, then record the memory and feedback entry."""
        with self._lock:
            conv = self._require(conversation_id)
            if conv.completed:
                raise ConversationStateError(f"Conversation {conversation_id} is already completed")
            errors = conv.validate()
            if errors:
                raise ConversationValidationError(errors)
            conv.completed = True
            conv.updated_at = now_ms()
            self.save()

        self._record_memory(conv)
        self._append_feedback(conv)
        logger.info("Completed conversation %s", conversation_id)
        return conv

    def _require(self, conversation_id: str) -> CustomerConversation:
        conv = self._conversations.get(conversation_id)
        if conv is None:
            raise KeyError(f"Conversation {conversation_id} not found")
        return conv

    # ── Completion side effects ──────────────────────────────

    def _record_memory(self, conv: CustomerConversation) -> None:
        paid = conv.put_money_down == "yes"
        if paid:
            money_signal = "yes"
        elif conv.potential_customer == "yes":
            money_signal = "maybe"
        else:
            money_signal = "no"

        self.memory.create_memory(
            {
                "type": "CUSTOMER_CONVO",
                "summary": f"Customer conversation: {conv.customer_name}",
                "details": conv.notes,
                "entities": {"customers": [conv.customer_name], "ideas": list(conv.linked_ideas)},
                "signals": {
                    "moneySignal": money_signal,
                    "evidenceQuality": "strong" if paid else "moderate",
                },
                "importance": 0.9 if paid else 0.7,
                "source": {"kind": "USER_ACTION", "ref": f"conversation:{conv.id}"},
            }
        )

    def _append_feedback(self, conv: CustomerConversation) -> None:
        ideas = ", ".join(conv.linked_ideas) if conv.linked_ideas else "None"
        entry = (
            f"\n### {conv.date} - {conv.customer_name}\n"
            f"- **Time**: {conv.time}\n"
            f"- **Potential Customer**: {conv.potential_customer}\n"
            f"- **Put Money Down**: {conv.put_money_down}\n"
            f"- **Linked Ideas**: {ideas}\n"
            f"- **Notes**: {conv.notes}\n\n"
        )
        current = self.workspace.read(FEEDBACK_DOC) or FEEDBACK_HEADER
        self.workspace.write(FEEDBACK_DOC, current + entry)
