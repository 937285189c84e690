"""Local CLI REPL for development and testing."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from ekpa.errors import TooManyIterationsError, TurnTimeoutError, UpstreamError

if TYPE_CHECKING:
    from ekpa.core import AgentService, ChatResult
    from ekpa.conversations import CustomerConversation
    from ekpa.memory.relevance import RankedMemory

logger = logging.getLogger(__name__)

_CLI_SESSION_ID = "cli"


class ChatREPL:
    """Interactive REPL over stdin/stdout. Status lines go to stderr."""

    def __init__(self, service: AgentService, session_id: str = _CLI_SESSION_ID) -> None:
        self.service = service
        self.session_id = session_id
        self._running = False

    async def run(self) -> None:
        self._running = True
        loop = asyncio.get_running_loop()
        info = self.service.provider_info()

        print(f"Ekpa workspace agent [{info['name']}:{info['model']}] (type 'exit' to quit)")
        print("-" * 48)

        while self._running:
            try:
                line = await loop.run_in_executor(None, self._read_input)
            except (EOFError, KeyboardInterrupt):
                print("\nBye!")
                break

            if line is None or line.strip().lower() in ("exit", "quit"):
                print("Bye!")
                break

            text = line.strip()
            if not text:
                continue
            if text == "/clear":
                self.service.clear_history(self.session_id)
                print("(history cleared)")
                continue

            try:
                result = await self.service.chat(self.session_id, text, on_status=self._status)
            except (TooManyIterationsError, TurnTimeoutError) as e:
                print(f"\n[Error: {e}]")
                if e.edited_files:
                    print(f"  edited before failure: {', '.join(e.edited_files)}")
                continue
            except UpstreamError as e:
                print(f"\n[Upstream error: {e}]")
                continue
            self.reply(result)

    def _read_input(self) -> str | None:
        try:
            sys.stdout.write("\nYou: ")
            sys.stdout.flush()
            raw = sys.stdin.buffer.readline()
            if not raw:
                return None
            return raw.decode("utf-8", errors="replace").rstrip("\n")
        except EOFError:
            return None

    def stop(self) -> None:
        self._running = False

    @staticmethod
    def _status(status: str) -> None:
        print(f"  … {status}", file=sys.stderr)

    @staticmethod
    def reply(result: ChatResult) -> None:
        print(f"\nEkpa: {result.text}")
        if result.edited_files:
            print(f"  [edited: {', '.join(result.edited_files)}]", file=sys.stderr)


def format_ranked(ranked: list[RankedMemory]) -> str:
    """One line per memory: score, type, id, summary."""
    if not ranked:
        return "(no memories)"
    return "\n".join(f"{r.score:.3f}  {r.type:<15} {r.id}  {r.summary}" for r in ranked)


def format_conversations(conversations: list[CustomerConversation]) -> str:
    """One line per conversation: id, state, date, customer."""
    if not conversations:
        return "(no conversations)"
    return "\n".join(
        f"{c.id}  {'done ' if c.completed else 'draft'}  {c.date or '-':<10}  "
        f"{c.customer_name or '(unnamed)'}"
        for c in conversations
    )
