"""Entry point: python -m ekpa [chat|recall <query>|conversations [complete <id>]]

- No args / "chat": Interactive CLI REPL against a seeded in-memory workspace
- "recall <query>": Rank memories in the memory bank against a query
- "conversations": List logged customer conversations; "complete <id>" finishes a draft
"""

from __future__ import annotations

import asyncio
import logging
import sys

from ekpa.config import load_config


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _run_chat() -> None:
    """Interactive CLI REPL mode."""
    config = load_config()
    _setup_logging(config.log_level)

    from ekpa.cli import ChatREPL
    from ekpa.core import AgentService

    service = AgentService.from_config(config)
    repl = ChatREPL(service)

    try:
        asyncio.run(repl.run())
    except KeyboardInterrupt:
        pass


def _run_recall(query: str) -> None:
    config = load_config()
    _setup_logging(config.log_level)

    from ekpa.cli import format_ranked
    from ekpa.memory.store import MemoryStore

    store = MemoryStore(config.memory_dir, weights=config.memory.weights)
    print(format_ranked(store.retrieve(query, max_results=config.memory.max_results)))


def _run_conversations(args: list[str]) -> None:
    config = load_config()
    _setup_logging(config.log_level)

    from ekpa.cli import format_conversations
    from ekpa.conversations import ConversationLog
    from ekpa.errors import ConversationStateError, ConversationValidationError
    from ekpa.memory.store import MemoryStore
    from ekpa.workspace import Workspace

    store = MemoryStore(config.memory_dir, weights=config.memory.weights)
    log = ConversationLog(config.conversations_dir, Workspace(seed=True), store)

    if not args:
        print(format_conversations(log.list()))
        return

    try:
        conv = log.complete(args[1])
    except KeyError:
        print(f"No conversation with id {args[1]}")
        sys.exit(1)
    except ConversationValidationError as e:
        print("Cannot complete conversation:")
        for error in e.errors:
            print(f"  - {error}")
        sys.exit(1)
    except ConversationStateError as e:
        print(e)
        sys.exit(1)
    print(f"Completed conversation with {conv.customer_name}")


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "chat"
    rest = sys.argv[2:]

    if cmd in ("chat", "repl"):
        _run_chat()
    elif cmd == "recall" and rest:
        _run_recall(" ".join(rest))
    elif cmd == "conversations" and (not rest or (len(rest) == 2 and rest[0] == "complete")):
        _run_conversations(rest)
    else:
        print("Usage: python -m ekpa [chat|recall <query>|conversations [complete <id>]]")
        print("  chat                         Interactive CLI REPL (default)")
        print("  recall <query>               Rank stored memories against a query")
        print("  conversations                List logged customer conversations")
        print("  conversations complete <id>  Complete a drafted conversation")
        sys.exit(1)


if __name__ == "__main__":
    main()
