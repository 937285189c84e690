"""Memory bank — long-lived founder facts ranked for relevance.

Layout:
    ~/.ekpa/memory/
    ├── memory_bank.json               # Source of truth: every MemoryItem
    └── memory_bank.md                 # Digest grouped by type (regenerated on write)

Retrieval is lexical + metadata scoring (see relevance.py), not embeddings.
"""
