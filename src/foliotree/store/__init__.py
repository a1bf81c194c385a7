"""foliotree.store - Persistence adapters for content tree rows.

Exports:
- NodeStore: Async protocol the core talks to
- NodeFilter: Row filter for list_nodes
- InMemoryNodeStore: Process-local store for tests and local development
- PostgrestNodeStore: Adapter for a PostgREST endpoint over httpx
"""

from foliotree.store.base import NodeFilter, NodeStore
from foliotree.store.memory import InMemoryNodeStore
from foliotree.store.postgrest import PostgrestNodeStore

__all__ = [
    "NodeFilter",
    "NodeStore",
    "InMemoryNodeStore",
    "PostgrestNodeStore",
]
