"""Mutation records for content tree operations.

Every successful write made through ContentTreeService is recorded here
with the node state before and after, so the admin console can show what
changed during the life of the process.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from foliotree.utilities.timestamps import format_timestamp, utcnow


@dataclass
class MutationEntry:
    """One recorded write.

    Attributes:
        operation: Service operation name, e.g. "create_node" or "move_node".
        target_id: Node the operation was asked to change.
        before_state: Node dict before the write; empty for creates.
        after_state: Node dict after the write; empty for deletes.
        id: Random hex id for lookups from the API.
        timestamp: UTC time the write was recorded.
    """

    operation: str
    target_id: str
    before_state: dict[str, Any]
    after_state: dict[str, Any]
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "operation": self.operation,
            "target_id": self.target_id,
            "before": self.before_state,
            "after": self.after_state,
        }


class MutationLog:
    """Bounded write history, oldest first.

    Once ``max_entries`` records are held, each new record evicts the
    oldest one.

    Example:
        >>> log = MutationLog(max_entries=2)
        >>> log.append(MutationEntry("rename_node", "n1", {"title": "A"}, {"title": "B"}))
        >>> len(log)
        1
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self._entries: deque[MutationEntry] = deque(maxlen=max_entries)

    def append(self, entry: MutationEntry) -> None:
        self._entries.append(entry)

    def __iter__(self) -> Iterator[MutationEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def latest(self) -> MutationEntry | None:
        """Most recent record, if any."""
        return self._entries[-1] if self._entries else None

    def get(self, mutation_id: str) -> MutationEntry | None:
        """Look a record up by its id; evicted records are gone."""
        return next((entry for entry in self._entries if entry.id == mutation_id), None)

    def for_node(self, node_id: str) -> list[MutationEntry]:
        """Every record that targeted ``node_id``, oldest first."""
        return [entry for entry in self._entries if entry.target_id == node_id]

    def recent(self, limit: int = 50) -> list[MutationEntry]:
        """Up to ``limit`` records, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._entries))[:limit]
