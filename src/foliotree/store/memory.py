"""In-memory NodeStore for tests and local development.

Rows live in a dict guarded by a lock so the threaded development server
can share one instance. Returned nodes are copies; callers cannot change
stored state without going through the store.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any
from uuid import uuid4

from foliotree.graph.ContentNode import ContentNode
from foliotree.graph.errors import StoreError
from foliotree.graph.serialize import fields_to_row, node_from_row, node_to_row
from foliotree.store.base import NodeFilter
from foliotree.utilities.timestamps import utcnow

logger = logging.getLogger(__name__)


def store_sort_key(node: ContentNode) -> tuple[bool, str, int, str, str]:
    """Listing order: root rows first, then parent, order_index, title, id."""
    return (node.parent_id is not None, node.parent_id or "", node.order_index, node.title, node.id)


class InMemoryNodeStore:
    """Process-local implementation of the NodeStore protocol."""

    def __init__(self, rows: Iterable[Mapping[str, Any]] | None = None) -> None:
        self._rows: dict[str, ContentNode] = {}
        self._lock = threading.RLock()
        if rows:
            self.seed(rows)

    @classmethod
    def from_json_file(cls, path: Path) -> InMemoryNodeStore:
        """Create a store seeded from a JSON array of rows.

        Raises:
            StoreError: If the file cannot be read or is not a JSON array.
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read seed file {path}: {e}") from e
        if not isinstance(data, list):
            raise StoreError(f"Seed file {path} must contain a JSON array of rows")
        return cls(data)

    def seed(self, rows: Iterable[Mapping[str, Any]]) -> list[ContentNode]:
        """Load rows verbatim, keeping their ids and timestamps.

        Rows without an id get a fresh one; rows without timestamps are
        stamped with the current time.
        """
        seeded = []
        with self._lock:
            for raw in rows:
                row = dict(raw)
                row.setdefault("id", uuid4().hex)
                node = node_from_row(row)
                now = utcnow()
                node = node.evolve(
                    created_at=node.created_at or now,
                    updated_at=node.updated_at or node.created_at or now,
                )
                self._rows[node.id] = node
                seeded.append(copy.deepcopy(node))
        logger.debug("Seeded %d content nodes", len(seeded))
        return seeded

    def __len__(self) -> int:
        return len(self._rows)

    async def list_nodes(self, node_filter: NodeFilter | None = None) -> list[ContentNode]:
        with self._lock:
            nodes = [
                copy.deepcopy(node)
                for node in self._rows.values()
                if node_filter is None or node_filter.matches(node)
            ]
        return sorted(nodes, key=store_sort_key)

    async def get_node(self, node_id: str) -> ContentNode | None:
        with self._lock:
            node = self._rows.get(node_id)
            return copy.deepcopy(node) if node is not None else None

    async def insert_node(self, fields: Mapping[str, Any]) -> ContentNode:
        now = utcnow()
        row = fields_to_row(fields)
        row["id"] = uuid4().hex
        row["created_at"] = now
        row["updated_at"] = now
        try:
            node = node_from_row(row)
        except ValueError as e:
            raise StoreError(f"Rejected insert: {e}") from e
        with self._lock:
            self._rows[node.id] = node
        return copy.deepcopy(node)

    async def update_node(self, node_id: str, fields: Mapping[str, Any]) -> ContentNode | None:
        with self._lock:
            current = self._rows.get(node_id)
            if current is None:
                return None
            row = node_to_row(current)
            row.update(fields_to_row(fields))
            row["id"] = node_id
            row["updated_at"] = fields.get("updated_at") or utcnow()
            try:
                node = node_from_row(row)
            except ValueError as e:
                raise StoreError(f"Rejected update of {node_id}: {e}") from e
            self._rows[node_id] = node
            return copy.deepcopy(node)

    async def delete_node(self, node_id: str) -> bool:
        with self._lock:
            return self._rows.pop(node_id, None) is not None

    async def count_children(self, node_id: str) -> int:
        with self._lock:
            return sum(1 for node in self._rows.values() if node.parent_id == node_id)

    async def replace_nodes(self, nodes: Sequence[ContentNode]) -> list[ContentNode]:
        with self._lock:
            missing = [node.id for node in nodes if node.id not in self._rows]
            if missing:
                raise StoreError(f"Cannot replace missing rows: {', '.join(missing)}")
            now = utcnow()
            written = [node.evolve(updated_at=node.updated_at or now) for node in nodes]
            for node in written:
                self._rows[node.id] = copy.deepcopy(node)
        return [copy.deepcopy(node) for node in written]
