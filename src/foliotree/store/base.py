"""NodeStore protocol and row filters.

The core only ever talks to persisted rows through this interface. Every
method is a coroutine because real adapters do network I/O; these calls
are the only suspension points of a tree operation.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from foliotree.graph.ContentNode import ContentNode


@dataclass(frozen=True)
class NodeFilter:
    """Restriction applied by ``NodeStore.list_nodes``.

    Attributes:
        parent_id: Parent to match when ``by_parent`` is set. None with
            ``by_parent`` selects root-level rows.
        by_parent: Whether to filter on ``parent_id`` at all.
        published_only: Drop unpublished rows.
        ref_id: Only rows referencing this external row.
    """

    parent_id: str | None = None
    by_parent: bool = False
    published_only: bool = False
    ref_id: str | None = None

    @classmethod
    def children_of(cls, parent_id: str | None) -> NodeFilter:
        return cls(parent_id=parent_id, by_parent=True)

    @classmethod
    def published(cls) -> NodeFilter:
        return cls(published_only=True)

    @classmethod
    def referencing(cls, ref_id: str) -> NodeFilter:
        return cls(ref_id=ref_id)

    def matches(self, node: ContentNode) -> bool:
        if self.by_parent and node.parent_id != self.parent_id:
            return False
        if self.published_only and not node.is_published:
            return False
        if self.ref_id is not None and node.ref_id != self.ref_id:
            return False
        return True


@runtime_checkable
class NodeStore(Protocol):
    """Async CRUD and ordered query access to content tree rows.

    Adapters raise ``foliotree.graph.errors.StoreError`` when the backing
    service fails. Missing rows are reported through return values
    (None / False), never through exceptions.
    """

    async def list_nodes(self, node_filter: NodeFilter | None = None) -> list[ContentNode]:
        """Return rows ordered by parent (roots first), order_index, title."""
        ...

    async def get_node(self, node_id: str) -> ContentNode | None:
        ...

    async def insert_node(self, fields: Mapping[str, Any]) -> ContentNode:
        """Insert a row. The store assigns id, created_at and updated_at."""
        ...

    async def update_node(self, node_id: str, fields: Mapping[str, Any]) -> ContentNode | None:
        """Apply a partial update, returning the new row or None if missing."""
        ...

    async def delete_node(self, node_id: str) -> bool:
        """Delete a row, returning False if it did not exist."""
        ...

    async def count_children(self, node_id: str) -> int:
        ...

    async def replace_nodes(self, nodes: Sequence[ContentNode]) -> list[ContentNode]:
        """Write several full rows so that either all or none become visible."""
        ...
