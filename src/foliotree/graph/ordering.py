"""OrderingEngine - Sibling order assignment and swap-based reorder.

Siblings are always compared by ``order_index`` ascending, then ``title``
ascending (case-sensitive), so identical inputs give identical orders.
"""

from __future__ import annotations

import logging
from enum import Enum

from foliotree.graph.ContentNode import ContentNode, sibling_sort_key
from foliotree.graph.errors import ErrorCode, Result
from foliotree.store.base import NodeFilter, NodeStore

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Reorder direction within a sibling group."""

    UP = "up"
    DOWN = "down"

    @classmethod
    def parse(cls, value: str | Direction | None) -> Direction | None:
        if isinstance(value, Direction):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def sorted_siblings(nodes: list[ContentNode]) -> list[ContentNode]:
    return sorted(nodes, key=sibling_sort_key)


class OrderingEngine:
    """Compute append positions and perform swaps.

    Args:
        store: NodeStore holding the sibling groups.
    """

    def __init__(self, store: NodeStore) -> None:
        self._store = store

    async def siblings(self, parent_id: str | None) -> list[ContentNode]:
        """Return the sibling group under ``parent_id`` in display order."""
        return sorted_siblings(await self._store.list_nodes(NodeFilter.children_of(parent_id)))

    async def next_order_index(self, parent_id: str | None) -> int:
        """Return the append-at-end index for a new child of ``parent_id``.

        ``max(order_index) + 1`` over current siblings, or 0 when there
        are none. Calling it twice without an insert in between returns
        the same value.
        """
        siblings = await self._store.list_nodes(NodeFilter.children_of(parent_id))
        if not siblings:
            return 0
        return max(node.order_index for node in siblings) + 1

    async def reorder(
        self, node_id: str, direction: Direction | str
    ) -> Result[tuple[ContentNode, ...]]:
        """Swap ``node_id``'s order_index with its neighbour in ``direction``.

        Only the two nodes are written. When they share an
        ``order_index`` the swap writes the same values back and the
        display order (which then falls back to title) does not change.

        Returns:
            Result holding ``(mover, neighbour)`` as written, or an empty
            tuple when there is no neighbour in that direction.
        """
        parsed = Direction.parse(direction)
        if parsed is None:
            return Result.failure(
                ErrorCode.DIRECTION_INVALID, f"Direction must be 'up' or 'down', got {direction!r}"
            )

        node = await self._store.get_node(node_id)
        if node is None:
            return Result.failure(ErrorCode.NOT_FOUND, f"Node '{node_id}' not found", node_id)

        group = await self.siblings(node.parent_id)
        position = next(i for i, sibling in enumerate(group) if sibling.id == node_id)
        target = position - 1 if parsed is Direction.UP else position + 1
        if target < 0 or target >= len(group):
            return Result.success(())

        mover = group[position]
        neighbour = group[target]
        written = await self._store.replace_nodes(
            [
                mover.evolve(order_index=neighbour.order_index, updated_at=None),
                neighbour.evolve(order_index=mover.order_index, updated_at=None),
            ]
        )
        logger.info(
            "Reordered %s %s (order_index %d -> %d)",
            node_id,
            parsed.value,
            mover.order_index,
            neighbour.order_index,
        )
        return Result.success(tuple(written))
