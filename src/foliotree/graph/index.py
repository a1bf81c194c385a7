"""NodeIndex - In-memory adjacency over one snapshot of the node set.

Built once per request from a single ``list_nodes`` read. Ancestor walks
and descendant checks run here instead of issuing one store query per
hop, and are bounded by the number of nodes in the snapshot.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from foliotree.graph.ContentNode import ContentNode, sibling_sort_key


class NodeIndex:
    """Lookup tables for a flat list of ContentNode rows.

    Example:
        >>> index = NodeIndex(nodes)
        >>> index.is_descendant("child-id", of="root-id")
        True
    """

    def __init__(self, nodes: Iterable[ContentNode]) -> None:
        self._nodes: dict[str, ContentNode] = {}
        self._children: dict[str | None, list[ContentNode]] = {}
        for node in nodes:
            self._nodes[node.id] = node
        for node in self._nodes.values():
            self._children.setdefault(node.parent_id, []).append(node)
        for siblings in self._children.values():
            siblings.sort(key=sibling_sort_key)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get(self, node_id: str | None) -> ContentNode | None:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def nodes(self) -> list[ContentNode]:
        """Return every node in the snapshot."""
        return list(self._nodes.values())

    def children_of(self, parent_id: str | None) -> list[ContentNode]:
        """Return children of ``parent_id`` sorted by (order_index, title).

        ``None`` returns the nodes stored at root level; it does not
        include orphans (see ``roots``).
        """
        return list(self._children.get(parent_id, ()))

    def has_children(self, node_id: str) -> bool:
        return bool(self._children.get(node_id))

    def is_orphan(self, node: ContentNode) -> bool:
        """True if the node names a parent that is not in the snapshot."""
        return node.parent_id is not None and node.parent_id not in self._nodes

    def roots(self) -> list[ContentNode]:
        """Return root-level nodes plus orphans, in sibling order."""
        found = [n for n in self._nodes.values() if n.parent_id is None or self.is_orphan(n)]
        return sorted(found, key=sibling_sort_key)

    def iter_ancestors(self, node_id: str) -> Iterator[ContentNode]:
        """Walk parent links upward from ``node_id`` (exclusive).

        Stops at a root, at a missing parent, or when a node repeats.
        Callers that need to know about a repeat use ``find_cycle``.

        Yields:
            Ancestors from nearest to farthest.
        """
        seen = {node_id}
        current = self._nodes.get(node_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in seen:
                return
            seen.add(current.parent_id)
            parent = self._nodes.get(current.parent_id)
            if parent is None:
                return
            yield parent
            current = parent

    def find_cycle(self, node_id: str) -> list[str] | None:
        """Return the IDs forming a parent cycle reachable from ``node_id``.

        Returns:
            The cycle's node IDs in walk order, or None if the walk
            reaches a root or a missing parent.
        """
        order: list[str] = []
        position: dict[str, int] = {}
        current = self._nodes.get(node_id)
        while current is not None:
            if current.id in position:
                return order[position[current.id]:]
            position[current.id] = len(order)
            order.append(current.id)
            if current.parent_id is None:
                return None
            current = self._nodes.get(current.parent_id)
        return None

    def is_descendant(self, node_id: str, of: str) -> bool:
        """True if ``node_id`` lies strictly inside the subtree rooted at ``of``.

        A corrupted parent chain that loops without reaching ``of`` is
        reported as not-descendant; ``would_create_cycle`` is the
        fail-closed variant used for writes.
        """
        return any(ancestor.id == of for ancestor in self.iter_ancestors(node_id))

    def would_create_cycle(self, node_id: str, new_parent_id: str) -> bool:
        """True if making ``new_parent_id`` the parent of ``node_id`` closes a loop.

        Fails closed: a stored cycle above ``new_parent_id`` also counts.
        """
        if new_parent_id == node_id:
            return True
        if self.is_descendant(new_parent_id, of=node_id):
            return True
        return self.find_cycle(new_parent_id) is not None

    def subtree_ids(self, root_id: str) -> set[str]:
        """Collect ``root_id`` and every descendant, iteratively."""
        if root_id not in self._nodes:
            return set()
        found = {root_id}
        stack = [root_id]
        while stack:
            current = stack.pop()
            for child in self._children.get(current, ()):
                if child.id not in found:
                    found.add(child.id)
                    stack.append(child.id)
        return found
