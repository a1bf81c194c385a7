"""PathResolver - Slug paths and depths derived from parent links.

A node's full path is the ``/``-joined path segments of its ancestor
chain read top-down, ending with its own segment. The segment is the
node's slug, or the slugified title when the node has none.
"""

from __future__ import annotations

from collections.abc import Iterable

from foliotree.graph.ContentNode import ContentNode
from foliotree.graph.index import NodeIndex
from foliotree.utilities.slugify import ensure_slug


def path_segment(node: ContentNode) -> str:
    """Return the URL segment contributed by ``node``.

    Stored slugs with an inner ``/`` are slugified so that every node
    adds exactly one segment.
    """
    segment = (node.slug or "").strip().strip("/")
    if not segment:
        return ensure_slug(node.title)
    if "/" in segment:
        return ensure_slug(segment)
    return segment


class PathResolver:
    """Resolve full paths for one snapshot of the node set.

    Results are memoized for the lifetime of the resolver, which is
    meant to cover one resolution pass (one request). The resolver never
    mutates the nodes it is given.

    Nodes whose parent is missing from the snapshot resolve as roots.
    A node caught in a parent cycle resolves to its own segment.
    """

    def __init__(self, nodes: Iterable[ContentNode] | NodeIndex) -> None:
        self._index = nodes if isinstance(nodes, NodeIndex) else NodeIndex(nodes)
        self._memo: dict[str, str] = {}
        self._looped: dict[str, str] = {}

    @property
    def index(self) -> NodeIndex:
        return self._index

    def full_path(self, node_id: str) -> str:
        """Return the full slug path of ``node_id``.

        Raises:
            KeyError: If the node is not in the snapshot.
        """
        if node_id in self._memo:
            return self._memo[node_id]
        if node_id in self._looped:
            return self._looped[node_id]

        node = self._index.get(node_id)
        if node is None:
            raise KeyError(f"Node '{node_id}' not found")

        # Walk up until a root, a missing parent, a resolved ancestor, or a repeat
        chain: list[ContentNode] = []
        seen: set[str] = set()
        current: ContentNode | None = node
        prefix = ""
        while current is not None:
            if current.id in seen:
                self._looped[node_id] = path_segment(node)
                return self._looped[node_id]
            if current.id in self._memo:
                prefix = self._memo[current.id]
                break
            seen.add(current.id)
            chain.append(current)
            current = self._index.get(current.parent_id)

        for member in reversed(chain):
            segment = path_segment(member)
            prefix = f"{prefix}/{segment}" if prefix else segment
            self._memo[member.id] = prefix
        return self._memo[node_id]

    def depth_of(self, node_id: str) -> int:
        """Return the number of ``/``-separated segments in the full path."""
        return len([part for part in self.full_path(node_id).split("/") if part])

    def ancestors(self, node_id: str) -> list[ContentNode]:
        """Return the ancestor chain of ``node_id`` from root to parent."""
        return list(reversed(list(self._index.iter_ancestors(node_id))))

    def paths(self) -> dict[str, str]:
        """Resolve and return the full path of every node in the snapshot."""
        return {node.id: self.full_path(node.id) for node in self._index.nodes()}


def full_path(node_id: str, nodes: Iterable[ContentNode]) -> str:
    """Resolve one node's full path with a fresh resolver."""
    return PathResolver(nodes).full_path(node_id)


def depth_of(node_id: str, nodes: Iterable[ContentNode]) -> int:
    """Resolve one node's depth with a fresh resolver."""
    return PathResolver(nodes).depth_of(node_id)
