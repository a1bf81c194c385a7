"""TreeProjector - Forests, flat walks and scoped views over a node list.

Everything here is synchronous and pure: it works on a row list already
fetched from the store and never writes back. Both the admin tree view
and the public sitemap are built from these functions.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator, Mapping

from foliotree.graph.ContentNode import ContentNode, NodeType, TreeNode, sibling_sort_key
from foliotree.graph.index import NodeIndex
from foliotree.graph.paths import PathResolver, path_segment
from foliotree.sitemap import (
    ITEM_ROUTES,
    SitemapEntry,
    SitemapOverride,
    item_defaults,
    normalize_path,
    section_defaults,
)


def build_forest(nodes: Iterable[ContentNode]) -> list[TreeNode]:
    """Build a forest of TreeNodes from a flat row list.

    Children and roots are sorted by (order_index, title). Nodes whose
    parent is not in ``nodes`` (for example hidden by a published-only
    filter) become roots instead of being dropped. Nodes that can only
    be reached through a stored parent cycle are promoted to roots as
    well, so every input row appears exactly once.

    Args:
        nodes: Flat list of rows.

    Returns:
        Root TreeNodes in sibling order.
    """
    rows = list(nodes)
    tree_nodes = {node.id: TreeNode(node) for node in rows}
    roots: list[TreeNode] = []

    for node in rows:
        tree_node = tree_nodes[node.id]
        parent = tree_nodes.get(node.parent_id) if node.parent_id is not None else None
        if parent is None or parent is tree_node:
            roots.append(tree_node)
        else:
            parent.add_child(tree_node)

    # Rows inside a parent cycle are unreachable from any root
    reached = {member.id for root in roots for member in root.walk()}
    for node in sorted(rows, key=sibling_sort_key):
        if node.id in reached:
            continue
        tree_node = tree_nodes[node.id]
        parent = tree_nodes[node.parent_id]  # type: ignore[index]
        parent.children.remove(tree_node)
        roots.append(tree_node)
        reached.update(member.id for member in tree_node.walk())

    for tree_node in tree_nodes.values():
        tree_node.sort_children()
    roots.sort(key=lambda root: sibling_sort_key(root.node))
    return roots


class ForestWalk:
    """Pre-order ``(TreeNode, depth)`` sequence over a forest.

    The walk is lazy and finite, and each ``iter()`` starts over from the
    first root, so one instance can be consumed several times.
    """

    def __init__(self, roots: Iterable[TreeNode]) -> None:
        self._roots = list(roots)

    def __iter__(self) -> Iterator[tuple[TreeNode, int]]:
        stack: list[tuple[TreeNode, int]] = [(root, 0) for root in reversed(self._roots)]
        while stack:
            current, depth = stack.pop()
            yield current, depth
            stack.extend((child, depth + 1) for child in reversed(current.children))

    def nodes(self) -> Iterator[ContentNode]:
        """Iterate over the underlying rows in pre-order."""
        for tree_node, _ in self:
            yield tree_node.node


def flatten(forest: Iterable[TreeNode]) -> ForestWalk:
    """Return the pre-order walk of ``forest`` with depths (roots at 0)."""
    return ForestWalk(forest)


def subtree_ids(nodes: Iterable[ContentNode], root_id: str) -> set[str]:
    """Collect ``root_id`` and every descendant.

    Iterative (stack-based) so deep trees use bounded stack space. An
    unknown ``root_id`` yields an empty set.
    """
    index = nodes if isinstance(nodes, NodeIndex) else NodeIndex(nodes)
    return index.subtree_ids(root_id)


def depth_limited_view(
    nodes: Iterable[ContentNode],
    max_depth: int,
    roots: Iterable[str] | None = None,
) -> list[ContentNode]:
    """Keep nodes within ``max_depth`` levels of the given roots.

    Depth is labelled breadth-first starting at 0 for each root; nodes at
    depth ``max_depth`` or deeper are discarded, as are nodes not
    reachable from ``roots``.

    Args:
        nodes: Flat list of rows.
        max_depth: Number of levels to keep (1 keeps only the roots).
        roots: Root IDs to start from. Defaults to the forest roots
            (root-level rows plus orphans).

    Returns:
        Kept rows in breadth-first order.
    """
    index = nodes if isinstance(nodes, NodeIndex) else NodeIndex(nodes)
    if max_depth < 1:
        return []
    if roots is None:
        start = [node.id for node in index.roots()]
    else:
        start = [root_id for root_id in roots if root_id in index]

    kept: list[ContentNode] = []
    seen: set[str] = set()
    queue: deque[tuple[str, int]] = deque((root_id, 0) for root_id in start)
    while queue:
        node_id, depth = queue.popleft()
        if node_id in seen or depth > max_depth - 1:
            continue
        seen.add(node_id)
        kept.append(index.get(node_id))  # type: ignore[arg-type]
        for child in index.children_of(node_id):
            queue.append((child.id, depth + 1))
    return kept


def node_sitemap_override(node: ContentNode) -> SitemapOverride:
    """Read the sitemap override stored in ``node.meta["sitemap"]``."""
    return SitemapOverride.from_mapping(node.meta.get("sitemap") if node.meta else None)


def project_to_sitemap_entries(
    nodes: Iterable[ContentNode],
    overrides: Mapping[str, SitemapOverride] | None = None,
) -> list[SitemapEntry]:
    """Project a node set onto sitemap entries.

    Sections are always candidates; folders only when their override sets
    ``include_folder_route``. Excluded nodes are skipped. Change frequency
    and priority default from the node's depth and are replaced by any
    override field. Entries with the same path collapse, last write wins.

    Args:
        nodes: Flat list of rows (usually the published set).
        overrides: Override per node ID. Nodes without an entry use the
            override stored in their ``meta``.

    Returns:
        Entries sorted by path.
    """
    resolver = PathResolver(nodes)
    overrides = overrides or {}
    by_path: dict[str, SitemapEntry] = {}

    for node in resolver.index.nodes():
        override = overrides.get(node.id) or node_sitemap_override(node)
        if override.exclude:
            continue
        include = node.node_type is NodeType.SECTION or (
            node.node_type is NodeType.FOLDER and override.include_folder_route
        )
        if not include:
            continue

        path = normalize_path(resolver.full_path(node.id))
        changefreq, priority = section_defaults(resolver.depth_of(node.id))
        by_path[path] = SitemapEntry(
            path=path,
            last_modified=override.last_modified or node.updated_at or node.created_at,
            change_frequency=override.change_frequency or changefreq,
            priority=override.priority if override.priority is not None else priority,
        )

    return [by_path[path] for path in sorted(by_path)]


def project_to_item_entries(
    nodes: Iterable[ContentNode],
    overrides: Mapping[str, SitemapOverride] | None = None,
) -> list[SitemapEntry]:
    """Project project and blog nodes onto their item pages.

    A project node becomes ``/project/<slug>`` (monthly, 0.6) and a blog
    node ``/blog/<slug>`` (weekly, 0.7), independent of where the node
    sits in the tree. Nodes without a slug or with ``exclude`` set are
    skipped; overrides replace the defaults field by field.

    Returns:
        Entries sorted by path, duplicates collapsed (last write wins).
    """
    overrides = overrides or {}
    by_path: dict[str, SitemapEntry] = {}
    for node in nodes:
        if not node.node_type.requires_ref or not (node.slug or "").strip("/ "):
            continue
        override = overrides.get(node.id) or node_sitemap_override(node)
        if override.exclude:
            continue
        kind = node.node_type.value
        path = normalize_path(f"{ITEM_ROUTES[kind]}/{path_segment(node)}")
        changefreq, priority = item_defaults(kind)
        by_path[path] = SitemapEntry(
            path=path,
            last_modified=override.last_modified or node.updated_at or node.created_at,
            change_frequency=override.change_frequency or changefreq,
            priority=override.priority if override.priority is not None else priority,
        )
    return [by_path[path] for path in sorted(by_path)]
