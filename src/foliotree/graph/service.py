"""ContentTreeService - The operations exposed to the admin UI and sitemap.

Each mutation follows the same protocol: read what it needs from the
store, ask the InvariantGuard (and OrderingEngine) for a decision, then
issue a single write. Refusals come back as failed ``Result`` values;
store failures propagate as ``StoreError``.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from foliotree.graph.ContentNode import ContentNode, NodeType
from foliotree.graph.errors import ErrorCode, Result, StoreError, TreeError
from foliotree.graph.guard import (
    InvariantGuard,
    clean_optional,
    clean_slug,
    parse_order_index,
)
from foliotree.graph.index import NodeIndex
from foliotree.graph.mutations import MutationEntry, MutationLog
from foliotree.graph.ordering import Direction, OrderingEngine
from foliotree.graph.paths import PathResolver
from foliotree.graph.projector import (
    build_forest,
    depth_limited_view,
    flatten,
    project_to_item_entries,
    project_to_sitemap_entries,
)
from foliotree.graph.serialize import node_to_dict, normalize_payload, parse_flag
from foliotree.sitemap import (
    SitemapEntry,
    SitemapOverride,
    home_entry,
    render_sitemap_xml,
)
from foliotree.store.base import NodeFilter, NodeStore
from foliotree.utilities.slugify import ensure_slug
from foliotree.utilities.timestamps import format_timestamp, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 25

SCOPE_PUBLIC = "public"
SCOPE_ADMIN = "admin"

# Marks "argument not given" where None is a meaningful value
UNSET: Any = object()


@dataclass(frozen=True)
class TreeRow:
    """One row of a flattened tree listing."""

    node: ContentNode
    full_path: str
    depth: int
    has_children: bool

    def to_dict(self) -> dict[str, Any]:
        return node_to_dict(
            self.node,
            full_path=self.full_path,
            depth=self.depth,
            has_children=self.has_children,
        )


@dataclass(frozen=True)
class TreeListing:
    """Result of ``list_tree``: pre-order rows plus the effective query."""

    scope: str
    include_unpublished: bool
    max_depth: int
    root_id: str | None
    rows: list[TreeRow] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "include_unpublished": self.include_unpublished,
            "max_depth": self.max_depth,
            "root_id": self.root_id,
            "count": len(self.rows),
            "nodes": [row.to_dict() for row in self.rows],
        }


@dataclass(frozen=True)
class SitemapReport:
    """Sitemap entries with the home page, ready for JSON or XML output."""

    site_url: str
    entries: list[SitemapEntry]
    generated_at: datetime
    counts: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": format_timestamp(self.generated_at),
            "site_url": self.site_url,
            "counts": dict(self.counts),
            "urls": [entry.to_dict(self.site_url) for entry in self.entries],
        }

    def to_xml(self) -> str:
        return render_sitemap_xml(self.entries, self.site_url)


@dataclass(frozen=True)
class RefCleanup:
    """Outcome of removing the nodes that referenced a deleted external row."""

    ref_id: str
    removed: list[str] = field(default_factory=list)
    skipped: list[TreeError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ref_id": self.ref_id,
            "removed": list(self.removed),
            "skipped": [error.to_dict() for error in self.skipped],
        }


def clamp_depth(value: Any, limit: int = DEFAULT_MAX_DEPTH) -> int:
    """Parse a requested depth and clamp it to ``1..limit``; junk means ``limit``."""
    try:
        depth = int(value)
    except (TypeError, ValueError):
        return limit
    return max(1, min(limit, depth))


class ContentTreeService:
    """Content tree operations over a NodeStore.

    Args:
        store: Persistence adapter.
        max_depth: Upper bound for ``list_tree`` depth requests.
        mutation_log: Log to record successful writes in.
    """

    def __init__(
        self,
        store: NodeStore,
        max_depth: int = DEFAULT_MAX_DEPTH,
        mutation_log: MutationLog | None = None,
    ) -> None:
        self._store = store
        self._guard = InvariantGuard(store)
        self._ordering = OrderingEngine(store)
        self._max_depth = max_depth
        self._log = mutation_log if mutation_log is not None else MutationLog()

    @property
    def store(self) -> NodeStore:
        return self._store

    @property
    def guard(self) -> InvariantGuard:
        return self._guard

    @property
    def ordering(self) -> OrderingEngine:
        return self._ordering

    @property
    def mutation_log(self) -> MutationLog:
        return self._log

    # ─────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────

    def _record(
        self, operation: str, target_id: str, before: dict[str, Any], after: dict[str, Any]
    ) -> None:
        self._log.append(
            MutationEntry(
                operation=operation, target_id=target_id, before_state=before, after_state=after
            )
        )

    @staticmethod
    def _refused(operation: str, error: TreeError) -> Result[Any]:
        logger.debug("%s refused: %s", operation, error)
        return Result(error=error)

    async def _load(self, node_id: str) -> ContentNode | None:
        return await self._store.get_node(node_id)

    @staticmethod
    def _not_found(node_id: str) -> Result[Any]:
        return Result.failure(ErrorCode.NOT_FOUND, f"Node '{node_id}' not found", node_id)

    async def _write(
        self, current: ContentNode, changes: dict[str, Any], operation: str
    ) -> Result[ContentNode]:
        changes["updated_at"] = utcnow()
        updated = await self._store.update_node(current.id, changes)
        if updated is None:
            return self._not_found(current.id)
        self._record(operation, current.id, node_to_dict(current), node_to_dict(updated))
        logger.info("%s %s", operation, current.id)
        return Result.success(updated)

    # ─────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────

    async def create_node(self, payload: Mapping[str, Any]) -> Result[ContentNode]:
        """Create a node under a folder or at the root.

        Without an explicit ``order_index`` the node is appended after
        its current siblings.

        Args:
            payload: Create fields in any accepted key spelling.

        Returns:
            Result holding the stored node.
        """
        checked = await self._guard.validate_create(normalize_payload(payload))
        if not checked.ok:
            return self._refused("create_node", checked.error)  # type: ignore[arg-type]
        validated = checked.unwrap()

        order_index = validated.order_index
        if order_index is None:
            order_index = await self._ordering.next_order_index(validated.parent_id)

        node = await self._store.insert_node(validated.to_fields(order_index))
        self._record("create_node", node.id, {}, node_to_dict(node))
        logger.info("create_node %s (%s under %s)", node.id, node.node_type.value, node.parent_id)
        return Result.success(node)

    async def rename_node(self, node_id: str, title: Any) -> Result[ContentNode]:
        """Change a node's title."""
        clean = clean_optional(title)
        if clean is None:
            return self._refused(
                "rename_node", TreeError(ErrorCode.TITLE_REQUIRED, "Title is required", node_id)
            )
        current = await self._load(node_id)
        if current is None:
            return self._not_found(node_id)
        return await self._write(current, {"title": clean}, "rename_node")

    async def move_node(self, node_id: str, next_parent_id: str | None) -> Result[ContentNode]:
        """Reparent a node, appending it after its new siblings.

        Moving a node to the parent it already has changes nothing.
        """
        target = clean_optional(next_parent_id)
        current = await self._load(node_id)
        if current is None:
            return self._not_found(node_id)

        checked = await self._guard.validate_reparent(node_id, target)
        if not checked.ok:
            return self._refused("move_node", checked.error)  # type: ignore[arg-type]
        if current.parent_id == target:
            return Result.success(current)

        order_index = await self._ordering.next_order_index(target)
        return await self._write(
            current, {"parent_id": target, "order_index": order_index}, "move_node"
        )

    async def reorder_node(
        self, node_id: str, direction: Direction | str
    ) -> Result[tuple[ContentNode, ...]]:
        """Swap a node with its previous (up) or next (down) sibling.

        Returns:
            Result holding the written nodes; empty when the node is
            already first (up) or last (down).
        """
        before = await self._load(node_id)
        result = await self._ordering.reorder(node_id, direction)
        if not result.ok:
            return self._refused("reorder_node", result.error)  # type: ignore[arg-type]
        written = result.value or ()
        if written and before is not None:
            self._record(
                "reorder_node",
                node_id,
                node_to_dict(before),
                {"nodes": [node_to_dict(node) for node in written]},
            )
        return result

    async def retype_node(
        self, node_id: str, next_type: NodeType | str, ref_id: Any = UNSET
    ) -> Result[ContentNode]:
        """Change a node's type, optionally setting its reference in the same write.

        Args:
            node_id: Node to change.
            next_type: New type.
            ref_id: New external reference; when omitted the current one
                is kept and used for the reference check.
        """
        parsed = NodeType.parse(next_type)
        if parsed is None:
            return self._refused(
                "retype_node",
                TreeError(ErrorCode.NODE_TYPE_INVALID, f"Unknown node type {next_type!r}", node_id),
            )
        current = await self._load(node_id)
        if current is None:
            return self._not_found(node_id)

        effective_ref = current.ref_id if ref_id is UNSET else clean_optional(ref_id)
        checked = await self._guard.validate_retype(node_id, parsed, effective_ref)
        if not checked.ok:
            return self._refused("retype_node", checked.error)  # type: ignore[arg-type]

        changes: dict[str, Any] = {"node_type": parsed}
        if ref_id is not UNSET:
            changes["ref_id"] = effective_ref
        if parsed.requires_ref and not current.slug:
            changes["slug"] = ensure_slug(current.title)
        return await self._write(current, changes, "retype_node")

    async def relink_node(self, node_id: str, ref_id: Any) -> Result[ContentNode]:
        """Point a node at a different external row."""
        current = await self._load(node_id)
        if current is None:
            return self._not_found(node_id)
        clean = clean_optional(ref_id)
        if current.node_type.requires_ref and clean is None:
            return self._refused(
                "relink_node",
                TreeError(
                    ErrorCode.REF_REQUIRED,
                    f"A {current.node_type.value} node must keep a reference",
                    node_id,
                ),
            )
        return await self._write(current, {"ref_id": clean}, "relink_node")

    async def update_node(self, node_id: str, payload: Mapping[str, Any]) -> Result[ContentNode]:
        """Apply a partial update combining rename, move, retype, relink and metadata.

        Every field is checked before anything is written, and all
        changes land in one store write.

        Args:
            node_id: Node to change.
            payload: Fields to change, in any accepted key spelling.

        Returns:
            Result holding the updated node (or the unchanged node when
            the patch changes nothing).
        """
        fields = normalize_payload(payload)
        if not fields:
            return self._refused(
                "update_node",
                TreeError(ErrorCode.NO_FIELDS_TO_UPDATE, "No updatable fields supplied", node_id),
            )
        current = await self._load(node_id)
        if current is None:
            return self._not_found(node_id)

        changes: dict[str, Any] = {}

        if "title" in fields:
            title = clean_optional(fields["title"])
            if title is None:
                return self._refused(
                    "update_node", TreeError(ErrorCode.TITLE_REQUIRED, "Title is required", node_id)
                )
            changes["title"] = title

        next_type = current.node_type
        if "node_type" in fields:
            parsed = NodeType.parse(fields["node_type"])
            if parsed is None:
                return self._refused(
                    "update_node",
                    TreeError(
                        ErrorCode.NODE_TYPE_INVALID,
                        f"Unknown node type {fields['node_type']!r}",
                        node_id,
                    ),
                )
            next_type = parsed
            changes["node_type"] = parsed

        effective_ref = current.ref_id
        if "ref_id" in fields:
            effective_ref = clean_optional(fields["ref_id"])
            changes["ref_id"] = effective_ref

        if "node_type" in fields or "ref_id" in fields:
            checked = await self._guard.validate_retype(node_id, next_type, effective_ref)
            if not checked.ok:
                return self._refused("update_node", checked.error)  # type: ignore[arg-type]

        if "order_index" in fields:
            try:
                order_index = parse_order_index(fields["order_index"])
            except ValueError:
                order_index = None
            if order_index is None:
                return self._refused(
                    "update_node",
                    TreeError(
                        ErrorCode.ORDER_INDEX_INVALID, "order_index must be an integer", node_id
                    ),
                )
            changes["order_index"] = order_index

        if "parent_id" in fields:
            target = clean_optional(fields["parent_id"])
            if target != current.parent_id:
                checked = await self._guard.validate_reparent(node_id, target)
                if not checked.ok:
                    return self._refused("update_node", checked.error)  # type: ignore[arg-type]
                changes["parent_id"] = target
                if "order_index" not in changes:
                    changes["order_index"] = await self._ordering.next_order_index(target)

        if "slug" in fields:
            try:
                changes["slug"] = clean_slug(fields["slug"])
            except ValueError:
                return self._refused(
                    "update_node",
                    TreeError(ErrorCode.SLUG_INVALID, "slug must not contain '/'", node_id),
                )
        slug_after = changes.get("slug", current.slug)
        if next_type.requires_ref and not slug_after:
            changes["slug"] = ensure_slug(changes.get("title", current.title))

        if "icon" in fields:
            changes["icon"] = clean_optional(fields["icon"])
        if "description" in fields:
            changes["description"] = fields["description"]
        if "is_published" in fields:
            try:
                changes["is_published"] = parse_flag(fields["is_published"])
            except ValueError:
                return self._refused(
                    "update_node",
                    TreeError(
                        ErrorCode.PUBLISHED_INVALID, "is_published must be a boolean", node_id
                    ),
                )
        if "meta" in fields:
            meta = fields["meta"]
            changes["meta"] = dict(meta) if isinstance(meta, Mapping) else {}

        if not changes:
            return Result.success(current)
        return await self._write(current, changes, "update_node")

    async def delete_node(self, node_id: str) -> Result[ContentNode]:
        """Delete a childless node.

        Deleting a project or blog node leaves the referenced external
        row alone.

        Returns:
            Result holding the deleted node.
        """
        current = await self._load(node_id)
        if current is None:
            return self._not_found(node_id)
        checked = await self._guard.validate_delete(node_id)
        if not checked.ok:
            return self._refused("delete_node", checked.error)  # type: ignore[arg-type]
        if not await self._store.delete_node(node_id):
            return self._not_found(node_id)
        self._record("delete_node", node_id, node_to_dict(current), {})
        logger.info("delete_node %s", node_id)
        return Result.success(current)

    async def remove_nodes_for_ref(self, ref_id: str) -> RefCleanup:
        """Best-effort removal of the nodes referencing a deleted external row.

        Nodes that cannot be removed (they still have children, or the
        store failed on them) are reported in ``skipped`` and left in place.
        """
        cleanup = RefCleanup(ref_id=ref_id)
        for node in await self._store.list_nodes(NodeFilter.referencing(ref_id)):
            try:
                result = await self.delete_node(node.id)
            except StoreError as e:
                logger.warning("Could not remove node %s for ref %s: %s", node.id, ref_id, e)
                cleanup.skipped.append(
                    TreeError(ErrorCode.STORE_ERROR, "Store failure while removing node", node.id)
                )
                continue
            if result.ok:
                cleanup.removed.append(node.id)
            else:
                cleanup.skipped.append(result.error)  # type: ignore[arg-type]
        logger.info(
            "Removed %d node(s) for ref %s, skipped %d",
            len(cleanup.removed),
            ref_id,
            len(cleanup.skipped),
        )
        return cleanup

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    async def list_nodes(self, parent_id: Any = UNSET) -> list[ContentNode]:
        """Return every node, or only the children of ``parent_id`` when given."""
        if parent_id is UNSET:
            return await self._store.list_nodes()
        return await self._store.list_nodes(NodeFilter.children_of(clean_optional(parent_id)))

    async def get_node(self, node_id: str) -> Result[ContentNode]:
        node = await self._load(node_id)
        if node is None:
            return self._not_found(node_id)
        return Result.success(node)

    async def list_tree(
        self,
        scope: str = SCOPE_ADMIN,
        include_unpublished: bool = False,
        max_depth: Any = None,
        root_id: str | None = None,
    ) -> Result[TreeListing]:
        """Return a depth-limited, pre-order listing of the tree.

        Public listings only ever contain published nodes;
        ``include_unpublished`` is honoured for the admin scope only.
        Paths are resolved against the whole visible node set, so a
        subtree listing still carries full paths.

        Args:
            scope: "public" or "admin". Anything else is treated as public.
            include_unpublished: Admin only; include draft nodes.
            max_depth: Levels to return, clamped to 1..the configured limit.
            root_id: Only list this node and its descendants.
        """
        effective_scope = SCOPE_ADMIN if scope == SCOPE_ADMIN else SCOPE_PUBLIC
        unpublished = include_unpublished and effective_scope == SCOPE_ADMIN
        depth = clamp_depth(
            max_depth if max_depth not in (None, "") else self._max_depth, self._max_depth
        )
        root = clean_optional(root_id)

        nodes = await self._store.list_nodes(None if unpublished else NodeFilter.published())
        index = NodeIndex(nodes)

        if root is not None:
            if root not in index:
                return self._not_found(root)
            scoped = index.subtree_ids(root)
            kept = depth_limited_view(
                [node for node in nodes if node.id in scoped], depth, roots=[root]
            )
        else:
            kept = depth_limited_view(index, depth)

        resolver = PathResolver(index)
        rows = [
            TreeRow(
                node=tree_node.node,
                full_path=resolver.full_path(tree_node.id),
                depth=level,
                has_children=index.has_children(tree_node.id),
            )
            for tree_node, level in flatten(build_forest(kept))
        ]
        return Result.success(
            TreeListing(
                scope=effective_scope,
                include_unpublished=unpublished,
                max_depth=depth,
                root_id=root,
                rows=rows,
            )
        )

    def generate_sitemap_entries(
        self,
        nodes: list[ContentNode],
        overrides: Mapping[str, SitemapOverride] | None = None,
    ) -> list[SitemapEntry]:
        """Project ``nodes`` onto sitemap entries (see ``project_to_sitemap_entries``)."""
        return project_to_sitemap_entries(nodes, overrides)

    async def build_sitemap(self, site_url: str, include_unpublished: bool = False) -> SitemapReport:
        """Build the public sitemap.

        The home page comes first, then section (and opted-in folder)
        routes from the tree, then ``/project/<slug>`` and ``/blog/<slug>``
        pages for project and blog nodes. A later source wins on a
        shared path.
        """
        nodes = await self._store.list_nodes(
            None if include_unpublished else NodeFilter.published()
        )
        tree_entries = self.generate_sitemap_entries(nodes)
        item_entries = project_to_item_entries(nodes)
        by_path = {
            entry.path: entry for entry in [home_entry(), *tree_entries, *item_entries]
        }
        entries = [by_path[path] for path in sorted(by_path)]

        kinds = Counter(node.node_type for node in nodes)
        # Item paths are "/project/<slug>" or "/blog/<slug>"
        item_kinds = Counter(entry.path.split("/")[1] for entry in item_entries)
        counts = {
            "nodes": len(nodes),
            "sections": kinds[NodeType.SECTION],
            "folders": kinds[NodeType.FOLDER],
            "tree_entries": len(tree_entries),
            "projects": item_kinds["project"],
            "blogs": item_kinds["blog"],
            "total": len(entries),
        }
        return SitemapReport(
            site_url=site_url, entries=entries, generated_at=utcnow(), counts=counts
        )

    async def summary(self) -> dict[str, Any]:
        """Return node counts by type and publication state."""
        nodes = await self._store.list_nodes()
        kinds = Counter(node.node_type.value for node in nodes)
        return {
            "total": len(nodes),
            "published": sum(1 for node in nodes if node.is_published),
            "by_type": {node_type.value: kinds.get(node_type.value, 0) for node_type in NodeType},
            "mutations": len(self._log),
        }
