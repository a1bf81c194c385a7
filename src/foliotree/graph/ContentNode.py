"""ContentNode - Node representation for the portfolio content tree.

This module provides the core data structures of the tree:
- NodeType: Enum of node types
- ContentNode: One persisted row of the tree
- TreeNode: A ContentNode with its resolved children, used for traversal
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterator


class NodeType(Enum):
    """Types of nodes in the content tree."""

    FOLDER = "folder"
    SECTION = "section"
    PROJECT = "project"
    BLOG = "blog"

    @property
    def requires_ref(self) -> bool:
        """True if nodes of this type must reference an external row."""
        return self in (NodeType.PROJECT, NodeType.BLOG)

    @property
    def can_contain(self) -> bool:
        """True if nodes of this type may have children."""
        return self is NodeType.FOLDER

    @classmethod
    def parse(cls, value: str | NodeType | None) -> NodeType | None:
        """Parse a node type from its wire value.

        Args:
            value: A NodeType, or its string value in any letter case.

        Returns:
            The matching NodeType, or None if the value is not recognized.
        """
        if isinstance(value, NodeType):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass
class ContentNode:
    """A single entry in the content tree.

    Attributes:
        id: Opaque unique identifier assigned by the store.
        node_type: Folder, section, project or blog.
        title: Human-readable label, never empty.
        parent_id: ID of the containing folder, or None for a root.
        slug: URL path segment. Optional for folders and sections.
        ref_id: External project/blog row this node points at.
        order_index: Sibling display order; ties break by title.
        is_published: Whether public reads see this node.
        meta: Free-form settings; ``meta["sitemap"]`` holds sitemap overrides.
    """

    id: str
    node_type: NodeType
    title: str
    parent_id: str | None = None
    slug: str | None = None
    ref_id: str | None = None
    order_index: int = 0
    icon: str | None = None
    description: str | None = None
    is_published: bool = True
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_root(self) -> bool:
        """True if this node sits at the top level."""
        return self.parent_id is None

    @property
    def is_folder(self) -> bool:
        return self.node_type is NodeType.FOLDER

    def sort_key(self) -> tuple[int, str]:
        """Sibling ordering key: order_index, then title (case-sensitive)."""
        return (self.order_index, self.title)

    def evolve(self, **changes: Any) -> ContentNode:
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)


def sibling_sort_key(node: ContentNode) -> tuple[int, str]:
    """Key function ordering siblings by (order_index, title)."""
    return node.sort_key()


@dataclass(eq=False)
class TreeNode:
    """A ContentNode placed in a built forest, with its ordered children."""

    node: ContentNode
    children: list[TreeNode] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def iter_children(self) -> Iterator[TreeNode]:
        return iter(self.children)

    def add_child(self, child: TreeNode) -> None:
        self.children.append(child)

    def sort_children(self, key: Callable[[ContentNode], Any] = sibling_sort_key) -> None:
        """Sort direct children by ``key`` applied to their rows."""
        self.children.sort(key=lambda child: key(child.node))

    def walk(self) -> Iterator[TreeNode]:
        """Yield this node and its descendants, parents before children.

        Uses an explicit stack, so chains deeper than the recursion
        limit are fine.
        """
        stack: list[TreeNode] = [self]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))
