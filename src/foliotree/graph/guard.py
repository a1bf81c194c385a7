"""InvariantGuard - Gatekeeper for every content tree mutation.

The guard reads current state from the NodeStore and answers whether a
proposed change keeps the tree valid. It never writes and never repairs:
a violation is reported as a failed ``Result``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from foliotree.graph.ContentNode import NodeType
from foliotree.graph.errors import ErrorCode, Result
from foliotree.graph.index import NodeIndex
from foliotree.graph.serialize import parse_flag
from foliotree.store.base import NodeStore
from foliotree.utilities.slugify import ensure_slug

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidatedCreate:
    """Create input that passed every check, ready to insert.

    ``order_index`` is None when the caller left placement to the
    ordering engine.
    """

    title: str
    node_type: NodeType
    parent_id: str | None = None
    slug: str | None = None
    ref_id: str | None = None
    order_index: int | None = None
    icon: str | None = None
    description: str | None = None
    is_published: bool = True
    meta: Mapping[str, Any] | None = None

    def to_fields(self, order_index: int) -> dict[str, Any]:
        """Return insert fields with the final ``order_index``."""
        return {
            "title": self.title,
            "node_type": self.node_type,
            "parent_id": self.parent_id,
            "slug": self.slug,
            "ref_id": self.ref_id,
            "order_index": order_index,
            "icon": self.icon,
            "description": self.description,
            "is_published": self.is_published,
            "meta": dict(self.meta or {}),
        }


def clean_optional(value: Any) -> str | None:
    """Trim a text field, mapping empty strings to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def clean_slug(value: Any) -> str | None:
    """Trim a slug and the slashes around it, mapping empty strings to None.

    Raises:
        ValueError: If a slash remains inside the slug.
    """
    text = clean_optional(value)
    if text is None:
        return None
    slug = text.strip("/").strip()
    if "/" in slug:
        raise ValueError(f"slug must be a single path segment: {text!r}")
    return slug or None


def parse_order_index(value: Any) -> int | None:
    """Parse an order index, accepting ints and integral strings/floats.

    Raises:
        ValueError: If the value is not an integer.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"not an integer: {value!r}")
        return int(value)
    return int(str(value).strip())


class InvariantGuard:
    """Validate create, reparent, retype and delete requests.

    Args:
        store: NodeStore to read current state from.
    """

    def __init__(self, store: NodeStore) -> None:
        self._store = store

    async def _check_parent(self, parent_id: str) -> Result[None]:
        parent = await self._store.get_node(parent_id)
        if parent is None:
            return Result.failure(
                ErrorCode.PARENT_NOT_FOUND, f"Parent '{parent_id}' does not exist", parent_id
            )
        if not parent.node_type.can_contain:
            return Result.failure(
                ErrorCode.PARENT_MUST_BE_FOLDER,
                f"Parent '{parent_id}' is a {parent.node_type.value}, not a folder",
                parent_id,
            )
        return Result.success()

    async def validate_create(self, payload: Mapping[str, Any]) -> Result[ValidatedCreate]:
        """Validate a create request.

        Args:
            payload: Canonical create fields (see ``serialize.normalize_payload``).

        Returns:
            Result holding the ValidatedCreate, or the first violation found.
        """
        title = clean_optional(payload.get("title"))
        if title is None:
            return Result.failure(ErrorCode.TITLE_REQUIRED, "Title is required")

        raw_type = payload.get("node_type")
        if raw_type is None or raw_type == "":
            node_type = NodeType.FOLDER
        else:
            parsed = NodeType.parse(raw_type)
            if parsed is None:
                return Result.failure(
                    ErrorCode.NODE_TYPE_INVALID, f"Unknown node type {raw_type!r}"
                )
            node_type = parsed

        ref_id = clean_optional(payload.get("ref_id"))
        if node_type.requires_ref and ref_id is None:
            return Result.failure(
                ErrorCode.REF_REQUIRED, f"A {node_type.value} node must reference a {node_type.value}"
            )

        parent_id = clean_optional(payload.get("parent_id"))
        if parent_id is not None:
            parent_check = await self._check_parent(parent_id)
            if not parent_check.ok:
                return Result(error=parent_check.error)

        try:
            order_index = parse_order_index(payload.get("order_index"))
        except ValueError:
            return Result.failure(
                ErrorCode.ORDER_INDEX_INVALID,
                f"order_index must be an integer, got {payload.get('order_index')!r}",
            )

        try:
            slug = clean_slug(payload.get("slug"))
        except ValueError:
            return Result.failure(
                ErrorCode.SLUG_INVALID,
                f"slug must not contain '/', got {payload.get('slug')!r}",
            )
        if slug is None and node_type.requires_ref:
            slug = ensure_slug(title)

        published = payload.get("is_published")
        try:
            is_published = True if published is None else parse_flag(published)
        except ValueError:
            return Result.failure(
                ErrorCode.PUBLISHED_INVALID,
                f"is_published must be a boolean, got {published!r}",
            )

        meta = payload.get("meta")
        return Result.success(
            ValidatedCreate(
                title=title,
                node_type=node_type,
                parent_id=parent_id,
                slug=slug,
                ref_id=ref_id,
                order_index=order_index,
                icon=clean_optional(payload.get("icon")),
                description=payload.get("description"),
                is_published=is_published,
                meta=dict(meta) if isinstance(meta, Mapping) else None,
            )
        )

    async def validate_reparent(self, node_id: str, next_parent_id: str | None) -> Result[None]:
        """Check that ``node_id`` may move under ``next_parent_id``.

        The ancestor walk runs over one snapshot of the node set, so it
        is bounded by the node count. A cycle already present in stored
        data above the target makes the move unsafe and fails closed.
        """
        node = await self._store.get_node(node_id)
        if node is None:
            return Result.failure(ErrorCode.NOT_FOUND, f"Node '{node_id}' not found", node_id)
        if next_parent_id is None:
            return Result.success()
        if next_parent_id == node_id:
            return Result.failure(
                ErrorCode.PARENT_CANNOT_BE_SELF, "A node cannot be its own parent", node_id
            )

        parent_check = await self._check_parent(next_parent_id)
        if not parent_check.ok:
            return Result(error=parent_check.error)

        index = NodeIndex(await self._store.list_nodes())
        if index.would_create_cycle(node_id, next_parent_id):
            logger.debug("Refusing move of %s under its descendant %s", node_id, next_parent_id)
            return Result.failure(
                ErrorCode.PARENT_CANNOT_BE_DESCENDANT,
                f"'{next_parent_id}' is inside the subtree of '{node_id}'",
                node_id,
            )
        return Result.success()

    async def validate_retype(
        self, node_id: str, next_type: NodeType, effective_ref_id: str | None
    ) -> Result[None]:
        """Check that ``node_id`` may become ``next_type``.

        ``effective_ref_id`` is the reference the node will carry after
        the change (the new one if supplied, else the current one).
        """
        if next_type.requires_ref and not clean_optional(effective_ref_id):
            return Result.failure(
                ErrorCode.REF_REQUIRED,
                f"A {next_type.value} node must reference a {next_type.value}",
                node_id,
            )
        node = await self._store.get_node(node_id)
        if node is None:
            return Result.failure(ErrorCode.NOT_FOUND, f"Node '{node_id}' not found", node_id)
        if node.node_type.can_contain and not next_type.can_contain:
            if await self._store.count_children(node_id) > 0:
                return Result.failure(
                    ErrorCode.HAS_CHILDREN,
                    f"Folder '{node_id}' still has children and must stay a folder",
                    node_id,
                )
        return Result.success()

    async def validate_delete(self, node_id: str) -> Result[None]:
        """Check that ``node_id`` has no children."""
        count = await self._store.count_children(node_id)
        if count > 0:
            return Result.failure(
                ErrorCode.HAS_CHILDREN,
                f"Node '{node_id}' has {count} child node(s); move or delete them first",
                node_id,
            )
        return Result.success()
