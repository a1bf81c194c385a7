"""Boundary mapping between wire/store dicts and ContentNode.

Rows and request payloads arrive with mixed key spellings (snake_case,
camelCase, legacy names). This module is the single place where those
aliases are folded into the canonical field names; nothing past it sees
the alternative spellings.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from foliotree.graph.ContentNode import ContentNode, NodeType
from foliotree.utilities.timestamps import format_timestamp, parse_timestamp

# Canonical field -> accepted spellings, in priority order
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "node_id", "nodeId", "uuid"),
    "title": ("title", "name", "label"),
    "node_type": ("node_type", "nodeType", "type"),
    "parent_id": ("parent_id", "parentId"),
    "slug": ("slug",),
    "ref_id": ("ref_id", "refId", "item_id", "itemId"),
    "order_index": ("order_index", "orderIndex", "order", "sort_order", "sortOrder"),
    "icon": ("icon",),
    "description": ("description",),
    "is_published": ("is_published", "isPublished", "published"),
    "meta": ("meta",),
    "created_at": ("created_at", "createdAt"),
    "updated_at": ("updated_at", "updatedAt"),
}

# Fields a caller may write; id and timestamps belong to the store
WRITABLE_FIELDS = (
    "title",
    "node_type",
    "parent_id",
    "slug",
    "ref_id",
    "order_index",
    "icon",
    "description",
    "is_published",
    "meta",
)


def normalize_payload(
    payload: Mapping[str, Any], fields: tuple[str, ...] = WRITABLE_FIELDS
) -> dict[str, Any]:
    """Fold aliased keys of ``payload`` into canonical field names.

    Only keys that are present are returned, so the result can drive a
    partial update: an explicit ``None`` (e.g. ``parentId: null``) is
    kept and means "clear", an absent key means "leave alone".

    Args:
        payload: Raw request body or row.
        fields: Canonical fields to look for.

    Returns:
        Dict keyed by canonical field names.
    """
    result: dict[str, Any] = {}
    for name in fields:
        for alias in FIELD_ALIASES.get(name, (name,)):
            if alias in payload:
                result[name] = payload[alias]
                break
    return result


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


_FLAG_TEXT = {"true": True, "1": True, "false": False, "0": False}


def parse_flag(value: Any) -> bool:
    """Parse a boolean field from a request body or a stored row.

    Accepts booleans, the integers 0 and 1, and the strings "true",
    "false", "1" and "0" (trimmed, any case).

    Raises:
        ValueError: For any other value.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in _FLAG_TEXT:
        return _FLAG_TEXT[value.strip().lower()]
    raise ValueError(f"not a boolean: {value!r}")


def node_from_row(row: Mapping[str, Any]) -> ContentNode:
    """Build a ContentNode from a stored row.

    Args:
        row: Row dict using any of the accepted key spellings.

    Returns:
        The canonical ContentNode.

    Raises:
        ValueError: If the row has no id, an unknown node type or a
            non-boolean ``is_published``.
    """
    fields = normalize_payload(row, tuple(FIELD_ALIASES))

    node_id = fields.get("id")
    if node_id is None or str(node_id) == "":
        raise ValueError("Row has no id")

    raw_type = fields.get("node_type") or NodeType.FOLDER.value
    node_type = NodeType.parse(raw_type)
    if node_type is None:
        raise ValueError(f"Row {node_id} has unknown node type {raw_type!r}")

    parent_id = fields.get("parent_id")
    order_index = fields.get("order_index")
    meta = fields.get("meta")
    published = fields.get("is_published")

    return ContentNode(
        id=str(node_id),
        node_type=node_type,
        title=str(fields.get("title") or "").strip(),
        parent_id=str(parent_id) if parent_id not in (None, "") else None,
        slug=_clean_text(fields.get("slug")),
        ref_id=_clean_text(fields.get("ref_id")),
        order_index=int(order_index) if order_index is not None else 0,
        icon=_clean_text(fields.get("icon")),
        description=fields.get("description"),
        is_published=True if published is None else parse_flag(published),
        meta=dict(meta) if isinstance(meta, Mapping) else {},
        created_at=parse_timestamp(fields.get("created_at")),
        updated_at=parse_timestamp(fields.get("updated_at")),
    )


def node_to_row(node: ContentNode) -> dict[str, Any]:
    """Serialize a ContentNode to the snake_case row shape of the store."""
    return {
        "id": node.id,
        "parent_id": node.parent_id,
        "node_type": node.node_type.value,
        "title": node.title,
        "slug": node.slug,
        "ref_id": node.ref_id,
        "order_index": node.order_index,
        "icon": node.icon,
        "description": node.description,
        "is_published": node.is_published,
        "meta": dict(node.meta),
        "created_at": format_timestamp(node.created_at),
        "updated_at": format_timestamp(node.updated_at),
    }


def fields_to_row(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Serialize canonical write fields (enum and datetime values) for the store."""
    row: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, NodeType):
            value = value.value
        elif isinstance(value, datetime):
            value = format_timestamp(value)
        row[key] = value
    return row


def node_to_dict(
    node: ContentNode,
    *,
    full_path: str | None = None,
    depth: int | None = None,
    has_children: bool | None = None,
) -> dict[str, Any]:
    """Serialize a ContentNode to a JSON-compatible dict for API responses.

    Args:
        node: The node to serialize.
        full_path: Resolved slug path, when the caller computed one.
        depth: Tree depth (0 for roots), when known.
        has_children: Whether the node has children, when known.

    Returns:
        Dict suitable for JSON serialization.
    """
    result = node_to_row(node)
    if full_path is not None:
        result["full_path"] = full_path
    if depth is not None:
        result["depth"] = depth
    if has_children is not None:
        result["has_children"] = has_children
    return result
