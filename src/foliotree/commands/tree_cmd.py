"""
foliotree.commands.tree_cmd - Print the content tree.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from foliotree.graph.service import SCOPE_ADMIN, TreeListing


def format_tree(listing: TreeListing) -> str:
    """Render a listing as an indented outline with full paths."""
    lines = []
    for row in listing.rows:
        node = row.node
        marker = "" if node.is_published else " (draft)"
        lines.append(
            f"{'  ' * row.depth}{node.title} [{node.node_type.value}] /{row.full_path}{marker}"
        )
    return "\n".join(lines)


def run(args: argparse.Namespace) -> int:
    """Run the tree command."""
    from foliotree.graph.factory import build_service

    service = build_service(config_path=getattr(args, "config", None))
    result = asyncio.run(
        service.list_tree(
            scope=SCOPE_ADMIN,
            include_unpublished=getattr(args, "include_unpublished", False),
            max_depth=getattr(args, "max_depth", None),
            root_id=getattr(args, "root", None),
        )
    )
    if not result.ok:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1

    listing = result.unwrap()
    if getattr(args, "json", False):
        print(json.dumps(listing.to_dict(), indent=2))
    elif not listing.rows:
        print("(empty tree)")
    else:
        print(format_tree(listing))
    return 0
