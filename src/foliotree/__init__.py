"""
foliotree - Content tree service for a portfolio admin console

foliotree keeps the hierarchy of folders, sections, projects and blogs
that backs a portfolio site. It enforces the structural rules of the
tree (single parent, no cycles, folder-only containment, reference
requirements), keeps sibling order, and projects the tree into URL
paths and a public sitemap.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("foliotree")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"  # Not installed
__license__ = "MIT"

from foliotree.graph import ContentNode, ContentTreeService, NodeType

__all__ = [
    "__version__",
    "ContentNode",
    "ContentTreeService",
    "NodeType",
]
