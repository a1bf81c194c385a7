"""
foliotree.commands - CLI command implementations
"""

__all__ = [
    "health",
    "serve_cmd",
    "sitemap_cmd",
    "tree_cmd",
]
