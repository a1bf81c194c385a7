"""foliotree.server - Flask REST API server for the content tree.

Provides a thin REST wrapper over ContentTreeService for the admin
console and the public sitemap generator.
"""

from foliotree.server.app import create_app

__all__ = ["create_app"]
