"""
foliotree.commands.serve_cmd - Run the REST API server.
"""

from __future__ import annotations

import argparse
import logging

logger = logging.getLogger(__name__)


def run(args: argparse.Namespace) -> int:
    """Start the Flask development server for the content tree API."""
    from foliotree.config import get_config
    from foliotree.graph.factory import build_service
    from foliotree.server import create_app

    config_path = getattr(args, "config", None)
    config = get_config(config_path)
    service = build_service(config, config_path=config_path)

    server_config = config.get("server", {})
    host = getattr(args, "host", None) or server_config.get("host", "127.0.0.1")
    port = getattr(args, "port", None) or int(server_config.get("port", 8080))
    backend = config.get("store", {}).get("backend", "memory")

    if not server_config.get("admin_token"):
        logger.warning("server.admin_token is not set; admin routes are open")

    print(
        f"""
======================================
  foliotree API Server
======================================

Store:      {backend}
Server:     http://{host}:{port}

Press Ctrl+C to stop
"""
    )

    app = create_app(service, config)
    try:
        app.run(host=host, port=port, debug=False)
    except KeyboardInterrupt:
        print("\nServer stopped.")

    return 0
