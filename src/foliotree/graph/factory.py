"""Service Factory - Shared entry point for building a ContentTreeService.

Commands and the server use this instead of wiring stores themselves, so
every entry point reads the ``[store]`` and ``[tree]`` config the same way.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from foliotree.config import get_config
from foliotree.graph.service import DEFAULT_MAX_DEPTH, ContentTreeService
from foliotree.store import InMemoryNodeStore, NodeStore, PostgrestNodeStore

logger = logging.getLogger(__name__)


def build_store(config: dict[str, Any], base_dir: Path | None = None) -> NodeStore:
    """Create the NodeStore named by ``config["store"]["backend"]``.

    Args:
        config: Full configuration dict.
        base_dir: Directory relative seed file paths resolve against.

    Returns:
        A ready NodeStore.

    Raises:
        ValueError: If the backend is unknown or misconfigured.
    """
    store_config = config.get("store", {})
    backend = str(store_config.get("backend", "memory")).lower()

    if backend == "memory":
        seed_file = store_config.get("seed_file") or ""
        if not seed_file:
            return InMemoryNodeStore()
        seed_path = Path(seed_file)
        if not seed_path.is_absolute() and base_dir is not None:
            seed_path = base_dir / seed_path
        logger.info("Seeding in-memory store from %s", seed_path)
        return InMemoryNodeStore.from_json_file(seed_path)

    if backend == "postgrest":
        url = store_config.get("url") or ""
        if not url:
            raise ValueError("store.url is required for the postgrest backend")
        return PostgrestNodeStore(
            url=url,
            key=str(store_config.get("key") or ""),
            table=store_config.get("table") or "content_nodes",
            timeout=float(store_config.get("timeout") or 10.0),
        )

    raise ValueError(f"Unknown store backend: {backend!r} (expected 'memory' or 'postgrest')")


def build_service(
    config: dict[str, Any] | None = None,
    config_path: Path | None = None,
    store: NodeStore | None = None,
) -> ContentTreeService:
    """Build a ContentTreeService from configuration.

    Args:
        config: Configuration dict. Loaded via ``get_config`` when None.
        config_path: Explicit config file used when ``config`` is None.
        store: Use this store instead of the configured backend.

    Returns:
        The service.
    """
    if config is None:
        config = get_config(config_path)
    base_dir = Path(config_path).parent if config_path else Path.cwd()
    if store is None:
        store = build_store(config, base_dir=base_dir)
    max_depth = int(config.get("tree", {}).get("max_depth", DEFAULT_MAX_DEPTH))
    return ContentTreeService(store, max_depth=max_depth)
