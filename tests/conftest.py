"""Shared pytest fixtures."""

import pytest


@pytest.fixture
def empty_store():
    """An empty in-memory store."""
    from foliotree.store import InMemoryNodeStore

    return InMemoryNodeStore()


@pytest.fixture
def store():
    """An in-memory store seeded with the portfolio fixture tree."""
    from tests.core.tree_test_helpers import portfolio_store

    return portfolio_store()


@pytest.fixture
def service(store):
    """A ContentTreeService over the portfolio store."""
    from foliotree.graph.service import ContentTreeService

    return ContentTreeService(store)


@pytest.fixture
def empty_service(empty_store):
    """A ContentTreeService over an empty store."""
    from foliotree.graph.service import ContentTreeService

    return ContentTreeService(empty_store)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove FOLIOTREE_* variables so config tests see only what they set."""
    import os

    for key in list(os.environ):
        if key.startswith("FOLIOTREE_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch
