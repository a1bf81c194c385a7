"""Tests for InMemoryNodeStore and row serialization."""

import json

import pytest

from foliotree.graph.ContentNode import NodeType
from foliotree.graph.errors import StoreError
from foliotree.graph.serialize import node_from_row, node_to_dict, normalize_payload, parse_flag
from foliotree.store import InMemoryNodeStore, NodeFilter, NodeStore
from tests.core.tree_test_helpers import make_row, portfolio_store


class TestSerialize:
    def test_normalize_payload_aliases(self):
        fields = normalize_payload(
            {"name": "X", "nodeType": "blog", "parentId": None, "itemId": "b1", "sortOrder": 2}
        )
        assert fields == {
            "title": "X",
            "node_type": "blog",
            "parent_id": None,
            "ref_id": "b1",
            "order_index": 2,
        }

    def test_canonical_spelling_wins(self):
        fields = normalize_payload({"title": "Canonical", "name": "Alias"})
        assert fields["title"] == "Canonical"

    def test_absent_keys_not_returned(self):
        assert normalize_payload({"icon": "star"}) == {"icon": "star"}

    def test_node_from_row_defaults(self):
        node = node_from_row({"id": 7, "title": " Home "})
        assert node.id == "7"
        assert node.node_type is NodeType.FOLDER
        assert node.title == "Home"
        assert node.is_published is True
        assert node.parent_id is None

    def test_node_from_row_rejects(self):
        with pytest.raises(ValueError, match="no id"):
            node_from_row({"title": "x"})
        with pytest.raises(ValueError, match="unknown node type"):
            node_from_row({"id": "a", "type": "gallery"})

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(True, True), (0, False), ("false", False), (" TRUE ", True), ("0", False), ("1", True)],
    )
    def test_parse_flag(self, value, expected):
        assert parse_flag(value) is expected

    @pytest.mark.parametrize("value", ["yes", "", 2, None, 0.0])
    def test_parse_flag_rejects(self, value):
        with pytest.raises(ValueError, match="not a boolean"):
            parse_flag(value)

    def test_node_from_row_published_text(self):
        assert node_from_row({"id": "a", "is_published": "false"}).is_published is False
        with pytest.raises(ValueError, match="not a boolean"):
            node_from_row({"id": "a", "is_published": "draft"})

    def test_node_to_dict_extras(self):
        node = node_from_row(make_row("a"))
        data = node_to_dict(node, full_path="a", depth=0, has_children=False)
        assert data["node_type"] == "folder"
        assert data["full_path"] == "a"
        assert data["created_at"] == "2024-05-01T12:00:00Z"


class TestInMemoryNodeStore:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryNodeStore(), NodeStore)

    @pytest.mark.asyncio
    async def test_list_order(self):
        store = portfolio_store()
        ids = [n.id for n in await store.list_nodes()]
        assert ids[:4] == ["work", "writing", "about", "draft"]

    @pytest.mark.asyncio
    async def test_filters(self):
        store = portfolio_store()
        children = await store.list_nodes(NodeFilter.children_of("work"))
        assert [n.id for n in children] == ["web", "process"]
        published = await store.list_nodes(NodeFilter.published())
        assert "draft" not in {n.id for n in published}
        refs = await store.list_nodes(NodeFilter.referencing("b-1"))
        assert [n.id for n in refs] == ["hello"]

    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_timestamps(self):
        store = InMemoryNodeStore()
        node = await store.insert_node({"title": "A", "node_type": NodeType.SECTION})
        assert node.id
        assert node.created_at is not None
        assert node.created_at == node.updated_at
        assert node.node_type is NodeType.SECTION

    @pytest.mark.asyncio
    async def test_returned_nodes_are_copies(self):
        store = portfolio_store()
        node = await store.get_node("work")
        node.meta["x"] = 1
        assert (await store.get_node("work")).meta == {}

    @pytest.mark.asyncio
    async def test_update(self):
        store = portfolio_store()
        updated = await store.update_node("about", {"title": "About"})
        assert updated.title == "About"
        assert updated.updated_at > updated.created_at
        assert await store.update_node("ghost", {"title": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete_and_count(self):
        store = portfolio_store()
        assert await store.count_children("work") == 2
        assert await store.delete_node("about") is True
        assert await store.delete_node("about") is False

    @pytest.mark.asyncio
    async def test_replace_nodes_is_all_or_nothing(self):
        store = portfolio_store()
        work = await store.get_node("work")
        with pytest.raises(StoreError, match="ghost"):
            await store.replace_nodes(
                [work.evolve(order_index=9), node_from_row(make_row("ghost"))]
            )
        assert (await store.get_node("work")).order_index == 0

    def test_from_json_file(self, tmp_path):
        seed = tmp_path / "nodes.json"
        seed.write_text(json.dumps([make_row("a"), make_row("b", parent_id="a")]))
        store = InMemoryNodeStore.from_json_file(seed)
        assert len(store) == 2

    def test_from_json_file_errors(self, tmp_path):
        with pytest.raises(StoreError):
            InMemoryNodeStore.from_json_file(tmp_path / "missing.json")
        bad = tmp_path / "bad.json"
        bad.write_text('{"id": "a"}')
        with pytest.raises(StoreError, match="JSON array"):
            InMemoryNodeStore.from_json_file(bad)
