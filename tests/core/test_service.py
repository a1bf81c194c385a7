"""Tests for ContentTreeService operations."""

import pytest

from foliotree.graph.ContentNode import NodeType
from foliotree.graph.errors import ErrorCode, StoreError
from foliotree.graph.paths import PathResolver
from foliotree.graph.service import SCOPE_ADMIN, SCOPE_PUBLIC, ContentTreeService, clamp_depth
from foliotree.store.memory import InMemoryNodeStore
from tests.core.tree_test_helpers import make_row


async def _path(service, node_id):
    return PathResolver(await service.list_nodes()).full_path(node_id)


class TestCreateNode:
    @pytest.mark.asyncio
    async def test_appends_after_siblings(self, service):
        result = await service.create_node({"title": "Contact", "nodeType": "section"})
        assert result.ok
        node = result.value
        assert node.parent_id is None
        assert node.order_index == 4  # after draft (3)
        assert node.id

    @pytest.mark.asyncio
    async def test_explicit_order_index(self, service):
        result = await service.create_node({"title": "Top", "orderIndex": "-1"})
        assert result.value.order_index == -1

    @pytest.mark.asyncio
    async def test_camel_case_aliases(self, service):
        result = await service.create_node(
            {"title": "Api", "nodeType": "project", "parentId": "web", "refId": "p-api"}
        )
        assert result.ok
        assert result.value.parent_id == "web"
        assert result.value.ref_id == "p-api"
        assert result.value.slug == "api"

    @pytest.mark.asyncio
    async def test_insertion_order_scenario(self, empty_service):
        """Folders B, A, C created in order keep insertion order."""
        for title in ("B", "A", "C"):
            assert (await empty_service.create_node({"title": title})).ok
        roots = await empty_service.list_nodes(None)
        assert [(n.title, n.order_index) for n in roots] == [("B", 0), ("A", 1), ("C", 2)]

    @pytest.mark.asyncio
    async def test_shared_index_falls_back_to_title(self, empty_service):
        await empty_service.create_node({"title": "B", "order_index": 0})
        await empty_service.create_node({"title": "A", "order_index": 0})
        listing = (await empty_service.list_tree()).value
        assert [row.node.title for row in listing.rows] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_refusal_writes_nothing(self, service):
        before = len(await service.list_nodes())
        result = await service.create_node({"title": "X", "parent_id": "about"})
        assert result.error.code is ErrorCode.PARENT_MUST_BE_FOLDER
        assert len(await service.list_nodes()) == before
        assert len(service.mutation_log) == 0

    @pytest.mark.asyncio
    async def test_records_mutation(self, service):
        result = await service.create_node({"title": "New"})
        entry = service.mutation_log.latest()
        assert entry.operation == "create_node"
        assert entry.target_id == result.value.id
        assert entry.before_state == {}


class TestMoveNode:
    @pytest.mark.asyncio
    async def test_path_scenario(self, empty_service):
        """Moving a project to root changes its path from work/demo to demo."""
        folder = (await empty_service.create_node({"title": "Work", "slug": "work"})).value
        project = (
            await empty_service.create_node(
                {
                    "title": "Demo",
                    "node_type": "project",
                    "slug": "demo",
                    "parent_id": folder.id,
                    "ref_id": "p1",
                }
            )
        ).value
        assert await _path(empty_service, project.id) == "work/demo"

        moved = await empty_service.move_node(project.id, None)
        assert moved.ok
        assert await _path(empty_service, project.id) == "demo"

    @pytest.mark.asyncio
    async def test_descendant_scenario(self, empty_service):
        f1 = (await empty_service.create_node({"title": "F1"})).value
        f2 = (await empty_service.create_node({"title": "F2", "parent_id": f1.id})).value
        result = await empty_service.move_node(f1.id, f2.id)
        assert result.error.code is ErrorCode.PARENT_CANNOT_BE_DESCENDANT

    @pytest.mark.asyncio
    async def test_appends_in_new_group(self, service):
        result = await service.move_node("about", "writing")
        assert result.ok
        assert result.value.parent_id == "writing"
        assert result.value.order_index == 1  # after hello (0)

    @pytest.mark.asyncio
    async def test_same_parent_is_noop(self, service):
        result = await service.move_node("process", "work")
        assert result.ok
        assert result.value.order_index == 1
        assert len(service.mutation_log) == 0

    @pytest.mark.asyncio
    async def test_non_folder_parent_leaves_tree_unchanged(self, service):
        before = await service.list_nodes()
        result = await service.move_node("about", "shop")
        assert result.error.code is ErrorCode.PARENT_MUST_BE_FOLDER
        assert await service.list_nodes() == before

    @pytest.mark.asyncio
    async def test_missing_node(self, service):
        result = await service.move_node("ghost", None)
        assert result.error.code is ErrorCode.NOT_FOUND


class TestRenameRetypeRelink:
    @pytest.mark.asyncio
    async def test_rename(self, service):
        result = await service.rename_node("about", "  About Us ")
        assert result.value.title == "About Us"
        assert result.value.updated_at > (await service.store.get_node("work")).updated_at

    @pytest.mark.asyncio
    async def test_rename_blank(self, service):
        result = await service.rename_node("about", "")
        assert result.error.code is ErrorCode.TITLE_REQUIRED

    @pytest.mark.asyncio
    async def test_retype_to_project_requires_ref(self, service):
        result = await service.retype_node("about", "project")
        assert result.error.code is ErrorCode.REF_REQUIRED

    @pytest.mark.asyncio
    async def test_retype_with_ref(self, service):
        result = await service.retype_node("process", NodeType.BLOG, ref_id="b-9")
        assert result.ok
        assert result.value.node_type is NodeType.BLOG
        assert result.value.ref_id == "b-9"
        assert result.value.slug == "process"

    @pytest.mark.asyncio
    async def test_retype_keeps_existing_ref(self, service):
        result = await service.retype_node("shop", "blog")
        assert result.ok
        assert result.value.ref_id == "p-shop"

    @pytest.mark.asyncio
    async def test_retype_folder_with_children(self, service):
        result = await service.retype_node("writing", "section")
        assert result.error.code is ErrorCode.HAS_CHILDREN

    @pytest.mark.asyncio
    async def test_retype_unknown_type(self, service):
        result = await service.retype_node("about", "gallery")
        assert result.error.code is ErrorCode.NODE_TYPE_INVALID

    @pytest.mark.asyncio
    async def test_relink(self, service):
        result = await service.relink_node("shop", "p-new")
        assert result.value.ref_id == "p-new"

    @pytest.mark.asyncio
    async def test_relink_cannot_clear_required_ref(self, service):
        result = await service.relink_node("shop", None)
        assert result.error.code is ErrorCode.REF_REQUIRED


class TestUpdateNode:
    @pytest.mark.asyncio
    async def test_combined_patch(self, service):
        result = await service.update_node(
            "about",
            {"title": "About", "parentId": "work", "isPublished": False, "icon": "user"},
        )
        assert result.ok
        node = result.value
        assert (node.title, node.parent_id, node.is_published, node.icon) == (
            "About",
            "work",
            False,
            "user",
        )
        assert node.order_index == 2
        assert len(service.mutation_log) == 1

    @pytest.mark.asyncio
    async def test_no_fields(self, service):
        result = await service.update_node("about", {"unknown": 1})
        assert result.error.code is ErrorCode.NO_FIELDS_TO_UPDATE

    @pytest.mark.asyncio
    async def test_all_checks_before_write(self, service):
        """A bad field refuses the whole patch."""
        result = await service.update_node("about", {"title": "Renamed", "parent_id": "shop"})
        assert result.error.code is ErrorCode.PARENT_MUST_BE_FOLDER
        assert (await service.store.get_node("about")).title == "About Me"

    @pytest.mark.asyncio
    async def test_invalid_order_index(self, service):
        result = await service.update_node("about", {"order_index": "soon"})
        assert result.error.code is ErrorCode.ORDER_INDEX_INVALID

    @pytest.mark.asyncio
    @pytest.mark.asyncio
    async def test_published_from_text(self, service):
        result = await service.update_node("about", {"isPublished": "false"})
        assert result.value.is_published is False
        listed = await service.list_tree()
        assert "about" not in [row.node.id for row in listed.value.rows]

    @pytest.mark.asyncio
    async def test_published_invalid(self, service):
        result = await service.update_node("about", {"isPublished": "maybe"})
        assert result.error.code is ErrorCode.PUBLISHED_INVALID
        assert (await service.store.get_node("about")).is_published is True

    @pytest.mark.asyncio
    async def test_slug_with_inner_slash(self, service):
        result = await service.update_node("about", {"slug": "about/me"})
        assert result.error.code is ErrorCode.SLUG_INVALID
        assert (await service.store.get_node("about")).slug == "about"

    @pytest.mark.asyncio
    async def test_slug_trimmed(self, service):
        result = await service.update_node("about", {"slug": " /me/ "})
        assert result.value.slug == "me"

    @pytest.mark.asyncio
    async def test_retype_via_patch_needs_ref(self, service):
        result = await service.update_node("about", {"nodeType": "blog"})
        assert result.error.code is ErrorCode.REF_REQUIRED

    @pytest.mark.asyncio
    async def test_missing_node(self, service):
        result = await service.update_node("ghost", {"title": "x"})
        assert result.error.code is ErrorCode.NOT_FOUND


class TestDeleteNode:
    @pytest.mark.asyncio
    async def test_has_children(self, service):
        result = await service.delete_node("work")
        assert result.error.code is ErrorCode.HAS_CHILDREN

    @pytest.mark.asyncio
    async def test_delete_then_not_found(self, service):
        first = await service.delete_node("about")
        assert first.ok
        assert first.value.id == "about"
        second = await service.delete_node("about")
        assert second.error.code is ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_remove_nodes_for_ref(self, service):
        cleanup = await service.remove_nodes_for_ref("p-shop")
        assert cleanup.removed == ["shop"]
        assert cleanup.skipped == []
        assert (await service.get_node("shop")).error.code is ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_remove_for_ref_skips_failures(self):
        class FailingDeleteStore(InMemoryNodeStore):
            async def delete_node(self, node_id):
                raise StoreError("connection reset")

        store = FailingDeleteStore([make_row("p", node_type="project", ref_id="r1")])
        cleanup = await ContentTreeService(store).remove_nodes_for_ref("r1")
        assert cleanup.removed == []
        assert [error.code for error in cleanup.skipped] == [ErrorCode.STORE_ERROR]


class TestReorderNode:
    @pytest.mark.asyncio
    async def test_reorder_records_mutation(self, service):
        result = await service.reorder_node("process", "up")
        assert [n.id for n in result.value] == ["process", "web"]
        assert service.mutation_log.latest().operation == "reorder_node"

    @pytest.mark.asyncio
    async def test_edge_noop_not_recorded(self, service):
        result = await service.reorder_node("web", "up")
        assert result.value == ()
        assert len(service.mutation_log) == 0

    @pytest.mark.asyncio
    async def test_store_error_propagates(self):
        class BrokenStore(InMemoryNodeStore):
            async def replace_nodes(self, nodes):
                raise StoreError("timeout")

        store = BrokenStore([make_row("a", order_index=0), make_row("b", order_index=1)])
        with pytest.raises(StoreError):
            await ContentTreeService(store).reorder_node("b", "up")


class TestListTree:
    @pytest.mark.asyncio
    async def test_public_hides_unpublished(self, service):
        listing = (await service.list_tree(scope=SCOPE_PUBLIC, include_unpublished=True)).value
        assert "draft" not in [row.node.id for row in listing.rows]
        assert listing.include_unpublished is False

    @pytest.mark.asyncio
    async def test_admin_can_include_unpublished(self, service):
        listing = (await service.list_tree(scope=SCOPE_ADMIN, include_unpublished=True)).value
        assert "draft" in [row.node.id for row in listing.rows]

    @pytest.mark.asyncio
    async def test_rows_carry_paths_and_depths(self, service):
        listing = (await service.list_tree()).value
        rows = {row.node.id: row for row in listing.rows}
        assert rows["shop"].full_path == "work/web/shop"
        assert rows["shop"].depth == 2
        assert rows["work"].has_children
        assert not rows["about"].has_children

    @pytest.mark.asyncio
    async def test_max_depth(self, service):
        listing = (await service.list_tree(max_depth="2")).value
        assert max(row.depth for row in listing.rows) == 1
        assert listing.max_depth == 2

    @pytest.mark.asyncio
    async def test_root_id_keeps_full_paths(self, service):
        listing = (await service.list_tree(root_id="web")).value
        assert [(row.node.id, row.full_path, row.depth) for row in listing.rows] == [
            ("web", "work/web", 0),
            ("shop", "work/web/shop", 1),
        ]

    @pytest.mark.asyncio
    async def test_unknown_root(self, service):
        result = await service.list_tree(root_id="ghost")
        assert result.error.code is ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_unpublished_parent_promotes_children(self):
        store = InMemoryNodeStore(
            [
                make_row("hidden", slug="hidden", is_published=False),
                make_row("s", node_type="section", slug="s", parent_id="hidden"),
            ]
        )
        listing = (await ContentTreeService(store).list_tree(scope=SCOPE_PUBLIC)).value
        assert [(row.node.id, row.depth, row.full_path) for row in listing.rows] == [
            ("s", 0, "s")
        ]

    def test_clamp_depth(self):
        assert clamp_depth("3", 25) == 3
        assert clamp_depth(0, 25) == 1
        assert clamp_depth(999, 25) == 25
        assert clamp_depth("deep", 25) == 25


class TestSitemap:
    @pytest.mark.asyncio
    async def test_build_sitemap(self, service):
        report = await service.build_sitemap("https://me.dev")
        paths = [entry.path for entry in report.entries]
        assert paths == ["/", "/about", "/blog/hello-world", "/project/shop", "/work/process"]
        assert report.counts["sections"] == 2
        assert report.counts["total"] == 5

    @pytest.mark.asyncio
    async def test_project_pages(self, service):
        report = await service.build_sitemap("https://me.dev")
        shop = next(entry for entry in report.entries if entry.path == "/project/shop")
        assert (shop.change_frequency, shop.priority) == ("monthly", 0.6)
        assert report.counts["projects"] == 1

    @pytest.mark.asyncio
    async def test_blog_pages(self, service):
        report = await service.build_sitemap("https://me.dev")
        hello = next(entry for entry in report.entries if entry.path == "/blog/hello-world")
        assert (hello.change_frequency, hello.priority) == ("weekly", 0.7)
        assert report.counts["blogs"] == 1

    @pytest.mark.asyncio
    async def test_item_overrides(self):
        store = InMemoryNodeStore(
            [
                make_row(
                    "p",
                    node_type="project",
                    slug="kiln",
                    ref_id="p-1",
                    meta={"sitemap": {"priority": 0.9, "changefreq": "daily"}},
                ),
                make_row(
                    "b",
                    node_type="blog",
                    slug="notes",
                    ref_id="b-1",
                    meta={"sitemap": {"exclude": True}},
                ),
                make_row("q", node_type="blog", slug="quiet", ref_id="b-2", is_published=False),
            ]
        )
        report = await ContentTreeService(store).build_sitemap("https://me.dev")
        kiln = next(entry for entry in report.entries if entry.path == "/project/kiln")
        assert (kiln.change_frequency, kiln.priority) == ("daily", 0.9)
        assert [entry.path for entry in report.entries] == ["/", "/project/kiln"]
        assert report.counts["blogs"] == 0

    @pytest.mark.asyncio
    async def test_include_unpublished(self, service):
        report = await service.build_sitemap("https://me.dev", include_unpublished=True)
        assert "/draft-page" in [entry.path for entry in report.entries]

    @pytest.mark.asyncio
    async def test_report_dict_and_xml(self, service):
        report = await service.build_sitemap("https://me.dev/")
        data = report.to_dict()
        assert data["urls"][0]["loc"] == "https://me.dev"
        assert "<loc>https://me.dev/work/process</loc>" in report.to_xml()

    @pytest.mark.asyncio
    async def test_generate_entries_is_pure(self, service):
        nodes = await service.list_nodes()
        entries = service.generate_sitemap_entries(nodes)
        assert [entry.path for entry in entries] == ["/about", "/draft-page", "/work/process"]
        assert await service.list_nodes() == nodes


class TestSummary:
    @pytest.mark.asyncio
    async def test_counts(self, service):
        summary = await service.summary()
        assert summary["total"] == 8
        assert summary["published"] == 7
        assert summary["by_type"] == {"folder": 3, "section": 3, "project": 1, "blog": 1}
