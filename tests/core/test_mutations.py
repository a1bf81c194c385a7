"""Tests for MutationEntry and MutationLog."""

from foliotree.graph.mutations import MutationEntry, MutationLog


def _entry(operation="rename_node", target="n1", before=None, after=None):
    return MutationEntry(
        operation=operation,
        target_id=target,
        before_state=before or {"title": "Old"},
        after_state=after or {"title": "New"},
    )


class TestMutationEntry:
    def test_generates_id_and_timestamp(self):
        entry = _entry()
        assert len(entry.id) == 32
        assert entry.timestamp.tzinfo is not None

    def test_ids_unique(self):
        assert _entry().id != _entry().id

    def test_to_dict(self):
        data = _entry().to_dict()
        assert data["operation"] == "rename_node"
        assert data["target_id"] == "n1"
        assert data["before"] == {"title": "Old"}
        assert data["after"] == {"title": "New"}
        assert data["timestamp"].endswith("Z")


class TestMutationLog:
    def test_append_and_iterate(self):
        log = MutationLog()
        first, second = _entry(target="a"), _entry(target="b")
        log.append(first)
        log.append(second)
        assert len(log) == 2
        assert list(log) == [first, second]
        assert log.latest() is second

    def test_empty_latest(self):
        assert MutationLog().latest() is None

    def test_bounded(self):
        log = MutationLog(max_entries=3)
        for i in range(5):
            log.append(_entry(target=f"n{i}"))
        assert len(log) == 3
        assert [e.target_id for e in log] == ["n2", "n3", "n4"]

    def test_get_by_id(self):
        log = MutationLog()
        entry = _entry()
        log.append(entry)
        assert log.get(entry.id) is entry
        assert log.get("missing") is None

    def test_for_node(self):
        log = MutationLog()
        log.append(_entry(target="a"))
        log.append(_entry(target="b"))
        log.append(_entry(operation="move_node", target="a"))
        assert [e.operation for e in log.for_node("a")] == ["rename_node", "move_node"]

    def test_recent_newest_first(self):
        log = MutationLog()
        for i in range(4):
            log.append(_entry(target=f"n{i}"))
        assert [e.target_id for e in log.recent(2)] == ["n3", "n2"]
