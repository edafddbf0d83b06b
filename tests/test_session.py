"""Tests for the editing session."""

import random
from copy import deepcopy

import pytest

from mindsketch.config import AppSettings
from mindsketch.layout import visible_node_ids
from mindsketch.model import check_invariants
from mindsketch.session import (
    LAST_MAP_KEY, LAST_POSITIONS_KEY, LAST_VIEWPORT_KEY, MindMapSession,
)


class TestLifecycle:
    def test_create_map(self, session):
        mind_map = session.create_map("  Biology  ", description="  ")
        assert mind_map.title == "Biology"
        assert mind_map.description is None
        assert list(mind_map.nodes) == [mind_map.root_id]
        assert not session.can_undo

    def test_create_map_requires_title(self, session):
        with pytest.raises(ValueError):
            session.create_map("   ")
        assert session.map is None

    def test_load_map_rejects_broken_tree(self, sample):
        session, ids = sample
        before = deepcopy(session.map)
        broken = session.map.to_dict()
        broken["nodes"][ids["A"]]["parentId"] = "n_404"
        assert session.load_map(broken) is False
        assert session.load_map({"rootId": "n_1"}) is False
        assert session.map == before

    def test_load_map_drops_positions(self, sample, make_map):
        session, ids = sample
        session.begin_move(ids["A"], 0, 0)
        session.end_move(ids["A"], 10, 10)
        mind_map, _ = make_map({"Q": {}})
        assert session.load_map(mind_map.to_dict())
        assert len(session.overlay) == 0

    def test_intents_without_map(self, session):
        assert session.add_child("n_1") is None
        assert session.edit_node("n_1", title="x") is False
        assert session.undo() is False
        assert session.node_views() == []
        assert session.edge_views() == []
        assert session.export_payload() is None

    def test_set_map_meta(self, sample):
        session, _ = sample
        assert session.set_map_meta(title="Cells", bg_color="#000000")
        assert session.map.title == "Cells"
        assert session.map.bg_color == "#000000"
        assert session.map.description is None

    def test_on_changed_callback(self, sample):
        session, ids = sample
        calls = []
        session.on_changed = lambda: calls.append(session.version)
        session.add_child(ids["A"])
        assert calls == [session.version]


class TestStructuralEdits:
    def test_add_child_targets_new_node(self, sample):
        session, ids = sample
        new_id = session.add_child(ids["A1"])
        assert session.pending_edit_id == new_id
        view = next(v for v in session.node_views() if v.id == new_id)
        assert view.pending_edit is True
        assert view.depth == 3
        assert view.title == "New node"

    def test_add_uses_fresh_ids(self, sample):
        session, ids = sample
        first = session.add_child(ids["A"])
        session.undo()
        second = session.add_child(ids["A"])
        assert first != second
        assert second not in ids.values()

    def test_stale_ids_are_ignored(self, sample):
        session, _ = sample
        before = deepcopy(session.map)
        assert session.add_child("n_404") is None
        assert session.add_sibling("n_404") is None
        assert session.edit_node("n_404", title="x") is False
        assert session.toggle_collapse("n_404") is False
        assert session.delete_subtree("n_404") is False
        assert session.set_node_ui("n_404", pinned=True) is False
        assert session.map == before
        assert not session.can_undo

    def test_moves_on_stale_ids_are_ignored(self, sample):
        session, ids = sample
        session.edit_node(ids["A"], title="X")
        session.undo()

        session.begin_move("n_404", 0, 0)
        session.update_node_position("n_404", 20, 20)
        assert session.end_move("n_404", 50, 50) is False

        assert "n_404" not in session.overlay
        assert session.can_redo
        assert not session.can_undo

    def test_moves_without_map_are_ignored(self, session):
        session.begin_move("n_1", 0, 0)
        session.update_node_position("n_1", 3, 3)
        assert session.end_move("n_1", 5, 5) is False
        assert len(session.overlay) == 0
        assert not session.can_undo

    def test_add_then_delete_restores_parent(self, sample):
        session, ids = sample
        children_before = list(session.map.get(ids["B"]).children)
        nodes_before = set(session.map.nodes)

        new_id = session.add_child(ids["B"])
        assert session.delete_subtree(new_id)

        assert session.map.get(ids["B"]).children == children_before
        assert set(session.map.nodes) == nodes_before

    def test_undo_add_clears_edit_target(self, sample):
        session, ids = sample
        new_id = session.add_child(ids["A"])
        session.save_draft(new_id, title="Ribo")

        session.undo()

        assert session.pending_edit_id is None
        assert session.get_draft(new_id) is None
        assert not any(v.pending_edit for v in session.node_views())

    def test_redo_delete_clears_edit_target(self, sample):
        session, ids = sample
        session.delete_subtree(ids["A"])
        session.undo()
        session.focus_edit(ids["A1"])
        session.save_draft(ids["A1"], title="Nuc")

        session.redo()

        assert session.pending_edit_id is None
        assert session.get_draft(ids["A1"]) is None

    def test_root_delete_is_noop(self, sample):
        session, ids = sample
        assert session.delete_subtree(ids["Root"]) is False
        assert ids["Root"] in session.map
        assert not session.can_undo

    def test_delete_clears_pending_edit_and_drafts(self, sample):
        session, ids = sample
        session.save_draft(ids["A1"], title="half typed")
        session.save_draft(ids["B"], title="keep me")
        session.focus_edit(ids["A2"])

        session.delete_subtree(ids["A"])

        assert session.pending_edit_id is None
        assert session.get_draft(ids["A1"]) is None
        assert session.get_draft(ids["B"])["title"] == "keep me"

    def test_set_node_ui_not_undoable(self, sample):
        session, ids = sample
        session.set_node_ui(ids["A"], isExpanded=False)
        assert session.map.get(ids["A"]).ui == {"isExpanded": False}
        assert not session.can_undo


class TestInlineEditing:
    def test_commit_edit(self, sample):
        session, ids = sample
        session.focus_edit(ids["B"])
        session.save_draft(ids["B"], title="Memb")
        assert session.commit_edit(ids["B"], title="Membrane")
        assert session.map.get(ids["B"]).title == "Membrane"
        assert session.get_draft(ids["B"]) is None
        assert session.pending_edit_id is None
        assert session.can_undo

    def test_cancel_edit(self, sample):
        session, ids = sample
        session.focus_edit(ids["B"])
        session.save_draft(ids["B"], title="Memb")
        session.cancel_edit(ids["B"])
        assert session.map.get(ids["B"]).title == "B"
        assert session.get_draft(ids["B"]) is None
        assert session.pending_edit_id is None
        assert not session.can_undo


class TestManualPositions:
    def test_drop_at_start_records_nothing(self, sample):
        session, ids = sample
        start = session.layout[ids["B"]]
        session.begin_move(ids["B"], *start)
        session.update_node_position(ids["B"], 999, 999)
        assert session.end_move(ids["B"], *start) is False
        assert ids["B"] not in session.overlay
        assert not session.can_undo

    def test_drop_at_start_keeps_existing_override(self, sample):
        session, ids = sample
        session.begin_move(ids["B"], 0, 0)
        session.end_move(ids["B"], 300, 300)
        session.begin_move(ids["B"], 300, 300)
        session.update_node_position(ids["B"], 320, 320)
        assert session.end_move(ids["B"], 300, 300) is False
        assert session.overlay.get(ids["B"]) == (300.0, 300.0)

    def test_end_move_without_begin(self, sample):
        session, ids = sample
        assert session.end_move(ids["B"], 1, 2) is False

    def test_override_survives_tree_edits(self, sample):
        session, ids = sample
        session.begin_move(ids["C"], 0, 0)
        session.end_move(ids["C"], -40, 400)
        session.add_child(ids["A"])
        session.delete_subtree(ids["B"])
        assert session.merged_positions()[ids["C"]] == (-40.0, 400.0)

    def test_override_hidden_with_collapsed_parent(self, sample):
        session, ids = sample
        session.begin_move(ids["A1"], 0, 0)
        session.end_move(ids["A1"], 5, 5)
        session.toggle_collapse(ids["A"])
        assert ids["A1"] not in session.merged_positions()
        session.toggle_collapse(ids["A"])
        assert session.merged_positions()[ids["A1"]] == (5.0, 5.0)

    def test_reset_layout(self, sample):
        session, ids = sample
        session.begin_move(ids["C"], 0, 0)
        session.end_move(ids["C"], -40, 400)
        session.reset_layout()
        assert session.merged_positions() == session.layout


class TestProjection:
    def test_node_views_cover_visible_nodes(self, sample):
        session, ids = sample
        session.toggle_collapse(ids["B"])
        view_ids = {v.id for v in session.node_views()}
        assert ids["B1"] not in view_ids
        assert view_ids == set(session.layout)
        root = next(v for v in session.node_views() if v.is_root)
        assert (root.x, root.y, root.depth) == (0.0, 0.0, 0)

    def test_edge_views(self, sample):
        session, ids = sample
        session.toggle_collapse(ids["C"])
        edges = {e.id: (e.source, e.target) for e in session.edge_views()}
        assert edges[f"{ids['Root']}-{ids['A']}"] == (ids["Root"], ids["A"])
        assert f"{ids['C']}-{ids['C1']}" not in edges
        assert len(edges) == len(session.layout) - 1

    def test_layout_cached_until_change(self, sample):
        session, ids = sample
        first = session.layout
        assert session.layout is first
        session.edit_node(ids["A"], title="X")
        assert session.layout is not first


class TestPersistence:
    def test_autosave_and_restore(self, store, make_map):
        session = MindMapSession(store, settings=AppSettings())
        mind_map, ids = make_map({"A": {}, "B": {}})
        session.replace_all(mind_map)
        session.begin_move(ids["A"], 0, 0)
        session.end_move(ids["A"], 12, 34)
        session.set_viewport({"x": 1, "y": 2, "zoom": 0.5})

        restored = MindMapSession(store, settings=AppSettings())
        assert restored.restore()
        assert restored.map == session.map
        assert restored.overlay.get(ids["A"]) == (12.0, 34.0)
        assert restored.viewport == {"x": 1, "y": 2, "zoom": 0.5}
        assert restored.add_child(ids["A"]) not in ids.values()

    def test_restore_without_saved_map(self, store):
        assert MindMapSession(store, settings=AppSettings()).restore() is False

    def test_new_blank_clears_store(self, store, make_map):
        session = MindMapSession(store, settings=AppSettings())
        mind_map, ids = make_map({"A": {}})
        session.replace_all(mind_map)
        session.begin_move(ids["A"], 0, 0)
        session.end_move(ids["A"], 1, 1)
        session.set_viewport({"zoom": 1})

        session.new_blank()

        assert session.map is None
        for key in (LAST_MAP_KEY, LAST_POSITIONS_KEY, LAST_VIEWPORT_KEY):
            assert store.get_blob(key) is None

    def test_reset_layout_removes_saved_positions(self, store, make_map):
        session = MindMapSession(store, settings=AppSettings())
        mind_map, ids = make_map({"A": {}})
        session.replace_all(mind_map)
        session.begin_move(ids["A"], 0, 0)
        session.end_move(ids["A"], 1, 1)
        assert store.get_blob(LAST_POSITIONS_KEY) == {ids["A"]: {"x": 1.0, "y": 1.0}}
        session.reset_layout()
        assert store.get_blob(LAST_POSITIONS_KEY) is None

    def test_autosave_off(self, store, make_map):
        session = MindMapSession(store, settings=AppSettings(autosave=False))
        mind_map, _ = make_map({"A": {}})
        session.replace_all(mind_map)
        assert store.get_blob(LAST_MAP_KEY) is None


class TestRandomEditing:
    OPERATIONS = ("add_child", "add_sibling", "edit", "delete", "toggle", "move", "undo", "redo")

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_tree_stays_valid(self, sample, seed):
        session, _ = sample
        rng = random.Random(seed)

        for _ in range(300):
            target = rng.choice(sorted(session.map.nodes))
            op = rng.choice(self.OPERATIONS)
            if op == "add_child":
                session.add_child(target)
            elif op == "add_sibling":
                session.add_sibling(target)
            elif op == "edit":
                session.edit_node(target, title=f"t{rng.randint(0, 99)}")
            elif op == "delete":
                session.delete_subtree(target)
            elif op == "toggle":
                session.toggle_collapse(target)
            elif op == "move":
                session.begin_move(target, 0, 0)
                session.end_move(target, rng.uniform(-500, 500), rng.uniform(-500, 500))
            elif op == "undo":
                session.undo()
            else:
                session.redo()

            assert check_invariants(session.map) == [], op
            assert set(session.layout) == visible_node_ids(session.map)
            assert session.layout[session.map.root_id] == (0.0, 0.0)
