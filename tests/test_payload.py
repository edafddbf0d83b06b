"""Tests for the exchange payload."""

import json
from copy import deepcopy
from datetime import date

import pytest

from mindsketch.errors import InvalidPayloadError
from mindsketch.payload import SCHEMA_VERSION, export_filename, loads, parse_payload


def test_export_payload_shape(sample):
    session, ids = sample
    session.begin_move(ids["B"], 0, 0)
    session.end_move(ids["B"], -10, 20)
    session.set_viewport({"zoom": 2})

    payload = session.export_payload()

    assert payload["version"] == SCHEMA_VERSION
    assert payload["map"]["rootId"] == ids["Root"]
    assert payload["positions"] == {ids["B"]: {"x": -10.0, "y": 20.0}}
    assert payload["viewport"] == {"zoom": 2}
    assert payload["ui"] == {"layoutDensity": "compact"}
    json.dumps(payload)


def test_import_round_trip(sample, session_factory):
    session, ids = sample
    session.begin_move(ids["B"], 0, 0)
    session.end_move(ids["B"], -10, 20)
    session.set_layout_density("dense")
    text = json.dumps(session.export_payload())

    other = session_factory()
    assert other.import_json(text)
    assert other.map == session.map
    assert other.overlay.get(ids["B"]) == (-10.0, 20.0)
    assert other.layout_density == "dense"
    assert not other.can_undo


@pytest.mark.parametrize("data", [
    None,
    [],
    {"version": 2, "map": {}},
    {"version": True, "map": {}},
    {"version": 1},
    {"version": 1, "map": {"rootId": "n_1"}},
    {"version": 1, "map": {"rootId": "n_1", "nodes": {"n_1": "oops"}}},
])
def test_rejected_payload_leaves_session_untouched(sample, data):
    session, ids = sample
    session.edit_node(ids["A"], title="X")
    before = deepcopy(session.map)
    version = session.version

    assert session.import_payload(data) is False
    assert session.map == before
    assert session.version == version
    assert session.can_undo


def test_import_json_rejects_garbage(sample):
    session, _ = sample
    assert session.import_json("{not json") is False


def test_broken_tree_rejected(make_map):
    mind_map, ids = make_map({"A": {}})
    data = {"version": 1, "map": mind_map.to_dict()}
    data["map"]["nodes"][ids["Root"]]["children"] = []
    with pytest.raises(InvalidPayloadError, match="unreachable"):
        parse_payload(data)


def test_positions_and_density_are_lenient(make_map):
    mind_map, _ = make_map({})
    payload = parse_payload({"version": 1, "map": mind_map.to_dict(),
                             "positions": "nope", "ui": {"layoutDensity": "roomy"}})
    assert payload.positions is None
    assert payload.layout_density is None
    assert payload.viewport is None


def test_malformed_position_entry(make_map):
    mind_map, ids = make_map({})
    with pytest.raises(InvalidPayloadError):
        parse_payload({"version": 1, "map": mind_map.to_dict(),
                       "positions": {ids["Root"]: {"x": "left"}}})


def test_import_reseeds_ids(session, make_map):
    mind_map, _ = make_map({})
    raw = mind_map.to_dict()
    raw["nodes"]["n_41"] = {"id": "n_41", "title": "Imported", "parentId": "n_1",
                            "children": [], "collapsed": False}
    raw["nodes"]["n_1"]["children"] = ["n_41"]

    assert session.import_payload({"version": 1, "map": raw})
    assert session.add_child("n_41") == "n_42"


def test_loads_invalid_json():
    with pytest.raises(InvalidPayloadError):
        loads("[1, 2")


def test_export_filename():
    today = date(2024, 3, 9)
    assert export_filename("Cell Biology", today) == "Cell_Biology_2024-03-09.json"
    assert export_filename("a/b: c", today) == "a_b_c_2024-03-09.json"
    assert export_filename("", today) == "mindmap_2024-03-09.json"
