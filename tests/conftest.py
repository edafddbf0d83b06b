"""Shared fixtures for the MindSketch test suite."""

import os

import pytest

from mindsketch.config import AppSettings
from mindsketch.database import Database
from mindsketch.model import MindMap, Node, IdAllocator
from mindsketch.session import MindMapSession


# Root -> A(A1, A2), B(B1), C(C1); ids are handed out in pre-order
SAMPLE_TREE = {
    "A": {"A1": {}, "A2": {}},
    "B": {"B1": {}},
    "C": {"C1": {}},
}


def build_map(structure, title="Root"):
    """Build a map from nested ``{title: {child_title: ...}}`` dicts.

    Returns the map and a title -> node id lookup.
    """
    ids = IdAllocator()
    root = Node(id=ids.allocate(), title=title, color="#ffffff")
    nodes = {root.id: root}
    by_title = {title: root.id}

    def grow(parent, branch):
        for child_title, sub in branch.items():
            child = Node(id=ids.allocate(), title=child_title, description="",
                         parent_id=parent.id, color="#ffffff")
            nodes[child.id] = child
            parent.children.append(child.id)
            by_title[child_title] = child.id
            grow(child, sub)

    grow(root, structure)
    return MindMap(id="map_1", title=title, root_id=root.id, nodes=nodes), by_title


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's MINDSKETCH_* variables out of every test."""
    for name in list(os.environ):
        if name.startswith("MINDSKETCH_"):
            monkeypatch.delenv(name)


@pytest.fixture
def make_map():
    return build_map


@pytest.fixture
def settings():
    return AppSettings(autosave=False)


@pytest.fixture
def session(settings):
    """A store-less session with no map loaded."""
    return MindMapSession(settings=settings)


@pytest.fixture
def session_factory():
    """Build extra store-less sessions inside one test."""
    def factory(**settings):
        settings.setdefault("autosave", False)
        return MindMapSession(settings=AppSettings(**settings))
    return factory


@pytest.fixture
def sample(session):
    """Session holding the sample tree; returns (session, ids by title)."""
    mind_map, ids = build_map(SAMPLE_TREE)
    session.replace_all(mind_map)
    return session, ids


@pytest.fixture
def store(tmp_path):
    db = Database(tmp_path / "mindsketch.db")
    yield db
    db.close()
