"""Tree model for MindSketch mind maps.

The model only knows about structure: nodes, parent/child links and per-node
display flags. Undo history and layout live in their own modules and drive
the model through the primitives below.
"""

import re
import time
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Iterable, Tuple


DEFAULT_NODE_TITLE = "New node"
DEFAULT_NODE_COLOR = "#ffffff"
DEFAULT_BG_COLOR = "#F6F7FB"

# Fields touched by edit_node (and captured by edit undo actions)
EDITABLE_FIELDS = ("title", "description", "color")

_NODE_ID_RE = re.compile(r"^n_(\d+)$")


class IdAllocator:
    """Monotonic node id generator scoped to one editing session."""

    def __init__(self, start: int = 1):
        self._next = start

    @property
    def next_value(self) -> int:
        return self._next

    def allocate(self) -> str:
        """Return a fresh id of the form ``n_<k>``."""
        node_id = f"n_{self._next}"
        self._next += 1
        return node_id

    def reseed(self, node_ids: Iterable[str]):
        """Move the counter past every ``n_<k>`` id in ``node_ids``.

        The counter never moves backwards, so ids handed out earlier in the
        session are not reissued after a load.
        """
        max_id = 0
        for node_id in node_ids:
            match = _NODE_ID_RE.match(str(node_id))
            if match:
                max_id = max(max_id, int(match.group(1)))
        if max_id >= self._next:
            self._next = max_id + 1


@dataclass
class Node:
    """Represents a node in the mind map."""
    id: str
    title: str = DEFAULT_NODE_TITLE
    description: Optional[str] = None
    parent_id: Optional[str] = None
    children: List[str] = field(default_factory=list)
    collapsed: bool = False
    color: Optional[str] = None
    ui: Optional[Dict[str, Any]] = None  # display intent, e.g. {"isExpanded": True}

    def editable_fields(self) -> Dict[str, Optional[str]]:
        return {
            "title": self.title,
            "description": self.description,
            "color": self.color,
        }

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "parentId": self.parent_id,
            "children": list(self.children),
            "collapsed": self.collapsed,
        }
        if self.description is not None:
            data["description"] = self.description
        if self.color is not None:
            data["color"] = self.color
        if self.ui is not None:
            data["ui"] = dict(self.ui)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Node":
        children = data.get("children", [])
        if not isinstance(children, list):
            raise TypeError(f"children of node {data.get('id')!r} must be a list")
        ui = data.get("ui")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            description=data.get("description"),
            parent_id=data.get("parentId"),
            children=[str(c) for c in children],
            collapsed=bool(data.get("collapsed", False)),
            color=data.get("color"),
            ui=dict(ui) if isinstance(ui, dict) else None,
        )


@dataclass
class MindMap:
    """Represents a mind map document."""
    id: str
    title: str
    root_id: str
    description: Optional[str] = None
    bg_color: str = DEFAULT_BG_COLOR
    nodes: Dict[str, Node] = field(default_factory=dict)

    # ==================== Queries ====================

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    @property
    def root(self) -> Node:
        return self.nodes[self.root_id]

    def get(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def children_of(self, node_id: str) -> List[Node]:
        """Child nodes in sibling order; dangling ids are skipped."""
        node = self.get(node_id)
        if not node:
            return []
        return [self.nodes[cid] for cid in node.children if cid in self.nodes]

    def ancestors_of(self, node_id: str) -> List[str]:
        """Ancestor ids, nearest parent first, ending with the root."""
        result: List[str] = []
        seen = {node_id}
        node = self.get(node_id)
        while node and node.parent_id is not None and node.parent_id not in seen:
            result.append(node.parent_id)
            seen.add(node.parent_id)
            node = self.get(node.parent_id)
        return result

    def depth_of(self, node_id: str) -> int:
        return len(self.ancestors_of(node_id))

    def collect_subtree(self, node_id: str) -> Dict[str, Node]:
        """Return ``node_id`` and all its descendants in pre-order."""
        result: Dict[str, Node] = {}
        stack = [node_id]
        while stack:
            current = stack.pop()
            node = self.nodes.get(current)
            if node is None or current in result:
                continue
            result[current] = node
            stack.extend(reversed(node.children))
        return result

    # ==================== Mutations ====================

    def _insert_child(self, parent: Node, ids: IdAllocator, uncollapse: bool) -> Node:
        child = Node(
            id=ids.allocate(),
            title=DEFAULT_NODE_TITLE,
            description="",
            parent_id=parent.id,
            color=parent.color or DEFAULT_NODE_COLOR,
        )
        self.nodes[child.id] = child
        parent.children.append(child.id)
        if uncollapse:
            parent.collapsed = False
        return child

    def add_child(self, parent_id: str, ids: IdAllocator) -> Optional[Node]:
        """Append a new child under ``parent_id`` and make it visible."""
        parent = self.get(parent_id)
        if parent is None:
            return None
        return self._insert_child(parent, ids, uncollapse=True)

    def add_sibling(self, node_id: str, ids: IdAllocator) -> Optional[Node]:
        """Append a new node next to ``node_id``; siblings of the root become its children."""
        node = self.get(node_id)
        if node is None:
            return None
        parent = self.get(node.parent_id if node.parent_id is not None else self.root_id)
        if parent is None:
            return None
        return self._insert_child(parent, ids, uncollapse=False)

    def edit_node(self, node_id: str,
                  changes: Dict[str, Any]) -> Optional[Tuple[dict, dict]]:
        """Overwrite the supplied editable fields.

        Returns ``(previous, next)`` snapshots of the editable fields, or
        None when the node does not exist. Keys that are missing or None
        keep their current value.
        """
        node = self.get(node_id)
        if node is None:
            return None
        previous = node.editable_fields()
        for key in EDITABLE_FIELDS:
            value = changes.get(key)
            if value is not None:
                setattr(node, key, value)
        return previous, node.editable_fields()

    def apply_fields(self, node_id: str, values: Dict[str, Any]) -> bool:
        """Set editable fields verbatim (None included), used by undo/redo."""
        node = self.get(node_id)
        if node is None:
            return False
        for key in EDITABLE_FIELDS:
            if key in values:
                setattr(node, key, values[key])
        return True

    def toggle_collapse(self, node_id: str) -> Optional[bool]:
        """Flip the collapsed flag of one node; descendants keep their own."""
        node = self.get(node_id)
        if node is None:
            return None
        node.collapsed = not node.collapsed
        return node.collapsed

    def set_ui(self, node_id: str, flags: Dict[str, Any]) -> bool:
        node = self.get(node_id)
        if node is None:
            return False
        merged = dict(node.ui or {})
        merged.update(flags)
        node.ui = merged
        return True

    def delete_subtree(self, node_id: str) -> Optional[Tuple[Optional[str], Dict[str, Node]]]:
        """Remove ``node_id`` and its descendants.

        Returns ``(parent_id, removed_nodes)`` or None if nothing was
        removed. The root cannot be deleted.
        """
        node = self.get(node_id)
        if node is None or node_id == self.root_id:
            return None
        removed = self.collect_subtree(node_id)
        for nid in removed:
            del self.nodes[nid]
        self.detach_child(node.parent_id, node_id)
        return node.parent_id, removed

    # ==================== Undo primitives ====================

    def insert_nodes(self, snapshot: Dict[str, Node]):
        """Insert copies of the given nodes, replacing any with the same id."""
        for nid, node in snapshot.items():
            self.nodes[nid] = deepcopy(node)

    def remove_nodes(self, node_ids: Iterable[str]):
        for nid in node_ids:
            self.nodes.pop(nid, None)

    def attach_child(self, parent_id: Optional[str], child_id: str) -> bool:
        """Append ``child_id`` to the parent's children unless already there."""
        parent = self.get(parent_id)
        if parent is None:
            return False
        if child_id not in parent.children:
            parent.children.append(child_id)
        return True

    def detach_child(self, parent_id: Optional[str], child_id: str) -> bool:
        parent = self.get(parent_id)
        if parent is None:
            return False
        parent.children = [cid for cid in parent.children if cid != child_id]
        return True

    # ==================== Serialisation ====================

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "bgColor": self.bg_color,
            "rootId": self.root_id,
            "nodes": {nid: node.to_dict() for nid, node in self.nodes.items()},
        }
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "MindMap":
        nodes = data["nodes"]
        if not isinstance(nodes, dict):
            raise TypeError("map nodes must be an object keyed by node id")
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            root_id=str(data["rootId"]),
            description=data.get("description"),
            bg_color=str(data.get("bgColor") or DEFAULT_BG_COLOR),
            nodes={str(nid): Node.from_dict(raw) for nid, raw in nodes.items()},
        )


def create_initial_map(title: str, description: Optional[str], bg_color: str,
                       ids: IdAllocator) -> MindMap:
    """Create a map holding only its root node."""
    root = Node(
        id=ids.allocate(),
        title=title,
        description=description,
        parent_id=None,
        color=DEFAULT_NODE_COLOR,
    )
    return MindMap(
        id=f"map_{int(time.time() * 1000)}",
        title=title,
        description=description,
        bg_color=bg_color,
        root_id=root.id,
        nodes={root.id: root},
    )


def check_invariants(mind_map: MindMap) -> List[str]:
    """Return a list of tree-invariant violations (empty when the map is valid)."""
    problems: List[str] = []
    nodes = mind_map.nodes

    root = nodes.get(mind_map.root_id)
    if root is None:
        return [f"root {mind_map.root_id!r} is missing"]
    if root.parent_id is not None:
        problems.append(f"root {root.id!r} has a parent")

    parentless = [nid for nid, n in nodes.items() if n.parent_id is None]
    if parentless != [mind_map.root_id]:
        problems.append(f"expected only the root to be parentless, found {parentless}")

    for nid, node in nodes.items():
        if node.id != nid:
            problems.append(f"node keyed {nid!r} carries id {node.id!r}")
        if node.parent_id is not None:
            parent = nodes.get(node.parent_id)
            if parent is None:
                problems.append(f"node {nid!r} references missing parent {node.parent_id!r}")
            elif parent.children.count(nid) != 1:
                problems.append(f"parent {node.parent_id!r} lists {nid!r} "
                                f"{parent.children.count(nid)} times")
        for cid in node.children:
            child = nodes.get(cid)
            if child is None:
                problems.append(f"node {nid!r} lists missing child {cid!r}")
            elif child.parent_id != nid:
                problems.append(f"child {cid!r} of {nid!r} points at {child.parent_id!r}")

    reached = set()
    stack = [mind_map.root_id]
    while stack:
        current = stack.pop()
        if current in reached:
            problems.append(f"node {current!r} is reachable twice (cycle or shared child)")
            continue
        reached.add(current)
        node = nodes.get(current)
        if node:
            stack.extend(cid for cid in node.children if cid in nodes)
    unreachable = sorted(set(nodes) - reached)
    if unreachable:
        problems.append(f"unreachable nodes: {unreachable}")

    return problems
