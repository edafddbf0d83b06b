"""Two-sided tidy tree layout for MindSketch maps.

Root sits at (0, 0). First-level branches alternate right/left in sibling
order and each branch is laid out with parents centred on their children.
The layout is recomputed from scratch on every call; manual overrides are
applied by the caller afterwards.
"""

from dataclasses import dataclass
from typing import Optional, List, Dict, Set, Tuple

from mindsketch.model import MindMap

Point = Tuple[float, float]

DEFAULT_LEVEL_GAP = 220
DEFAULT_SIBLING_GAP = 80

DENSITIES = ("comfortable", "compact", "dense")
DEFAULT_DENSITY = "compact"


@dataclass(frozen=True)
class LayoutOptions:
    """Spacing configuration for the layout."""
    level_gap: float = DEFAULT_LEVEL_GAP  # horizontal gap per depth
    sibling_gap: float = DEFAULT_SIBLING_GAP  # vertical gap between sibling subtrees
    root_child_gap: Optional[float] = None  # vertical gap between top-level branches

    @property
    def branch_gap(self) -> float:
        if self.root_child_gap is not None:
            return self.root_child_gap
        return round(self.sibling_gap * 1.2)


DENSITY_PRESETS: Dict[str, LayoutOptions] = {
    "comfortable": LayoutOptions(level_gap=260, sibling_gap=80, root_child_gap=96),
    "compact": LayoutOptions(level_gap=220, sibling_gap=48, root_child_gap=60),
    "dense": LayoutOptions(level_gap=180, sibling_gap=32, root_child_gap=40),
}


def options_for_density(density: str) -> LayoutOptions:
    """Return the preset for ``density``; unknown names fall back to comfortable."""
    return DENSITY_PRESETS.get(density, DENSITY_PRESETS["comfortable"])


def visible_node_ids(mind_map: MindMap) -> Set[str]:
    """Ids reachable from the root without passing through a collapsed node."""
    visible: Set[str] = set()
    stack = [mind_map.root_id]
    while stack:
        node_id = stack.pop()
        node = mind_map.nodes.get(node_id)
        if node is None or node_id in visible:
            continue
        visible.add(node_id)
        if not node.collapsed:
            stack.extend(node.children)
    return visible


def compute_tree_layout(mind_map: MindMap,
                        options: Optional[LayoutOptions] = None) -> Dict[str, Point]:
    """Map every visible node id to its (x, y) position.

    Invisible nodes are omitted from the result.
    """
    options = options or LayoutOptions()
    level_gap = options.level_gap
    sibling_gap = options.sibling_gap
    branch_gap = options.branch_gap

    root_id = mind_map.root_id
    if root_id not in mind_map.nodes:
        return {}
    visible = visible_node_ids(mind_map)

    def visible_children(node_id: str) -> List[str]:
        node = mind_map.nodes.get(node_id)
        if not node or node.collapsed:
            return []
        return [cid for cid in node.children if cid in visible]

    def layout_subtree(node_id: str, depth: int) -> Tuple[List[Tuple[str, int, float]], float]:
        # Returns (id, depth, y relative to the subtree centre) entries and the span
        children = visible_children(node_id)
        if not children:
            return [(node_id, depth, 0.0)], sibling_gap

        child_layouts = [layout_subtree(cid, depth + 1) for cid in children]
        total_span = (sum(span for _, span in child_layouts)
                      + sibling_gap * (len(children) - 1))

        placed: List[Tuple[str, int, float]] = []
        cursor = -total_span / 2
        for entries, span in child_layouts:
            center = cursor + span / 2
            placed.extend((nid, d, y + center) for nid, d, y in entries)
            cursor += span + sibling_gap

        # Children are stacked symmetrically, so the parent sits at 0
        placed.append((node_id, depth, 0.0))
        return placed, max(sibling_gap, total_span)

    positions: Dict[str, Point] = {root_id: (0.0, 0.0)}

    def place_side(children: List[str], sign: int):
        layouts = [layout_subtree(cid, 1) for cid in children]
        total = sum(span for _, span in layouts)
        if layouts:
            total += branch_gap * (len(layouts) - 1)
        cursor = -total / 2
        for entries, span in layouts:
            center = cursor + span / 2
            for nid, depth, y in entries:
                positions[nid] = (float(sign * depth * level_gap), float(y + center))
            cursor += span + branch_gap

    root_children = visible_children(root_id)
    place_side(root_children[0::2], 1)
    place_side(root_children[1::2], -1)

    return positions
