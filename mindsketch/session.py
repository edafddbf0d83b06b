"""Editing session for a single mind map.

``MindMapSession`` is the one writer of the map: every intent a host UI
sends (add, edit, delete, move, undo, ...) runs here to completion, records
its undo action, autosaves and invalidates the cached layout.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Callable, Tuple, Union

from mindsketch.config import AppSettings, load_settings
from mindsketch.database import Database
from mindsketch.drafts import DraftTable
from mindsketch.errors import InvalidPayloadError
from mindsketch.layout import (
    DENSITIES, DEFAULT_DENSITY, compute_tree_layout, options_for_density,
)
from mindsketch.model import (
    MindMap, IdAllocator, DEFAULT_BG_COLOR, create_initial_map, check_invariants,
)
from mindsketch.payload import Payload, build_payload, parse_payload, loads
from mindsketch.positions import PositionOverlay
from mindsketch.undo import UndoManager, ActionType, apply_undo_action


logger = logging.getLogger(__name__)

LAST_MAP_KEY = "last_map"
LAST_POSITIONS_KEY = "last_positions"
LAST_VIEWPORT_KEY = "last_viewport"

Point = Tuple[float, float]


@dataclass
class NodeView:
    """What the host needs to render one visible node."""
    id: str
    title: str
    description: Optional[str]
    collapsed: bool
    depth: int
    is_root: bool
    color: Optional[str]
    parent_id: Optional[str]
    pending_edit: bool
    ui: Optional[Dict[str, Any]]
    x: float
    y: float


@dataclass
class EdgeView:
    """A parent -> child connection between two visible nodes."""
    id: str
    source: str
    target: str


@dataclass
class _MoveStart:
    position: Point
    had_override: bool


class MindMapSession:
    """Orchestrates the tree model, undo history, layout and overrides."""

    def __init__(self, db: Optional[Database] = None,
                 settings: Optional[AppSettings] = None,
                 ids: Optional[IdAllocator] = None,
                 clock: Callable[[], float] = time.time):
        self.db = db
        self.settings = settings or load_settings(db)
        self.ids = ids or IdAllocator()
        self.map: Optional[MindMap] = None
        self.undo_manager = UndoManager(max_undo=self.settings.undo_limit,
                                        max_redo=self.settings.undo_limit)
        self.overlay = PositionOverlay()
        self.drafts = DraftTable(db, ttl_seconds=self.settings.draft_ttl_seconds, clock=clock)
        self.layout_density = (self.settings.layout_density
                               if self.settings.layout_density in DENSITIES else DEFAULT_DENSITY)
        self.pending_edit_id: Optional[str] = None
        self.viewport: Any = None

        self._move_starts: Dict[str, _MoveStart] = {}
        self._version = 0
        self._layout_cache: Optional[Tuple[int, str, Dict[str, Point]]] = None

        # Callbacks
        self.on_changed: Optional[Callable[[], None]] = None

    # ==================== Internal helpers ====================

    @property
    def version(self) -> int:
        """Structural version, bumped on every map change."""
        return self._version

    def _notify(self):
        if self.on_changed:
            self.on_changed()

    def _autosave(self, key: str, value: Any):
        if self.db is None or not self.settings.autosave:
            return
        if value is None:
            self.db.delete_blob(key)
        else:
            self.db.set_blob(key, value)

    def _map_changed(self):
        self._version += 1
        self._autosave(LAST_MAP_KEY, self.map.to_dict() if self.map else None)
        self._notify()

    def _positions_changed(self):
        self._autosave(LAST_POSITIONS_KEY, self.overlay.to_dict() if len(self.overlay) else None)
        self._notify()

    def _start_history(self):
        self.undo_manager.clear()
        self._move_starts.clear()

    def _lookup(self, node_id: str, intent: str):
        if self.map is None:
            logger.warning("%s ignored: no map loaded", intent)
            return None
        node = self.map.get(node_id)
        if node is None:
            logger.warning("%s ignored: unknown node %s", intent, node_id)
        return node

    # ==================== Document lifecycle ====================

    def create_map(self, title: str, description: Optional[str] = None,
                   bg_color: str = DEFAULT_BG_COLOR) -> MindMap:
        """Start a new map with only a root node titled ``title``."""
        title = (title or "").strip()
        if not title:
            raise ValueError("A title is required to create a mind map")
        description = (description or "").strip() or None
        mind_map = create_initial_map(title, description, bg_color, self.ids)
        self.replace_all(mind_map)
        logger.info("Created map %s (%s)", mind_map.id, title)
        return mind_map

    def load_map(self, mind_map: Union[MindMap, dict]) -> bool:
        """Make ``mind_map`` current, dropping manual positions.

        A dict is parsed first; a map that breaks the tree invariants is
        rejected and the current state is left untouched.
        """
        try:
            if isinstance(mind_map, dict):
                mind_map = MindMap.from_dict(mind_map)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Rejected map: %s", exc)
            return False
        problems = check_invariants(mind_map)
        if problems:
            logger.warning("Rejected map: %s", "; ".join(problems))
            return False
        self.replace_all(mind_map)
        return True

    def replace_all(self, mind_map: MindMap,
                    positions: Optional[Dict[str, Point]] = None):
        """Replace the map and (optionally) its manual positions."""
        self.ids.reseed(mind_map.nodes)
        self.map = mind_map
        if positions:
            self.overlay.replace(positions)
        else:
            self.overlay.clear()
        self.pending_edit_id = None
        self._start_history()
        self._map_changed()
        self._positions_changed()

    def new_blank(self):
        """Forget the current map, positions, history and saved viewport."""
        self.map = None
        self.overlay.clear()
        self.pending_edit_id = None
        self.viewport = None
        self._start_history()
        self._version += 1
        for key in (LAST_MAP_KEY, LAST_POSITIONS_KEY, LAST_VIEWPORT_KEY):
            self._autosave(key, None)
        logger.info("Started a blank session")
        self._notify()

    def restore(self) -> bool:
        """Reload the autosaved map, positions and viewport from the store."""
        if self.db is None:
            return False
        raw = self.db.get_blob(LAST_MAP_KEY)
        if not raw:
            return False
        try:
            mind_map = MindMap.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Ignoring unreadable autosaved map: %s", exc)
            return False
        problems = check_invariants(mind_map)
        if problems:
            logger.warning("Ignoring inconsistent autosaved map: %s", "; ".join(problems))
            return False

        positions = None
        raw_positions = self.db.get_blob(LAST_POSITIONS_KEY)
        if isinstance(raw_positions, dict):
            try:
                positions = PositionOverlay.from_dict(raw_positions)
            except (KeyError, TypeError, ValueError):
                logger.warning("Ignoring unreadable autosaved positions")

        self.viewport = self.db.get_blob(LAST_VIEWPORT_KEY)
        self.ids.reseed(mind_map.nodes)
        self.map = mind_map
        self.overlay = positions or PositionOverlay()
        self.pending_edit_id = None
        self._start_history()
        self._version += 1
        self._notify()
        return True

    def set_viewport(self, viewport: Any):
        self.viewport = viewport
        self._autosave(LAST_VIEWPORT_KEY, viewport)

    def set_map_meta(self, title: Optional[str] = None, description: Optional[str] = None,
                     bg_color: Optional[str] = None) -> bool:
        if self.map is None:
            return False
        if title is not None:
            self.map.title = title
        if description is not None:
            self.map.description = description
        if bg_color is not None:
            self.map.bg_color = bg_color
        self._map_changed()
        return True

    # ==================== Structural edits ====================

    def _add(self, node_id: str, as_child: bool) -> Optional[str]:
        intent = "add-child" if as_child else "add-sibling"
        node = self._lookup(node_id, intent)
        if node is None:
            return None
        if as_child:
            parent = node
        else:
            parent = self.map.get(node.parent_id if node.parent_id is not None else self.map.root_id)
        was_collapsed = parent.collapsed

        if as_child:
            new_node = self.map.add_child(node_id, self.ids)
        else:
            new_node = self.map.add_sibling(node_id, self.ids)
        if new_node is None:
            logger.warning("%s ignored: no parent for %s", intent, node_id)
            return None

        self.undo_manager.push(
            UndoManager.add_node_action(new_node, was_collapsed, uncollapse=as_child))
        self.pending_edit_id = new_node.id
        logger.debug("%s: %s under %s", intent, new_node.id, new_node.parent_id)
        self._map_changed()
        return new_node.id

    def add_child(self, parent_id: str) -> Optional[str]:
        """Append a child to ``parent_id`` and target it for editing."""
        return self._add(parent_id, as_child=True)

    def add_sibling(self, node_id: str) -> Optional[str]:
        """Append a sibling of ``node_id`` (a child, when ``node_id`` is the root)."""
        return self._add(node_id, as_child=False)

    def edit_node(self, node_id: str, **changes: Any) -> bool:
        """Overwrite the given title/description/color of a node."""
        if self._lookup(node_id, "edit-node") is None:
            return False
        previous, next_values = self.map.edit_node(node_id, changes)
        self.undo_manager.push(UndoManager.edit_node_action(node_id, previous, next_values))
        logger.debug("edit-node: %s %s", node_id, sorted(changes))
        self._map_changed()
        return True

    def toggle_collapse(self, node_id: str) -> bool:
        if self._lookup(node_id, "toggle-collapse") is None:
            return False
        collapsed = self.map.toggle_collapse(node_id)
        logger.debug("toggle-collapse: %s -> %s", node_id, collapsed)
        self._map_changed()
        return True

    def set_node_ui(self, node_id: str, **flags: Any) -> bool:
        """Merge display-intent flags into a node (not recorded for undo)."""
        if self._lookup(node_id, "set-node-ui") is None:
            return False
        self.map.set_ui(node_id, flags)
        self._map_changed()
        return True

    def delete_subtree(self, node_id: str) -> bool:
        """Delete ``node_id`` with all its descendants. The root is never deleted."""
        if self._lookup(node_id, "delete-subtree") is None:
            return False
        if node_id == self.map.root_id:
            logger.warning("delete-subtree ignored: %s is the root", node_id)
            return False

        parent_id, removed = self.map.delete_subtree(node_id)
        self.undo_manager.push(UndoManager.delete_subtree_action(parent_id, node_id, removed))

        for nid in removed:
            self.drafts.clear(nid)
            self._move_starts.pop(nid, None)
        if self.pending_edit_id in removed:
            self.pending_edit_id = None

        logger.debug("delete-subtree: %s (%d nodes)", node_id, len(removed))
        self._map_changed()
        return True

    # ==================== Inline editing ====================

    def focus_edit(self, node_id: Optional[str]):
        """Target ``node_id`` (or nothing) for inline editing."""
        self.pending_edit_id = node_id
        self._notify()

    def save_draft(self, node_id: str, **values: str):
        self.drafts.set(node_id, **values)

    def get_draft(self, node_id: str) -> Optional[dict]:
        return self.drafts.get(node_id)

    def commit_edit(self, node_id: str, **changes: Any) -> bool:
        committed = self.edit_node(node_id, **changes)
        self.drafts.clear(node_id)
        if self.pending_edit_id == node_id:
            self.focus_edit(None)
        return committed

    def cancel_edit(self, node_id: str):
        self.drafts.clear(node_id)
        if self.pending_edit_id == node_id:
            self.focus_edit(None)

    # ==================== Manual positions ====================

    def begin_move(self, node_id: str, x: float, y: float):
        """Remember where a drag started (override, else layout, else the pointer)."""
        if self._lookup(node_id, "begin-move") is None:
            return
        override = self.overlay.get(node_id)
        start = override or self.layout.get(node_id) or (float(x), float(y))
        self._move_starts[node_id] = _MoveStart(position=start, had_override=override is not None)

    def update_node_position(self, node_id: str, x: float, y: float):
        """Live drag update; only :meth:`end_move` records history."""
        if self._lookup(node_id, "update-node-position") is None:
            return
        self.overlay.set(node_id, x, y)
        self._notify()

    def end_move(self, node_id: str, x: float, y: float) -> bool:
        """Commit a drag. Returns False when nothing was recorded."""
        start = self._move_starts.pop(node_id, None)
        if start is None or self._lookup(node_id, "end-move") is None:
            return False
        end = (float(x), float(y))
        if start.position == end:
            # Dropped where it started: leave the overlay as it was
            if start.had_override:
                self.overlay.set(node_id, *start.position)
            else:
                self.overlay.discard(node_id)
            self._notify()
            return False

        self.overlay.set(node_id, *end)
        self.undo_manager.push(UndoManager.move_node_action(node_id, start.position, end))
        logger.debug("move: %s %s -> %s", node_id, start.position, end)
        self._positions_changed()
        return True

    def reset_layout(self):
        """Drop every manual override and go back to the computed layout."""
        self.overlay.clear()
        logger.info("Manual positions cleared")
        self._positions_changed()

    def set_layout_density(self, density: str) -> bool:
        if density not in DENSITIES:
            logger.warning("Unknown layout density %r", density)
            return False
        self.layout_density = density
        self._notify()
        return True

    # ==================== Undo / Redo ====================

    @property
    def can_undo(self) -> bool:
        return self.undo_manager.can_undo

    @property
    def can_redo(self) -> bool:
        return self.undo_manager.can_redo

    @property
    def undo_description(self) -> str:
        return self.undo_manager.undo_description

    @property
    def redo_description(self) -> str:
        return self.undo_manager.redo_description

    def _forget_removed(self, action, is_undo: bool):
        """Drop drafts, drag starts and the edit target of nodes a replay removed."""
        if action.action_type == ActionType.NODE_ADD and is_undo:
            removed = [action.data["node_id"]]
        elif action.action_type == ActionType.SUBTREE_DELETE and not is_undo:
            removed = list(action.redo_data["subtree"])
        else:
            return
        for nid in removed:
            self.drafts.clear(nid)
            self._move_starts.pop(nid, None)
        if self.pending_edit_id in removed:
            self.pending_edit_id = None

    def _replay(self, is_undo: bool) -> bool:
        if self.map is None:
            return False
        action = self.undo_manager.undo() if is_undo else self.undo_manager.redo()
        if action is None:
            return False
        apply_undo_action(action, self.map, self.overlay, is_undo=is_undo)
        logger.debug("%s: %s", "undo" if is_undo else "redo", action.description)
        self._forget_removed(action, is_undo)
        if action.action_type == ActionType.NODE_MOVE:
            self._positions_changed()
        else:
            self._map_changed()
        return True

    def undo(self) -> bool:
        """Revert the last recorded action; False when there is nothing to undo."""
        return self._replay(is_undo=True)

    def redo(self) -> bool:
        """Re-apply the last undone action; False when there is nothing to redo."""
        return self._replay(is_undo=False)

    # ==================== Projection ====================

    @property
    def layout(self) -> Dict[str, Point]:
        """Computed layout for the visible nodes, cached per (version, density)."""
        if self.map is None:
            return {}
        cache = self._layout_cache
        if cache and cache[0] == self._version and cache[1] == self.layout_density:
            return cache[2]
        computed = compute_tree_layout(self.map, options_for_density(self.layout_density))
        self._layout_cache = (self._version, self.layout_density, computed)
        return computed

    def merged_positions(self) -> Dict[str, Point]:
        return self.overlay.merge(self.layout)

    def node_views(self) -> List[NodeView]:
        if self.map is None:
            return []
        positions = self.merged_positions()
        views = []
        for node in self.map.nodes.values():
            if node.id not in positions:
                continue
            x, y = positions[node.id]
            views.append(NodeView(
                id=node.id,
                title=node.title,
                description=node.description,
                collapsed=node.collapsed,
                depth=self.map.depth_of(node.id),
                is_root=node.parent_id is None,
                color=node.color,
                parent_id=node.parent_id,
                pending_edit=node.id == self.pending_edit_id,
                ui=node.ui,
                x=x,
                y=y,
            ))
        return views

    def edge_views(self) -> List[EdgeView]:
        if self.map is None:
            return []
        layout = self.layout
        edges = []
        for node in self.map.nodes.values():
            if node.id not in layout:
                continue
            for cid in node.children:
                if cid in layout:
                    edges.append(EdgeView(id=f"{node.id}-{cid}", source=node.id, target=cid))
        return edges

    # ==================== Import / Export ====================

    def export_payload(self) -> Optional[dict]:
        if self.map is None:
            return None
        return build_payload(self.map, self.overlay.to_dict(),
                             viewport=self.viewport, layout_density=self.layout_density)

    def import_payload(self, data: Any) -> bool:
        """Validate and apply an exchange payload.

        Returns False, leaving the session untouched, if the payload is
        rejected.
        """
        try:
            payload = parse_payload(data)
        except InvalidPayloadError as exc:
            logger.warning("Import rejected: %s", exc)
            return False
        return self._apply_payload(payload)

    def import_json(self, text: str) -> bool:
        try:
            payload = loads(text)
        except InvalidPayloadError as exc:
            logger.warning("Import rejected: %s", exc)
            return False
        return self._apply_payload(payload)

    def _apply_payload(self, payload: Payload) -> bool:
        if payload.layout_density:
            self.layout_density = payload.layout_density
        if payload.viewport is not None:
            self.set_viewport(payload.viewport)
        self.replace_all(payload.mind_map, payload.positions)
        logger.info("Imported map %s (%d nodes)",
                    payload.mind_map.id, len(payload.mind_map.nodes))
        return True
