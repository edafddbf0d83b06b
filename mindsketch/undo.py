"""Undo/Redo system for MindSketch."""

import logging
from copy import deepcopy
from typing import Optional, List, Callable, Dict, Tuple, TYPE_CHECKING
from dataclasses import dataclass
from enum import Enum

from mindsketch.model import MindMap, Node

if TYPE_CHECKING:
    from mindsketch.positions import PositionOverlay


logger = logging.getLogger(__name__)


class ActionType(Enum):
    """Types of undoable actions."""
    NODE_ADD = "add-node"
    NODE_EDIT = "edit-node"
    SUBTREE_DELETE = "delete-subtree"
    NODE_MOVE = "move-node"


@dataclass
class UndoAction:
    """Represents an undoable action."""
    action_type: ActionType
    description: str
    data: dict  # Action-specific data for undo
    redo_data: dict  # Action-specific data for redo


def _short(text: Optional[str]) -> str:
    text = text or ""
    return f"{text[:20]}..." if len(text) > 20 else text


class UndoManager:
    """Manages undo/redo history.

    Both stacks are unbounded unless ``max_undo``/``max_redo`` are given,
    in which case the oldest entries are dropped first.
    """

    def __init__(self, max_undo: Optional[int] = None, max_redo: Optional[int] = None):
        self.max_undo = max_undo
        self.max_redo = max_redo
        self._undo_stack: List[UndoAction] = []
        self._redo_stack: List[UndoAction] = []

        # Callbacks
        self.on_state_changed: Optional[Callable[[], None]] = None

    @property
    def can_undo(self) -> bool:
        """Check if undo is available."""
        return len(self._undo_stack) > 0

    @property
    def can_redo(self) -> bool:
        """Check if redo is available."""
        return len(self._redo_stack) > 0

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    @property
    def redo_depth(self) -> int:
        return len(self._redo_stack)

    @property
    def undo_description(self) -> str:
        """Get description of next undo action."""
        if self._undo_stack:
            return self._undo_stack[-1].description
        return ""

    @property
    def redo_description(self) -> str:
        """Get description of next redo action."""
        if self._redo_stack:
            return self._redo_stack[-1].description
        return ""

    @staticmethod
    def _trim(stack: List[UndoAction], limit: Optional[int]):
        if limit is None:
            return
        while len(stack) > limit:
            stack.pop(0)

    def push(self, action: UndoAction):
        """Push a new action to the undo stack."""
        self._undo_stack.append(action)
        self._redo_stack.clear()  # Clear redo on new action
        self._trim(self._undo_stack, self.max_undo)

        self._notify_changed()

    def undo(self) -> Optional[UndoAction]:
        """Pop and return the last action for undoing."""
        if not self._undo_stack:
            return None

        action = self._undo_stack.pop()
        self._redo_stack.append(action)
        self._trim(self._redo_stack, self.max_redo)

        self._notify_changed()
        return action

    def redo(self) -> Optional[UndoAction]:
        """Pop and return the last undone action for redoing."""
        if not self._redo_stack:
            return None

        action = self._redo_stack.pop()
        self._undo_stack.append(action)
        self._trim(self._undo_stack, self.max_undo)

        self._notify_changed()
        return action

    def clear(self):
        """Clear all history."""
        self._undo_stack.clear()
        self._redo_stack.clear()
        self._notify_changed()

    def _notify_changed(self):
        """Notify that undo/redo state changed."""
        if self.on_state_changed:
            self.on_state_changed()

    # ==================== Action Factories ====================

    @staticmethod
    def add_node_action(node: Node, parent_collapsed: bool, uncollapse: bool) -> UndoAction:
        """Create action for node creation.

        ``parent_collapsed`` is the parent's flag before the add so undo can
        put it back when add-child forced the parent open.
        """
        return UndoAction(
            action_type=ActionType.NODE_ADD,
            description=f"Add node '{_short(node.title)}'",
            data={
                "node_id": node.id,
                "parent_id": node.parent_id,
                "parent_collapsed": parent_collapsed,
            },
            redo_data={
                "node_id": node.id,
                "parent_id": node.parent_id,
                "node": deepcopy(node),
                "uncollapse": uncollapse,
            }
        )

    @staticmethod
    def edit_node_action(node_id: str, previous: dict, next_values: dict) -> UndoAction:
        """Create action for node title/description/color edit."""
        return UndoAction(
            action_type=ActionType.NODE_EDIT,
            description=f"Edit node '{_short(previous.get('title'))}'",
            data={
                "node_id": node_id,
                "fields": dict(previous),
            },
            redo_data={
                "node_id": node_id,
                "fields": dict(next_values),
            }
        )

    @staticmethod
    def delete_subtree_action(parent_id: Optional[str], subtree_root_id: str,
                              subtree: Dict[str, Node]) -> UndoAction:
        """Create action for subtree deletion (``subtree`` in pre-order)."""
        snapshot = deepcopy(subtree)
        root = snapshot.get(subtree_root_id)
        return UndoAction(
            action_type=ActionType.SUBTREE_DELETE,
            description=f"Delete '{_short(root.title if root else subtree_root_id)}'",
            data={
                "parent_id": parent_id,
                "subtree_root_id": subtree_root_id,
                "subtree": snapshot,
            },
            redo_data={
                "parent_id": parent_id,
                "subtree_root_id": subtree_root_id,
                "subtree": snapshot,
            }
        )

    @staticmethod
    def move_node_action(node_id: str, previous: Tuple[float, float],
                         next_position: Tuple[float, float]) -> UndoAction:
        """Create action for a manual position change."""
        return UndoAction(
            action_type=ActionType.NODE_MOVE,
            description="Move node",
            data={
                "node_id": node_id,
                "position": tuple(previous),
            },
            redo_data={
                "node_id": node_id,
                "position": tuple(next_position),
            }
        )


def apply_undo_action(action: UndoAction, mind_map: MindMap,
                      overlay: "PositionOverlay", is_undo: bool):
    """Apply the inverse (``is_undo``) or the original effect of ``action``.

    Each branch runs to completion; ids referenced by the action that no
    longer exist are skipped.
    """
    data = action.data if is_undo else action.redo_data

    if action.action_type == ActionType.NODE_ADD:
        if is_undo:
            mind_map.remove_nodes([data["node_id"]])
            mind_map.detach_child(data["parent_id"], data["node_id"])
            parent = mind_map.get(data["parent_id"])
            if parent is not None:
                parent.collapsed = data["parent_collapsed"]
        else:
            parent = mind_map.get(data["parent_id"])
            if parent is None:
                logger.warning("Redo add skipped: parent %s is gone", data["parent_id"])
                return
            mind_map.insert_nodes({data["node_id"]: data["node"]})
            # Re-appended, not re-inserted at the original index
            mind_map.attach_child(data["parent_id"], data["node_id"])
            if data["uncollapse"]:
                parent.collapsed = False

    elif action.action_type == ActionType.NODE_EDIT:
        if not mind_map.apply_fields(data["node_id"], data["fields"]):
            logger.warning("Edit %s skipped: node %s is gone",
                           "undo" if is_undo else "redo", data["node_id"])

    elif action.action_type == ActionType.SUBTREE_DELETE:
        subtree = data["subtree"]
        if is_undo:
            mind_map.insert_nodes(subtree)
            mind_map.attach_child(data["parent_id"], data["subtree_root_id"])
        else:
            mind_map.remove_nodes(list(subtree))
            mind_map.detach_child(data["parent_id"], data["subtree_root_id"])

    elif action.action_type == ActionType.NODE_MOVE:
        x, y = data["position"]
        overlay.set(data["node_id"], x, y)
