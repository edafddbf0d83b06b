"""Manual position overrides layered on top of the computed layout."""

from typing import Dict, Optional, Tuple, Mapping

Point = Tuple[float, float]


class PositionOverlay:
    """Sparse node id -> (x, y) overrides set by the user.

    Ordinary tree edits never touch the overlay. Overrides for nodes that
    have since been deleted are simply never read.
    """

    def __init__(self, positions: Optional[Mapping[str, Point]] = None):
        self._positions: Dict[str, Point] = {}
        if positions:
            self.replace(positions)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def get(self, node_id: str) -> Optional[Point]:
        return self._positions.get(node_id)

    def set(self, node_id: str, x: float, y: float):
        self._positions[node_id] = (float(x), float(y))

    def discard(self, node_id: str):
        self._positions.pop(node_id, None)

    def clear(self):
        self._positions.clear()

    def replace(self, positions: Mapping[str, Point]):
        self._positions = {nid: (float(p[0]), float(p[1])) for nid, p in positions.items()}

    def merge(self, layout: Mapping[str, Point]) -> Dict[str, Point]:
        """Return ``layout`` with overrides applied to the ids it contains."""
        return {nid: self._positions.get(nid, pos) for nid, pos in layout.items()}

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {nid: {"x": x, "y": y} for nid, (x, y) in self._positions.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, float]]) -> "PositionOverlay":
        return cls({nid: (float(p["x"]), float(p["y"])) for nid, p in data.items()})
