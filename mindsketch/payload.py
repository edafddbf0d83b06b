"""Version-tagged exchange format for MindSketch maps.

File layout::

    {"version": 1, "map": {...}, "positions": {id: {"x": .., "y": ..}},
     "viewport": <opaque>, "ui": {"layoutDensity": "compact"}}
"""

import json
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional, Dict, Any, Tuple

from mindsketch.errors import InvalidPayloadError
from mindsketch.layout import DENSITIES
from mindsketch.model import MindMap, check_invariants

SCHEMA_VERSION = 1

Point = Tuple[float, float]


@dataclass
class Payload:
    """A validated payload, ready to be applied to a session."""
    mind_map: MindMap
    positions: Optional[Dict[str, Point]] = None
    viewport: Any = None
    layout_density: Optional[str] = None


def build_payload(mind_map: MindMap, positions: Dict[str, Dict[str, float]],
                  viewport: Any = None, layout_density: Optional[str] = None) -> dict:
    return {
        "version": SCHEMA_VERSION,
        "map": mind_map.to_dict(),
        "positions": positions,
        "viewport": viewport,
        "ui": {"layoutDensity": layout_density},
    }


def _parse_positions(raw: Any) -> Optional[Dict[str, Point]]:
    if not isinstance(raw, dict):
        return None
    positions: Dict[str, Point] = {}
    for node_id, point in raw.items():
        try:
            positions[str(node_id)] = (float(point["x"]), float(point["y"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidPayloadError(f"bad position for node {node_id!r}") from exc
    return positions


def parse_payload(data: Any) -> Payload:
    """Validate ``data`` and return a :class:`Payload`.

    Raises InvalidPayloadError for anything that is not a version 1 payload
    carrying a well-formed map.
    """
    if not isinstance(data, dict):
        raise InvalidPayloadError("payload must be a JSON object")
    version = data.get("version")
    if isinstance(version, bool) or version != SCHEMA_VERSION:
        raise InvalidPayloadError(f"unsupported payload version {data.get('version')!r}")
    raw_map = data.get("map")
    if not raw_map or not isinstance(raw_map, dict):
        raise InvalidPayloadError("payload has no map")

    try:
        mind_map = MindMap.from_dict(raw_map)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise InvalidPayloadError(f"malformed map: {exc}") from exc

    problems = check_invariants(mind_map)
    if problems:
        raise InvalidPayloadError("invalid map tree: " + "; ".join(problems))

    ui = data.get("ui")
    density = ui.get("layoutDensity") if isinstance(ui, dict) else None

    return Payload(
        mind_map=mind_map,
        positions=_parse_positions(data.get("positions")),
        viewport=data.get("viewport"),
        layout_density=density if density in DENSITIES else None,
    )


def loads(text: str) -> Payload:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidPayloadError(f"not valid JSON: {exc}") from exc
    return parse_payload(data)


def dumps(payload: dict) -> str:
    return json.dumps(payload, indent=2)


def export_filename(title: Optional[str], today: Optional[date] = None) -> str:
    """Build ``<title>_<YYYY-MM-DD>.json`` with unsafe characters collapsed to ``_``."""
    today = today or date.today()
    safe = re.sub(r"[^a-z0-9\-_]+", "_", title or "mindmap", flags=re.IGNORECASE)
    return f"{safe}_{today.isoformat()}.json"
