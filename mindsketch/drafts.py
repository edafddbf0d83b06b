"""Inline-edit drafts kept outside the tree and the undo history."""

import logging
import time
from typing import Optional, Dict, Callable, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from mindsketch.database import Database


logger = logging.getLogger(__name__)

PREFIX = "draft:"
DRAFT_FIELDS = ("title", "description", "color")


class DraftTable:
    """Per-node text buffers with a time-to-live.

    Backed by the blob store when one is given, otherwise held in memory.
    """

    def __init__(self, db: Optional["Database"] = None, ttl_seconds: float = 600.0,
                 clock: Callable[[], float] = time.time):
        self.db = db
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._memory: Dict[str, dict] = {}

    def _read(self, node_id: str) -> Any:
        if self.db is not None:
            return self.db.get_blob(PREFIX + node_id)
        return self._memory.get(node_id)

    def get(self, node_id: str) -> Optional[dict]:
        """Return the draft for ``node_id``, or None if missing or expired."""
        raw = self._read(node_id)
        if not isinstance(raw, dict):
            return None
        ts = raw.get("ts")
        if not isinstance(ts, (int, float)):
            ts = self._clock()
        if self._clock() - ts > self.ttl_seconds:
            logger.debug("Dropping expired draft for %s", node_id)
            self.clear(node_id)
            return None
        draft = {key: raw[key] for key in DRAFT_FIELDS if isinstance(raw.get(key), str)}
        draft["ts"] = ts
        return draft

    def set(self, node_id: str, **values: str):
        payload = {key: values[key] for key in DRAFT_FIELDS if key in values}
        payload["ts"] = self._clock()
        if self.db is not None:
            self.db.set_blob(PREFIX + node_id, payload)
        else:
            self._memory[node_id] = payload

    def clear(self, node_id: str):
        if self.db is not None:
            self.db.delete_blob(PREFIX + node_id)
        else:
            self._memory.pop(node_id, None)

    def clear_all(self):
        if self.db is not None:
            for key in self.db.keys(PREFIX):
                self.db.delete_blob(key)
        self._memory.clear()
