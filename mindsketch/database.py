"""SQLite key-value store for MindSketch."""

import json
import logging
import os
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Any, Union


logger = logging.getLogger(__name__)

DATA_DIR_ENV = "MINDSKETCH_DATA_DIR"


def get_data_dir() -> Path:
    """Get the application data directory."""
    override = os.environ.get(DATA_DIR_ENV)
    data_dir = Path(override).expanduser() if override else Path.home() / ".local" / "share" / "mindsketch"
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "exports").mkdir(exist_ok=True)
    (data_dir / "backups").mkdir(exist_ok=True)
    return data_dir


def get_db_path() -> Path:
    """Get the database file path."""
    return get_data_dir() / "mindsketch.db"


class Database:
    """Blob store for the autosaved map, positions, viewport and drafts.

    Values are stored as JSON text; ``":memory:"`` gives a throwaway store.
    """

    def __init__(self, db_path: Optional[Union[Path, str]] = None):
        self.db_path = db_path or get_db_path()
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
            if str(self.db_path) != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def _init_db(self):
        """Initialize the database schema."""
        cursor = self.conn.cursor()

        cursor.executescript("""
            -- Document blobs (last map, positions, viewport, drafts)
            CREATE TABLE IF NOT EXISTS blobs (
                key TEXT PRIMARY KEY,
                value JSON,
                modified_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            -- App settings table
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value JSON
            );
        """)

        self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    # ==================== Blob Operations ====================

    def get_blob(self, key: str, default: Any = None) -> Any:
        """Get a stored value, or ``default`` if missing or unreadable."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM blobs WHERE key = ?", (key,))
        row = cursor.fetchone()

        if not row:
            return default

        try:
            return json.loads(row["value"])
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding unreadable blob %r", key)
            return default

    def set_blob(self, key: str, value: Any):
        """Store a JSON-serialisable value under ``key``."""
        cursor = self.conn.cursor()
        cursor.execute(
            "INSERT OR REPLACE INTO blobs (key, value, modified_at) VALUES (?, ?, ?)",
            (key, json.dumps(value), datetime.now().isoformat())
        )
        self.conn.commit()

    def delete_blob(self, key: str):
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM blobs WHERE key = ?", (key,))
        self.conn.commit()

    def keys(self, prefix: str = "") -> List[str]:
        """List blob keys starting with ``prefix``."""
        cursor = self.conn.cursor()
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        cursor.execute(
            "SELECT key FROM blobs WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
            (escaped + "%",)
        )
        return [row["key"] for row in cursor.fetchall()]

    # ==================== Settings Operations ====================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an application setting."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = cursor.fetchone()

        if not row:
            return default

        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return default

    def set_setting(self, key: str, value: Any):
        """Set an application setting."""
        cursor = self.conn.cursor()
        cursor.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (key, json.dumps(value))
        )
        self.conn.commit()

    # ==================== Backup Operations ====================

    def create_backup(self, backup_dir: Optional[Path] = None) -> Optional[Path]:
        """Write a consistent snapshot of the store and prune old ones.

        Uses the sqlite3 backup API so no -wal/-shm files are needed.
        """
        backup_dir = backup_dir or get_data_dir() / "backups"
        backup_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_file = backup_dir / f"mindsketch_{timestamp}.db"

        dst = sqlite3.connect(str(backup_file))
        try:
            self.conn.backup(dst)
            dst.commit()
        finally:
            dst.close()

        # Clean old backups (keep last N)
        backup_count = int(self.get_setting("backup_count", 10))
        backups = sorted(backup_dir.glob("mindsketch_*.db"), reverse=True)
        for old_backup in backups[backup_count:]:
            old_backup.unlink()

        logger.info("Wrote store backup %s", backup_file)
        return backup_file
