import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from cliptrail.config import DB_PATH, IMAGE_DIR
from cliptrail.models import (
    Category,
    ContentPayload,
    FileReferencesPayload,
    HistoryEntry,
    ImageSetPayload,
    MixedPayload,
    RasterImage,
    SourceApplication,
    TextPayload,
)
from cliptrail.utils import compute_hash

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS history_entries (
    id             TEXT PRIMARY KEY,
    kind           TEXT NOT NULL CHECK(kind IN ('text', 'images', 'files', 'mixed')),
    text_content   TEXT,
    image_paths    TEXT,
    file_paths     TEXT,
    created_at     TEXT NOT NULL,
    category       TEXT NOT NULL,
    pinned         INTEGER NOT NULL DEFAULT 0,
    title          TEXT,
    source_app     TEXT,
    source_app_name TEXT
);

CREATE INDEX IF NOT EXISTS idx_created_at ON history_entries(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_category ON history_entries(category);
"""


class SqliteStorage:
    """PersistenceBridge backed by sqlite, with image data kept as PNG files."""

    def __init__(self, db_path: str | Path | None = None, image_dir: str | Path | None = None):
        self._db_path = str(db_path) if db_path else str(DB_PATH)
        self._image_dir = Path(image_dir) if image_dir else IMAGE_DIR
        # Writes arrive on the persistence worker, the initial load on the main thread.
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._conn.execute("PRAGMA journal_mode=WAL")
        self.init_db()

    def init_db(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._migrate_schema()
            self._conn.commit()

    def _migrate_schema(self) -> None:
        """Add columns introduced after the first release."""
        cursor = self._conn.execute("PRAGMA table_info(history_entries)")
        columns = {row[1] for row in cursor.fetchall()}
        if "title" not in columns:
            self._conn.execute("ALTER TABLE history_entries ADD COLUMN title TEXT")
        if "source_app_name" not in columns:
            self._conn.execute("ALTER TABLE history_entries ADD COLUMN source_app_name TEXT")

    def save(self, entry: HistoryEntry) -> None:
        self._upsert(entry)

    def update(self, entry: HistoryEntry) -> None:
        self._upsert(entry)

    def delete(self, entry_id: str) -> None:
        with self._lock:
            row = self._conn.execute(
                "SELECT image_paths FROM history_entries WHERE id = ?", (entry_id,)
            ).fetchone()
            self._conn.execute("DELETE FROM history_entries WHERE id = ?", (entry_id,))
            self._conn.commit()
            if row is not None:
                self._delete_unreferenced(_load_list(row["image_paths"]))

    def delete_all(self) -> None:
        with self._lock:
            rows = self._conn.execute(
                "SELECT image_paths FROM history_entries WHERE image_paths IS NOT NULL"
            ).fetchall()
            self._conn.execute("DELETE FROM history_entries")
            self._conn.commit()
            for row in rows:
                self._delete_files(_load_list(row["image_paths"]))

    def fetch_all(self) -> list[HistoryEntry]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM history_entries ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        entries = []
        for row in rows:
            try:
                entries.append(self._row_to_entry(row))
            except (ValueError, OSError):
                logger.warning("Skipping unreadable history entry %s", row["id"], exc_info=True)
        return entries

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) as cnt FROM history_entries").fetchone()
        return row["cnt"]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _upsert(self, entry: HistoryEntry) -> None:
        payload = entry.payload
        image_paths = [str(self._save_image(img)) for img in payload.images]
        source = entry.source_app
        with self._lock:
            previous = self._conn.execute(
                "SELECT image_paths FROM history_entries WHERE id = ?", (entry.id,)
            ).fetchone()
            self._conn.execute(
                """INSERT INTO history_entries
                   (id, kind, text_content, image_paths, file_paths, created_at, category, pinned, title, source_app, source_app_name)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       kind = excluded.kind,
                       text_content = excluded.text_content,
                       image_paths = excluded.image_paths,
                       file_paths = excluded.file_paths,
                       pinned = excluded.pinned,
                       title = excluded.title""",
                (
                    entry.id,
                    payload.kind,
                    payload.text,
                    json.dumps(image_paths) if image_paths else None,
                    json.dumps(list(payload.paths)) if payload.paths else None,
                    entry.timestamp.isoformat(),
                    entry.category.value,
                    int(entry.is_pinned),
                    entry.title,
                    source.identifier if source else None,
                    source.display_name if source else None,
                ),
            )
            self._conn.commit()
            if previous is not None:
                stale = set(_load_list(previous["image_paths"])) - set(image_paths)
                self._delete_unreferenced(stale)

    def _save_image(self, image: RasterImage) -> Path:
        self._image_dir.mkdir(parents=True, exist_ok=True)
        path = self._image_dir / (compute_hash(image.data)[:16] + ".png")
        if not path.exists():
            path.write_bytes(image.data)
        return path

    def _delete_unreferenced(self, paths) -> None:
        for file_path in paths:
            still_used = self._conn.execute(
                "SELECT 1 FROM history_entries WHERE image_paths LIKE ? LIMIT 1",
                (f"%{json.dumps(file_path)[1:-1]}%",),
            ).fetchone()
            if still_used is None:
                self._delete_files([file_path])

    @staticmethod
    def _delete_files(paths) -> None:
        for file_path in paths:
            if file_path:
                p = Path(file_path)
                if p.exists():
                    p.unlink()

    def _row_to_entry(self, row: sqlite3.Row) -> HistoryEntry:
        keys = row.keys()
        title = row["title"] if "title" in keys else None
        app_name = row["source_app_name"] if "source_app_name" in keys else None
        source_app = SourceApplication(row["source_app"], app_name) if row["source_app"] else None
        return HistoryEntry(
            id=row["id"],
            payload=self._row_to_payload(row),
            timestamp=datetime.fromisoformat(row["created_at"]),
            category=Category(row["category"]),
            is_pinned=bool(row["pinned"]),
            title=title,
            source_app=source_app,
        )

    @staticmethod
    def _row_to_payload(row: sqlite3.Row) -> ContentPayload:
        images = tuple(RasterImage.from_bytes(Path(p).read_bytes()) for p in _load_list(row["image_paths"]))
        paths = tuple(_load_list(row["file_paths"]))
        kind = row["kind"]
        if kind == "text":
            return TextPayload(row["text_content"] or "")
        if kind == "images":
            return ImageSetPayload(images)
        if kind == "files":
            return FileReferencesPayload(paths)
        return MixedPayload(text=row["text_content"], images=images, paths=paths)


def _load_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    return list(json.loads(raw))
