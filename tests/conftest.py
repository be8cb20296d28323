import struct
from datetime import datetime

import pytest

from cliptrail.classifier import classify
from cliptrail.config import Settings
from cliptrail.models import HistoryEntry, RasterImage, TextPayload, new_entry_id
from cliptrail.storage import SqliteStorage


def png_bytes(width: int, height: int, filler: bytes = b"\x00") -> bytes:
    """A minimal PNG header carrying the given dimensions."""
    header = b"\x89PNG\r\n\x1a\n"
    ihdr = b"\x00\x00\x00\rIHDR"
    return header + ihdr + struct.pack(">I", width) + struct.pack(">I", height) + filler * 100


def make_image(width: int = 100, height: int = 50, filler: bytes = b"\x00") -> RasterImage:
    return RasterImage.from_bytes(png_bytes(width, height, filler))


class FakeClipboard:
    """In-memory ClipboardSource. Writes bump the counter like the real thing."""

    def __init__(self):
        self.counter = 0
        self.payload = None
        self.app = None
        self.markers: set[str] = set()
        self.rejected_kinds: set[str] = set()
        self.writes = []
        self.read_error: Exception | None = None

    def copy(self, payload, app=None, markers=()):
        self.payload = payload
        self.app = app
        self.markers = set(markers)
        self.counter += 1

    def change_counter(self) -> int:
        return self.counter

    def read_payload(self):
        if self.read_error is not None:
            raise self.read_error
        return self.payload

    def write_payload(self, payload) -> bool:
        self.writes.append(payload)
        # A rejected write still touches the pasteboard.
        self.counter += 1
        if payload.kind in self.rejected_kinds:
            return False
        self.payload = payload
        self.markers = set()
        return True

    def frontmost_application(self):
        return self.app

    def content_markers(self) -> set[str]:
        return set(self.markers)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingBridge:
    """PersistenceBridge that keeps rows in a dict and logs every call."""

    def __init__(self, stored=None):
        self.rows: dict[str, HistoryEntry] = {}
        self.calls: list[tuple[str, object]] = []
        self.fail = False
        self.stored = list(stored or [])

    def _record(self, op, arg=None):
        self.calls.append((op, arg))
        if self.fail:
            raise RuntimeError(f"{op} failed")

    def save(self, entry):
        self._record("save", entry.id)
        self.rows[entry.id] = entry

    def update(self, entry):
        self._record("update", entry.id)
        self.rows[entry.id] = entry

    def delete(self, entry_id):
        self._record("delete", entry_id)
        self.rows.pop(entry_id, None)

    def delete_all(self):
        self._record("delete_all")
        self.rows.clear()

    def fetch_all(self):
        self._record("fetch_all")
        return list(self.stored)

    def ops(self, name):
        return [arg for op, arg in self.calls if op == name]


@pytest.fixture
def clipboard():
    return FakeClipboard()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bridge():
    return RecordingBridge()


@pytest.fixture
def settings():
    return Settings(monitoring_interval_seconds=0.5, max_history_size=500)


@pytest.fixture
def storage(tmp_path):
    mgr = SqliteStorage(db_path=":memory:", image_dir=tmp_path / "images")
    yield mgr
    mgr.close()


@pytest.fixture
def make_entry():
    """Factory fixture to create HistoryEntry instances for testing."""

    def _make_entry(
        text: str = "hello world",
        payload=None,
        pinned: bool = False,
        timestamp: datetime | None = None,
        entry_id: str | None = None,
        title: str | None = None,
        source_app=None,
    ) -> HistoryEntry:
        payload = payload if payload is not None else TextPayload(text)
        return HistoryEntry(
            id=entry_id or new_entry_id(),
            payload=payload,
            timestamp=timestamp or datetime.now(),
            category=classify(payload),
            is_pinned=pinned,
            title=title,
            source_app=source_app,
        )

    return _make_entry
