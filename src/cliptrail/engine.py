import logging
import os
import queue
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from datetime import datetime

from cliptrail.classifier import classify
from cliptrail.clipboard import ClipboardSource
from cliptrail.composer import WriteBackComposer, WriteResult
from cliptrail.config import DEDUP_WINDOW, Settings, load_settings
from cliptrail.dedup import DeduplicationFilter
from cliptrail.detector import ChangeDetector, Detection, DetectorPhase, EngineState
from cliptrail.history import HistoryStore, Predicate
from cliptrail.models import ContentPayload, HistoryEntry, new_entry_id
from cliptrail.persistence import PersistenceMirror

logger = logging.getLogger(__name__)


class ClipboardEngine:
    """Owns the capture pipeline and the history it feeds.

    All state lives here and is only touched from the context that calls
    ``tick``. Other threads hand work over with ``post``; posted calls run
    at the start of the next tick.
    """

    def __init__(
        self,
        source: ClipboardSource,
        persistence: PersistenceMirror | None = None,
        settings_provider: Callable[[], Settings] = load_settings,
        clock: Callable[[], float] = time.time,
        now: Callable[[], datetime] = datetime.now,
        dedup_window: int = DEDUP_WINDOW,
        path_exists: Callable[[str], bool] = os.path.exists,
    ):
        self.state = EngineState()
        self._source = source
        self._persistence = persistence
        self._settings_provider = settings_provider
        self._settings = Settings()
        self._now = now
        self.detector = ChangeDetector(source, clock=clock)
        self.dedup = DeduplicationFilter(dedup_window)
        self.store = HistoryStore(persistence)
        self.composer = WriteBackComposer(
            source,
            arm_guard=lambda: self.detector.arm_self_write(self.state),
            store=self.store,
            clock=now,
            path_exists=path_exists,
        )
        self._inbox: queue.SimpleQueue = queue.SimpleQueue()
        self._listeners: list[Callable[[], None]] = []

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def monitoring(self) -> bool:
        return self.state.monitoring

    def start(self) -> None:
        """Seed history from persistence and arm at the current clipboard."""
        self._refresh_settings()
        if self._persistence is not None:
            self.store.load(self._persistence.fetch_all())
        self.detector.start(self.state)
        logger.info("Clipboard engine started with %d entries", len(self.store))

    def shutdown(self) -> None:
        self.run_pending()
        if self._persistence is not None:
            self._persistence.close()

    def tick(self) -> HistoryEntry | None:
        """Run one capture cycle. Returns the new entry, if one was recorded."""
        self.run_pending()
        settings = self._refresh_settings()

        try:
            detection = self.detector.evaluate(self.state, settings)
        except Exception:
            logger.exception("Error reading clipboard")
            return None

        if not detection.accepted:
            return None
        return self._record(detection)

    def _record(self, detection: Detection) -> HistoryEntry | None:
        entry_id = new_entry_id()
        if not self.dedup.accepts(detection.payload, self.store.recent(self.dedup.window), entry_id):
            return None

        entry = HistoryEntry(
            id=entry_id,
            payload=detection.payload,
            timestamp=self._now(),
            category=classify(detection.payload),
            source_app=detection.source_app,
        )
        evicted = self.store.insert(entry)
        if any(e.id == entry.id for e in evicted):
            logger.debug("Dropped capture %s, history is full of pinned entries", entry.id)
            return None
        logger.debug("Captured %s entry %s", entry.category.value, entry.id)
        self._notify()
        return entry

    def _refresh_settings(self) -> Settings:
        try:
            self._settings = self._settings_provider()
        except Exception:
            logger.exception("Could not load settings, keeping previous values")
        self.store.max_size = self._settings.max_history_size
        return self._settings

    # Cross-context hand-off

    def post(self, func: Callable, *args, **kwargs) -> Future:
        """Queue ``func`` to run on the engine's context; safe from any thread."""
        future: Future = Future()
        self._inbox.put((future, func, args, kwargs))
        return future

    def run_pending(self) -> int:
        ran = 0
        while True:
            try:
                future, func, args, kwargs = self._inbox.get_nowait()
            except queue.Empty:
                return ran
            ran += 1
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

    # Listeners

    def add_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                logger.exception("History listener failed")

    # Monitoring control

    def pause(self) -> None:
        self.state.monitoring = False
        self.state.phase = DetectorPhase.IDLE
        logger.info("Clipboard monitoring paused")

    def resume(self) -> None:
        # Re-arm at the current counter so copies made while paused are skipped.
        self.detector.start(self.state)
        self.state.monitoring = True
        logger.info("Clipboard monitoring resumed")

    # Write-back

    def copy_entry(self, entry_id: str) -> WriteResult:
        entry = self.store.get(entry_id)
        if entry is None:
            return WriteResult(ok=False)
        return self.composer.write_single(entry)

    def copy_entries(self, entry_ids: Iterable[str]) -> WriteResult:
        wanted = set(entry_ids)
        entries = [e for e in self.store.entries if e.id in wanted]
        if len(entries) == 1:
            return self.composer.write_single(entries[0])
        result = self.composer.write_multiple(entries)
        if result.entry is not None:
            self._notify()
        return result

    def copy_selected(self) -> WriteResult:
        return self.copy_entries(e.id for e in self.store.selected)

    # History operations

    def delete(self, entry_ids: Iterable[str], durable: bool = False) -> int:
        removed = self.store.delete(entry_ids, durable=durable)
        if removed:
            self._notify()
        return removed

    def clear_all(self, durable: bool = False) -> None:
        self.store.clear_all(durable=durable)
        self._notify()

    def set_pinned(self, entry_id: str, pinned: bool, durable: bool = False) -> bool:
        changed = self.store.set_pinned(entry_id, pinned, durable=durable)
        if changed:
            self._notify()
        return changed

    def toggle_pin(self, entry_id: str, durable: bool = False) -> bool:
        if entry_id not in self.store:
            return False
        pinned = self.store.toggle_pin(entry_id, durable=durable)
        self._notify()
        return pinned

    def set_title(self, entry_id: str, title: str | None, durable: bool = False) -> bool:
        changed = self.store.set_title(entry_id, title, durable=durable)
        if changed:
            self._notify()
        return changed

    def replace_content(
        self,
        entry_id: str,
        payload: ContentPayload,
        title: str | None = None,
        durable: bool = False,
    ) -> bool:
        changed = self.store.replace_content(entry_id, payload, title, durable=durable)
        if changed:
            self._notify()
        return changed

    def search(self, query: str) -> list[HistoryEntry]:
        return self.store.search(query)

    def filter(self, predicate: Predicate) -> list[HistoryEntry]:
        return self.store.filter(predicate)
