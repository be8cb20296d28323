import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from pathlib import PurePath

from cliptrail.config import DEFAULT_MAX_ENTRIES
from cliptrail.models import Category, ContentPayload, HistoryEntry
from cliptrail.persistence import PersistenceMirror

logger = logging.getLogger(__name__)

Predicate = Callable[[HistoryEntry], bool]


class HistoryStore:
    """Ordered clipboard history, most recent first.

    Order is insertion order and never changes afterwards; pinning only
    exempts an entry from eviction. Every mutation is mirrored to the
    persistence layer, but the in-memory list is the source of truth and
    is not rolled back when a mirror write fails.
    """

    def __init__(self, persistence: PersistenceMirror | None = None, max_size: int = DEFAULT_MAX_ENTRIES):
        self._entries: list[HistoryEntry] = []
        self._persistence = persistence
        self._selection: set[str] = set()
        self.max_size = max_size

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    def __contains__(self, entry_id: str) -> bool:
        return self.get(entry_id) is not None

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    def get(self, entry_id: str) -> HistoryEntry | None:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def recent(self, limit: int) -> list[HistoryEntry]:
        return self._entries[:limit]

    def load(self, entries: Iterable[HistoryEntry]) -> None:
        """Seed the store from persisted entries, already newest first."""
        self._entries = list(entries)
        self._selection.clear()
        evicted = self._enforce_ceiling()
        logger.info("Loaded %d history entries (%d evicted)", len(self._entries), len(evicted))

    def insert(self, entry: HistoryEntry, durable: bool = False) -> list[HistoryEntry]:
        """Prepend ``entry`` and evict the oldest unpinned entries over the ceiling.

        Returns the evicted entries. When pinned entries already fill the
        ceiling that includes ``entry`` itself, which is then never persisted.
        """
        if self.get(entry.id) is not None:
            raise ValueError(f"entry id {entry.id} already in history")
        self._entries.insert(0, entry)
        evicted = self._trim_to_ceiling()
        if self._persistence is not None and all(e is not entry for e in evicted):
            self._persistence.save(entry, durable=durable)
        for old in evicted:
            if old is not entry:
                self._mirror_delete(old.id, False)
        return evicted

    def delete(self, entry_ids: Iterable[str], durable: bool = False) -> int:
        ids = set(entry_ids)
        removed = [e for e in self._entries if e.id in ids]
        if not removed:
            self._selection -= ids
            return 0
        self._entries = [e for e in self._entries if e.id not in ids]
        self._selection -= ids
        for entry in removed:
            self._mirror_delete(entry.id, durable)
        return len(removed)

    def clear_all(self, durable: bool = False) -> None:
        self._entries.clear()
        self._selection.clear()
        if self._persistence is not None:
            self._persistence.delete_all(durable=durable)

    def set_pinned(self, entry_id: str, pinned: bool, durable: bool = False) -> bool:
        entry = self.get(entry_id)
        if entry is None:
            return False
        entry.is_pinned = pinned
        self._mirror_update(entry, durable)
        if not pinned:
            self._enforce_ceiling()
        return True

    def toggle_pin(self, entry_id: str, durable: bool = False) -> bool:
        entry = self.get(entry_id)
        if entry is None:
            return False
        new_pinned = not entry.is_pinned
        self.set_pinned(entry_id, new_pinned, durable=durable)
        return new_pinned

    def set_title(self, entry_id: str, title: str | None, durable: bool = False) -> bool:
        entry = self.get(entry_id)
        if entry is None:
            return False
        entry.title = title or None
        self._mirror_update(entry, durable)
        return True

    def replace_content(
        self,
        entry_id: str,
        payload: ContentPayload,
        title: str | None = None,
        durable: bool = False,
    ) -> bool:
        """Swap an entry's payload in place. The category is left as captured."""
        entry = self.get(entry_id)
        if entry is None:
            return False
        entry.payload = payload
        if title is not None:
            entry.title = title or None
        self._mirror_update(entry, durable)
        return True

    def search(self, query: str) -> list[HistoryEntry]:
        """Case-insensitive substring match on text and file names."""
        if not query:
            return list(self._entries)
        needle = query.casefold()
        return [e for e in self._entries if _matches(e, needle)]

    def filter(self, predicate: Predicate) -> list[HistoryEntry]:
        return [e for e in self._entries if predicate(e)]

    # Selection

    @property
    def selected(self) -> list[HistoryEntry]:
        """Selected entries, in history order."""
        return [e for e in self._entries if e.id in self._selection]

    def select(self, entry_id: str) -> bool:
        if self.get(entry_id) is None:
            return False
        self._selection.add(entry_id)
        return True

    def deselect(self, entry_id: str) -> None:
        self._selection.discard(entry_id)

    def toggle_selection(self, entry_id: str) -> bool:
        if entry_id in self._selection:
            self.deselect(entry_id)
            return False
        return self.select(entry_id)

    def clear_selection(self) -> None:
        self._selection.clear()

    def _enforce_ceiling(self) -> list[HistoryEntry]:
        evicted = self._trim_to_ceiling()
        for entry in evicted:
            self._mirror_delete(entry.id, False)
        return evicted

    def _trim_to_ceiling(self) -> list[HistoryEntry]:
        # Pinned entries count toward the ceiling but are never removed.
        ceiling = max(0, self.max_size)
        evicted: list[HistoryEntry] = []
        unpinned = sum(1 for e in self._entries if not e.is_pinned)
        while len(self._entries) > ceiling and unpinned > 0:
            for index in range(len(self._entries) - 1, -1, -1):
                if not self._entries[index].is_pinned:
                    evicted.append(self._entries.pop(index))
                    unpinned -= 1
                    break
        for entry in evicted:
            self._selection.discard(entry.id)
            logger.debug("Evicted entry %s", entry.id)
        return evicted

    def _mirror_update(self, entry: HistoryEntry, durable: bool) -> None:
        if self._persistence is not None:
            self._persistence.update(entry, durable=durable)

    def _mirror_delete(self, entry_id: str, durable: bool) -> None:
        if self._persistence is not None:
            self._persistence.delete(entry_id, durable=durable)


def _matches(entry: HistoryEntry, needle: str) -> bool:
    text = entry.payload.text
    if text is not None and needle in text.casefold():
        return True
    return any(needle in PurePath(p).name.casefold() for p in entry.payload.paths)


def pinned() -> Predicate:
    return lambda entry: entry.is_pinned


def today(now: Callable[[], datetime] = datetime.now) -> Predicate:
    def _predicate(entry: HistoryEntry) -> bool:
        return entry.timestamp.date() == now().date()

    return _predicate


def created_within(period: timedelta, now: Callable[[], datetime] = datetime.now) -> Predicate:
    def _predicate(entry: HistoryEntry) -> bool:
        return now() - entry.timestamp <= period

    return _predicate


def in_category(name: Category | str) -> Predicate:
    value = name.value if isinstance(name, Category) else name
    return lambda entry: entry.category.value == value


def contains_text(query: str) -> Predicate:
    needle = query.casefold()
    return lambda entry: _matches(entry, needle)


def from_application(identifier: str) -> Predicate:
    return lambda entry: entry.source_app is not None and entry.source_app.identifier == identifier


def all_of(*predicates: Predicate) -> Predicate:
    return lambda entry: all(p(entry) for p in predicates)
