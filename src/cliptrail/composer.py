import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from cliptrail.classifier import classify
from cliptrail.clipboard import ClipboardSource
from cliptrail.config import MULTI_TEXT_SEPARATOR
from cliptrail.history import HistoryStore
from cliptrail.models import (
    ContentPayload,
    FileReferencesPayload,
    HistoryEntry,
    ImageSetPayload,
    MixedPayload,
    TextPayload,
    make_payload,
    new_entry_id,
)

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    """Outcome of a write-back. ``payload`` is what the clipboard accepted."""

    ok: bool
    payload: ContentPayload | None = None
    entry: HistoryEntry | None = None

    def __bool__(self) -> bool:
        return self.ok


def compose(
    entries: Iterable[HistoryEntry],
    path_exists: Callable[[str], bool] = os.path.exists,
    separator: str = MULTI_TEXT_SEPARATOR,
) -> ContentPayload | None:
    """Merge several entries into one payload.

    Text fragments are de-duplicated and joined, images are flattened in
    order, and file paths that no longer exist are dropped.
    """
    texts: list[str] = []
    images = []
    paths: list[str] = []
    for entry in entries:
        payload = entry.payload
        if payload.text is not None and payload.text not in texts:
            texts.append(payload.text)
        images.extend(payload.images)
        for path in payload.paths:
            if path not in paths and path_exists(path):
                paths.append(path)

    text = separator.join(texts) if texts else None
    return make_payload(text=text, images=images, paths=paths)


def fallback_chain(payload: ContentPayload) -> list[ContentPayload]:
    """Representations to try, most complete first."""
    chain: list[ContentPayload] = [payload]
    if isinstance(payload, MixedPayload) and payload.text is not None:
        chain.append(TextPayload(payload.text))
    if payload.images:
        chain.append(ImageSetPayload(payload.images))
        chain.append(ImageSetPayload(payload.images[:1]))
    if payload.paths:
        chain.append(FileReferencesPayload(payload.paths))
        chain.append(FileReferencesPayload(payload.paths[:1]))

    unique: list[ContentPayload] = []
    for candidate in chain:
        if candidate not in unique:
            unique.append(candidate)
    return unique


class WriteBackComposer:
    def __init__(
        self,
        source: ClipboardSource,
        arm_guard: Callable[[], None],
        store: HistoryStore,
        clock: Callable[[], datetime] = datetime.now,
        path_exists: Callable[[str], bool] = os.path.exists,
        separator: str = MULTI_TEXT_SEPARATOR,
    ):
        self._source = source
        self._arm_guard = arm_guard
        self._store = store
        self._clock = clock
        self._path_exists = path_exists
        self._separator = separator

    def write_single(self, entry: HistoryEntry) -> WriteResult:
        written = self._write(entry.payload)
        if written is None:
            logger.warning("Could not write entry %s to the clipboard", entry.id)
            return WriteResult(ok=False)
        return WriteResult(ok=True, payload=written)

    def write_multiple(self, entries: Iterable[HistoryEntry]) -> WriteResult:
        """Write a merged payload and record it as a new history entry.

        The recorded entry reflects the representation actually accepted,
        and nothing is recorded when every representation fails. ``entry`` is
        None when pinned entries fill the history and the merge was evicted.
        """
        entries = list(entries)
        merged = compose(entries, self._path_exists, self._separator)
        if merged is None:
            logger.info("Nothing to write from %d selected entries", len(entries))
            return WriteResult(ok=False)

        written = self._write(merged)
        if written is None:
            logger.warning("Clipboard rejected every representation of %d merged entries", len(entries))
            return WriteResult(ok=False)

        entry = HistoryEntry(
            id=new_entry_id(),
            payload=written,
            timestamp=self._clock(),
            category=classify(written),
        )
        evicted = self._store.insert(entry)
        if any(e.id == entry.id for e in evicted):
            return WriteResult(ok=True, payload=written)
        return WriteResult(ok=True, payload=written, entry=entry)

    def _write(self, payload: ContentPayload) -> ContentPayload | None:
        for candidate in fallback_chain(payload):
            # Armed before every attempt: a failed write may still bump the counter.
            self._arm_guard()
            try:
                accepted = self._source.write_payload(candidate)
            except Exception:
                logger.exception("Clipboard write raised for %s payload", candidate.kind)
                accepted = False
            if accepted:
                return candidate
            logger.debug("Clipboard rejected %s payload, trying a simpler one", candidate.kind)
        return None
