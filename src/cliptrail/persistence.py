"""Best-effort mirroring of history mutations to durable storage.

The in-memory history is authoritative. Every mutation is forwarded to a
``PersistenceBridge`` on a single background worker so a slow or failing
store never stalls the capture loop. Failures are logged and otherwise
ignored unless the caller asked for durability, in which case the call
waits for the write and raises ``PersistenceError``.
"""

import dataclasses
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol

from cliptrail.models import HistoryEntry

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A durable write was requested and the bridge failed it."""


class PersistenceBridge(Protocol):
    def save(self, entry: HistoryEntry) -> None: ...

    def update(self, entry: HistoryEntry) -> None: ...

    def delete(self, entry_id: str) -> None: ...

    def delete_all(self) -> None: ...

    def fetch_all(self) -> list[HistoryEntry]: ...


class PersistenceMirror:
    def __init__(self, bridge: PersistenceBridge, background: bool = True):
        self._bridge = bridge
        self._executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="cliptrail-persist") if background else None
        )
        self._closed = False

    def save(self, entry: HistoryEntry, durable: bool = False) -> None:
        self._dispatch("save", _snapshot(entry), durable=durable)

    def update(self, entry: HistoryEntry, durable: bool = False) -> None:
        self._dispatch("update", _snapshot(entry), durable=durable)

    def delete(self, entry_id: str, durable: bool = False) -> None:
        self._dispatch("delete", entry_id, durable=durable)

    def delete_all(self, durable: bool = False) -> None:
        self._dispatch("delete_all", durable=durable)

    def fetch_all(self) -> list[HistoryEntry]:
        """Load the stored history, or an empty list if the store fails."""
        try:
            return list(self._bridge.fetch_all())
        except Exception:
            logger.exception("Could not load stored history, starting empty")
            return []

    def flush(self, timeout: float | None = None) -> None:
        """Block until every write queued so far has been attempted."""
        if self._executor is None or self._closed:
            return
        self._executor.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=True)
        close = getattr(self._bridge, "close", None)
        if callable(close):
            close()

    def _dispatch(self, op: str, *args, durable: bool = False) -> None:
        if self._closed:
            logger.warning("Persistence closed, dropping %s", op)
            if durable:
                raise PersistenceError(f"{op} requested after close")
            return

        if self._executor is None:
            self._run(op, args, durable)
            return

        future: Future = self._executor.submit(self._run, op, args, durable)
        if durable:
            future.result()

    def _run(self, op: str, args: tuple, durable: bool) -> None:
        try:
            getattr(self._bridge, op)(*args)
        except Exception as exc:
            logger.exception("Persistence %s failed", op)
            if durable:
                raise PersistenceError(f"{op} failed: {exc}") from exc


def _snapshot(entry: HistoryEntry) -> HistoryEntry:
    # Payloads are immutable; copying the entry shell is enough for the worker.
    return dataclasses.replace(entry)
