"""Change detection for the polled system clipboard.

Each tick compares the clipboard's change counter with the last one seen.
A change is dropped when it comes from our own write-back (self-write
window), from an excluded application, carries an ignored marker, or
arrives within the monitoring interval of the last accepted change.
Dropped changes still advance the counter, so they are never retried.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from cliptrail.clipboard import (
    AUTO_GENERATED_TYPE,
    CONCEALED_TYPE,
    REMOTE_CLIPBOARD_TYPE,
    TRANSIENT_TYPE,
    ClipboardSource,
)
from cliptrail.config import SELF_WRITE_SUPPRESSION, SELF_WRITE_TIMEOUT, Settings
from cliptrail.models import ContentPayload, SourceApplication

logger = logging.getLogger(__name__)


class DetectorPhase(str, Enum):
    """IDLE until armed at a counter; ARMED or SELF_WRITE_WINDOW between changes."""

    IDLE = "idle"
    ARMED = "armed"
    EVALUATING = "evaluating"
    SELF_WRITE_WINDOW = "self_write_window"


class Verdict(str, Enum):
    PAUSED = "paused"
    UNCHANGED = "unchanged"
    SELF_WRITE = "self_write"
    EXCLUDED_APP = "excluded_app"
    IGNORED_MARKER = "ignored_marker"
    DEBOUNCED = "debounced"
    EMPTY = "empty"
    TOO_LARGE = "too_large"
    ACCEPTED = "accepted"


@dataclass
class EngineState:
    """Mutable detector state, owned by the engine and passed into each tick."""

    last_change_count: int | None = None
    last_accepted_at: float | None = None
    self_write_pending: bool = False
    self_write_at: float | None = None
    phase: DetectorPhase = DetectorPhase.IDLE
    monitoring: bool = True


@dataclass
class Detection:
    verdict: Verdict
    payload: ContentPayload | None = None
    source_app: SourceApplication | None = None

    @property
    def accepted(self) -> bool:
        return self.verdict == Verdict.ACCEPTED


class ChangeDetector:
    def __init__(
        self,
        source: ClipboardSource,
        clock: Callable[[], float] = time.time,
        suppression: float = SELF_WRITE_SUPPRESSION,
        timeout: float = SELF_WRITE_TIMEOUT,
    ):
        self._source = source
        self._clock = clock
        self.suppression = suppression
        self.timeout = timeout

    def start(self, state: EngineState) -> None:
        """Arm the detector at the clipboard's current counter."""
        self.sync(state)
        state.phase = DetectorPhase.ARMED

    def sync(self, state: EngineState) -> None:
        state.last_change_count = self._source.change_counter()

    def arm_self_write(self, state: EngineState) -> None:
        """Mark the next clipboard change as our own write."""
        state.self_write_pending = True
        state.self_write_at = self._clock()
        state.phase = DetectorPhase.SELF_WRITE_WINDOW

    def evaluate(self, state: EngineState, settings: Settings) -> Detection:
        if not state.monitoring:
            return Detection(Verdict.PAUSED)

        if state.phase == DetectorPhase.IDLE:
            # Unarmed: adopt the current counter instead of reporting it as a change.
            self.start(state)
            return Detection(Verdict.UNCHANGED)

        now = self._clock()
        self._expire_self_write(state, now)

        current = self._source.change_counter()
        if current == state.last_change_count:
            return Detection(Verdict.UNCHANGED)
        state.last_change_count = current
        state.phase = DetectorPhase.EVALUATING

        try:
            return self._evaluate_change(state, settings, now)
        finally:
            if state.phase == DetectorPhase.EVALUATING:
                state.phase = DetectorPhase.SELF_WRITE_WINDOW if state.self_write_pending else DetectorPhase.ARMED

    def _evaluate_change(self, state: EngineState, settings: Settings, now: float) -> Detection:
        if state.self_write_pending:
            elapsed = now - state.self_write_at
            state.self_write_pending = False
            state.self_write_at = None
            if 0 <= elapsed < self.suppression:
                logger.debug("Ignoring clipboard change caused by our own write")
                return Detection(Verdict.SELF_WRITE)

        app = self._source.frontmost_application()
        if app is not None and app.identifier in settings.excluded_application_identifiers:
            logger.debug("Ignoring clipboard change from excluded app %s", app.identifier)
            return Detection(Verdict.EXCLUDED_APP, source_app=app)

        ignored = self._ignored_markers(settings) & self._source.content_markers()
        if ignored:
            logger.debug("Ignoring clipboard change marked %s", ", ".join(sorted(ignored)))
            return Detection(Verdict.IGNORED_MARKER, source_app=app)

        if state.last_accepted_at is not None:
            elapsed = now - state.last_accepted_at
            if 0 <= elapsed < settings.monitoring_interval_seconds:
                logger.debug("Dropping clipboard change %.3fs after the last one", elapsed)
                return Detection(Verdict.DEBOUNCED, source_app=app)

        payload = self._source.read_payload()
        if payload is None:
            return Detection(Verdict.EMPTY, source_app=app)

        limit = settings.ignore_size_limit_bytes
        if limit > 0 and payload.byte_size > limit:
            logger.debug("Ignoring clipboard change of %d bytes", payload.byte_size)
            return Detection(Verdict.TOO_LARGE, source_app=app)

        state.last_accepted_at = now
        return Detection(Verdict.ACCEPTED, payload=payload, source_app=app)

    def _expire_self_write(self, state: EngineState, now: float) -> None:
        if not state.self_write_pending:
            return
        elapsed = now - state.self_write_at
        if elapsed > self.timeout or elapsed < 0:
            logger.debug("Self-write guard expired after %.1fs without a change", elapsed)
            state.self_write_pending = False
            state.self_write_at = None
            state.phase = DetectorPhase.ARMED

    @staticmethod
    def _ignored_markers(settings: Settings) -> set[str]:
        markers = set()
        if settings.ignore_concealed:
            markers.add(CONCEALED_TYPE)
        if settings.ignore_transient:
            markers.add(TRANSIENT_TYPE)
        if settings.ignore_auto_generated:
            markers.add(AUTO_GENERATED_TYPE)
        if settings.ignore_remote:
            markers.add(REMOTE_CLIPBOARD_TYPE)
        return markers
