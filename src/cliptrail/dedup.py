import logging
from collections.abc import Iterable

from cliptrail.config import DEDUP_WINDOW
from cliptrail.models import ContentPayload, HistoryEntry
from cliptrail.utils import dimensions_match

logger = logging.getLogger(__name__)

IMAGE_DIMENSION_TOLERANCE = 1


def is_duplicate(
    candidate: ContentPayload,
    existing: HistoryEntry,
    candidate_id: str | None = None,
) -> bool:
    """Heuristic equivalence between a fresh capture and a stored entry.

    Single images are compared by pixel size only, never by content.
    """
    if candidate_id is not None and candidate_id == existing.id:
        return True

    other = existing.payload

    if candidate.text is not None and other.text is not None and candidate.text == other.text:
        return True

    if len(candidate.images) == 1 and len(other.images) == 1:
        if dimensions_match(
            candidate.images[0].dimensions,
            other.images[0].dimensions,
            IMAGE_DIMENSION_TOLERANCE,
        ):
            return True

    if candidate.paths and other.paths and set(candidate.paths) == set(other.paths):
        return True

    return False


class DeduplicationFilter:
    """Checks a candidate against the most recent ``window`` history entries."""

    def __init__(self, window: int = DEDUP_WINDOW):
        if window <= 0:
            raise ValueError("window must be > 0")
        self.window = window

    def find_duplicate(
        self,
        candidate: ContentPayload,
        recent: Iterable[HistoryEntry],
        candidate_id: str | None = None,
    ) -> HistoryEntry | None:
        for index, entry in enumerate(recent):
            if index >= self.window:
                break
            if is_duplicate(candidate, entry, candidate_id):
                return entry
        return None

    def accepts(
        self,
        candidate: ContentPayload,
        recent: Iterable[HistoryEntry],
        candidate_id: str | None = None,
    ) -> bool:
        match = self.find_duplicate(candidate, recent, candidate_id)
        if match is not None:
            logger.debug("Dropping capture, duplicate of entry %s", match.id)
            return False
        return True
