"""Category assignment for captured clipboard payloads."""

from cliptrail.models import Category, ContentPayload

URL_PREFIXES = ("http://", "https://")
LONG_TEXT_THRESHOLD = 100


def classify(payload: ContentPayload) -> Category:
    """Return the category for a payload.

    Rules are checked in order and the first match wins: images, URLs,
    multi-line or long text, short text, files, then anything else.
    """
    if payload.images:
        return Category.IMAGE

    text = payload.text
    if text is not None:
        if text.startswith(URL_PREFIXES):
            return Category.URL
        if "\n" in text or len(text) > LONG_TEXT_THRESHOLD:
            return Category.TEXT
        return Category.SNIPPET

    if payload.paths:
        return Category.FILE

    return Category.OTHER
