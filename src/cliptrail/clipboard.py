"""The narrow interface the engine needs from a system clipboard."""

from typing import Protocol

from cliptrail.models import ContentPayload, SourceApplication

# Marker types published by well-behaved apps (see nspasteboard.org).
CONCEALED_TYPE = "org.nspasteboard.ConcealedType"
TRANSIENT_TYPE = "org.nspasteboard.TransientType"
AUTO_GENERATED_TYPE = "org.nspasteboard.AutoGeneratedType"
REMOTE_CLIPBOARD_TYPE = "com.apple.is-remote-clipboard"


class ClipboardSource(Protocol):
    def change_counter(self) -> int: ...

    def read_payload(self) -> ContentPayload | None: ...

    def write_payload(self, payload: ContentPayload) -> bool: ...

    def frontmost_application(self) -> SourceApplication | None: ...

    def content_markers(self) -> set[str]: ...
