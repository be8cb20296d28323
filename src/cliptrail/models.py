import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import Union

from cliptrail.config import PREVIEW_LENGTH
from cliptrail.utils import get_image_dimensions, truncate_text


class Category(str, Enum):
    TEXT = "text"
    URL = "url"
    SNIPPET = "snippet"
    IMAGE = "image"
    FILE = "file"
    OTHER = "other"


@dataclass(frozen=True)
class RasterImage:
    """An opaque PNG buffer plus the pixel size read from its header."""

    data: bytes
    width: int = 0
    height: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "RasterImage":
        width, height = get_image_dimensions(data)
        return cls(data=data, width=width, height=height)

    @property
    def dimensions(self) -> tuple[int, int]:
        return (self.width, self.height)

    def __repr__(self) -> str:
        return f"RasterImage({self.width}x{self.height}, {len(self.data)} bytes)"


@dataclass(frozen=True)
class TextPayload:
    text: str
    kind = "text"

    @property
    def images(self) -> tuple[RasterImage, ...]:
        return ()

    @property
    def paths(self) -> tuple[str, ...]:
        return ()

    @property
    def byte_size(self) -> int:
        return len(self.text.encode("utf-8"))


@dataclass(frozen=True)
class ImageSetPayload:
    images: tuple[RasterImage, ...]
    kind = "images"

    def __post_init__(self):
        object.__setattr__(self, "images", tuple(self.images))
        if not self.images:
            raise ValueError("ImageSetPayload needs at least one image")

    @property
    def text(self) -> None:
        return None

    @property
    def paths(self) -> tuple[str, ...]:
        return ()

    @property
    def byte_size(self) -> int:
        return sum(len(img.data) for img in self.images)


@dataclass(frozen=True)
class FileReferencesPayload:
    paths: tuple[str, ...]
    kind = "files"

    def __post_init__(self):
        object.__setattr__(self, "paths", tuple(str(p) for p in self.paths))
        if not self.paths:
            raise ValueError("FileReferencesPayload needs at least one path")

    @property
    def text(self) -> None:
        return None

    @property
    def images(self) -> tuple[RasterImage, ...]:
        return ()

    @property
    def byte_size(self) -> int:
        return sum(len(p.encode("utf-8")) for p in self.paths)


@dataclass(frozen=True)
class MixedPayload:
    """Several representations at once. At least one part must be present."""

    text: str | None = None
    images: tuple[RasterImage, ...] = ()
    paths: tuple[str, ...] = ()
    kind = "mixed"

    def __post_init__(self):
        object.__setattr__(self, "images", tuple(self.images))
        object.__setattr__(self, "paths", tuple(str(p) for p in self.paths))
        if self.text is None and not self.images and not self.paths:
            raise ValueError("MixedPayload needs text, images or file paths")

    @property
    def byte_size(self) -> int:
        size = len(self.text.encode("utf-8")) if self.text is not None else 0
        size += sum(len(img.data) for img in self.images)
        return size + sum(len(p.encode("utf-8")) for p in self.paths)


ContentPayload = Union[TextPayload, ImageSetPayload, FileReferencesPayload, MixedPayload]


def make_payload(
    text: str | None = None,
    images: tuple[RasterImage, ...] | list[RasterImage] = (),
    paths: tuple[str, ...] | list[str] = (),
) -> ContentPayload | None:
    """Return the narrowest payload for the given parts, or None if all are empty."""
    parts = sum(1 for part in (text is not None, bool(images), bool(paths)) if part)
    if parts == 0:
        return None
    if parts > 1:
        return MixedPayload(text=text, images=tuple(images), paths=tuple(paths))
    if text is not None:
        return TextPayload(text)
    if images:
        return ImageSetPayload(tuple(images))
    return FileReferencesPayload(tuple(paths))


@dataclass(frozen=True)
class SourceApplication:
    identifier: str
    display_name: str | None = None


def new_entry_id() -> str:
    return uuid.uuid4().hex


@dataclass
class HistoryEntry:
    id: str
    payload: ContentPayload
    timestamp: datetime
    category: Category
    is_pinned: bool = False
    title: str | None = None
    source_app: SourceApplication | None = None

    @property
    def preview(self) -> str:
        if self.title:
            return truncate_text(self.title, PREVIEW_LENGTH)
        payload = self.payload
        if payload.text:
            return truncate_text(payload.text, PREVIEW_LENGTH)
        if payload.images:
            first = payload.images[0]
            label = f"Image: {first.width}x{first.height}" if first.width > 0 else "Image"
            if len(payload.images) > 1:
                label = f"{len(payload.images)} images, {label}"
            return f"[{label}]"
        if payload.paths:
            name = PurePath(payload.paths[0]).name
            if len(payload.paths) == 1:
                return truncate_text(name, PREVIEW_LENGTH)
            return truncate_text(f"{len(payload.paths)} files: {name}, ...", PREVIEW_LENGTH)
        return ""
