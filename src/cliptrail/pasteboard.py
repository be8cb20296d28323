import logging

from AppKit import (
    NSBitmapImageRep,
    NSFilenamesPboardType,
    NSPasteboard,
    NSPasteboardItem,
    NSPasteboardTypePNG,
    NSPasteboardTypeString,
    NSPasteboardTypeTIFF,
    NSWorkspace,
)
from Foundation import NSURL, NSData

from cliptrail.config import MAX_IMAGE_SIZE, MAX_TEXT_SIZE
from cliptrail.models import ContentPayload, RasterImage, SourceApplication, make_payload

logger = logging.getLogger(__name__)

NS_PNG_FILE_TYPE = 4  # NSBitmapImageFileTypePNG


class MacPasteboard:
    """ClipboardSource over the general NSPasteboard."""

    def __init__(self):
        self._pasteboard = NSPasteboard.generalPasteboard()

    def change_counter(self) -> int:
        return int(self._pasteboard.changeCount())

    def frontmost_application(self) -> SourceApplication | None:
        app = NSWorkspace.sharedWorkspace().frontmostApplication()
        if app is None:
            return None
        identifier = app.bundleIdentifier()
        if not identifier:
            return None
        return SourceApplication(str(identifier), str(app.localizedName() or "") or None)

    def content_markers(self) -> set[str]:
        types = self._pasteboard.types()
        if types is None:
            return set()
        return {str(t) for t in types}

    def read_payload(self) -> ContentPayload | None:
        types = self._pasteboard.types()
        if types is None:
            return None

        # Finder puts the file names and an icon next to the file list; the list wins.
        if NSFilenamesPboardType in types:
            paths = self._read_files()
            if paths:
                return make_payload(paths=paths)

        text = self._read_text() if NSPasteboardTypeString in types else None
        images = self._read_images()
        return make_payload(text=text, images=images)

    def _read_text(self) -> str | None:
        text = self._pasteboard.stringForType_(NSPasteboardTypeString)
        if not text:
            return None
        text = str(text)
        if len(text.encode("utf-8")) > MAX_TEXT_SIZE:
            logger.warning("Text too large, skipping")
            return None
        return text

    def _read_images(self) -> list[RasterImage]:
        images = []
        for item in self._pasteboard.pasteboardItems() or []:
            img_bytes = self._item_png(item)
            if img_bytes is None:
                continue
            if len(img_bytes) > MAX_IMAGE_SIZE:
                logger.warning("Image too large (%d bytes), skipping", len(img_bytes))
                continue
            images.append(RasterImage.from_bytes(img_bytes))
        return images

    @staticmethod
    def _item_png(item) -> bytes | None:
        data = item.dataForType_(NSPasteboardTypePNG)
        if data is not None:
            return bytes(data)
        data = item.dataForType_(NSPasteboardTypeTIFF)
        if data is None:
            return None
        bitmap_rep = NSBitmapImageRep.imageRepWithData_(data)
        if not bitmap_rep:
            return None
        png_data = bitmap_rep.representationUsingType_properties_(NS_PNG_FILE_TYPE, None)
        return bytes(png_data) if png_data else None

    def _read_files(self) -> list[str]:
        filenames = self._pasteboard.propertyListForType_(NSFilenamesPboardType)
        if not filenames:
            return []
        return [str(f) for f in filenames]

    def write_payload(self, payload: ContentPayload) -> bool:
        if payload.kind == "text":
            self._pasteboard.clearContents()
            return bool(self._pasteboard.setString_forType_(payload.text, NSPasteboardTypeString))

        objects = []
        if payload.text is not None:
            item = NSPasteboardItem.alloc().init()
            item.setString_forType_(payload.text, NSPasteboardTypeString)
            objects.append(item)
        for image in payload.images:
            item = NSPasteboardItem.alloc().init()
            ns_data = NSData.dataWithBytes_length_(image.data, len(image.data))
            item.setData_forType_(ns_data, NSPasteboardTypePNG)
            objects.append(item)
        objects.extend(NSURL.fileURLWithPath_(path) for path in payload.paths)
        if not objects:
            return False

        self._pasteboard.clearContents()
        return bool(self._pasteboard.writeObjects_(objects))
