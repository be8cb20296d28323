import hashlib
import struct

from cliptrail.config import DATA_DIR, IMAGE_DIR

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def compute_hash(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def truncate_text(text: str, max_len: int) -> str:
    single_line = " ".join(text.split())
    if len(single_line) <= max_len:
        return single_line
    return single_line[: max_len - 3] + "..."


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    IMAGE_DIR.mkdir(parents=True, exist_ok=True)


def get_image_dimensions(png_bytes: bytes) -> tuple[int, int]:
    if len(png_bytes) < 24 or png_bytes[:8] != PNG_SIGNATURE:
        return (0, 0)
    width = struct.unpack(">I", png_bytes[16:20])[0]
    height = struct.unpack(">I", png_bytes[20:24])[0]
    return (width, height)


def dimensions_match(a: tuple[int, int], b: tuple[int, int], tolerance: int = 1) -> bool:
    """True when both axes differ by at most ``tolerance`` pixels."""
    return abs(a[0] - b[0]) <= tolerance and abs(a[1] - b[1]) <= tolerance
