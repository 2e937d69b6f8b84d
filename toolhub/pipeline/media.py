"""
Media type detection for uploaded files.

A file is identified by its extension, cross-checked against the declared
content type (browsers misreport it, so generic values are tolerated) and,
for binary formats, against the leading bytes of the file.
"""

from enum import Enum
from pathlib import PurePath
from typing import Dict, FrozenSet, Optional

SNIFF_BYTES = 16


class MediaType(str, Enum):
    """Media types the operations understand."""
    PDF = "application/pdf"
    DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    JPEG = "image/jpeg"
    PNG = "image/png"
    GIF = "image/gif"
    WEBP = "image/webp"
    TIFF = "image/tiff"
    BMP = "image/bmp"
    TEXT = "text/plain"
    HTML = "text/html"


RASTER_IMAGES: FrozenSet[MediaType] = frozenset({
    MediaType.JPEG,
    MediaType.PNG,
    MediaType.GIF,
    MediaType.WEBP,
    MediaType.TIFF,
    MediaType.BMP,
})

EXTENSIONS: Dict[str, MediaType] = {
    ".pdf": MediaType.PDF,
    ".docx": MediaType.DOCX,
    ".jpg": MediaType.JPEG,
    ".jpeg": MediaType.JPEG,
    ".png": MediaType.PNG,
    ".gif": MediaType.GIF,
    ".webp": MediaType.WEBP,
    ".tif": MediaType.TIFF,
    ".tiff": MediaType.TIFF,
    ".bmp": MediaType.BMP,
    ".txt": MediaType.TEXT,
    ".html": MediaType.HTML,
    ".htm": MediaType.HTML,
}

_CONTENT_TYPE_ALIASES: Dict[MediaType, FrozenSet[str]] = {
    MediaType.PDF: frozenset({"application/x-pdf"}),
    MediaType.JPEG: frozenset({"image/jpg", "image/pjpeg"}),
    MediaType.BMP: frozenset({"image/x-ms-bmp", "image/x-bmp"}),
    MediaType.TIFF: frozenset({"image/tif"}),
    MediaType.DOCX: frozenset({"application/zip"}),
}

GENERIC_CONTENT_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})


def media_type_for_name(filename: str) -> Optional[MediaType]:
    """Map a filename to a media type by extension (case-insensitive)."""
    return EXTENSIONS.get(PurePath(filename or "").suffix.lower())


def extensions_for(media_types) -> list[str]:
    """Sorted extensions accepted for a set of media types."""
    return sorted(ext for ext, media in EXTENSIONS.items() if media in media_types)


def content_type_agrees(media_type: MediaType, declared: Optional[str]) -> bool:
    """Whether a declared Content-Type is compatible with the detected type."""
    value = (declared or "").split(";", 1)[0].strip().lower()
    if value in GENERIC_CONTENT_TYPES or value == media_type.value:
        return True
    return value in _CONTENT_TYPE_ALIASES.get(media_type, frozenset())


def signature_matches(media_type: MediaType, header: bytes) -> bool:
    """Check the leading bytes of a file against the type's magic number."""
    if media_type is MediaType.PDF:
        return header.startswith(b"%PDF-")
    if media_type is MediaType.DOCX:
        return header.startswith(b"PK\x03\x04")
    if media_type is MediaType.JPEG:
        return header.startswith(b"\xff\xd8\xff")
    if media_type is MediaType.PNG:
        return header.startswith(b"\x89PNG\r\n\x1a\n")
    if media_type is MediaType.GIF:
        return header[:6] in (b"GIF87a", b"GIF89a")
    if media_type is MediaType.WEBP:
        return header[:4] == b"RIFF" and header[8:12] == b"WEBP"
    if media_type is MediaType.TIFF:
        return header[:4] in (b"II*\x00", b"MM\x00*")
    if media_type is MediaType.BMP:
        return header.startswith(b"BM")
    # Text formats have no signature.
    return True
