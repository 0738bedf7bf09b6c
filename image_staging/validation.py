"""Input checks for user-selected files.

Types are detected from the leading bytes only; file names are never trusted.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from pathlib import Path

MAX_FILE_SIZE = 30 * 1024 * 1024
OCTET_STREAM = "application/octet-stream"

# Leading-byte signatures -> MIME type
_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
    (b"%PDF", "application/pdf"),
)

RIFF_HEADER_LEN = 12


def sniff_mime(data: bytes) -> str | None:
    """Return the MIME type implied by the magic number of ``data``."""
    if not data:
        return None
    if data[:4] == b"RIFF":
        if len(data) >= RIFF_HEADER_LEN and data[8:12] == b"WEBP":
            return "image/webp"
        return None
    for signature, mime in _SIGNATURES:
        if data.startswith(signature):
            return mime
    return None


@dataclass(frozen=True, slots=True)
class ImageAsset:
    """Binary image payload plus the type tag it is encoded as."""

    name: str
    data: bytes = field(repr=False)
    mime_type: str
    last_modified: float = field(default_factory=time.time)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> ImageAsset:
        return cls(name=name, data=bytes(data), mime_type=sniff_mime(data) or OCTET_STREAM)

    @classmethod
    def from_path(cls, path: str | Path) -> ImageAsset:
        p = Path(path)
        return cls(
            name=p.name,
            data=p.read_bytes(),
            mime_type=OCTET_STREAM,
            last_modified=p.stat().st_mtime,
        ).with_sniffed_type()

    def with_sniffed_type(self) -> ImageAsset:
        return replace(self, mime_type=sniff_mime(self.data) or OCTET_STREAM)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class FileRejection:
    """A file that did not make it onto the staging list, and why."""

    file_name: str
    reason: str


def _format_limit(max_size: int) -> str:
    mb = max_size / (1024 * 1024)
    return f"{mb:g}MB"


def validate(asset: ImageAsset, max_size: int = MAX_FILE_SIZE) -> ValidationResult:
    """Check that ``asset`` is an image and below the size ceiling."""
    mime = sniff_mime(asset.data)
    if mime is None or not mime.startswith("image/"):
        return ValidationResult(False, "File must be an image")
    if asset.size > max_size:
        return ValidationResult(False, f"Image must be smaller than {_format_limit(max_size)}")
    return ValidationResult(True)
