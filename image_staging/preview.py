"""Preview URLs for staged images.

A preview URL (``image://staged/<token>``) is a display reference to one
asset's bytes, served to QML by ``StagedImageProvider``. Each URL is owned by
exactly one ``PreviewHandle``; releasing the handle revokes the URL and the
bytes become unreachable through it.
"""

from __future__ import annotations

import threading
import uuid
import weakref
from typing import Any

from PySide6.QtCore import Qt
from PySide6.QtGui import QPixmap
from PySide6.QtQuick import QQuickImageProvider

from .logger import get_logger
from .metrics import metrics
from .validation import ImageAsset

_logger = get_logger("preview")

PROVIDER_ID = "staged"
URL_PREFIX = f"image://{PROVIDER_ID}/"


class PreviewRegistry:
    """Thread-safe table of live preview URLs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[bytes, str]] = {}

    def create(self, asset: ImageAsset) -> PreviewHandle:
        url = f"{URL_PREFIX}{uuid.uuid4().hex}"
        with self._lock:
            self._entries[url] = (asset.data, asset.mime_type)
        metrics.inc("preview.created")
        _logger.debug("preview created %s for %s", url, asset.name)
        return PreviewHandle(self, url)

    def revoke(self, url: str) -> bool:
        with self._lock:
            removed = self._entries.pop(url, None) is not None
        if removed:
            metrics.inc("preview.revoked")
            _logger.debug("preview revoked %s", url)
        return removed

    def resolve(self, url: str) -> bytes | None:
        with self._lock:
            entry = self._entries.get(url)
        return entry[0] if entry else None

    def mime_type(self, url: str) -> str | None:
        with self._lock:
            entry = self._entries.get(url)
        return entry[1] if entry else None

    def is_live(self, url: str) -> bool:
        with self._lock:
            return url in self._entries

    def live_urls(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _revoke_dropped(registry: PreviewRegistry, url: str) -> None:
    if registry.revoke(url):
        metrics.inc("preview.leaked")
        _logger.debug("preview %s was dropped without release; revoked on collection", url)


class PreviewHandle:
    """Owning reference to one preview URL.

    ``release()`` revokes the URL. A handle that is garbage collected without
    being released revokes its URL as well.
    """

    def __init__(self, registry: PreviewRegistry, url: str) -> None:
        self._registry = registry
        self._url = url
        self._finalizer = weakref.finalize(self, _revoke_dropped, registry, url)

    @property
    def url(self) -> str:
        return self._url

    @property
    def released(self) -> bool:
        return not self._finalizer.alive

    def release(self) -> None:
        if self._finalizer.detach() is None:
            return
        self._registry.revoke(self._url)

    def __enter__(self) -> PreviewHandle:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"PreviewHandle({self._url!r}, {state})"


_default_registry: PreviewRegistry | None = None
_default_lock = threading.Lock()


def default_registry() -> PreviewRegistry:
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = PreviewRegistry()
        return _default_registry


class StagedImageProvider(QQuickImageProvider):
    """QML image provider for preview URLs (image://staged/<token>)."""

    def __init__(self, registry: PreviewRegistry | None = None) -> None:
        super().__init__(QQuickImageProvider.ImageType.Pixmap)
        self._registry = registry if registry is not None else default_registry()

    def requestPixmap(self, id: str, size: Any, requestedSize: Any) -> QPixmap:
        data = self._registry.resolve(f"{URL_PREFIX}{id}")
        if not data:
            return QPixmap()

        pix = QPixmap()
        if not pix.loadFromData(data):
            _logger.debug("preview %s could not be decoded for display", id)
            return QPixmap()

        try:
            rw = int(getattr(requestedSize, "width", lambda: 0)())
            rh = int(getattr(requestedSize, "height", lambda: 0)())
        except Exception:
            rw, rh = 0, 0

        if rw > 0 and rh > 0:
            pix = pix.scaled(
                rw,
                rh,
                Qt.AspectRatioMode.KeepAspectRatio,
                Qt.TransformationMode.SmoothTransformation,
            )

        return pix
