"""Pytest configuration.

Preview providers and crop sessions are Qt objects; a single
``QGuiApplication`` is created for the whole session before collection so
Qt modules never run without one. The offscreen platform keeps the suite
runnable without a display.
"""

from __future__ import annotations

import io
import os
from typing import Any

import pytest

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QGuiApplication exists before collecting/running tests."""
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

    try:
        from PySide6.QtGui import QGuiApplication
    except ImportError:
        return

    global _APP

    app = QGuiApplication.instance()
    if app is None:
        # Keep a strong ref so it isn't GC'd mid-session.
        _APP = QGuiApplication([])
    else:
        _APP = app


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    """Close shared stores and shut Qt down cleanly."""
    try:
        from image_staging.store import close_all

        close_all()
    except ImportError:
        pass

    try:
        from PySide6.QtGui import QGuiApplication
    except ImportError:
        return

    app = QGuiApplication.instance()
    if app is None:
        return
    app.quit()
    app.processEvents()


def make_image_bytes(
    width: int,
    height: int,
    fmt: str = "PNG",
    color: tuple[int, int, int] = (200, 30, 30),
) -> bytes:
    from PIL import Image

    img = Image.new("RGB", (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_quadrant_png(width: int, height: int) -> bytes:
    """PNG whose left half is red and right half is blue."""
    from PIL import Image

    img = Image.new("RGB", (width, height), (255, 0, 0))
    img.paste((0, 0, 255), (width // 2, 0, width, height))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_asset():
    from image_staging.validation import ImageAsset

    def _make(width: int = 64, height: int = 48, name: str = "photo.png"):
        return ImageAsset.from_bytes(name, make_image_bytes(width, height, "PNG"))

    return _make


@pytest.fixture
def jpeg_asset():
    from image_staging.validation import ImageAsset

    def _make(width: int = 64, height: int = 48, name: str = "photo.jpg"):
        return ImageAsset.from_bytes(name, make_image_bytes(width, height, "JPEG"))

    return _make


@pytest.fixture
def registry():
    from image_staging.preview import PreviewRegistry

    return PreviewRegistry()
