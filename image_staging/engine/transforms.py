"""Geometric transforms using pyvips.

Every operation decodes the asset into a libvips image (the drawing surface),
transforms it and re-encodes to the asset's own MIME type. The libvips work
runs in a worker thread so the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import Any, TypeVar

import numpy as np

from image_staging.errors import InvariantViolation, TransformError
from image_staging.logger import get_logger
from image_staging.metrics import metrics
from image_staging.validation import ImageAsset

from .geometry import CropArea

_logger = get_logger("transforms")

RGB_CHANNELS = 3
DEFAULT_MAX_SIZE = 2048
DEFAULT_QUALITY = 0.85
VALID_ROTATIONS = (0, 90, 180, 270)

# MIME type -> (libvips saver suffix, accepts Q, keeps alpha)
_ENCODERS: dict[str, tuple[str, bool, bool]] = {
    "image/jpeg": (".jpg", True, False),
    "image/png": (".png", False, True),
    "image/webp": (".webp", True, True),
    "image/gif": (".gif", False, True),
    "image/tiff": (".tif", False, True),
}
FALLBACK_MIME = "image/png"

T = TypeVar("T")

_pyvips: Any | None = None


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        # Working copies are decoded once per operation; the libvips operation
        # cache would only keep stale surfaces alive.
        with contextlib.suppress(Exception):
            pyvips.cache_set_max(0)
            pyvips.cache_set_max_mem(0)
            pyvips.cache_set_max_files(0)
        _pyvips = pyvips
    return _pyvips


def _load(asset: ImageAsset) -> Any:
    pyvips = _get_pyvips_module()
    try:
        if asset.mime_type == "image/jpeg":
            return pyvips.Image.new_from_buffer(asset.data, "", autorotate=True)
        return pyvips.Image.new_from_buffer(asset.data, "")
    except Exception as exc:
        raise TransformError(f"Failed to load image {asset.name!r}: {exc}") from exc


def _quality_to_q(quality: float) -> int:
    return int(max(1, min(100, round(float(quality) * 100))))


def _encode(image: Any, source: ImageAsset, quality: float) -> ImageAsset:
    mime = source.mime_type if source.mime_type in _ENCODERS else FALLBACK_MIME
    if mime != source.mime_type:
        _logger.debug("no encoder for %s; writing %s as %s", source.mime_type, source.name, mime)
    suffix, lossy, keeps_alpha = _ENCODERS[mime]

    if image.hasalpha() and not keeps_alpha:
        image = image.flatten(background=[0, 0, 0])

    options: dict[str, Any] = {}
    if lossy:
        options["Q"] = _quality_to_q(quality)
    try:
        data = image.write_to_buffer(suffix, **options)
    except Exception as exc:
        raise TransformError(f"Failed to encode {source.name!r} as {mime}: {exc}") from exc
    if not data:
        raise TransformError(f"Encoder produced no output for {source.name!r}")
    return ImageAsset(name=source.name, data=bytes(data), mime_type=mime, last_modified=time.time())


def _run_guarded(op: str, asset: ImageAsset, fn: Callable[[], T]) -> T:
    try:
        with metrics.timed(f"transform.{op}_duration"):
            return fn()
    except (TransformError, InvariantViolation):
        metrics.inc(f"transform.{op}_failed")
        raise
    except Exception as exc:
        metrics.inc(f"transform.{op}_failed")
        _logger.error("%s failed for %s: %s", op, asset.name, exc, exc_info=True)
        raise TransformError(f"{op} failed for {asset.name!r}: {exc}") from exc


def fit_within(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Return the downscaled size of ``width x height`` inside the bounds.

    The binding axis lands exactly on its bound; sizes never grow.
    """
    if width <= max_width and height <= max_height:
        return width, height
    if width / max_width >= height / max_height:
        return max_width, max(1, int(height * max_width / width))
    return max(1, int(width * max_height / height)), max_height


def normalize_rotation(degrees: int) -> int:
    try:
        value = int(degrees) % 360
    except (TypeError, ValueError) as exc:
        raise InvariantViolation(f"rotation must be an integer, got {degrees!r}") from exc
    if value not in VALID_ROTATIONS:
        raise InvariantViolation(f"rotation must be a multiple of 90 degrees, got {degrees!r}")
    return value


def rotated_size(width: int, height: int, degrees: int) -> tuple[int, int]:
    if normalize_rotation(degrees) in (90, 270):
        return height, width
    return width, height


# ---- synchronous implementations (worker thread) ----


def _resize_sync(asset: ImageAsset, max_width: int, max_height: int, quality: float) -> ImageAsset:
    image = _load(asset)
    target_w, target_h = fit_within(image.width, image.height, max_width, max_height)
    if (target_w, target_h) == (image.width, image.height):
        return asset
    _logger.debug("resize %s: %dx%d -> %dx%d", asset.name, image.width, image.height, target_w, target_h)
    resized = image.thumbnail_image(target_w, height=target_h, size="force")
    return _encode(resized, asset, quality)


def _rotate_sync(asset: ImageAsset, degrees: int, quality: float) -> ImageAsset:
    image = _load(asset)
    if degrees == 90:
        rotated = image.rot90()
    elif degrees == 180:
        rotated = image.rot180()
    else:
        rotated = image.rot270()
    return _encode(rotated, asset, quality)


def _crop_sync(asset: ImageAsset, rect: CropArea, quality: float) -> ImageAsset:
    image = _load(asset)
    left, top, width, height = rect.to_pixels()
    if width < 1 or height < 1:
        raise TransformError(f"Crop rectangle {rect} has no area")
    inside = left >= 0 and top >= 0 and left + width <= image.width and top + height <= image.height
    if inside:
        cropped = image.crop(left, top, width, height)
    else:
        # Surface sized to the rectangle; uncovered pixels stay empty.
        cropped = image.embed(-left, -top, width, height, extend="black")
    return _encode(cropped, asset, quality)


def _dimensions_sync(asset: ImageAsset) -> tuple[int, int]:
    image = _load(asset)
    return int(image.width), int(image.height)


def _to_array_sync(asset: ImageAsset) -> np.ndarray:
    pyvips = _get_pyvips_module()
    image = _load(asset)
    with contextlib.suppress(Exception):
        image = image.colourspace("srgb")
    if image.hasalpha():
        image = image.flatten(background=[0, 0, 0])
    if image.bands > RGB_CHANNELS:
        image = image.extract_band(0, n=RGB_CHANNELS)
    elif image.bands < RGB_CHANNELS:
        image = pyvips.Image.bandjoin([image] * RGB_CHANNELS)
    if image.format != "uchar":
        image = image.cast("uchar")
    mem = image.write_to_memory()
    array = np.frombuffer(mem, dtype=np.uint8).reshape(image.height, image.width, image.bands)
    return array.copy()


# ---- public async API ----


async def resize(
    asset: ImageAsset,
    max_width: int = DEFAULT_MAX_SIZE,
    max_height: int = DEFAULT_MAX_SIZE,
    quality: float = DEFAULT_QUALITY,
) -> ImageAsset:
    """Downscale ``asset`` to fit the bounds, preserving aspect ratio.

    Returns the input object itself when it already fits.
    """
    return await asyncio.to_thread(
        _run_guarded, "resize", asset, lambda: _resize_sync(asset, max_width, max_height, quality)
    )


async def rotate(asset: ImageAsset, degrees: int, quality: float = 0.95) -> ImageAsset:
    """Rotate clockwise by a multiple of 90 degrees (0 returns the input)."""
    value = normalize_rotation(degrees)
    if value == 0:
        return asset
    return await asyncio.to_thread(_run_guarded, "rotate", asset, lambda: _rotate_sync(asset, value, quality))


async def crop(asset: ImageAsset, rect: CropArea, quality: float = 0.95) -> ImageAsset:
    """Cut ``rect`` out of ``asset``; the output is exactly the rectangle's size.

    Small rectangles are accepted here. Whether a tiny selection counts as a
    crop at all is decided by the callers.
    """
    return await asyncio.to_thread(_run_guarded, "crop", asset, lambda: _crop_sync(asset, rect, quality))


async def dimensions(asset: ImageAsset) -> tuple[int, int]:
    return await asyncio.to_thread(_run_guarded, "dimensions", asset, lambda: _dimensions_sync(asset))


async def to_array(asset: ImageAsset) -> np.ndarray:
    """Decode ``asset`` into an RGB uint8 array of shape (height, width, 3)."""
    return await asyncio.to_thread(_run_guarded, "to_array", asset, lambda: _to_array_sync(asset))
