from __future__ import annotations

import asyncio

import numpy as np
import pytest
from conftest import make_image_bytes, make_quadrant_png

from image_staging.engine import transforms
from image_staging.engine.geometry import CropArea
from image_staging.errors import InvariantViolation, TransformError
from image_staging.metrics import metrics
from image_staging.validation import ImageAsset

RED = (255, 0, 0)
BLUE = (0, 0, 255)


def _png(width: int, height: int) -> ImageAsset:
    return ImageAsset.from_bytes("t.png", make_image_bytes(width, height, "PNG"))


def _dims(asset: ImageAsset) -> tuple[int, int]:
    return asyncio.run(transforms.dimensions(asset))


def test_fit_within_keeps_small_sizes():
    assert transforms.fit_within(100, 50, 2048, 2048) == (100, 50)
    assert transforms.fit_within(2048, 2048, 2048, 2048) == (2048, 2048)


def test_fit_within_binding_axis_hits_bound():
    assert transforms.fit_within(4000, 3000, 2048, 2048) == (2048, 1536)
    assert transforms.fit_within(3000, 4000, 2048, 2048) == (1536, 2048)
    assert transforms.fit_within(1000, 500, 400, 400) == (400, 200)
    assert transforms.fit_within(1000, 10, 100, 100) == (100, 1)


def test_normalize_rotation():
    assert transforms.normalize_rotation(0) == 0
    assert transforms.normalize_rotation(450) == 90
    assert transforms.normalize_rotation(-90) == 270
    with pytest.raises(InvariantViolation):
        transforms.normalize_rotation(45)
    with pytest.raises(InvariantViolation):
        transforms.normalize_rotation("left")  # type: ignore[arg-type]


def test_rotated_size():
    assert transforms.rotated_size(40, 20, 90) == (20, 40)
    assert transforms.rotated_size(40, 20, 180) == (40, 20)
    assert transforms.rotated_size(40, 20, 270) == (20, 40)


def test_resize_returns_input_when_it_fits():
    asset = _png(100, 50)
    out = asyncio.run(transforms.resize(asset))
    assert out is asset


def test_resize_downscales_and_keeps_type():
    asset = ImageAsset.from_bytes("big.jpg", make_image_bytes(400, 200, "JPEG"))
    out = asyncio.run(transforms.resize(asset, 100, 100, 0.85))
    assert out is not asset
    assert out.mime_type == "image/jpeg"
    assert out.name == "big.jpg"
    assert _dims(out) == (100, 50)


def test_resize_output_is_stable_on_second_pass():
    asset = _png(300, 120)
    once = asyncio.run(transforms.resize(asset, 150, 150))
    twice = asyncio.run(transforms.resize(once, 150, 150))
    assert twice is once


def test_rotate_zero_is_identity():
    asset = _png(30, 10)
    assert asyncio.run(transforms.rotate(asset, 0)) is asset


def test_rotate_swaps_dimensions():
    asset = _png(40, 20)
    out = asyncio.run(transforms.rotate(asset, 90))
    assert out.mime_type == "image/png"
    assert _dims(out) == (20, 40)
    assert _dims(asyncio.run(transforms.rotate(asset, 180))) == (40, 20)


def test_rotate_is_clockwise():
    asset = ImageAsset.from_bytes("q.png", make_quadrant_png(40, 20))
    out = asyncio.run(transforms.rotate(asset, 90))
    arr = asyncio.run(transforms.to_array(out))
    assert arr.shape == (40, 20, 3)
    # Left (red) half ends up on top after a clockwise quarter turn.
    assert tuple(arr[5, 10]) == RED
    assert tuple(arr[35, 10]) == BLUE


def test_four_quarter_turns_restore_pixels():
    asset = ImageAsset.from_bytes("q.png", make_quadrant_png(40, 20))
    out = asset
    for _ in range(4):
        out = asyncio.run(transforms.rotate(out, 90))
    before = asyncio.run(transforms.to_array(asset))
    after = asyncio.run(transforms.to_array(out))
    assert np.array_equal(before, after)


def test_crop_output_matches_rectangle():
    asset = ImageAsset.from_bytes("q.png", make_quadrant_png(40, 20))
    out = asyncio.run(transforms.crop(asset, CropArea(22.0, 2.0, 10.0, 8.0)))
    assert _dims(out) == (10, 8)
    arr = asyncio.run(transforms.to_array(out))
    assert (arr == np.array(BLUE, dtype=np.uint8)).all()


def test_crop_outside_raster_is_filled():
    asset = _png(10, 10)
    out = asyncio.run(transforms.crop(asset, CropArea(-5.0, -5.0, 20.0, 20.0)))
    assert _dims(out) == (20, 20)
    arr = asyncio.run(transforms.to_array(out))
    assert tuple(arr[0, 0]) == (0, 0, 0)


def test_crop_without_area_raises():
    with pytest.raises(TransformError):
        asyncio.run(transforms.crop(_png(10, 10), CropArea(1.0, 1.0, 0.2, 5.0)))


def test_unsupported_type_is_written_as_png():
    # Decodable bytes tagged with a type that has no encoder.
    data = make_image_bytes(12, 6, "PNG")
    asset = ImageAsset(name="scan.bmp", data=data, mime_type="image/bmp")
    out = asyncio.run(transforms.rotate(asset, 90))
    assert out.mime_type == "image/png"
    assert out.data.startswith(b"\x89PNG")
    assert out.name == "scan.bmp"
    assert _dims(out) == (6, 12)


def test_crop_with_fractional_corners_keeps_rounded_size():
    asset = _png(64, 48)
    out = asyncio.run(transforms.crop(asset, CropArea(0.4, 0.4, 10.2, 10.2)))
    assert _dims(out) == (10, 10)
    out = asyncio.run(transforms.crop(asset, CropArea(3.6, 2.5, 20.4, 9.6)))
    assert _dims(out) == (20, 10)


def test_corrupt_data_raises_transform_error():
    metrics.reset()
    broken = ImageAsset(name="broken.png", data=b"\x89PNG\r\n\x1a\nnot really", mime_type="image/png")
    with pytest.raises(TransformError):
        asyncio.run(transforms.rotate(broken, 90))
    assert metrics.counter("transform.rotate_failed") == 1


def test_transform_timings_are_recorded():
    metrics.reset()
    asyncio.run(transforms.rotate(_png(8, 8), 180))
    assert "transform.rotate_duration" in metrics.snapshot()["timings"]
