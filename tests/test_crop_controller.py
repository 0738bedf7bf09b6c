from __future__ import annotations

import pytest

from image_staging.engine.geometry import CropArea
from image_staging.ops.crop_controller import (
    ASPECT_PRESETS,
    ViewRect,
    clamp_point,
    constrain_to_aspect,
    map_to_surface,
    parse_aspect_ratio,
)


def test_parse_aspect_ratio_presets_and_strings() -> None:
    assert parse_aspect_ratio(None) is None
    assert parse_aspect_ratio("free") is None
    assert parse_aspect_ratio("16:9") == pytest.approx(16 / 9)
    assert parse_aspect_ratio("9:16") == pytest.approx(9 / 16)
    assert parse_aspect_ratio(" 5:4 ") == pytest.approx(1.25)
    assert parse_aspect_ratio(1.5) == 1.5
    assert parse_aspect_ratio(0) is None
    assert set(ASPECT_PRESETS) == {"free", "16:9", "4:3", "3:2", "1:1", "3:4", "9:16"}


@pytest.mark.parametrize("bad", ["wide", "0:1", "4:x", "3:-2"])
def test_parse_aspect_ratio_rejects_garbage(bad: str) -> None:
    with pytest.raises(ValueError):
        parse_aspect_ratio(bad)


def test_square_ratio_cuts_the_longer_side() -> None:
    assert constrain_to_aspect((0.0, 0.0), (100.0, 40.0), 1.0) == (40.0, 40.0)
    assert constrain_to_aspect((0.0, 0.0), (30.0, 90.0), 1.0) == (30.0, 30.0)


def test_aspect_ratio_keeps_drag_direction() -> None:
    x, y = constrain_to_aspect((100.0, 100.0), (20.0, 50.0), 1.0)
    assert (x, y) == (50.0, 50.0)
    x, y = constrain_to_aspect((10.0, 10.0), (90.0, 0.0), 2.0)
    assert (x, y) == (30.0, 0.0)


def test_aspect_ratio_is_enforced() -> None:
    end = constrain_to_aspect((10.0, 10.0), (200.0, 130.0), 16 / 9)
    rect = CropArea.from_points((10.0, 10.0), end)
    assert rect.width / rect.height == pytest.approx(16 / 9)
    assert rect.x2 <= 200.0 and rect.y2 <= 130.0


def test_free_ratio_leaves_point_alone() -> None:
    assert constrain_to_aspect((0.0, 0.0), (33.0, 7.0), None) == (33.0, 7.0)


def test_clamp_point_to_surface() -> None:
    assert clamp_point((-5.0, 120.0), 100, 80) == (0.0, 80.0)
    assert clamp_point((50.0, 40.0), 100, 80) == (50.0, 40.0)


def test_map_to_surface_scales_view_coordinates() -> None:
    view = ViewRect(left=10.0, top=20.0, width=200.0, height=100.0)
    assert map_to_surface((110.0, 70.0), view, 400, 200) == (200.0, 100.0)
    assert map_to_surface((0.0, 0.0), ViewRect(0, 0, 0, 0), 400, 200) == (0.0, 0.0)


def test_crop_area_helpers() -> None:
    rect = CropArea.from_points((50.0, 40.0), (10.0, 0.0))
    assert (rect.x, rect.y, rect.width, rect.height) == (10.0, 0.0, 40.0, 40.0)
    assert rect.fits_within(50, 40)
    assert not rect.fits_within(49, 40)
    assert CropArea(0.0, 0.0, 10.0, 50.0).is_trivial(10)
    assert not CropArea(0.0, 0.0, 11.0, 11.0).is_trivial(10)
    assert CropArea(0.4, 0.6, 9.2, 9.8).to_pixels() == (0, 1, 9, 10)
