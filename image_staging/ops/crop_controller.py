from __future__ import annotations

from dataclasses import dataclass

Point = tuple[float, float]

# Preset name -> width/height. None means unconstrained.
ASPECT_PRESETS: dict[str, float | None] = {
    "free": None,
    "16:9": 16 / 9,
    "4:3": 4 / 3,
    "3:2": 3 / 2,
    "1:1": 1.0,
    "3:4": 3 / 4,
    "9:16": 9 / 16,
}


@dataclass(frozen=True, slots=True)
class ViewRect:
    """Where the drawing surface is shown on screen, in view coordinates."""

    left: float
    top: float
    width: float
    height: float


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def parse_aspect_ratio(value: str | float | None) -> float | None:
    """Accept a preset name, a ``"w:h"`` string, a positive number or None."""
    if value is None:
        return None
    if isinstance(value, str):
        key = value.strip().lower()
        if key in ASPECT_PRESETS:
            return ASPECT_PRESETS[key]
        if ":" in key:
            w_s, _, h_s = key.partition(":")
            try:
                w, h = float(w_s), float(h_s)
            except ValueError as exc:
                raise ValueError(f"invalid aspect ratio {value!r}") from exc
            if w <= 0 or h <= 0:
                raise ValueError(f"invalid aspect ratio {value!r}")
            return w / h
        raise ValueError(f"invalid aspect ratio {value!r}")
    r = float(value)
    if r <= 0:
        return None
    return r


def clamp_point(p: Point, width: float, height: float) -> Point:
    return _clamp(p[0], 0.0, float(width)), _clamp(p[1], 0.0, float(height))


def contains(p: Point, width: float, height: float) -> bool:
    return 0.0 <= p[0] <= width and 0.0 <= p[1] <= height


def constrain_to_aspect(start: Point, end: Point, ratio: float | None) -> Point:
    """Move ``end`` so the rectangle spanned from ``start`` has ``ratio``.

    The rectangle only ever shrinks: the axis that would overshoot the ratio
    is cut back, so it never extends past the pointer on either axis. The drag
    direction (quadrant relative to ``start``) is preserved.
    """
    if not ratio:
        return end

    width = abs(end[0] - start[0])
    height = abs(end[1] - start[1])
    new_w, new_h = width, height

    if height == 0 or width / height > ratio:
        new_w = height * ratio
    else:
        new_h = width / ratio

    x = start[0] + new_w if end[0] > start[0] else start[0] - new_w
    y = start[1] + new_h if end[1] > start[1] else start[1] - new_h
    return x, y


def map_to_surface(view_point: Point, view: ViewRect, surface_w: int, surface_h: int) -> Point:
    """Convert a pointer position in view coordinates to surface pixels."""
    if view.width <= 0 or view.height <= 0:
        return 0.0, 0.0
    x = (view_point[0] - view.left) / view.width * surface_w
    y = (view_point[1] - view.top) / view.height * surface_h
    return x, y
