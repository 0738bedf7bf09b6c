from __future__ import annotations

from dataclasses import dataclass

# Sub-pixel slack allowed when checking a rectangle against raster bounds.
BOUNDS_EPSILON = 0.5


@dataclass(frozen=True, slots=True)
class CropArea:
    """Axis-aligned rectangle in source-pixel units of the current raster."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_points(cls, a: tuple[float, float], b: tuple[float, float]) -> CropArea:
        """Build the rectangle spanned by two opposite corners, in any order."""
        x = min(a[0], b[0])
        y = min(a[1], b[1])
        return cls(x, y, abs(b[0] - a[0]), abs(b[1] - a[1]))

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    def is_trivial(self, min_size: float) -> bool:
        """True when the selection is too small to count as a crop."""
        return self.width <= min_size or self.height <= min_size

    def fits_within(self, width: int, height: int) -> bool:
        eps = BOUNDS_EPSILON
        return (
            self.x >= -eps
            and self.y >= -eps
            and self.width > 0
            and self.height > 0
            and self.x2 <= width + eps
            and self.y2 <= height + eps
        )

    def to_pixels(self) -> tuple[int, int, int, int]:
        """(left, top, width, height) snapped to whole pixels.

        Size is rounded independently of the origin so the output always
        measures round(width) x round(height).
        """
        return int(round(self.x)), int(round(self.y)), int(round(self.width)), int(round(self.height))
