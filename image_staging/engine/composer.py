"""Compose pending edits into one final asset.

Edits are always applied as rotate first, crop second. A crop rectangle is
expressed in the coordinates of the rotated raster, so the crop step is only
reachable from the output of the rotate step (``RotatedImage.crop``).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from image_staging.errors import InvariantViolation
from image_staging.logger import get_logger
from image_staging.validation import ImageAsset

from . import transforms
from .geometry import CropArea

_logger = get_logger("composer")

EDIT_QUALITY = 0.95

_STAGE_KEY = object()


@dataclass(frozen=True, slots=True)
class RotatedImage:
    """Output of the rotate stage: an asset plus its post-rotation size."""

    asset: ImageAsset
    width: int
    height: int
    rotation: int
    quality: float = EDIT_QUALITY
    _key: object = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._key is not _STAGE_KEY:
            raise InvariantViolation("RotatedImage is produced by rotate_stage() only")

    def check_bounds(self, rect: CropArea) -> None:
        if not rect.fits_within(self.width, self.height):
            raise InvariantViolation(
                f"crop {rect} lies outside the {self.width}x{self.height} raster "
                f"produced by a {self.rotation} degree rotation"
            )

    async def crop(self, rect: CropArea) -> ImageAsset:
        return await transforms.crop(self.asset, rect, self.quality)


async def rotate_stage(asset: ImageAsset, rotation: int, quality: float = EDIT_QUALITY) -> RotatedImage:
    degrees = transforms.normalize_rotation(rotation)
    width, height = await transforms.dimensions(asset)
    rotated = await transforms.rotate(asset, degrees, quality)
    out_w, out_h = transforms.rotated_size(width, height, degrees)
    return RotatedImage(rotated, out_w, out_h, degrees, quality, _STAGE_KEY)


async def process_image(
    asset: ImageAsset,
    rotation: int,
    crop_area: CropArea | None = None,
    *,
    quality: float = EDIT_QUALITY,
    check_bounds: bool = False,
) -> ImageAsset:
    """Apply ``rotation`` then ``crop_area`` to ``asset``, skipping no-op steps.

    With ``check_bounds`` a rectangle outside the rotated raster raises
    ``InvariantViolation`` instead of being filled with background.
    """
    stage = await rotate_stage(asset, rotation, quality)
    if crop_area is None:
        return stage.asset
    if check_bounds:
        stage.check_bounds(crop_area)
    _logger.debug("compose %s: rotate=%d crop=%s", asset.name, stage.rotation, crop_area)
    return await stage.crop(crop_area)
