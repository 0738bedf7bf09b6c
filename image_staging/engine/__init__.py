"""Image engine: pure transforms over image assets.

Keep this module free of Qt imports; the staging manager and the crop
session build on it.
"""

from .composer import RotatedImage, process_image, rotate_stage
from .geometry import CropArea
from .transforms import crop, dimensions, fit_within, resize, rotate, rotated_size, to_array

__all__ = [
    "CropArea",
    "RotatedImage",
    "crop",
    "dimensions",
    "fit_within",
    "process_image",
    "resize",
    "rotate",
    "rotate_stage",
    "rotated_size",
    "to_array",
]
