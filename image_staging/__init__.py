"""Client-side image staging: validate, downsize, edit and hand off images.

Submodules importing Qt (``preview``, ``staging``, ``crop_session``, ``app``)
are not imported here so the engine can be used on its own.
"""

from .errors import InvariantViolation, StagingError, StoreError, TransformError
from .settings_manager import SettingsManager, StagingConfig
from .validation import FileRejection, ImageAsset, ValidationResult, sniff_mime, validate

__version__ = "0.1.0"

__all__ = [
    "FileRejection",
    "ImageAsset",
    "InvariantViolation",
    "SettingsManager",
    "StagingConfig",
    "StagingError",
    "StoreError",
    "TransformError",
    "ValidationResult",
    "sniff_mime",
    "validate",
]
