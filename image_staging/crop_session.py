"""Interactive crop/rotate controller for one staged image.

Python is authoritative for the pending rotation and the crop rectangle; a
QML editor forwards pointer events and binds to the properties below.

Mode transitions:
    idle -> cropping (enable_crop)
    cropping -> dragging (pointer_down inside the surface)
    dragging -> cropping (pointer_up; the rectangle stays visible)
    any open mode -> committed (save) | cancelled (cancel)
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from PySide6.QtCore import Property, QObject, Signal, Slot

from .engine import transforms
from .engine.geometry import CropArea
from .errors import InvariantViolation
from .logger import get_logger
from .ops.crop_controller import (
    Point,
    ViewRect,
    clamp_point,
    constrain_to_aspect,
    contains,
    map_to_surface,
    parse_aspect_ratio,
)

if TYPE_CHECKING:
    from .staging import StagedImage, StagingManager

_logger = get_logger("crop_session")

DEFAULT_MIN_CROP = 10


class SessionMode(str, Enum):
    IDLE = "idle"
    CROPPING = "cropping"
    DRAGGING = "dragging"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


class CropSession(QObject):
    modeChanged = Signal(str)
    rotationChanged = Signal(int)
    cropRectChanged = Signal(float, float, float, float)
    aspectRatioChanged = Signal(float)
    finished = Signal(bool)  # saved

    def __init__(
        self,
        image_id: str,
        width: int,
        height: int,
        *,
        manager: StagingManager | None = None,
        rotation: int = 0,
        min_crop_size: int = DEFAULT_MIN_CROP,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._image_id = image_id
        self._src_w = int(width)
        self._src_h = int(height)
        self._manager = manager
        self._rotation = transforms.normalize_rotation(rotation)
        self._min_crop = min_crop_size
        self._mode = SessionMode.IDLE
        self._aspect: float | None = None
        self._start: Point | None = None
        self._end: Point | None = None

    @classmethod
    async def open(cls, manager: StagingManager, image_id: str, parent: QObject | None = None) -> CropSession:
        """Start a session for a staged entry, reading its current raster size."""
        entry: StagedImage | None = manager.get(image_id)
        if entry is None:
            raise InvariantViolation(f"no staged image with id {image_id!r}")
        width, height = await transforms.dimensions(entry.asset)
        return cls(
            image_id,
            width,
            height,
            manager=manager,
            rotation=entry.rotation,
            min_crop_size=manager.config.min_crop_size,
            parent=parent,
        )

    # ---- properties ----
    @property
    def image_id(self) -> str:
        return self._image_id

    @property
    def session_mode(self) -> SessionMode:
        return self._mode

    def _get_mode(self) -> str:
        return self._mode.value

    mode = Property(str, _get_mode, notify=modeChanged)  # type: ignore[arg-type]

    def _get_rotation(self) -> int:
        return int(self._rotation)

    rotation = Property(int, _get_rotation, notify=rotationChanged)  # type: ignore[arg-type]

    def _get_aspect_ratio(self) -> float:
        return float(self._aspect or 0.0)

    # 0.0 means free (no constraint). Otherwise width/height.
    aspectRatio = Property(float, _get_aspect_ratio, notify=aspectRatioChanged)  # type: ignore[arg-type]

    def _get_has_selection(self) -> bool:
        return self.crop_area() is not None

    hasSelection = Property(bool, _get_has_selection, notify=cropRectChanged)  # type: ignore[arg-type]

    def surface_size(self) -> tuple[int, int]:
        """Size of the rotated raster the crop rectangle is expressed in."""
        return transforms.rotated_size(self._src_w, self._src_h, self._rotation)

    def is_open(self) -> bool:
        return self._mode not in (SessionMode.COMMITTED, SessionMode.CANCELLED)

    def crop_area(self) -> CropArea | None:
        if self._mode not in (SessionMode.CROPPING, SessionMode.DRAGGING):
            return None
        if self._start is None or self._end is None:
            return None
        return CropArea.from_points(self._start, self._end)

    # ---- mode ----
    @Slot()
    def enable_crop(self) -> None:
        self._require_open()
        if self._mode == SessionMode.IDLE:
            # A previously drawn rectangle is kept.
            self._set_mode(SessionMode.CROPPING)

    # ---- rotation ----
    @Slot()
    def rotate_cw(self) -> None:
        self.set_rotation(self._rotation + 90)

    @Slot()
    def rotate_ccw(self) -> None:
        self.set_rotation(self._rotation - 90 + 360)

    @Slot(int)
    def set_rotation(self, degrees: int) -> None:
        self._require_open()
        value = transforms.normalize_rotation(degrees)
        # Crop coordinates belong to the previous orientation.
        self._clear_selection()
        if value == self._rotation:
            return
        self._rotation = value
        _logger.debug("session %s: rotation=%d", self._image_id, value)
        self.rotationChanged.emit(value)

    # ---- aspect ratio ----
    def set_aspect_ratio(self, value: str | float | None) -> None:
        self._require_open()
        ratio = parse_aspect_ratio(value)
        self._clear_selection()
        if ratio == self._aspect:
            return
        self._aspect = ratio
        self.aspectRatioChanged.emit(float(ratio or 0.0))

    @Slot(str)
    def setAspectPreset(self, name: str) -> None:
        self.set_aspect_ratio(name)

    # ---- pointer ----
    @Slot(float, float)
    def pointer_down(self, x: float, y: float) -> None:
        if self._mode != SessionMode.CROPPING:
            return
        sw, sh = self.surface_size()
        if not contains((x, y), sw, sh):
            return
        self._start = (float(x), float(y))
        self._end = self._start
        self._set_mode(SessionMode.DRAGGING)
        self._emit_rect()

    @Slot(float, float)
    def pointer_move(self, x: float, y: float) -> None:
        if self._mode != SessionMode.DRAGGING or self._start is None:
            return
        sw, sh = self.surface_size()
        end = clamp_point((float(x), float(y)), sw, sh)
        self._end = constrain_to_aspect(self._start, end, self._aspect)
        self._emit_rect()

    @Slot()
    def pointer_up(self) -> None:
        if self._mode != SessionMode.DRAGGING:
            return
        self._set_mode(SessionMode.CROPPING)
        self._emit_rect()

    def pointer_down_view(self, view_point: Point, view: ViewRect) -> None:
        self.pointer_down(*map_to_surface(view_point, view, *self.surface_size()))

    def pointer_move_view(self, view_point: Point, view: ViewRect) -> None:
        self.pointer_move(*map_to_surface(view_point, view, *self.surface_size()))

    # ---- finish ----
    def edit_request(self) -> tuple[int, CropArea | None]:
        """Pending rotation and crop; a too-small rectangle means no crop."""
        rect = self.crop_area()
        if rect is not None and rect.is_trivial(self._min_crop):
            _logger.debug("session %s: ignoring %.1fx%.1f selection", self._image_id, rect.width, rect.height)
            rect = None
        return self._rotation, rect

    async def save(self) -> StagedImage | None:
        """Commit the pending edit through the staging manager."""
        self._require_open()
        if self._manager is None:
            raise InvariantViolation("session has no staging manager to commit to")
        rotation, rect = self.edit_request()
        result = await self._manager.apply_edit(self._image_id, rotation, rect)
        self._set_mode(SessionMode.COMMITTED)
        self.finished.emit(True)
        return result

    @Slot()
    def cancel(self) -> None:
        if not self.is_open():
            return
        self._start = None
        self._end = None
        self._set_mode(SessionMode.CANCELLED)
        self.finished.emit(False)

    # ---- internals ----
    def _require_open(self) -> None:
        if not self.is_open():
            raise InvariantViolation(f"crop session for {self._image_id!r} is already {self._mode.value}")

    def _set_mode(self, mode: SessionMode) -> None:
        if mode == self._mode:
            return
        self._mode = mode
        self.modeChanged.emit(mode.value)

    def _clear_selection(self) -> None:
        had = self._start is not None
        self._start = None
        self._end = None
        if self._mode == SessionMode.DRAGGING:
            self._set_mode(SessionMode.CROPPING)
        if had:
            self._emit_rect()

    def _emit_rect(self) -> None:
        rect = self.crop_area()
        if rect is None:
            self.cropRectChanged.emit(0.0, 0.0, 0.0, 0.0)
        else:
            self.cropRectChanged.emit(rect.x, rect.y, rect.width, rect.height)
