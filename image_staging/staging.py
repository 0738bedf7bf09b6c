"""Ordered list of images waiting for upload.

The manager owns every staged entry and its preview URL. List position is
the only notion of "primary": index 0 is the primary image.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field

from .app.state.staging_state import StagingState
from .engine import transforms
from .engine.composer import process_image
from .engine.geometry import CropArea
from .errors import InvariantViolation, TransformError
from .logger import get_logger
from .metrics import metrics
from .preview import PreviewHandle, PreviewRegistry, default_registry
from .settings_manager import StagingConfig
from .upload import FlushResult, UploadItem, UploadOutcome, Uploader
from .validation import FileRejection, ImageAsset, validate

_logger = get_logger("staging")

ProgressFn = Callable[[int, int], None]


@dataclass(eq=False)
class StagedImage:
    id: str
    asset: ImageAsset = field(repr=False)
    preview: PreviewHandle
    rotation: int = 0
    crop_area: CropArea | None = None
    edited: bool = False

    @property
    def binary_data(self) -> ImageAsset:
        return self.asset

    @property
    def preview_url(self) -> str:
        return self.preview.url


@dataclass(frozen=True, slots=True)
class AddResult:
    staged: tuple[StagedImage, ...] = ()
    rejections: tuple[FileRejection, ...] = ()
    failures: tuple[FileRejection, ...] = ()

    @property
    def errors(self) -> tuple[FileRejection, ...]:
        return self.rejections + self.failures


class StagingManager:
    """Owns the staging list, its edit state and its preview URLs.

    Edits on one entry must not overlap; a second ``apply_edit`` for an id that
    is still being processed is rejected.
    """

    def __init__(
        self,
        config: StagingConfig | None = None,
        *,
        registry: PreviewRegistry | None = None,
        state: StagingState | None = None,
        on_progress: ProgressFn | None = None,
    ) -> None:
        self._config = config or StagingConfig()
        self._registry = registry if registry is not None else default_registry()
        self._state = state
        self._on_progress = on_progress
        self._images: list[StagedImage] = []
        self._in_flight: set[str] = set()
        self._batch_counter = 0

    # ---- read access ----
    @property
    def config(self) -> StagingConfig:
        return self._config

    @property
    def registry(self) -> PreviewRegistry:
        return self._registry

    @property
    def images(self) -> tuple[StagedImage, ...]:
        return tuple(self._images)

    def __len__(self) -> int:
        return len(self._images)

    def __iter__(self) -> Iterator[StagedImage]:
        return iter(tuple(self._images))

    def primary(self) -> StagedImage | None:
        return self._images[0] if self._images else None

    def get(self, image_id: str) -> StagedImage | None:
        for img in self._images:
            if img.id == image_id:
                return img
        return None

    def index_of(self, image_id: str) -> int:
        for i, img in enumerate(self._images):
            if img.id == image_id:
                return i
        raise InvariantViolation(f"no staged image with id {image_id!r}")

    def is_editing(self, image_id: str) -> bool:
        return image_id in self._in_flight

    # ---- staging ----
    async def add_files(self, files: Iterable[ImageAsset]) -> AddResult:
        """Validate, downsize and append each file, one after another.

        A rejected or unreadable file is reported and skipped; the rest of the
        batch still goes through.
        """
        batch = list(files)
        total = len(batch)
        staged: list[StagedImage] = []
        rejections: list[FileRejection] = []
        failures: list[FileRejection] = []
        self._batch_counter += 1
        self._set_busy(True)
        self._report_progress(0, total)
        try:
            for index, file in enumerate(batch):
                result = validate(file, self._config.max_file_size)
                if not result.valid:
                    reason = result.error or "invalid file"
                    _logger.warning("rejected %s: %s", file.name, reason)
                    metrics.inc("staging.files_rejected")
                    rejections.append(FileRejection(file.name, reason))
                    self._report_progress(index + 1, total)
                    continue
                try:
                    resized = await transforms.resize(
                        file.with_sniffed_type(),
                        self._config.max_width,
                        self._config.max_height,
                        self._config.resize_quality,
                    )
                except TransformError as exc:
                    _logger.error("could not stage %s: %s", file.name, exc)
                    metrics.inc("staging.transform_failures")
                    failures.append(FileRejection(file.name, str(exc)))
                    self._report_progress(index + 1, total)
                    continue
                entry = StagedImage(
                    id=self._new_id(index),
                    asset=resized,
                    preview=self._registry.create(resized),
                )
                self._images.append(entry)
                staged.append(entry)
                metrics.inc("staging.files_added")
                self._report_progress(index + 1, total)
                self._publish()
        finally:
            self._set_busy(False)
            self._publish(rejections + failures)
        _logger.info("staged %d of %d file(s)", len(staged), total)
        return AddResult(tuple(staged), tuple(rejections), tuple(failures))

    def remove(self, image_id: str) -> None:
        entry = self._images[self.index_of(image_id)]
        entry.preview.release()
        self._images.remove(entry)
        _logger.debug("removed %s", image_id)
        self._publish()

    def reorder(self, from_index: int, to_index: int) -> None:
        """Move one entry; nothing but the order changes."""
        n = len(self._images)
        if not (0 <= from_index < n and 0 <= to_index < n):
            raise InvariantViolation(f"reorder({from_index}, {to_index}) out of range for {n} image(s)")
        if from_index == to_index:
            return
        entry = self._images.pop(from_index)
        self._images.insert(to_index, entry)
        self._publish()

    def set_primary(self, image_id: str) -> None:
        self.reorder(self.index_of(image_id), 0)

    # ---- editing ----
    async def apply_edit(
        self,
        image_id: str,
        rotation: int,
        crop_area: CropArea | None = None,
    ) -> StagedImage | None:
        """Bake ``rotation`` and ``crop_area`` into the entry's working asset.

        Returns the updated entry, or None when the entry was removed while
        the transform was running.
        """
        entry = self._images[self.index_of(image_id)]
        degrees = transforms.normalize_rotation(rotation)
        if image_id in self._in_flight:
            raise InvariantViolation(f"an edit for {image_id!r} is already in progress")

        if degrees == 0 and crop_area is None:
            entry.rotation = 0
            entry.crop_area = None
            return entry

        self._in_flight.add(image_id)
        self._set_busy(True)
        try:
            new_asset = await process_image(
                entry.asset,
                degrees,
                crop_area,
                quality=self._config.edit_quality,
                check_bounds=True,
            )
        finally:
            self._in_flight.discard(image_id)
            self._set_busy(bool(self._in_flight))

        current = self.get(image_id)
        if current is None:
            _logger.debug("edit for %s finished after removal; result dropped", image_id)
            return None

        new_preview = self._registry.create(new_asset)
        current.preview.release()
        current.asset = new_asset
        current.preview = new_preview
        current.rotation = 0
        current.crop_area = None
        current.edited = True
        metrics.inc("staging.edits_applied")
        _logger.debug("applied edit to %s: rotate=%d crop=%s", image_id, degrees, crop_area)
        self._publish()
        return current

    # ---- hand-off ----
    async def flush_to_upload(self, uploader: Uploader) -> FlushResult:
        """Give the ordered list to ``uploader``.

        When every item succeeds the flushed entries are dropped and their
        previews released. Otherwise the list is left as it was for a retry.
        """
        flushed = list(self._images)
        if not flushed:
            return FlushResult(())
        items = [UploadItem(img.asset, i, i == 0) for i, img in enumerate(flushed)]
        self._set_busy(True)
        try:
            outcomes = await uploader.upload(items)
        finally:
            self._set_busy(bool(self._in_flight))

        by_index = {o.order_index: o for o in outcomes}
        result = FlushResult(
            tuple(by_index.get(i) or UploadOutcome(i, False, "no outcome reported") for i in range(len(items)))
        )
        if not result.ok:
            _logger.warning("upload incomplete: %d of %d item(s) failed", len(result.failed), len(items))
            return result

        flushed_ids = {img.id for img in flushed}
        for img in flushed:
            img.preview.release()
        self._images = [img for img in self._images if img.id not in flushed_ids]
        _logger.info("uploaded %d image(s)", len(flushed))
        self._publish()
        return result

    drain = flush_to_upload

    def clear(self) -> None:
        for img in self._images:
            img.preview.release()
        self._images.clear()
        self._publish()

    # ---- internals ----
    def _new_id(self, index: int) -> str:
        return f"staged-{int(time.time() * 1000)}-{self._batch_counter}-{index}-{uuid.uuid4().hex[:6]}"

    def _report_progress(self, done: int, total: int) -> None:
        if self._on_progress is not None:
            self._on_progress(done, total)
        if self._state is not None:
            self._state._set_progress(done, total)

    def _set_busy(self, busy: bool) -> None:
        if self._state is not None:
            self._state._set_busy(busy)

    def _publish(self, rejections: list[FileRejection] | None = None) -> None:
        if self._state is None:
            return
        primary = self.primary()
        self._state._set_listing(len(self._images), primary.preview_url if primary else "")
        if rejections is not None:
            self._state._set_rejections([f"{r.file_name}: {r.reason}" for r in rejections])
