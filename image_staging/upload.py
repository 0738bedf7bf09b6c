"""Hand-off types for the external upload service.

Transport is somebody else's job: an ``Uploader`` receives the ordered batch
and reports back one outcome per item.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from .validation import ImageAsset


@dataclass(frozen=True, slots=True)
class UploadItem:
    binary_data: ImageAsset = field(repr=False)
    order_index: int
    is_primary: bool


@dataclass(frozen=True, slots=True)
class UploadOutcome:
    order_index: int
    ok: bool
    error: str | None = None


@runtime_checkable
class Uploader(Protocol):
    async def upload(self, items: Sequence[UploadItem]) -> list[UploadOutcome]: ...


@dataclass(frozen=True, slots=True)
class FlushResult:
    outcomes: tuple[UploadOutcome, ...]

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failed(self) -> tuple[UploadOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.ok)
