from __future__ import annotations

from PySide6.QtCore import Property, QObject, Signal


class StagingState(QObject):
    """Bindable summary of the staging list.

    The staging manager is authoritative; it pushes updates through the
    ``_set_*`` helpers so QML can enable/disable controls and show progress.
    """

    countChanged = Signal(int)
    primaryUrlChanged = Signal(str)
    busyChanged = Signal(bool)
    progressChanged = Signal(int, int)  # done, total
    rejectionsChanged = Signal(list)  # ["name: reason", ...]

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._count = 0
        self._primary_url = ""
        self._busy = False
        self._done = 0
        self._total = 0
        self._rejections: list[str] = []

    def _get_count(self) -> int:
        return int(self._count)

    count = Property(int, _get_count, notify=countChanged)  # type: ignore[arg-type]

    def _get_primary_url(self) -> str:
        return str(self._primary_url)

    primaryUrl = Property(str, _get_primary_url, notify=primaryUrlChanged)  # type: ignore[arg-type]

    def _get_busy(self) -> bool:
        return bool(self._busy)

    busy = Property(bool, _get_busy, notify=busyChanged)  # type: ignore[arg-type]

    def _get_percent(self) -> int:
        if self._total <= 0:
            return 0
        return int(100 * self._done / self._total)

    percent = Property(int, _get_percent, notify=progressChanged)  # type: ignore[arg-type]

    def _get_rejections(self) -> list:
        return list(self._rejections)

    rejections = Property(list, _get_rejections, notify=rejectionsChanged)  # type: ignore[arg-type]

    # ---- internal mutation helpers (called by the staging manager) ----
    def _set_listing(self, count: int, primary_url: str) -> None:
        c = int(count)
        if c != self._count:
            self._count = c
            self.countChanged.emit(c)
        u = str(primary_url)
        if u != self._primary_url:
            self._primary_url = u
            self.primaryUrlChanged.emit(u)

    def _set_busy(self, busy: bool) -> None:
        v = bool(busy)
        if v == self._busy:
            return
        self._busy = v
        self.busyChanged.emit(v)

    def _set_progress(self, done: int, total: int) -> None:
        d = max(0, int(done))
        t = max(0, int(total))
        if (d, t) == (self._done, self._total):
            return
        self._done, self._total = d, t
        self.progressChanged.emit(d, t)

    def _set_rejections(self, lines: list[str]) -> None:
        new = [str(line) for line in lines]
        if new == self._rejections:
            return
        self._rejections = new
        self.rejectionsChanged.emit(list(new))
