from __future__ import annotations

import contextlib
import queue
import sqlite3
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from image_staging.errors import StoreError
from image_staging.logger import get_logger
from image_staging.metrics import metrics

_logger = get_logger("db_operator")


@dataclass
class _DbTask:
    fn: Callable[[sqlite3.Connection, Any], Any]
    args: tuple
    kwargs: dict
    future: Future
    retries: int = 3


class DbOperator:
    """Serialized DB operation queue / worker.

    Owns one sqlite3 connection, opened lazily on the worker thread and reused
    for every task. Each task runs in its own transaction: committed when the
    task returns, rolled back when it raises. Transient
    `sqlite3.OperationalError`s (locked/busy) are retried with backoff.
    """

    def __init__(self, db_path: Path | str, busy_timeout_ms: int = 5000):
        self._db_path = Path(db_path)
        self._queue: queue.Queue[_DbTask] = queue.Queue()
        self._thread = threading.Thread(target=self._worker, name="db-operator", daemon=True)
        self._stop_event = threading.Event()
        # Guards the stop check in _submit against shutdown().
        self._submit_lock = threading.Lock()
        self._busy_timeout_ms = int(busy_timeout_ms)
        self._conn: sqlite3.Connection | None = None
        self._thread.start()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _open_conn(self) -> sqlite3.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._db_path))
        try:
            conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error:
            _logger.debug("PRAGMA journal_mode=WAL failed", exc_info=True)
        conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
        _logger.debug("opened %s", self._db_path)
        return conn

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = self._open_conn()
        return self._conn

    def _submit(self, fn: Callable[[sqlite3.Connection, Any], Any], args: tuple, kwargs: dict, retries: int) -> Future:
        fut: Future = Future()
        with self._submit_lock:
            if not self._stop_event.is_set():
                self._queue.put(_DbTask(fn=fn, args=args, kwargs=kwargs, future=fut, retries=retries))
                return fut
        fut.set_exception(StoreError(f"store {self._db_path} is closed"))
        return fut

    def schedule_write(self, fn: Callable[[sqlite3.Connection, Any], Any], *args, retries: int = 3, **kwargs) -> Future:
        metrics.inc("db_operator.write_queued")
        return self._submit(fn, args, kwargs, retries)

    def schedule_read(self, fn: Callable[[sqlite3.Connection, Any], Any], *args, **kwargs) -> Future:
        # Reads share the queue so there is only ever one connection in use.
        metrics.inc("db_operator.read_queued")
        return self._submit(fn, args, kwargs, 1)

    def _rollback(self) -> None:
        if self._conn is not None:
            with contextlib.suppress(sqlite3.Error):
                self._conn.rollback()

    def _worker(self) -> None:
        while not self._stop_event.is_set() or not self._queue.empty():
            try:
                task: _DbTask = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                attempt = 0
                while True:
                    try:
                        with metrics.timed("db_operator.task_duration"):
                            conn = self._connection()
                            res = task.fn(conn, *task.args, **task.kwargs)
                            conn.commit()
                        task.future.set_result(res)
                        break
                    except sqlite3.OperationalError as exc:
                        self._rollback()
                        attempt += 1
                        metrics.inc("db_operator.write_retries")
                        if attempt > (task.retries or 0):
                            task.future.set_exception(exc)
                            break
                        time.sleep(0.05 * attempt)
                        continue
                    except Exception as exc:
                        self._rollback()
                        task.future.set_exception(exc)
                        break
            finally:
                self._queue.task_done()
        self._fail_pending()
        if self._conn is not None:
            with contextlib.suppress(sqlite3.Error):
                self._conn.close()
            self._conn = None

    def _fail_pending(self) -> None:
        while True:
            try:
                task = self._queue.get_nowait()
            except queue.Empty:
                return
            if not task.future.done():
                task.future.set_exception(StoreError(f"store {self._db_path} is closed"))
            self._queue.task_done()

    def shutdown(self, wait: bool = True) -> None:
        with self._submit_lock:
            self._stop_event.set()
        if wait:
            self._thread.join(timeout=5)

    def is_alive(self) -> bool:
        return self._thread.is_alive()
