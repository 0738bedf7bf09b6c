from __future__ import annotations

import sqlite3
from collections.abc import Callable

from image_staging.logger import get_logger
from image_staging.metrics import metrics

_logger = get_logger("migrations")

# Migration function signature: (conn: sqlite3.Connection) -> None
MigrationFn = Callable[[sqlite3.Connection], None]


def _columns(conn: sqlite3.Connection, table: str) -> list[str]:
    return [c[1] for c in conn.execute(f"PRAGMA table_info({table})").fetchall()]


def _upgrade_to_1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS objects (
            id TEXT PRIMARY KEY,
            blob BLOB NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_objects_created_at ON objects(created_at)")
    conn.execute("PRAGMA user_version = 1")


def _upgrade_to_2(conn: sqlite3.Connection) -> None:
    # Rows written before v2 keep a NULL mime_type.
    if "mime_type" not in _columns(conn, "objects"):
        conn.execute("ALTER TABLE objects ADD COLUMN mime_type TEXT")
    conn.execute("PRAGMA user_version = 2")


MIGRATIONS_UPGRADE: dict[int, MigrationFn] = {1: _upgrade_to_1, 2: _upgrade_to_2}


def get_latest_version() -> int:
    return max(MIGRATIONS_UPGRADE.keys()) if MIGRATIONS_UPGRADE else 0


def get_user_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("PRAGMA user_version").fetchone()
    return int(row[0]) if row else 0


def apply_migrations(conn: sqlite3.Connection, target: int | None = None) -> int:
    """Upgrade the schema to ``target`` (default: latest). Returns the new version."""
    current = get_user_version(conn)
    latest = get_latest_version() if target is None else int(target)

    if current > latest:
        _logger.warning("object store schema v%d is newer than this build (v%d)", current, latest)
        return current

    for v in range(current + 1, latest + 1):
        fn = MIGRATIONS_UPGRADE.get(v)
        if fn:
            with metrics.timed(f"migrations.apply_v{v}_duration"):
                fn(conn)
            conn.commit()
            metrics.inc(f"migrations.applied_v{v}")
            _logger.debug("object store migrated to v%d", v)
    return get_user_version(conn)
