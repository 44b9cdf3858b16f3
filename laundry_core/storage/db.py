from __future__ import annotations

import sqlite3
from pathlib import Path

from laundry_core.config import ensure_directories

_DB_INITIALIZED: set[Path] = set()


def get_db_path() -> Path:
    paths = ensure_directories()
    return paths.data_dir / "laundry_core.sqlite3"


def init_db(db_path: Path | None = None) -> Path:
    db_path = db_path or get_db_path()
    if db_path in _DB_INITIALIZED:
        return db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT
            )
            """
        )
        conn.commit()
        _DB_INITIALIZED.add(db_path)
    finally:
        conn.close()
    return db_path


def get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    db_path = init_db(db_path)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn
