from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

from laundry_core.session.models import TokenPair
from laundry_core.storage.db import get_connection

ACCESS_TOKEN_KEY = "auth-token"
REFRESH_TOKEN_KEY = "auth-refresh-token"
EXPIRES_AT_KEY = "auth-expires-at"

_TOKEN_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class SqliteKeyValueStorage:
    """Durable key/value storage backed by the local sqlite file."""

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path

    def get(self, key: str) -> Optional[str]:
        with get_connection(self._db_path) as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        updated_at = datetime.now(tz=timezone.utc).isoformat()
        with get_connection(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, updated_at),
            )

    def remove(self, key: str) -> None:
        with get_connection(self._db_path) as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))


class MemoryKeyValueStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._values)


class TokenStore:
    """Owns the persisted access/refresh token pair.

    Only one pair is stored at a time. A missing refresh token means the
    user is logged out.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage
        self._lock = threading.Lock()

    def get_access_token(self) -> Optional[str]:
        return self._storage.get(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self._storage.get(REFRESH_TOKEN_KEY)

    def get_expires_at(self) -> Optional[float]:
        raw = self._storage.get(EXPIRES_AT_KEY)
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            return None

    def is_access_token_expired(self, now: Optional[float] = None) -> bool:
        expires_at = self.get_expires_at()
        if expires_at is None:
            return False
        return (now if now is not None else time.time()) >= expires_at

    def has_session(self) -> bool:
        return bool(self.get_refresh_token())

    def save(self, pair: TokenPair) -> None:
        expires_at = time.time() + pair.expires_in
        with self._lock:
            self._storage.set(ACCESS_TOKEN_KEY, pair.access_token)
            self._storage.set(REFRESH_TOKEN_KEY, pair.refresh_token)
            self._storage.set(EXPIRES_AT_KEY, str(expires_at))

    def clear(self) -> None:
        with self._lock:
            for key in _TOKEN_KEYS:
                self._storage.remove(key)
