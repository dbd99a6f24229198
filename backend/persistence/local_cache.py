from __future__ import annotations

import json
from typing import Any

from .database import SQLiteCacheDB
from .time_utils import to_iso, utc_now

PROFILE_PREFIX = "user_"
TRANSCRIPT_PREFIX = "chat_history_"


def _json_dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def profile_key(uid: str) -> str:
    return f"{PROFILE_PREFIX}{uid}"


def transcript_key(uid: str) -> str:
    return f"{TRANSCRIPT_PREFIX}{uid}"


class LocalCache:
    """Durable key/value cache on the device, values stored as JSON."""

    def __init__(self, db: SQLiteCacheDB) -> None:
        self._db = db

    def get(self, key: str) -> Any | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT value_json FROM kv_cache WHERE key = ?",
                (key,),
            ).fetchone()
        if not row:
            return None
        return json.loads(row["value_json"])

    def set(self, key: str, value: Any) -> None:
        now = to_iso(utc_now())
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO kv_cache (key, value_json, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                  value_json = excluded.value_json,
                  updated_at = excluded.updated_at
                """,
                (key, _json_dumps(value), now, now),
            )

    def remove(self, key: str) -> bool:
        with self._db.connection() as conn:
            deleted = conn.execute("DELETE FROM kv_cache WHERE key = ?", (key,)).rowcount
        return deleted > 0
