"""mood_snapshots operations for MoodStorage (mixin)."""

from __future__ import annotations

from typing import Protocol

import aiosqlite

from gamemood.model import MOOD_AXES


class _MoodStorageLike(Protocol):
    snapshot_retention: int

    async def _ensure_initialized(self) -> None: ...
    async def _get_conn(self) -> aiosqlite.Connection: ...


class SnapshotOpsMixin:
    """Snapshot operations: save (with per-user retention), latest, list, range."""

    async def save_mood_snapshot(self: _MoodStorageLike, snapshot: dict) -> None:
        await self._ensure_initialized()
        conn = await self._get_conn()
        await conn.execute(
            """
            INSERT OR REPLACE INTO mood_snapshots (
                id, user_id, timestamp, calm, competitive, curious, social,
                focused, confidence, dominant_mood, signal_count
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot["id"],
                snapshot["user_id"],
                snapshot["timestamp"],
                *(float(snapshot.get(axis, 0.5)) for axis in MOOD_AXES),
                snapshot.get("confidence", 0.0),
                snapshot.get("dominant_mood"),
                snapshot.get("signal_count", 0),
            ),
        )
        await conn.execute(
            """
            DELETE FROM mood_snapshots
            WHERE user_id = ?
              AND id NOT IN (
                  SELECT id FROM mood_snapshots
                  WHERE user_id = ?
                  ORDER BY timestamp DESC
                  LIMIT ?
              )
            """,
            (snapshot["user_id"], snapshot["user_id"], self.snapshot_retention),
        )
        await conn.commit()

    async def get_latest_mood_snapshot(self: _MoodStorageLike, user_id: str) -> dict | None:
        await self._ensure_initialized()
        conn = await self._get_conn()
        cursor = await conn.execute(
            """
            SELECT * FROM mood_snapshots
            WHERE user_id = ?
            ORDER BY timestamp DESC
            LIMIT 1
            """,
            (user_id,),
        )
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def get_mood_snapshots(
        self: _MoodStorageLike,
        user_id: str,
        limit: int = 5,
        since: str | None = None,
    ) -> list[dict]:
        """Newest-first snapshots, optionally only those at or after *since* (ISO)."""
        await self._ensure_initialized()
        conn = await self._get_conn()
        if since is None:
            cursor = await conn.execute(
                """
                SELECT * FROM mood_snapshots
                WHERE user_id = ?
                ORDER BY timestamp DESC
                LIMIT ?
                """,
                (user_id, limit),
            )
        else:
            cursor = await conn.execute(
                """
                SELECT * FROM mood_snapshots
                WHERE user_id = ? AND timestamp >= ?
                ORDER BY timestamp DESC
                LIMIT ?
                """,
                (user_id, since, limit),
            )
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def count_mood_snapshots(self: _MoodStorageLike, user_id: str | None = None) -> int:
        await self._ensure_initialized()
        conn = await self._get_conn()
        if user_id is None:
            cursor = await conn.execute("SELECT COUNT(*) FROM mood_snapshots")
        else:
            cursor = await conn.execute(
                "SELECT COUNT(*) FROM mood_snapshots WHERE user_id = ?",
                (user_id,),
            )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0
