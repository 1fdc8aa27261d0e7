from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import aiosqlite

from gamemood.defaults import SNAPSHOT_RETENTION
from gamemood.storage._resonance_ops import ResonanceOpsMixin
from gamemood.storage._snapshot_ops import SnapshotOpsMixin

logger = logging.getLogger(__name__)


class MoodStorage(SnapshotOpsMixin, ResonanceOpsMixin):
    """Single access point to the mood database.

    Operations live in mixins:
    - SnapshotOpsMixin  - mood_snapshots
    - ResonanceOpsMixin - session_resonance
    """

    def __init__(
        self,
        db_path: str | Path = "data/gamemood.db",
        snapshot_retention: int = SNAPSHOT_RETENTION,
    ) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.snapshot_retention = snapshot_retention
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._conn: aiosqlite.Connection | None = None
        self._conn_lock = asyncio.Lock()

    async def _get_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            async with self._conn_lock:
                if self._conn is None:
                    self._conn = await aiosqlite.connect(str(self.db_path))
                    self._conn.row_factory = aiosqlite.Row
        return self._conn

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            self._initialized = False

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            conn = await self._get_conn()
            await conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS mood_snapshots (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    calm REAL NOT NULL DEFAULT 0.5,
                    competitive REAL NOT NULL DEFAULT 0.5,
                    curious REAL NOT NULL DEFAULT 0.5,
                    social REAL NOT NULL DEFAULT 0.5,
                    focused REAL NOT NULL DEFAULT 0.5,
                    confidence REAL NOT NULL DEFAULT 0.0,
                    dominant_mood TEXT,
                    signal_count INTEGER NOT NULL DEFAULT 0
                );

                CREATE INDEX IF NOT EXISTS idx_mood_snapshots_user_ts
                    ON mood_snapshots (user_id, timestamp DESC);

                CREATE TABLE IF NOT EXISTS session_resonance (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    session_id TEXT NOT NULL,
                    predicted_mood TEXT NOT NULL,
                    actual_mood TEXT NOT NULL,
                    forecast_confidence REAL NOT NULL,
                    is_match INTEGER NOT NULL,
                    resonance_score REAL NOT NULL,
                    confidence_delta REAL NOT NULL,
                    factors_json TEXT NOT NULL DEFAULT '{}',
                    metrics_json TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_session_resonance_user_created
                    ON session_resonance (user_id, created_at DESC);
                """
            )
            await conn.commit()
            self._initialized = True
            logger.debug("Mood storage initialised at %s", self.db_path)

    async def ping(self) -> bool:
        await self._ensure_initialized()
        conn = await self._get_conn()
        cursor = await conn.execute("SELECT 1")
        row = await cursor.fetchone()
        return bool(row and row[0] == 1)

    async def delete_user_data(self, user_id: str) -> dict[str, int]:
        """Remove every snapshot and resonance record of *user_id*."""
        await self._ensure_initialized()
        conn = await self._get_conn()
        snapshots = await conn.execute("DELETE FROM mood_snapshots WHERE user_id = ?", (user_id,))
        resonance = await conn.execute("DELETE FROM session_resonance WHERE user_id = ?", (user_id,))
        await conn.commit()
        removed = {"mood_snapshots": snapshots.rowcount, "session_resonance": resonance.rowcount}
        logger.info("Deleted stored mood data for %s: %s", user_id, removed)
        return removed
