"""session_resonance operations for MoodStorage (mixin)."""

from __future__ import annotations

import json
from typing import Protocol

import aiosqlite


class _MoodStorageLike(Protocol):
    async def _ensure_initialized(self) -> None: ...
    async def _get_conn(self) -> aiosqlite.Connection: ...


def _row_to_resonance(row: aiosqlite.Row) -> dict:
    record = dict(row)
    record["match"] = bool(record.pop("is_match"))
    record["factors"] = json.loads(record.pop("factors_json") or "{}")
    record["session_metrics"] = json.loads(record.pop("metrics_json") or "{}")
    return record


class ResonanceOpsMixin:
    """Resonance records: append-only inserts and newest-first reads."""

    async def save_session_resonance(self: _MoodStorageLike, record: dict) -> None:
        await self._ensure_initialized()
        conn = await self._get_conn()
        await conn.execute(
            """
            INSERT INTO session_resonance (
                id, user_id, session_id, predicted_mood, actual_mood,
                forecast_confidence, is_match, resonance_score, confidence_delta,
                factors_json, metrics_json, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record["id"],
                record["user_id"],
                record["session_id"],
                record["predicted_mood"],
                record["actual_mood"],
                record["forecast_confidence"],
                int(bool(record["match"])),
                record["resonance_score"],
                record["confidence_delta"],
                json.dumps(record.get("factors") or {}, ensure_ascii=False),
                json.dumps(record.get("session_metrics") or {}, ensure_ascii=False),
                record["created_at"],
            ),
        )
        await conn.commit()

    async def get_session_resonances(
        self: _MoodStorageLike,
        user_id: str | None = None,
        limit: int | None = None,
        since: str | None = None,
    ) -> list[dict]:
        """Newest-first resonance records; ``user_id=None`` spans all users."""
        await self._ensure_initialized()
        conn = await self._get_conn()
        clauses: list[str] = []
        params: list = []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if since is not None:
            clauses.append("created_at >= ?")
            params.append(since)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT * FROM session_resonance {where} ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()
        return [_row_to_resonance(row) for row in rows]

    async def count_session_resonances(self: _MoodStorageLike, user_id: str | None = None) -> int:
        await self._ensure_initialized()
        conn = await self._get_conn()
        if user_id is None:
            cursor = await conn.execute("SELECT COUNT(*) FROM session_resonance")
        else:
            cursor = await conn.execute(
                "SELECT COUNT(*) FROM session_resonance WHERE user_id = ?",
                (user_id,),
            )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0
