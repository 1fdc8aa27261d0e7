from __future__ import annotations

import logging
from datetime import datetime
from uuid import uuid4

from gamemood.model import MOOD_AXES, MoodAnalysisResult, MoodVector, NormalizedFeatures, parse_datetime, utc_now
from gamemood.storage.mood_storage import MoodStorage

logger = logging.getLogger(__name__)


def snapshot_to_result(snapshot: dict) -> MoodAnalysisResult:
    """Rebuild an analysis result from a stored row; features are not persisted."""
    return MoodAnalysisResult(
        mood_vector=MoodVector.from_mapping(snapshot),
        confidence=float(snapshot.get("confidence") or 0.0),
        signal_count=int(snapshot.get("signal_count") or 0),
        last_updated=parse_datetime(snapshot["timestamp"]),
        features=NormalizedFeatures(),
        dominant_mood=snapshot.get("dominant_mood") or MOOD_AXES[0],
    )


class MoodTracker:
    """Persists one snapshot per analysis and reads them back."""

    def __init__(self, storage: MoodStorage) -> None:
        self.storage = storage

    async def record(self, user_id: str, result: MoodAnalysisResult) -> dict:
        """Called after every analysis. Builds the snapshot row and saves it."""
        snapshot = {
            "id": str(uuid4()),
            "user_id": user_id,
            "timestamp": result.last_updated.isoformat(),
            **{axis: round(value, 4) for axis, value in result.mood_vector.as_dict().items()},
            "confidence": round(result.confidence, 4),
            "dominant_mood": result.dominant_mood,
            "signal_count": result.signal_count,
        }
        await self.storage.save_mood_snapshot(snapshot)
        logger.info(
            "MoodSnapshot saved: user=%s dominant=%s confidence=%.2f",
            user_id,
            result.dominant_mood,
            result.confidence,
        )
        return snapshot

    async def get_current(self, user_id: str) -> MoodAnalysisResult | None:
        """Latest snapshot for the user."""
        snapshot = await self.storage.get_latest_mood_snapshot(user_id)
        return snapshot_to_result(snapshot) if snapshot else None

    async def get_history(
        self,
        user_id: str,
        limit: int = 5,
        since: datetime | None = None,
    ) -> list[dict]:
        """Newest-first snapshots for trend analysis."""
        return await self.storage.get_mood_snapshots(
            user_id,
            limit=limit,
            since=since.isoformat() if since else None,
        )

    async def count(self, user_id: str | None = None) -> int:
        return await self.storage.count_mood_snapshots(user_id)

    @staticmethod
    def neutral(now: datetime | None = None, confidence: float = 0.3) -> MoodAnalysisResult:
        return MoodAnalysisResult(
            mood_vector=MoodVector(),
            confidence=confidence,
            signal_count=0,
            last_updated=now or utc_now(),
            features=NormalizedFeatures(),
            dominant_mood=MOOD_AXES[0],
        )
