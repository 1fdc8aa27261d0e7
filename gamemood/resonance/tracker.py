"""Session resonance: how well a mood forecast matched the session that followed.

Each played session is scored against the forecast that preceded it and
stored in ``session_resonance``. Aggregates feed back into forecasting as
per-mood confidence adjustments and into the confidence calibrator.

Usage::

    tracker = SessionResonanceTracker(storage)
    record = await tracker.record_session_resonance(
        "u1", "s-42",
        SessionForecast("competitive", 0.8),
        SessionMetrics(duration=60, engagement=80, satisfaction=70, game_ids=("g1",)),
        actual_mood="competitive",
    )
    analysis = await tracker.get_user_resonance_analysis("u1")
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from gamemood.analytics.calibrator import calibration_metrics
from gamemood.catalog import MoodCatalog
from gamemood.defaults import (
    RESONANCE_CONFIDENCE_WEIGHT as CONFIDENCE_WEIGHT,
    RESONANCE_HISTOGRAM_BINS as HISTOGRAM_BINS,
    RESONANCE_INSIGHT_TOP as INSIGHT_TOP,
    RESONANCE_MATCH_WEIGHT as MATCH_WEIGHT,
    RESONANCE_MIN_ADJUSTMENT as MIN_ADJUSTMENT,
    RESONANCE_TREND_DELTA as TREND_DELTA,
    RESONANCE_TREND_WINDOW as TREND_WINDOW,
)
from gamemood.model import parse_datetime, utc_now
from gamemood.storage.mood_storage import MoodStorage
from gamemood.utils.math import clamp01, mean

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionForecast:
    predicted_mood: str
    confidence: float


@dataclass(frozen=True, slots=True)
class SessionMetrics:
    duration: float  # minutes
    engagement: float = 50.0  # 0-100
    satisfaction: float = 50.0  # 0-100
    game_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration": self.duration,
            "engagement": self.engagement,
            "satisfaction": self.satisfaction,
            "game_ids": list(self.game_ids),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "SessionMetrics":
        return cls(
            duration=float(raw.get("duration", 0.0)),
            engagement=float(raw.get("engagement", 50.0)),
            satisfaction=float(raw.get("satisfaction", 50.0)),
            game_ids=tuple(str(g) for g in raw.get("game_ids") or ()),
        )


@dataclass(frozen=True, slots=True)
class SessionResonance:
    id: str
    user_id: str
    session_id: str
    predicted_mood: str
    actual_mood: str
    forecast_confidence: float
    match: bool
    resonance_score: float
    confidence_delta: float
    factors: dict[str, float]
    session_metrics: SessionMetrics
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "predicted_mood": self.predicted_mood,
            "actual_mood": self.actual_mood,
            "forecast_confidence": self.forecast_confidence,
            "match": self.match,
            "resonance_score": self.resonance_score,
            "confidence_delta": self.confidence_delta,
            "factors": dict(self.factors),
            "session_metrics": self.session_metrics.to_dict(),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SessionResonance":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            session_id=row["session_id"],
            predicted_mood=row["predicted_mood"],
            actual_mood=row["actual_mood"],
            forecast_confidence=float(row["forecast_confidence"]),
            match=bool(row["match"]),
            resonance_score=float(row["resonance_score"]),
            confidence_delta=float(row["confidence_delta"]),
            factors={k: float(v) for k, v in (row.get("factors") or {}).items()},
            session_metrics=SessionMetrics.from_dict(row.get("session_metrics") or {}),
            created_at=parse_datetime(row["created_at"]),
        )


@dataclass(slots=True)
class SessionResonanceAnalysis:
    total_sessions: int = 0
    average_resonance: float = 0.0
    mood_accuracy: dict[str, float] = field(default_factory=dict)
    improvement_trend: str = "stable"
    strongest_predictions: list[str] = field(default_factory=list)
    weakest_predictions: list[str] = field(default_factory=list)
    optimal_session_length: dict[str, int] = field(default_factory=dict)
    engagement_patterns: dict[str, int] = field(default_factory=dict)
    accuracy_histogram: list[int] = field(default_factory=lambda: [0] * HISTOGRAM_BINS)
    calibration: dict[str, float] = field(default_factory=dict)
    last_updated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_sessions": self.total_sessions,
            "average_resonance": round(self.average_resonance, 4),
            "mood_accuracy": {k: round(v, 4) for k, v in self.mood_accuracy.items()},
            "improvement_trend": self.improvement_trend,
            "insights": {
                "strongest_predictions": list(self.strongest_predictions),
                "weakest_predictions": list(self.weakest_predictions),
                "optimal_session_length": dict(self.optimal_session_length),
                "engagement_patterns": dict(self.engagement_patterns),
            },
            "accuracy_histogram": list(self.accuracy_histogram),
            "calibration": dict(self.calibration),
            "last_updated": self.last_updated.isoformat(),
        }


class SessionResonanceTracker:
    """Scores, persists and aggregates session resonance records.

    Parameters
    ----------
    storage:
        Database holding the ``session_resonance`` table.
    moods:
        Catalog with mood compatibility and per-mood session lengths.
    """

    def __init__(self, storage: MoodStorage, moods: MoodCatalog | None = None) -> None:
        self.storage = storage
        self.moods = moods or MoodCatalog.default()

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def calculate_resonance(
        self,
        user_id: str,
        session_id: str,
        forecast: SessionForecast,
        metrics: SessionMetrics,
        actual_mood: str,
        now: datetime | None = None,
    ) -> SessionResonance:
        match = forecast.predicted_mood == actual_mood
        confidence = clamp01(forecast.confidence)
        alignment = self.mood_alignment(forecast.predicted_mood, actual_mood)
        return SessionResonance(
            id=str(uuid4()),
            user_id=user_id,
            session_id=session_id,
            predicted_mood=forecast.predicted_mood,
            actual_mood=actual_mood,
            forecast_confidence=confidence,
            match=match,
            resonance_score=round(MATCH_WEIGHT * float(match) + CONFIDENCE_WEIGHT * confidence, 4),
            confidence_delta=round(abs(confidence - float(match)), 4),
            factors={
                "mood_alignment": alignment,
                "duration_fit": round(self.duration_fit(forecast.predicted_mood, metrics.duration), 4),
                "engagement_correlation": round(self.engagement_correlation(alignment, metrics.engagement), 4),
            },
            session_metrics=metrics,
            created_at=now or utc_now(),
        )

    def mood_alignment(self, predicted: str, actual: str) -> float:
        if predicted == actual:
            return 1.0
        return 0.5 if self.moods.are_compatible(predicted, actual) else 0.0

    def duration_fit(self, mood: str, duration: float) -> float:
        window = self.moods.session_lengths.get(mood)
        if window is None:
            return 0.5
        low, high, ideal = window
        if low <= duration <= high:
            max_deviation = max(ideal - low, high - ideal) or 1.0
            return max(0.0, 1.0 - abs(duration - ideal) / max_deviation)
        return 0.2

    @staticmethod
    def engagement_correlation(alignment: float, engagement: float) -> float:
        expected = 50.0 + alignment * 50.0
        return clamp01(1.0 - abs(engagement - expected) / 50.0)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def record_session_resonance(
        self,
        user_id: str,
        session_id: str,
        forecast: SessionForecast,
        metrics: SessionMetrics,
        actual_mood: str,
    ) -> SessionResonance:
        resonance = self.calculate_resonance(user_id, session_id, forecast, metrics, actual_mood)
        await self.storage.save_session_resonance(resonance.to_dict())
        logger.info(
            "Session resonance recorded: %.3f for mood %s (actual %s)",
            resonance.resonance_score,
            resonance.predicted_mood,
            actual_mood,
        )
        return resonance

    async def _load(self, user_id: str | None, limit: int | None = None) -> list[SessionResonance]:
        rows = await self.storage.get_session_resonances(user_id, limit=limit)
        return [SessionResonance.from_row(row) for row in rows]

    async def get_recent_resonance_sessions(self, user_id: str, limit: int = 10) -> list[SessionResonance]:
        return await self._load(user_id, limit=limit)

    async def get_user_resonance_analysis(self, user_id: str) -> SessionResonanceAnalysis:
        return self.analyze(await self._load(user_id))

    async def get_system_resonance_analysis(self) -> SessionResonanceAnalysis:
        return self.analyze(await self._load(None))

    async def get_resonance_data_for_forecasting(self, user_id: str) -> dict[str, Any]:
        records = await self._load(user_id)
        analysis = self.analyze(records)
        patterns: dict[str, dict[str, int]] = {}
        for mood, group in self._group_by_prediction(records).items():
            patterns[mood] = {
                "avg_duration": round(mean([r.session_metrics.duration for r in group])),
                "avg_engagement": round(mean([r.session_metrics.engagement for r in group])),
            }
        return {
            "mood_accuracy": dict(analysis.mood_accuracy),
            "confidence_adjustments": {
                mood: max(MIN_ADJUSTMENT, accuracy) for mood, accuracy in analysis.mood_accuracy.items()
            },
            "session_patterns": patterns,
        }

    async def get_resonance_stats(self, user_id: str | None = None) -> dict[str, Any]:
        records = await self._load(user_id)
        return {
            "total_sessions": len(records),
            "average_resonance": round(mean([r.resonance_score for r in records]), 4),
            "match_rate": round(mean([float(r.match) for r in records]), 4),
            "sessions_by_mood": dict(Counter(r.predicted_mood for r in records)),
        }

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def analyze(self, records: Sequence[SessionResonance]) -> SessionResonanceAnalysis:
        if not records:
            return SessionResonanceAnalysis()

        groups = self._group_by_prediction(records)
        accuracy = {mood: mean([r.resonance_score for r in group]) for mood, group in groups.items()}
        ranked = sorted(accuracy.items(), key=lambda item: item[1], reverse=True)

        histogram = [0] * HISTOGRAM_BINS
        for record in records:
            histogram[min(HISTOGRAM_BINS - 1, int(record.resonance_score * HISTOGRAM_BINS))] += 1

        return SessionResonanceAnalysis(
            total_sessions=len(records),
            average_resonance=mean([r.resonance_score for r in records]),
            mood_accuracy=accuracy,
            improvement_trend=self._improvement_trend(records),
            strongest_predictions=[mood for mood, _ in ranked[:INSIGHT_TOP]],
            weakest_predictions=[mood for mood, _ in reversed(ranked[-INSIGHT_TOP:])],
            optimal_session_length={
                mood: round(mean([r.session_metrics.duration for r in group])) for mood, group in groups.items()
            },
            engagement_patterns={
                mood: round(mean([r.session_metrics.engagement for r in group])) for mood, group in groups.items()
            },
            accuracy_histogram=histogram,
            calibration=calibration_metrics([(r.forecast_confidence, float(r.match)) for r in records]),
        )

    @staticmethod
    def _group_by_prediction(records: Sequence[SessionResonance]) -> dict[str, list[SessionResonance]]:
        groups: dict[str, list[SessionResonance]] = defaultdict(list)
        for record in records:
            groups[record.predicted_mood].append(record)
        return groups

    @staticmethod
    def _improvement_trend(records: Sequence[SessionResonance]) -> str:
        if len(records) < TREND_WINDOW:
            return "stable"
        ordered = sorted(records, key=lambda r: r.created_at)
        recent = ordered[-TREND_WINDOW:]
        older = ordered[-2 * TREND_WINDOW:-TREND_WINDOW]
        if not older:
            return "stable"
        delta = mean([r.resonance_score for r in recent]) - mean([r.resonance_score for r in older])
        if delta > TREND_DELTA:
            return "improving"
        if delta < -TREND_DELTA:
            return "declining"
        return "stable"
