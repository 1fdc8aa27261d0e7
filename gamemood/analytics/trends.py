"""Mood trends and forecasts from persisted snapshots.

Snapshots arrive newest-first (the storage order). The newer half is
compared against the older half per mood axis, the same split used for
drift detection; a forecast extrapolates the recent mean along that shift,
scaled by the horizon.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from gamemood.defaults import (
    FORECAST_HORIZON_FACTOR as HORIZON_FACTOR,
    NEUTRAL_MOOD_CONFIDENCE,
    TREND_DELTA,
    TREND_MIN_SNAPSHOTS as MIN_SNAPSHOTS,
    TREND_TIMEFRAME_DAYS as TIMEFRAME_DAYS,
)
from gamemood.model import MOOD_AXES, MoodVector, utc_now
from gamemood.utils.math import clamp01, mean, std

logger = logging.getLogger(__name__)


def normalize_timeframe(value: str) -> str:
    """Accept ``week`` or ``next_week`` style names; reject anything else."""
    key = value.removeprefix("next_")
    if key not in TIMEFRAME_DAYS:
        raise ValueError(f"Unknown timeframe {value!r}, expected one of {sorted(TIMEFRAME_DAYS)}")
    return key


def _axis_means(snapshots: Sequence[Mapping]) -> dict[str, float]:
    return {axis: mean([float(s.get(axis, 0.5)) for s in snapshots], default=0.5) for axis in MOOD_AXES}


def _direction(shift: float) -> str:
    if shift > TREND_DELTA:
        return "rising"
    if shift < -TREND_DELTA:
        return "falling"
    return "stable"


@dataclass(slots=True)
class MoodTrendAnalysis:
    user_id: str
    timeframe: str
    samples: int
    average_vector: MoodVector
    recent_vector: MoodVector
    baseline_vector: MoodVector
    axis_shifts: dict[str, float] = field(default_factory=dict)
    axis_trends: dict[str, str] = field(default_factory=dict)
    dominant_distribution: dict[str, float] = field(default_factory=dict)
    volatility: float = 0.0
    average_confidence: float = 0.0
    analyzed_at: datetime = field(default_factory=utc_now)

    @property
    def overall_trend(self) -> str:
        rising = sum(1 for t in self.axis_trends.values() if t == "rising")
        falling = sum(1 for t in self.axis_trends.values() if t == "falling")
        if rising == falling:
            return "stable"
        return "shifting" if rising and falling else ("rising" if rising else "falling")

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "timeframe": self.timeframe,
            "samples": self.samples,
            "average_vector": self.average_vector.to_dict(),
            "recent_vector": self.recent_vector.to_dict(),
            "baseline_vector": self.baseline_vector.to_dict(),
            "axis_shifts": {k: round(v, 4) for k, v in self.axis_shifts.items()},
            "axis_trends": dict(self.axis_trends),
            "overall_trend": self.overall_trend,
            "dominant_distribution": {k: round(v, 4) for k, v in self.dominant_distribution.items()},
            "volatility": round(self.volatility, 4),
            "average_confidence": round(self.average_confidence, 4),
            "analyzed_at": self.analyzed_at.isoformat(),
        }


@dataclass(slots=True)
class MoodForecastResult:
    user_id: str
    period: str
    predicted_mood: str
    confidence: float
    predicted_vector: MoodVector
    alternatives: list[tuple[str, float]] = field(default_factory=list)
    horizon_days: int = 0
    basis_samples: int = 0
    generated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "period": self.period,
            "primary_forecast": {
                "predicted_mood": self.predicted_mood,
                "confidence": round(self.confidence, 4),
            },
            "predicted_vector": self.predicted_vector.to_dict(),
            "alternatives": [{"mood": m, "score": round(s, 4)} for m, s in self.alternatives],
            "horizon_days": self.horizon_days,
            "basis_samples": self.basis_samples,
            "generated_at": self.generated_at.isoformat(),
        }


def analyze_trend(
    user_id: str,
    snapshots: Sequence[Mapping],
    timeframe: str = "month",
    now: datetime | None = None,
) -> MoodTrendAnalysis:
    """Summarise newest-first *snapshots*.

    With fewer than ``TREND_MIN_SNAPSHOTS`` rows every axis reports
    ``stable`` and shifts stay at zero.
    """
    timeframe = normalize_timeframe(timeframe)
    average = _axis_means(snapshots)
    dominant = Counter(str(s["dominant_mood"]) for s in snapshots if s.get("dominant_mood"))
    total_dominant = sum(dominant.values())
    result = MoodTrendAnalysis(
        user_id=user_id,
        timeframe=timeframe,
        samples=len(snapshots),
        average_vector=MoodVector(**average),
        recent_vector=MoodVector(**average),
        baseline_vector=MoodVector(**average),
        axis_shifts={axis: 0.0 for axis in MOOD_AXES},
        axis_trends={axis: "stable" for axis in MOOD_AXES},
        dominant_distribution={m: c / total_dominant for m, c in dominant.most_common()} if total_dominant else {},
        volatility=mean([std([float(s.get(axis, 0.5)) for s in snapshots]) for axis in MOOD_AXES]),
        average_confidence=mean([float(s.get("confidence") or 0.0) for s in snapshots]),
        analyzed_at=now or utc_now(),
    )
    if len(snapshots) < MIN_SNAPSHOTS:
        return result

    half = len(snapshots) // 2
    recent = _axis_means(snapshots[:half])
    baseline = _axis_means(snapshots[half:])
    result.recent_vector = MoodVector(**recent)
    result.baseline_vector = MoodVector(**baseline)
    result.axis_shifts = {axis: recent[axis] - baseline[axis] for axis in MOOD_AXES}
    result.axis_trends = {axis: _direction(shift) for axis, shift in result.axis_shifts.items()}
    logger.debug("Trend for %s over %s: %s", user_id, timeframe, result.axis_trends)
    return result


def forecast(
    trend: MoodTrendAnalysis,
    period: str = "next_month",
    confidence_adjustments: Mapping[str, float] | None = None,
    now: datetime | None = None,
) -> MoodForecastResult:
    """Extrapolate *trend* over *period*.

    Confidence starts from the mean snapshot confidence, is discounted for
    sparse history and long horizons, then multiplied by the resonance
    adjustment recorded for the predicted mood.
    """
    key = normalize_timeframe(period)
    horizon = HORIZON_FACTOR[key]
    if trend.samples == 0:
        return MoodForecastResult(
            user_id=trend.user_id,
            period=period,
            predicted_mood=MOOD_AXES[0],
            confidence=NEUTRAL_MOOD_CONFIDENCE,
            predicted_vector=MoodVector(),
            horizon_days=TIMEFRAME_DAYS[key],
            generated_at=now or utc_now(),
        )

    recent = trend.recent_vector.as_dict()
    projected = {axis: clamp01(recent[axis] + trend.axis_shifts.get(axis, 0.0) * horizon) for axis in MOOD_AXES}
    ranked = sorted(projected.items(), key=lambda item: item[1], reverse=True)
    predicted = ranked[0][0]

    sample_factor = min(1.0, trend.samples / (2 * MIN_SNAPSHOTS))
    confidence = trend.average_confidence * (0.5 + 0.5 * sample_factor) * (1.0 - 0.25 * horizon)
    if confidence_adjustments and predicted in confidence_adjustments:
        confidence *= confidence_adjustments[predicted]

    return MoodForecastResult(
        user_id=trend.user_id,
        period=period,
        predicted_mood=predicted,
        confidence=round(clamp01(confidence), 4),
        predicted_vector=MoodVector(**projected),
        alternatives=ranked[1:3],
        horizon_days=TIMEFRAME_DAYS[key],
        basis_samples=trend.samples,
        generated_at=now or utc_now(),
    )
