from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import TYPE_CHECKING

from gamemood.defaults import (
    CALIBRATOR_BINS as DEFAULT_BINS,
    CALIBRATOR_MIN_BUCKET as MIN_BUCKET,
    CALIBRATOR_MIN_SAMPLES as MIN_SAMPLES,
)
from gamemood.utils.math import clamp01

if TYPE_CHECKING:
    from gamemood.storage.mood_storage import MoodStorage

logger = logging.getLogger(__name__)

_HISTORY_LIMIT = 500


def _in_bin(p: float, idx: int, bins: int) -> bool:
    left = idx / bins
    right = (idx + 1) / bins
    return (left <= p < right) or (idx == bins - 1 and p == 1.0)


def calibration_metrics(points: Sequence[tuple[float, float]], bins: int = DEFAULT_BINS) -> dict[str, float]:
    """Expected calibration error and Brier score over ``(confidence, outcome)`` pairs."""
    if not points:
        return {"samples": 0.0, "ece": 0.0, "brier": 0.0}

    probs = [clamp01(p) for p, _ in points]
    labels = [1.0 if y else 0.0 for _, y in points]
    brier = sum((p - y) ** 2 for p, y in zip(probs, labels)) / len(probs)

    ece = 0.0
    bins = max(2, bins)
    for idx in range(bins):
        bucket = [(p, y) for p, y in zip(probs, labels) if _in_bin(p, idx, bins)]
        if not bucket:
            continue
        conf_avg = sum(p for p, _ in bucket) / len(bucket)
        acc_avg = sum(y for _, y in bucket) / len(bucket)
        ece += abs(conf_avg - acc_avg) * (len(bucket) / len(probs))

    return {
        "samples": float(len(probs)),
        "ece": round(ece, 6),
        "brier": round(brier, 6),
    }


def calibrate(points: Sequence[tuple[float, float]], raw_confidence: float, bins: int = DEFAULT_BINS) -> float:
    """Blend *raw_confidence* with the empirical hit rate of its reliability bin.

    Too few points overall, or in the bin, leave the raw value unchanged.
    """
    p_raw = clamp01(raw_confidence)
    if len(points) < MIN_SAMPLES:
        return p_raw

    bins = max(2, bins)
    bin_index = min(bins - 1, int(math.floor(p_raw * bins)))
    bucket = [1.0 if y else 0.0 for p, y in points if _in_bin(clamp01(p), bin_index, bins)]
    if len(bucket) < MIN_BUCKET:
        return p_raw

    empirical = sum(bucket) / len(bucket)
    return clamp01(round(0.5 * p_raw + 0.5 * empirical, 4))


class ConfidenceCalibrator:
    """Calibrates forecast confidence against recorded resonance outcomes.

    Each resonance record contributes ``(forecast_confidence, match)``.
    """

    def __init__(self, storage: "MoodStorage") -> None:
        self.storage = storage

    async def _points(self, user_id: str | None) -> list[tuple[float, float]]:
        rows = await self.storage.get_session_resonances(user_id, limit=_HISTORY_LIMIT)
        return [
            (float(row["forecast_confidence"]), 1.0 if row["match"] else 0.0)
            for row in rows
            if row.get("forecast_confidence") is not None
        ]

    async def get_confidence_metrics(self, user_id: str | None = None, bins: int = DEFAULT_BINS) -> dict[str, float]:
        return calibration_metrics(await self._points(user_id), bins)

    async def calibrate_confidence(
        self,
        user_id: str,
        raw_confidence: float,
        bins: int = DEFAULT_BINS,
    ) -> float:
        calibrated = calibrate(await self._points(user_id), raw_confidence, bins)
        if calibrated != clamp01(raw_confidence):
            logger.debug("Calibrated confidence for %s: %.3f→%.3f", user_id, raw_confidence, calibrated)
        return calibrated
