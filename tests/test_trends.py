from datetime import datetime, timedelta, timezone

import pytest

from gamemood.analytics.trends import analyze_trend, forecast, normalize_timeframe

NOW = datetime(2026, 3, 30, 12, 0, tzinfo=timezone.utc)


def _snapshots(recent_calm, baseline_calm, per_half=3, confidence=0.8):
    """Newest first: *per_half* recent rows followed by *per_half* older rows."""
    rows = []
    for idx in range(per_half * 2):
        calm = recent_calm if idx < per_half else baseline_calm
        rows.append({
            "timestamp": (NOW - timedelta(days=idx)).isoformat(),
            "calm": calm,
            "competitive": 0.4,
            "curious": 0.4,
            "social": 0.4,
            "focused": 0.4,
            "confidence": confidence,
            "dominant_mood": "calm" if calm > 0.4 else "competitive",
        })
    return rows


def test_timeframe_names_are_normalized():
    assert normalize_timeframe("week") == "week"
    assert normalize_timeframe("next_quarter") == "quarter"
    with pytest.raises(ValueError):
        normalize_timeframe("fortnight")


def test_few_snapshots_report_stable_trends():
    trend = analyze_trend("u1", _snapshots(0.9, 0.1, per_half=1), "week", NOW)
    assert trend.samples == 2
    assert set(trend.axis_trends.values()) == {"stable"}
    assert trend.overall_trend == "stable"


def test_rising_axis_is_detected():
    trend = analyze_trend("u1", _snapshots(0.9, 0.3), "month", NOW)

    assert trend.axis_shifts["calm"] == pytest.approx(0.6)
    assert trend.axis_trends["calm"] == "rising"
    assert trend.axis_trends["social"] == "stable"
    assert trend.overall_trend == "rising"
    assert trend.recent_vector.calm == pytest.approx(0.9)
    assert trend.baseline_vector.calm == pytest.approx(0.3)
    assert trend.dominant_distribution == {"calm": pytest.approx(0.5), "competitive": pytest.approx(0.5)}


def test_falling_axis_is_detected():
    trend = analyze_trend("u1", _snapshots(0.2, 0.8), "month", NOW)
    assert trend.axis_trends["calm"] == "falling"
    assert trend.to_dict()["overall_trend"] == "falling"


def test_forecast_without_history_is_neutral():
    result = forecast(analyze_trend("u1", [], "quarter", NOW), "next_month", now=NOW)
    assert result.predicted_mood == "calm"
    assert result.confidence == 0.3
    assert result.basis_samples == 0
    assert result.horizon_days == 30


def test_forecast_extrapolates_recent_direction():
    trend = analyze_trend("u1", _snapshots(0.7, 0.5), "quarter", NOW)
    result = forecast(trend, "next_week", now=NOW)

    assert result.predicted_mood == "calm"
    assert result.predicted_vector.calm == pytest.approx(0.75)
    assert [mood for mood, _ in result.alternatives] == ["competitive", "curious"]
    assert result.to_dict()["primary_forecast"]["predicted_mood"] == "calm"


def test_longer_horizons_are_less_confident():
    trend = analyze_trend("u1", _snapshots(0.7, 0.5), "quarter", NOW)
    week = forecast(trend, "next_week", now=NOW)
    quarter = forecast(trend, "next_quarter", now=NOW)
    assert week.confidence > quarter.confidence


def test_resonance_adjustment_scales_confidence():
    trend = analyze_trend("u1", _snapshots(0.7, 0.5), "quarter", NOW)
    plain = forecast(trend, "next_month", now=NOW)
    adjusted = forecast(trend, "next_month", {"calm": 0.5}, now=NOW)
    untouched = forecast(trend, "next_month", {"social": 0.3}, now=NOW)

    assert adjusted.confidence == pytest.approx(plain.confidence * 0.5, abs=1e-4)
    assert untouched.confidence == plain.confidence
