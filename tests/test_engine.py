import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, cast

import pytest

from gamemood.analytics.network import NetworkConfig
from gamemood.engine import MoodEngine
from gamemood.errors import ForecastingError, MoodAnalysisError, ResonanceAnalysisError, ResonanceRecordingError
from gamemood.model import MOOD_AXES, Game, PlaySession
from gamemood.mood.tracker import MoodTracker
from gamemood.pipeline.events import MOOD_ANALYZED, USER_RESET
from gamemood.resonance.tracker import SessionForecast
from gamemood.storage.mood_storage import MoodStorage
from gamemood.suggestions.engine import SuggestionContext

NOW = datetime(2026, 3, 16, 21, 0, tzinfo=timezone.utc)

GAMES = [
    Game(id="arena", title="Arena Clash", genres=["Action"], rating=4.5),
    Game(id="circuit", title="Circuit Rush", genres=["Racing"], rating=4.0),
    Game(id="kingdoms", title="Kingdoms at Dusk", genres=["Strategy"], rating=4.7),
    Game(id="tiles", title="Quiet Tiles", genres=["Puzzle"], rating=3.9),
]


def _competitive_history(count=10):
    return [
        PlaySession(
            game_id="arena" if i % 2 == 0 else "circuit",
            start_time=NOW - timedelta(days=count - i),
            mood="competitive",
            duration=60.0 + i,
            intensity=8.0,
            completed=i % 3 == 0,
            platform="steam",
            tags=["ranked"],
        )
        for i in range(count)
    ]


def _engine(tmp_path, **kwargs):
    return MoodEngine(MoodStorage(db_path=tmp_path / "mood.db"), **kwargs)


class _BrokenStorage:
    def __getattr__(self, name):
        async def _fail(*args, **kwargs):
            raise RuntimeError(f"storage unavailable: {name}")

        return _fail


def test_analysis_is_persisted_and_published(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        events = []
        engine.event_bus.subscribe(MOOD_ANALYZED, lambda event: events.append(event.payload))

        result = await engine.analyze_user_mood("u1", _competitive_history(), GAMES, now=NOW)

        assert result.dominant_mood in MOOD_AXES
        assert 0.0 <= result.confidence <= 1.0
        assert result.signal_count > 0
        for value in result.mood_vector.as_dict().values():
            assert 0.0 <= value <= 1.0

        current = await engine.get_current_mood("u1")
        assert current.dominant_mood == result.dominant_mood
        assert current.mood_vector.to_dict() == result.mood_vector.to_dict()
        assert events == [{"user_id": "u1", "dominant_mood": result.dominant_mood}]
        await engine.close()

    asyncio.run(scenario())


def test_current_mood_defaults_to_neutral(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        current = await engine.get_current_mood("nobody")
        assert current.confidence == 0.3
        assert current.dominant_mood == "calm"
        assert current.signal_count == 0
        await engine.close()

    asyncio.run(scenario())


def test_learning_from_short_history_falls_back(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        history = _competitive_history()

        report = await engine.learn_from_history("u1", history, GAMES)
        assert report.trained is False

        prediction = engine.predict_current_mood(history, now=NOW)
        assert prediction.predicted_mood == "competitive"
        assert prediction.confidence == 0.5

        pattern = engine.analyzer.get_pattern("competitive")
        assert pattern.confidence == pytest.approx(1.0)
        assert set(pattern.game_associations) == {"arena", "circuit"}
        await engine.close()

    asyncio.run(scenario())


def test_learning_trains_network_with_enough_sessions(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path, network_config=NetworkConfig(hidden_layers=(8,), epochs=3, seed=5))
        report = await engine.learn_from_history("u1", _competitive_history(30), GAMES)

        assert report.trained is True
        assert report.epochs == 3
        assert engine.predict_current_mood(_competitive_history(), now=NOW).from_network is True
        assert (await engine.health_check())["network_trained"] is True
        await engine.close()

    asyncio.run(scenario())


def test_update_folds_session_into_every_component(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        history = _competitive_history()
        await engine.learn_from_history("u1", history, GAMES)

        calm = PlaySession(game_id="tiles", start_time=NOW, mood="calm", duration=40.0)
        assert await engine.update_mood_analysis("u1", calm, GAMES, now=NOW + timedelta(hours=1)) is None

        assert engine.behavior.get_pattern("u1").total_sessions == 11
        assert engine.analyzer.get_transition("competitive", "calm").trigger_games == ["tiles"]
        assert await engine.tracker.count("u1") == 1
        await engine.close()

    asyncio.run(scenario())


def test_suggestions_and_recommendations(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        await engine.learn_from_history("u1", _competitive_history(), GAMES)

        ranked = engine.suggest_games("u1", GAMES, SuggestionContext(timestamp=NOW, current_mood="competitive"))
        assert 0 < len(ranked) <= 10
        assert all(s.confidence > 0.3 for s in ranked)

        recs = engine.get_mood_recommendations("competitive", "competitive")
        assert recs.transition_path == ["competitive"]
        assert set(recs.suggested_games) == {"arena", "circuit"}
        await engine.close()

    asyncio.run(scenario())


def test_trends_and_forecast_from_snapshots(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        history = _competitive_history()
        for day in range(6):
            await engine.analyze_user_mood("u1", history, GAMES, now=NOW - timedelta(days=5 - day))

        trend = await engine.analyze_mood_trends("u1", "month", now=NOW)
        assert trend.samples == 6
        assert set(trend.axis_trends) == set(MOOD_AXES)

        week = await engine.analyze_mood_trends("u1", "week", now=NOW + timedelta(days=2))
        assert week.samples == 6

        forecast = await engine.analyze_mood_forecast("u1", "next_week", now=NOW)
        assert forecast.predicted_mood in MOOD_AXES
        assert 0.0 <= forecast.confidence <= 1.0
        assert forecast.basis_samples == 6
        await engine.close()

    asyncio.run(scenario())


def test_invalid_timeframes_are_wrapped(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        with pytest.raises(ForecastingError):
            await engine.analyze_mood_forecast("u1", "next_decade")
        with pytest.raises(MoodAnalysisError):
            await engine.analyze_mood_trends("u1", "decade")
        await engine.close()

    asyncio.run(scenario())


def test_resonance_mismatch_adjusts_weights(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        before = engine._weights_for("u1")

        record = await engine.record_session_resonance(
            "u1",
            "s1",
            {"duration": 45, "engagement": 60, "satisfaction": 55, "game_ids": ["tiles"]},
            actual_mood="calm",
            forecast_used=SessionForecast("competitive", 0.8),
        )
        assert record.match is False

        after = (await engine.export_mood_data("u1"))["weights"]
        assert after["focus_stability"] > before.focus_stability
        assert after["engagement_volatility"] < before.engagement_volatility

        analysis = await engine.get_user_resonance_analysis("u1")
        assert analysis.total_sessions == 1
        assert (await engine.get_resonance_data_for_forecasting("u1"))["confidence_adjustments"] == {
            "competitive": pytest.approx(0.3)
        }
        await engine.close()

    asyncio.run(scenario())


def test_resonance_without_forecast_uses_current_forecast(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        record = await engine.record_session_resonance("u1", "s1", {"duration": 30}, actual_mood="calm")

        assert record.predicted_mood == "calm"
        assert record.forecast_confidence == pytest.approx(0.3)
        assert record.match is True
        recent = await engine.get_recent_resonance_sessions("u1")
        assert [r.session_id for r in recent] == ["s1"]
        assert (await engine.get_system_resonance_analysis()).total_sessions == 1
        await engine.close()

    asyncio.run(scenario())


def test_storage_failures_surface_as_domain_errors():
    async def scenario() -> None:
        engine = MoodEngine(cast(Any, _BrokenStorage()))

        with pytest.raises(MoodAnalysisError, match="Mood analysis failed"):
            await engine.analyze_user_mood("u1", _competitive_history(), GAMES, now=NOW)
        with pytest.raises(MoodAnalysisError):
            await engine.get_current_mood("u1")
        with pytest.raises(ForecastingError):
            await engine.analyze_mood_forecast("u1")
        with pytest.raises(ResonanceRecordingError):
            await engine.record_session_resonance(
                "u1", "s1", {"duration": 30}, "calm", SessionForecast("calm", 0.5)
            )
        with pytest.raises(ResonanceAnalysisError):
            await engine.get_user_resonance_analysis("u1")
        with pytest.raises(ResonanceAnalysisError):
            await engine.get_system_resonance_analysis()
        with pytest.raises(MoodAnalysisError):
            await engine.reset_user_mood_data("u1")

        health = await engine.health_check()
        assert health["status"] == "degraded"

    asyncio.run(scenario())


def test_domain_errors_hide_internal_cause():
    async def scenario() -> None:
        engine = MoodEngine(cast(Any, _BrokenStorage()))
        with pytest.raises(ResonanceAnalysisError) as excinfo:
            await engine.get_recent_resonance_sessions("u1")
        assert "storage unavailable" not in str(excinfo.value)
        assert excinfo.value.__cause__ is None

    asyncio.run(scenario())


def test_reset_clears_user_state(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        resets = []
        engine.event_bus.subscribe(USER_RESET, lambda event: resets.append(event.payload["user_id"]))

        history = _competitive_history()
        await engine.learn_from_history("u1", history, GAMES)
        await engine.analyze_user_mood("u1", history, GAMES, now=NOW)
        await engine.record_session_resonance(
            "u1", "s1", {"duration": 30}, "calm", SessionForecast("competitive", 0.6)
        )

        removed = await engine.reset_user_mood_data("u1")

        assert removed == {"mood_snapshots": 1, "session_resonance": 1}
        assert engine.behavior.get_pattern("u1") is None
        assert engine.collector.get_signal_stats("u1")["total_signals"] == 0
        assert engine._weights_for("u1") == engine.inferencer.weights
        assert resets == ["u1"]
        await engine.close()

    asyncio.run(scenario())


def test_stats_export_and_health(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        history = _competitive_history()
        await engine.learn_from_history("u1", history, GAMES)
        await engine.analyze_user_mood("u1", history, GAMES, now=NOW)

        stats = await engine.get_mood_analysis_stats("u1")
        assert stats["snapshots"] == 1
        assert stats["behavior_sessions"] == 10
        assert stats["mood_patterns"] == 1
        assert stats["network_trained"] is False

        exported = await engine.export_mood_data("u1")
        assert exported["user_id"] == "u1"
        assert len(exported["snapshots"]) == 1
        assert exported["behavior"]["total_sessions"] == 10

        health = await engine.health_check()
        assert health["status"] == "ok"
        assert health["storage"] is True
        await engine.close()

    asyncio.run(scenario())


def test_validate_mood_analysis(tmp_path):
    engine = _engine(tmp_path)
    neutral = MoodTracker.neutral()
    assert engine.validate_mood_analysis(neutral) == []

    neutral.confidence = 1.5
    assert any("confidence" in issue for issue in engine.validate_mood_analysis(neutral))


def test_repeated_analysis_does_not_duplicate_buffered_signals(tmp_path):
    async def scenario() -> None:
        once = _engine(tmp_path / "once")
        twice = _engine(tmp_path / "twice")
        history = _competitive_history()
        follow_up = PlaySession(game_id="kingdoms", start_time=NOW, mood="focused", duration=90.0)

        await once.analyze_user_mood("u1", history, GAMES, now=NOW)
        await twice.analyze_user_mood("u1", history, GAMES, now=NOW)
        await twice.analyze_user_mood("u1", history, GAMES, now=NOW)
        assert twice.collector.get_signal_stats("u1") == once.collector.get_signal_stats("u1")

        await once.update_mood_analysis("u1", follow_up, GAMES, now=NOW)
        await twice.update_mood_analysis("u1", follow_up, GAMES, now=NOW)
        first = await once.get_current_mood("u1")
        second = await twice.get_current_mood("u1")
        assert second.signal_count == first.signal_count
        assert second.confidence == first.confidence
        await once.close()
        await twice.close()

    asyncio.run(scenario())


def test_naive_session_times_are_treated_as_utc(tmp_path):
    async def scenario() -> None:
        engine = _engine(tmp_path)
        session = PlaySession(game_id="tiles", start_time=datetime(2026, 3, 16, 18, 0), mood="calm", duration=40.0)
        assert session.start_time.tzinfo is timezone.utc

        result = await engine.analyze_user_mood("u1", [session], GAMES, now=NOW)
        assert result.signal_count > 0
        await engine.close()

    asyncio.run(scenario())
