"""Async facade over the mood and behavioral prediction components.

``MoodEngine`` is the only object callers need: it owns the signal buffer,
per-user inference weights, the pattern learner, the behavior analyzer and
suggestion cache, and the persisted snapshot and resonance history.
Operational failures are logged here with their cause and re-raised as a
:mod:`gamemood.errors` type with a fixed message.

Usage::

    engine = MoodEngine(MoodStorage("data/gamemood.db"))
    await engine.learn_from_history("u1", sessions, games)
    result = await engine.analyze_user_mood("u1", sessions, games)
    ranked = engine.suggest_games("u1", games, SuggestionContext(current_mood=result.dominant_mood))
    await engine.close()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any

from gamemood.analytics.behavior import BehaviorPatternAnalyzer
from gamemood.analytics.calibrator import ConfidenceCalibrator
from gamemood.analytics.mood_patterns import MoodPrediction, MoodRecommendations, NeuralMoodAnalyzer, TrainingReport
from gamemood.analytics.network import NetworkConfig
from gamemood.analytics.trends import (
    MoodForecastResult,
    MoodTrendAnalysis,
    analyze_trend,
    forecast,
    normalize_timeframe,
)
from gamemood.catalog import GameCatalog, MoodCatalog
from gamemood.defaults import (
    NEUTRAL_MOOD_CONFIDENCE,
    SNAPSHOT_RETENTION,
    TREND_TIMEFRAME_DAYS as TIMEFRAME_DAYS,
)
from gamemood.errors import ForecastingError, MoodAnalysisError, ResonanceAnalysisError, ResonanceRecordingError
from gamemood.model import (
    Activity,
    BehavioralSignal,
    Game,
    MoodAnalysisResult,
    MoodInferenceWeights,
    PlaySession,
    WeightFeedback,
    utc_now,
)
from gamemood.mood.features import FeatureExtractor
from gamemood.mood.inference import MoodInferencer
from gamemood.mood.tracker import MoodTracker
from gamemood.pipeline.events import MOOD_ANALYZED, USER_RESET, EventBus
from gamemood.resonance.tracker import (
    SessionForecast,
    SessionMetrics,
    SessionResonance,
    SessionResonanceAnalysis,
    SessionResonanceTracker,
)
from gamemood.signals.collector import SignalCollector
from gamemood.storage.mood_storage import MoodStorage
from gamemood.storage.store import InMemoryStore, KeyValueStore
from gamemood.suggestions.engine import GameSuggestion, PredictiveSuggestionEngine, SuggestionContext
from gamemood.suggestions.rating import RatingPredictor

logger = logging.getLogger(__name__)

_WEIGHTS_PREFIX = "weights:"
_LAST_SESSION_PREFIX = "last_session:"


class MoodEngine:
    """Entry point for mood analysis, prediction, suggestions and resonance.

    Parameters
    ----------
    storage:
        Snapshot and resonance persistence.
    moods:
        Mood vocabulary shared by every component.
    store_factory:
        Builds the key-value stores for patterns, behavior, suggestion cache
        and engine state; defaults to unbounded :class:`InMemoryStore`.
    """

    def __init__(
        self,
        storage: MoodStorage,
        moods: MoodCatalog | None = None,
        *,
        network_config: NetworkConfig | None = None,
        signal_max_age: timedelta | None = None,
        rating_predictor: RatingPredictor | None = None,
        store_factory: Any = None,
        cache_ttl: float | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        make_store = store_factory or InMemoryStore
        self.storage = storage
        self.moods = moods or MoodCatalog.default()
        self.event_bus = event_bus or EventBus()
        self.state: KeyValueStore = make_store()

        self.collector = SignalCollector(max_signal_age=signal_max_age)
        self.extractor = FeatureExtractor()
        self.inferencer = MoodInferencer(moods=self.moods)
        self.analyzer = NeuralMoodAnalyzer(moods=self.moods, store=make_store(), network_config=network_config)
        self.behavior = BehaviorPatternAnalyzer(store=make_store(), event_bus=self.event_bus)
        suggestion_kwargs: dict[str, Any] = {}
        if cache_ttl is not None:
            suggestion_kwargs["cache_ttl"] = cache_ttl
        self.suggestions = PredictiveSuggestionEngine(
            self.behavior,
            rating_predictor=rating_predictor,
            cache=make_store(),
            event_bus=self.event_bus,
            **suggestion_kwargs,
        )
        self.tracker = MoodTracker(storage)
        self.resonance = SessionResonanceTracker(storage, self.moods)
        self.calibrator = ConfidenceCalibrator(storage)

    # ------------------------------------------------------------------
    # Mood analysis
    # ------------------------------------------------------------------

    async def analyze_user_mood(
        self,
        user_id: str,
        sessions: Sequence[PlaySession],
        games: Sequence[Game] = (),
        activities: Sequence[Activity] = (),
        now: datetime | None = None,
    ) -> MoodAnalysisResult:
        try:
            now = now or utc_now()
            signals = self.collector.collect_all(sessions, GameCatalog(games), activities)
            self.collector.replace_signals(user_id, signals, now=now)
            result = await self._analyze_signals(user_id, signals, now)
            if sessions:
                self._remember_last_session(user_id, max(sessions, key=lambda s: s.start_time))
            return result
        except Exception:
            logger.exception("Mood analysis failed for %s", user_id)
            raise MoodAnalysisError("Mood analysis failed") from None

    async def get_current_mood(self, user_id: str) -> MoodAnalysisResult:
        """Latest persisted analysis, or a neutral mood at low confidence."""
        try:
            current = await self.tracker.get_current(user_id)
        except Exception:
            logger.exception("Loading current mood failed for %s", user_id)
            raise MoodAnalysisError("Failed to load current mood") from None
        return current or MoodTracker.neutral(confidence=NEUTRAL_MOOD_CONFIDENCE)

    async def update_mood_analysis(
        self,
        user_id: str,
        new_session: PlaySession,
        games: Sequence[Game] = (),
        now: datetime | None = None,
    ) -> None:
        """Fold one finished session into patterns, behavior and the mood snapshot."""
        try:
            now = now or utc_now()
            catalog = GameCatalog(games)
            previous = self.state.get(_LAST_SESSION_PREFIX + user_id)
            self.analyzer.update_patterns(new_session, previous)
            self.suggestions.update_behavior_patterns(user_id, new_session, catalog)
            self._remember_last_session(user_id, new_session)

            self.collector.add_signals(user_id, self.collector.collect_all([new_session], catalog), now=now)
            await self._analyze_signals(user_id, self.collector.get_recent_signals(user_id, now=now), now)
        except Exception:
            logger.exception("Mood update failed for %s", user_id)
            raise MoodAnalysisError("Mood analysis update failed") from None

    async def learn_from_history(
        self,
        user_id: str,
        sessions: Sequence[PlaySession],
        games: Sequence[Game] = (),
        cancel: threading.Event | None = None,
    ) -> TrainingReport:
        """Train the pattern learner off the event loop and rebuild behavior patterns."""
        try:
            report = await asyncio.to_thread(self.analyzer.analyze_sessions, sessions, cancel)
            self.suggestions.analyze_behavior_patterns(user_id, sessions, GameCatalog(games))
            if sessions:
                self._remember_last_session(user_id, max(sessions, key=lambda s: s.start_time))
            return report
        except Exception:
            logger.exception("Learning from history failed for %s", user_id)
            raise MoodAnalysisError("Learning from session history failed") from None

    def predict_current_mood(
        self,
        recent_sessions: Sequence[PlaySession],
        now: datetime | None = None,
    ) -> MoodPrediction:
        return self.analyzer.predict_current_mood(recent_sessions, now)

    def suggest_games(
        self,
        user_id: str,
        games: Sequence[Game],
        context: SuggestionContext,
    ) -> list[GameSuggestion]:
        return self.suggestions.generate_suggestions(user_id, games, context)

    def get_mood_recommendations(self, current_mood: str, target_mood: str | None = None) -> MoodRecommendations:
        return self.analyzer.get_mood_recommendations(current_mood, target_mood)

    # ------------------------------------------------------------------
    # Trends and forecasts
    # ------------------------------------------------------------------

    async def analyze_mood_trends(
        self,
        user_id: str,
        timeframe: str = "month",
        now: datetime | None = None,
    ) -> MoodTrendAnalysis:
        try:
            return await self._trend(user_id, timeframe, now)
        except Exception:
            logger.exception("Mood trend analysis failed for %s", user_id)
            raise MoodAnalysisError("Mood trend analysis failed") from None

    async def analyze_mood_forecast(
        self,
        user_id: str,
        period: str = "next_month",
        now: datetime | None = None,
    ) -> MoodForecastResult:
        try:
            return await self._forecast(user_id, period, now)
        except Exception:
            logger.exception("Mood forecasting failed for %s", user_id)
            raise ForecastingError("Mood forecasting failed") from None

    # ------------------------------------------------------------------
    # Resonance
    # ------------------------------------------------------------------

    async def record_session_resonance(
        self,
        user_id: str,
        session_id: str,
        session_data: SessionMetrics | dict,
        actual_mood: str,
        forecast_used: SessionForecast | None = None,
    ) -> SessionResonance:
        """Score a session against its forecast and feed the outcome back.

        Without *forecast_used* the current ``next_month`` forecast is taken
        as the prediction. A mismatch nudges the user's inference weights.
        """
        try:
            metrics = session_data if isinstance(session_data, SessionMetrics) else SessionMetrics.from_dict(session_data)
            if forecast_used is None:
                predicted = await self._forecast(user_id, "next_month")
                forecast_used = SessionForecast(predicted.predicted_mood, predicted.confidence)
            record = await self.resonance.record_session_resonance(
                user_id, session_id, forecast_used, metrics, actual_mood
            )
            feedback = WeightFeedback(forecast_used.predicted_mood, actual_mood, forecast_used.confidence)
            self.state.set(_WEIGHTS_PREFIX + user_id, self.inferencer.adjust_weights(self._weights_for(user_id), feedback))
            return record
        except Exception:
            logger.exception("Recording session resonance failed for %s/%s", user_id, session_id)
            raise ResonanceRecordingError("Session resonance recording failed") from None

    async def get_user_resonance_analysis(self, user_id: str) -> SessionResonanceAnalysis:
        try:
            return await self.resonance.get_user_resonance_analysis(user_id)
        except Exception:
            logger.exception("User resonance analysis failed for %s", user_id)
            raise ResonanceAnalysisError("Resonance analysis failed") from None

    async def get_system_resonance_analysis(self) -> SessionResonanceAnalysis:
        try:
            return await self.resonance.get_system_resonance_analysis()
        except Exception:
            logger.exception("System resonance analysis failed")
            raise ResonanceAnalysisError("System resonance analysis failed") from None

    async def get_resonance_data_for_forecasting(self, user_id: str) -> dict[str, Any]:
        try:
            return await self.resonance.get_resonance_data_for_forecasting(user_id)
        except Exception:
            logger.exception("Loading forecasting resonance data failed for %s", user_id)
            raise ResonanceAnalysisError("Failed to retrieve forecasting data") from None

    async def get_recent_resonance_sessions(self, user_id: str, limit: int = 10) -> list[SessionResonance]:
        try:
            return await self.resonance.get_recent_resonance_sessions(user_id, limit)
        except Exception:
            logger.exception("Loading recent resonance sessions failed for %s", user_id)
            raise ResonanceAnalysisError("Failed to retrieve recent sessions") from None

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def get_mood_analysis_stats(self, user_id: str | None = None) -> dict[str, Any]:
        try:
            pattern = self.behavior.get_pattern(user_id) if user_id else None
            return {
                "signals": self.collector.get_signal_stats(user_id),
                "snapshots": await self.tracker.count(user_id),
                "resonance": await self.resonance.get_resonance_stats(user_id),
                "calibration": await self.calibrator.get_confidence_metrics(user_id),
                "mood_patterns": len(self.analyzer.get_patterns()),
                "mood_transitions": len(self.analyzer.get_transitions()),
                "network_trained": self.analyzer.is_trained,
                "behavior_sessions": pattern.total_sessions if pattern else 0,
            }
        except Exception:
            logger.exception("Collecting mood analysis stats failed")
            raise MoodAnalysisError("Failed to collect mood analysis stats") from None

    def validate_mood_analysis(self, result: MoodAnalysisResult) -> list[str]:
        issues = self.extractor.validate_features(result.features)
        issues.extend(self.inferencer.validate_mood_vector(result.mood_vector))
        if not 0.0 <= result.confidence <= 1.0:
            issues.append(f"confidence is out of range [0,1]: {result.confidence}")
        if result.dominant_mood not in result.mood_vector.as_dict():
            issues.append(f"dominant mood {result.dominant_mood!r} is not a mood axis")
        return issues

    async def export_mood_data(self, user_id: str) -> dict[str, Any]:
        try:
            current = await self.get_current_mood(user_id)
            pattern = self.behavior.get_pattern(user_id)
            records = await self.resonance.get_recent_resonance_sessions(user_id, limit=SNAPSHOT_RETENTION)
            return {
                "user_id": user_id,
                "exported_at": utc_now().isoformat(),
                "current_mood": current.to_dict(),
                "snapshots": await self.tracker.get_history(user_id, limit=SNAPSHOT_RETENTION),
                "resonance": [r.to_dict() for r in records],
                "weights": self._weights_for(user_id).to_dict(),
                "behavior": pattern.to_dict() if pattern else None,
                "mood_patterns": self.analyzer.export_state(),
                "signals": self.collector.get_signal_stats(user_id),
            }
        except Exception:
            logger.exception("Mood data export failed for %s", user_id)
            raise MoodAnalysisError("Mood data export failed") from None

    async def reset_user_mood_data(self, user_id: str) -> dict[str, int]:
        try:
            removed = await self.storage.delete_user_data(user_id)
        except Exception:
            logger.exception("Resetting mood data failed for %s", user_id)
            raise MoodAnalysisError("Mood data reset failed") from None
        self.collector.clear_signals(user_id)
        self.behavior.reset(user_id)
        self.suggestions.clear_user_cache(user_id)
        self.state.delete(_WEIGHTS_PREFIX + user_id)
        self.state.delete(_LAST_SESSION_PREFIX + user_id)
        self.event_bus.publish(USER_RESET, {"user_id": user_id})
        return removed

    async def health_check(self) -> dict[str, Any]:
        storage_ok = True
        try:
            storage_ok = await self.storage.ping()
        except Exception as exc:
            logger.warning("Storage health check failed: %s", exc)
            storage_ok = False
        return {
            "status": "ok" if storage_ok else "degraded",
            "storage": storage_ok,
            "network_trained": self.analyzer.is_trained,
            "mood_patterns": len(self.analyzer.get_patterns()),
            "checked_at": utc_now().isoformat(),
        }

    async def close(self) -> None:
        await self.storage.close()
        for store in (self.state, self.analyzer.store, self.behavior.store, self.suggestions.cache):
            store.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _weights_for(self, user_id: str) -> MoodInferenceWeights:
        return self.state.get(_WEIGHTS_PREFIX + user_id) or self.inferencer.weights

    def _remember_last_session(self, user_id: str, session: PlaySession) -> None:
        current = self.state.get(_LAST_SESSION_PREFIX + user_id)
        if current is None or current.start_time <= session.start_time:
            self.state.set(_LAST_SESSION_PREFIX + user_id, session)

    async def _analyze_signals(
        self,
        user_id: str,
        signals: Sequence[BehavioralSignal],
        now: datetime,
    ) -> MoodAnalysisResult:
        features = self.extractor.extract_features(signals)
        feature_confidence = self.extractor.calculate_feature_confidence(signals, now)
        vector = self.inferencer.infer_mood(features, self._weights_for(user_id))
        dominant = self.inferencer.get_dominant_mood(vector)
        raw_confidence = self.inferencer.get_inference_confidence(features, vector, feature_confidence.overall)
        result = MoodAnalysisResult(
            mood_vector=vector,
            confidence=await self.calibrator.calibrate_confidence(user_id, raw_confidence),
            signal_count=len(signals),
            last_updated=now,
            features=features,
            dominant_mood=dominant.primary,
            secondary_mood=dominant.secondary,
        )
        await self.tracker.record(user_id, result)
        self.event_bus.publish(MOOD_ANALYZED, {"user_id": user_id, "dominant_mood": result.dominant_mood})
        return result

    async def _trend(self, user_id: str, timeframe: str, now: datetime | None = None) -> MoodTrendAnalysis:
        now = now or utc_now()
        key = normalize_timeframe(timeframe)
        since = now - timedelta(days=TIMEFRAME_DAYS[key])
        snapshots = await self.tracker.get_history(user_id, limit=SNAPSHOT_RETENTION, since=since)
        return analyze_trend(user_id, snapshots, key, now)

    async def _forecast(self, user_id: str, period: str, now: datetime | None = None) -> MoodForecastResult:
        trend = await self._trend(user_id, "quarter", now)
        resonance = await self.resonance.get_resonance_data_for_forecasting(user_id)
        return forecast(trend, period, resonance["confidence_adjustments"], now)
