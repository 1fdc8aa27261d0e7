"""Context-aware game suggestions ranked by five fit scores.

Every candidate is scored for time, mood, energy, social and sequence fit
against the user's :class:`BehaviorPattern`; the mean is the suggestion
confidence. Ranked lists are cached per ``user:minute-bucket:mood:device``
and dropped as soon as the behavior analyzer publishes an update for the
user.

Usage::

    bus = EventBus()
    behavior = BehaviorPatternAnalyzer(event_bus=bus)
    engine = PredictiveSuggestionEngine(behavior, event_bus=bus)
    behavior.analyze_sessions("u1", sessions, catalog)
    ranked = engine.generate_suggestions("u1", games, SuggestionContext(current_mood="calm"))
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from gamemood.analytics.behavior import BehaviorPattern, BehaviorPatternAnalyzer, NextGamePrediction
from gamemood.catalog import GameCatalog
from gamemood.defaults import (
    ANOMALY_LIKELIHOOD,
    DEFAULT_PLAYTIME_MINUTES as DEFAULT_PLAYTIME,
    FLOW_PATTERN_MIN_FREQUENCY,
    GENRE_HISTORY_WINDOW as HISTORY_WINDOW,
    PEAK_HOUR_RATIO,
    PREDICTION_CACHE_BUCKET as CACHE_BUCKET,
    PREDICTION_CACHE_TTL as CACHE_TTL,
    REASONING_THRESHOLD,
    SUGGESTION_FALLBACK_CONFIDENCE as FALLBACK_CONFIDENCE,
    SUGGESTION_FALLBACK_COUNT as FALLBACK_COUNT,
    SUGGESTION_MAX_ALTERNATIVES as MAX_ALTERNATIVES,
    SUGGESTION_MAX_RESULTS as MAX_RESULTS,
    SUGGESTION_MIN_CONFIDENCE as MIN_CONFIDENCE,
    TIME_FIT_HOUR_WINDOW as HOUR_WINDOW,
)
from gamemood.model import Game, PlaySession, utc_now
from gamemood.pipeline.events import BEHAVIOR_UPDATED, Event, EventBus
from gamemood.storage.store import InMemoryStore, KeyValueStore
from gamemood.suggestions.rating import CatalogRatingPredictor, RatingPredictor
from gamemood.utils.math import clamp01

logger = logging.getLogger(__name__)

SocialContext = Literal["solo", "friends", "online"]

_CACHE_PREFIX = "suggest:"
_HOURS_PER_WEEK = 7 * 24
_UPLIFTING_MOODS = frozenset({"energetic", "focused", "creative"})
_DRAINED_MOODS = frozenset({"frustrated", "bored", "tired"})


@dataclass(slots=True)
class SuggestionContext:
    timestamp: datetime = field(default_factory=utc_now)
    current_mood: str | None = None
    energy_level: float | None = None  # 0-100
    social_context: SocialContext | None = None
    available_time: float | None = None  # minutes
    device: str | None = None
    recent_genres: list[str] = field(default_factory=list)  # oldest first


@dataclass(slots=True)
class FitScores:
    time: float = 0.5
    mood: float = 0.5
    energy: float = 0.5
    social: float = 0.5
    sequence: float = 0.5

    def as_dict(self) -> dict[str, float]:
        return {
            "time": self.time,
            "mood": self.mood,
            "energy": self.energy,
            "social": self.social,
            "sequence": self.sequence,
        }

    @property
    def mean(self) -> float:
        values = self.as_dict().values()
        return sum(values) / len(values)


@dataclass(slots=True)
class GameSuggestion:
    game: Game
    confidence: float
    reasoning: list[str]
    predicted_satisfaction: float
    estimated_playtime: float
    fit_scores: FitScores
    alternatives: list[Game] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "game_id": self.game.id,
            "title": self.game.title,
            "confidence": round(self.confidence, 4),
            "reasoning": list(self.reasoning),
            "predicted_satisfaction": round(self.predicted_satisfaction, 4),
            "estimated_playtime": round(self.estimated_playtime, 1),
            "fit_scores": {k: round(v, 4) for k, v in self.fit_scores.as_dict().items()},
            "alternatives": [g.id for g in self.alternatives],
        }


@dataclass(slots=True)
class PredictiveInsight:
    type: Literal["pattern", "anomaly", "trend", "recommendation"]
    title: str
    description: str
    confidence: float
    actionable: bool
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
            "actionable": self.actionable,
            "suggestions": list(self.suggestions),
        }


def _genres(game: Game) -> set[str]:
    return {g.strip().lower() for g in game.genres}


def _hours_apart(day_of_week: int, hour: int, when: datetime) -> int:
    """Distance in hours around the weekly clock, so 23:00 Sunday neighbours 00:30 Monday."""
    d = abs((day_of_week * 24 + hour) - (when.weekday() * 24 + when.hour))
    return min(d, _HOURS_PER_WEEK - d)


def _suffix_matches(history: Sequence[str], sequence: Sequence[str]) -> bool:
    return len(sequence) <= len(history) and tuple(history[-len(sequence):]) == tuple(sequence)


class PredictiveSuggestionEngine:
    """Ranks candidate games for a user in a given play context.

    Parameters
    ----------
    behavior:
        Source of per-user behavior patterns.
    rating_predictor:
        Scores base satisfaction per game; defaults to the catalog rating.
    cache:
        Store for ranked lists; entries expire after ``PREDICTION_CACHE_TTL``.
    event_bus:
        Bus on which ``behavior.updated`` arrives. Defaults to the
        analyzer's own bus so invalidation works without extra wiring.
    """

    def __init__(
        self,
        behavior: BehaviorPatternAnalyzer,
        rating_predictor: RatingPredictor | None = None,
        cache: KeyValueStore | None = None,
        event_bus: EventBus | None = None,
        cache_ttl: float = CACHE_TTL,
    ) -> None:
        self.behavior = behavior
        self.rating_predictor = rating_predictor or CatalogRatingPredictor()
        self.cache: KeyValueStore = cache if cache is not None else InMemoryStore()
        self.cache_ttl = cache_ttl
        self.event_bus = event_bus or behavior.event_bus
        self.event_bus.subscribe(BEHAVIOR_UPDATED, self._on_behavior_updated)

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def generate_suggestions(
        self,
        user_id: str,
        candidate_games: Sequence[Game],
        context: SuggestionContext,
    ) -> list[GameSuggestion]:
        key = self._cache_key(user_id, context)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Suggestion cache hit for %s", key)
            return cached

        pattern = self.behavior.get_pattern(user_id)
        if pattern is None:
            return self._fallback(candidate_games)

        suggestions: list[GameSuggestion] = []
        for game in candidate_games:
            suggestion = self._evaluate(user_id, game, candidate_games, context, pattern)
            if suggestion.confidence > MIN_CONFIDENCE:
                suggestions.append(suggestion)
        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        ranked = suggestions[:MAX_RESULTS]

        self.cache.set(key, ranked, ttl=self.cache_ttl)
        logger.info("Generated %d suggestions for %s from %d candidates", len(ranked), user_id, len(candidate_games))
        return ranked

    def clear_user_cache(self, user_id: str) -> int:
        removed = self.cache.delete_prefix(f"{_CACHE_PREFIX}{user_id}:")
        if removed:
            logger.debug("Dropped %d cached suggestion lists for %s", removed, user_id)
        return removed

    # ------------------------------------------------------------------
    # Behavior passthroughs
    # ------------------------------------------------------------------

    def analyze_behavior_patterns(
        self, user_id: str, sessions: Sequence[PlaySession], catalog: GameCatalog
    ) -> BehaviorPattern:
        return self.behavior.analyze_sessions(user_id, sessions, catalog)

    def update_behavior_patterns(self, user_id: str, session: PlaySession, catalog: GameCatalog) -> BehaviorPattern:
        return self.behavior.update(user_id, session, catalog)

    def predict_next_game(
        self,
        user_id: str,
        recent_genres: Sequence[str] | None = None,
        candidates: Sequence[Game] = (),
    ) -> NextGamePrediction | None:
        return self.behavior.predict_next_game(user_id, recent_genres, candidates)

    def get_predictive_insights(self, user_id: str) -> list[PredictiveInsight]:
        pattern = self.behavior.get_pattern(user_id)
        if pattern is None:
            return []
        insights: list[PredictiveInsight] = []

        peak_hours = self._peak_hours(pattern)
        if peak_hours:
            insights.append(PredictiveInsight(
                type="pattern",
                title="Peak Gaming Time Detected",
                description=f"You're most active around {' and '.join(str(h) for h in peak_hours)} o'clock",
                confidence=0.8,
                actionable=True,
                suggestions=["Schedule important gaming sessions during these times", "Set reminders for game events"],
            ))

        flows = [
            seq for seq in pattern.genre_sequences.values()
            if seq.frequency / pattern.total_sessions > FLOW_PATTERN_MIN_FREQUENCY
        ][:3]
        if flows:
            insights.append(PredictiveInsight(
                type="pattern",
                title="Gaming Flow Patterns",
                description="You often follow "
                + ", ".join(" -> ".join(seq.genres) for seq in flows),
                confidence=0.7,
                actionable=True,
                suggestions=["Embrace your natural gaming flow", "Try games that fit these sequences"],
            ))

        uplifting = [
            record for record in pattern.mood_transitions.values()
            if record.from_mood in _DRAINED_MOODS and record.to_mood in _UPLIFTING_MOODS
        ]
        if uplifting:
            games = sorted({g for record in uplifting for g in record.trigger_games})
            insights.append(PredictiveInsight(
                type="recommendation",
                title="Mood Enhancement Opportunities",
                description="Certain games help improve your mood during gaming",
                confidence=0.6,
                actionable=True,
                suggestions=["Keep these mood-boosting games accessible: " + ", ".join(games)],
            ))

        unusual = [
            slot for slot in pattern.time_patterns.values()
            if pattern.time_likelihood(slot.hour, slot.day_of_week) < ANOMALY_LIKELIHOOD
        ]
        if unusual:
            insights.append(PredictiveInsight(
                type="anomaly",
                title="Unusual Gaming Pattern Detected",
                description="Some gaming sessions occur at unusual times",
                confidence=0.6,
                actionable=False,
                suggestions=["Monitor if this pattern continues", "Consider if it affects sleep"],
            ))
        return insights

    # ------------------------------------------------------------------
    # Fit scores
    # ------------------------------------------------------------------

    def calculate_time_fit(self, game: Game, context: SuggestionContext, pattern: BehaviorPattern) -> float:
        nearby = [
            slot for slot in pattern.time_patterns.values()
            if _hours_apart(slot.day_of_week, slot.hour, context.timestamp) <= HOUR_WINDOW
        ]
        if not nearby:
            return 0.5
        genres = _genres(game)
        if any(genres.intersection(slot.preferred_genres) for slot in nearby):
            return 0.9
        return 0.6

    def calculate_mood_fit(self, game: Game, context: SuggestionContext, pattern: BehaviorPattern) -> float:
        if not context.current_mood:
            return 0.5
        outgoing = [r for r in pattern.mood_transitions.values() if r.from_mood == context.current_mood]
        if not outgoing:
            return 0.5
        return 0.9 if any(game.id in r.trigger_games for r in outgoing) else 0.4

    def calculate_energy_fit(self, game: Game, context: SuggestionContext) -> float:
        if context.energy_level is None:
            return 0.5
        return clamp01(1.0 - abs(context.energy_level / 100.0 - GameCatalog.intensity_of(game)))

    def calculate_social_fit(self, game: Game, context: SuggestionContext) -> float:
        if context.social_context is None:
            return 0.5
        socialness = GameCatalog.socialness_of(game)
        return 1.0 - socialness if context.social_context == "solo" else socialness

    def calculate_sequence_fit(self, game: Game, context: SuggestionContext, pattern: BehaviorPattern) -> float:
        history = [g for g in context.recent_genres if g][-HISTORY_WINDOW:]
        if not history:
            return 0.5
        matching = [seq for seq in pattern.genre_sequences.values() if _suffix_matches(history, seq.genres)]
        if not matching:
            return 0.3
        return 0.9 if any(game.primary_genre in seq.next_counts for seq in matching) else 0.5

    def estimate_playtime(self, game: Game, pattern: BehaviorPattern) -> float:
        genre = game.primary_genre
        durations = [
            bucket.average_duration for bucket in pattern.session_lengths.values()
            if bucket.genre_counts.get(genre)
        ]
        if not durations:
            return DEFAULT_PLAYTIME
        return sum(durations) / len(durations)

    def predict_satisfaction(
        self, user_id: str, game: Game, context: SuggestionContext, estimated_playtime: float
    ) -> float:
        score = self.rating_predictor.predict_rating(user_id, game)
        if context.available_time and estimated_playtime > 0:
            score *= min(1.0, context.available_time / estimated_playtime)
        return min(1.0, score)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _evaluate(
        self,
        user_id: str,
        game: Game,
        candidates: Sequence[Game],
        context: SuggestionContext,
        pattern: BehaviorPattern,
    ) -> GameSuggestion:
        fits = FitScores(
            time=self.calculate_time_fit(game, context, pattern),
            mood=self.calculate_mood_fit(game, context, pattern),
            energy=self.calculate_energy_fit(game, context),
            social=self.calculate_social_fit(game, context),
            sequence=self.calculate_sequence_fit(game, context, pattern),
        )
        playtime = self.estimate_playtime(game, pattern)
        return GameSuggestion(
            game=game,
            confidence=fits.mean,
            reasoning=self._reasoning(fits),
            predicted_satisfaction=self.predict_satisfaction(user_id, game, context, playtime),
            estimated_playtime=playtime,
            fit_scores=fits,
            alternatives=self._alternatives(game, candidates),
        )

    @staticmethod
    def _reasoning(fits: FitScores) -> list[str]:
        reasons = {
            "time": "Perfect timing for this game",
            "mood": "Matches your current mood",
            "energy": "Energy level aligns with game intensity",
            "social": "Fits your social context",
            "sequence": "Follows your natural gaming flow",
        }
        return [text for axis, text in reasons.items() if getattr(fits, axis) > REASONING_THRESHOLD]

    @staticmethod
    def _alternatives(game: Game, candidates: Sequence[Game]) -> list[Game]:
        if game.primary_genre == "unknown":
            return []
        same_genre = [g for g in candidates if g.id != game.id and g.primary_genre == game.primary_genre]
        return same_genre[:MAX_ALTERNATIVES]

    @staticmethod
    def _fallback(candidate_games: Sequence[Game]) -> list[GameSuggestion]:
        return [
            GameSuggestion(
                game=game,
                confidence=FALLBACK_CONFIDENCE,
                reasoning=["General recommendation"],
                predicted_satisfaction=FALLBACK_CONFIDENCE,
                estimated_playtime=DEFAULT_PLAYTIME,
                fit_scores=FitScores(),
            )
            for game in candidate_games[:FALLBACK_COUNT]
        ]

    @staticmethod
    def _peak_hours(pattern: BehaviorPattern) -> list[int]:
        hourly: dict[int, float] = defaultdict(float)
        for slot in pattern.time_patterns.values():
            hourly[slot.hour] += pattern.time_likelihood(slot.hour, slot.day_of_week)
        if not hourly:
            return []
        threshold = max(hourly.values()) * PEAK_HOUR_RATIO
        return sorted(hour for hour, freq in hourly.items() if freq >= threshold)

    @staticmethod
    def _cache_key(user_id: str, context: SuggestionContext) -> str:
        bucket = int(context.timestamp.timestamp()) // CACHE_BUCKET
        return f"{_CACHE_PREFIX}{user_id}:{bucket}:{context.current_mood or '-'}:{context.device or '-'}"

    def _on_behavior_updated(self, event: Event) -> None:
        user_id = event.payload.get("user_id")
        if user_id:
            self.clear_user_cache(user_id)
