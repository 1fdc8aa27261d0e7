from __future__ import annotations

import logging
import threading
import zlib
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

import networkx as nx  # type: ignore[import-not-found]
import numpy as np

from gamemood.analytics.network import FeedForwardNetwork, NetworkConfig
from gamemood.catalog import MoodCatalog
from gamemood.defaults import (
    FALLBACK_CONFIDENCE,
    LATE_NIGHT_END_HOUR,
    LATE_NIGHT_START_HOUR,
    NEURAL_HISTORY_WINDOW as HISTORY_WINDOW,
    NEURAL_INPUT_SIZE as INPUT_SIZE,
    NEURAL_MIN_TRAINING_SAMPLES as MIN_TRAINING_SAMPLES,
    PATTERN_CONFIDENCE_STEP as CONFIDENCE_STEP,
    PATTERN_INTENSITY_ALPHA as INTENSITY_ALPHA,
    PATTERN_TIME_LIKELIHOOD_STEP as TIME_LIKELIHOOD_STEP,
    REASONING_THRESHOLD,
    RECOMMENDATION_MAX_GAMES as MAX_GAMES,
)
from gamemood.model import PlaySession, utc_now
from gamemood.storage.store import InMemoryStore, KeyValueStore
from gamemood.utils.math import clamp01, mean, variance

logger = logging.getLogger(__name__)

_PATTERN_PREFIX = "pattern:"
_TRANSITION_PREFIX = "transition:"

_FALLBACK_FACTORS: dict[str, float] = {
    "time_of_day": 0.2,
    "recent_games": 0.3,
    "session_length": 0.2,
    "day_of_week": 0.1,
}


@dataclass(slots=True)
class MoodTimePattern:
    hour: int
    day_of_week: int
    likelihood: float


@dataclass(slots=True)
class MoodPattern:
    mood_id: str
    confidence: float = 0.0
    triggers: list[str] = field(default_factory=list)
    time_patterns: list[MoodTimePattern] = field(default_factory=list)
    game_associations: list[str] = field(default_factory=list)
    intensity: float = 0.5

    def associate_game(self, game_id: str) -> None:
        if game_id not in self.game_associations:
            self.game_associations.append(game_id)

    def add_triggers(self, tags: Sequence[str]) -> None:
        for tag in tags:
            if tag not in self.triggers:
                self.triggers.append(tag)

    def to_dict(self) -> dict:
        return {
            "mood_id": self.mood_id,
            "confidence": round(self.confidence, 4),
            "triggers": list(self.triggers),
            "time_patterns": [
                {"hour": t.hour, "day_of_week": t.day_of_week, "likelihood": round(t.likelihood, 4)}
                for t in self.time_patterns
            ],
            "game_associations": list(self.game_associations),
            "intensity": round(self.intensity, 4),
        }


@dataclass(slots=True)
class MoodTransition:
    """Observed ``from_mood → to_mood`` change.

    ``count`` is the raw observation count; ``probability`` is refreshed as
    ``count / outgoing total`` for ``from_mood`` whenever counts change.
    """

    from_mood: str
    to_mood: str
    count: int = 0
    probability: float = 0.0
    common_triggers: list[str] = field(default_factory=list)
    trigger_games: list[str] = field(default_factory=list)
    average_transition_time: float = 0.0

    @property
    def key(self) -> str:
        return f"{self.from_mood}->{self.to_mood}"

    def to_dict(self) -> dict:
        return {
            "from_mood": self.from_mood,
            "to_mood": self.to_mood,
            "count": self.count,
            "probability": round(self.probability, 4),
            "common_triggers": list(self.common_triggers),
            "trigger_games": list(self.trigger_games),
            "average_transition_time": round(self.average_transition_time, 2),
        }


@dataclass(slots=True)
class MoodPrediction:
    predicted_mood: str
    confidence: float
    factors: dict[str, float]
    reasoning: list[str]
    from_network: bool = False


@dataclass(slots=True)
class MoodRecommendations:
    suggested_games: list[str]
    activities: list[str]
    transition_path: list[str] | None = None


@dataclass(slots=True)
class MoodInsights:
    total_patterns: int
    most_common_mood: str
    mood_stability: float
    peak_times: list[dict]
    recommendations: list[str]


@dataclass(slots=True)
class TrainingReport:
    samples: int
    epochs: int
    final_loss: float | None
    trained: bool
    cancelled: bool = False


def _hash_game_id(game_id: str) -> float:
    """Stable per-process-independent bucket of a game id in ``[0, 1)``."""
    return (zlib.crc32(game_id.encode("utf-8")) % 1000) / 1000


def encode_sessions(
    sessions: Sequence[PlaySession],
    current_time: datetime,
    moods: MoodCatalog,
) -> list[float]:
    """Fixed 20-slot encoding of recent sessions (most recent first).

    Slots: 0-3 time, 4-9 three recent games (hashed id, intensity),
    10-15 mood history, 16-19 aggregate session pattern.
    """
    features = [0.0] * INPUT_SIZE
    features[0] = current_time.hour / 24
    features[1] = current_time.weekday() / 7
    features[2] = current_time.month / 12
    if sessions:
        features[3] = clamp01(sessions[0].minutes / 300)

    for i, session in enumerate(sessions[:3]):
        features[4 + i * 2] = _hash_game_id(session.game_id)
        features[5 + i * 2] = clamp01(session.intensity / 10)

    for i, session in enumerate(sessions[:6]):
        idx = moods.index(session.mood)
        features[10 + i] = (idx + 1) / len(moods) if idx >= 0 else 0.0

    if sessions:
        n = len(sessions)
        features[16] = clamp01(sum(s.minutes for s in sessions) / (n * 300))
        features[17] = clamp01(sum(s.intensity for s in sessions) / (n * 10))
        features[18] = sum(1 for s in sessions if s.completed) / n
        features[19] = min(1.0, n / 5)
    return features


class NeuralMoodAnalyzer:
    """Learns per-mood patterns, mood transitions and a next-mood classifier.

    Patterns and transitions live in an injected :class:`KeyValueStore`;
    the network is owned by the analyzer and only marked trained once at
    least ``min_training_samples`` consecutive-session examples were seen.
    """

    def __init__(
        self,
        moods: MoodCatalog | None = None,
        store: KeyValueStore | None = None,
        network_config: NetworkConfig | None = None,
        min_training_samples: int = MIN_TRAINING_SAMPLES,
    ) -> None:
        self.moods = moods or MoodCatalog.default()
        self.store: KeyValueStore = store if store is not None else InMemoryStore()
        self.network = FeedForwardNetwork(len(self.moods), network_config)
        self.min_training_samples = min_training_samples
        self._trained = False

    @property
    def is_trained(self) -> bool:
        return self._trained

    # ── Learning ─────────────────────────────────────────────────

    def analyze_sessions(
        self,
        sessions: Sequence[PlaySession],
        cancel: threading.Event | None = None,
    ) -> TrainingReport:
        ordered = sorted(sessions, key=lambda s: s.start_time)
        self.extract_mood_patterns(ordered)
        self.analyze_transitions(ordered)
        report = self.train_network(ordered, cancel=cancel)
        logger.info(
            "Analyzed %d sessions: patterns=%d transitions=%d trained=%s",
            len(ordered),
            len(self.store.keys(_PATTERN_PREFIX)),
            len(self.store.keys(_TRANSITION_PREFIX)),
            report.trained,
        )
        return report

    def extract_mood_patterns(self, sessions: Sequence[PlaySession]) -> None:
        if not sessions:
            return
        by_mood: dict[str, list[PlaySession]] = defaultdict(list)
        for session in sessions:
            by_mood[session.mood].append(session)

        total = len(sessions)
        for mood_id, group in by_mood.items():
            pattern = self._get_or_create_pattern(mood_id)
            pattern.confidence = len(group) / total
            pattern.intensity = clamp01(mean([s.intensity for s in group]) / 10)
            pattern.time_patterns = self._extract_time_patterns(group)
            for session in group:
                pattern.associate_game(session.game_id)
                pattern.add_triggers(session.tags)
            self.store.set(_PATTERN_PREFIX + mood_id, pattern)

    def analyze_transitions(self, sessions: Sequence[PlaySession]) -> None:
        ordered = sorted(sessions, key=lambda s: s.start_time)
        touched: set[str] = set()
        for prev, curr in zip(ordered, ordered[1:]):
            self._observe_transition(prev, curr)
            touched.add(prev.mood)
        for mood_id in touched:
            self._refresh_probabilities(mood_id)

    def train_network(
        self,
        sessions: Sequence[PlaySession],
        cancel: threading.Event | None = None,
    ) -> TrainingReport:
        inputs, targets = self.prepare_training_data(sessions)
        samples = len(inputs)
        if samples < self.min_training_samples:
            logger.debug("Skipping training: %d samples < %d", samples, self.min_training_samples)
            return TrainingReport(samples=samples, epochs=0, final_loss=None, trained=self._trained)

        history = self.network.train(inputs, targets, cancel=cancel)
        cancelled = cancel is not None and cancel.is_set()
        if history:
            self._trained = True
        return TrainingReport(
            samples=samples,
            epochs=len(history),
            final_loss=history[-1] if history else None,
            trained=self._trained,
            cancelled=cancelled,
        )

    def prepare_training_data(self, sessions: Sequence[PlaySession]) -> tuple[np.ndarray, np.ndarray]:
        """Pair each session's preceding history with the mood it led to."""
        ordered = sorted(sessions, key=lambda s: s.start_time)
        inputs: list[list[float]] = []
        targets: list[np.ndarray] = []
        for i in range(1, len(ordered)):
            target = ordered[i]
            idx = self.moods.index(target.mood)
            if idx < 0:
                continue
            history = ordered[max(0, i - HISTORY_WINDOW):i][::-1]
            inputs.append(encode_sessions(history, target.start_time, self.moods))
            one_hot = np.zeros(len(self.moods))
            one_hot[idx] = 1.0
            targets.append(one_hot)
        if not inputs:
            return np.zeros((0, INPUT_SIZE)), np.zeros((0, len(self.moods)))
        return np.asarray(inputs), np.asarray(targets)

    def update_patterns(self, session: PlaySession, previous: PlaySession | None = None) -> None:
        """Fold one new session into the learned patterns (and transition)."""
        pattern = self._get_or_create_pattern(session.mood)
        pattern.confidence = min(1.0, pattern.confidence + CONFIDENCE_STEP)
        pattern.associate_game(session.game_id)
        pattern.add_triggers(session.tags)
        self._bump_time_pattern(pattern, session.start_time)
        pattern.intensity = clamp01(
            (1 - INTENSITY_ALPHA) * pattern.intensity + INTENSITY_ALPHA * session.intensity / 10
        )
        self.store.set(_PATTERN_PREFIX + session.mood, pattern)

        if previous is not None and previous.start_time <= session.start_time:
            self._observe_transition(previous, session)
            self._refresh_probabilities(previous.mood)

    # ── Prediction ───────────────────────────────────────────────

    def predict_current_mood(
        self,
        recent_sessions: Sequence[PlaySession],
        now: datetime | None = None,
    ) -> MoodPrediction:
        now = now or utc_now()
        recent = sorted(recent_sessions, key=lambda s: s.start_time, reverse=True)
        if not self._trained:
            return self._fallback_prediction(recent)

        features = encode_sessions(recent[:HISTORY_WINDOW], now, self.moods)
        probs = self.network.predict(features)
        idx = int(np.argmax(probs))
        reasoning = self._reasoning(features) or ["Based on learned session patterns"]
        return MoodPrediction(
            predicted_mood=self.moods.mood_ids[idx],
            confidence=round(float(probs[idx]), 4),
            factors=self._feature_contributions(features),
            reasoning=reasoning,
            from_network=True,
        )

    def _fallback_prediction(self, recent: Sequence[PlaySession]) -> MoodPrediction:
        mood = recent[0].mood if recent else self.moods.fallback_mood
        return MoodPrediction(
            predicted_mood=mood,
            confidence=FALLBACK_CONFIDENCE,
            factors=dict(_FALLBACK_FACTORS),
            reasoning=["Based on recent gaming sessions"],
        )

    @staticmethod
    def _feature_contributions(features: Sequence[float]) -> dict[str, float]:
        return {
            "time_of_day": round(features[0], 4),
            "recent_games": round((features[4] + features[6] + features[8]) / 3, 4),
            "session_length": round(features[16], 4),
            "day_of_week": round(features[1], 4),
        }

    @staticmethod
    def _reasoning(features: Sequence[float]) -> list[str]:
        reasoning: list[str] = []
        hour = round(features[0] * 24) % 24
        if hour >= LATE_NIGHT_START_HOUR or hour < LATE_NIGHT_END_HOUR:
            reasoning.append("late-night session")
        if features[1] > REASONING_THRESHOLD:
            reasoning.append("weekend session")
        if features[16] > REASONING_THRESHOLD:
            reasoning.append("long gaming sessions suggest immersive mood")
        if features[17] > REASONING_THRESHOLD:
            reasoning.append("high intensity detected")
        return reasoning

    # ── Transitions ──────────────────────────────────────────────

    def get_pattern(self, mood_id: str) -> MoodPattern | None:
        return self.store.get(_PATTERN_PREFIX + mood_id)

    def get_patterns(self) -> list[MoodPattern]:
        patterns = (self.store.get(key) for key in self.store.keys(_PATTERN_PREFIX))
        return [p for p in patterns if p is not None]

    def get_transition(self, from_mood: str, to_mood: str) -> MoodTransition | None:
        return self.store.get(f"{_TRANSITION_PREFIX}{from_mood}->{to_mood}")

    def get_transitions(self) -> list[MoodTransition]:
        transitions = (self.store.get(key) for key in self.store.keys(_TRANSITION_PREFIX))
        return [t for t in transitions if t is not None]

    def transition_graph(self) -> nx.DiGraph:
        graph = nx.DiGraph()
        for transition in self.get_transitions():
            graph.add_edge(
                transition.from_mood,
                transition.to_mood,
                probability=transition.probability,
                count=transition.count,
            )
        return graph

    def find_transition_path(self, from_mood: str, to_mood: str) -> list[str] | None:
        """Shortest hop path between moods; not necessarily the most probable one."""
        if from_mood == to_mood:
            return [from_mood]
        try:
            return list(nx.shortest_path(self.transition_graph(), from_mood, to_mood))
        except (nx.NodeNotFound, nx.NetworkXNoPath):
            return None

    def find_optimal_transition(self, from_mood: str, to_mood: str) -> MoodTransition | None:
        direct = self.get_transition(from_mood, to_mood)
        if direct is not None:
            return direct
        outgoing = [t for t in self.get_transitions() if t.from_mood == from_mood]
        if not outgoing:
            return None
        return max(outgoing, key=lambda t: t.probability)

    def get_mood_recommendations(self, current_mood: str, target_mood: str | None = None) -> MoodRecommendations:
        suggested: list[str] = []
        pattern = self.get_pattern(current_mood)
        if pattern is not None:
            suggested.extend(reversed(pattern.game_associations))

        path: list[str] | None = None
        if target_mood is not None:
            path = self.find_transition_path(current_mood, target_mood)
            if target_mood != current_mood:
                step = self.get_transition(current_mood, target_mood)
                if step is None and path is not None and len(path) > 1:
                    step = self.get_transition(path[0], path[1])
                if step is None:
                    # unreachable target: move along the likeliest way out
                    step = self.find_optimal_transition(current_mood, target_mood)
                if step is not None:
                    suggested.extend(step.trigger_games)

        return MoodRecommendations(
            suggested_games=list(dict.fromkeys(suggested))[:MAX_GAMES],
            activities=self.moods.activities_for(current_mood),
            transition_path=path,
        )

    # ── Insights ─────────────────────────────────────────────────

    def get_mood_insights(self) -> MoodInsights:
        patterns = self.get_patterns()
        ranked = sorted(patterns, key=lambda p: p.confidence, reverse=True)
        stability = max(0.0, 1.0 - variance([p.confidence for p in patterns])) if patterns else 0.0

        peak_times: list[dict] = []
        for pattern in patterns:
            if not pattern.time_patterns:
                continue
            best = max(pattern.time_patterns, key=lambda t: t.likelihood)
            peak_times.append({"mood": pattern.mood_id, "hour": best.hour, "day_of_week": best.day_of_week})
        peak_times.sort(key=lambda item: item["hour"], reverse=True)

        recommendations: list[str] = []
        if len(patterns) < 3:
            recommendations.append("Try gaming at different times to discover more mood patterns")
        if any(p.confidence < 0.3 for p in patterns):
            recommendations.append("Some mood patterns need more data - continue gaming regularly")
        if patterns and sum(1 for p in patterns if p.intensity > 0.7) > len(patterns) / 2:
            recommendations.append("Consider adding some relaxed gaming sessions for balance")

        return MoodInsights(
            total_patterns=len(patterns),
            most_common_mood=ranked[0].mood_id if ranked else "unknown",
            mood_stability=round(stability, 4),
            peak_times=peak_times,
            recommendations=recommendations,
        )

    def export_state(self) -> dict:
        return {
            "patterns": [p.to_dict() for p in self.get_patterns()],
            "transitions": [t.to_dict() for t in self.get_transitions()],
            "trained": self._trained,
            "network": self.network.state_dict() if self._trained else None,
        }

    # ── Internal helpers ─────────────────────────────────────────

    def _get_or_create_pattern(self, mood_id: str) -> MoodPattern:
        pattern = self.store.get(_PATTERN_PREFIX + mood_id)
        if pattern is None:
            pattern = MoodPattern(mood_id=mood_id)
        return pattern

    @staticmethod
    def _extract_time_patterns(sessions: Sequence[PlaySession]) -> list[MoodTimePattern]:
        counts = Counter((s.start_time.hour, s.start_time.weekday()) for s in sessions)
        return [
            MoodTimePattern(hour=hour, day_of_week=day, likelihood=count / len(sessions))
            for (hour, day), count in counts.items()
        ]

    @staticmethod
    def _bump_time_pattern(pattern: MoodPattern, when: datetime) -> None:
        for slot in pattern.time_patterns:
            if slot.hour == when.hour and slot.day_of_week == when.weekday():
                slot.likelihood = min(1.0, slot.likelihood + TIME_LIKELIHOOD_STEP)
                return
        pattern.time_patterns.append(
            MoodTimePattern(hour=when.hour, day_of_week=when.weekday(), likelihood=TIME_LIKELIHOOD_STEP)
        )

    def _observe_transition(self, prev: PlaySession, curr: PlaySession) -> None:
        key = f"{_TRANSITION_PREFIX}{prev.mood}->{curr.mood}"
        transition = self.store.get(key)
        if transition is None:
            transition = MoodTransition(from_mood=prev.mood, to_mood=curr.mood)
        gap = max(0.0, (curr.start_time - prev.finished_at).total_seconds() / 60.0)
        transition.count += 1
        transition.average_transition_time += (gap - transition.average_transition_time) / transition.count
        for tag in curr.tags:
            if tag not in transition.common_triggers:
                transition.common_triggers.append(tag)
        if curr.game_id not in transition.trigger_games:
            transition.trigger_games.append(curr.game_id)
        self.store.set(key, transition)

    def _refresh_probabilities(self, from_mood: str) -> None:
        outgoing = [t for t in self.get_transitions() if t.from_mood == from_mood]
        total = sum(t.count for t in outgoing)
        for transition in outgoing:
            transition.probability = transition.count / total if total else 0.0
            self.store.set(_TRANSITION_PREFIX + transition.key, transition)
