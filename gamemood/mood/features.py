from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime

from gamemood.defaults import (
    CHALLENGING_GENRES,
    FEATURE_CONFIDENCE_OVERALL_SATURATION as OVERALL_SATURATION,
    FEATURE_CONFIDENCE_SATURATION as FEATURE_SATURATION,
    FEATURE_CONTRADICTION_CHALLENGE as CONTRADICTION_CHALLENGE,
    FEATURE_CONTRADICTION_FOCUS as CONTRADICTION_FOCUS,
    FEATURE_EXTREME_VOLATILITY as EXTREME_VOLATILITY,
    FEATURE_HIGH_INTENSITY as HIGH_INTENSITY,
    FEATURE_IMPORTANCE,
    FEATURE_NEUTRAL as NEUTRAL,
    FEATURE_RECENCY_HALF_LIFE_DAYS as HALF_LIFE_DAYS,
    FEATURE_VOLATILITY_MIN_SESSIONS as VOLATILITY_MIN_SESSIONS,
)
from gamemood.model import (
    FEATURE_NAMES,
    BehavioralSignal,
    FeatureConfidence,
    GenreSignalData,
    IntegrationSignalData,
    NormalizedFeatures,
    PlaytimeSignalData,
    SessionSignalData,
    utc_now,
)
from gamemood.utils.math import clamp01, mean, std

# signal sources each feature reads
_FEATURE_SOURCES: dict[str, frozenset[str]] = {
    "engagement_volatility": frozenset({"session"}),
    "challenge_seeking": frozenset({"session", "genre"}),
    "social_openness": frozenset({"session", "integration"}),
    "exploration_bias": frozenset({"genre", "platform"}),
    "focus_stability": frozenset({"session", "playtime"}),
}


def _recency(signal: BehavioralSignal, now: datetime) -> float:
    """Exponential decay weight: 1.0 for a fresh signal, 0.5 after one half-life."""
    age_days = max((now - signal.timestamp).total_seconds() / 86400.0, 0.0)
    return math.exp(-math.log(2) / HALF_LIFE_DAYS * age_days)


class FeatureExtractor:
    """Reduces a signal set to the five normalized behavioral features.

    Every sub-calculation reads only its own signal kinds and starts from
    the neutral value, so a feature with no evidence stays at 0.5.
    """

    def extract_features(self, signals: Sequence[BehavioralSignal]) -> NormalizedFeatures:
        if not signals:
            return NormalizedFeatures()

        sessions = [s.data for s in signals if isinstance(s.data, SessionSignalData)]
        genres = [s.data for s in signals if isinstance(s.data, GenreSignalData)]
        playtime = [s.data for s in signals if isinstance(s.data, PlaytimeSignalData)]
        platform_switches = sum(1 for s in signals if s.source == "platform")
        integrations = [s.data for s in signals if isinstance(s.data, IntegrationSignalData)]

        features = NormalizedFeatures(
            engagement_volatility=self.calculate_engagement_volatility(sessions),
            challenge_seeking=self.calculate_challenge_seeking(sessions, genres),
            social_openness=self.calculate_social_openness(sessions, integrations),
            exploration_bias=self.calculate_exploration_bias(genres, platform_switches),
            focus_stability=self.calculate_focus_stability(sessions, playtime),
        )
        return features.clamped()

    def calculate_engagement_volatility(self, sessions: Sequence[SessionSignalData]) -> float:
        if len(sessions) < VOLATILITY_MIN_SESSIONS:
            return NEUTRAL
        durations = [s.minutes for s in sessions if s.minutes > 0]
        if not durations:
            return NEUTRAL
        return clamp01(std(durations) / mean(durations))

    def calculate_challenge_seeking(
        self,
        sessions: Sequence[SessionSignalData],
        genres: Sequence[GenreSignalData],
    ) -> float:
        score = NEUTRAL
        if sessions:
            difficult = sum(
                1 for s in sessions if s.session_type == "main" and s.intensity > HIGH_INTENSITY
            )
            score += difficult / len(sessions) * 0.3
        if genres:
            challenging = sum(
                1 for g in genres if g.to_genre in CHALLENGING_GENRES or g.from_genre in CHALLENGING_GENRES
            )
            score += challenging / len(genres) * 0.2
        return clamp01(score)

    def calculate_social_openness(
        self,
        sessions: Sequence[SessionSignalData],
        integrations: Sequence[IntegrationSignalData],
    ) -> float:
        score = NEUTRAL
        if sessions:
            social = sum(1 for s in sessions if s.session_type in ("social", "coop"))
            score += social / len(sessions) * 0.4
        if integrations:
            interactive = sum(1 for i in integrations if i.social_interaction)
            score += interactive / len(integrations) * 0.3
        return clamp01(score)

    def calculate_exploration_bias(self, genres: Sequence[GenreSignalData], platform_switches: int) -> float:
        score = NEUTRAL
        if genres:
            unique = {g.from_genre for g in genres} | {g.to_genre for g in genres}
            score += len(unique) / (len(genres) * 2) * 0.3
        if platform_switches > 0:
            score += min(0.3, platform_switches / 10) * 0.3
        return clamp01(score)

    def calculate_focus_stability(
        self,
        sessions: Sequence[SessionSignalData],
        playtime: Sequence[PlaytimeSignalData],
    ) -> float:
        score = NEUTRAL
        if sessions:
            completed = sum(1 for s in sessions if s.completed)
            main = sum(1 for s in sessions if s.session_type == "main")
            score += completed / len(sessions) * 0.3
            score += main / len(sessions) * 0.3
        if playtime:
            score += mean([p.consistency for p in playtime]) * 0.4
        return clamp01(score)

    def calculate_feature_confidence(
        self,
        signals: Sequence[BehavioralSignal],
        now: datetime | None = None,
    ) -> FeatureConfidence:
        """Confidence from signal volume, source weight and recency.

        Unlike the feature values, confidence goes to 0 with no signals.
        """
        now = now or utc_now()
        recency = [_recency(s, now) for s in signals]
        overall = clamp01(sum(s.weight * r for s, r in zip(signals, recency)) / OVERALL_SATURATION)
        per_feature: dict[str, float] = {}
        for name in FEATURE_NAMES:
            sources = _FEATURE_SOURCES[name]
            evidence = sum(r for s, r in zip(signals, recency) if s.source in sources)
            per_feature[name] = round(clamp01(evidence / FEATURE_SATURATION[name]), 4)
        return FeatureConfidence(overall=round(overall, 4), per_feature=per_feature)

    def get_feature_weights(self) -> dict[str, float]:
        """Relative importance of each feature for reporting."""
        return dict(FEATURE_IMPORTANCE)

    def validate_features(self, features: NormalizedFeatures) -> list[str]:
        issues: list[str] = []
        for name, value in zip(FEATURE_NAMES, features.as_list()):
            if not 0.0 <= value <= 1.0:
                issues.append(f"{name} is out of range [0,1]: {value}")
        if features.engagement_volatility > EXTREME_VOLATILITY:
            issues.append("Engagement volatility is extremely high - possible data inconsistency")
        if (
            features.challenge_seeking > CONTRADICTION_CHALLENGE
            and features.focus_stability < CONTRADICTION_FOCUS
        ):
            issues.append("High challenge seeking with low focus stability - unusual pattern")
        return issues
